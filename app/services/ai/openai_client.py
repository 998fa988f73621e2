import logging

import httpx
import openai
from flask import current_app

logger = logging.getLogger(__name__)


class OpenAIClient:
    """Manages the OpenAI client configuration and connection pooling"""

    _client = None
    _api_key = None

    def __init__(self, api_key=None):
        if api_key is None:
            api_key = current_app.config.get('OPENAI_API_KEY')

        if not api_key:
            self.api_key = None
            self.client = None
            return

        try:
            self.api_key = api_key
            self.client = self._get_or_create_client(api_key)
        except (openai.OpenAIError, httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to configure OpenAI: {str(e)}")
            self.api_key = None
            self.client = None

    @classmethod
    def _get_or_create_client(cls, api_key):
        """Create or reuse a pooled client; moderation calls are short and frequent"""
        if cls._client is None or cls._api_key != api_key:
            http_client = httpx.Client(
                timeout=httpx.Timeout(
                    connect=3.0,
                    read=10.0,
                    write=5.0,
                    pool=2.0
                ),
                limits=httpx.Limits(
                    max_keepalive_connections=50,
                    max_connections=200,
                    keepalive_expiry=300.0
                ),
                http2=True
            )

            cls._client = openai.OpenAI(
                api_key=api_key,
                http_client=http_client
            )
            cls._api_key = api_key

        return cls._client

    def is_configured(self):
        return self.api_key is not None and self.client is not None

    def get_client(self):
        if not self.is_configured():
            raise RuntimeError("OpenAI client not configured - API key missing")
        return self.client
