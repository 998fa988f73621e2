import logging
import time

import openai
from flask import current_app, has_app_context

from .openai_client import OpenAIClient
from .result_cache import ResultCache

logger = logging.getLogger(__name__)

# Moderation endpoint attribute -> text classifier category
CATEGORY_MAP = {
    'hate': 'hate',
    'hate_threatening': 'hate',
    'harassment': 'harassment',
    'harassment_threatening': 'harassment',
    'violence': 'violence',
    'violence_graphic': 'violence',
    'sexual': 'sexual',
    'sexual_minors': 'sexual',
}

MAX_CHUNK_CHARS = 20000


class ModerationScorer:
    """Scores text with the OpenAI moderation endpoint.

    Returns the highest score per classifier category, or None when the
    client is not configured or the API is unavailable.
    """

    def __init__(self, client_manager=None, cache=None, model=None):
        self.client_manager = client_manager or OpenAIClient()
        self.cache = cache or ResultCache()
        if model is None and has_app_context():
            model = current_app.config.get('OPENAI_MODERATION_MODEL')
        self.model = model or 'omni-moderation-latest'

    def is_configured(self):
        return self.client_manager.is_configured()

    def score(self, text):
        if not text or not text.strip() or not self.is_configured():
            return None

        cache_key = self.cache.generate_cache_key(text, self.model)
        cached = self.cache.get_cached_result(cache_key)
        if cached is not None:
            return cached

        try:
            scores = {}
            for chunk in split_text_into_chunks(text, MAX_CHUNK_CHARS):
                for category, value in self._score_chunk(chunk).items():
                    scores[category] = max(scores.get(category, 0.0), value)
        except (openai.APIConnectionError, openai.APITimeoutError, openai.InternalServerError) as e:
            logger.warning(f"OpenAI moderation unavailable after retries: {str(e)}")
            return None
        except openai.OpenAIError as e:
            logger.warning(f"OpenAI moderation error: {str(e)}")
            return None
        except (ValueError, TypeError, AttributeError, IndexError) as e:
            logger.error(f"Unexpected OpenAI moderation response: {str(e)}")
            return None

        self.cache.cache_result(cache_key, scores)
        return scores

    def _score_chunk(self, chunk):
        def make_api_call():
            client = self.client_manager.get_client()
            return client.moderations.create(model=self.model, input=chunk)

        response = self._retry_api_call(make_api_call)
        category_scores = response.results[0].category_scores

        scores = {}
        for attr_name, category in CATEGORY_MAP.items():
            value = float(getattr(category_scores, attr_name, 0) or 0)
            scores[category] = max(scores.get(category, 0.0), value)
        return scores

    def _retry_api_call(self, api_function, max_retries=3, initial_delay=0.5):
        """Retry transient API failures with exponential backoff"""
        last_exception = None

        for attempt in range(max_retries):
            try:
                return api_function()
            except (openai.APIConnectionError, openai.APITimeoutError, openai.InternalServerError) as e:
                last_exception = e
                if attempt < max_retries - 1:
                    delay = initial_delay * (2 ** attempt)
                    logger.warning(
                        f"OpenAI API {type(e).__name__} (attempt {attempt + 1}/{max_retries}): "
                        f"{str(e)}. Retrying in {delay:.1f}s..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(f"OpenAI API failed after {max_retries} attempts: {str(e)}")

        raise last_exception


def split_text_into_chunks(text, max_chars):
    """Split on paragraph boundaries, hard-splitting paragraphs that are too long"""
    if len(text) <= max_chars:
        return [text]

    chunks = []
    current_chunk = ""

    for paragraph in text.split('\n\n'):
        while len(paragraph) > max_chars:
            if current_chunk:
                chunks.append(current_chunk)
                current_chunk = ""
            chunks.append(paragraph[:max_chars])
            paragraph = paragraph[max_chars:]

        candidate = f"{current_chunk}\n\n{paragraph}" if current_chunk else paragraph
        if len(candidate) > max_chars:
            chunks.append(current_chunk)
            current_chunk = paragraph
        else:
            current_chunk = candidate

    if current_chunk:
        chunks.append(current_chunk)

    return chunks
