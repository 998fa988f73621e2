"""Discord webhook alerts for high-priority review queue items."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


class DiscordNotifier:
    """
    Posts review queue alerts to a Discord webhook.

    Features:
    - Rich embed formatting per priority
    - Automatic retries with exponential backoff
    - Failures are logged and reported as False, never raised
    """

    COLOR_URGENT = 0xFF0000  # Red
    COLOR_HIGH = 0xFFA500  # Orange
    COLOR_INFO = 0x3498DB  # Blue

    def __init__(self, webhook_url: Optional[str] = None, session: Optional[requests.Session] = None):
        self.webhook_url = webhook_url

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=3,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["POST"]
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session

    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    def send_queue_alert(self, item: Dict[str, Any]) -> bool:
        """
        Send an alert for a queue item that needs prompt review.

        Args:
            item: queue item dict as returned by the review queue

        Returns:
            True if the webhook accepted the alert, False otherwise
        """
        if not self.is_configured():
            logger.debug("Discord webhook not configured, skipping queue alert")
            return False

        priority = item.get('priority', 'medium')
        if priority == 'urgent':
            emoji, color = "🚨", self.COLOR_URGENT
        elif priority == 'high':
            emoji, color = "🚩", self.COLOR_HIGH
        else:
            emoji, color = "ℹ️", self.COLOR_INFO

        reasons = item.get('reasons') or []
        flags = item.get('flags') or []

        fields = [
            {"name": "Content", "value": f"{item.get('content_type')} `{str(item.get('content_id'))[:8]}`",
             "inline": True},
            {"name": "User ID", "value": f"`{item.get('user_id')}`", "inline": True},
            {"name": "Priority", "value": priority.title(), "inline": True},
            {"name": "Severity", "value": str(item.get('severity', 'low')).title(), "inline": True},
            {"name": "Confidence", "value": f"{float(item.get('confidence') or 0):.2%}", "inline": True},
        ]
        if flags:
            fields.append({"name": "Flags", "value": ", ".join(flags)[:1024], "inline": False})

        embed = {
            "title": f"{emoji} {priority.title()} Priority Review Needed",
            "description": "; ".join(reasons)[:2048] or "Content requires moderation review",
            "color": color,
            "fields": fields,
            "timestamp": datetime.utcnow().isoformat(),
            "footer": {"text": f"Queue item {item.get('id')}"}
        }

        try:
            response = self.session.post(self.webhook_url, json={"embeds": [embed]}, timeout=10)
            response.raise_for_status()
            logger.info(f"Discord queue alert sent for item {item.get('id')}")
            return True
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to send Discord queue alert: {e}")
            return False

    def close(self):
        self.session.close()
