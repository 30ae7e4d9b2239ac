"""
Slack Handler

Handles Slack Events API webhooks: URL verification and app_mention events.
"""

import hmac
import hashlib
import time
from typing import Optional, Dict, Any

from .base import BaseHandler, Mention

# Max age of a signed request, in seconds
SIGNATURE_MAX_AGE = 300


class SlackHandler(BaseHandler):
    """
    Handler for Slack Events API webhooks.

    Processes:
    - app_mention events (channel or in-thread mentions of the bot)

    Ignores:
    - Bot messages
    - Every other event type
    """

    def __init__(self, signing_secret: str = ""):
        """
        Initialize Slack handler.

        Args:
            signing_secret: Slack signing secret for verification
        """
        super().__init__("slack")
        self._signing_secret = signing_secret

    def parse_event(self, raw_data: Dict[str, Any]) -> Optional[Mention]:
        if raw_data.get("type") != "event_callback":
            return None

        event = raw_data.get("event") or {}
        if event.get("type") != "app_mention":
            return None

        return Mention(
            channel=event.get("channel", ""),
            user=event.get("user", ""),
            timestamp=event.get("ts", ""),
            text=event.get("text", ""),
            thread_ts=event.get("thread_ts") or None,
            source=self.source_name,
            is_bot=bool(event.get("bot_id")) or event.get("subtype") == "bot_message",
        )

    def verify_signature(
        self,
        body: bytes,
        signature: str,
        timestamp: str
    ) -> bool:
        """
        Verify Slack request signature.

        Args:
            body: Raw request body
            signature: X-Slack-Signature header
            timestamp: X-Slack-Request-Timestamp header

        Returns:
            True if signature is valid
        """
        if not self._signing_secret:
            # Skip verification if no secret configured
            return True

        if not signature or not timestamp:
            return False

        try:
            ts = int(timestamp)
        except ValueError:
            return False
        if abs(time.time() - ts) > SIGNATURE_MAX_AGE:
            return False

        sig_basestring = f"v0:{timestamp}:{body.decode('utf-8')}"
        expected_sig = "v0=" + hmac.new(
            self._signing_secret.encode('utf-8'),
            sig_basestring.encode('utf-8'),
            hashlib.sha256
        ).hexdigest()

        return hmac.compare_digest(expected_sig, signature)

    def is_url_verification(self, raw_data: Dict[str, Any]) -> bool:
        return raw_data.get("type") == "url_verification"

    def get_challenge(self, raw_data: Dict[str, Any]) -> Optional[str]:
        """Get challenge for URL verification"""
        if self.is_url_verification(raw_data):
            return raw_data.get("challenge")
        return None
