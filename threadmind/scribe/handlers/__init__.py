"""
Source Handlers

Handlers turn source-specific webhook payloads into capture requests.

Available Handlers:
- SlackHandler: Slack Events API (app_mention)
"""

from .base import BaseHandler, Mention
from .slack import SlackHandler

__all__ = [
    "BaseHandler",
    "Mention",
    "SlackHandler",
]
