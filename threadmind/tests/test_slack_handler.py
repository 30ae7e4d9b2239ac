"""Tests for Slack webhook parsing and signature verification."""

import hashlib
import hmac
import time

import pytest

from threadmind.scribe.handlers import SlackHandler
from threadmind.scribe.orchestrator import CaptureRequest

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"


def sign(body: bytes, timestamp: str, secret: str = SECRET) -> str:
    base = f"v0:{timestamp}:{body.decode('utf-8')}"
    return "v0=" + hmac.new(secret.encode(), base.encode(), hashlib.sha256).hexdigest()


def mention_event(**event):
    return {
        "type": "event_callback",
        "team_id": "T1",
        "event": {"type": "app_mention", "channel": "C1", "user": "U1", "ts": "1700000000.000200",
                  "text": "<@B1> index this", **event},
    }


class TestParseMention:
    @pytest.fixture
    def handler(self):
        return SlackHandler(signing_secret=SECRET)

    def test_channel_mention(self, handler):
        request = handler.parse_mention(mention_event())

        assert request == CaptureRequest(
            channel_id="C1", thread_ts=None, event_ts="1700000000.000200", user_id="U1",
        )
        assert request.is_thread is False
        assert request.reply_ts == "1700000000.000200"

    def test_thread_mention(self, handler):
        request = handler.parse_mention(mention_event(thread_ts="1700000000.000100"))

        assert request.is_thread is True
        assert request.thread_ts == "1700000000.000100"
        assert request.reply_ts == "1700000000.000100"

    def test_bot_messages_ignored(self, handler):
        assert handler.parse_mention(mention_event(bot_id="B99")) is None
        assert handler.parse_mention(mention_event(subtype="bot_message")) is None

    def test_other_events_ignored(self, handler):
        message_event = mention_event()
        message_event["event"]["type"] = "message"

        assert handler.parse_mention(message_event) is None
        assert handler.parse_mention({"type": "url_verification", "challenge": "x"}) is None
        assert handler.parse_mention({}) is None

    def test_url_verification(self, handler):
        data = {"type": "url_verification", "challenge": "abc123"}

        assert handler.is_url_verification(data)
        assert handler.get_challenge(data) == "abc123"
        assert handler.get_challenge(mention_event()) is None


class TestVerifySignature:
    def test_valid(self):
        handler = SlackHandler(signing_secret=SECRET)
        body = b'{"type":"event_callback"}'
        ts = str(int(time.time()))

        assert handler.verify_signature(body, sign(body, ts), ts) is True

    def test_wrong_secret(self):
        handler = SlackHandler(signing_secret=SECRET)
        body = b"{}"
        ts = str(int(time.time()))

        assert handler.verify_signature(body, sign(body, ts, secret="other"), ts) is False

    def test_stale_timestamp(self):
        handler = SlackHandler(signing_secret=SECRET)
        body = b"{}"
        ts = str(int(time.time()) - 600)

        assert handler.verify_signature(body, sign(body, ts), ts) is False

    def test_missing_headers(self):
        handler = SlackHandler(signing_secret=SECRET)

        assert handler.verify_signature(b"{}", "", "") is False
        assert handler.verify_signature(b"{}", "v0=abc", "not-a-number") is False

    def test_no_secret_skips_verification(self):
        assert SlackHandler().verify_signature(b"{}", "", "") is True
