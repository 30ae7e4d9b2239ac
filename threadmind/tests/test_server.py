"""
Tests for the Scribe HTTP surface

Components are injected into the module globals; the lifespan (config,
database) is not run.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from threadmind.common.schemas import Channel, Thread
from threadmind.retriever.searcher import Searcher
from threadmind.scribe import server
from threadmind.scribe.collector import ConversationCollector
from threadmind.scribe.handlers import SlackHandler
from threadmind.scribe.notifications import PREFIX_COMPLETE, PREFIX_FAILED, PREFIX_PROGRESS
from threadmind.scribe.orchestrator import CaptureOrchestrator
from threadmind.store import StoreError

from .conftest import msg


@pytest.fixture
def client(monkeypatch, store, embedder, transport):
    orchestrator = CaptureOrchestrator(store, embedder, ConversationCollector(transport), transport)
    monkeypatch.setattr(server, "store", store)
    monkeypatch.setattr(server, "embedding_service", embedder)
    monkeypatch.setattr(server, "transport", transport)
    monkeypatch.setattr(server, "orchestrator", orchestrator)
    monkeypatch.setattr(server, "searcher", Searcher(store, embedder))
    monkeypatch.setattr(server, "slack_handler", SlackHandler())
    return TestClient(server.app)


def mention(channel="C1", **event):
    return {
        "type": "event_callback",
        "event": {"type": "app_mention", "channel": channel, "user": "U1", "ts": "5.0", **event},
    }


class TestSlackEvents:
    def test_url_verification(self, client):
        response = client.post("/slack/events", json={"type": "url_verification", "challenge": "abc"})

        assert response.status_code == 200
        assert response.json() == {"challenge": "abc"}

    def test_mention_triggers_capture(self, client, store, transport):
        transport.add_channel("C1", [msg("1.0", "hello")], name="general")

        response = client.post("/slack/events", json=mention())

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        # background task has run by the time TestClient returns
        assert transport.posts[0]["text"].startswith(PREFIX_PROGRESS)
        assert transport.posts[-1]["text"].startswith(PREFIX_COMPLETE)
        assert transport.posts[-1]["thread_ts"] == "5.0"

    def test_ignored_event(self, client, transport):
        response = client.post("/slack/events", json=mention(bot_id="B1"))

        assert response.status_code == 200
        assert transport.posts == []
        assert transport.calls == []

    def test_read_path_error_posts_generic_failure(self, client, store, transport):
        with patch.object(store, "has_channel_embedding",
                          AsyncMock(side_effect=StoreError("has_channel_embedding"))):
            response = client.post("/slack/events", json=mention())

        assert response.status_code == 200
        assert len(transport.posts) == 1
        assert transport.posts[0]["text"].startswith(PREFIX_FAILED)

    def test_unexpected_error_posts_generic_failure(self, client, store, transport):
        with patch.object(store, "has_channel_embedding",
                          AsyncMock(side_effect=RuntimeError("boom"))):
            response = client.post("/slack/events", json=mention())

        assert response.status_code == 200
        assert len(transport.posts) == 1
        assert transport.posts[0]["text"].startswith(PREFIX_FAILED)
        assert transport.posts[0]["thread_ts"] == "5.0"

    def test_invalid_json(self, client):
        response = client.post("/slack/events", content=b"{not json")
        assert response.status_code == 400

    def test_invalid_signature(self, client, monkeypatch):
        monkeypatch.setattr(server, "slack_handler", SlackHandler(signing_secret="secret"))

        response = client.post(
            "/slack/events",
            content=json.dumps(mention()).encode(),
            headers={"X-Slack-Signature": "v0=bad", "X-Slack-Request-Timestamp": "1"},
        )

        assert response.status_code == 401

    def test_not_initialized(self, client, monkeypatch):
        monkeypatch.setattr(server, "slack_handler", None)
        assert client.post("/slack/events", json=mention()).status_code == 503


class TestSearchEndpoint:
    def test_search(self, client, store):
        asyncio.run(store.upsert_channel(Channel(channel_id="C1", name="eng", channel_embedding=[1.0, 0.0, 0.0, 0.0])))
        asyncio.run(store.upsert_thread(Thread(channel_id="C1", thread_ts="1.0", thread_embedding=[0.8, 0.6, 0.0, 0.0])))

        response = client.get("/search", params={"q": "deploys"})

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert body["results"][0]["type"] == "channel"
        assert body["results"][0]["data"]["channel_id"] == "C1"
        assert "channel_embedding" not in body["results"][0]["data"]
        assert body["results"][1]["type"] == "thread"

    def test_invalid_scope(self, client):
        assert client.get("/search", params={"q": "x", "scope": "users"}).status_code == 400

    def test_missing_query(self, client):
        assert client.get("/search").status_code == 422

    def test_store_error(self, client, store):
        with patch.object(store, "search_all", AsyncMock(side_effect=StoreError("search_all"))):
            response = client.get("/search", params={"q": "x"})
        assert response.status_code == 502


class TestStatsAndHealth:
    def test_stats(self, client, store):
        asyncio.run(store.upsert_channel(Channel(channel_id="C1", channel_embedding=[1.0, 0.0, 0.0, 0.0])))

        response = client.get("/stats")

        assert response.status_code == 200
        knowledge = response.json()["knowledge"]
        assert knowledge["total_channels"] == 1
        assert knowledge["channels_with_embedding"] == 1

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["initialized"] is True
        assert body["store"] == "memory"
        assert body["capture_enabled"] is True
