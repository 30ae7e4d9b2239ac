"""Tests for the MCP search tools via fastmcp.Client."""

from unittest.mock import AsyncMock, patch

import pytest
from fastmcp import Client

from threadmind.common.schemas import Channel, Thread
from threadmind.retriever.mcp_server import SearchMCPServer
from threadmind.store import StoreError


def tool_data(result):
    return getattr(result, "data", None) or getattr(result, "structured", None) \
        or getattr(result, "structured_content", None)


@pytest.fixture
def app(store, embedder):
    return SearchMCPServer(store=store, embedding_service=embedder, mcp_server_name="test-threadmind")


async def seed(store):
    await store.upsert_channel(Channel(channel_id="C1", name="eng", channel_embedding=[1.0, 0.0, 0.0, 0.0]))
    await store.upsert_thread(Thread(
        channel_id="C1", thread_ts="1.0", category="Bug", thread_embedding=[0.8, 0.6, 0.0, 0.0],
    ))


@pytest.mark.asyncio
async def test_tools_registered(app):
    async with Client(app.mcp) as client:
        tools = await client.list_tools()
        names = [t.name for t in tools]
        assert "search_knowledge" in names
        assert "knowledge_stats" in names


@pytest.mark.asyncio
async def test_search_knowledge(app, store):
    await seed(store)

    async with Client(app.mcp) as client:
        result = await client.call_tool("search_knowledge", {"query": "bug reports"})
        data = tool_data(result)

    assert data is not None, "No data returned from tool call"
    assert data.get("ok") is True
    assert data["count"] == 2
    assert [r["type"] for r in data["results"]] == ["channel", "thread"]
    assert data["results"][1]["data"]["category"] == "Bug"


@pytest.mark.asyncio
async def test_search_knowledge_thread_scope(app, store):
    await seed(store)

    async with Client(app.mcp) as client:
        result = await client.call_tool(
            "search_knowledge", {"query": "x", "scope": "threads", "channel_id": "C1", "limit": 1},
        )
        data = tool_data(result)

    assert data.get("ok") is True
    assert [r["data"]["thread_ts"] for r in data["results"]] == ["1.0"]


@pytest.mark.asyncio
async def test_search_knowledge_invalid_scope(app):
    async with Client(app.mcp) as client:
        result = await client.call_tool("search_knowledge", {"query": "x", "scope": "users"})
        data = tool_data(result)

    assert data.get("ok") is False
    assert "Invalid scope" in data["error"]


@pytest.mark.asyncio
async def test_search_knowledge_store_error(app, store):
    with patch.object(store, "search_all", AsyncMock(side_effect=StoreError("search_all", OSError("down")))):
        async with Client(app.mcp) as client:
            result = await client.call_tool("search_knowledge", {"query": "x"})
            data = tool_data(result)

    assert data.get("ok") is False
    assert "search_all" in data["error"]


@pytest.mark.asyncio
async def test_knowledge_stats(app, store):
    await seed(store)

    async with Client(app.mcp) as client:
        result = await client.call_tool("knowledge_stats", {})
        data = tool_data(result)

    assert data.get("ok") is True
    assert data["stats"]["total_channels"] == 1
    assert data["stats"]["threads_by_category"] == {"Bug": 1}
    assert data["embedding_mode"] == "fake"
