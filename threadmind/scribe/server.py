"""
Scribe Server

FastAPI server for receiving Slack webhooks and capturing channels and
threads into the knowledge base.

Endpoints:
- POST /slack/events: Slack webhook endpoint (app_mention triggers capture)
- GET /search: Semantic search over captured channels and threads
- GET /stats: Knowledge base statistics
- GET /health: Health check

Pipeline:
1. Receive webhook event
2. Verify signature, answer URL verification
3. Parse app_mention into a CaptureRequest
4. Capture in the background (collect, summarize, embed, store)
5. Reply in the thread with progress and the outcome
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from ..common.config import ThreadmindConfig, ensure_directories, load_config
from ..common.embedding_service import EmbeddingError, EmbeddingService, get_embedding_service, verify_dimensions
from ..common.logging_config import setup_logging
from ..retriever.searcher import SEARCH_SCOPES, Searcher
from ..store import KnowledgeStore, StoreError, create_store
from .collector import ConversationCollector
from .handlers import SlackHandler
from .notifications import failed_message
from .orchestrator import CaptureOrchestrator, CaptureRequest
from .transport import ChatTransport, SlackTransport, TransportError

logger = logging.getLogger("threadmind.scribe.server")


# Global state
config: Optional[ThreadmindConfig] = None
store: Optional[KnowledgeStore] = None
embedding_service: Optional[EmbeddingService] = None
transport: Optional[ChatTransport] = None
orchestrator: Optional[CaptureOrchestrator] = None
searcher: Optional[Searcher] = None
slack_handler: Optional[SlackHandler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, store, embedding_service, transport, orchestrator, searcher, slack_handler

    ensure_directories()

    config = load_config()
    setup_logging(config.log_level)
    logger.info("Starting up...")

    embedding_service = get_embedding_service(config.embedding)
    logger.info("Embedding service ready (mode: %s, dimension: %d)",
                embedding_service.mode, embedding_service.dimension)

    store = create_store(config.database, dimension=config.embedding.dimension)
    verify_dimensions(embedding_service, store)
    await store.initialize()
    logger.info("Knowledge store ready (%s)", store.backend_name)

    if config.slack.bot_token:
        transport = SlackTransport(bot_token=config.slack.bot_token)
        collector = ConversationCollector(
            transport,
            summary_message_limit=config.capture.summary_message_limit,
            page_size=config.capture.page_size,
            max_pages=config.capture.max_pages,
        )
        orchestrator = CaptureOrchestrator(store, embedding_service, collector, transport)
    else:
        transport = None
        orchestrator = None
        logger.warning("SLACK_BOT_TOKEN not set; capture disabled (search only)")

    searcher = Searcher(store, embedding_service, config.retriever)
    slack_handler = SlackHandler(signing_secret=config.slack.signing_secret)

    logger.info("Ready to receive events")

    yield

    logger.info("Shutting down...")
    await store.close()


app = FastAPI(
    title="threadmind Scribe",
    description="Slack channel and thread knowledge base",
    version="0.1.0",
    lifespan=lifespan
)


# =============================================================================
# Background Tasks
# =============================================================================

async def process_capture(request: CaptureRequest):
    """
    Run one capture. Errors on the existence check (store failures or
    anything unexpected) surface here; they are logged and answered with a
    generic failure reply.
    """
    if not orchestrator:
        logger.warning("Capture not available, skipping request for %s", request.channel_id)
        return

    try:
        result = await orchestrator.capture(request)
        logger.info("Capture finished for %s: %s (cache_hit=%s)",
                    request.channel_id, result.state.value, result.cache_hit)
    except Exception as e:
        if isinstance(e, StoreError):
            logger.error("Capture for %s aborted: %s", request.channel_id, e)
        else:
            logger.exception("Unexpected error in capture for %s: %s", request.channel_id, e)
        try:
            await transport.post_message(request.channel_id, failed_message(), thread_ts=request.reply_ts)
        except TransportError as post_error:
            logger.error("Failed to post failure reply: %s", post_error)


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "scribe",
        "initialized": store is not None,
        "store": store.backend_name if store else None,
        "embedding_mode": embedding_service.mode if embedding_service else None,
        "capture_enabled": orchestrator is not None,
    }


@app.post("/slack/events")
async def slack_events(
    request: Request,
    background_tasks: BackgroundTasks,
    x_slack_signature: Optional[str] = Header(None),
    x_slack_request_timestamp: Optional[str] = Header(None)
):
    """
    Handle Slack webhook events.

    This is the main entry point for Slack integration.
    """
    if not slack_handler:
        raise HTTPException(status_code=503, detail="Handler not initialized")

    body = await request.body()

    if not slack_handler.verify_signature(
        body,
        x_slack_signature or "",
        x_slack_request_timestamp or ""
    ):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")

    if slack_handler.is_url_verification(data):
        return JSONResponse({"challenge": slack_handler.get_challenge(data)})

    capture_request = slack_handler.parse_mention(data)
    if capture_request:
        # Process in background (don't block response)
        background_tasks.add_task(process_capture, capture_request)

    # Acknowledge receipt
    return JSONResponse({"ok": True})


@app.get("/search")
async def search(
    q: str = Query(..., min_length=1),
    scope: str = "all",
    channel_id: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
):
    """Semantic search over captured channels and threads"""
    if not searcher:
        raise HTTPException(status_code=503, detail="Searcher not initialized")
    if scope not in SEARCH_SCOPES:
        raise HTTPException(status_code=400, detail=f"Invalid scope: {scope}")

    try:
        results = await searcher.search(q, scope=scope, channel_id=channel_id, limit=limit)
    except (StoreError, EmbeddingError) as e:
        logger.error("Search failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))

    return {
        "query": q,
        "scope": scope,
        "count": len(results),
        "results": [r.to_dict() for r in results],
    }


@app.get("/stats")
async def get_stats():
    """Get knowledge base statistics"""
    if not store:
        raise HTTPException(status_code=503, detail="Store not initialized")

    try:
        knowledge = await store.get_stats()
    except StoreError as e:
        logger.error("Stats failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))

    return {
        "service": "scribe",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "knowledge": knowledge.to_dict(),
    }


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Scribe server"""
    import uvicorn

    config = load_config()
    setup_logging(config.log_level)
    port = config.slack.webhook_port

    logger.info("Starting server on port %d", port)
    uvicorn.run(
        "threadmind.scribe.server:app",
        host="0.0.0.0",
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
