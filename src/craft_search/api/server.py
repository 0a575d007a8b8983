# src/craft_search/api/server.py

"""FastAPI server exposing search and admin diagnostics."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request

from craft_search.config import load_settings
from craft_search.diagnostics import build_diagnostics
from craft_search.local.query_log import QueryLogSink
from craft_search.local.retrieval import RetrievalError
from craft_search.local.service import Service
from craft_search.shared.models.api import (
    DiagnosticsResponse,
    SearchResponse,
    SortMode,
)

logger = logging.getLogger(__name__)

SEARCH_UNAVAILABLE_DETAIL = "Search is temporarily unavailable. Please try again later."


@dataclass
class AppContext:
    """Application-level context shared by all requests."""

    search_service: Service
    query_log: QueryLogSink


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[Dict]:
    """Builds the search service and query log sink for the app's lifetime."""
    settings = load_settings()
    search_service = Service(settings)
    query_log = QueryLogSink(settings.query_log_path)
    try:
        yield {"ctx": AppContext(search_service=search_service, query_log=query_log)}
    finally:
        query_log.close()
        search_service.close()


app = FastAPI(title="Craft Search API", lifespan=lifespan)


@app.get("/heartbeat")
async def heartbeat() -> Dict[str, str]:
    """Simple heartbeat endpoint to check if the server is running."""
    return {"status": "ok"}


@app.get("/search")
async def search(
    request: Request,
    background_tasks: BackgroundTasks,
    q: str = Query(..., description="Search query"),
    sort: Optional[SortMode] = Query(None, description="Explicit sort mode"),
    user_id: Optional[str] = Query(None, description="Id of the searching user"),
) -> SearchResponse:
    """Runs a relevance-ranked search across all content types."""
    ctx: AppContext = request.state.ctx
    try:
        response: SearchResponse = await asyncio.to_thread(
            ctx.search_service.search, q, sort
        )
    except RetrievalError as e:
        logger.error("Search for '%s' failed: %s", q, e)
        ctx.query_log.emit(q, 0, user_id=user_id, status="ERROR")
        raise HTTPException(status_code=503, detail=SEARCH_UNAVAILABLE_DETAIL) from e

    background_tasks.add_task(
        ctx.query_log.emit, response.query, len(response.results), user_id
    )
    return response


@app.get("/admin/search/diagnostics")
async def search_diagnostics(
    request: Request,
    q: str = Query(..., description="Search query"),
    sort: Optional[SortMode] = Query(None, description="Explicit sort mode"),
) -> DiagnosticsResponse:
    """Runs a live search and returns it with its per-result score breakdown."""
    ctx: AppContext = request.state.ctx
    try:
        response: SearchResponse = await asyncio.to_thread(
            ctx.search_service.search, q, sort
        )
    except RetrievalError as e:
        logger.error("Diagnostics search for '%s' failed: %s", q, e)
        raise HTTPException(status_code=503, detail=SEARCH_UNAVAILABLE_DETAIL) from e
    return build_diagnostics(response)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s",
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    uvicorn.run(app, host="0.0.0.0", port=8000)
