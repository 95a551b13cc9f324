"""
FastAPI application entry point.

Serves the story player's dynamic content, choice recording and story
retrieval endpoints. No authentication: the server runs on the venue's
local network.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .. import __version__
from ..infra.data_paths import get_db_max_age_days
from ..story.errors import PersistenceError
from .dependencies import get_services, shutdown_services
from .routers import choices, dynamic, story

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    - Startup: archive the document store when it is older than DB_MAX_AGE_DAYS
    - Shutdown: close the document store
    """
    services = get_services()
    try:
        archived = await services.document_store.archive_if_stale(get_db_max_age_days())
        if archived:
            logger.info(f"[API] Archived previous database to {archived}")
    except PersistenceError as e:
        logger.error(f"[API] Startup archival failed: {e}")

    yield

    shutdown_services()


tags_metadata = [
    {
        "name": "dynamic",
        "description": "Dynamic block generation and prompt preview",
    },
    {
        "name": "choices",
        "description": "Player choice recording and codenames",
    },
    {
        "name": "story",
        "description": "Story blocks, compiled story text and choice summaries",
    },
]

app = FastAPI(
    title="Storyloom API",
    lifespan=lifespan,
    description="""
## Storyloom API

Backend for a branching, LLM-augmented interactive story.

### Features
- **Dynamic blocks**: resolve `{get ...}` placeholders, assemble the prompt, call the LLM and store the result
- **Choices**: record each player's choice once per block
- **Story**: compiled story text and per-block choice tallies

### Usage
```bash
# Start server
storyloom serve --host 127.0.0.1 --port 8000

# Generate a dynamic block
curl -X POST http://localhost:8000/generate-dynamic \\
  -H "Content-Type: application/json" \\
  -d '{"playerID": "p1", "blockId": "dyn-1", "generateOptions": true}'
```
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


app.include_router(dynamic.router, tags=["dynamic"])
app.include_router(choices.router, tags=["choices"])
app.include_router(story.router, prefix="/story", tags=["story"])
