"""
townsquare.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn townsquare.api.main:app --reload --port 8000

Every domain error leaves the API as ``{"error": kind, "message": ...}``
with the status code its class declares.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from townsquare import __version__  # noqa: E402
from townsquare.api.deps import get_config, get_engine  # noqa: E402
from townsquare.api.routes.admin import router as admin_router  # noqa: E402
from townsquare.api.routes.communities import router as communities_router  # noqa: E402
from townsquare.api.routes.elections import router as elections_router  # noqa: E402
from townsquare.api.routes.messages import router as messages_router  # noqa: E402
from townsquare.api.routes.posts import router as posts_router  # noqa: E402
from townsquare.api.routes.users import router as users_router  # noqa: E402
from townsquare.api.tasks import maintenance_loop  # noqa: E402
from townsquare.database.engine import init_db  # noqa: E402
from townsquare.errors import ConsistencyFault, TownsquareError  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from ``CORS_ALLOW_ORIGINS`` (comma-separated)."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the engine, start maintenance."""
    engine = get_engine()
    cfg = get_config()
    if os.getenv("TOWNSQUARE_CREATE_TABLES", "").lower() in ("1", "true", "yes"):
        init_db(engine)

    task = asyncio.create_task(maintenance_loop(engine, cfg))
    logger.info("%s API started — engine ready (%s)", cfg.service_name, engine.url.database)
    yield
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    logger.info("%s API shutting down", cfg.service_name)


app = FastAPI(
    title="Townsquare API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TownsquareError)
async def _domain_error(request: Request, exc: TownsquareError) -> JSONResponse:
    if isinstance(exc, ConsistencyFault):
        logger.critical(
            "Consistency fault on %s %s: %s", request.method, request.url.path, exc.message,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "message": exc.message},
    )


# Mount routers
app.include_router(communities_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(posts_router, prefix="/api")
app.include_router(messages_router, prefix="/api")
app.include_router(elections_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
