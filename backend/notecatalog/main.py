import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from notecatalog.config import get_settings
from notecatalog.database import engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Configure logging on startup; dispose the connection pool on shutdown.

    The schema is owned by Alembic (``alembic upgrade head``).
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info("Notes catalog search starting (embedding model=%s)", settings.EMBEDDING_MODEL)

    yield
    await engine.dispose()


app = FastAPI(
    title="Notes Catalog Search",
    description="Hybrid keyword, semantic and ingredient search over notes and recipes",
    version="0.1.0",
    lifespan=lifespan,
)

# --- Router includes ---
from notecatalog.api.admin import router as admin_router  # noqa: E402
from notecatalog.api.recipes import router as recipes_router  # noqa: E402
from notecatalog.api.search import router as search_router  # noqa: E402

app.include_router(search_router, prefix="/api")
app.include_router(recipes_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns a simple status response to verify the API is running.
    """
    return {"status": "ok"}
