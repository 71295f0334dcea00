import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from collab_store.api.http import router as docs_router
from collab_store.config import Settings
from collab_store.errors import IntegrityViolation, QueryError, StorageConnectionError
from collab_store.logging_config import configure_logging
from collab_store.persistence.base import DocumentStore
from collab_store.persistence.memory import InMemoryDocumentStore
from collab_store.persistence.pool import ConnectionPool
from collab_store.persistence.postgres import PostgresDocumentStore


logger = logging.getLogger(__name__)


async def build_store(settings: Settings) -> tuple[DocumentStore, Optional[ConnectionPool]]:
    if settings.backend == "memory":
        return InMemoryDocumentStore(), None

    if not settings.database_url:
        raise ValueError("COLLAB_STORE_DATABASE_URL is required for the postgres backend")

    pool = ConnectionPool(
        settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        timeout=settings.pool_timeout,
        max_waiting=settings.pool_max_waiting,
    )
    await pool.open()
    store = PostgresDocumentStore(pool)
    try:
        if settings.create_schema:
            await store.ensure_schema()
    except Exception:
        await pool.close()
        raise
    return store, pool


def create_app(settings: Optional[Settings] = None, store: Optional[DocumentStore] = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        pool: Optional[ConnectionPool] = None
        if store is not None:
            app.state.store = store
        else:
            app.state.store, pool = await build_store(settings)
        logger.info("document store ready: %s", type(app.state.store).__name__)
        try:
            yield
        finally:
            await app.state.store.close()
            if pool is not None:
                await pool.close()

    app = FastAPI(title="collab-store", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.exception_handler(StorageConnectionError)
    async def _unavailable(request: Request, exc: StorageConnectionError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(IntegrityViolation)
    async def _integrity(request: Request, exc: IntegrityViolation) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(QueryError)
    async def _query(request: Request, exc: QueryError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    app.include_router(docs_router)
    return app


app = create_app()
