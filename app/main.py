from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.readings import build_default_store
from logging_config import configure_logging
from services.telemetry import build_default_service
from storage.cache import build_default_cache


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    service = build_default_service()
    try:
        yield
    finally:
        service.close()
        build_default_service.cache_clear()
        build_default_store.cache_clear()
        build_default_cache.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Telemetry Service",
        description="Ingests temperature/humidity readings, serves latest values and site summaries, and raises threshold alerts.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
