"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import clusters, health, signals
from .config import settings
from .exceptions import SignalCoreError
from .services.zoning.service import zone_cache


async def initialize_zones() -> None:
    logging.info("Processing clusters...")
    try:
        await run_in_threadpool(zone_cache.rebuild)
        logging.info("Clusters processed and cached.")
    except SignalCoreError as exc:
        logging.error(f"Error initializing clusters: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await initialize_zones()
    yield


def create_app(*, build_zones_on_startup: bool = True) -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        lifespan=lifespan if build_zones_on_startup else None,
    )
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(signals.router, prefix=settings.api_prefix)
    app.include_router(clusters.router, prefix=settings.api_prefix)
    return app


app = create_app()
