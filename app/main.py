"""Media Relay - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.config import Settings, settings as default_settings
from app.api.v1.router import v1_router, browser_router
from app.api.v1.health import router as health_root_router
from app.jobs.supervisor import JobSupervisor, WorkerFactory
from app.jobs.worker import WorkerAdapter
from app.sessions.registry import SessionRegistry
from app.storage.artifacts import ArtifactStore

logger = logging.getLogger("app")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    worker_factory: WorkerFactory = WorkerAdapter,
) -> FastAPI:
    settings = settings or default_settings

    # Created eagerly: StaticFiles needs the directory to exist at mount time.
    store = ArtifactStore(
        settings.download_dir,
        url_prefix=settings.downloads_url_prefix,
        ttl_seconds=settings.artifact_ttl_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic."""
        logger.info("Starting Media Relay on port %s", settings.server_port)
        logger.info("Artifact dir: %s (ttl %ss)", store.base_dir, settings.artifact_ttl_seconds)
        logger.info("Worker executable: %s", settings.ytdlp_path)

        removed = store.cleanup_expired()
        if removed:
            logger.info("Removed %d expired artifact(s) left from a previous run", removed)

        registry = SessionRegistry()
        supervisor = JobSupervisor(registry, store, worker_factory=worker_factory, settings=settings)
        await supervisor.start()

        app.state.registry = registry
        app.state.supervisor = supervisor
        app.state.artifact_store = store

        yield

        logger.info("Shutting down Media Relay")
        await supervisor.stop()
        await store.close()
        store.cleanup_expired()

    app = FastAPI(
        title="Media Relay",
        description="Session-addressed media downloads with live progress over WebSocket",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_root_router, tags=["health"])  # GET /health at root
    app.include_router(v1_router)  # All /api/v1/* endpoints
    app.include_router(browser_router)  # /formats, /download, /download-audio, /ws
    app.mount(
        store.publish_prefix,
        StaticFiles(directory=str(store.base_dir)),
        name="downloads",
    )
    return app


configure_logging(default_settings.log_level)
app = create_app()


def run() -> None:
    uvicorn.run(
        "app.main:app",
        host=default_settings.server_host,
        port=default_settings.server_port,
    )
