"""Accessors for the services wired into ``app.state`` during lifespan."""

from fastapi import HTTPException
from starlette.requests import HTTPConnection

from app.config import Settings, settings as default_settings
from app.jobs.supervisor import JobSupervisor
from app.sessions.registry import SessionRegistry
from app.storage.artifacts import ArtifactStore


def get_registry(conn: HTTPConnection) -> SessionRegistry:
    registry = getattr(conn.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Session registry not initialized")
    return registry


def get_supervisor(conn: HTTPConnection) -> JobSupervisor:
    supervisor = getattr(conn.app.state, "supervisor", None)
    if supervisor is None:
        raise HTTPException(status_code=503, detail="Job supervisor not initialized")
    return supervisor


def get_store(conn: HTTPConnection) -> ArtifactStore:
    store = getattr(conn.app.state, "artifact_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Artifact store not initialized")
    return store


def get_settings(conn: HTTPConnection) -> Settings:
    """Settings the app was built with; the process defaults if none were attached."""
    return getattr(conn.app.state, "settings", None) or default_settings
