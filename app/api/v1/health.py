"""Health check endpoint."""

import platform
import shutil
import sys

from fastapi import APIRouter, Depends, Request
from yt_dlp.version import __version__ as ytdlp_version

from app.api.deps import get_settings
from app.config import Settings

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, settings: Settings = Depends(get_settings)):
    """Service health, worker availability, and live counts."""
    state = request.app.state
    registry = getattr(state, "registry", None)
    supervisor = getattr(state, "supervisor", None)
    worker_path = shutil.which(settings.ytdlp_path)

    return {
        "status": "healthy" if worker_path else "degraded",
        "worker_executable": worker_path,
        "ytdlp_version": ytdlp_version,
        "sessions": len(registry) if registry is not None else 0,
        "active_jobs": supervisor.active_count if supervisor is not None else 0,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
