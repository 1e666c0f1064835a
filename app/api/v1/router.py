"""Aggregate all API routers."""

from fastapi import APIRouter
from app.api.v1.health import router as health_router
from app.api.v1.jobs import router as jobs_router
from app.api.v1.downloads import router as downloads_router
from app.api.v1.formats import router as formats_router
from app.api.v1.sessions import router as sessions_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(jobs_router, tags=["jobs"])

# Paths the page calls directly: /formats, /download, /download-audio, /ws
browser_router = APIRouter()
browser_router.include_router(formats_router, tags=["formats"])
browser_router.include_router(downloads_router, tags=["downloads"])
browser_router.include_router(sessions_router, tags=["sessions"])
