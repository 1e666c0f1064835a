"""Format listing endpoint used by the page before a download is requested."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.api.deps import get_settings
from app.config import Settings
from app.probe.formats import ProbeError, probe_formats_async

logger = logging.getLogger(__name__)

router = APIRouter()


class FormatsRequest(BaseModel):
    url: Optional[str] = None


@router.post("/formats")
async def list_formats(
    request: FormatsRequest,
    settings: Settings = Depends(get_settings),
):
    url = (request.url or "").strip()
    if not url:
        return JSONResponse(status_code=400, content={"success": False, "error": "URL is required."})

    logger.info("Fetching formats for %s", url)
    try:
        info = await probe_formats_async(url, timeout=settings.probe_timeout_seconds)
    except ProbeError as exc:
        logger.warning("Format fetch failed for %s: %s", url, exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to fetch video formats."},
        )

    return {"success": True, **info}
