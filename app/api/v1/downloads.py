"""Browser-facing download submission endpoints.

  POST /download        video+audio job, merged into one file
  POST /download-audio  audio-only job, transcoded

Both only admit the job and answer ``{"success": true}`` right away.
Progress and the final download link arrive later on the session's
WebSocket, never in this response.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import get_supervisor
from app.jobs.models import JobMode, JobValidationError
from app.jobs.supervisor import JobSupervisor, admit_request

router = APIRouter()


class DownloadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = None
    video_quality: Optional[str] = Field(default=None, alias="videoQuality")
    audio_quality: Optional[str] = Field(default=None, alias="audioQuality")
    # Single pre-muxed format id, as sent by older page versions
    quality: Optional[str] = None
    title: Optional[str] = None
    client_id: Optional[str] = Field(default=None, alias="clientId")


class AudioDownloadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = None
    title: Optional[str] = None
    client_id: Optional[str] = Field(default=None, alias="clientId")


def _rejected(error: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": error})


@router.post("/download")
async def download_media(
    request: DownloadRequest,
    supervisor: JobSupervisor = Depends(get_supervisor),
):
    """Start a merged video+audio download for a session."""
    try:
        job_request = admit_request(
            JobMode.MEDIA,
            url=request.url,
            client_id=request.client_id,
            title=request.title,
            video_selector=request.video_quality or request.quality,
            audio_selector=request.audio_quality,
        )
    except JobValidationError as exc:
        return _rejected(str(exc))

    await supervisor.submit(job_request)
    return {"success": True}


@router.post("/download-audio")
async def download_audio(
    request: AudioDownloadRequest,
    supervisor: JobSupervisor = Depends(get_supervisor),
):
    """Start an audio-only (transcoded) download for a session."""
    try:
        job_request = admit_request(
            JobMode.AUDIO,
            url=request.url,
            client_id=request.client_id,
            title=request.title,
        )
    except JobValidationError as exc:
        return _rejected(str(exc))

    await supervisor.submit(job_request)
    return {"success": True}
