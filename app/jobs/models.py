"""Job request and job run data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobMode(str, Enum):
    MEDIA = "media"  # video + audio, merged
    AUDIO = "audio"  # audio only, transcoded


class JobState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobValidationError(ValueError):
    """Raised when a job request is missing required fields."""


class JobRequest(BaseModel):
    """An admitted download request. Immutable once submitted."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    url: str
    mode: JobMode = JobMode.MEDIA
    video_selector: Optional[str] = None
    audio_selector: Optional[str] = None
    title: Optional[str] = None


class JobRun(BaseModel):
    """Tracks the lifecycle of one worker execution for one request."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    request: JobRequest
    artifact_name: Optional[str] = None
    state: JobState = JobState.CREATED
    progress_percent: float = 0.0
    progress_message: str = ""
    download_url: Optional[str] = None
    filename: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    worker: Optional[Any] = Field(default=None, exclude=True)

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.SUCCEEDED, JobState.FAILED)

    def mark_running(self) -> bool:
        if self.state is not JobState.CREATED:
            return False
        self.state = JobState.RUNNING
        self.started_at = _utcnow()
        return True

    def finish(self, state: JobState) -> bool:
        """Move to a terminal state. Returns False if already terminal."""
        if self.is_terminal:
            return False
        self.state = state
        self.completed_at = _utcnow()
        return True

    def snapshot(self) -> Dict[str, Any]:
        return {
            "job_id": self.id,
            "client_id": self.request.session_id,
            "mode": self.request.mode.value,
            "url": self.request.url,
            "title": self.request.title,
            "state": self.state.value,
            "progress": {
                "percent": self.progress_percent,
                "message": self.progress_message,
            },
            "download_url": self.download_url,
            "filename": self.filename,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
