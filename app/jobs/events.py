"""Progress events streamed to a session while a job runs.

Every event knows how to render itself as the JSON message the browser
expects on the WebSocket channel.
"""

from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel


class StatusEvent(BaseModel):
    type: Literal["status"] = "status"
    text: str

    def to_message(self) -> Dict[str, Any]:
        return {"type": "status", "value": self.text}


class ProgressUpdate(BaseModel):
    """One parsed progress tick from the worker."""
    type: Literal["progress"] = "progress"
    percent: float
    size: Optional[str] = None
    rate: Optional[str] = None
    eta: Optional[str] = None

    @property
    def text(self) -> str:
        parts = [f"{self.percent:.1f}%"]
        if self.size:
            parts.append(f"of {self.size}")
        if self.rate:
            parts.append(f"at {self.rate}")
        if self.eta:
            parts.append(f"ETA {self.eta}")
        return " ".join(parts)

    def to_message(self) -> Dict[str, Any]:
        return {"type": "progress", "value": self.percent, "text": self.text}


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str

    def to_message(self) -> Dict[str, Any]:
        return {"type": "error", "value": self.message}


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    download_url: str
    filename: str

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": "complete",
            "downloadUrl": self.download_url,
            "filename": self.filename,
        }


ProgressEvent = Union[StatusEvent, ProgressUpdate, ErrorEvent, CompleteEvent]
