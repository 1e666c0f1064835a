"""Shared fixtures: in-memory channels and scripted workers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, List, Sequence

import pytest
from starlette.websockets import WebSocketState

from app.config import Settings
from app.jobs.events import ErrorEvent, ProgressUpdate, StatusEvent
from app.jobs.worker import WorkerExit, WorkerStarted
from app.sessions.registry import SessionRegistry
from app.storage.artifacts import ArtifactStore


# Force anyio to use asyncio
@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeChannel:
    """Stands in for a WebSocket: records every JSON frame sent to it."""

    def __init__(self) -> None:
        self.messages: List[dict] = []
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, data: Any) -> None:
        if self.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("WebSocket is not connected")
        self.messages.append(data)

    def close(self) -> None:
        self.application_state = WebSocketState.DISCONNECTED

    def of_type(self, kind: str) -> List[dict]:
        return [m for m in self.messages if m["type"] == kind]


class ScriptedWorker:
    """Worker double that replays a fixed event script.

    A successful WorkerExit writes the output file first, the way the real
    tool does before exiting.
    """

    def __init__(self, command: Sequence[str], args: Sequence[str], script: List[Any], extension: str) -> None:
        self.command = list(command)
        self.args = list(args)
        self.script = script
        self.extension = extension
        self.pid = 4242

    @property
    def output_path(self) -> Path:
        template = self.args[self.args.index("-o") + 1]
        return Path(template.replace("%(ext)s", self.extension))

    async def events(self):
        for event in self.script:
            if isinstance(event, WorkerExit) and event.ok:
                self.output_path.write_bytes(b"media")
            yield event


def success_script() -> List[Any]:
    return [
        WorkerStarted(pid=4242),
        StatusEvent(text="Downloading..."),
        ProgressUpdate(percent=10.0, size="10.00MiB", rate="1.00MiB/s", eta="00:09"),
        ProgressUpdate(percent=100.0, size="10.00MiB", rate="1.00MiB/s", eta="00:00"),
        WorkerExit(returncode=0, diagnostics=""),
    ]


def failure_script(diagnostics: str) -> List[Any]:
    return [
        WorkerStarted(pid=4242),
        ProgressUpdate(percent=3.0),
        WorkerExit(returncode=1, diagnostics=diagnostics),
    ]


def spawn_failure_script() -> List[Any]:
    return [ErrorEvent(message="Could not start the downloader: [Errno 2] No such file or directory")]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        download_dir=str(tmp_path / "downloads"),
        artifact_ttl_seconds=600,
        ytdlp_path="yt-dlp",
    )


@pytest.fixture
def store(settings: Settings) -> ArtifactStore:
    return ArtifactStore(settings.download_dir, url_prefix=settings.downloads_url_prefix, ttl_seconds=settings.artifact_ttl_seconds)


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def worker_factory() -> Callable[..., Any]:
    """Build a factory whose workers replay ``script``; created workers are kept on ``.created``."""

    def make(script_fn: Callable[[], List[Any]] = success_script):
        created: List[ScriptedWorker] = []

        def factory(command: Sequence[str], args: Sequence[str]) -> ScriptedWorker:
            extension = "mp3" if "-x" in args else "mp4"
            worker = ScriptedWorker(command, args, script_fn(), extension)
            created.append(worker)
            return worker

        factory.created = created  # type: ignore[attr-defined]
        return factory

    return make
