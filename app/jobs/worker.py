"""yt-dlp worker adapter.

Runs one yt-dlp process and turns its output into a finite, ordered stream
of normalized events:

    WorkerStarted                     once the process is spawned
    StatusEvent / ProgressUpdate ...  then exactly one of
    ErrorEvent  (the process could not be started)
    WorkerExit  (the process ran and exited)

stdout carries the progress template and stage markers; stderr is captured
verbatim in the background so a failed run can be classified afterwards.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence, Union

from app.jobs.events import ErrorEvent, ProgressUpdate, StatusEvent
from app.jobs.models import JobMode

logger = logging.getLogger(__name__)

PROGRESS_MARKER = "[progress]"
PROGRESS_TEMPLATE = (
    "download:" + PROGRESS_MARKER + " "
    "%(progress._percent_str)s|%(progress._total_bytes_str)s|"
    "%(progress._speed_str)s|%(progress._eta_str)s"
)

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")
# Default "[download]  42.0% of ~ 10.00MiB at 1.00MiB/s ETA 00:05" lines.
_DOWNLOAD_LINE_RE = re.compile(
    r"\[download\]\s+(?P<percent>\d+(?:\.\d+)?)%"
    r"(?:\s+of\s+~?\s*(?P<size>\S+))?"
    r"(?:\s+at\s+(?P<rate>\S+))?"
    r"(?:\s+ETA\s+(?P<eta>\S+))?"
)

_STAGE_MARKERS = (
    ("[download] Destination:", "Downloading..."),
    ("[Merger]", "Merging video and audio..."),
    ("[ExtractAudio]", "Converting audio..."),
    ("[FixupM3u8]", "Fixing up container..."),
)


@dataclass
class WorkerStarted:
    """The process was spawned. Carries no data for the browser."""
    pid: Optional[int]


@dataclass
class WorkerExit:
    """Terminal event: the process exited with ``returncode``."""
    returncode: int
    diagnostics: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


WorkerEvent = Union[WorkerStarted, StatusEvent, ProgressUpdate, ErrorEvent, WorkerExit]


def _clean(value: str) -> Optional[str]:
    value = value.strip()
    if not value or value in ("N/A", "NA", "Unknown"):
        return None
    return value


def parse_progress_line(line: str) -> Optional[ProgressUpdate]:
    """Parse a progress template line or a plain ``[download]`` line."""
    line = _ANSI_RE.sub("", line).strip()

    if line.startswith(PROGRESS_MARKER):
        fields = line[len(PROGRESS_MARKER):].split("|")
        fields += [""] * (4 - len(fields))
        percent_str = (_clean(fields[0]) or "").rstrip("%")
        try:
            percent = float(percent_str)
        except ValueError:
            return None
        return ProgressUpdate(
            percent=max(0.0, min(100.0, percent)),
            size=_clean(fields[1]),
            rate=_clean(fields[2]),
            eta=_clean(fields[3]),
        )

    match = _DOWNLOAD_LINE_RE.search(line)
    if match is None:
        return None
    return ProgressUpdate(
        percent=max(0.0, min(100.0, float(match.group("percent")))),
        size=match.group("size"),
        rate=match.group("rate"),
        eta=match.group("eta"),
    )


def parse_status_line(line: str) -> Optional[StatusEvent]:
    line = _ANSI_RE.sub("", line).strip()
    for marker, text in _STAGE_MARKERS:
        if line.startswith(marker):
            return StatusEvent(text=text)
    return None


def build_worker_args(
    url: str,
    selector: str,
    output_template: str,
    mode: JobMode,
    audio_format: str = "mp3",
    merge_output_format: str = "mp4",
) -> List[str]:
    """Build the yt-dlp argument list (without the executable)."""
    args = [url, "-f", selector]
    if mode is JobMode.AUDIO:
        args += ["-x", "--audio-format", audio_format, "--audio-quality", "0"]
    else:
        args += ["--merge-output-format", merge_output_format]
    args += [
        "--newline",
        "--no-playlist",
        "--no-colors",
        "--progress-template", PROGRESS_TEMPLATE,
        "-o", output_template,
    ]
    return args


class WorkerAdapter:
    """One invocation of the external download tool.

    ``events()`` may be iterated once. The adapter never retries; if the
    consumer stops iterating early the process is killed.
    """

    def __init__(self, command: Sequence[str], args: Sequence[str]):
        self._command = list(command)
        self._args = list(args)
        self._process: Optional[asyncio.subprocess.Process] = None
        self._consumed = False

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def argv(self) -> List[str]:
        return self._command + self._args

    async def events(self) -> AsyncIterator[WorkerEvent]:
        if self._consumed:
            raise RuntimeError("Worker event stream can only be consumed once")
        self._consumed = True

        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.warning("Failed to start worker %s: %s", self._command, exc)
            yield ErrorEvent(message=f"Could not start the downloader: {exc}")
            return

        process = self._process
        stderr_task = asyncio.create_task(self._read_stream(process.stderr))
        try:
            yield WorkerStarted(pid=process.pid)
            assert process.stdout is not None
            async for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if not line:
                    continue
                event = parse_progress_line(line) or parse_status_line(line)
                if event is not None:
                    yield event

            diagnostics = await stderr_task
            returncode = await process.wait()
            yield WorkerExit(returncode=returncode, diagnostics=diagnostics)
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()
            if not stderr_task.done():
                stderr_task.cancel()

    @staticmethod
    async def _read_stream(stream: Optional[asyncio.StreamReader]) -> str:
        if stream is None:
            return ""
        data = await stream.read()
        return data.decode("utf-8", errors="replace")


def output_template_for(path: Path) -> str:
    """yt-dlp output template that keeps ``path``'s stem and picks the extension."""
    return str(path.with_suffix(".%(ext)s"))
