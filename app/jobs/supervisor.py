"""Job supervisor: runs one worker per request and streams its events.

Each submitted request becomes a JobRun driven by its own asyncio task.
Runs never share a worker and are not queued or de-duplicated, so two
requests for the same URL start two processes. A run's events go to its
session in emission order, ending with exactly one ``error`` or
``complete`` event.
"""

import asyncio
import logging
from contextlib import aclosing
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set

from app.config import Settings, settings as default_settings
from app.jobs.diagnostics import GENERIC_FAILURE, classify_failure
from app.jobs.dispatcher import JobDispatcher
from app.jobs.events import CompleteEvent, ErrorEvent, ProgressEvent, ProgressUpdate, StatusEvent
from app.jobs.formats import build_format_selector
from app.jobs.models import JobMode, JobRequest, JobRun, JobState, JobValidationError
from app.jobs.worker import (
    WorkerAdapter,
    WorkerExit,
    WorkerStarted,
    build_worker_args,
    output_template_for,
)
from app.sessions.registry import SessionRegistry
from app.storage.artifacts import ArtifactStore, sanitize_filename

logger = logging.getLogger(__name__)

WorkerFactory = Callable[[Sequence[str], Sequence[str]], WorkerAdapter]

_PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp")


def admit_request(
    mode: JobMode,
    url: Optional[str],
    client_id: Optional[str],
    title: Optional[str] = None,
    video_selector: Optional[str] = None,
    audio_selector: Optional[str] = None,
) -> JobRequest:
    """Synchronous admission check. Raises JobValidationError on bad input."""
    url = (url or "").strip()
    client_id = (client_id or "").strip()
    video_selector = (video_selector or "").strip() or None
    audio_selector = (audio_selector or "").strip() or None

    if not url:
        raise JobValidationError("URL is required.")
    if mode is JobMode.MEDIA and not (video_selector or audio_selector):
        raise JobValidationError("URL and quality are required.")
    if not client_id:
        raise JobValidationError("clientId is required.")

    return JobRequest(
        session_id=client_id,
        url=url,
        mode=mode,
        video_selector=video_selector,
        audio_selector=audio_selector,
        title=(title or "").strip() or None,
    )


class JobSupervisor(JobDispatcher):
    """Starts and supervises download jobs, one asyncio task per run."""

    def __init__(
        self,
        registry: SessionRegistry,
        store: ArtifactStore,
        worker_factory: WorkerFactory = WorkerAdapter,
        settings: Settings = default_settings,
    ):
        self._registry = registry
        self._store = store
        self._worker_factory = worker_factory
        self._settings = settings
        self._command = [settings.ytdlp_path]
        self._runs: Dict[str, JobRun] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active_count(self) -> int:
        return sum(1 for run in self._runs.values() if not run.is_terminal)

    async def submit(self, request: JobRequest) -> str:
        run = JobRun(request=request)
        self._runs[run.id] = run
        task = asyncio.create_task(self._run(run), name=f"job-{run.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(
            "Job %s submitted for session %s (%s): %s",
            run.id, request.session_id, request.mode.value, request.url,
        )
        return run.id

    async def get_status(self, job_id: str) -> Optional[JobRun]:
        return self._runs.get(job_id)

    def list_runs(self) -> List[JobRun]:
        return sorted(self._runs.values(), key=lambda run: run.created_at)

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def wait_idle(self) -> None:
        """Wait until every submitted run has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def _extension_for(self, mode: JobMode) -> str:
        if mode is JobMode.AUDIO:
            return self._settings.audio_format
        return self._settings.merge_output_format

    async def _run(self, run: JobRun) -> None:
        request = run.request
        staged: Optional[Path] = None
        try:
            selector = build_format_selector(
                request.mode, request.video_selector, request.audio_selector
            )
            staged = self._store.stage(request.title, self._extension_for(request.mode))
            run.artifact_name = staged.name
            args = build_worker_args(
                request.url,
                selector,
                output_template_for(staged),
                request.mode,
                audio_format=self._settings.audio_format,
                merge_output_format=self._settings.merge_output_format,
            )
            worker = self._worker_factory(self._command, args)
            run.worker = worker
            await self._emit(run, StatusEvent(text="Starting download..."))

            async with aclosing(worker.events()) as events:
                async for event in events:
                    if isinstance(event, ErrorEvent):
                        await self._fail(run, event.message, staged)
                        break
                    if run.mark_running():
                        logger.info("Job %s running (worker pid %s)", run.id, getattr(worker, "pid", None))
                    if isinstance(event, WorkerStarted):
                        continue
                    if isinstance(event, WorkerExit):
                        if event.ok:
                            await self._succeed(run, staged)
                        else:
                            logger.warning(
                                "Job %s worker exited with code %s", run.id, event.returncode
                            )
                            await self._fail(run, classify_failure(event.diagnostics), staged)
                        break
                    if isinstance(event, ProgressUpdate):
                        run.progress_percent = event.percent
                        run.progress_message = event.text
                    elif isinstance(event, StatusEvent):
                        run.progress_message = event.text
                    await self._emit(run, event)
        except asyncio.CancelledError:
            if run.finish(JobState.FAILED):
                run.error = "Job cancelled at shutdown"
            raise
        except Exception:
            logger.exception("Job %s failed while assembling output", run.id)
            await self._fail(run, GENERIC_FAILURE, staged)
        finally:
            run.worker = None

        if not run.is_terminal:
            # Worker stream ended without a terminal event.
            await self._fail(run, GENERIC_FAILURE, staged)

    async def _emit(self, run: JobRun, event: ProgressEvent) -> None:
        await self._registry.send(run.request.session_id, event)

    async def _succeed(self, run: JobRun, staged: Path) -> None:
        output = self._locate_output(staged)
        if output is None:
            await self._fail(run, "Download finished but the output file was not found.", staged)
            return

        fallback = "audio" if run.request.mode is JobMode.AUDIO else "video"
        download_url = self._store.publish(output)
        filename = f"{sanitize_filename(run.request.title, fallback)}{output.suffix}"
        if not run.finish(JobState.SUCCEEDED):
            return

        run.artifact_name = output.name
        run.download_url = download_url
        run.filename = filename
        run.progress_percent = 100.0
        run.progress_message = "Download complete"
        self._store.schedule_reclaim(output, self._store.ttl_seconds)
        self._forget_later(run)
        logger.info("Job %s complete: %s", run.id, output.name)
        await self._emit(run, CompleteEvent(download_url=download_url, filename=filename))

    async def _fail(self, run: JobRun, message: str, staged: Optional[Path] = None) -> None:
        if not run.finish(JobState.FAILED):
            return
        run.error = message
        if staged is not None:
            self._discard_partials(staged)
        self._forget_later(run)
        logger.warning("Job %s failed: %s", run.id, message)
        await self._emit(run, ErrorEvent(message=message))

    def _forget_later(self, run: JobRun) -> None:
        loop = asyncio.get_running_loop()
        loop.call_later(self._store.ttl_seconds, self._runs.pop, run.id, None)

    @staticmethod
    def _matching_files(staged: Path) -> List[Path]:
        prefix = staged.stem + "."
        if not staged.parent.exists():
            return []
        return [p for p in staged.parent.iterdir() if p.is_file() and p.name.startswith(prefix)]

    def _locate_output(self, staged: Path) -> Optional[Path]:
        """Find the file the worker produced; the extension may differ."""
        if staged.is_file():
            return staged
        candidates = [
            p for p in self._matching_files(staged)
            if not p.name.endswith(_PARTIAL_SUFFIXES)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.stat().st_mtime)

    def _discard_partials(self, staged: Path) -> None:
        for path in self._matching_files(staged):
            self._store.reclaim(path)
