import asyncio

import pytest

from app.jobs.diagnostics import GENERIC_FAILURE
from app.jobs.events import StatusEvent
from app.jobs.models import JobMode, JobState, JobValidationError
from app.jobs.supervisor import JobSupervisor, admit_request
from app.jobs.worker import WorkerExit, WorkerStarted

from conftest import FakeChannel, failure_script, spawn_failure_script, success_script

pytestmark = pytest.mark.anyio


def _terminal(channel: FakeChannel):
    return [m for m in channel.messages if m["type"] in ("complete", "error")]


async def _session(registry):
    channel = FakeChannel()
    session_id = await registry.register(channel)
    return session_id, channel


def _media_request(session_id, title="My Clip"):
    return admit_request(
        JobMode.MEDIA,
        url="https://x",
        client_id=session_id,
        title=title,
        video_selector="137",
        audio_selector="140",
    )


class TestAdmission:
    def test_media_request_requires_url(self):
        with pytest.raises(JobValidationError, match="URL"):
            admit_request(JobMode.MEDIA, url="", client_id="abc", video_selector="18")

    def test_media_request_requires_a_selector(self):
        with pytest.raises(JobValidationError, match="quality"):
            admit_request(JobMode.MEDIA, url="https://x", client_id="abc")

    def test_request_requires_client_id(self):
        with pytest.raises(JobValidationError, match="clientId"):
            admit_request(JobMode.AUDIO, url="https://x", client_id=None)

    def test_audio_request_needs_no_selector(self):
        request = admit_request(JobMode.AUDIO, url=" https://x ", client_id="abc", title="  ")
        assert request.url == "https://x"
        assert request.title is None
        assert request.mode is JobMode.AUDIO


async def test_successful_job_emits_single_complete(registry, store, settings, worker_factory):
    factory = worker_factory(success_script)
    supervisor = JobSupervisor(registry, store, worker_factory=factory, settings=settings)
    session_id, channel = await _session(registry)

    job_id = await supervisor.submit(_media_request(session_id))
    await supervisor.wait_idle()

    types = [m["type"] for m in channel.messages]
    assert types[0] == "clientId"
    assert types[-1] == "complete"
    assert types.count("complete") == 1
    assert "error" not in types
    assert [m["value"] for m in channel.of_type("progress")] == [10.0, 100.0]

    complete = channel.messages[-1]
    assert complete["filename"] == "My Clip.mp4"
    assert complete["downloadUrl"].startswith("/downloads/My%20Clip-")

    worker = factory.created[0]
    assert worker.args[worker.args.index("-f") + 1] == "137+140"
    assert worker.output_path.exists()

    run = await supervisor.get_status(job_id)
    assert run.state is JobState.SUCCEEDED
    assert run.started_at is not None
    assert run.worker is None
    await store.close()


async def test_audio_job_uses_wildcard_and_audio_filename(registry, store, settings, worker_factory):
    factory = worker_factory(success_script)
    supervisor = JobSupervisor(registry, store, worker_factory=factory, settings=settings)
    session_id, channel = await _session(registry)

    await supervisor.submit(admit_request(JobMode.AUDIO, url="https://x", client_id=session_id))
    await supervisor.wait_idle()

    args = factory.created[0].args
    assert args[args.index("-f") + 1] == "bestaudio/best"
    assert channel.messages[-1]["filename"] == "audio.mp3"
    await store.close()


async def test_untitled_media_job_falls_back_to_generic_name(registry, store, settings, worker_factory):
    supervisor = JobSupervisor(registry, store, worker_factory=worker_factory(success_script), settings=settings)
    session_id, channel = await _session(registry)

    await supervisor.submit(_media_request(session_id, title=None))
    await supervisor.wait_idle()

    assert channel.messages[-1]["filename"] == "video.mp4"
    await store.close()


async def test_success_schedules_reclaim(registry, store, settings, worker_factory, monkeypatch):
    scheduled = []
    monkeypatch.setattr(store, "schedule_reclaim", lambda path, delay=None: scheduled.append((path, delay)))
    factory = worker_factory(success_script)
    supervisor = JobSupervisor(registry, store, worker_factory=factory, settings=settings)
    session_id, _ = await _session(registry)

    await supervisor.submit(_media_request(session_id))
    await supervisor.wait_idle()

    assert scheduled == [(factory.created[0].output_path, 600)]


async def test_nonzero_exit_emits_classified_error(registry, store, settings, worker_factory):
    factory = worker_factory(lambda: failure_script("ERROR: HTTP Error 403: Forbidden"))
    supervisor = JobSupervisor(registry, store, worker_factory=factory, settings=settings)
    session_id, channel = await _session(registry)

    job_id = await supervisor.submit(_media_request(session_id))
    await supervisor.wait_idle()

    terminal = _terminal(channel)
    assert len(terminal) == 1
    assert terminal[0]["type"] == "error"
    assert "HTTP 403" in terminal[0]["value"]
    assert channel.messages[-1] is terminal[0]
    assert (await supervisor.get_status(job_id)).state is JobState.FAILED


async def test_spawn_failure_emits_single_error(registry, store, settings, worker_factory):
    supervisor = JobSupervisor(registry, store, worker_factory=worker_factory(spawn_failure_script), settings=settings)
    session_id, channel = await _session(registry)

    job_id = await supervisor.submit(_media_request(session_id))
    await supervisor.wait_idle()

    terminal = _terminal(channel)
    assert [m["type"] for m in terminal] == ["error"]
    run = await supervisor.get_status(job_id)
    assert run.state is JobState.FAILED
    assert run.started_at is None


async def test_repeated_exit_signals_yield_one_terminal_event(registry, store, settings, worker_factory):
    def noisy_script():
        return success_script() + [WorkerExit(returncode=1, diagnostics="late"), WorkerExit(returncode=0, diagnostics="")]

    supervisor = JobSupervisor(registry, store, worker_factory=worker_factory(noisy_script), settings=settings)
    session_id, channel = await _session(registry)

    await supervisor.submit(_media_request(session_id))
    await supervisor.wait_idle()

    assert [m["type"] for m in _terminal(channel)] == ["complete"]
    await store.close()


async def test_missing_output_file_fails_job(registry, store, settings):
    class NoOutputWorker:
        pid = 1

        def __init__(self, command, args):
            pass

        async def events(self):
            yield StatusEvent(text="Downloading...")
            yield WorkerExit(returncode=0, diagnostics="")

    supervisor = JobSupervisor(registry, store, worker_factory=NoOutputWorker, settings=settings)
    session_id, channel = await _session(registry)

    await supervisor.submit(_media_request(session_id))
    await supervisor.wait_idle()

    assert _terminal(channel) == [
        {"type": "error", "value": "Download finished but the output file was not found."}
    ]


async def test_worker_stream_without_terminal_event_fails(registry, store, settings, worker_factory):
    supervisor = JobSupervisor(
        registry, store, worker_factory=worker_factory(lambda: [StatusEvent(text="Downloading...")]),
        settings=settings,
    )
    session_id, channel = await _session(registry)

    await supervisor.submit(_media_request(session_id))
    await supervisor.wait_idle()

    assert [m["type"] for m in _terminal(channel)] == ["error"]


async def test_internal_exception_emits_single_error(registry, store, settings):
    def exploding_factory(command, args):
        raise RuntimeError("boom")

    supervisor = JobSupervisor(registry, store, worker_factory=exploding_factory, settings=settings)
    session_id, channel = await _session(registry)

    job_id = await supervisor.submit(_media_request(session_id))
    await supervisor.wait_idle()

    assert _terminal(channel) == [{"type": "error", "value": GENERIC_FAILURE}]
    assert (await supervisor.get_status(job_id)).error == GENERIC_FAILURE


async def test_disconnected_session_still_reaches_terminal_state(registry, store, settings, worker_factory):
    supervisor = JobSupervisor(registry, store, worker_factory=worker_factory(success_script), settings=settings)
    session_id, channel = await _session(registry)
    request = _media_request(session_id)
    channel.close()
    registry.unregister(session_id)

    job_id = await supervisor.submit(request)
    await asyncio.wait_for(supervisor.wait_idle(), timeout=5)

    run = await supervisor.get_status(job_id)
    assert run.state is JobState.SUCCEEDED
    assert len(channel.messages) == 1  # only the clientId handshake
    await store.close()


async def test_concurrent_jobs_from_one_session_run_independently(registry, store, settings, worker_factory):
    factory = worker_factory(success_script)
    supervisor = JobSupervisor(registry, store, worker_factory=factory, settings=settings)
    session_id, channel = await _session(registry)

    ids = [await supervisor.submit(_media_request(session_id)) for _ in range(3)]
    await supervisor.wait_idle()

    assert len(set(ids)) == 3
    assert len(factory.created) == 3
    assert len({w.output_path for w in factory.created}) == 3
    assert len(channel.of_type("complete")) == 3
    assert supervisor.active_count == 0
    assert len(supervisor.list_runs()) == 3
    await store.close()


async def test_stop_cancels_in_flight_jobs(registry, store, settings):
    class HangingWorker:
        pid = 1

        def __init__(self, command, args):
            pass

        async def events(self):
            yield StatusEvent(text="Downloading...")
            await asyncio.sleep(3600)
            yield WorkerExit(returncode=0, diagnostics="")

    supervisor = JobSupervisor(registry, store, worker_factory=HangingWorker, settings=settings)
    session_id, _ = await _session(registry)
    job_id = await supervisor.submit(_media_request(session_id))
    await asyncio.sleep(0.05)

    await asyncio.wait_for(supervisor.stop(), timeout=5)

    run = await supervisor.get_status(job_id)
    assert run.state is JobState.FAILED


async def test_job_is_running_once_worker_starts_even_without_output(registry, store, settings):
    class SilentWorker:
        pid = 7

        def __init__(self, command, args):
            pass

        async def events(self):
            yield WorkerStarted(pid=self.pid)
            await asyncio.sleep(3600)
            yield WorkerExit(returncode=0, diagnostics="")

    supervisor = JobSupervisor(registry, store, worker_factory=SilentWorker, settings=settings)
    session_id, channel = await _session(registry)
    job_id = await supervisor.submit(_media_request(session_id))
    await asyncio.sleep(0.05)

    run = await supervisor.get_status(job_id)
    assert run.state is JobState.RUNNING
    assert run.started_at is not None
    assert [m["type"] for m in channel.messages] == ["clientId", "status"]

    await asyncio.wait_for(supervisor.stop(), timeout=5)
