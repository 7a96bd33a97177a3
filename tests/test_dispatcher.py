# tests/test_dispatcher.py

import asyncio
import threading

import pytest

from wizard_backend.dispatcher import JobDispatcher, is_valid_job_id
from wizard_backend.errors import USER_FRIENDLY_MESSAGES, ErrorCode, VideoGenerationError
from wizard_backend.job_store import COMPLETED, FAILED, JobStore
from wizard_backend.models import Job
from wizard_backend.rate_limiter import InMemoryRateLimiter
from wizard_backend.schemas import GenerationResult
from wizard_backend.services import DemoVideoService


class HangingBackend:
    kind = "demo"
    is_demo = True

    async def generate(self, job_id, payload, on_progress):
        await on_progress(5)
        await asyncio.sleep(3600)


class ExplodingBackend:
    kind = "remote"
    is_demo = False

    async def generate(self, job_id, payload, on_progress):
        raise RuntimeError("upstream said: token r8_secret rejected at node-17")


class EmptyUrlBackend:
    kind = "remote"
    is_demo = False

    async def generate(self, job_id, payload, on_progress):
        return GenerationResult(video_url="", is_demo=False)


def _dispatcher(store, backend, **kwargs):
    return JobDispatcher(store, InMemoryRateLimiter(), backend_factory=lambda: backend, **kwargs)


def _row_count(session_factory):
    db = session_factory()
    try:
        return db.query(Job).count()
    finally:
        db.close()


def test_submit_returns_immediately_and_job_completes(store, valid_body):
    dispatcher = _dispatcher(store, DemoVideoService(delay_scale=0))

    async def run():
        response = await dispatcher.submit(valid_body)
        assert dispatcher.is_running(response["jobId"])
        await dispatcher.drain()
        return response

    response = asyncio.run(run())

    assert response["success"] is True
    assert response["isDemo"] is True
    assert response["message"] == "Demo mode - no API key configured"
    assert len(response["normalizedPrompt"]) <= 500

    job = store.get_job(response["jobId"])
    assert job["status"] == COMPLETED
    assert job["progress"] == 100
    assert job["video_url"]
    assert not dispatcher.is_running(response["jobId"])


def test_invalid_submission_creates_no_row(store, session_factory, valid_body):
    """
    Scenario: a prompt under ten characters is refused before anything is stored.
    """
    dispatcher = _dispatcher(store, DemoVideoService(delay_scale=0))

    with pytest.raises(VideoGenerationError) as exc_info:
        asyncio.run(dispatcher.submit(dict(valid_body, userPrompt="too short")))

    error = exc_info.value
    assert error.code == ErrorCode.INVALID_PROMPT
    assert error.status_code == 400
    assert error.user_message == "userPrompt: the description needs at least 10 characters"
    assert _row_count(session_factory) == 0


def test_sixth_submission_in_a_window_is_rate_limited(store, session_factory, valid_body):
    dispatcher = _dispatcher(store, DemoVideoService(delay_scale=0))
    body = dict(valid_body, sessionId="s2")

    async def run():
        for _ in range(5):
            await dispatcher.submit(body)
        try:
            await dispatcher.submit(body)
        finally:
            await dispatcher.drain()

    with pytest.raises(VideoGenerationError) as exc_info:
        asyncio.run(run())

    error = exc_info.value
    assert error.code == ErrorCode.RATE_LIMIT
    assert error.status_code == 429
    assert 1 <= error.retry_after_seconds <= 60
    assert _row_count(session_factory) == 5


def test_hanging_backend_times_out(store, valid_body):
    """
    Scenario: a backend that never finishes is failed with a retryable timeout message.
    """
    dispatcher = _dispatcher(store, HangingBackend(), demo_timeout=0.5)

    async def run():
        response = await dispatcher.submit(valid_body)
        await dispatcher.drain()
        return response["jobId"]

    job = store.get_job(asyncio.run(run()))

    assert job["status"] == FAILED
    assert job["error_message"] == USER_FRIENDLY_MESSAGES[ErrorCode.API_TIMEOUT]
    assert job["progress"] == 5
    assert job["video_url"] is None


def test_backend_failure_is_sanitized(store, valid_body):
    dispatcher = _dispatcher(store, ExplodingBackend())

    async def run():
        response = await dispatcher.submit(valid_body)
        await dispatcher.drain()
        return response

    response = asyncio.run(run())
    job = store.get_job(response["jobId"])

    assert response["isDemo"] is False
    assert response["message"] == "AI generation started"
    assert job["status"] == FAILED
    assert job["error_message"] == USER_FRIENDLY_MESSAGES[ErrorCode.INTERNAL_ERROR]
    assert "r8_secret" not in job["error_message"]


def test_empty_video_url_is_a_failure(store, valid_body):
    dispatcher = _dispatcher(store, EmptyUrlBackend())

    async def run():
        response = await dispatcher.submit(valid_body)
        await dispatcher.drain()
        return response["jobId"]

    job = store.get_job(asyncio.run(run()))

    assert job["status"] == FAILED
    assert job["error_message"] == USER_FRIENDLY_MESSAGES[ErrorCode.API_FAILURE]


def test_shutdown_fails_running_jobs(store, valid_body):
    dispatcher = _dispatcher(store, HangingBackend())

    async def run():
        response = await dispatcher.submit(valid_body)
        await asyncio.sleep(0.2)
        await dispatcher.shutdown()
        return response["jobId"]

    job = store.get_job(asyncio.run(run()))

    assert job["status"] == FAILED


def test_lookup_errors(store):
    dispatcher = _dispatcher(store, DemoVideoService(delay_scale=0))

    cases = [
        (None, ErrorCode.VALIDATION_ERROR, 400),
        ("not-a-uuid", ErrorCode.INVALID_JOB_ID, 400),
        ("7c9e6679-7425-40de-944b-e07fc1f90ae7", ErrorCode.JOB_NOT_FOUND, 404),
    ]
    for job_id, code, status_code in cases:
        with pytest.raises(VideoGenerationError) as exc_info:
            dispatcher.lookup(job_id)
        assert exc_info.value.code == code
        assert exc_info.value.status_code == status_code


def test_job_id_format():
    assert is_valid_job_id("7c9e6679-7425-40de-944b-e07fc1f90ae7")
    assert is_valid_job_id("7C9E6679-7425-40DE-944B-E07FC1F90AE7")
    assert not is_valid_job_id("7c9e6679-7425-60de-944b-e07fc1f90ae7")
    assert not is_valid_job_id("7c9e6679742540de944be07fc1f90ae7")


class ThreadRecordingStore(JobStore):
    """Remembers which thread performed each write made by the background task."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.write_threads = []

    def mark_processing(self, job_id):
        self.write_threads.append(threading.get_ident())
        return super().mark_processing(job_id)

    def update_progress(self, job_id, progress):
        self.write_threads.append(threading.get_ident())
        return super().update_progress(job_id, progress)

    def mark_completed(self, job_id, video_url, thumbnail_url):
        self.write_threads.append(threading.get_ident())
        return super().mark_completed(job_id, video_url, thumbnail_url)


def test_background_writes_run_off_the_event_loop(session_factory, valid_body):
    store = ThreadRecordingStore(session_factory)
    dispatcher = _dispatcher(store, DemoVideoService(delay_scale=0))

    async def run():
        response = await dispatcher.submit(valid_body)
        await dispatcher.drain()
        return threading.get_ident(), response["jobId"]

    loop_thread, job_id = asyncio.run(run())

    assert store.get_job(job_id)["status"] == COMPLETED
    assert len(store.write_threads) == 10
    assert loop_thread not in store.write_threads
