"""Dispatcher: validates and rate-limits submissions, stores jobs and spawns generation."""

import asyncio
import logging
import re
from typing import Callable, Dict, Optional

from wizard_backend.config import DEMO_GENERATION_TIMEOUT, REMOTE_GENERATION_TIMEOUT
from wizard_backend.database import SessionLocal
from wizard_backend.errors import USER_FRIENDLY_MESSAGES, ErrorCode, VideoGenerationError
from wizard_backend.job_store import JobStore
from wizard_backend.prompts import generate_detailed_prompt, generate_normalized_prompt
from wizard_backend.rate_limiter import get_rate_limiter
from wizard_backend.schemas import JobSubmission
from wizard_backend.services import select_generation_backend
from wizard_backend.tasks import process_video_job
from wizard_backend.validator import validate_submission

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)

# Module-level singleton
_dispatcher: Optional["JobDispatcher"] = None


def get_dispatcher() -> "JobDispatcher":
    """Get (or create) the singleton JobDispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = JobDispatcher(JobStore(SessionLocal), get_rate_limiter())
    return _dispatcher


def is_valid_job_id(job_id: str) -> bool:
    return bool(UUID_RE.match(job_id))


class JobDispatcher:
    """Turns submissions into stored jobs and runs each one in a detached task."""

    def __init__(
        self,
        store: JobStore,
        rate_limiter,
        backend_factory: Optional[Callable[[], object]] = None,
        demo_timeout: float = DEMO_GENERATION_TIMEOUT,
        remote_timeout: float = REMOTE_GENERATION_TIMEOUT,
    ):
        self.store = store
        self.rate_limiter = rate_limiter
        self.backend_factory = backend_factory or (lambda: select_generation_backend(store))
        self.demo_timeout = demo_timeout
        self.remote_timeout = remote_timeout
        self._tasks: Dict[str, asyncio.Task] = {}

    async def submit(self, raw_payload) -> dict:
        """Validate, rate-limit, persist and spawn. Returns before generation finishes."""
        validation = validate_submission(raw_payload)
        if not validation.valid:
            logging.error(f"Validation failed: {validation.errors}")
            code = validation.error_code or ErrorCode.VALIDATION_ERROR
            raise VideoGenerationError(
                code,
                ", ".join(validation.errors),
                status_code=400,
                user_message=validation.errors[0] if validation.errors else USER_FRIENDLY_MESSAGES[code],
                errors=validation.errors,
            )

        payload = validation.payload
        decision = self.rate_limiter.check(payload.session_id)
        if not decision.allowed:
            logging.warning(f"🚦 Rate limit exceeded for session {payload.session_id}")
            raise VideoGenerationError(
                ErrorCode.RATE_LIMIT,
                f"Rate limit exceeded for session {payload.session_id}",
                status_code=429,
                retryable=True,
                retry_after_seconds=decision.retry_after_seconds,
            )

        normalized_prompt = generate_normalized_prompt(payload)
        logging.info(f"📝 Normalized prompt ({len(normalized_prompt)} chars): {normalized_prompt}")

        backend = self.backend_factory()
        try:
            job = self.store.create_job(payload, generate_detailed_prompt(payload), is_demo=backend.is_demo)
        except Exception as e:
            logging.error(f"Error creating job: {e}")
            raise VideoGenerationError(ErrorCode.INTERNAL_ERROR, f"Database insert error: {e}") from e

        self._spawn(job["id"], payload, backend)
        logging.info(f"✨ Job {job['id']} submitted ({backend.kind})")

        return {
            "success": True,
            "jobId": job["id"],
            "isDemo": backend.is_demo,
            "message": "Demo mode - no API key configured" if backend.is_demo else "AI generation started",
            "normalizedPrompt": normalized_prompt,
        }

    def lookup(self, job_id: Optional[str]) -> dict:
        """Current projection of a job, or a categorized error."""
        if not job_id:
            raise VideoGenerationError(
                ErrorCode.VALIDATION_ERROR, "jobId parameter is required", status_code=400,
                user_message="A video ID is required.",
            )
        if not is_valid_job_id(job_id):
            raise VideoGenerationError(ErrorCode.INVALID_JOB_ID, f"Invalid UUID format: {job_id}", status_code=400)

        try:
            job = self.store.get_job(job_id)
        except Exception as e:
            logging.error(f"Error fetching job {job_id}: {e}")
            raise VideoGenerationError(ErrorCode.INTERNAL_ERROR, f"Database fetch error: {e}") from e

        if job is None:
            raise VideoGenerationError(ErrorCode.JOB_NOT_FOUND, f"Job not found: {job_id}", status_code=404)
        return job

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    async def drain(self):
        """Wait for every running generation task."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self):
        for task in list(self._tasks.values()):
            task.cancel()
        await self.drain()

    # ── Internal ──────────────────────────────────────────────────────────

    def _timeout_for(self, backend) -> float:
        return self.demo_timeout if backend.kind == "demo" else self.remote_timeout

    def _spawn(self, job_id: str, payload: JobSubmission, backend):
        if self.is_running(job_id):
            raise VideoGenerationError(ErrorCode.INTERNAL_ERROR, f"Job {job_id} already has a running task")

        task = asyncio.create_task(
            process_video_job(self.store, job_id, payload, backend, self._timeout_for(backend)),
            name=f"video-job-{job_id}",
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(job_id, None))
