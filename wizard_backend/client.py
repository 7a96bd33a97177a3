"""
Client-side job monitor.

JobMonitor submits a wizard configuration and then keeps one ClientJobView
current from two sources at once: a status poll on a fixed interval and the
server-sent event stream for the same job. Whichever arrives last wins.
Both stop as soon as the job reaches a terminal status or the monitor is reset.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Optional

import httpx

from wizard_backend.config import API_PREFIX
from wizard_backend.job_store import PENDING, TERMINAL_STATUSES
from wizard_backend.prompts import generate_normalized_prompt
from wizard_backend.schemas import ErrorResponse, JobSubmission, WizardConfig

DEFAULT_POLL_INTERVAL = 1.5


@dataclass
class ClientJobView:
    id: str
    status: str
    progress: int = 0
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_payload(cls, data: dict) -> "ClientJobView":
        return cls(
            id=data["id"],
            status=data["status"],
            progress=data.get("progress") or 0,
            video_url=data.get("video_url"),
            thumbnail_url=data.get("thumbnail_url"),
            error_message=data.get("error_message"),
        )


class JobSubmissionError(Exception):
    """The backend refused a request; ``message`` is safe to show to the user."""

    def __init__(self, code: str, message: str, status_code: int,
                 retry_after_seconds: Optional[int] = None, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.retry_after_seconds = retry_after_seconds
        self.errors = errors or []


class GenerationApiClient:
    """Thin async wrapper over the action-routed generation endpoint."""

    def __init__(self, http: httpx.AsyncClient, endpoint: str = API_PREFIX):
        self.http = http
        self.endpoint = endpoint

    @staticmethod
    def _raise_for_error(response: httpx.Response):
        if response.is_success:
            return
        try:
            detail = ErrorResponse.model_validate(response.json()).error
        except ValueError:
            response.raise_for_status()
            raise
        retry_after = detail.retryAfterSeconds
        if retry_after is None and response.headers.get("Retry-After"):
            retry_after = int(response.headers["Retry-After"])
        raise JobSubmissionError(detail.code, detail.message, response.status_code, retry_after, detail.errors)

    async def submit_job(self, session_id: str, config: WizardConfig) -> dict:
        body = {
            "sessionId": session_id,
            "videoType": config.video_type,
            "style": config.style,
            "duration": config.duration,
            "format": config.format,
            "userPrompt": config.prompt,
        }
        response = await self.http.post(self.endpoint, params={"action": "submit"}, json=body)
        self._raise_for_error(response)
        return response.json()

    async def fetch_status(self, job_id: str) -> dict:
        response = await self.http.get(self.endpoint, params={"action": "status", "jobId": job_id})
        self._raise_for_error(response)
        return response.json()

    async def subscribe(self, job_id: str) -> AsyncIterator[dict]:
        """Yield row snapshots pushed by the server until the stream closes."""
        params = {"action": "subscribe", "jobId": job_id}
        async with self.http.stream("GET", self.endpoint, params=params, timeout=None) as response:
            if not response.is_success:
                await response.aread()
                self._raise_for_error(response)
            async for line in response.aiter_lines():
                if line.startswith("data:"):
                    yield json.loads(line[len("data:"):].strip())


class JobMonitor:
    """Holds the last known state of the current job; ``job`` is None while idle."""

    def __init__(
        self,
        api: GenerationApiClient,
        session_id: Optional[str] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        monotonic_progress: bool = False,
        on_change: Optional[Callable[[Optional[ClientJobView]], None]] = None,
    ):
        self.api = api
        self.session_id = session_id or str(uuid.uuid4())
        self.poll_interval = poll_interval
        self.monotonic_progress = monotonic_progress
        self.on_change = on_change

        self.job: Optional[ClientJobView] = None
        self.is_submitting = False
        self.last_error: Optional[JobSubmissionError] = None
        self.preview_prompt: Optional[str] = None
        self.last_config: Optional[WizardConfig] = None

        self._observers: List[asyncio.Task] = []
        self._terminal = asyncio.Event()

    # ── Public API ────────────────────────────────────────────────────────

    async def submit(self, config: WizardConfig) -> Optional[ClientJobView]:
        """Start a job. On failure ``last_error`` is set and ``job`` is left as it was."""
        self.is_submitting = True
        self.last_error = None
        self.last_config = config
        self.preview_prompt = _preview_directive(config)

        try:
            result = await self.api.submit_job(self.session_id, config)
        except JobSubmissionError as e:
            logging.error(f"Error submitting job: [{e.code}] {e.message}")
            self.last_error = e
            return None
        except httpx.HTTPError as e:
            logging.error(f"Error submitting job: {e}")
            self.last_error = JobSubmissionError(
                "NETWORK_ERROR", "Could not reach the video service. Please try again.", 0
            )
            return None
        finally:
            self.is_submitting = False

        self._stop_observers()
        self._terminal.set()
        self._terminal = asyncio.Event()
        self._set(ClientJobView(id=result["jobId"], status=PENDING, progress=0))
        self._start_observers(result["jobId"])
        return self.job

    def reset(self):
        """Forget the current job. Generation on the server carries on.

        Anyone waiting in wait_until_terminal() is released with None.
        """
        self._stop_observers()
        self._terminal.set()
        self._terminal = asyncio.Event()
        self._set(None)

    async def retry(self) -> Optional[ClientJobView]:
        if self.last_config is None:
            return None
        config = self.last_config
        self.reset()
        return await self.submit(config)

    async def wait_until_terminal(self) -> Optional[ClientJobView]:
        terminal = self._terminal
        await terminal.wait()
        # Replaced means the job was reset or superseded before it finished.
        return self.job if terminal is self._terminal else None

    @property
    def is_observing(self) -> bool:
        return any(not task.done() for task in self._observers)

    # ── Observation ───────────────────────────────────────────────────────

    def _start_observers(self, job_id: str):
        self._observers = [
            asyncio.create_task(self._poll_loop(job_id), name=f"poll-{job_id}"),
            asyncio.create_task(self._push_loop(job_id), name=f"push-{job_id}"),
        ]

    def _stop_observers(self):
        current = asyncio.current_task()
        for task in self._observers:
            if task is not current and not task.done():
                task.cancel()
        self._observers = []

    def _watching(self, job_id: str) -> bool:
        return self.job is not None and self.job.id == job_id and not self.job.is_terminal

    async def _poll_loop(self, job_id: str):
        while self._watching(job_id):
            await asyncio.sleep(self.poll_interval)
            if not self._watching(job_id):
                break
            try:
                data = await self.api.fetch_status(job_id)
            except (httpx.HTTPError, JobSubmissionError, ValueError) as e:
                # A failed fetch says nothing about the job itself.
                logging.warning(f"Error polling job status for {job_id}: {e}")
                continue
            self._apply(job_id, data)

    async def _push_loop(self, job_id: str):
        while self._watching(job_id):
            try:
                async for data in self.api.subscribe(job_id):
                    self._apply(job_id, data)
                    if not self._watching(job_id):
                        return
            except (httpx.HTTPError, JobSubmissionError, ValueError) as e:
                logging.warning(f"Job update stream for {job_id} dropped: {e}")
            if self._watching(job_id):
                await asyncio.sleep(self.poll_interval)

    def _apply(self, job_id: str, data: dict):
        if not self._watching(job_id):
            return
        view = ClientJobView.from_payload(data)
        if view.id != job_id:
            return
        if (self.monotonic_progress and view.status == self.job.status
                and view.progress < self.job.progress):
            return

        self._set(view)
        if view.is_terminal:
            self._terminal.set()
            self._stop_observers()

    def _set(self, view: Optional[ClientJobView]):
        self.job = view
        if self.on_change:
            self.on_change(view)


def _preview_directive(config: WizardConfig) -> Optional[str]:
    """Optimistic copy of the server's directive; the server's version is authoritative."""
    try:
        payload = JobSubmission(
            session_id="preview",
            video_type=config.video_type,
            style=config.style,
            duration=config.duration,
            format=config.format,
            user_prompt=config.prompt,
        )
    except ValueError:
        return None
    return generate_normalized_prompt(payload)
