"""
Job store: one row per submitted job plus a per-row change feed.

Writes go through SQLAlchemy sessions. After each successful write the new
client-safe projection of the row is published to every subscriber of that
job id.
"""

import asyncio
import logging
import threading
import uuid
from datetime import timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from wizard_backend.models import ApiKey, Job, utcnow
from wizard_backend.schemas import JobSubmission

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

TERMINAL_STATUSES = frozenset({COMPLETED, FAILED})

# Forward-only state machine.
ALLOWED_TRANSITIONS = {
    PENDING: {PROCESSING, FAILED},
    PROCESSING: {COMPLETED, FAILED},
    COMPLETED: set(),
    FAILED: set(),
}


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite drops the offset; everything is stored in UTC.
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def project_job(job: Job) -> dict:
    """Client-safe view of a row: no session id, prompts or provider detail."""
    return {
        "id": job.id,
        "status": job.status,
        "progress": job.progress,
        "video_url": job.video_url,
        "thumbnail_url": job.thumbnail_url,
        "error_message": job.error_message,
        "created_at": _iso(job.created_at),
        "completed_at": _iso(job.completed_at),
        "isDemo": bool(job.is_demo),
    }


class JobChangeFeed:
    """Row-level change notifications keyed by job id."""

    def __init__(self):
        self._subscribers: Dict[str, Set[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, job_id: str) -> asyncio.Queue:
        """Must be called from inside the event loop that will consume the queue."""
        queue: asyncio.Queue = asyncio.Queue()
        loop = asyncio.get_running_loop()
        with self._lock:
            self._subscribers.setdefault(job_id, set()).add((loop, queue))
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        with self._lock:
            entries = self._subscribers.get(job_id)
            if not entries:
                return
            for entry in [e for e in entries if e[1] is queue]:
                entries.discard(entry)
            if not entries:
                del self._subscribers[job_id]

    def subscriber_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(job_id, ()))

    def publish(self, job_id: str, snapshot: dict) -> None:
        with self._lock:
            entries = list(self._subscribers.get(job_id, ()))

        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None

        for loop, queue in entries:
            if loop is current:
                queue.put_nowait(dict(snapshot))
            elif not loop.is_closed():
                loop.call_soon_threadsafe(queue.put_nowait, dict(snapshot))


class JobStore:
    """Persistence for video jobs.

    Only the dispatcher creates rows and only the running generation task
    updates them; the store still refuses backwards transitions, progress
    regressions and any write to a terminal row.
    """

    def __init__(self, session_factory: Callable[[], Session], feed: Optional[JobChangeFeed] = None):
        self.session_factory = session_factory
        self.feed = feed or JobChangeFeed()

    # ── Reads ─────────────────────────────────────────────────────────────

    def get_job(self, job_id: str) -> Optional[dict]:
        db = self.session_factory()
        try:
            job = db.query(Job).filter(Job.id == job_id).first()
            return project_job(job) if job else None
        finally:
            db.close()

    def get_active_api_key(self, key_name: str) -> Optional[str]:
        db = self.session_factory()
        try:
            row = (
                db.query(ApiKey)
                .filter(ApiKey.key_name == key_name, ApiKey.is_active.is_(True))
                .first()
            )
            return row.key_value if row else None
        finally:
            db.close()

    # ── Writes ────────────────────────────────────────────────────────────

    def create_job(self, payload: JobSubmission, generated_prompt: str, is_demo: bool) -> dict:
        job = Job(
            id=str(uuid.uuid4()),
            session_id=payload.session_id,
            video_type=payload.video_type,
            style=payload.style,
            duration=payload.duration,
            format=payload.format,
            user_prompt=payload.user_prompt,
            generated_prompt=generated_prompt,
            status=PENDING,
            progress=0,
            is_demo=is_demo,
            created_at=utcnow(),
        )
        db = self.session_factory()
        try:
            db.add(job)
            db.commit()
            db.refresh(job)
            snapshot = project_job(job)
        finally:
            db.close()

        logging.info(f"🗂️ Job {job.id} stored as pending")
        return snapshot

    def mark_processing(self, job_id: str) -> Optional[dict]:
        return self._transition(job_id, PROCESSING, progress=0)

    def update_progress(self, job_id: str, progress: int) -> Optional[dict]:
        progress = max(0, min(100, int(progress)))
        db = self.session_factory()
        try:
            # One conditional UPDATE, so a late write cannot touch a terminal row.
            updated = (
                db.query(Job)
                .filter(Job.id == job_id, Job.status.notin_(list(TERMINAL_STATUSES)), Job.progress < progress)
                .update({Job.progress: progress}, synchronize_session=False)
            )
            if not updated:
                db.rollback()
                return None
            db.commit()
            snapshot = project_job(db.query(Job).filter(Job.id == job_id).one())
        finally:
            db.close()

        self.feed.publish(job_id, snapshot)
        return snapshot

    def mark_completed(self, job_id: str, video_url: str, thumbnail_url: Optional[str]) -> Optional[dict]:
        return self._transition(
            job_id,
            COMPLETED,
            progress=100,
            video_url=video_url,
            thumbnail_url=thumbnail_url,
            completed_at=utcnow(),
        )

    def mark_failed(self, job_id: str, error_message: str) -> Optional[dict]:
        return self._transition(job_id, FAILED, error_message=error_message)

    def fail_stale_jobs(self, error_message: str) -> List[str]:
        """Fail rows a previous process left pending or processing."""
        db = self.session_factory()
        try:
            stale = db.query(Job).filter(Job.status.in_([PENDING, PROCESSING])).all()
            for job in stale:
                job.status = FAILED
                job.error_message = error_message
            db.commit()
            ids = [job.id for job in stale]
        finally:
            db.close()

        if ids:
            logging.warning(f"⚠️ Marked {len(ids)} interrupted job(s) as failed")
        return ids

    def _transition(self, job_id: str, status: str, **fields) -> Optional[dict]:
        db = self.session_factory()
        try:
            job = db.query(Job).filter(Job.id == job_id).first()
            if not job:
                logging.warning(f"Job {job_id} vanished before moving to {status}")
                return None
            if status not in ALLOWED_TRANSITIONS[job.status]:
                logging.warning(f"Ignoring transition {job.status} -> {status} for job {job_id}")
                return None

            job.status = status
            for name, value in fields.items():
                setattr(job, name, value)
            db.commit()
            snapshot = project_job(job)
        finally:
            db.close()

        self.feed.publish(job_id, snapshot)
        return snapshot
