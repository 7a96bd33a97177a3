# tasks.py

import asyncio
import logging

from wizard_backend.errors import api_failure, api_timeout, classify_error
from wizard_backend.job_store import JobStore
from wizard_backend.schemas import JobSubmission


async def process_video_job(store: JobStore, job_id: str, payload: JobSubmission, backend, timeout: float):
    """
    Background task that drives one job to a terminal status.

    Never raises: every failure is logged with its technical detail and only
    the user-facing message is written to the job row.
    """
    logging.info(f"⚙️ Processing job {job_id} with the {backend.kind} backend")

    try:
        # Store calls are blocking; keep them off the event loop.
        await asyncio.to_thread(store.mark_processing, job_id)

        async def on_progress(progress: int):
            try:
                await asyncio.to_thread(store.update_progress, job_id, progress)
            except Exception as e:
                logging.error(f"Error updating progress for job {job_id}: {e}")

        try:
            result = await asyncio.wait_for(backend.generate(job_id, payload, on_progress), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise api_timeout(f"Video generation exceeded the {timeout:g}s limit") from e

        if not result.video_url:
            raise api_failure("Backend returned no video URL")

        await asyncio.to_thread(store.mark_completed, job_id, result.video_url, result.thumbnail_url)
        logging.info(f"✅ Job {job_id} completed. Video at: {result.video_url}")

    except asyncio.CancelledError:
        logging.warning(f"Job {job_id} was cancelled before finishing")
        _record_failure(store, job_id, classify_error(RuntimeError("Generation task cancelled")))
        raise

    except Exception as e:
        error = classify_error(e)
        logging.error(f"❌ Job {job_id} failed [{error.code.value}]: {error}", exc_info=True)
        await asyncio.to_thread(_record_failure, store, job_id, error)


def _record_failure(store: JobStore, job_id: str, error):
    try:
        store.mark_failed(job_id, error.user_message)
    except Exception as db_error:
        logging.error(f"Failed to record failure for job {job_id}: {db_error}")
