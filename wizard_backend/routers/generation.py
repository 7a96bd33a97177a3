"""
Router for the video generation endpoint.
Handles job submission, status lookup and the row change stream, routed by ?action=.
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from wizard_backend.config import API_PREFIX
from wizard_backend.dispatcher import JobDispatcher, get_dispatcher
from wizard_backend.errors import ErrorCode, VideoGenerationError, classify_error
from wizard_backend.job_store import TERMINAL_STATUSES
from wizard_backend.schemas import JobStatusResponse, SubmitResponse

# Create the router
router = APIRouter(prefix=API_PREFIX, tags=["generation"])

# Comment line sent on idle streams so proxies keep the connection open.
KEEPALIVE_SECONDS = 15.0


def error_response(error: VideoGenerationError) -> JSONResponse:
    headers = {}
    if error.retry_after_seconds:
        headers["Retry-After"] = str(error.retry_after_seconds)
    return JSONResponse(error.to_safe_response(), status_code=error.status_code, headers=headers)


def _handle(error: Exception) -> JSONResponse:
    safe = classify_error(error)
    if isinstance(error, VideoGenerationError):
        logging.error(f"[API] [{safe.code.value}] {safe}")
    else:
        logging.exception(f"[API] Unexpected error: {error}")
    return error_response(safe)


@router.post("")
async def post_action(request: Request, action: Optional[str] = None,
                      dispatcher: JobDispatcher = Depends(get_dispatcher)):
    """Submit a new generation job (?action=submit)."""
    try:
        if action != "submit":
            raise _invalid_request(f"Invalid action for POST: {action}")

        body = await request.body()
        try:
            raw_payload = json.loads(body)
        except ValueError as e:
            raise VideoGenerationError(ErrorCode.VALIDATION_ERROR, "Invalid JSON body", status_code=400) from e

        return SubmitResponse(**await dispatcher.submit(raw_payload))
    except Exception as e:
        return _handle(e)


@router.get("")
async def get_action(action: Optional[str] = None, jobId: Optional[str] = None,
                     dispatcher: JobDispatcher = Depends(get_dispatcher)):
    """Job status (?action=status) or its change stream (?action=subscribe)."""
    try:
        if action == "status":
            return JobStatusResponse(**dispatcher.lookup(jobId))
        if action == "subscribe":
            snapshot = dispatcher.lookup(jobId)
            return StreamingResponse(
                _job_events(dispatcher, jobId, snapshot),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache"},
            )
        raise _invalid_request(f"Invalid action for GET: {action}")
    except Exception as e:
        return _handle(e)


async def _job_events(dispatcher: JobDispatcher, job_id: str, first: dict):
    """Server-sent events: the current row, then every change until it is terminal."""
    feed = dispatcher.store.feed
    queue = feed.subscribe(job_id)
    try:
        # Re-read after subscribing so no change falls between the two.
        snapshot = dispatcher.store.get_job(job_id) or first
        yield _sse(snapshot)
        while snapshot["status"] not in TERMINAL_STATUSES:
            try:
                snapshot = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield _sse(snapshot)
    finally:
        feed.unsubscribe(job_id, queue)


def _sse(snapshot: dict) -> str:
    return f"data: {json.dumps(snapshot)}\n\n"


def _invalid_request(technical_message: str) -> VideoGenerationError:
    return VideoGenerationError(
        ErrorCode.VALIDATION_ERROR, technical_message, status_code=400, user_message="The request is not valid."
    )
