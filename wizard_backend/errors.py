"""
Error taxonomy for the video generation backend.

Every failure that can reach a client is expressed as a VideoGenerationError.
The technical message stays in the logs; only ``user_message`` is ever
returned to a caller or written to a job row.
"""

import asyncio
from enum import Enum
from typing import List, Optional

import requests


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_PROMPT = "INVALID_PROMPT"
    RATE_LIMIT = "RATE_LIMIT"
    API_TIMEOUT = "API_TIMEOUT"
    API_FAILURE = "API_FAILURE"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    INVALID_JOB_ID = "INVALID_JOB_ID"


USER_FRIENDLY_MESSAGES = {
    ErrorCode.VALIDATION_ERROR: "The submitted data is not valid. Please check your video configuration.",
    ErrorCode.INVALID_PROMPT: (
        "The video description is not valid. Make sure it has at least 10 characters "
        "and contains no disallowed content."
    ),
    ErrorCode.RATE_LIMIT: "Too many requests. Please wait a moment before trying again.",
    ErrorCode.API_TIMEOUT: "Video generation took too long. Please try again.",
    ErrorCode.API_FAILURE: "Something went wrong while creating the video. Our team is looking into it.",
    ErrorCode.SERVICE_UNAVAILABLE: "The video generation service is under maintenance. Please try again later.",
    ErrorCode.INTERNAL_ERROR: "A system error occurred. Please try again or contact support.",
    ErrorCode.JOB_NOT_FOUND: "Video not found. It may have expired or the ID is not valid.",
    ErrorCode.INVALID_JOB_ID: "The video ID format is not valid.",
}


class VideoGenerationError(Exception):
    """A categorized failure carrying a safe, user-facing message."""

    def __init__(
        self,
        code: ErrorCode,
        technical_message: str,
        *,
        status_code: int = 500,
        retryable: bool = False,
        retry_after_seconds: Optional[int] = None,
        user_message: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ):
        super().__init__(technical_message)
        self.code = code
        self.user_message = user_message or USER_FRIENDLY_MESSAGES[code]
        self.status_code = status_code
        self.retryable = retryable
        self.retry_after_seconds = retry_after_seconds
        self.errors = errors or []

    def to_safe_response(self) -> dict:
        error = {
            "code": self.code.value,
            "message": self.user_message,
            "retryable": self.retryable,
        }
        if self.retry_after_seconds:
            error["retryAfterSeconds"] = self.retry_after_seconds
        if self.errors:
            error["errors"] = self.errors
        return {"success": False, "error": error}


def api_timeout(technical_message: str) -> VideoGenerationError:
    return VideoGenerationError(
        ErrorCode.API_TIMEOUT, technical_message, status_code=504, retryable=True, retry_after_seconds=30
    )


def api_failure(technical_message: str) -> VideoGenerationError:
    return VideoGenerationError(ErrorCode.API_FAILURE, technical_message, status_code=502, retryable=True)


def upstream_rate_limit(technical_message: str) -> VideoGenerationError:
    return VideoGenerationError(
        ErrorCode.RATE_LIMIT, technical_message, status_code=429, retryable=True, retry_after_seconds=60
    )


def service_unavailable(technical_message: str) -> VideoGenerationError:
    return VideoGenerationError(
        ErrorCode.SERVICE_UNAVAILABLE, technical_message, status_code=503, retryable=True, retry_after_seconds=300
    )


def classify_error(error: BaseException, default_code: ErrorCode = ErrorCode.INTERNAL_ERROR) -> VideoGenerationError:
    """Map any exception onto the taxonomy, keeping the original text as the technical message."""
    if isinstance(error, VideoGenerationError):
        return error

    message = str(error) or error.__class__.__name__
    lowered = message.lower()

    if isinstance(error, (asyncio.TimeoutError, requests.Timeout)) or "timeout" in lowered:
        return api_timeout(message)

    if "rate limit" in lowered or "429" in lowered or "too many requests" in lowered:
        return upstream_rate_limit(message)

    if "503" in lowered or "service unavailable" in lowered or "maintenance" in lowered:
        return service_unavailable(message)

    return VideoGenerationError(default_code, message, status_code=500)
