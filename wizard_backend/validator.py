"""
Submission validation for video generation jobs.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from wizard_backend.config import (
    FORBIDDEN_PATTERNS,
    MAX_PROMPT_LENGTH,
    MIN_PROMPT_LENGTH,
    VALID_DURATIONS,
    VALID_FORMATS,
    VALID_STYLES,
    VALID_VIDEO_TYPES,
)
from wizard_backend.errors import ErrorCode
from wizard_backend.schemas import JobSubmission

_FORBIDDEN = [re.compile(pattern, re.IGNORECASE) for pattern in FORBIDDEN_PATTERNS]

# (payload key, label, allowed values)
_ENUM_FIELDS = [
    ("videoType", "video type", VALID_VIDEO_TYPES),
    ("style", "visual style", VALID_STYLES),
    ("duration", "duration", VALID_DURATIONS),
    ("format", "format", VALID_FORMATS),
]


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    error_code: Optional[ErrorCode] = None
    payload: Optional[JobSubmission] = None


class SubmissionValidator:
    """Checks a raw submission body and produces a normalized JobSubmission.

    Selection problems are collected and reported together. Prompt problems
    short-circuit with INVALID_PROMPT, since the client shows them beside the
    prompt field rather than in the general banner.
    """

    def __init__(self, raw_payload):
        self.raw = raw_payload
        self.errors: List[str] = []

    def _check_session(self, data: dict):
        if not _is_present_string(data.get("sessionId")):
            self.errors.append("sessionId is required")

    def _check_enums(self, data: dict):
        for key, label, allowed in _ENUM_FIELDS:
            value = data.get(key)
            if not _is_present_string(value):
                self.errors.append(f"{key}: a {label} must be selected")
            elif value not in allowed:
                self.errors.append(f"{key}: '{value}' is not a valid {label}")

    def _check_prompt(self, data: dict) -> Optional[ValidationResult]:
        value = data.get("userPrompt")
        if not _is_present_string(value):
            self.errors.append("userPrompt: a video description is required")
            return None

        prompt = value.strip()
        if len(prompt) < MIN_PROMPT_LENGTH:
            return _invalid_prompt(f"userPrompt: the description needs at least {MIN_PROMPT_LENGTH} characters")
        if len(prompt) > MAX_PROMPT_LENGTH:
            return _invalid_prompt(f"userPrompt: the description can have at most {MAX_PROMPT_LENGTH} characters")

        for pattern in _FORBIDDEN:
            if pattern.search(prompt):
                return _invalid_prompt("userPrompt: the description contains disallowed content")
        return None

    def run(self) -> ValidationResult:
        if not isinstance(self.raw, dict):
            return ValidationResult(False, ["The request data is not valid"], ErrorCode.VALIDATION_ERROR)

        data = self.raw
        self._check_session(data)
        self._check_enums(data)

        prompt_failure = self._check_prompt(data)
        if prompt_failure:
            return prompt_failure

        if self.errors:
            return ValidationResult(False, list(self.errors), ErrorCode.VALIDATION_ERROR)

        payload = JobSubmission(
            session_id=data["sessionId"].strip(),
            video_type=data["videoType"].strip().lower(),
            style=data["style"].strip().lower(),
            duration=data["duration"].strip().lower(),
            format=data["format"].strip().lower(),
            user_prompt=data["userPrompt"].strip(),
        )
        return ValidationResult(True, payload=payload)


def validate_submission(raw_payload) -> ValidationResult:
    return SubmissionValidator(raw_payload).run()


def _is_present_string(value) -> bool:
    return isinstance(value, str) and bool(value)


def _invalid_prompt(message: str) -> ValidationResult:
    return ValidationResult(False, [message], ErrorCode.INVALID_PROMPT)
