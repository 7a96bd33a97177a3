"""
Pydantic models for data validation in the Video Wizard generation backend.
"""

from typing import List, Optional

from pydantic import BaseModel


class JobSubmission(BaseModel):
    """A validated, normalized submission (strings trimmed, enum fields lower-cased)."""
    session_id: str
    video_type: str
    style: str
    duration: str
    format: str
    user_prompt: str


class WizardConfig(BaseModel):
    """The configuration collected by the wizard, as the client sends it."""
    video_type: str
    style: str
    duration: str
    format: str
    prompt: str


class GenerationResult(BaseModel):
    """What a generation backend hands back on success."""
    video_url: str
    thumbnail_url: Optional[str] = None
    is_demo: bool


class SubmitResponse(BaseModel):
    """Response when a generation job has been accepted."""
    success: bool = True
    jobId: str
    isDemo: bool
    message: str
    normalizedPrompt: str


class JobStatusResponse(BaseModel):
    """Client-safe projection of a job row."""
    id: str
    status: str  # "pending" | "processing" | "completed" | "failed"
    progress: int
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    isDemo: bool


class ErrorDetail(BaseModel):
    code: str
    message: str
    retryable: bool = False
    retryAfterSeconds: Optional[int] = None
    errors: List[str] = []


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail
