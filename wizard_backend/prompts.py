"""
Directive builders: turn a normalized submission into bounded English prompts.

All functions here are pure.
"""

import re

from wizard_backend.config import (
    DURATION_ENGLISH,
    FILLER_WORDS,
    FORMAT_ENGLISH,
    MAX_FINAL_PROMPT_LENGTH,
    MAX_MODEL_CONTENT_LENGTH,
    MAX_USER_PROMPT_LENGTH,
    MODEL_QUALITY_DESCRIPTORS,
    MODEL_STYLE_DESCRIPTIONS,
    MODEL_TYPE_DESCRIPTIONS,
    MOTION_STYLE,
    STYLE_ENGLISH,
    VIDEO_TYPE_ENGLISH,
)
from wizard_backend.schemas import JobSubmission

_FILLER_RES = [re.compile(rf"\b{word}\b", re.IGNORECASE) for word in FILLER_WORDS]


def normalize_user_input(text: str, max_length: int = MAX_USER_PROMPT_LENGTH) -> str:
    """Collapse whitespace, strip prompt-breaking characters and truncate near a word boundary."""
    cleaned = re.sub(r"\s+", " ", text)
    cleaned = re.sub(r"[<>{}\[\]\\]", "", cleaned)
    cleaned = re.sub(r"[\"'`]", "'", cleaned)
    cleaned = cleaned.strip()

    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
        last_space = cleaned.rfind(" ")
        if last_space > max_length * 0.7:
            cleaned = cleaned[:last_space]
        cleaned = cleaned.strip()

    return cleaned


def extract_content_focus(text: str) -> str:
    """Drop filler words so the directive keeps only the subject of the request."""
    normalized = normalize_user_input(text)

    focused = normalized.lower()
    for filler in _FILLER_RES:
        focused = filler.sub(" ", focused)

    focused = re.sub(r"\s+", " ", focused).strip()
    if focused:
        focused = focused[0].upper() + focused[1:]

    return focused or normalized


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def _directive(payload: JobSubmission, content: str) -> str:
    style = STYLE_ENGLISH.get(payload.style, "modern clean style")
    video_type = VIDEO_TYPE_ENGLISH.get(payload.video_type, "promotional")
    duration = DURATION_ENGLISH.get(payload.duration, "30 seconds")
    video_format = FORMAT_ENGLISH.get(payload.format, "horizontal 16:9")
    motion = MOTION_STYLE.get(payload.video_type, "smooth camera movement")

    parts = [
        f"{_capitalize(style)} {video_type} video",
        f"about {content}" if content else "",
        f"duration {duration}",
        video_format,
        motion,
    ]
    return ", ".join(part for part in parts if part) + "."


def generate_normalized_prompt(payload: JobSubmission) -> str:
    """Format: "<Style> <type> video, about <content>, duration <d>, <format>, <motion>."."""
    content = extract_content_focus(payload.user_prompt)
    prompt = _directive(payload, content)

    if len(prompt) > MAX_FINAL_PROMPT_LENGTH:
        # Keep room for the fixed parts around the content.
        shortened = content[:MAX_FINAL_PROMPT_LENGTH - 150]
        last_space = shortened.rfind(" ")
        if last_space > 0:
            shortened = shortened[:last_space]
        prompt = _directive(payload, shortened)

    return prompt


def generate_detailed_prompt(payload: JobSubmission) -> str:
    """Audit text stored with the job. Never sent to a provider."""
    return "\n".join([
        "[INTERNAL REFERENCE - NOT FOR AI API]",
        f"Type: {payload.video_type}",
        f"Style: {payload.style}",
        f"Duration: {payload.duration}",
        f"Format: {payload.format}",
        f"Original User Input: {payload.user_prompt}",
        "---",
        "NORMALIZED AI PROMPT:",
        generate_normalized_prompt(payload),
    ])


def build_model_prompt(payload: JobSubmission) -> str:
    """Directive for the remote text-to-video model."""
    type_desc = MODEL_TYPE_DESCRIPTIONS.get(payload.video_type, "A video about")
    style_desc = MODEL_STYLE_DESCRIPTIONS.get(payload.style, "modern clean style")
    content = normalize_user_input(payload.user_prompt, max_length=MAX_MODEL_CONTENT_LENGTH)

    return ", ".join([f"{type_desc}: {content}", style_desc, *MODEL_QUALITY_DESCRIPTORS])
