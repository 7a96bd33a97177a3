# tests/test_services.py

import asyncio
import json
import random

import pytest
import requests

from wizard_backend.config import DEFAULT_THUMBNAIL_URL
from wizard_backend.errors import ErrorCode, VideoGenerationError
from wizard_backend.models import ApiKey
from wizard_backend.services import (
    DEMO_THUMBNAILS,
    DEMO_VIDEOS,
    DemoVideoService,
    ReplicateVideoService,
    resolve_provider_api_key,
    select_demo_category,
    select_generation_backend,
)

VALID_KEY = "r8_abcdefghijklmnopqrstuvwxyz"


def _response(status_code, body):
    response = requests.Response()
    response.status_code = status_code
    response.encoding = "utf-8"
    response._content = body.encode() if isinstance(body, str) else json.dumps(body).encode()
    return response


class FakeSession:
    """Replays canned responses in order and records every call."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "headers": headers})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class ProgressRecorder:
    def __init__(self):
        self.values = []

    async def __call__(self, progress):
        self.values.append(progress)


def _replicate(session):
    return ReplicateVideoService(VALID_KEY, poll_interval=0, session=session, rng=random.Random(1))


# ── Demo backend ──────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "video_type, style, expected",
    [
        ("tutorial", "modern", "education"),
        ("explainer", "modern", "education"),
        ("promotional", "cinematic", "cinematic"),
        ("tutorial", "playful", "animated"),
        ("story", "retro", "animated"),
        ("social", "corporate", "corporate"),
        ("social", "futuristic", "social"),
        ("presentation", "futuristic", "cinematic"),
        ("social", "modern", "social"),
        ("story", "modern", "cinematic"),
        ("promotional", "modern", "promotional"),
    ],
)
def test_demo_category_selection(video_type, style, expected):
    assert select_demo_category(video_type, style) == expected


def test_demo_backend_reports_stages_in_order(submission):
    recorder = ProgressRecorder()
    backend = DemoVideoService(delay_scale=0, rng=random.Random(7))

    result = asyncio.run(backend.generate("job-1", submission, recorder))

    assert recorder.values == [5, 15, 25, 40, 55, 70, 85, 95]
    assert result.is_demo
    assert result.video_url in DEMO_VIDEOS["education"]
    assert result.thumbnail_url in DEMO_THUMBNAILS["education"]


# ── Remote backend ────────────────────────────────────────────────────────


def test_replicate_success_mirrors_progress(submission):
    session = FakeSession(
        _response(201, {"id": "p1", "status": "starting"}),
        _response(200, {"id": "p1", "status": "processing", "progress": 42.4}),
        _response(200, {"id": "p1", "status": "processing"}),
        _response(200, {"id": "p1", "status": "succeeded", "output": ["https://cdn.example/video.mp4"]}),
    )
    recorder = ProgressRecorder()

    result = asyncio.run(_replicate(session).generate("job-1", submission, recorder))

    assert result.video_url == "https://cdn.example/video.mp4"
    assert result.thumbnail_url == DEFAULT_THUMBNAIL_URL
    assert not result.is_demo
    assert recorder.values == [10, 42, 50, 100]

    create = session.calls[0]
    assert create["method"] == "POST"
    assert create["url"].endswith("/predictions")
    assert create["headers"]["Authorization"] == f"Bearer {VALID_KEY}"
    assert create["json"]["input"]["width"] == 1024
    assert create["json"]["input"]["height"] == 576
    assert session.calls[1]["url"].endswith("/predictions/p1")


def test_replicate_never_asks_the_provider_to_hold_requests_open(submission):
    """
    The prediction is created and returned at once; completion is observed by polling.
    """
    session = FakeSession(
        _response(201, {"id": "p6", "status": "starting"}),
        _response(200, {"id": "p6", "status": "succeeded", "output": "https://cdn.example/v.mp4"}),
    )

    asyncio.run(_replicate(session).generate("job-6", submission, ProgressRecorder()))

    assert [call["method"] for call in session.calls] == ["POST", "GET"]
    assert all("Prefer" not in call["headers"] for call in session.calls)


def test_replicate_reports_starting_estimate_before_first_poll(submission):
    session = FakeSession(_response(201, {"id": "p7", "status": "starting"}), requests.Timeout("read timed out"))
    recorder = ProgressRecorder()

    with pytest.raises(VideoGenerationError):
        asyncio.run(_replicate(session).generate("job-7", submission, recorder))

    assert recorder.values == [10]


def test_replicate_portrait_dimensions(submission):
    payload = submission.model_copy(update={"format": "portrait"})

    body = _replicate(FakeSession())._prediction_input(payload)

    assert (body["width"], body["height"]) == (576, 1024)


def test_replicate_dict_output_keeps_thumbnail(submission):
    session = FakeSession(
        _response(201, {
            "id": "p2",
            "status": "succeeded",
            "output": {"video": "https://cdn.example/v.mp4", "thumbnail": "https://cdn.example/t.jpg"},
        }),
    )

    result = asyncio.run(_replicate(session).generate("job-2", submission, ProgressRecorder()))

    assert result.thumbnail_url == "https://cdn.example/t.jpg"


def test_replicate_failed_prediction_is_api_failure(submission):
    session = FakeSession(
        _response(201, {"id": "p3", "status": "starting"}),
        _response(200, {"id": "p3", "status": "failed", "error": "CUDA out of memory"}),
    )

    with pytest.raises(VideoGenerationError) as exc_info:
        asyncio.run(_replicate(session).generate("job-3", submission, ProgressRecorder()))

    assert exc_info.value.code == ErrorCode.API_FAILURE
    assert "CUDA out of memory" in str(exc_info.value)
    assert "CUDA" not in exc_info.value.user_message


def test_replicate_missing_output_is_api_failure(submission):
    session = FakeSession(_response(201, {"id": "p4", "status": "succeeded", "output": None}))

    with pytest.raises(VideoGenerationError) as exc_info:
        asyncio.run(_replicate(session).generate("job-4", submission, ProgressRecorder()))

    assert exc_info.value.code == ErrorCode.API_FAILURE


@pytest.mark.parametrize(
    "response, expected",
    [
        (_response(429, "slow down"), ErrorCode.RATE_LIMIT),
        (_response(503, "maintenance"), ErrorCode.SERVICE_UNAVAILABLE),
        (_response(500, "boom"), ErrorCode.API_FAILURE),
        (_response(200, "<html>not json</html>"), ErrorCode.API_FAILURE),
        (requests.Timeout("read timed out"), ErrorCode.API_TIMEOUT),
        (requests.ConnectionError("refused"), ErrorCode.API_FAILURE),
    ],
)
def test_replicate_request_errors_are_classified(submission, response, expected):
    session = FakeSession(response)

    with pytest.raises(VideoGenerationError) as exc_info:
        asyncio.run(_replicate(session).generate("job-5", submission, ProgressRecorder()))

    assert exc_info.value.code == expected


# ── Backend selection ─────────────────────────────────────────────────────


def test_no_credential_selects_demo_backend(store):
    backend = select_generation_backend(store)

    assert backend.kind == "demo"
    assert backend.is_demo


def test_environment_credential_selects_remote_backend(monkeypatch):
    monkeypatch.setenv("REPLICATE_API_TOKEN", VALID_KEY)

    backend = select_generation_backend()

    assert backend.kind == "remote"
    assert backend.api_key == VALID_KEY


@pytest.mark.parametrize("key", ["short", "your_replicate_token_here", "   "])
def test_unusable_credentials_are_ignored(monkeypatch, key):
    monkeypatch.setenv("REPLICATE_API_TOKEN", key)

    assert select_generation_backend().kind == "demo"


def test_stored_credential_is_used_when_environment_has_none(store, session_factory):
    db = session_factory()
    db.add(ApiKey(key_name="REPLICATE_API_TOKEN", key_value=VALID_KEY, is_active=True))
    db.commit()
    db.close()

    assert resolve_provider_api_key(store) == VALID_KEY
    assert select_generation_backend(store).kind == "remote"


def test_inactive_stored_credential_is_ignored(store, session_factory):
    db = session_factory()
    db.add(ApiKey(key_name="REPLICATE_API_TOKEN", key_value=VALID_KEY, is_active=False))
    db.commit()
    db.close()

    assert resolve_provider_api_key(store) is None
