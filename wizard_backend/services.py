"""
Generation backends for the Video Wizard.

Two interchangeable implementations share one call signature:

    await backend.generate(job_id, payload, on_progress) -> GenerationResult

``kind`` tells them apart; select_generation_backend() picks one per submission.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

import requests

from wizard_backend.config import (
    DEFAULT_THUMBNAIL_URL,
    DEMO_DELAY_SCALE,
    NEGATIVE_PROMPT,
    PROVIDER_KEY_NAME,
    REMOTE_POLL_INTERVAL,
    REMOTE_REQUEST_TIMEOUT,
    REPLICATE_BASE_URL,
    REPLICATE_MODEL_VERSION,
    get_env_api_key,
    is_usable_api_key,
)
from wizard_backend.errors import (
    api_failure,
    api_timeout,
    service_unavailable,
    upstream_rate_limit,
)
from wizard_backend.prompts import build_model_prompt
from wizard_backend.schemas import GenerationResult, JobSubmission

ProgressCallback = Callable[[int], Awaitable[None]]

_SAMPLE_BUCKET = "https://storage.googleapis.com/gtv-videos-bucket/sample"

DEMO_VIDEOS: Dict[str, List[str]] = {
    "education": [
        f"{_SAMPLE_BUCKET}/TearsOfSteel.mp4",
        f"{_SAMPLE_BUCKET}/Sintel.mp4",
    ],
    "social": [
        f"{_SAMPLE_BUCKET}/ForBiggerBlazes.mp4",
        f"{_SAMPLE_BUCKET}/ForBiggerEscapes.mp4",
        f"{_SAMPLE_BUCKET}/ForBiggerFun.mp4",
    ],
    "cinematic": [
        f"{_SAMPLE_BUCKET}/ElephantsDream.mp4",
        f"{_SAMPLE_BUCKET}/Sintel.mp4",
        f"{_SAMPLE_BUCKET}/TearsOfSteel.mp4",
    ],
    "animated": [
        f"{_SAMPLE_BUCKET}/BigBuckBunny.mp4",
        f"{_SAMPLE_BUCKET}/ElephantsDream.mp4",
    ],
    "corporate": [
        f"{_SAMPLE_BUCKET}/ForBiggerJoyrides.mp4",
        f"{_SAMPLE_BUCKET}/ForBiggerMeltdowns.mp4",
    ],
    "promotional": [
        f"{_SAMPLE_BUCKET}/ForBiggerEscapes.mp4",
        f"{_SAMPLE_BUCKET}/ForBiggerBlazes.mp4",
    ],
}

_UNSPLASH = "https://images.unsplash.com"

DEMO_THUMBNAILS: Dict[str, List[str]] = {
    "education": [
        f"{_UNSPLASH}/photo-1516321318423-f06f85e504b3?w=640&h=360&fit=crop",
        f"{_UNSPLASH}/photo-1434030216411-0b793f4b4173?w=640&h=360&fit=crop",
    ],
    "social": [
        f"{_UNSPLASH}/photo-1611162616305-c69b3fa7fbe0?w=640&h=360&fit=crop",
        f"{_UNSPLASH}/photo-1432888498266-38ffec3eaf0a?w=640&h=360&fit=crop",
    ],
    "cinematic": [
        f"{_UNSPLASH}/photo-1536440136628-849c177e76a1?w=640&h=360&fit=crop",
        f"{_UNSPLASH}/photo-1485846234645-a62644f84728?w=640&h=360&fit=crop",
    ],
    "animated": [
        f"{_UNSPLASH}/photo-1534447677768-be436bb09401?w=640&h=360&fit=crop",
        f"{_UNSPLASH}/photo-1578632767115-351597cf2477?w=640&h=360&fit=crop",
    ],
    "corporate": [
        f"{_UNSPLASH}/photo-1556761175-4b46a572b786?w=640&h=360&fit=crop",
        f"{_UNSPLASH}/photo-1497366216548-37526070297c?w=640&h=360&fit=crop",
    ],
    "promotional": [
        f"{_UNSPLASH}/photo-1557804506-669a67965ba0?w=640&h=360&fit=crop",
        f"{_UNSPLASH}/photo-1551434678-e076c223a692?w=640&h=360&fit=crop",
    ],
}

# (progress, delay in seconds before reporting it, log message)
DEMO_STAGES: List[Tuple[int, float, str]] = [
    (5, 0.5, "Initializing AI model..."),
    (15, 1.0, "Parsing prompt..."),
    (25, 1.5, "Analyzing visual requirements..."),
    (40, 2.0, "Generating scene compositions..."),
    (55, 2.0, "Applying style transfer..."),
    (70, 1.5, "Rendering frames..."),
    (85, 1.5, "Encoding video..."),
    (95, 1.0, "Finalizing output..."),
]

_STYLE_CATEGORIES = {
    "cinematic": "cinematic",
    "playful": "animated",
    "retro": "animated",
    "corporate": "corporate",
}

_TYPE_CATEGORIES = {
    "tutorial": "education",
    "explainer": "education",
    "presentation": "education",
    "social": "social",
    "story": "cinematic",
    "promotional": "promotional",
}


def select_demo_category(video_type: str, style: str) -> str:
    """Distinctive styles decide first, then video type, then the promotional pool.

    "modern" carries no look of its own, so it always defers to the video type.
    """
    if style in _STYLE_CATEGORIES:
        return _STYLE_CATEGORIES[style]
    if style == "futuristic":
        return "social" if video_type == "social" else "cinematic"
    return _TYPE_CATEGORIES.get(video_type, "promotional")


class DemoVideoService:
    """Scripted progress followed by a stock clip that matches the configuration."""

    kind = "demo"
    is_demo = True

    def __init__(self, delay_scale: float = DEMO_DELAY_SCALE, rng: Optional[random.Random] = None):
        self.delay_scale = delay_scale
        self.rng = rng or random.Random()

    async def generate(self, job_id: str, payload: JobSubmission, on_progress: ProgressCallback) -> GenerationResult:
        logging.info(f"🎬 [Demo] Starting video generation for job {job_id}")
        logging.info(
            f"[Demo] Configuration: type={payload.video_type} style={payload.style} "
            f"duration={payload.duration} format={payload.format}"
        )

        for progress, delay, message in DEMO_STAGES:
            await asyncio.sleep(delay * self.delay_scale)
            logging.debug(f"[Demo] {message}")
            await on_progress(progress)

        category = select_demo_category(payload.video_type, payload.style)
        video_url = self.rng.choice(DEMO_VIDEOS[category])
        thumbnails = DEMO_THUMBNAILS.get(category) or DEMO_THUMBNAILS["promotional"]
        thumbnail_url = self.rng.choice(thumbnails)

        logging.info(f"[Demo] Job {job_id}: category '{category}', video {video_url}")
        return GenerationResult(video_url=video_url, thumbnail_url=thumbnail_url, is_demo=True)


class ReplicateVideoService:
    """Submits a prediction to Replicate and mirrors its progress until it finishes."""

    kind = "remote"
    is_demo = False

    ACTIVE_STATUSES = ("starting", "processing")
    FAILED_STATUSES = ("failed", "canceled")

    def __init__(
        self,
        api_key: str,
        base_url: str = REPLICATE_BASE_URL,
        model_version: str = REPLICATE_MODEL_VERSION,
        poll_interval: float = REMOTE_POLL_INTERVAL,
        request_timeout: float = REMOTE_REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        rng: Optional[random.Random] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model_version = model_version
        self.poll_interval = poll_interval
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self.rng = rng or random.Random()

    def _request(self, method: str, endpoint: str, payload: Optional[dict] = None) -> dict:
        """Blocking HTTP call; run it through asyncio.to_thread."""
        url = f"{self.base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self.session.request(method, url, json=payload, headers=headers, timeout=self.request_timeout)
        except requests.Timeout as e:
            raise api_timeout(f"Replicate request timed out: {e}") from e
        except requests.RequestException as e:
            raise api_failure(f"Could not reach Replicate: {e}") from e

        if response.status_code == 429:
            raise upstream_rate_limit(f"Replicate API error: 429 - {response.text}")
        if response.status_code == 503:
            raise service_unavailable(f"Replicate API error: 503 - {response.text}")
        if not response.ok:
            raise api_failure(f"Replicate API error: {response.status_code} - {response.text}")

        try:
            return response.json()
        except ValueError as e:
            raise api_failure(f"Replicate returned a non-JSON body: {response.text[:200]}") from e

    def _prediction_input(self, payload: JobSubmission) -> dict:
        landscape = payload.format == "landscape"
        return {
            "prompt": build_model_prompt(payload),
            "negative_prompt": NEGATIVE_PROMPT,
            "num_frames": 24,
            "fps": 8,
            "width": 1024 if landscape else 576,
            "height": 576 if landscape else 1024,
            "guidance_scale": 17.5,
            "num_inference_steps": 50,
            "seed": self.rng.randint(0, 999999),
        }

    @staticmethod
    def _progress_of(prediction: dict) -> int:
        reported = prediction.get("progress")
        if reported:
            return max(0, min(100, int(round(float(reported)))))
        return 10 if prediction.get("status") == "starting" else 50

    @staticmethod
    def _output_urls(prediction: dict) -> Tuple[Optional[str], Optional[str]]:
        output = prediction.get("output")
        if isinstance(output, list):
            return (output[0] if output else None), None
        if isinstance(output, dict):
            return output.get("video") or output.get("url"), output.get("thumbnail")
        return output, None

    async def generate(self, job_id: str, payload: JobSubmission, on_progress: ProgressCallback) -> GenerationResult:
        logging.info(f"🤖 [Replicate] Submitting prediction for job {job_id}")
        body = {"version": self.model_version, "input": self._prediction_input(payload)}
        prediction = await asyncio.to_thread(self._request, "POST", "/predictions", body)
        prediction_id = prediction.get("id")
        logging.info(f"[Replicate] Prediction {prediction_id} created, status {prediction.get('status')}")
        if prediction.get("status") in self.ACTIVE_STATUSES:
            await on_progress(self._progress_of(prediction))

        result = prediction
        while result.get("status") in self.ACTIVE_STATUSES:
            await asyncio.sleep(self.poll_interval)
            result = await asyncio.to_thread(self._request, "GET", f"/predictions/{prediction_id}")
            logging.debug(f"[Replicate] {prediction_id}: {result.get('status')} ({result.get('progress')})")
            if result.get("status") in self.ACTIVE_STATUSES:
                await on_progress(self._progress_of(result))

        status = result.get("status")
        if status in self.FAILED_STATUSES:
            raise api_failure(f"Generation {status}: {result.get('error') or 'Unknown error'}")
        if status != "succeeded":
            raise api_failure(f"Unexpected prediction status: {status}")

        video_url, thumbnail_url = self._output_urls(result)
        if not video_url:
            raise api_failure("No video URL in Replicate response")

        await on_progress(100)
        logging.info(f"✅ [Replicate] Job {job_id} produced {video_url}")
        return GenerationResult(
            video_url=video_url,
            thumbnail_url=thumbnail_url or DEFAULT_THUMBNAIL_URL,
            is_demo=False,
        )


GenerationBackend = Union[DemoVideoService, ReplicateVideoService]


def resolve_provider_api_key(store=None) -> Optional[str]:
    """Environment first, then the stored api_keys row."""
    key = get_env_api_key()
    if key:
        return key
    if store is None:
        return None
    try:
        stored = store.get_active_api_key(PROVIDER_KEY_NAME)
    except Exception as e:
        logging.warning(f"Could not read stored provider key: {e}")
        return None
    return stored if is_usable_api_key(stored) else None


def select_generation_backend(store=None) -> GenerationBackend:
    """Remote backend when a usable credential exists, demo backend otherwise."""
    api_key = resolve_provider_api_key(store)
    if api_key:
        logging.info("✅ Using Replicate video service")
        return ReplicateVideoService(api_key)
    logging.info("⚠️ No provider key configured, using demo video service")
    return DemoVideoService()