"""
Configuration file for the Video Wizard generation backend.
Contains all global constants and prompt engineering tables.
"""

import os

# --- Constants ---
PROJECT_ROOT = os.getcwd()
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{os.path.join(PROJECT_ROOT, 'video_jobs.db')}")
REDIS_URL = os.getenv("REDIS_URL", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

API_PREFIX = "/functions/v1/generate-video"

CORS_ALLOW_HEADERS = [
    "authorization",
    "x-client-info",
    "apikey",
    "content-type",
    "x-supabase-client-platform",
    "x-supabase-client-platform-version",
    "x-supabase-client-runtime",
    "x-supabase-client-runtime-version",
]

# --- Rate limiting ---
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "5"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# --- Generation ---
DEMO_DELAY_SCALE = float(os.getenv("DEMO_DELAY_SCALE", "1.0"))
DEMO_GENERATION_TIMEOUT = float(os.getenv("DEMO_GENERATION_TIMEOUT", "120"))
# The remote ceiling must stay above the demo one: it waits on an external provider.
REMOTE_GENERATION_TIMEOUT = float(os.getenv("REMOTE_GENERATION_TIMEOUT", "600"))
REMOTE_POLL_INTERVAL = float(os.getenv("REMOTE_POLL_INTERVAL", "2.0"))
REMOTE_REQUEST_TIMEOUT = float(os.getenv("REMOTE_REQUEST_TIMEOUT", "30"))

REPLICATE_BASE_URL = os.getenv("REPLICATE_BASE_URL", "https://api.replicate.com/v1")
REPLICATE_MODEL_VERSION = os.getenv(
    "REPLICATE_MODEL_VERSION",
    "lucataco/zeroscope-v2-xl:9f747673945c62801b13b84701c783929c0ee784e4748ec062204894dda1a351",
)
PROVIDER_KEY_ENV_VARS = ("REPLICATE_API_TOKEN", "REPLICATE_API_KEY")
PROVIDER_KEY_NAME = "REPLICATE_API_TOKEN"
PLACEHOLDER_KEY_MARKERS = ("your_replicate", "YOUR_REPLICATE")


def is_usable_api_key(key):
    """A provider key counts only if it is long enough and not a template placeholder."""
    if not key or len(key) <= 10:
        return False
    return not any(marker in key for marker in PLACEHOLDER_KEY_MARKERS)


def get_env_api_key():
    """Return the first usable provider credential found in the environment, if any."""
    for name in PROVIDER_KEY_ENV_VARS:
        key = os.getenv(name, "").strip()
        if is_usable_api_key(key):
            return key
    return None


# --- Submission schema ---
VALID_VIDEO_TYPES = ("promotional", "explainer", "social", "presentation", "story", "tutorial")
VALID_STYLES = ("modern", "cinematic", "playful", "corporate", "retro", "futuristic")
VALID_DURATIONS = ("short", "medium", "standard", "long")
VALID_FORMATS = ("landscape", "portrait", "square")

MIN_PROMPT_LENGTH = 10
MAX_PROMPT_LENGTH = 2000

FORBIDDEN_PATTERNS = [
    r"\b(hack|exploit|malware|virus)\b",
    r"\b(weapon|bomb|explosive)\b",
    r"<script|javascript:|data:",
    r"[\x00\x1f]",
]

# --- Prompt Engineering Section ---

MAX_USER_PROMPT_LENGTH = 200
MAX_FINAL_PROMPT_LENGTH = 500
MAX_MODEL_CONTENT_LENGTH = 500

VIDEO_TYPE_ENGLISH = {
    "promotional": "promotional",
    "explainer": "educational explainer",
    "social": "social media",
    "presentation": "presentation",
    "story": "storytelling",
    "tutorial": "tutorial",
}

STYLE_ENGLISH = {
    "modern": "modern clean style",
    "cinematic": "cinematic",
    "playful": "playful animated",
    "corporate": "professional corporate",
    "retro": "retro vintage",
    "futuristic": "futuristic sci-fi",
}

DURATION_ENGLISH = {
    "short": "15 seconds",
    "medium": "30 seconds",
    "standard": "60 seconds",
    "long": "2 minutes",
}

FORMAT_ENGLISH = {
    "landscape": "horizontal 16:9",
    "portrait": "vertical 9:16",
    "square": "square 1:1",
}

MOTION_STYLE = {
    "promotional": "dynamic camera movement",
    "explainer": "smooth transitions",
    "social": "fast-paced editing",
    "presentation": "steady professional shots",
    "story": "cinematic camera flow",
    "tutorial": "clear focused framing",
}

FILLER_WORDS = [
    "tolong", "buatkan", "buat", "saya", "ingin", "mau", "video", "tentang",
    "please", "create", "make", "want", "need", "about", "the", "a", "an",
    "yang", "untuk", "dengan", "dan", "atau", "ini", "itu",
]

# Descriptions sent to the remote model
MODEL_TYPE_DESCRIPTIONS = {
    "promotional": "A professional promotional video showcasing",
    "explainer": "An educational video explaining",
    "social": "Engaging social media content featuring",
    "presentation": "A professional presentation about",
    "story": "A cinematic story about",
    "tutorial": "A step-by-step tutorial demonstrating",
}

MODEL_STYLE_DESCRIPTIONS = {
    "modern": "modern clean aesthetic with minimalist design",
    "cinematic": "cinematic with dramatic lighting and film grain",
    "playful": "playful and colorful animated style",
    "corporate": "professional corporate business style",
    "retro": "retro vintage aesthetic with nostalgic feel",
    "futuristic": "futuristic sci-fi with neon and holographic elements",
}

MODEL_QUALITY_DESCRIPTORS = [
    "high quality, professional, detailed, sharp focus, 4K",
    "smooth motion, natural movement, fluid transitions",
    "professional lighting, well-lit, clear visibility",
    "well-composed, balanced framing, professional cinematography",
]

NEGATIVE_PROMPT = (
    "low quality, blurry, distorted, deformed, ugly, bad anatomy, disfigured, "
    "poorly drawn, watermark, signature, text overlay, title"
)

DEFAULT_THUMBNAIL_URL = "https://images.unsplash.com/photo-1536440136628-849c177e76a1?w=640&h=360&fit=crop"
