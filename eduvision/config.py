"""
Runtime configuration for EduVision Tutor.

Secrets and model overrides live in a .env file at the project root:

    OPENAI_API_KEY=sk-...
    EDUVISION_CHAT_MODEL=gpt-5-mini

We use python-dotenv + os.getenv so secrets stay out of git.
"""

import os
from typing import Optional

from dotenv import load_dotenv

from .logger import logger

logger.env("Loading environment variables from .env file...")
if load_dotenv():
    logger.env_success("dotenv file loaded successfully")
else:
    logger.warning("No .env file found or file is empty")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} is not an integer, using {default}")
        return default


def get_api_key() -> Optional[str]:
    """Current OPENAI_API_KEY from the environment (may change after re-authorization)."""
    return os.getenv("OPENAI_API_KEY") or None


def mask_key(key: str) -> str:
    """Show only the first 8 and last 4 characters of a key."""
    return f"{key[:8]}...{key[-4:]}" if len(key) > 12 else "***"


# Models
CHAT_MODEL = os.getenv("EDUVISION_CHAT_MODEL", "gpt-5-mini")
# Set EDUVISION_REASONING_EFFORT= (empty) for non-reasoning chat models
REASONING_EFFORT = os.getenv("EDUVISION_REASONING_EFFORT", "low")
IMAGE_MODEL = os.getenv("EDUVISION_IMAGE_MODEL", "gpt-image-1")
VIDEO_MODEL = os.getenv("EDUVISION_VIDEO_MODEL", "sora-2")
TTS_MODEL = os.getenv("EDUVISION_TTS_MODEL", "tts-1")
TTS_VOICE = os.getenv("EDUVISION_TTS_VOICE", "nova")

# Sampling (temperature is only sent when REASONING_EFFORT is empty)
CHAT_TEMPERATURE = 0.7

# Video polling
VIDEO_POLL_INTERVAL_SECONDS = _int_env("EDUVISION_VIDEO_POLL_INTERVAL", 5)
VIDEO_POLL_MAX_ATTEMPTS = _int_env("EDUVISION_VIDEO_POLL_MAX_ATTEMPTS", 120)

# Gamification
XP_PER_LEVEL = 500
XP_NOTIFICATION_SECONDS = 3.0
IMAGE_GENERATION_XP_BONUS = 20
VIDEO_GENERATION_XP_BONUS = 50

# Speech synthesis input is capped to keep requests short
SPEECH_MAX_CHARS = 500

_key = get_api_key()
if _key:
    logger.env_success(f"OPENAI_API_KEY found: {mask_key(_key)}")
else:
    logger.env_error("OPENAI_API_KEY not found in environment!")
    logger.warning("Requests will fail until a key is selected")

logger.env(f"Chat model: {CHAT_MODEL} | image: {IMAGE_MODEL} | video: {VIDEO_MODEL} | tts: {TTS_MODEL}")
