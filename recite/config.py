"""Configuration constants, environment overrides, and .env loading.

WHY: Centralizes every tunable value (storage location, speech backend
settings, scheduler timing, segmentation fallbacks) so they are easy to
find and override without touching logic.

HOW: python-dotenv loads the .env file on import. Constants are
module-level values; anything deployment-specific can be overridden via
environment variables. load_api_key() gives a clear error when the Soniox
key needed for speech recognition is missing.

RULES:
- Algorithm constants (delimiters, watchdog bounds) are plain data
- Deployment values (paths, voices, URLs) come from the environment
- API keys are loaded from .env via python-dotenv, never hardcoded
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

DEFAULT_SENTENCE_DELIMITERS = "。！？!?"
"""Sentence-ending characters used when settings carry no delimiters."""

FALLBACK_DELIMITERS = "，,;；、"
"""Always appended to the configured delimiters so clauses still split."""

# ---------------------------------------------------------------------------
# Playback scheduler timing
# ---------------------------------------------------------------------------

WATCHDOG_MS_PER_CHAR = 350
WATCHDOG_BASE_MS = 1500
WATCHDOG_MIN_S = 3.0
WATCHDOG_MAX_S = 90.0
PAUSE_POLL_INTERVAL_S = 0.08

# ---------------------------------------------------------------------------
# Document store
# ---------------------------------------------------------------------------

DOCUMENT_VERSION = 1
SETTINGS_VERSION = 1

RECITE_DATA_PATH = Path(os.getenv("RECITE_DATA_PATH", "recite_v1.json"))

# ---------------------------------------------------------------------------
# Speech synthesis (edge-tts + ffplay)
# ---------------------------------------------------------------------------

RECITE_TTS_VOICE = os.getenv("RECITE_TTS_VOICE", "zh-CN-XiaoxiaoNeural")
RECITE_FFPLAY = os.getenv("RECITE_FFPLAY", "ffplay")

# ---------------------------------------------------------------------------
# Speech recognition (Soniox async API)
# ---------------------------------------------------------------------------

SONIOX_BASE_URL = os.getenv("SONIOX_BASE_URL", "https://api.soniox.com/v1")
SONIOX_MODEL = os.getenv("SONIOX_MODEL", "stt-async-v4")
RECITE_LANGUAGE = os.getenv("RECITE_LANGUAGE", "zh")

SUPPORTED_AUDIO_FORMATS: set[str] = {
    ".aac", ".aiff", ".amr", ".flac", ".mp3",
    ".ogg", ".wav", ".webm", ".m4a", ".mp4",
}
"""Audio file extensions accepted for recitation recordings."""

# ---------------------------------------------------------------------------
# HTTP server
# ---------------------------------------------------------------------------

RECITE_HOST = os.getenv("RECITE_HOST", "127.0.0.1")
RECITE_PORT = int(os.getenv("RECITE_PORT", "8765"))


def load_api_key() -> str:
    """Load the Soniox API key from the environment.

    WHY: Recognizing a recorded recitation goes through the Soniox API,
    which needs a key. Loading it from the environment keeps it out of
    source code.

    RULES:
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("SONIOX_API_KEY", "").strip()
    if not key:
        raise ValueError(
            "Soniox API key not configured. "
            "Add SONIOX_API_KEY to the .env file to recognize recordings."
        )
    return key
