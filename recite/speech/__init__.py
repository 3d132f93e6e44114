"""Speech capabilities: synthesis for playback, recognition for checking.

WHY: The scheduler and checker depend on speech only through the
interfaces in base.py; concrete engines live beside them.

RULES:
- base.py has no third-party imports
- Backends are imported explicitly by callers that need them
"""

from recite.speech.base import (
    SpeechError,
    SpeechRecognizer,
    SpeechSynthesizer,
    SpeechUnavailableError,
    TranscriptEntry,
)

__all__ = [
    "SpeechError",
    "SpeechRecognizer",
    "SpeechSynthesizer",
    "SpeechUnavailableError",
    "TranscriptEntry",
]
