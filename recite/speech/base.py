"""Speech capability interfaces consumed by the scheduler and checker.

WHY: The scheduler only needs "speak this and tell me when you're done"
and the checker only needs "give me recognized text". Keeping those
contracts abstract lets tests plug in fakes and lets deployments swap
engines without touching the playback loop.

HOW: SpeechSynthesizer and SpeechRecognizer are ABCs. TranscriptEntry is
one recognized chunk. Two exception types separate a failed utterance
(the loop moves on) from a missing backend (the loop stops).

RULES:
- speak() returns when playback finished, raises SpeechError on failure
- speak() raises SpeechUnavailableError when there is no usable backend
- cancel() stops in-flight speech and never raises
- recognize() yields entries in order; only is_final entries are scored
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional


class SpeechError(Exception):
    """A single utterance could not be synthesized or played."""


class SpeechUnavailableError(SpeechError):
    """No usable speech backend exists at all.

    Unlike SpeechError, retrying the next step would fail the same way,
    so the scheduler treats this as fatal to the running session.
    """


class SpeechSynthesizer(ABC):
    """Text-to-speech capability.

    To add a new backend:
    1. Subclass SpeechSynthesizer
    2. Implement ``available``, ``speak()`` and ``cancel()``
    3. Pass an instance to PlaybackScheduler
    """

    @property
    @abstractmethod
    def available(self) -> bool:
        """True when the backend can currently produce audio."""

    @abstractmethod
    async def speak(
        self,
        text: str,
        rate: float = 1.0,
        volume: float = 1.0,
        voice: Optional[str] = None,
    ) -> None:
        """Speak text and return once playback has finished.

        Args:
            text: Text to speak.
            rate: Speech rate multiplier (1.0 = normal).
            volume: Volume 0–1.
            voice: Backend-specific voice hint, or None for the default.
        """

    @abstractmethod
    def cancel(self) -> None:
        """Stop any in-flight speech."""


@dataclass
class TranscriptEntry:
    """One chunk of recognized speech."""

    text: str
    is_final: bool = True


class SpeechRecognizer(ABC):
    """Speech-to-text capability."""

    @abstractmethod
    def recognize(self) -> AsyncIterator[TranscriptEntry]:
        """Yield recognized entries in spoken order."""
