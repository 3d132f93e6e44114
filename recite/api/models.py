"""Soniox async API response dataclasses.

WHY: Recognizing a recorded recitation returns flat JSON for the job
status and the transcript tokens. Typed dataclasses make the fields the
recognizer relies on explicit and catch shape mismatches early.

HOW: Each dataclass maps to one Soniox JSON object and has a from_dict()
factory. Only the fields recitation checking needs are kept.

RULES:
- SonioxToken.text keeps its leading space; joining texts rebuilds the transcript
- translation_status is None unless translation was requested
- TranscriptionStatus.status is one of "queued", "processing", "completed", "error"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass
class SonioxToken:
    """A single token from the transcript response."""

    text: str
    confidence: float
    start_ms: Optional[int] = None
    end_ms: Optional[int] = None
    language: Optional[str] = None
    translation_status: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> SonioxToken:
        return cls(
            text=data["text"],
            confidence=data.get("confidence", 1.0),
            start_ms=data.get("start_ms"),
            end_ms=data.get("end_ms"),
            language=data.get("language"),
            translation_status=data.get("translation_status"),
        )


@dataclass
class TranscriptionStatus:
    """Status response from polling GET /transcriptions/{id}.

    RULES:
    - error_message is only present when status is "error"
    """

    id: str
    status: str
    error_message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> TranscriptionStatus:
        return cls(
            id=data["id"],
            status=data["status"],
            error_message=data.get("error_message"),
        )


@dataclass
class TranscriptResponse:
    """Transcript response from GET /transcriptions/{id}/transcript."""

    id: str
    text: str
    tokens: List[SonioxToken]

    @classmethod
    def from_dict(cls, data: dict) -> TranscriptResponse:
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            tokens=[SonioxToken.from_dict(t) for t in data.get("tokens", [])],
        )
