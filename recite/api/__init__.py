"""Soniox API client package for transcribing recorded recitations.

WHY: Spoken recitations must become text before the checker can score
them. This package holds all Soniox API communication.

RULES:
- All HTTP calls go through SonioxClient (no direct httpx usage elsewhere)
- Authentication is via Bearer token from config
- Always clean up files and transcriptions after processing
"""

from recite.api.client import SonioxClient
from recite.api.models import SonioxToken, TranscriptionStatus

__all__ = ["SonioxClient", "SonioxToken", "TranscriptionStatus"]
