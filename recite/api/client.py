"""Async HTTP client for the Soniox speech-to-text API.

WHY: A learner can record their recitation instead of typing it. The
recording has to be transcribed before it can be scored, and the Soniox
async API does that well for Chinese and English. This module wraps the
upload → transcribe → poll → fetch → cleanup workflow behind one class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. SonioxClient is an
async context manager: enter it to get an authenticated client, exit to
close the connection pool. The expected answer text can be sent as
transcription context, which biases recognition towards the words the
learner is supposed to say.

RULES:
- Always use the async context manager (async with SonioxClient(...) as client:)
- Polling uses exponential backoff: 1s initial, 1.5x factor, 10s max, 10min timeout
- Context is validated before sending (max 10,000 chars)
- Always call cleanup() after processing to free Soniox storage
- transport is injectable so tests can use httpx.MockTransport
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import List, Optional

import httpx

from recite.api.models import SonioxToken, TranscriptionStatus, TranscriptResponse
from recite.config import SONIOX_BASE_URL, SONIOX_MODEL, load_api_key

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_POLL_INITIAL_INTERVAL_S = 1.0
_POLL_BACKOFF_FACTOR = 1.5
_POLL_MAX_INTERVAL_S = 10.0
_POLL_TIMEOUT_S = 10 * 60  # recitations are short

_CONTEXT_MAX_CHARS = 10_000


class SonioxAPIError(Exception):
    """Raised when the Soniox API returns an error response.

    RULES:
    - Always include status_code and message
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Soniox API error {status_code}: {message}")


class ContextTooLargeError(ValueError):
    """Raised when the answer text sent as context exceeds the size limit."""


class TranscriptionError(Exception):
    """Raised when a transcription job enters the "error" status."""


class TranscriptionTimeoutError(TimeoutError):
    """Raised when polling exceeds the maximum timeout."""


class SonioxClient:
    """Async client for the Soniox non-realtime transcription API.

    RULES:
    - Use as: async with SonioxClient() as client: ...
    - api_key defaults to load_api_key() from .env
    - base_url / model default to the config values
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        poll_interval_s: float = _POLL_INITIAL_INTERVAL_S,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or SONIOX_BASE_URL).rstrip("/")
        self._model = model or SONIOX_MODEL
        self._transport = transport
        self._poll_interval_s = poll_interval_s
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> SonioxClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=httpx.Timeout(120.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "SonioxClient must be used as an async context manager: "
                "async with SonioxClient() as client: ..."
            )
        return self._client

    # ------------------------------------------------------------------
    # Step 1: Upload file
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        file_path: Path,
        on_status: Optional[Callable[[str], None]] = None,
    ) -> str:
        """Upload a recitation recording and return the file_id.

        RULES:
        - Raises SonioxAPIError on non-2xx responses
        """
        client = self._ensure_client()
        if on_status:
            on_status("Uploading recording...")

        file_path = Path(file_path)
        with open(file_path, "rb") as f:
            resp = await client.post(
                "/files",
                files={"file": (file_path.name, f)},
            )

        if resp.status_code not in (200, 201):
            raise SonioxAPIError(resp.status_code, resp.text)

        return resp.json()["id"]

    # ------------------------------------------------------------------
    # Step 2: Create transcription
    # ------------------------------------------------------------------

    async def create_transcription(
        self,
        file_id: str,
        language_hints: Optional[List[str]] = None,
        expected_text: Optional[str] = None,
        on_status: Optional[Callable[[str], None]] = None,
    ) -> str:
        """Create a transcription job and return its id.

        WHY: The expected answer is the best possible vocabulary hint for
        a recitation; sending it as context.text improves accuracy on
        domain terms the learner is memorizing.

        RULES:
        - Raises ContextTooLargeError before any request if the context is too big
        - Raises SonioxAPIError on non-2xx responses
        """
        client = self._ensure_client()
        if on_status:
            on_status("Creating transcription...")

        body: dict = {
            "model": self._model,
            "file_id": file_id,
        }
        if language_hints:
            body["language_hints"] = language_hints
        if expected_text:
            _validate_context_size(expected_text)
            body["context"] = {"text": expected_text}

        resp = await client.post("/transcriptions", json=body)
        if resp.status_code not in (200, 201):
            raise SonioxAPIError(resp.status_code, resp.text)

        return resp.json()["id"]

    # ------------------------------------------------------------------
    # Step 3: Poll until complete
    # ------------------------------------------------------------------

    async def poll_until_complete(
        self,
        transcription_id: str,
        on_status: Optional[Callable[[str], None]] = None,
    ) -> TranscriptionStatus:
        """Poll a transcription job until it completes or fails.

        RULES:
        - Returns the status when it is "completed"
        - Raises TranscriptionError when status is "error"
        - Raises TranscriptionTimeoutError after _POLL_TIMEOUT_S
        """
        client = self._ensure_client()
        interval = self._poll_interval_s
        start_time = time.monotonic()

        while True:
            elapsed = time.monotonic() - start_time
            if elapsed > _POLL_TIMEOUT_S:
                raise TranscriptionTimeoutError(
                    f"Transcription {transcription_id} timed out after "
                    f"{elapsed:.0f}s (limit: {_POLL_TIMEOUT_S}s)"
                )

            resp = await client.get(f"/transcriptions/{transcription_id}")
            if resp.status_code != 200:
                raise SonioxAPIError(resp.status_code, resp.text)

            status = TranscriptionStatus.from_dict(resp.json())
            if status.status == "completed":
                if on_status:
                    on_status("Transcription complete.")
                return status

            if status.status == "error":
                raise TranscriptionError(
                    f"Transcription failed: {status.error_message}"
                )

            if on_status:
                on_status(f"Transcribing... ({int(elapsed)}s)")
            await asyncio.sleep(interval)
            interval = min(interval * _POLL_BACKOFF_FACTOR, _POLL_MAX_INTERVAL_S)

    # ------------------------------------------------------------------
    # Step 4: Fetch transcript
    # ------------------------------------------------------------------

    async def fetch_transcript(self, transcription_id: str) -> List[SonioxToken]:
        """Fetch the completed transcript tokens."""
        client = self._ensure_client()
        resp = await client.get(f"/transcriptions/{transcription_id}/transcript")
        if resp.status_code != 200:
            raise SonioxAPIError(resp.status_code, resp.text)

        return TranscriptResponse.from_dict(resp.json()).tokens

    # ------------------------------------------------------------------
    # Step 5: Cleanup
    # ------------------------------------------------------------------

    async def cleanup(self, transcription_id: Optional[str], file_id: Optional[str]) -> None:
        """Delete the transcription and uploaded file (best-effort)."""
        client = self._ensure_client()
        if transcription_id:
            try:
                await client.delete(f"/transcriptions/{transcription_id}")
            except httpx.HTTPError:
                logger.warning("Failed to delete transcription %s", transcription_id)
        if file_id:
            try:
                await client.delete(f"/files/{file_id}")
            except httpx.HTTPError:
                logger.warning("Failed to delete file %s", file_id)


def _validate_context_size(text: str) -> None:
    if len(text) > _CONTEXT_MAX_CHARS:
        raise ContextTooLargeError(
            f"Context size ({len(text):,} characters) exceeds the Soniox "
            f"limit of {_CONTEXT_MAX_CHARS:,} characters."
        )
