"""Recognize recorded recitations and feed them to the checker.

WHY: The checker scores text; learners often speak. This module turns a
recording into TranscriptEntry objects and appends the finalized ones
to the active record's CheckState.

HOW: SonioxFileRecognizer drives SonioxClient through the full async
workflow for one audio file and splits the returned tokens into
sentences, yielding one final entry per sentence. collect_recitation()
consumes any SpeechRecognizer and appends final entries to a CheckState.

RULES:
- Only is_final entries are appended to the recited-text buffer
- Translation tokens are ignored
- Soniox resources are cleaned up even when transcription fails
- The recording's extension must be in SUPPORTED_AUDIO_FORMATS
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import AsyncIterator, List, Optional

from recite.api.client import SonioxClient
from recite.api.models import SonioxToken
from recite.config import RECITE_LANGUAGE, SUPPORTED_AUDIO_FORMATS
from recite.core.checker import CheckState
from recite.speech.base import SpeechRecognizer, TranscriptEntry

logger = logging.getLogger(__name__)

_SENTENCE_END = frozenset("。！？!?.")


def tokens_to_sentences(tokens: List[SonioxToken]) -> List[str]:
    """Join token texts and cut after each sentence-ending mark."""
    sentences: List[str] = []
    current = ""
    for token in tokens:
        if token.translation_status == "translation":
            continue
        current += token.text
        if token.text.strip() and token.text.strip()[-1] in _SENTENCE_END:
            if current.strip():
                sentences.append(current.strip())
            current = ""
    if current.strip():
        sentences.append(current.strip())
    return sentences


class SonioxFileRecognizer(SpeechRecognizer):
    """Recognize one recorded recitation file with the Soniox async API."""

    def __init__(
        self,
        audio_path: Path,
        expected_text: Optional[str] = None,
        language: str = RECITE_LANGUAGE,
        client_factory: Callable[[], SonioxClient] = SonioxClient,
        on_status: Optional[Callable[[str], None]] = None,
    ) -> None:
        audio_path = Path(audio_path)
        if audio_path.suffix.lower() not in SUPPORTED_AUDIO_FORMATS:
            raise ValueError(
                "Unsupported recording type '{}'. Supported formats: {}".format(
                    audio_path.suffix, ", ".join(sorted(SUPPORTED_AUDIO_FORMATS))
                )
            )
        self._audio_path = audio_path
        self._expected_text = expected_text
        self._language = language
        self._client_factory = client_factory
        self._on_status = on_status

    async def recognize(self) -> AsyncIterator[TranscriptEntry]:
        file_id = None
        transcription_id = None
        async with self._client_factory() as client:
            try:
                file_id = await client.upload_file(self._audio_path, on_status=self._on_status)
                transcription_id = await client.create_transcription(
                    file_id=file_id,
                    language_hints=[self._language],
                    expected_text=self._expected_text,
                    on_status=self._on_status,
                )
                await client.poll_until_complete(transcription_id, on_status=self._on_status)
                tokens = await client.fetch_transcript(transcription_id)
            finally:
                await client.cleanup(transcription_id, file_id)

        for sentence in tokens_to_sentences(tokens):
            yield TranscriptEntry(text=sentence, is_final=True)


async def collect_recitation(recognizer: SpeechRecognizer, check_state: CheckState) -> int:
    """Append every final entry from recognizer to check_state.

    Returns:
        Number of entries appended.
    """
    count = 0
    async for entry in recognizer.recognize():
        if not entry.is_final:
            continue
        check_state.append_utterance(entry.text)
        count += 1
    logger.info("Collected %d recognized entries for record %s", count, check_state.record_id)
    return count
