"""Text-to-speech via edge-tts, played through ffplay.

WHY: The scheduler needs an engine that actually makes sound and reports
when it is done. edge-tts gives good multilingual neural voices without
an API key; ffplay (shipped with ffmpeg) plays the rendered clip and
exits when it finishes, which is exactly the completion signal we need.

HOW: speak() renders the text to a temporary MP3 with
edge_tts.Communicate, then runs ffplay as an asyncio subprocess and
awaits its exit. cancel() terminates the running ffplay process, which
makes the pending speak() return early.

RULES:
- ``available`` is False when ffplay is not on PATH
- speak() raises SpeechUnavailableError when ffplay is missing
- A 0-byte render, an edge-tts failure, or a non-zero ffplay exit that
  was not caused by cancel() raises SpeechError
- rate 1.0 → "+0%", 1.5 → "+50%"; volume 1.0 → "+0%", 0.2 → "-80%"
- Temporary clips are always removed
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from typing import Optional

import edge_tts

from recite.config import RECITE_FFPLAY, RECITE_TTS_VOICE
from recite.speech.base import SpeechError, SpeechSynthesizer, SpeechUnavailableError

logger = logging.getLogger(__name__)


def rate_to_edge(rate: float) -> str:
    """Convert a rate multiplier into edge-tts' relative percent string."""
    return "{:+d}%".format(int(round((rate - 1.0) * 100)))


def volume_to_edge(volume: float) -> str:
    """Convert a 0–1 volume into edge-tts' relative percent string."""
    return "{:+d}%".format(int(round((volume - 1.0) * 100)))


class EdgeSpeechSynthesizer(SpeechSynthesizer):
    """edge-tts renderer with ffplay playback."""

    def __init__(self, voice: str = RECITE_TTS_VOICE, player: str = RECITE_FFPLAY) -> None:
        self._voice = voice
        self._player = player
        self._process: Optional[asyncio.subprocess.Process] = None
        self._cancelled = False

    @property
    def available(self) -> bool:
        return shutil.which(self._player) is not None

    async def speak(
        self,
        text: str,
        rate: float = 1.0,
        volume: float = 1.0,
        voice: Optional[str] = None,
    ) -> None:
        player_path = shutil.which(self._player)
        if player_path is None:
            raise SpeechUnavailableError(
                "'{}' not found. Install ffmpeg to enable playback.".format(self._player)
            )

        self._cancelled = False
        fd, clip_path = tempfile.mkstemp(prefix="recite_tts_", suffix=".mp3")
        os.close(fd)
        try:
            communicate = edge_tts.Communicate(
                text,
                voice or self._voice,
                rate=rate_to_edge(rate),
                volume=volume_to_edge(volume),
            )
            try:
                await communicate.save(clip_path)
            except Exception as exc:
                raise SpeechError("edge-tts failed for {!r}: {}".format(text[:50], exc)) from exc

            if os.path.getsize(clip_path) == 0:
                raise SpeechError("edge-tts produced a 0-byte clip for {!r}".format(text[:50]))

            if self._cancelled:
                return

            self._process = await asyncio.create_subprocess_exec(
                player_path,
                "-nodisp",
                "-autoexit",
                "-loglevel", "quiet",
                clip_path,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            try:
                returncode = await self._process.wait()
            except asyncio.CancelledError:
                self._terminate()
                raise
            finally:
                self._process = None

            if returncode != 0 and not self._cancelled:
                raise SpeechError("{} exited with code {}".format(self._player, returncode))
        finally:
            try:
                os.remove(clip_path)
            except OSError:
                logger.warning("Failed to remove temporary clip: %s", clip_path)

    def cancel(self) -> None:
        self._cancelled = True
        self._terminate()

    def _terminate(self) -> None:
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
