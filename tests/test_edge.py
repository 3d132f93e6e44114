"""Tests for the edge-tts + ffplay speech backend.

WHY: The scheduler's completion signal is speak() returning. The backend
must map settings to edge-tts' percent strings, report a missing player
as fatal, and never leave temporary clips behind.

HOW: edge_tts.Communicate, shutil.which and asyncio.create_subprocess_exec
are monkeypatched so no network request is made and no process starts.

RULES:
- Nothing here plays audio or contacts the edge-tts service
"""

from __future__ import annotations

import asyncio
import os

import pytest

from recite.speech import edge as edge_module
from recite.speech.base import SpeechError, SpeechUnavailableError
from recite.speech.edge import EdgeSpeechSynthesizer, rate_to_edge, volume_to_edge


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeCommunicate:
    instances: list = []

    def __init__(self, text, voice, rate="+0%", volume="+0%"):
        self.text = text
        self.voice = voice
        self.rate = rate
        self.volume = volume
        self.saved_to = None
        FakeCommunicate.instances.append(self)

    async def save(self, path):
        self.saved_to = path
        with open(path, "wb") as f:
            f.write(b"ID3 fake mp3")


class EmptyCommunicate(FakeCommunicate):
    async def save(self, path):
        self.saved_to = path


class FailingCommunicate(FakeCommunicate):
    async def save(self, path):
        raise RuntimeError("service unreachable")


class FakeProcess:
    def __init__(self, returncode=0):
        self._exit_code = returncode
        self.returncode = None
        self.terminated = False

    async def wait(self):
        self.returncode = self._exit_code
        return self._exit_code

    def terminate(self):
        self.terminated = True


@pytest.fixture
def player(monkeypatch):
    """Pretend ffplay is installed and capture the command line."""
    FakeCommunicate.instances = []
    launched = {"args": None, "process": FakeProcess()}

    async def fake_exec(*args, **kwargs):
        launched["args"] = args
        return launched["process"]

    monkeypatch.setattr(edge_module.shutil, "which", lambda name: "/usr/bin/" + name)
    monkeypatch.setattr(edge_module.asyncio, "create_subprocess_exec", fake_exec)
    monkeypatch.setattr(edge_module.edge_tts, "Communicate", FakeCommunicate)
    return launched


# ---------------------------------------------------------------------------
# Percent conversion
# ---------------------------------------------------------------------------


class TestConversion:

    @pytest.mark.parametrize("rate, expected", [
        (1.0, "+0%"),
        (1.5, "+50%"),
        (0.5, "-50%"),
        (2.25, "+125%"),
    ])
    def test_rate(self, rate, expected):
        assert rate_to_edge(rate) == expected

    @pytest.mark.parametrize("volume, expected", [
        (1.0, "+0%"),
        (0.2, "-80%"),
        (0.0, "-100%"),
    ])
    def test_volume(self, volume, expected):
        assert volume_to_edge(volume) == expected


# ---------------------------------------------------------------------------
# EdgeSpeechSynthesizer
# ---------------------------------------------------------------------------


class TestEdgeSpeechSynthesizer:

    def test_unavailable_without_player(self, monkeypatch):
        monkeypatch.setattr(edge_module.shutil, "which", lambda name: None)
        synth = EdgeSpeechSynthesizer()
        assert synth.available is False
        with pytest.raises(SpeechUnavailableError, match="ffplay"):
            asyncio.run(synth.speak("你好"))

    def test_speak_renders_and_plays(self, player):
        synth = EdgeSpeechSynthesizer(voice="zh-CN-YunxiNeural")
        asyncio.run(synth.speak("你好", rate=1.5, volume=0.2))

        communicate = FakeCommunicate.instances[0]
        assert communicate.text == "你好"
        assert communicate.voice == "zh-CN-YunxiNeural"
        assert communicate.rate == "+50%"
        assert communicate.volume == "-80%"

        args = player["args"]
        assert args[0] == "/usr/bin/ffplay"
        assert "-autoexit" in args
        assert args[-1] == communicate.saved_to
        assert not os.path.exists(communicate.saved_to)

    def test_voice_override(self, player):
        asyncio.run(EdgeSpeechSynthesizer().speak("你好", voice="en-US-AriaNeural"))
        assert FakeCommunicate.instances[0].voice == "en-US-AriaNeural"

    def test_empty_clip_is_error(self, player, monkeypatch):
        monkeypatch.setattr(edge_module.edge_tts, "Communicate", EmptyCommunicate)
        with pytest.raises(SpeechError, match="0-byte"):
            asyncio.run(EdgeSpeechSynthesizer().speak("你好"))
        assert player["args"] is None

    def test_render_failure_is_error(self, player, monkeypatch):
        monkeypatch.setattr(edge_module.edge_tts, "Communicate", FailingCommunicate)
        with pytest.raises(SpeechError, match="service unreachable"):
            asyncio.run(EdgeSpeechSynthesizer().speak("你好"))

    def test_player_failure_is_error(self, player):
        player["process"] = FakeProcess(returncode=1)
        with pytest.raises(SpeechError, match="exited with code 1"):
            asyncio.run(EdgeSpeechSynthesizer().speak("你好"))
        assert not os.path.exists(FakeCommunicate.instances[0].saved_to)

    def test_cancel_without_process_is_safe(self):
        EdgeSpeechSynthesizer().cancel()
