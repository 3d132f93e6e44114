"""Shared test fixtures for the recite test suite.

WHY: Scheduler, store and server tests all need the same sample records
and a speech backend that makes no sound. Centralizing them here keeps
every test module on the same data.

HOW: FakeSynthesizer records every spoken text and can be told to fail,
to report itself unavailable, or to block until cancelled. Store
fixtures are in-memory (path=None) unless a test needs a file.

RULES:
- No test touches the network, ffplay, or edge-tts
- Sample answers use Chinese sentence delimiters so segmenting is exact
- Every store fixture starts without the seeded example record
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

import pytest

from recite.core.models import Record
from recite.speech.base import SpeechError, SpeechSynthesizer, SpeechUnavailableError
from recite.store.document import DocumentStore


# ---------------------------------------------------------------------------
# Fake speech backend
# ---------------------------------------------------------------------------


class FakeSynthesizer(SpeechSynthesizer):
    """In-memory speech backend.

    Attributes:
        spoken: Every text passed to speak(), in call order.
        cancel_calls: Number of cancel() calls.
        block: When True, speak() waits until the scheduler gives up on it.
        fail_on: Texts whose speak() raises SpeechError.
        unavailable_on: Texts whose speak() raises SpeechUnavailableError.
        on_speak: Optional callback run with each text before speaking it.
    """

    def __init__(self, available: bool = True, block: bool = False) -> None:
        self._available = available
        self.block = block
        self.spoken: List[str] = []
        self.calls: List[dict] = []
        self.cancel_calls = 0
        self.on_speak = None
        self.fail_on: set = set()
        self.unavailable_on: set = set()

    @property
    def available(self) -> bool:
        return self._available

    async def speak(
        self,
        text: str,
        rate: float = 1.0,
        volume: float = 1.0,
        voice: Optional[str] = None,
    ) -> None:
        self.spoken.append(text)
        self.calls.append({"text": text, "rate": rate, "volume": volume, "voice": voice})
        if self.on_speak is not None:
            self.on_speak(text)
        if text in self.unavailable_on:
            raise SpeechUnavailableError("speech backend went away")
        if text in self.fail_on:
            raise SpeechError("could not speak {!r}".format(text))
        if self.block:
            await asyncio.Event().wait()
        await asyncio.sleep(0)

    def cancel(self) -> None:
        self.cancel_calls += 1


# ---------------------------------------------------------------------------
# Sample records
# ---------------------------------------------------------------------------

ANSWER_FIVE = "甲一。乙二。丙三。丁四。戊五。"
ANSWER_TWO = "春眠不觉晓。处处闻啼鸟。"


def make_record(record_id: str, question: str, answer: str) -> Record:
    return Record(
        id=record_id,
        question=question,
        answer_text=answer,
        created_at="2024-01-01T00:00:00.000Z",
        updated_at="2024-01-01T00:00:00.000Z",
    )


@pytest.fixture
def fake_synth():
    return FakeSynthesizer()


@pytest.fixture
def record_a():
    return make_record("rec-a", "问题A", ANSWER_FIVE)


@pytest.fixture
def record_b():
    return make_record("rec-b", "问题B", ANSWER_TWO)


@pytest.fixture
def empty_store():
    return DocumentStore(path=None, seed_example=False)


@pytest.fixture
def store(record_a, record_b):
    """In-memory store holding [rec-a, rec-b] in that order, rec-a current."""
    s = DocumentStore(path=None, seed_example=False)
    # put() inserts at the front, so add in reverse order
    s.put(record_b)
    s.put(record_a)
    s.set_current(record_a.id)
    return s


@pytest.fixture
def sample_document():
    """A complete, valid export document with two records."""
    return {
        "version": 1,
        "exportedAt": "2024-01-02T03:04:05.000Z",
        "data": {
            "qas": [
                {
                    "id": "doc-1",
                    "question": "第一题",
                    "answerText": ANSWER_FIVE,
                    "createdAt": "2024-01-01T00:00:00.000Z",
                    "updatedAt": "2024-01-01T00:00:00.000Z",
                },
                {
                    "id": "doc-2",
                    "question": "第二题",
                    "answerText": ANSWER_TWO,
                    "createdAt": "2024-01-01T00:00:00.000Z",
                    "updatedAt": "2024-01-01T00:00:00.000Z",
                    "answerHtml": "<p>春眠不觉晓</p>",
                },
            ],
            "settings": {"groupSize": 2, "repeatPerGroup": 3, "futureOption": "kept"},
            "progress": {"currentRecordId": "doc-2"},
        },
    }
