"""Recitation scoring against a record's answer segments.

WHY: After listening, the learner recites the answer (typed or spoken).
The checker tells them which segments they got and how close they were,
without requiring the recitation to follow the segment order.

HOW: The answer is segmented with the same delimiters the plan builder
uses. Each segment is scored against the ENTIRE recited text with the
Dice similarity; a segment is a hit when its score reaches the
threshold. CheckState holds the per-record recited-text buffer that
speech recognition appends to.

RULES:
- Whole-blob vs each-segment: no per-segment alignment is attempted
- hit ⇔ score >= threshold
- percentage rounds half up; 0 when the answer has no segments
- min/max scores are 0.0 when the answer has no segments
- CheckState resets whenever the active record changes
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional

from recite.config import DEFAULT_SENTENCE_DELIMITERS
from recite.core.models import Record, Settings
from recite.core.segmenter import segment
from recite.core.similarity import similarity


@dataclass
class CheckResult:
    """Per-segment and aggregate outcome of one recitation check."""

    per_segment_hit: List[bool]
    scores: List[float]
    hit_count: int
    total: int
    percentage: int
    min_score: float
    max_score: float
    threshold: float

    def summary(self) -> str:
        return "Hit {}/{} segments ({}%), threshold {:.2f}, similarity {:.2f}~{:.2f}".format(
            self.hit_count,
            self.total,
            self.percentage,
            self.threshold,
            self.min_score,
            self.max_score,
        )


def check(
    record: Record,
    recited_text: str,
    threshold: float,
    delimiters: str = DEFAULT_SENTENCE_DELIMITERS,
) -> CheckResult:
    """Score recited text against every segment of the record's answer.

    Args:
        record: The record being recited.
        recited_text: Everything the learner recited, as one string.
        threshold: Minimum similarity for a hit, 0–1.
        delimiters: Sentence delimiters from settings.

    Returns:
        CheckResult with one hit flag and score per segment.
    """
    segments = segment(record.answer_text, delimiters)
    scores = [similarity(recited_text or "", s) for s in segments]
    hits = [score >= threshold for score in scores]
    hit_count = sum(hits)
    total = len(segments)
    percentage = int(math.floor(hit_count * 100 / total + 0.5)) if total else 0
    return CheckResult(
        per_segment_hit=hits,
        scores=scores,
        hit_count=hit_count,
        total=total,
        percentage=percentage,
        min_score=min(scores) if scores else 0.0,
        max_score=max(scores) if scores else 0.0,
        threshold=threshold,
    )


def is_recite_check_passed(record: Optional[Record], delimiters: str = DEFAULT_SENTENCE_DELIMITERS) -> bool:
    """Gate used by the forced-check policy at the end of a plan.

    Only requires the answer to have at least one segment; similarity
    hits are not consulted. See DESIGN.md.
    """
    if record is None:
        return False
    return len(segment(record.answer_text, delimiters)) > 0


@dataclass
class CheckState:
    """Transient recitation scratch for the active record."""

    record_id: Optional[str] = None
    recited_text: str = ""
    last_result: Optional[CheckResult] = None
    utterances: List[str] = field(default_factory=list)

    def reset(self, record_id: Optional[str] = None) -> None:
        self.record_id = record_id
        self.recited_text = ""
        self.last_result = None
        self.utterances = []

    def append_utterance(self, text: str) -> None:
        """Append one finalized recognizer entry on its own line."""
        text = (text or "").strip()
        if not text:
            return
        self.utterances.append(text)
        if self.recited_text:
            self.recited_text = self.recited_text.rstrip() + "\n" + text
        else:
            self.recited_text = text

    def evaluate(self, record: Record, settings: Settings) -> CheckResult:
        self.last_result = check(
            record,
            self.recited_text,
            settings.threshold,
            settings.sentence_delimiters,
        )
        return self.last_result
