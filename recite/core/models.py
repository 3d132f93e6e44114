"""Record, settings, and playback step dataclasses.

WHY: Every part of the trainer, from the plan builder to the HTTP layer,
passes the same handful of structures around. Defining them
once, with their invariants enforced at construction, means no caller can
hand the plan builder an out-of-range group size or a half-parsed record.

HOW: Four types:
  Record:   one question/answer study unit
  Settings: process-wide training settings, clamped on every write
  Step:     one immutable "speak this text" unit of a playback plan
  Plan:     an ordered tuple of Steps

RULES:
- Settings numeric fields are clamped on construction AND on assignment
- Non-numeric input for a numeric setting falls back to that field's default
- Unknown document keys survive a load/save round trip via ``extra``
- Steps are frozen; a Plan is a tuple and is never reordered
- Document keys are camelCase (interchange shape); attributes are snake_case
"""

from __future__ import annotations

import enum
import math
import random
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from recite.config import DEFAULT_SENTENCE_DELIMITERS, SETTINGS_VERSION


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def new_record_id() -> str:
    """Generate a short, opaque, practically unique record id.

    Millisecond timestamp in base 36 followed by random base-36 digits.
    """
    stamp = _to_base36(int(time.time() * 1000))
    noise = "".join(random.choice(_BASE36) for _ in range(10))
    return stamp + noise


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------


@dataclass
class Record:
    """One question/answer study unit.

    WHY: The record is the unit the learner selects, plays, and recites.
    Its position in the ordered record list defines which record is
    "previous" (for review) and "next" (for auto-chaining).

    RULES:
    - id: opaque, unique, stable for the record's whole life
    - answer_text: plain text; the segmenter splits it into segments
    - created_at / updated_at: ISO-8601 UTC strings
    - extra: unknown document keys (e.g. rich-text HTML), kept verbatim
    """

    id: str
    question: str
    answer_text: str
    created_at: str
    updated_at: str
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, question: str, answer_text: str) -> Record:
        stamp = now_iso()
        return cls(
            id=new_record_id(),
            question=question,
            answer_text=answer_text,
            created_at=stamp,
            updated_at=stamp,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Record:
        """Parse a record from its document form.

        Missing ids are generated; missing timestamps default to now.
        """
        rest = dict(data)
        stamp = now_iso()
        record_id = str(rest.pop("id", "") or "") or new_record_id()
        question = str(rest.pop("question", "") or "")
        answer_text = str(rest.pop("answerText", "") or "")
        created_at = str(rest.pop("createdAt", "") or stamp)
        updated_at = str(rest.pop("updatedAt", "") or created_at)
        return cls(
            id=record_id,
            question=question,
            answer_text=answer_text,
            created_at=created_at,
            updated_at=updated_at,
            extra=rest,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "question": self.question,
            "answerText": self.answer_text,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        })
        return data


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

# Declared ranges, enforced on every write
_INT_RANGES: Dict[str, Tuple[int, int]] = {
    "group_size": (1, 10),
    "repeat_per_group": (1, 20),
    "review_prev_repeat_count": (1, 5),
    "full_read_before_groups": (0, 5),
    "full_read_after_groups": (0, 5),
}

_FLOAT_RANGES: Dict[str, Tuple[float, float]] = {
    "rate": (0.5, 4.0),
    "volume": (0.0, 1.0),
    "threshold": (0.0, 1.0),
}

_BOOL_FIELDS = frozenset({
    "review_prev_after_each",
    "auto_play_next_qa",
    "force_recite_check",
    "tts_enabled",
})

_FIELD_DEFAULTS: Dict[str, Any] = {
    "group_size": 3,
    "repeat_per_group": 4,
    "review_prev_after_each": True,
    "review_prev_repeat_count": 1,
    "sentence_delimiters": DEFAULT_SENTENCE_DELIMITERS,
    "full_read_before_groups": 1,
    "full_read_after_groups": 1,
    "auto_play_next_qa": False,
    "force_recite_check": False,
    "tts_enabled": True,
    "tts_voice": "",
    "rate": 1.0,
    "volume": 1.0,
    "threshold": 0.65,
}

# Attribute name → document key
_DOCUMENT_KEYS: Dict[str, str] = {
    "group_size": "groupSize",
    "repeat_per_group": "repeatPerGroup",
    "review_prev_after_each": "reviewPrevAfterEach",
    "review_prev_repeat_count": "reviewPrevRepeatCount",
    "sentence_delimiters": "sentenceDelimiters",
    "full_read_before_groups": "fullReadBeforeGroups",
    "full_read_after_groups": "fullReadAfterGroups",
    "auto_play_next_qa": "autoPlayNextQa",
    "force_recite_check": "forceReciteCheck",
    "tts_enabled": "ttsEnabled",
    "tts_voice": "ttsVoice",
    "rate": "rate",
    "volume": "volume",
    "threshold": "threshold",
}

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})


def _coerce_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def _coerce_float(value: Any, default: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result):
        return default
    return result


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def clamp(value, low, high):
    return min(max(value, low), high)


@dataclass
class Settings:
    """Process-wide training settings.

    WHY: The plan builder and scheduler trust these values blindly, so the
    range invariants are enforced here, at the only place values enter.

    HOW: ``__setattr__`` clamps numeric fields and normalizes the rest;
    the dataclass ``__init__`` goes through it too, so construction,
    ``from_dict()`` and later assignment all obey the same rules.

    RULES:
    - group_size 1–10, repeat_per_group 1–20, review_prev_repeat_count 1–5
    - full_read_before_groups / full_read_after_groups 0–5
    - rate 0.5–4, volume 0–1, threshold 0–1
    - sentence_delimiters has all whitespace removed
    - tts_voice is a backend voice hint; "" means the backend default
    """

    group_size: int = 3
    repeat_per_group: int = 4
    review_prev_after_each: bool = True
    review_prev_repeat_count: int = 1
    sentence_delimiters: str = DEFAULT_SENTENCE_DELIMITERS
    full_read_before_groups: int = 1
    full_read_after_groups: int = 1
    auto_play_next_qa: bool = False
    force_recite_check: bool = False
    tts_enabled: bool = True
    tts_voice: str = ""
    rate: float = 1.0
    volume: float = 1.0
    threshold: float = 0.65
    version: int = SETTINGS_VERSION
    extra: Dict[str, Any] = field(default_factory=dict)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _INT_RANGES:
            low, high = _INT_RANGES[name]
            value = clamp(_coerce_int(value, _FIELD_DEFAULTS[name]), low, high)
        elif name in _FLOAT_RANGES:
            low, high = _FLOAT_RANGES[name]
            value = clamp(_coerce_float(value, _FIELD_DEFAULTS[name]), low, high)
        elif name in _BOOL_FIELDS:
            value = _coerce_bool(value)
        elif name == "sentence_delimiters":
            value = re.sub(r"\s+", "", str(value or ""))
        elif name == "tts_voice":
            value = str(value or "").strip()
        object.__setattr__(self, name, value)

    def update(self, changes: Dict[str, Any]) -> Settings:
        """Apply document-keyed or attribute-keyed changes in place.

        Unknown keys are ignored so a stale client cannot inject fields.
        """
        by_key = {key: attr for attr, key in _DOCUMENT_KEYS.items()}
        for name, value in changes.items():
            attr = by_key.get(name, name)
            if attr in _DOCUMENT_KEYS:
                setattr(self, attr, value)
        return self

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Settings:
        """Merge a stored settings dict with defaults, field by field.

        WHY: Stored documents may predate a field, carry garbage, or carry
        keys a newer version wrote. A shallow merge would let bad values
        through and lose nothing; this does neither.

        RULES:
        - Each known field is taken from data when present, else defaulted
        - Every taken value passes through the clamping setter
        - Unknown keys are kept in ``extra``
        - version is always the current SETTINGS_VERSION after a load
        """
        remaining = dict(data or {})
        remaining.pop("version", None)
        values: Dict[str, Any] = {}
        for attr, key in _DOCUMENT_KEYS.items():
            if key in remaining:
                values[attr] = remaining.pop(key)
            else:
                values[attr] = _FIELD_DEFAULTS[attr]
        return cls(**values, version=SETTINGS_VERSION, extra=remaining)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        for attr, key in _DOCUMENT_KEYS.items():
            data[key] = getattr(self, attr)
        data["version"] = self.version
        return data


# ---------------------------------------------------------------------------
# Playback steps
# ---------------------------------------------------------------------------


class FullReadPhase(str, enum.Enum):
    """Where a full-read bookend step sits relative to the group steps."""

    BEFORE = "before"
    AFTER = "after"
    NONE = "none"


@dataclass(frozen=True)
class Step:
    """One atomic "speak this text" unit of a playback plan.

    RULES:
    - kind is always "speak"
    - Question and full-read steps carry None for group/round/index fields
    - global_segment_index is the segment's ordinal within its record
    - review is True only for steps replaying the previous record
    """

    record_id: str
    text: str
    kind: str = "speak"
    is_question: bool = False
    is_full_read: bool = False
    full_read_phase: FullReadPhase = FullReadPhase.NONE
    review: bool = False
    group_index: Optional[int] = None
    group_count: Optional[int] = None
    round: Optional[int] = None
    round_count: Optional[int] = None
    global_segment_index: Optional[int] = None
    segment_index_in_group: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recordId": self.record_id,
            "text": self.text,
            "kind": self.kind,
            "isQuestion": self.is_question,
            "isFullRead": self.is_full_read,
            "fullReadPhase": self.full_read_phase.value,
            "review": self.review,
            "groupIndex": self.group_index,
            "groupCount": self.group_count,
            "round": self.round,
            "roundCount": self.round_count,
            "globalSegmentIndex": self.global_segment_index,
            "segmentIndexInGroup": self.segment_index_in_group,
        }


Plan = Tuple[Step, ...]
