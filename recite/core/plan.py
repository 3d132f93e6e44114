"""Playback plan construction and record adjacency queries.

WHY: The repetition discipline (small groups, each repeated several
times before moving on, bookended by full reads, followed by a short
review of the previous record) is the heart of the trainer. Encoding it
as a flat, precomputed list of steps lets the scheduler stay a dumb
cursor over that list: pausing, resuming and stopping never need to know
why a step is where it is.

HOW: build_group_steps() emits the group × round × segment triple loop
for one record. build_plan() wraps those steps with full-read bookends
and a question announcement, then appends the previous record's review
rounds. previous_record() / next_record() derive adjacency from list
position.

RULES:
- Order inside a group is round-major: g0r0 s…, g0r1 s…, then g1r0 s…
- Full-read steps come in (question, full answer) pairs
- One question-announcement step precedes the group steps
- Review keeps only rounds < review_prev_repeat_count, all tagged review
- Adjacency is positional; no prev/next pointers are ever stored
- The returned plan is a tuple and is never reordered
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from recite.core.models import FullReadPhase, Plan, Record, Settings, Step
from recite.core.segmenter import chunk, segment


def build_group_steps(record: Record, settings: Settings, review: bool = False) -> List[Step]:
    """Emit the group/round/segment steps for one record.

    Args:
        record: The record whose answer is segmented and grouped.
        settings: Supplies delimiters, group size and round count.
        review: Tag every emitted step as a review step.

    Returns:
        Steps ordered group-major, then round, then segment.
    """
    segments = segment(record.answer_text, settings.sentence_delimiters)
    group_size = settings.group_size
    round_count = settings.repeat_per_group
    groups = chunk(segments, group_size)

    steps: List[Step] = []
    for g, group in enumerate(groups):
        for r in range(round_count):
            for s, text in enumerate(group):
                steps.append(Step(
                    record_id=record.id,
                    text=text,
                    review=review,
                    group_index=g,
                    group_count=len(groups),
                    round=r,
                    round_count=round_count,
                    global_segment_index=g * group_size + s,
                    segment_index_in_group=s,
                ))
    return steps


def _full_read_steps(record: Record, count: int, phase: FullReadPhase) -> List[Step]:
    steps: List[Step] = []
    for _ in range(count):
        steps.append(Step(
            record_id=record.id,
            text=record.question,
            is_question=True,
            is_full_read=True,
            full_read_phase=phase,
        ))
        steps.append(Step(
            record_id=record.id,
            text=record.answer_text,
            is_full_read=True,
            full_read_phase=phase,
        ))
    return steps


def build_plan(
    record: Record,
    settings: Settings,
    previous_record: Optional[Record] = None,
) -> Plan:
    """Build the full playback plan for one session on one record.

    Args:
        record: The record being studied.
        settings: Training settings (already clamped).
        previous_record: The record before this one in list order, if any.

    Returns:
        The ordered, immutable plan.
    """
    steps: List[Step] = []
    steps.extend(_full_read_steps(record, settings.full_read_before_groups, FullReadPhase.BEFORE))
    steps.append(Step(record_id=record.id, text=record.question, is_question=True))
    steps.extend(build_group_steps(record, settings))
    steps.extend(_full_read_steps(record, settings.full_read_after_groups, FullReadPhase.AFTER))

    if settings.review_prev_after_each and previous_record is not None:
        steps.append(Step(
            record_id=previous_record.id,
            text=previous_record.question,
            is_question=True,
            review=True,
        ))
        review_rounds = settings.review_prev_repeat_count
        steps.extend(
            step for step in build_group_steps(previous_record, settings, review=True)
            if step.round < review_rounds
        )

    return tuple(steps)


# ---------------------------------------------------------------------------
# Adjacency
# ---------------------------------------------------------------------------


def _index_of(records: Sequence[Record], record_id: Optional[str]) -> int:
    for i, record in enumerate(records):
        if record.id == record_id:
            return i
    return -1


def previous_record(records: Sequence[Record], record_id: Optional[str]) -> Optional[Record]:
    """The record immediately before record_id, or None at the head / if absent."""
    idx = _index_of(records, record_id)
    if idx <= 0:
        return None
    return records[idx - 1]


def next_record(records: Sequence[Record], record_id: Optional[str]) -> Optional[Record]:
    """The record immediately after record_id, or None at the tail / if absent."""
    idx = _index_of(records, record_id)
    if idx < 0 or idx >= len(records) - 1:
        return None
    return records[idx + 1]
