"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation.

HOW: Records and settings mirror the document shape (camelCase aliases
on the wire, snake_case in Python). Playback state is exposed as a flat
snapshot of PlayerState. Every field carries a description.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Settings updates are partial; missing fields keep their stored value
- Clamping happens in core.models.Settings, not here
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class RecordCreate(BaseModel):
    """Body for creating a record."""

    question: str = Field(description="Prompt read before the answer.")
    answer_text: str = Field(alias="answerText", description="Answer text to memorize.")

    model_config = ConfigDict(populate_by_name=True)


class RecordUpdate(BaseModel):
    """Body for editing a record; omitted fields are unchanged."""

    question: Optional[str] = Field(default=None, description="New question text.")
    answer_text: Optional[str] = Field(
        default=None,
        alias="answerText",
        description="New answer text.",
    )

    model_config = ConfigDict(populate_by_name=True)


class RecordResponse(BaseModel):
    """One stored record."""

    id: str = Field(description="Record identifier.")
    question: str = Field(description="Prompt read before the answer.")
    answer_text: str = Field(alias="answerText", description="Answer text to memorize.")
    created_at: str = Field(alias="createdAt", description="Creation time (ISO 8601).")
    updated_at: str = Field(alias="updatedAt", description="Last edit time (ISO 8601).")
    current: bool = Field(default=False, description="True for the current record.")

    model_config = ConfigDict(populate_by_name=True)


class RecordListResponse(BaseModel):
    records: List[RecordResponse] = Field(description="Records in study order.")
    current_record_id: Optional[str] = Field(
        default=None,
        alias="currentRecordId",
        description="Identifier of the current record.",
    )

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class SettingsUpdate(BaseModel):
    """Partial settings update. Values are clamped into range on save."""

    group_size: Optional[int] = Field(default=None, alias="groupSize", description="Segments per group (1-10).")
    repeat_per_group: Optional[int] = Field(
        default=None, alias="repeatPerGroup", description="Rounds per group (1-20)."
    )
    review_prev_after_each: Optional[bool] = Field(
        default=None, alias="reviewPrevAfterEach", description="Review the previous record after the plan."
    )
    review_prev_repeat_count: Optional[int] = Field(
        default=None, alias="reviewPrevRepeatCount", description="Review rounds (1-5)."
    )
    sentence_delimiters: Optional[str] = Field(
        default=None, alias="sentenceDelimiters", description="Characters that end a segment."
    )
    full_read_before_groups: Optional[int] = Field(
        default=None, alias="fullReadBeforeGroups", description="Full reads before the groups (0-5)."
    )
    full_read_after_groups: Optional[int] = Field(
        default=None, alias="fullReadAfterGroups", description="Full reads after the groups (0-5)."
    )
    auto_play_next_qa: Optional[bool] = Field(
        default=None, alias="autoPlayNextQa", description="Continue with the next record when a plan ends."
    )
    force_recite_check: Optional[bool] = Field(
        default=None, alias="forceReciteCheck", description="Require a recitation check before moving on."
    )
    tts_enabled: Optional[bool] = Field(default=None, alias="ttsEnabled", description="Enable speech output.")
    tts_voice: Optional[str] = Field(default=None, alias="ttsVoice", description="Voice name; empty for default.")
    rate: Optional[float] = Field(default=None, description="Speech rate (0.5-4.0).")
    volume: Optional[float] = Field(default=None, description="Speech volume (0-1).")
    threshold: Optional[float] = Field(default=None, description="Similarity threshold for a hit (0-1).")

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------------


class PlaybackStartRequest(BaseModel):
    record_id: Optional[str] = Field(
        default=None,
        alias="recordId",
        description="Record to play; defaults to the current record.",
    )

    model_config = ConfigDict(populate_by_name=True)


class PlaybackStateResponse(BaseModel):
    """Snapshot of the playback scheduler."""

    status: str = Field(description="idle, running, paused or completed.")
    running: bool = Field(description="True while running or paused.")
    paused: bool = Field(description="True while paused.")
    current_record_id: Optional[str] = Field(default=None, description="Record of the step being spoken.")
    main_record_id: Optional[str] = Field(default=None, description="Record the session is studying.")
    step_index: int = Field(description="Index of the current step in the plan.")
    step_count: int = Field(description="Number of steps in the plan.")
    active_segment_index: Optional[int] = Field(default=None, description="Segment being spoken, if any.")
    review_mode: bool = Field(description="True while reviewing the previous record.")
    current_step: Optional[Dict[str, Any]] = Field(default=None, description="The step at step_index.")
    last_message: Optional[str] = Field(default=None, description="Most recent status message.")


class NavigationResponse(BaseModel):
    moved: bool = Field(description="False when there was no record in that direction.")
    current_record_id: Optional[str] = Field(
        default=None,
        alias="currentRecordId",
        description="Current record after the move.",
    )
    message: Optional[str] = Field(default=None, description="Status message from the move.")

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Recitation check
# ---------------------------------------------------------------------------


class CheckRequest(BaseModel):
    text: Optional[str] = Field(
        default=None,
        description="Recited text. When omitted, the accumulated utterances are checked.",
    )
    record_id: Optional[str] = Field(
        default=None,
        alias="recordId",
        description="Record to check against; defaults to the current record.",
    )

    model_config = ConfigDict(populate_by_name=True)


class UtteranceRequest(BaseModel):
    text: str = Field(description="One finalized recognized utterance.")


class UtteranceResponse(BaseModel):
    record_id: Optional[str] = Field(default=None, alias="recordId", description="Record the text belongs to.")
    recited_text: str = Field(alias="recitedText", description="All recited text so far.")

    model_config = ConfigDict(populate_by_name=True)


class CheckResponse(BaseModel):
    record_id: str = Field(alias="recordId", description="Record that was checked.")
    per_segment_hit: List[bool] = Field(alias="perSegmentHit", description="Hit flag per answer segment.")
    scores: List[float] = Field(description="Similarity score per answer segment.")
    hit_count: int = Field(alias="hitCount", description="Number of segments hit.")
    total: int = Field(description="Number of answer segments.")
    percentage: int = Field(description="Hit percentage, rounded half up.")
    min_score: float = Field(alias="minScore", description="Lowest segment score.")
    max_score: float = Field(alias="maxScore", description="Highest segment score.")
    threshold: float = Field(description="Threshold used for hits.")
    summary: str = Field(description="Human-readable summary.")

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Import / misc
# ---------------------------------------------------------------------------


class ImportResponse(BaseModel):
    imported: int = Field(description="Number of records imported.")


class ErrorResponse(BaseModel):
    """Standard error response body.

    WHY: Consistent error format across all endpoints makes client-side
    error handling simpler.
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
    speech_available: bool = Field(description="True when a speech backend is usable.")
