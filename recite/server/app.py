"""FastAPI application for records, settings, playback and checking.

WHY: A browser page or any other client needs to manage the record list,
tune settings, drive playback and submit recitations without embedding
the scheduler itself. FastAPI gives request validation and OpenAPI docs
for free.

HOW: One module-level PlaybackScheduler (wrapping the DocumentStore and
an EdgeSpeechSynthesizer) is shared by all endpoints. Playback commands
run on the server's event loop, so the scheduler's loop task lives there
too. Endpoints are grouped by tags: records, settings, playback, check,
document, health.

RULES:
- All endpoints have OpenAPI descriptions and ErrorResponse error models
- KeyError (unknown record) → 404
- PlaybackConfigurationError → 409
- DocumentFormatError → 422
- Endpoints reach the store through scheduler.store (one owner)
- Playback is stopped on shutdown
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import Response

from recite import __version__
from recite.config import RECITE_DATA_PATH
from recite.core.checker import check
from recite.core.models import Record
from recite.player.scheduler import PlaybackConfigurationError, PlaybackScheduler
from recite.server.models import (
    CheckRequest,
    CheckResponse,
    ErrorResponse,
    HealthResponse,
    ImportResponse,
    NavigationResponse,
    PlaybackStartRequest,
    PlaybackStateResponse,
    RecordCreate,
    RecordListResponse,
    RecordResponse,
    RecordUpdate,
    SettingsUpdate,
    UtteranceRequest,
    UtteranceResponse,
)
from recite.speech.edge import EdgeSpeechSynthesizer
from recite.store.document import DocumentFormatError, DocumentStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and scheduler setup
# ---------------------------------------------------------------------------

scheduler = PlaybackScheduler(DocumentStore(RECITE_DATA_PATH), EdgeSpeechSynthesizer())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Stop any running playback on shutdown."""
    yield
    scheduler.stop()


app = FastAPI(
    lifespan=lifespan,
    title="Recite API",
    description=(
        "REST API for a recitation trainer: manage question/answer records, "
        "play them back in small repeated groups through text-to-speech, "
        "and score recitations against the answer."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Record not found"}}
_CONFLICT = {409: {"model": ErrorResponse, "description": "Playback cannot run with current settings"}}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record_to_response(record: Record) -> RecordResponse:
    return RecordResponse(
        id=record.id,
        question=record.question,
        answer_text=record.answer_text,
        created_at=record.created_at,
        updated_at=record.updated_at,
        current=record.id == scheduler.store.current_record_id,
    )


def _require_record(record_id: str) -> Record:
    try:
        return scheduler.store.require(record_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record '{}' not found".format(record_id))


def _state_response() -> PlaybackStateResponse:
    return PlaybackStateResponse(**scheduler.snapshot())


def _navigation_response(record: Optional[Record]) -> NavigationResponse:
    return NavigationResponse(
        moved=record is not None,
        current_record_id=scheduler.store.current_record_id,
        message=scheduler.state.last_message,
    )


# ---------------------------------------------------------------------------
# Endpoints: Records
# ---------------------------------------------------------------------------


@app.get(
    "/records",
    response_model=RecordListResponse,
    tags=["records"],
    summary="List records",
    description="All records in study order, with the current record marked.",
)
async def list_records() -> RecordListResponse:
    store = scheduler.store
    return RecordListResponse(
        records=[_record_to_response(r) for r in store.list()],
        current_record_id=store.current_record_id,
    )


@app.post(
    "/records",
    response_model=RecordResponse,
    status_code=201,
    tags=["records"],
    summary="Create a record",
    description="New records are inserted at the front of the list.",
)
async def create_record(body: RecordCreate) -> RecordResponse:
    record = scheduler.store.put(Record.new(body.question, body.answer_text))
    return _record_to_response(record)


@app.get(
    "/records/{record_id}",
    response_model=RecordResponse,
    tags=["records"],
    summary="Get a record",
    responses=_NOT_FOUND,
)
async def get_record(record_id: str) -> RecordResponse:
    return _record_to_response(_require_record(record_id))


@app.put(
    "/records/{record_id}",
    response_model=RecordResponse,
    tags=["records"],
    summary="Edit a record",
    description="Only the fields present in the body are changed.",
    responses=_NOT_FOUND,
)
async def update_record(record_id: str, body: RecordUpdate) -> RecordResponse:
    record = _require_record(record_id)
    if body.question is not None:
        record.question = body.question
    if body.answer_text is not None:
        record.answer_text = body.answer_text
    return _record_to_response(scheduler.store.put(record))


@app.delete(
    "/records/{record_id}",
    status_code=204,
    tags=["records"],
    summary="Delete a record",
    description="Deleting the current record makes its neighbour current.",
    responses=_NOT_FOUND,
)
async def delete_record(record_id: str) -> Response:
    if scheduler.state.current_record_id == record_id and scheduler.state.running:
        scheduler.stop()
    if not scheduler.store.delete(record_id):
        raise HTTPException(status_code=404, detail="Record '{}' not found".format(record_id))
    return Response(status_code=204)


@app.post(
    "/records/{record_id}/select",
    response_model=NavigationResponse,
    tags=["records"],
    summary="Make a record current",
    description="Stops playback and resets the recitation buffer.",
    responses=_NOT_FOUND,
)
async def select_record(record_id: str) -> NavigationResponse:
    try:
        record = scheduler.select_record(record_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record '{}' not found".format(record_id))
    return _navigation_response(record)


# ---------------------------------------------------------------------------
# Endpoints: Settings
# ---------------------------------------------------------------------------


@app.get(
    "/settings",
    response_model=Dict[str, Any],
    tags=["settings"],
    summary="Get settings",
)
async def get_settings() -> Dict[str, Any]:
    return scheduler.store.load_settings().to_dict()


@app.put(
    "/settings",
    response_model=Dict[str, Any],
    tags=["settings"],
    summary="Update settings",
    description="Partial update. Out-of-range values are clamped, not rejected.",
)
async def update_settings(body: SettingsUpdate) -> Dict[str, Any]:
    store = scheduler.store
    settings = store.load_settings()
    settings.update(body.model_dump(exclude_none=True))
    return store.save_settings(settings).to_dict()


# ---------------------------------------------------------------------------
# Endpoints: Playback
# ---------------------------------------------------------------------------


@app.post(
    "/playback/start",
    response_model=PlaybackStateResponse,
    tags=["playback"],
    summary="Start playback",
    description="Builds a plan for the record and starts speaking it. Returns immediately.",
    responses={**_NOT_FOUND, **_CONFLICT},
)
async def start_playback(
    body: Optional[PlaybackStartRequest] = Body(default=None),
) -> PlaybackStateResponse:
    record_id = body.record_id if body is not None else None
    try:
        scheduler.start(record_id)
    except PlaybackConfigurationError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except KeyError:
        raise HTTPException(status_code=404, detail="Record '{}' not found".format(record_id))
    return _state_response()


@app.post(
    "/playback/pause",
    response_model=PlaybackStateResponse,
    tags=["playback"],
    summary="Pause playback",
    description="No effect unless playback is running.",
)
async def pause_playback() -> PlaybackStateResponse:
    scheduler.pause()
    return _state_response()


@app.post(
    "/playback/resume",
    response_model=PlaybackStateResponse,
    tags=["playback"],
    summary="Resume playback",
    description="Continues at the interrupted step. No effect unless paused.",
    responses=_CONFLICT,
)
async def resume_playback() -> PlaybackStateResponse:
    try:
        scheduler.resume()
    except PlaybackConfigurationError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return _state_response()


@app.post(
    "/playback/stop",
    response_model=PlaybackStateResponse,
    tags=["playback"],
    summary="Stop playback",
)
async def stop_playback() -> PlaybackStateResponse:
    scheduler.stop()
    return _state_response()


@app.get(
    "/playback",
    response_model=PlaybackStateResponse,
    tags=["playback"],
    summary="Playback status",
)
async def playback_status() -> PlaybackStateResponse:
    return _state_response()


@app.post(
    "/navigation/next",
    response_model=NavigationResponse,
    tags=["playback"],
    summary="Go to the next record",
    description="Stops playback. moved is false at the last record.",
)
async def goto_next() -> NavigationResponse:
    return _navigation_response(scheduler.goto_next())


@app.post(
    "/navigation/previous",
    response_model=NavigationResponse,
    tags=["playback"],
    summary="Go to the previous record",
    description="Stops playback. moved is false at the first record.",
)
async def goto_previous() -> NavigationResponse:
    return _navigation_response(scheduler.goto_previous())


# ---------------------------------------------------------------------------
# Endpoints: Recitation check
# ---------------------------------------------------------------------------


@app.post(
    "/check/utterances",
    response_model=UtteranceResponse,
    tags=["check"],
    summary="Append a recognized utterance",
    description="Adds one finalized utterance to the current record's recitation buffer.",
    responses={**_NOT_FOUND},
)
async def append_utterance(body: UtteranceRequest) -> UtteranceResponse:
    state = scheduler.check_state
    current_id = scheduler.store.current_record_id
    if current_id is None:
        raise HTTPException(status_code=404, detail="No current record")
    if state.record_id != current_id:
        state.reset(current_id)
    state.append_utterance(body.text)
    return UtteranceResponse(record_id=state.record_id, recited_text=state.recited_text)


@app.post(
    "/check",
    response_model=CheckResponse,
    tags=["check"],
    summary="Check a recitation",
    description=(
        "Scores the recited text against every answer segment. Without "
        "text, the accumulated utterances for the current record are used."
    ),
    responses=_NOT_FOUND,
)
async def check_recitation(body: CheckRequest) -> CheckResponse:
    store = scheduler.store
    record_id = body.record_id or store.current_record_id
    if record_id is None:
        raise HTTPException(status_code=404, detail="No current record")
    record = _require_record(record_id)
    settings = store.load_settings()

    state = scheduler.check_state
    if body.text is not None:
        if state.record_id != record.id:
            state.reset(record.id)
        state.recited_text = body.text
        result = check(record, body.text, settings.threshold, settings.sentence_delimiters)
        state.last_result = result
    else:
        if state.record_id != record.id:
            state.reset(record.id)
        result = state.evaluate(record, settings)

    return CheckResponse(
        record_id=record.id,
        per_segment_hit=result.per_segment_hit,
        scores=result.scores,
        hit_count=result.hit_count,
        total=result.total,
        percentage=result.percentage,
        min_score=result.min_score,
        max_score=result.max_score,
        threshold=result.threshold,
        summary=result.summary(),
    )


# ---------------------------------------------------------------------------
# Endpoints: Document import / export
# ---------------------------------------------------------------------------


@app.get(
    "/document",
    response_model=Dict[str, Any],
    tags=["document"],
    summary="Export everything",
    description="Records, settings and progress as one JSON document.",
)
async def export_document() -> Dict[str, Any]:
    return scheduler.store.export_document()


@app.post(
    "/document",
    response_model=ImportResponse,
    tags=["document"],
    summary="Import a document",
    description="Replaces all records, settings and progress. Invalid documents change nothing.",
    responses={422: {"model": ErrorResponse, "description": "Invalid document"}},
)
async def import_document(payload: Dict[str, Any] = Body(...)) -> ImportResponse:
    scheduler.stop()
    try:
        count = scheduler.store.import_document(payload)
    except DocumentFormatError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    scheduler.check_state.reset(scheduler.store.current_record_id)
    return ImportResponse(imported=count)


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        speech_available=scheduler.synthesizer.available,
    )
