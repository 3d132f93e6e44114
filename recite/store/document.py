"""JSON document store for records, settings, and progress.

WHY: The trainer needs one place that owns the ordered record list (whose
order defines previous/next), the settings, and the current record. The
whole thing is small, so it is kept as one JSON document and rewritten
in full on every change. The same shape doubles as the export format.

HOW: DocumentStore loads the document lazily on first access, keeps it in
memory, and writes it back atomically (temp file + os.replace) after
every mutation. The export shape and the storage shape are the same:
{version, exportedAt, data: {qas, settings, progress}}. Imports are
validated with jsonschema and fully parsed before anything is replaced.

RULES:
- All public methods acquire self._lock
- path=None keeps the document in memory only (tests, ephemeral use)
- New records are inserted at the front; existing ones replaced in place
- Deleting the current record moves "current" to its neighbour
- A corrupt stored document is logged and replaced by defaults
- import_document() is all-or-nothing: DocumentFormatError leaves state untouched
- Settings are returned as copies; save_settings() is the only way back in
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import jsonschema

from recite.config import DOCUMENT_VERSION
from recite.core.models import Record, Settings, now_iso
from recite.core.plan import next_record, previous_record

logger = logging.getLogger(__name__)

_SCHEMA_PATH = Path(__file__).resolve().parent / "document_schema.json"

_EXAMPLE_QUESTION = "示例：什么是强化学习？"
_EXAMPLE_ANSWER = (
    "强化学习是一类通过与环境交互来学习策略的方法。"
    "智能体在状态下选择动作并获得奖励。"
    "目标是最大化长期累积回报。"
)


def _load_schema() -> Dict[str, Any]:
    """Load the document JSON schema from disk.

    Cached at module level after first call to avoid repeated I/O.
    """
    with open(_SCHEMA_PATH, encoding="utf-8") as f:
        return json.load(f)


_CACHED_SCHEMA: Optional[Dict[str, Any]] = None


def _get_schema() -> Dict[str, Any]:
    global _CACHED_SCHEMA
    if _CACHED_SCHEMA is None:
        _CACHED_SCHEMA = _load_schema()
    return _CACHED_SCHEMA


class DocumentFormatError(ValueError):
    """Raised when a document cannot be parsed or fails schema validation.

    RULES:
    - Raised before any store state is modified
    - Message names the first problem found
    """


@dataclass
class DocumentData:
    """Fully parsed document contents."""

    records: List[Record]
    settings: Settings
    current_record_id: Optional[str]


def parse_document(payload: Union[str, bytes, Dict[str, Any]]) -> DocumentData:
    """Validate and parse a document into typed contents.

    Args:
        payload: JSON text/bytes or an already-decoded dict.

    Returns:
        DocumentData ready to be installed into a store.

    Raises:
        DocumentFormatError: On malformed JSON, schema violations, or
            duplicate record ids.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (ValueError, UnicodeDecodeError) as exc:
            raise DocumentFormatError("Document is not valid JSON: {}".format(exc)) from exc

    try:
        jsonschema.validate(instance=payload, schema=_get_schema())
    except jsonschema.ValidationError as exc:
        raise DocumentFormatError("Document does not match the expected format: {}".format(exc.message)) from exc

    data = payload["data"]
    records = [Record.from_dict(item) for item in data["qas"]]

    seen = set()
    for record in records:
        if record.id in seen:
            raise DocumentFormatError("Duplicate record id: {}".format(record.id))
        seen.add(record.id)

    settings = Settings.from_dict(data.get("settings"))

    progress = data.get("progress") or {}
    current = progress.get("currentRecordId", progress.get("currentQaId"))
    if current not in seen:
        current = records[0].id if records else None

    return DocumentData(records=records, settings=settings, current_record_id=current)


class DocumentStore:
    """Record store + settings store backed by one JSON document."""

    def __init__(self, path: Optional[Path] = None, seed_example: bool = True) -> None:
        self._path = Path(path) if path is not None else None
        self._seed_example = seed_example
        self._lock = threading.RLock()
        self._loaded = False
        self._records: List[Record] = []
        self._settings = Settings()
        self._current_record_id: Optional[str] = None

    @property
    def path(self) -> Optional[Path]:
        return self._path

    # ------------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------------

    def _default_data(self) -> DocumentData:
        records = []
        if self._seed_example:
            records.append(Record.new(_EXAMPLE_QUESTION, _EXAMPLE_ANSWER))
        return DocumentData(
            records=records,
            settings=Settings(),
            current_record_id=records[0].id if records else None,
        )

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        data = None
        if self._path is not None and self._path.exists():
            try:
                data = parse_document(self._path.read_bytes())
            except DocumentFormatError:
                logger.warning("Stored document %s is invalid; starting from defaults", self._path, exc_info=True)
        if data is None:
            data = self._default_data()
        self._install(data)
        self._loaded = True

    def _install(self, data: DocumentData) -> None:
        self._records = list(data.records)
        self._settings = data.settings
        self._current_record_id = data.current_record_id

    def _document(self) -> Dict[str, Any]:
        return {
            "version": DOCUMENT_VERSION,
            "exportedAt": now_iso(),
            "data": {
                "qas": [record.to_dict() for record in self._records],
                "settings": self._settings.to_dict(),
                "progress": {"currentRecordId": self._current_record_id},
            },
        }

    def _save(self) -> None:
        """Overwrite the whole document atomically."""
        if self._path is None:
            return
        content = json.dumps(self._document(), indent=2, ensure_ascii=False)
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".recite_", suffix=".json", dir=str(directory))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, self._path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def list(self) -> List[Record]:
        """All records in order (a new list; records are live instances)."""
        with self._lock:
            self._ensure_loaded()
            return list(self._records)

    def get(self, record_id: Optional[str]) -> Optional[Record]:
        with self._lock:
            self._ensure_loaded()
            for record in self._records:
                if record.id == record_id:
                    return record
            return None

    def require(self, record_id: str) -> Record:
        """Like get(), but raises KeyError for unknown ids."""
        record = self.get(record_id)
        if record is None:
            raise KeyError(record_id)
        return record

    def put(self, record: Record) -> Record:
        """Insert a new record at the front, or replace an existing one.

        Replacing bumps updated_at; the record's position is unchanged.
        """
        with self._lock:
            self._ensure_loaded()
            for i, existing in enumerate(self._records):
                if existing.id == record.id:
                    record.updated_at = now_iso()
                    self._records[i] = record
                    break
            else:
                self._records.insert(0, record)
                logger.info("Added record %s", record.id)
            if self._current_record_id is None:
                self._current_record_id = record.id
            self._save()
            return record

    def delete(self, record_id: str) -> bool:
        """Delete a record; returns False when the id is unknown."""
        with self._lock:
            self._ensure_loaded()
            for idx, record in enumerate(self._records):
                if record.id == record_id:
                    break
            else:
                return False

            del self._records[idx]
            if self._current_record_id == record_id:
                if self._records:
                    self._current_record_id = self._records[min(idx, len(self._records) - 1)].id
                else:
                    self._current_record_id = None
            self._save()
            logger.info("Deleted record %s", record_id)
            return True

    def clear(self) -> None:
        with self._lock:
            self._ensure_loaded()
            self._records = []
            self._current_record_id = None
            self._save()

    # ------------------------------------------------------------------
    # Progress and adjacency
    # ------------------------------------------------------------------

    @property
    def current_record_id(self) -> Optional[str]:
        with self._lock:
            self._ensure_loaded()
            return self._current_record_id

    def current(self) -> Optional[Record]:
        return self.get(self.current_record_id)

    def set_current(self, record_id: str) -> Record:
        """Make record_id the current record; raises KeyError if unknown."""
        with self._lock:
            record = self.require(record_id)
            self._current_record_id = record.id
            self._save()
            return record

    def previous(self, record_id: Optional[str]) -> Optional[Record]:
        with self._lock:
            self._ensure_loaded()
            return previous_record(self._records, record_id)

    def next(self, record_id: Optional[str]) -> Optional[Record]:
        with self._lock:
            self._ensure_loaded()
            return next_record(self._records, record_id)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def load_settings(self) -> Settings:
        with self._lock:
            self._ensure_loaded()
            return copy.deepcopy(self._settings)

    def save_settings(self, settings: Settings) -> Settings:
        with self._lock:
            self._ensure_loaded()
            self._settings = copy.deepcopy(settings)
            self._save()
            return copy.deepcopy(self._settings)

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_document(self) -> Dict[str, Any]:
        with self._lock:
            self._ensure_loaded()
            return self._document()

    def import_document(self, payload: Union[str, bytes, Dict[str, Any]]) -> int:
        """Replace everything with the contents of payload.

        Returns:
            Number of imported records.

        Raises:
            DocumentFormatError: payload is invalid; nothing was changed.
            OSError: the document could not be written; nothing was changed.
        """
        data = parse_document(payload)
        with self._lock:
            self._ensure_loaded()
            previous = DocumentData(
                records=self._records,
                settings=self._settings,
                current_record_id=self._current_record_id,
            )
            self._install(data)
            try:
                self._save()
            except OSError:
                self._install(previous)
                raise
        logger.info("Imported %d records", len(data.records))
        return len(data.records)
