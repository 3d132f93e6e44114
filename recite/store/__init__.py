"""Persistence for records, settings and progress.

RULES:
- One JSON document holds everything; see document.py
- document_schema.json ships as package data
"""

from recite.store.document import DocumentFormatError, DocumentStore

__all__ = ["DocumentFormatError", "DocumentStore"]
