"""
Ledger module - persisted player state.

- DocumentStore: the shared JSON document in SQLite, serialized access
- ChoiceLedger: per-player choices and generated content
"""

from .document_store import DocumentStore, default_document
from .choice_ledger import ChoiceLedger, format_choice_summary

__all__ = [
    "DocumentStore",
    "default_document",
    "ChoiceLedger",
    "format_choice_summary",
]
