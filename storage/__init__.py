"""
Document store exports.

The Firestore backend is imported from storage.firestore directly so
that firebase-admin is only loaded when that backend is selected.
"""

from .base import (
    Document,
    DocumentNotFoundError,
    DocumentStore,
    QueryFilter,
    Transaction,
    split_path,
)
from .memory import InMemoryDocumentStore
from .sqlite import SQLiteDocumentStore

__all__ = [
    "Document",
    "DocumentNotFoundError",
    "DocumentStore",
    "QueryFilter",
    "Transaction",
    "split_path",
    "InMemoryDocumentStore",
    "SQLiteDocumentStore",
]
