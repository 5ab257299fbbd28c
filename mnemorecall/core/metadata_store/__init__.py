"""
Durable chunk-metadata storage.

Supported backends:
- SQLite (aiosqlite)
"""

from mnemorecall.core.metadata_store.base import MetadataStore
from mnemorecall.core.metadata_store.sqlite_store import SQLiteMetadataStore

__all__ = [
    "MetadataStore",
    "SQLiteMetadataStore",
]
