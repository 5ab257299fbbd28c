"""
SQLite metadata store implementation using aiosqlite.

All writes run inside explicit transactions guarded by a single lock so that
bulk rewrites (decay recomputation, archival sweeps) are observed atomically
by concurrent readers sharing the store.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from mnemorecall.core.metadata_store.base import MetadataStore
from mnemorecall.models.categories import Category, CategoryItem
from mnemorecall.models.chunk import (
    AccessStat,
    ChunkMetadata,
    ChunkMetadataPatch,
    ChunkType,
    MemoryStats,
    ProcessedConversation,
    utcnow,
)
from mnemorecall.models.relationships import Direction, Relationship, RelationshipType
from mnemorecall.utils.exceptions import MetadataStoreError, ValidationError
from mnemorecall.utils.id_generator import category_item_id, conversation_marker_id
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)

# Row conversion failures that mark a stored record as corrupt
_CORRUPT_ROW_ERRORS = (ValueError, TypeError, KeyError)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS chunks_metadata (
        chunk_id TEXT PRIMARY KEY,
        source TEXT NOT NULL DEFAULT 'unknown',
        chunk_type TEXT NOT NULL DEFAULT 'documentation',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        last_accessed_at TEXT,
        access_count INTEGER NOT NULL DEFAULT 0,
        importance REAL NOT NULL DEFAULT 0.5,
        decay_score REAL NOT NULL DEFAULT 1.0,
        is_archived INTEGER NOT NULL DEFAULT 0,
        source_conversation_id TEXT,
        source_message_index INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS relationships (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        from_chunk_id TEXT NOT NULL,
        to_chunk_id TEXT NOT NULL,
        relationship_type TEXT NOT NULL,
        strength REAL NOT NULL DEFAULT 0.5,
        metadata TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL,
        UNIQUE(from_chunk_id, to_chunk_id, relationship_type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS access_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chunk_id TEXT NOT NULL,
        accessed_at TEXT NOT NULL,
        query_text TEXT,
        result_rank INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        description TEXT,
        parent_id TEXT,
        summary TEXT,
        chunk_count INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS category_items (
        id TEXT PRIMARY KEY,
        chunk_id TEXT NOT NULL,
        category_id TEXT NOT NULL,
        relevance_score REAL NOT NULL DEFAULT 1.0,
        assigned_at TEXT NOT NULL,
        UNIQUE(chunk_id, category_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS processed_conversations (
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL UNIQUE,
        processed_at TEXT NOT NULL,
        message_count INTEGER NOT NULL DEFAULT 0,
        chunks_created INTEGER NOT NULL DEFAULT 0,
        knowledge_extracted INTEGER NOT NULL DEFAULT 0
    )
    """,
]

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_chunks_decay ON chunks_metadata(decay_score)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_type ON chunks_metadata(chunk_type)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_archived ON chunks_metadata(is_archived)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_source ON chunks_metadata(source)",
    "CREATE INDEX IF NOT EXISTS idx_rel_from ON relationships(from_chunk_id)",
    "CREATE INDEX IF NOT EXISTS idx_rel_to ON relationships(to_chunk_id)",
    "CREATE INDEX IF NOT EXISTS idx_rel_type ON relationships(relationship_type)",
    "CREATE INDEX IF NOT EXISTS idx_access_chunk ON access_log(chunk_id)",
    "CREATE INDEX IF NOT EXISTS idx_access_time ON access_log(accessed_at)",
    "CREATE INDEX IF NOT EXISTS idx_cat_items_chunk ON category_items(chunk_id)",
    "CREATE INDEX IF NOT EXISTS idx_cat_items_category ON category_items(category_id)",
]


def _to_iso(value: datetime | None) -> str | None:
    """Serialise a timestamp as a UTC ISO string (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _check_unit_interval(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValidationError(f"{name} must be within [0, 1], got {value}", {name: value})


class SQLiteMetadataStore(MetadataStore):
    """
    SQLite-based metadata store for chunk decay, access and graph state.

    Features:
    - WAL journal for concurrent readers
    - Atomic counters (no read-modify-write in Python)
    - Batched transactions for bulk decay updates and archival
    - Corrupt rows skipped during scans instead of failing the scan
    """

    def __init__(self, db_path: str = "data/memory_metadata.db"):
        """
        Initialize SQLite metadata store.

        Args:
            db_path: Path to SQLite database file (":memory:" for a private in-memory DB)
        """
        self.db_path = db_path
        self.connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def connect(self) -> None:
        """Establish connection to SQLite."""
        if self.connection is None:
            try:
                self.connection = await aiosqlite.connect(self.db_path)
            except Exception as e:
                logger.error(
                    "Failed to open metadata database: {error}",
                    db_path=self.db_path,
                    error=str(e),
                )
                raise MetadataStoreError(f"Failed to open metadata database: {e}") from e
            self.connection.row_factory = aiosqlite.Row
            await self.connection.execute("PRAGMA foreign_keys = ON")
            await self.connection.execute("PRAGMA journal_mode = WAL")
            await self.connection.commit()

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self.connect()

        async with self._transaction() as conn:
            for statement in _SCHEMA:
                await conn.execute(statement)
            for statement in _INDEXES:
                await conn.execute(statement)

    async def close(self) -> None:
        """Close the connection to SQLite."""
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run a block of statements as one transaction under the store lock."""
        await self.connect()
        async with self._lock:
            await self.connection.execute("BEGIN")
            try:
                yield self.connection
            except BaseException:
                await self.connection.rollback()
                raise
            else:
                await self.connection.commit()

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Read under the store lock so no half-applied batch is visible."""
        await self.connect()
        async with self._lock:
            yield self.connection

    # ═══════════════════════════════════════════════════════════
    # CHUNK METADATA
    # ═══════════════════════════════════════════════════════════

    async def upsert_chunk_metadata(self, patch: ChunkMetadataPatch) -> None:
        """Insert or partially update a chunk's metadata (unset fields unchanged)."""
        if not patch.chunk_id or not patch.chunk_id.strip():
            raise ValidationError("Chunk ID cannot be empty")

        now = _to_iso(utcnow())
        params = {
            "chunk_id": patch.chunk_id,
            "source": patch.source,
            "chunk_type": patch.chunk_type.value if patch.chunk_type else None,
            "created_at": _to_iso(patch.created_at),
            "last_accessed_at": _to_iso(patch.last_accessed_at),
            "access_count": patch.access_count,
            "importance": patch.importance,
            "decay_score": patch.decay_score,
            "is_archived": None if patch.is_archived is None else int(patch.is_archived),
            "source_conversation_id": patch.source_conversation_id,
            "source_message_index": patch.source_message_index,
            "now": now,
        }

        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO chunks_metadata (
                    chunk_id, source, chunk_type, created_at, updated_at,
                    last_accessed_at, access_count, importance, decay_score,
                    is_archived, source_conversation_id, source_message_index
                ) VALUES (
                    :chunk_id,
                    COALESCE(:source, 'unknown'),
                    COALESCE(:chunk_type, 'documentation'),
                    COALESCE(:created_at, :now),
                    :now,
                    :last_accessed_at,
                    COALESCE(:access_count, 0),
                    COALESCE(:importance, 0.5),
                    COALESCE(:decay_score, 1.0),
                    COALESCE(:is_archived, 0),
                    :source_conversation_id,
                    :source_message_index
                )
                ON CONFLICT(chunk_id) DO UPDATE SET
                    source = COALESCE(:source, source),
                    chunk_type = COALESCE(:chunk_type, chunk_type),
                    created_at = COALESCE(:created_at, created_at),
                    updated_at = :now,
                    last_accessed_at = COALESCE(:last_accessed_at, last_accessed_at),
                    access_count = COALESCE(:access_count, access_count),
                    importance = COALESCE(:importance, importance),
                    decay_score = COALESCE(:decay_score, decay_score),
                    is_archived = COALESCE(:is_archived, is_archived),
                    source_conversation_id = COALESCE(:source_conversation_id, source_conversation_id),
                    source_message_index = COALESCE(:source_message_index, source_message_index)
                """,
                params,
            )

    async def get_chunk_metadata(self, chunk_id: str) -> ChunkMetadata | None:
        """Retrieve metadata for one chunk, or None if missing or corrupt."""
        async with self._read() as conn:
            cursor = await conn.execute(
                "SELECT * FROM chunks_metadata WHERE chunk_id = ?", (chunk_id,)
            )
            row = await cursor.fetchone()

        if not row:
            return None

        try:
            return self._row_to_metadata(row)
        except _CORRUPT_ROW_ERRORS as e:
            logger.warning(
                "Unreadable metadata row for chunk {chunk_id}: {error}",
                chunk_id=chunk_id,
                error=str(e),
            )
            return None

    async def get_all_chunk_metadata(
        self,
        include_archived: bool = False,
        min_decay_score: float | None = None,
        chunk_types: list[ChunkType] | None = None,
    ) -> list[ChunkMetadata]:
        """List chunk metadata matching all given filters, highest decay first."""
        query = "SELECT * FROM chunks_metadata WHERE 1=1"
        params: list[Any] = []

        if not include_archived:
            query += " AND is_archived = 0"

        if min_decay_score is not None:
            query += " AND decay_score >= ?"
            params.append(min_decay_score)

        if chunk_types:
            placeholders = ",".join("?" for _ in chunk_types)
            query += f" AND chunk_type IN ({placeholders})"
            params.extend(ChunkType(t).value for t in chunk_types)

        query += " ORDER BY decay_score DESC, chunk_id ASC"

        async with self._read() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

        return self._convert_rows(rows, self._row_to_metadata, "chunks_metadata")

    async def record_access(
        self, chunk_id: str, query: str | None = None, result_rank: int | None = None
    ) -> bool:
        """Atomically bump access_count, set last_accessed_at and log the access."""
        now = _to_iso(utcnow())

        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                UPDATE chunks_metadata
                SET access_count = access_count + 1,
                    last_accessed_at = ?,
                    updated_at = ?
                WHERE chunk_id = ?
                """,
                (now, now, chunk_id),
            )
            if cursor.rowcount == 0:
                return False

            await conn.execute(
                """
                INSERT INTO access_log (chunk_id, accessed_at, query_text, result_rank)
                VALUES (?, ?, ?, ?)
                """,
                (chunk_id, now, query, result_rank),
            )

        return True

    async def update_decay_score(self, chunk_id: str, decay_score: float) -> None:
        """Update a single chunk's decay score."""
        _check_unit_interval("decay_score", decay_score)

        async with self._transaction() as conn:
            await conn.execute(
                "UPDATE chunks_metadata SET decay_score = ?, updated_at = ? WHERE chunk_id = ?",
                (decay_score, _to_iso(utcnow()), chunk_id),
            )

    async def bulk_update_decay_scores(self, scores: dict[str, float]) -> int:
        """Update many decay scores in one transaction."""
        if not scores:
            return 0

        for chunk_id, score in scores.items():
            _check_unit_interval("decay_score", score)

        now = _to_iso(utcnow())
        async with self._transaction() as conn:
            await conn.executemany(
                "UPDATE chunks_metadata SET decay_score = ?, updated_at = ? WHERE chunk_id = ?",
                [(score, now, chunk_id) for chunk_id, score in scores.items()],
            )

        logger.debug(f"Bulk-updated {len(scores)} decay scores")
        return len(scores)

    async def update_importance(self, chunk_id: str, importance: float) -> bool:
        """Manually override a chunk's importance."""
        _check_unit_interval("importance", importance)

        async with self._transaction() as conn:
            cursor = await conn.execute(
                "UPDATE chunks_metadata SET importance = ?, updated_at = ? WHERE chunk_id = ?",
                (importance, _to_iso(utcnow()), chunk_id),
            )
            return cursor.rowcount > 0

    async def promote_importance(self, chunk_id: str, boost: float) -> bool:
        """Raise importance by boost in a single UPDATE, capped at 1.0."""
        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                UPDATE chunks_metadata
                SET importance = MIN(1.0, importance + ?), updated_at = ?
                WHERE chunk_id = ?
                """,
                (boost, _to_iso(utcnow()), chunk_id),
            )
            return cursor.rowcount > 0

    async def archive_chunk(self, chunk_id: str) -> bool:
        return await self._set_archived(chunk_id, True)

    async def unarchive_chunk(self, chunk_id: str) -> bool:
        return await self._set_archived(chunk_id, False)

    async def _set_archived(self, chunk_id: str, archived: bool) -> bool:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                UPDATE chunks_metadata SET is_archived = ?, updated_at = ?
                WHERE chunk_id = ? AND is_archived = ?
                """,
                (int(archived), _to_iso(utcnow()), chunk_id, int(not archived)),
            )
            return cursor.rowcount > 0

    async def archive_stale_chunks(self, threshold: float) -> list[str]:
        """Archive every active chunk with decay_score below threshold, in one transaction."""
        now = _to_iso(utcnow())

        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                SELECT chunk_id FROM chunks_metadata
                WHERE decay_score < ? AND is_archived = 0
                ORDER BY chunk_id
                """,
                (threshold,),
            )
            archived_ids = [row["chunk_id"] for row in await cursor.fetchall()]

            if archived_ids:
                await conn.executemany(
                    "UPDATE chunks_metadata SET is_archived = 1, updated_at = ? WHERE chunk_id = ?",
                    [(now, chunk_id) for chunk_id in archived_ids],
                )

        if archived_ids:
            logger.info(
                f"Archived {len(archived_ids)} stale chunks below decay {threshold}",
                extra={"threshold": threshold, "count": len(archived_ids)},
            )
        return archived_ids

    async def archive_unused_chunks(self, created_before: datetime) -> list[str]:
        """Archive never-accessed active chunks created before the cutoff, in one transaction."""
        now = _to_iso(utcnow())

        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                SELECT chunk_id FROM chunks_metadata
                WHERE is_archived = 0 AND access_count = 0 AND created_at < ?
                ORDER BY chunk_id
                """,
                (_to_iso(created_before),),
            )
            archived_ids = [row["chunk_id"] for row in await cursor.fetchall()]

            if archived_ids:
                await conn.executemany(
                    "UPDATE chunks_metadata SET is_archived = 1, updated_at = ? WHERE chunk_id = ?",
                    [(now, chunk_id) for chunk_id in archived_ids],
                )

        if archived_ids:
            logger.info(
                f"Archived {len(archived_ids)} unused chunks created before {created_before.date()}",
                extra={"count": len(archived_ids)},
            )
        return archived_ids

    async def delete_chunk_metadata(self, chunk_id: str) -> None:
        """Delete a chunk, cascading access log, category items and relationships."""
        now = _to_iso(utcnow())

        async with self._transaction() as conn:
            await conn.execute("DELETE FROM access_log WHERE chunk_id = ?", (chunk_id,))

            cursor = await conn.execute(
                "SELECT DISTINCT category_id FROM category_items WHERE chunk_id = ?",
                (chunk_id,),
            )
            touched_categories = [row["category_id"] for row in await cursor.fetchall()]
            await conn.execute("DELETE FROM category_items WHERE chunk_id = ?", (chunk_id,))
            for cat_id in touched_categories:
                await self._recount_category(conn, cat_id, now)

            await conn.execute(
                "DELETE FROM relationships WHERE from_chunk_id = ? OR to_chunk_id = ?",
                (chunk_id, chunk_id),
            )
            await conn.execute("DELETE FROM chunks_metadata WHERE chunk_id = ?", (chunk_id,))

    # ═══════════════════════════════════════════════════════════
    # RELATIONSHIPS
    # ═══════════════════════════════════════════════════════════

    async def add_relationship(self, relationship: Relationship) -> bool:
        """Insert a relationship or update strength/metadata of the existing one."""
        if relationship.from_chunk_id == relationship.to_chunk_id:
            raise ValidationError(
                "A chunk cannot be related to itself",
                {"chunk_id": relationship.from_chunk_id},
            )

        rel_type = RelationshipType(relationship.relationship_type).value

        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                SELECT 1 FROM relationships
                WHERE from_chunk_id = ? AND to_chunk_id = ? AND relationship_type = ?
                """,
                (relationship.from_chunk_id, relationship.to_chunk_id, rel_type),
            )
            existed = await cursor.fetchone() is not None

            await conn.execute(
                """
                INSERT INTO relationships (
                    from_chunk_id, to_chunk_id, relationship_type, strength, metadata, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(from_chunk_id, to_chunk_id, relationship_type) DO UPDATE SET
                    strength = excluded.strength,
                    metadata = excluded.metadata
                """,
                (
                    relationship.from_chunk_id,
                    relationship.to_chunk_id,
                    rel_type,
                    relationship.strength,
                    json.dumps(relationship.metadata),
                    _to_iso(relationship.created_at),
                ),
            )

        return not existed

    async def get_relationships(
        self, chunk_id: str, direction: Direction = "both"
    ) -> list[Relationship]:
        """Get relationships touching a chunk in the given direction."""
        if direction == "from":
            where, params = "from_chunk_id = ?", (chunk_id,)
        elif direction == "to":
            where, params = "to_chunk_id = ?", (chunk_id,)
        elif direction == "both":
            where, params = "from_chunk_id = ? OR to_chunk_id = ?", (chunk_id, chunk_id)
        else:
            raise ValidationError(f"Invalid direction: {direction}")

        async with self._read() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM relationships WHERE {where} ORDER BY strength DESC, id ASC",
                params,
            )
            rows = await cursor.fetchall()

        return self._convert_rows(rows, self._row_to_relationship, "relationships")

    async def get_related_chunk_ids(
        self, chunk_id: str, relationship_type: RelationshipType | None = None
    ) -> list[str]:
        """Get the distinct chunks at the other end of any edge touching chunk_id."""
        query = """
            SELECT DISTINCT CASE
                WHEN from_chunk_id = ? THEN to_chunk_id
                ELSE from_chunk_id
            END AS related_id
            FROM relationships
            WHERE (from_chunk_id = ? OR to_chunk_id = ?)
        """
        params: list[Any] = [chunk_id, chunk_id, chunk_id]

        if relationship_type is not None:
            query += " AND relationship_type = ?"
            params.append(RelationshipType(relationship_type).value)

        query += " ORDER BY related_id"

        async with self._read() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

        return [row["related_id"] for row in rows]

    async def find_contradictions(self, chunk_id: str) -> list[Relationship]:
        """Get 'contradicts' edges touching a chunk."""
        async with self._read() as conn:
            cursor = await conn.execute(
                """
                SELECT * FROM relationships
                WHERE (from_chunk_id = ? OR to_chunk_id = ?) AND relationship_type = ?
                ORDER BY strength DESC, id ASC
                """,
                (chunk_id, chunk_id, RelationshipType.CONTRADICTS.value),
            )
            rows = await cursor.fetchall()

        return self._convert_rows(rows, self._row_to_relationship, "relationships")

    async def delete_relationship(
        self,
        from_chunk_id: str,
        to_chunk_id: str,
        relationship_type: RelationshipType | None = None,
    ) -> int:
        """Delete edges from one chunk to another, optionally of one type only."""
        query = "DELETE FROM relationships WHERE from_chunk_id = ? AND to_chunk_id = ?"
        params: list[Any] = [from_chunk_id, to_chunk_id]

        if relationship_type is not None:
            query += " AND relationship_type = ?"
            params.append(RelationshipType(relationship_type).value)

        async with self._transaction() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount

    async def get_all_relationships(self) -> list[Relationship]:
        async with self._read() as conn:
            cursor = await conn.execute("SELECT * FROM relationships ORDER BY id")
            rows = await cursor.fetchall()

        return self._convert_rows(rows, self._row_to_relationship, "relationships")

    async def count_relationships(self) -> int:
        async with self._read() as conn:
            cursor = await conn.execute("SELECT COUNT(*) AS count FROM relationships")
            return (await cursor.fetchone())["count"]

    # ═══════════════════════════════════════════════════════════
    # CATEGORIES
    # ═══════════════════════════════════════════════════════════

    async def upsert_category(self, category: Category) -> None:
        """
        Insert or replace a category's descriptive fields.

        chunk_count is derived. A None summary keeps the cached one; clearing
        goes through update_category_summary.
        """
        if not category.name or not category.name.strip():
            raise ValidationError("Category name cannot be empty")

        now = _to_iso(utcnow())
        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO categories (
                    id, name, description, parent_id, summary, chunk_count, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    parent_id = excluded.parent_id,
                    summary = COALESCE(excluded.summary, categories.summary),
                    updated_at = excluded.updated_at
                """,
                (
                    category.id,
                    category.name,
                    category.description,
                    category.parent_id,
                    category.summary,
                    _to_iso(category.created_at),
                    now,
                ),
            )

    async def get_category(self, category_id: str) -> Category | None:
        return await self._get_category_where("id = ?", category_id)

    async def get_category_by_name(self, name: str) -> Category | None:
        return await self._get_category_where("name = ?", name)

    async def _get_category_where(self, where: str, value: str) -> Category | None:
        async with self._read() as conn:
            cursor = await conn.execute(f"SELECT * FROM categories WHERE {where}", (value,))
            row = await cursor.fetchone()

        if not row:
            return None

        try:
            return self._row_to_category(row)
        except _CORRUPT_ROW_ERRORS as e:
            logger.warning("Unreadable category row {key}: {error}", key=value, error=str(e))
            return None

    async def list_categories(self) -> list[Category]:
        async with self._read() as conn:
            cursor = await conn.execute("SELECT * FROM categories ORDER BY name")
            rows = await cursor.fetchall()

        return self._convert_rows(rows, self._row_to_category, "categories")

    async def update_category_summary(self, category_id: str, summary: str | None) -> bool:
        """Replace (or clear, with None) a category's cached summary."""
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "UPDATE categories SET summary = ?, updated_at = ? WHERE id = ?",
                (summary, _to_iso(utcnow()), category_id),
            )
            return cursor.rowcount > 0

    async def assign_chunk_to_category(
        self, chunk_id: str, category_id: str, relevance_score: float
    ) -> None:
        """Assign a chunk to a category and recount the category in the same transaction."""
        _check_unit_interval("relevance_score", relevance_score)

        now = _to_iso(utcnow())
        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO category_items (id, chunk_id, category_id, relevance_score, assigned_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(chunk_id, category_id) DO UPDATE SET
                    relevance_score = excluded.relevance_score,
                    assigned_at = excluded.assigned_at
                """,
                (
                    category_item_id(chunk_id, category_id),
                    chunk_id,
                    category_id,
                    relevance_score,
                    now,
                ),
            )
            await self._recount_category(conn, category_id, now)

    async def _recount_category(
        self, conn: aiosqlite.Connection, category_id: str, now: str
    ) -> None:
        await conn.execute(
            """
            UPDATE categories
            SET chunk_count = (SELECT COUNT(*) FROM category_items WHERE category_id = ?),
                updated_at = ?
            WHERE id = ?
            """,
            (category_id, now, category_id),
        )

    async def get_chunk_categories(self, chunk_id: str) -> list[CategoryItem]:
        async with self._read() as conn:
            cursor = await conn.execute(
                "SELECT * FROM category_items WHERE chunk_id = ? ORDER BY relevance_score DESC",
                (chunk_id,),
            )
            rows = await cursor.fetchall()

        return self._convert_rows(rows, self._row_to_category_item, "category_items")

    async def get_category_chunks(self, category_id: str) -> list[CategoryItem]:
        async with self._read() as conn:
            cursor = await conn.execute(
                "SELECT * FROM category_items WHERE category_id = ? ORDER BY relevance_score DESC",
                (category_id,),
            )
            rows = await cursor.fetchall()

        return self._convert_rows(rows, self._row_to_category_item, "category_items")

    # ═══════════════════════════════════════════════════════════
    # PROCESSED CONVERSATIONS
    # ═══════════════════════════════════════════════════════════

    async def mark_conversation_processed(
        self,
        conversation_id: str,
        message_count: int,
        chunks_created: int,
        knowledge_extracted: int = 0,
    ) -> None:
        """Record that a conversation has been processed (idempotent)."""
        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO processed_conversations (
                    id, conversation_id, processed_at, message_count,
                    chunks_created, knowledge_extracted
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(conversation_id) DO UPDATE SET
                    processed_at = excluded.processed_at,
                    message_count = excluded.message_count,
                    chunks_created = excluded.chunks_created,
                    knowledge_extracted = excluded.knowledge_extracted
                """,
                (
                    conversation_marker_id(conversation_id),
                    conversation_id,
                    _to_iso(utcnow()),
                    message_count,
                    chunks_created,
                    knowledge_extracted,
                ),
            )

    async def is_conversation_processed(self, conversation_id: str) -> bool:
        async with self._read() as conn:
            cursor = await conn.execute(
                "SELECT 1 FROM processed_conversations WHERE conversation_id = ?",
                (conversation_id,),
            )
            return await cursor.fetchone() is not None

    async def get_processed_conversation(
        self, conversation_id: str
    ) -> ProcessedConversation | None:
        async with self._read() as conn:
            cursor = await conn.execute(
                "SELECT * FROM processed_conversations WHERE conversation_id = ?",
                (conversation_id,),
            )
            row = await cursor.fetchone()

        if not row:
            return None

        try:
            return ProcessedConversation(
                id=row["id"],
                conversation_id=row["conversation_id"],
                processed_at=_from_iso(row["processed_at"]),
                message_count=row["message_count"],
                chunks_created=row["chunks_created"],
                knowledge_extracted=row["knowledge_extracted"],
            )
        except _CORRUPT_ROW_ERRORS as e:
            logger.warning(f"Unreadable conversation marker {conversation_id}: {e}")
            return None

    # ═══════════════════════════════════════════════════════════
    # REPORTING
    # ═══════════════════════════════════════════════════════════

    async def get_memory_stats(self) -> MemoryStats:
        """Aggregate counts and averages; averages cover active chunks only."""
        async with self._read() as conn:
            cursor = await conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(CASE WHEN is_archived = 0 THEN 1 ELSE 0 END), 0) AS active,
                    COALESCE(SUM(CASE WHEN is_archived = 1 THEN 1 ELSE 0 END), 0) AS archived,
                    AVG(CASE WHEN is_archived = 0 THEN decay_score END) AS avg_decay,
                    AVG(CASE WHEN is_archived = 0 THEN importance END) AS avg_importance
                FROM chunks_metadata
                """
            )
            totals = await cursor.fetchone()

            cursor = await conn.execute("SELECT COUNT(*) AS count FROM access_log")
            total_accesses = (await cursor.fetchone())["count"]

            cursor = await conn.execute("SELECT COUNT(*) AS count FROM relationships")
            relationship_count = (await cursor.fetchone())["count"]

            cursor = await conn.execute("SELECT COUNT(*) AS count FROM categories")
            category_count = (await cursor.fetchone())["count"]

            cursor = await conn.execute(
                """
                SELECT chunk_type, COUNT(*) AS count FROM chunks_metadata
                WHERE is_archived = 0 GROUP BY chunk_type
                """
            )
            type_rows = await cursor.fetchall()

        return MemoryStats(
            total_chunks=totals["total"],
            active_chunks=totals["active"],
            archived_chunks=totals["archived"],
            avg_decay_score=totals["avg_decay"] or 0.0,
            avg_importance=totals["avg_importance"] or 0.0,
            total_accesses=total_accesses,
            chunks_by_type={row["chunk_type"]: row["count"] for row in type_rows},
            relationship_count=relationship_count,
            category_count=category_count,
        )

    async def get_access_stats(self, since: datetime | None = None) -> list[AccessStat]:
        """Per-chunk access counts, most accessed first (max 100 rows)."""
        query = """
            SELECT chunk_id, COUNT(*) AS access_count, MAX(accessed_at) AS last_access
            FROM access_log
        """
        params: list[Any] = []

        if since is not None:
            query += " WHERE accessed_at >= ?"
            params.append(_to_iso(since))

        query += " GROUP BY chunk_id ORDER BY access_count DESC, chunk_id ASC LIMIT 100"

        async with self._read() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

        return [
            AccessStat(
                chunk_id=row["chunk_id"],
                count=row["access_count"],
                last_access=_from_iso(row["last_access"]),
            )
            for row in rows
        ]

    async def vacuum(self) -> None:
        """Reclaim free pages (must run outside a transaction)."""
        async with self._read() as conn:
            await conn.execute("VACUUM")

    # ═══════════════════════════════════════════════════════════
    # ROW CONVERSION
    # ═══════════════════════════════════════════════════════════

    def _convert_rows(self, rows, converter, table: str) -> list:
        """Convert rows, skipping (and logging) the ones that fail to parse."""
        results = []
        for row in rows:
            try:
                results.append(converter(row))
            except _CORRUPT_ROW_ERRORS as e:
                logger.warning(
                    "Skipping corrupt row in {table}: {error}",
                    table=table,
                    error=str(e),
                )
        return results

    def _row_to_metadata(self, row: aiosqlite.Row) -> ChunkMetadata:
        return ChunkMetadata(
            chunk_id=row["chunk_id"],
            source=row["source"],
            chunk_type=ChunkType(row["chunk_type"]),
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
            last_accessed_at=_from_iso(row["last_accessed_at"]),
            access_count=row["access_count"],
            importance=row["importance"],
            decay_score=row["decay_score"],
            is_archived=bool(row["is_archived"]),
            source_conversation_id=row["source_conversation_id"],
            source_message_index=row["source_message_index"],
        )

    def _row_to_relationship(self, row: aiosqlite.Row) -> Relationship:
        return Relationship(
            id=row["id"],
            from_chunk_id=row["from_chunk_id"],
            to_chunk_id=row["to_chunk_id"],
            relationship_type=RelationshipType(row["relationship_type"]),
            strength=row["strength"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=_from_iso(row["created_at"]),
        )

    def _row_to_category(self, row: aiosqlite.Row) -> Category:
        return Category(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            parent_id=row["parent_id"],
            summary=row["summary"],
            chunk_count=row["chunk_count"],
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )

    def _row_to_category_item(self, row: aiosqlite.Row) -> CategoryItem:
        return CategoryItem(
            id=row["id"],
            chunk_id=row["chunk_id"],
            category_id=row["category_id"],
            relevance_score=row["relevance_score"],
            assigned_at=_from_iso(row["assigned_at"]),
        )
