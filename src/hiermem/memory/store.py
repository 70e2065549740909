"""SQLite memory store - durable backend with the same contract as InMemoryStore."""

import json
import sqlite3
import time
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from hiermem.core.logging import get_logger
from hiermem.memory.base import (
    DEFAULT_SEARCH_LIMIT,
    MemoryLevel,
    MemoryRecord,
    MemoryStats,
    MemoryStore,
    SearchQuery,
    SearchResult,
    StoreConfig,
)

logger = get_logger("memory.store")


# Python 3.12+ fix: Register datetime adapters explicitly
def _adapt_datetime(dt: datetime) -> str:
    """Convert datetime to ISO format string for SQLite storage."""
    return dt.isoformat()


def _convert_datetime(val: bytes) -> datetime:
    """Convert ISO format string from SQLite to datetime."""
    return datetime.fromisoformat(val.decode())


# Register adapters/converters to avoid Python 3.12 deprecation warning
sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("DATETIME", _convert_datetime)

SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    level TEXT NOT NULL,
    content TEXT NOT NULL,  -- JSON
    timestamp DATETIME NOT NULL,
    access_count INTEGER DEFAULT 0,
    importance REAL DEFAULT 0.5,
    tags TEXT,  -- JSON array
    metadata TEXT,  -- JSON object
    expires_at DATETIME
);

CREATE INDEX IF NOT EXISTS idx_memories_level ON memories(level, timestamp);

CREATE INDEX IF NOT EXISTS idx_memories_expires
    ON memories(expires_at) WHERE expires_at IS NOT NULL;
"""

COLUMNS = "id, level, content, timestamp, access_count, importance, tags, metadata, expires_at"

UPSERT = f"""INSERT INTO memories ({COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(id) DO UPDATE SET
        level=excluded.level, content=excluded.content, timestamp=excluded.timestamp,
        access_count=excluded.access_count, importance=excluded.importance,
        tags=excluded.tags, metadata=excluded.metadata, expires_at=excluded.expires_at"""


class SQLiteMemoryStore(MemoryStore):
    """SQLite-backed memory store."""

    def __init__(self, db_path: Path, config: StoreConfig | None = None):
        super().__init__(config)
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Initialize database connection and schema, then start auto-cleanup."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Use detect_types to enable our custom datetime converters
        self._conn = await aiosqlite.connect(
            self.db_path,
            detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
        )
        await self._conn.executescript(SCHEMA)
        await self._conn.commit()
        await self.start()
        logger.info(f"Connected to memory store: {self.db_path}")

    async def close(self) -> None:
        """Stop auto-cleanup and close database connection."""
        await super().destroy()
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def destroy(self) -> None:
        await self.close()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Memory store not connected. Call connect() first.")
        return self._conn

    # Row mapping

    @staticmethod
    def _to_row(record: MemoryRecord) -> tuple:
        return (
            record.id,
            record.level.value,
            json.dumps(record.content),
            record.timestamp,
            record.access_count,
            record.importance,
            json.dumps(record.tags),
            json.dumps(record.metadata),
            record.expires_at,
        )

    @staticmethod
    def _from_row(row: tuple) -> MemoryRecord:
        return MemoryRecord(
            id=row[0],
            level=MemoryLevel(row[1]),
            content=json.loads(row[2]),
            timestamp=row[3],
            access_count=row[4],
            importance=row[5],
            tags=json.loads(row[6]) if row[6] else [],
            metadata=json.loads(row[7]) if row[7] else {},
            expires_at=row[8],
        )

    async def _write(self, record: MemoryRecord) -> None:
        await self.conn.execute(UPSERT, self._to_row(record))

    async def _fetch(self, sql: str, params: tuple = ()) -> list[MemoryRecord]:
        async with self.conn.execute(sql, params) as cursor:
            return [self._from_row(row) async for row in cursor]

    async def _purge_expired(self, level: MemoryLevel | None = None) -> int:
        sql = "DELETE FROM memories WHERE expires_at IS NOT NULL AND expires_at < ?"
        params: tuple = (datetime.now(),)
        if level is not None:
            sql += " AND level = ?"
            params += (level.value,)
        cursor = await self.conn.execute(sql, params)
        await self.conn.commit()
        return cursor.rowcount

    async def _touch(self, record: MemoryRecord) -> MemoryRecord:
        """Persist an access and return the accessed copy."""
        accessed = self.record_access(record)
        await self.conn.execute(
            "UPDATE memories SET access_count = ?, timestamp = ? WHERE id = ?",
            (accessed.access_count, accessed.timestamp, accessed.id),
        )
        return accessed

    # Standard memory operations

    async def store(self, record: MemoryRecord) -> None:
        """Store record, evicting the oldest of its level if over the hard cap."""
        if not isinstance(record, MemoryRecord):
            raise TypeError(f"Expected MemoryRecord, got {type(record).__name__}")
        row = self._to_row(record)  # fails fast on non-JSON content

        cap = (self.config.max_memories or {}).get(record.level)
        if cap:
            async with self.conn.execute(
                "SELECT 1 FROM memories WHERE id = ?", (record.id,)
            ) as cursor:
                exists = await cursor.fetchone() is not None
            if not exists:
                async with self.conn.execute(
                    "SELECT COUNT(*) FROM memories WHERE level = ?", (record.level.value,)
                ) as cursor:
                    (count,) = await cursor.fetchone()
                if count >= cap:
                    await self.conn.execute(
                        """DELETE FROM memories WHERE id = (
                               SELECT id FROM memories WHERE level = ?
                               ORDER BY timestamp LIMIT 1)""",
                        (record.level.value,),
                    )
                    logger.debug(f"Backend cap reached for {record.level.value}")

        await self.conn.execute(UPSERT, row)
        await self.conn.commit()

    async def get(self, memory_id: str) -> MemoryRecord | None:
        records = await self._fetch(f"SELECT {COLUMNS} FROM memories WHERE id = ?", (memory_id,))
        if not records:
            return None

        record = records[0]
        if self.is_expired(record):
            await self.delete(memory_id)
            return None

        accessed = await self._touch(record)
        await self.conn.commit()
        return accessed

    async def search(self, query: SearchQuery) -> SearchResult:
        started = time.perf_counter()
        await self._purge_expired()

        # Cheap filters in SQL, the rest in matches_query
        clauses: list[str] = []
        params: list[Any] = []
        if query.level is not None:
            clauses.append("level = ?")
            params.append(query.level.value)
        if query.min_importance is not None:
            clauses.append("importance >= ?")
            params.append(query.min_importance)

        sql = f"SELECT {COLUMNS} FROM memories"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        # Stable tie order for ranking
        sql += " ORDER BY rowid"

        candidates = await self._fetch(sql, tuple(params))
        matches = [r for r in candidates if self.matches_query(r, query)]
        ranked = self.rank(matches, query)

        limit = query.limit or DEFAULT_SEARCH_LIMIT
        results = ranked[:limit]
        for record in results:
            await self._touch(record)
        await self.conn.commit()

        logger.debug(f"Search returned {len(results)} of {len(matches)} matches")
        return SearchResult(
            records=results,
            total=len(matches),
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )

    async def update(self, memory_id: str, **fields: Any) -> bool:
        records = await self._fetch(f"SELECT {COLUMNS} FROM memories WHERE id = ?", (memory_id,))
        if not records or self.is_expired(records[0]):
            return False

        await self._write(self.merge_fields(records[0], fields))
        await self.conn.commit()
        return True

    async def delete(self, memory_id: str) -> bool:
        cursor = await self.conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
        await self.conn.commit()
        return cursor.rowcount > 0

    async def get_by_level(self, level: MemoryLevel) -> list[MemoryRecord]:
        await self._purge_expired(level)
        return await self._fetch(
            f"SELECT {COLUMNS} FROM memories WHERE level = ? ORDER BY timestamp DESC",
            (level.value,),
        )

    async def clear(self, level: MemoryLevel | None = None) -> None:
        if level is None:
            await self.conn.execute("DELETE FROM memories")
        else:
            await self.conn.execute("DELETE FROM memories WHERE level = ?", (level.value,))
        await self.conn.commit()

    async def get_stats(self) -> MemoryStats:
        await self._purge_expired()
        records = await self._fetch(f"SELECT {COLUMNS} FROM memories ORDER BY rowid")
        return self.build_stats(records)

    async def cleanup(self) -> int:
        deleted = await self._purge_expired()
        if deleted:
            logger.debug(f"Purged {deleted} expired records")
        return deleted
