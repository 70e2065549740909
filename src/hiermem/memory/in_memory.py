"""In-process memory store for development, testing and single-process agents."""

import time
from datetime import datetime
from typing import Any

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

logger = get_logger("memory.in_memory")


class InMemoryStore(MemoryStore):
    """Dict-backed store. Records are copied in and out."""

    def __init__(self, config: StoreConfig | None = None):
        super().__init__(config)
        self._records: dict[str, MemoryRecord] = {}
        # Starts now if constructed inside an event loop, otherwise on start()
        if self._cleanup_task:
            self._cleanup_task.start()

    def __len__(self) -> int:
        return len(self._records)

    async def store(self, record: MemoryRecord) -> None:
        """Store record, evicting the oldest of its level if over the hard cap."""
        if not isinstance(record, MemoryRecord):
            raise TypeError(f"Expected MemoryRecord, got {type(record).__name__}")

        cap = (self.config.max_memories or {}).get(record.level)
        if cap and record.id not in self._records:
            same_level = [r for r in self._records.values() if r.level == record.level]
            if len(same_level) >= cap:
                oldest = min(same_level, key=lambda r: r.timestamp)
                del self._records[oldest.id]
                logger.debug(f"Backend cap reached for {record.level.value}, dropped {oldest.id}")

        self._records[record.id] = record.copy()

    async def get(self, memory_id: str) -> MemoryRecord | None:
        record = self._records.get(memory_id)
        if record is None:
            return None

        if self.is_expired(record):
            del self._records[memory_id]
            return None

        accessed = self.record_access(record)
        self._records[memory_id] = accessed
        return accessed.copy()

    async def search(self, query: SearchQuery) -> SearchResult:
        started = time.perf_counter()
        matches = [r for r in self._live_records() if self.matches_query(r, query)]
        ranked = self.rank(matches, query)

        limit = query.limit or DEFAULT_SEARCH_LIMIT
        # Results are the ranked snapshots; the access is recorded in storage
        results = []
        for record in ranked[:limit]:
            self._records[record.id] = self.record_access(record)
            results.append(record.copy())

        return SearchResult(
            records=results,
            total=len(matches),
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )

    async def update(self, memory_id: str, **fields: Any) -> bool:
        existing = self._records.get(memory_id)
        if existing is None or self.is_expired(existing):
            return False

        self._records[memory_id] = self.merge_fields(existing, fields)
        return True

    async def delete(self, memory_id: str) -> bool:
        return self._records.pop(memory_id, None) is not None

    async def get_by_level(self, level: MemoryLevel) -> list[MemoryRecord]:
        records = self._live_records(level)
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return [r.copy() for r in records]

    async def clear(self, level: MemoryLevel | None = None) -> None:
        if level is None:
            self._records.clear()
            return
        for memory_id in [r.id for r in self._records.values() if r.level == level]:
            del self._records[memory_id]

    async def get_stats(self) -> MemoryStats:
        return self.build_stats(self._live_records())

    async def cleanup(self) -> int:
        now = datetime.now()
        expired = [r.id for r in self._records.values() if self.is_expired(r, now)]
        for memory_id in expired:
            del self._records[memory_id]
        if expired:
            logger.debug(f"Purged {len(expired)} expired records")
        return len(expired)

    def _live_records(self, level: MemoryLevel | None = None) -> list[MemoryRecord]:
        """Current records of a level (or all), dropping any that have expired."""
        now = datetime.now()
        live = []
        for record in list(self._records.values()):
            if level is not None and record.level != level:
                continue
            if self.is_expired(record, now):
                del self._records[record.id]
            else:
                live.append(record)
        return live
