"""
Hierarchical memory engine.

Enforces per-level capacity and TTL on top of a MemoryStore and promotes
important records along the fixed consolidation paths:

    short_term -> long_term
    episodic   -> semantic

Promotion deletes the original and stores a new record in the target level
with lineage metadata (consolidated_from, original_id, consolidated_at).
"""

import asyncio
import contextlib
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from hiermem.core.events import EventEmitter, MemoryEvent, MemoryEventType
from hiermem.core.logging import get_logger
from hiermem.core.scheduler import PeriodicTask
from hiermem.memory.base import (
    MemoryLevel,
    MemoryRecord,
    MemoryStats,
    MemoryStore,
    SearchQuery,
    SearchResult,
)
from hiermem.memory.policy import CONSOLIDATION_PATHS, LevelPolicy, resolve_policies

logger = get_logger("memory.hierarchical")

DEFAULT_IMPORTANCE = 0.5
DEFAULT_CONSOLIDATION_INTERVAL = 3600.0  # seconds


def generate_id() -> str:
    return f"mem_{uuid4().hex}"


class HierarchicalMemory(EventEmitter):
    """Policy layer over a storage backend."""

    def __init__(
        self,
        backend: MemoryStore,
        level_policies: Mapping[MemoryLevel | str, LevelPolicy | Mapping[str, Any]] | None = None,
        auto_consolidation: bool = True,
        consolidation_interval: float = DEFAULT_CONSOLIDATION_INTERVAL,
    ):
        super().__init__()
        self.backend = backend
        self.policies = resolve_policies(level_policies)
        # Guards read-then-write sequences (eviction, promotion) per level
        self._locks = {level: asyncio.Lock() for level in MemoryLevel}

        self._consolidation_task: PeriodicTask | None = None
        if auto_consolidation:
            self._consolidation_task = PeriodicTask(
                "memory-consolidation", self.consolidate, consolidation_interval
            )
            self._consolidation_task.start()

    def policy(self, level: MemoryLevel) -> LevelPolicy:
        return self.policies[level]

    def configure_level(self, level: MemoryLevel, **overrides: Any) -> LevelPolicy:
        """Change a level's policy at runtime.

        Setting consolidation_threshold=None disables promotion out of the level.
        """
        self.policies[level] = self.policies[level].with_overrides(**overrides)
        logger.info(f"Reconfigured {level.value}: {self.policies[level]}")
        return self.policies[level]

    async def start(self) -> None:
        """Start auto-consolidation if it could not start at construction."""
        if self._consolidation_task:
            self._consolidation_task.start()

    async def destroy(self) -> None:
        """Stop auto-consolidation and detach listeners. Stored data is untouched."""
        if self._consolidation_task:
            await self._consolidation_task.stop()
        self.clear_listeners()

    # Storage

    async def store(
        self,
        content: Any,
        level: MemoryLevel | str,
        *,
        importance: float | None = None,
        tags: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
        expires_at: datetime | None = None,
    ) -> str:
        """Store content in a level, evicting to stay within capacity."""
        level = MemoryLevel(level)
        now = datetime.now()
        if expires_at is None:
            expires_at = self._expiry_for(level, now)

        record = MemoryRecord(
            id=generate_id(),
            content=content,
            level=level,
            timestamp=now,
            importance=DEFAULT_IMPORTANCE if importance is None else importance,
            tags=tags or [],
            metadata=metadata or {},
            expires_at=expires_at,
        )

        async with self._locks[level]:
            await self._make_room(level)
            await self.backend.store(record)

        logger.debug(f"Stored {record.id} in {level.value}")
        await self.emit(MemoryEvent(MemoryEventType.STORED, record=record.copy()))
        return record.id

    async def get(self, memory_id: str) -> MemoryRecord | None:
        record = await self.backend.get(memory_id)
        if record:
            await self.emit(MemoryEvent(MemoryEventType.RETRIEVED, record=record))
        return record

    async def search(self, query: SearchQuery) -> SearchResult:
        return await self.backend.search(query)

    async def update_importance(self, memory_id: str, importance: float) -> bool:
        if not 0.0 <= importance <= 1.0:
            raise ValueError(f"Importance must be between 0 and 1, got {importance}")
        return await self._update(memory_id, importance=importance)

    async def add_tags(self, memory_id: str, tags: list[str]) -> bool:
        record = await self.backend.get(memory_id)
        if record is None:
            return False
        merged = list(dict.fromkeys(record.tags + list(tags)))
        return await self._update(memory_id, record, tags=merged)

    async def remove_tags(self, memory_id: str, tags: list[str]) -> bool:
        record = await self.backend.get(memory_id)
        if record is None:
            return False
        remaining = [tag for tag in record.tags if tag not in tags]
        return await self._update(memory_id, record, tags=remaining)

    async def delete(self, memory_id: str) -> bool:
        deleted = await self.backend.delete(memory_id)
        if deleted:
            await self.emit(MemoryEvent(MemoryEventType.DELETED, record_id=memory_id))
        return deleted

    async def get_by_level(self, level: MemoryLevel) -> list[MemoryRecord]:
        return await self.backend.get_by_level(level)

    async def clear(self, level: MemoryLevel | None = None) -> None:
        await self.backend.clear(level)

    async def get_stats(self) -> MemoryStats:
        return await self.backend.get_stats()

    # Maintenance

    async def consolidate(self) -> int:
        """Promote records whose importance reaches their level's threshold.

        Returns the number of records moved across all paths. Levels without
        a threshold are skipped.
        """
        total_moved = 0

        for source, target in CONSOLIDATION_PATHS:
            threshold = self.policies[source].consolidation_threshold
            if threshold is None:
                logger.debug(f"No consolidation threshold for {source.value}, skipping")
                continue

            moved: list[MemoryRecord] = []
            async with self._locked(source, target):
                candidates = await self.backend.get_by_level(source)
                for record in candidates:
                    if record.importance < threshold:
                        continue
                    promoted = self._promote(record, source, target)
                    await self._make_room(target)
                    await self.backend.store(promoted)
                    await self.backend.delete(record.id)
                    moved.append(promoted)

            if moved:
                total_moved += len(moved)
                logger.info(f"Consolidated {len(moved)} records: {source.value} -> {target.value}")
                await self.emit(
                    MemoryEvent(
                        MemoryEventType.CONSOLIDATED,
                        records=moved,
                        count=len(moved),
                        source=source,
                        target=target,
                    )
                )

        return total_moved

    async def cleanup(self) -> int:
        """Purge expired records."""
        deleted = await self.backend.cleanup()
        if deleted:
            logger.info(f"Cleaned up {deleted} expired records")
        await self.emit(MemoryEvent(MemoryEventType.CLEANED, count=deleted))
        return deleted

    # Internals

    def _expiry_for(self, level: MemoryLevel, now: datetime) -> datetime | None:
        ttl = self.policies[level].ttl
        if ttl is None:
            return None
        return now + timedelta(seconds=ttl)

    def _promote(
        self, record: MemoryRecord, source: MemoryLevel, target: MemoryLevel
    ) -> MemoryRecord:
        now = datetime.now()
        return record.copy(
            id=generate_id(),
            level=target,
            timestamp=now,
            metadata={
                **record.metadata,
                "consolidated_from": source.value,
                "original_id": record.id,
                "consolidated_at": now.isoformat(),
            },
            expires_at=self._expiry_for(target, now),
        )

    async def _update(
        self, memory_id: str, record: MemoryRecord | None = None, **changes: Any
    ) -> bool:
        if record is None:
            record = await self.backend.get(memory_id)
            if record is None:
                return False

        updated = await self.backend.update(memory_id, **changes)
        if updated:
            await self.emit(
                MemoryEvent(
                    MemoryEventType.UPDATED,
                    record=record.copy(**changes),
                    changes=changes,
                )
            )
        return updated

    async def _make_room(self, level: MemoryLevel) -> None:
        """Evict least important, then oldest, records so one more fits.

        Caller must hold the level lock.
        """
        max_size = self.policies[level].max_size
        records = await self.backend.get_by_level(level)
        if len(records) < max_size:
            return

        records.sort(key=lambda r: (r.importance, r.timestamp))
        victims = records[: len(records) - max_size + 1]
        for record in victims:
            await self.backend.delete(record.id)
        logger.info(f"Evicted {len(victims)} records from {level.value} (max_size={max_size})")

    @contextlib.asynccontextmanager
    async def _locked(self, *levels: MemoryLevel):
        """Acquire several level locks in a fixed order."""
        ordered = [level for level in MemoryLevel if level in levels]
        async with contextlib.AsyncExitStack() as stack:
            for level in ordered:
                await stack.enter_async_context(self._locks[level])
            yield
