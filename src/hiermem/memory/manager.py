"""Memory manager - facade over a storage backend and the hierarchical engine."""

import inspect
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from hiermem.core.config import Settings
from hiermem.core.events import EventEmitter, MemoryEventType
from hiermem.core.logging import get_logger
from hiermem.memory.base import (
    MemoryLevel,
    MemoryRecord,
    MemoryStats,
    MemoryStore,
    SearchQuery,
    SearchResult,
    StoreConfig,
    TimeRange,
    serialize_content,
)
from hiermem.memory.hierarchical import DEFAULT_CONSOLIDATION_INTERVAL, HierarchicalMemory
from hiermem.memory.in_memory import InMemoryStore
from hiermem.memory.policy import LevelPolicy

logger = get_logger("memory.manager")


@dataclass
class MaintenanceReport:
    consolidated: int
    cleaned: int
    stats: MemoryStats


def store_config_from_settings(settings: Settings) -> StoreConfig:
    """Build backend options from settings."""
    max_memories = None
    if settings.max_memories:
        max_memories = {MemoryLevel(k): v for k, v in settings.max_memories.items()}
    return StoreConfig(
        auto_cleanup=settings.auto_cleanup,
        cleanup_interval=settings.cleanup_interval,
        max_memories=max_memories,
    )


class MemoryManager(EventEmitter):
    """High-level memory API.

    Every engine event is re-emitted under the same type, so callers only
    need to subscribe here.
    """

    def __init__(
        self,
        store: MemoryStore | None = None,
        *,
        store_config: StoreConfig | None = None,
        level_policies: Mapping[MemoryLevel | str, LevelPolicy | Mapping[str, Any]] | None = None,
        auto_consolidation: bool = True,
        consolidation_interval: float = DEFAULT_CONSOLIDATION_INTERVAL,
    ):
        super().__init__()
        self.memory_store = store if store is not None else InMemoryStore(store_config)
        self.engine = HierarchicalMemory(
            self.memory_store,
            level_policies=level_policies,
            auto_consolidation=auto_consolidation,
            consolidation_interval=consolidation_interval,
        )
        for event_type in MemoryEventType:
            self.engine.subscribe(event_type, self.emit)

    @classmethod
    def from_settings(
        cls, settings: Settings, store: MemoryStore | None = None
    ) -> "MemoryManager":
        """Create a manager configured from settings.

        Without an explicit store an InMemoryStore is built from the settings.
        """
        return cls(
            store,
            store_config=store_config_from_settings(settings),
            level_policies=settings.level_policies,
            auto_consolidation=settings.auto_consolidation,
            consolidation_interval=settings.consolidation_interval,
        )

    async def start(self) -> None:
        """Start background tasks that need a running event loop."""
        await self.memory_store.start()
        await self.engine.start()

    async def destroy(self) -> None:
        """Stop background work, dispose the store and drop listeners."""
        await self.engine.destroy()

        disposer = getattr(self.memory_store, "destroy", None) or getattr(
            self.memory_store, "close", None
        )
        if callable(disposer):
            result = disposer()
            if inspect.isawaitable(result):
                await result

        self.clear_listeners()

    # Engine operations

    async def store(
        self,
        content: Any,
        level: MemoryLevel,
        *,
        importance: float | None = None,
        tags: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
        expires_at: datetime | None = None,
    ) -> str:
        return await self.engine.store(
            content,
            level,
            importance=importance,
            tags=tags,
            metadata=metadata,
            expires_at=expires_at,
        )

    async def get(self, memory_id: str) -> MemoryRecord | None:
        return await self.engine.get(memory_id)

    async def search(self, query: SearchQuery) -> SearchResult:
        return await self.engine.search(query)

    async def update_importance(self, memory_id: str, importance: float) -> bool:
        return await self.engine.update_importance(memory_id, importance)

    async def add_tags(self, memory_id: str, tags: list[str]) -> bool:
        return await self.engine.add_tags(memory_id, tags)

    async def remove_tags(self, memory_id: str, tags: list[str]) -> bool:
        return await self.engine.remove_tags(memory_id, tags)

    async def delete(self, memory_id: str) -> bool:
        return await self.engine.delete(memory_id)

    async def get_by_level(self, level: MemoryLevel) -> list[MemoryRecord]:
        return await self.engine.get_by_level(level)

    async def clear(self, level: MemoryLevel | None = None) -> None:
        await self.engine.clear(level)

    async def get_stats(self) -> MemoryStats:
        return await self.engine.get_stats()

    async def consolidate(self) -> int:
        return await self.engine.consolidate()

    async def cleanup(self) -> int:
        return await self.engine.cleanup()

    # Convenience stores

    async def store_short_term(self, content: Any, **options: Any) -> str:
        return await self.store(content, MemoryLevel.SHORT_TERM, **options)

    async def store_long_term(self, content: Any, **options: Any) -> str:
        return await self.store(content, MemoryLevel.LONG_TERM, **options)

    async def store_episodic(self, content: Any, **options: Any) -> str:
        return await self.store(content, MemoryLevel.EPISODIC, **options)

    async def store_semantic(self, content: Any, **options: Any) -> str:
        return await self.store(content, MemoryLevel.SEMANTIC, **options)

    # Convenience queries

    async def search_level(
        self,
        level: MemoryLevel,
        text: str | None = None,
        *,
        tags: list[str] | None = None,
        min_importance: float | None = None,
        time_range: TimeRange | None = None,
        metadata: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> SearchResult:
        """Search within one level."""
        return await self.search(
            SearchQuery(
                text=text,
                level=level,
                tags=tags,
                min_importance=min_importance,
                time_range=time_range,
                metadata=metadata,
                limit=limit,
            )
        )

    async def find_similar(
        self,
        content: Any,
        *,
        level: MemoryLevel | None = None,
        limit: int = 5,
        min_importance: float | None = None,
    ) -> SearchResult:
        """Find records whose text contains the serialized content."""
        return await self.search(
            SearchQuery(
                text=serialize_content(content),
                level=level,
                limit=limit,
                min_importance=min_importance,
            )
        )

    async def get_recent(
        self, level: MemoryLevel | None = None, limit: int = 10
    ) -> list[MemoryRecord]:
        """Records touched in the last 24 hours, newest first."""
        result = await self.search(
            SearchQuery(
                level=level,
                limit=limit,
                time_range=TimeRange(start=datetime.now() - timedelta(hours=24)),
            )
        )
        return sorted(result.records, key=lambda r: r.timestamp, reverse=True)

    async def get_important(
        self,
        level: MemoryLevel | None = None,
        min_importance: float = 0.7,
        limit: int = 10,
    ) -> list[MemoryRecord]:
        """Records at or above an importance floor, most important first."""
        result = await self.search(
            SearchQuery(level=level, min_importance=min_importance, limit=limit)
        )
        return sorted(result.records, key=lambda r: r.importance, reverse=True)

    # Maintenance and backup

    async def perform_maintenance(self) -> MaintenanceReport:
        """Consolidate, purge expired records, then report stats."""
        consolidated = await self.consolidate()
        cleaned = await self.cleanup()
        stats = await self.get_stats()
        logger.info(f"Maintenance: consolidated={consolidated}, cleaned={cleaned}")
        return MaintenanceReport(consolidated=consolidated, cleaned=cleaned, stats=stats)

    async def export_records(self, level: MemoryLevel | None = None) -> list[MemoryRecord]:
        """All live records of one level, or of every level in level order."""
        if level is not None:
            return await self.get_by_level(level)

        records: list[MemoryRecord] = []
        for memory_level in MemoryLevel:
            records.extend(await self.get_by_level(memory_level))
        return records

    async def import_records(self, records: Iterable[MemoryRecord | dict[str, Any]]) -> int:
        """Insert records directly into the backend.

        Accepts MemoryRecord objects or dicts from MemoryRecord.to_dict().
        Bad records are logged and skipped. Returns the number imported.
        """
        imported = 0
        for item in records:
            try:
                record = item if isinstance(item, MemoryRecord) else MemoryRecord.from_dict(item)
                await self.memory_store.store(record)
                imported += 1
            except Exception as e:
                record_id = getattr(item, "id", None)
                if record_id is None and isinstance(item, dict):
                    record_id = item.get("id")
                logger.warning(f"Failed to import memory {record_id}: {e}")
        return imported
