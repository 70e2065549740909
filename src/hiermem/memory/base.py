"""
Memory record types and the storage backend interface.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from hiermem.core.scheduler import PeriodicTask
from hiermem.core.typing import JSONDict, Metadata


class MemoryLevel(Enum):
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"
    EPISODIC = "episodic"
    SEMANTIC = "semantic"


@runtime_checkable
class SupportsText(Protocol):
    """Content that knows how to render itself for text search."""

    def to_text(self) -> str: ...


def serialize_content(content: Any) -> str:
    """Render content as the text that search matches against."""
    if isinstance(content, SupportsText):
        return content.to_text()
    if isinstance(content, str):
        return content
    return json.dumps(content, default=str, ensure_ascii=False)


ContentT = TypeVar("ContentT")

# Fields callers may change through MemoryStore.update()
UPDATABLE_FIELDS = frozenset(
    {"content", "level", "importance", "tags", "metadata", "expires_at", "access_count"}
)


def _dedupe(tags: list[str]) -> list[str]:
    return list(dict.fromkeys(tags))


def _check_importance(importance: float) -> None:
    if not 0.0 <= importance <= 1.0:
        raise ValueError(f"Importance must be between 0 and 1, got {importance}")


def _local_naive(value: datetime | None) -> datetime | None:
    """Aware datetimes become naive local time, matching datetime.now()."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


@dataclass
class MemoryRecord(Generic[ContentT]):
    """Single stored memory item."""

    id: str
    content: ContentT
    level: MemoryLevel
    timestamp: datetime = field(default_factory=datetime.now)
    access_count: int = 0
    importance: float = 0.5  # 0-1 ranking
    tags: list[str] = field(default_factory=list)
    metadata: Metadata = field(default_factory=dict)
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Memory record requires an id")
        if not isinstance(self.level, MemoryLevel):
            self.level = MemoryLevel(self.level)
        _check_importance(self.importance)
        self.timestamp = _local_naive(self.timestamp)
        self.expires_at = _local_naive(self.expires_at)
        self.tags = _dedupe(list(self.tags or []))
        self.metadata = dict(self.metadata or {})

    def copy(self, **changes: Any) -> "MemoryRecord[ContentT]":
        """Return a detached copy, optionally with fields replaced."""
        changes.setdefault("tags", list(self.tags))
        changes.setdefault("metadata", dict(self.metadata))
        return replace(self, **changes)

    def content_text(self) -> str:
        return serialize_content(self.content)

    def tags_text(self) -> str:
        return " ".join(self.tags)

    def to_dict(self) -> JSONDict:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "id": self.id,
            "content": self.content,
            "level": self.level.value,
            "timestamp": self.timestamp.isoformat(),
            "access_count": self.access_count,
            "importance": self.importance,
            "tags": list(self.tags),
            "metadata": dict(self.metadata),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: JSONDict) -> "MemoryRecord":
        """Deserialize from a dictionary produced by to_dict().

        Raises KeyError, ValueError or TypeError on malformed input.
        """
        timestamp = data.get("timestamp")
        expires_at = data.get("expires_at")
        return cls(
            id=data["id"],
            content=data["content"],
            level=MemoryLevel(data["level"]),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(),
            access_count=int(data.get("access_count", 0)),
            importance=float(data.get("importance", 0.5)),
            tags=list(data.get("tags") or []),
            metadata=dict(data.get("metadata") or {}),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )


@dataclass
class TimeRange:
    """Inclusive bounds on record timestamp. Either side may be open."""

    start: datetime | None = None
    end: datetime | None = None

    def __post_init__(self) -> None:
        self.start = _local_naive(self.start)
        self.end = _local_naive(self.end)


@dataclass
class SearchQuery:
    """Search criteria. Unset fields do not filter.

    A limit of None or 0 means DEFAULT_SEARCH_LIMIT.
    """

    text: str | None = None
    level: MemoryLevel | None = None
    tags: list[str] | None = None
    min_importance: float | None = None
    time_range: TimeRange | None = None
    metadata: Metadata | None = None
    limit: int | None = None


DEFAULT_SEARCH_LIMIT = 10


@dataclass
class SearchResult:
    records: list[MemoryRecord]
    total: int  # matches before the limit cut
    elapsed_ms: float


@dataclass
class MemoryStats:
    memory_count: dict[MemoryLevel, int]
    total_memories: int
    average_importance: dict[MemoryLevel, float]
    most_accessed: list[MemoryRecord]
    recent_activity: list[MemoryRecord]


@dataclass
class StoreConfig:
    """Backend options."""

    auto_cleanup: bool = True
    cleanup_interval: float = 300.0  # seconds
    # Optional hard cap per level, independent of engine policy
    max_memories: dict[MemoryLevel, int] | None = None


_MISSING = object()


class MemoryStore(ABC):
    """Abstract memory storage interface.

    Backends are policy-agnostic: they store, expire lazily, filter and rank.
    Capacity and consolidation policy live in HierarchicalMemory.
    """

    def __init__(self, config: StoreConfig | None = None):
        self.config = config or StoreConfig()
        self._cleanup_task: PeriodicTask | None = None
        if self.config.auto_cleanup:
            self._cleanup_task = PeriodicTask(
                f"{type(self).__name__}.cleanup", self.cleanup, self.config.cleanup_interval
            )

    @abstractmethod
    async def store(self, record: MemoryRecord) -> None:
        """Insert or overwrite a record by id."""
        ...

    @abstractmethod
    async def get(self, memory_id: str) -> MemoryRecord | None:
        """Get a live record and record the access."""
        ...

    @abstractmethod
    async def search(self, query: SearchQuery) -> SearchResult:
        """Filter, rank and paginate records."""
        ...

    @abstractmethod
    async def update(self, memory_id: str, **fields: Any) -> bool:
        """Merge fields into a live record."""
        ...

    @abstractmethod
    async def delete(self, memory_id: str) -> bool:
        """Delete a record. Returns whether anything was removed."""
        ...

    @abstractmethod
    async def get_by_level(self, level: MemoryLevel) -> list[MemoryRecord]:
        """All live records of a level, newest first."""
        ...

    @abstractmethod
    async def clear(self, level: MemoryLevel | None = None) -> None:
        """Remove all records, optionally only one level."""
        ...

    @abstractmethod
    async def get_stats(self) -> MemoryStats:
        """Per-level counts and activity summaries."""
        ...

    @abstractmethod
    async def cleanup(self) -> int:
        """Purge expired records, return how many were removed."""
        ...

    # Background cleanup lifecycle

    async def start(self) -> None:
        """Start auto-cleanup if enabled."""
        if self._cleanup_task:
            self._cleanup_task.start()

    async def destroy(self) -> None:
        """Stop auto-cleanup. Stored data is untouched."""
        if self._cleanup_task:
            await self._cleanup_task.stop()

    # Shared helpers for backends

    @staticmethod
    def is_expired(record: MemoryRecord, now: datetime | None = None) -> bool:
        if record.expires_at is None:
            return False
        return record.expires_at < (now or datetime.now())

    @staticmethod
    def record_access(record: MemoryRecord) -> MemoryRecord:
        """Copy with access count bumped and timestamp refreshed."""
        return record.copy(access_count=record.access_count + 1, timestamp=datetime.now())

    @staticmethod
    def merge_fields(record: MemoryRecord, fields: dict[str, Any]) -> MemoryRecord:
        """Copy with fields applied and timestamp refreshed. id never changes."""
        fields = {k: v for k, v in fields.items() if k != "id"}
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if "importance" in fields:
            _check_importance(fields["importance"])
        if "level" in fields and not isinstance(fields["level"], MemoryLevel):
            fields["level"] = MemoryLevel(fields["level"])
        if "tags" in fields:
            fields["tags"] = _dedupe(list(fields["tags"] or []))
        if "metadata" in fields:
            fields["metadata"] = dict(fields["metadata"] or {})
        return record.copy(**fields, timestamp=datetime.now())

    @staticmethod
    def matches_query(record: MemoryRecord, query: SearchQuery) -> bool:
        """Check a record against every filter in the query."""
        if query.level is not None and record.level != query.level:
            return False

        if query.min_importance is not None and record.importance < query.min_importance:
            return False

        if query.tags and not all(tag in record.tags for tag in query.tags):
            return False

        if query.time_range:
            if query.time_range.start and record.timestamp < query.time_range.start:
                return False
            if query.time_range.end and record.timestamp > query.time_range.end:
                return False

        if query.metadata:
            for key, value in query.metadata.items():
                if record.metadata.get(key, _MISSING) != value:
                    return False

        if query.text:
            needle = query.text.casefold()
            if (
                needle not in record.content_text().casefold()
                and needle not in record.tags_text().casefold()
            ):
                return False

        return True

    @staticmethod
    def relevance_score(
        record: MemoryRecord, query: SearchQuery, now: datetime | None = None
    ) -> float:
        """Importance + recency + access frequency + text match bonuses."""
        score = record.importance * 100

        # Up to 50 points, decaying one point per hour
        hours = ((now or datetime.now()) - record.timestamp).total_seconds() / 3600
        score += max(0.0, 50 - hours)

        # Up to 25 points for frequently accessed
        score += min(record.access_count * 5, 25)

        if query.text:
            needle = query.text.casefold()
            if needle in record.content_text().casefold():
                score += 20
            if needle in record.tags_text().casefold():
                score += 15

        return score

    @classmethod
    def rank(cls, records: list[MemoryRecord], query: SearchQuery) -> list[MemoryRecord]:
        """Sort by relevance, highest first. Ties keep input order."""
        now = datetime.now()
        return sorted(records, key=lambda r: cls.relevance_score(r, query, now), reverse=True)

    @staticmethod
    def build_stats(records: list[MemoryRecord]) -> MemoryStats:
        """Compute stats over a list of live records."""
        counts = {level: 0 for level in MemoryLevel}
        importance_sums = {level: 0.0 for level in MemoryLevel}
        for record in records:
            counts[record.level] += 1
            importance_sums[record.level] += record.importance

        average = {
            level: importance_sums[level] / counts[level] if counts[level] else 0.0
            for level in MemoryLevel
        }
        most_accessed = sorted(records, key=lambda r: r.access_count, reverse=True)[:10]
        recent = sorted(records, key=lambda r: r.timestamp, reverse=True)[:10]

        return MemoryStats(
            memory_count=counts,
            total_memories=len(records),
            average_importance=average,
            most_accessed=[r.copy() for r in most_accessed],
            recent_activity=[r.copy() for r in recent],
        )
