"""
Memory module - hierarchical memory system.

Levels:
- short_term: Recent working context (1h TTL)
- long_term: Promoted short-term memories (30d TTL)
- episodic: Timestamped events/conversations (7d TTL)
- semantic: Durable facts (no TTL)

Storage: in-process dict or SQLite
"""

from hiermem.memory.base import (
    MemoryLevel,
    MemoryRecord,
    MemoryStats,
    MemoryStore,
    SearchQuery,
    SearchResult,
    StoreConfig,
    SupportsText,
    TimeRange,
)
from hiermem.memory.hierarchical import HierarchicalMemory
from hiermem.memory.in_memory import InMemoryStore
from hiermem.memory.manager import MaintenanceReport, MemoryManager
from hiermem.memory.policy import (
    CONSOLIDATION_PATHS,
    DEFAULT_POLICIES,
    InvalidConfigurationError,
    LevelPolicy,
)
from hiermem.memory.store import SQLiteMemoryStore

__all__ = [
    "CONSOLIDATION_PATHS",
    "DEFAULT_POLICIES",
    "HierarchicalMemory",
    "InMemoryStore",
    "InvalidConfigurationError",
    "LevelPolicy",
    "MaintenanceReport",
    "MemoryLevel",
    "MemoryManager",
    "MemoryRecord",
    "MemoryStats",
    "MemoryStore",
    "SQLiteMemoryStore",
    "SearchQuery",
    "SearchResult",
    "StoreConfig",
    "SupportsText",
    "TimeRange",
]
