"""Tests for the memory manager facade."""

from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import Mock

import pytest

from hiermem.core.config import Settings
from hiermem.core.events import MemoryEventType
from hiermem.memory.base import MemoryLevel, MemoryRecord, StoreConfig
from hiermem.memory.in_memory import InMemoryStore
from hiermem.memory.manager import MemoryManager
from hiermem.memory.store import SQLiteMemoryStore


@pytest.fixture
async def manager():
    mgr = MemoryManager(store_config=StoreConfig(auto_cleanup=False), auto_consolidation=False)
    yield mgr
    await mgr.destroy()


@pytest.mark.asyncio
async def test_convenience_stores(manager: MemoryManager):
    """Each convenience method targets its level."""
    ids = {
        MemoryLevel.SHORT_TERM: await manager.store_short_term("s", importance=0.2),
        MemoryLevel.LONG_TERM: await manager.store_long_term("l"),
        MemoryLevel.EPISODIC: await manager.store_episodic("e", tags=["day"]),
        MemoryLevel.SEMANTIC: await manager.store_semantic("f", metadata={"src": "x"}),
    }
    for level, memory_id in ids.items():
        record = await manager.get(memory_id)
        assert record.level == level

    assert (await manager.get(ids[MemoryLevel.SHORT_TERM])).importance == 0.2


@pytest.mark.asyncio
async def test_search_level(manager: MemoryManager):
    await manager.store_episodic("coffee with Ana")
    await manager.store_semantic("Ana drinks coffee black")

    result = await manager.search_level(MemoryLevel.SEMANTIC, "coffee")
    assert result.total == 1
    assert result.records[0].level == MemoryLevel.SEMANTIC


@pytest.mark.asyncio
async def test_find_similar_serializes_content(manager: MemoryManager):
    await manager.store_episodic({"topic": "weather"})
    await manager.store_episodic({"topic": "travel"})

    result = await manager.find_similar({"topic": "weather"})
    assert result.total == 1
    assert result.records[0].content == {"topic": "weather"}


@pytest.mark.asyncio
async def test_get_recent_newest_first(manager: MemoryManager):
    for text in ["first", "second", "third"]:
        await manager.store_short_term(text)
    old = MemoryRecord(
        id="old",
        content="last week",
        level=MemoryLevel.SEMANTIC,
        timestamp=datetime.now() - timedelta(days=7),
    )
    await manager.import_records([old])

    recent = await manager.get_recent()
    assert [r.content for r in recent] == ["third", "second", "first"]

    assert await manager.get_recent(MemoryLevel.SEMANTIC) == []


@pytest.mark.asyncio
async def test_get_important(manager: MemoryManager):
    await manager.store_semantic("a", importance=0.75)
    await manager.store_semantic("b", importance=0.95)
    await manager.store_semantic("c", importance=0.3)
    await manager.store_episodic("d", importance=0.8)

    important = await manager.get_important()
    assert [r.content for r in important] == ["b", "d", "a"]

    semantic_only = await manager.get_important(MemoryLevel.SEMANTIC, min_importance=0.9)
    assert [r.content for r in semantic_only] == ["b"]


@pytest.mark.asyncio
async def test_perform_maintenance(manager: MemoryManager):
    await manager.store_short_term("promote me", importance=0.9)
    # Semantic is not scanned by consolidation, so only cleanup sees it
    await manager.store_semantic(
        "expired", expires_at=datetime.now() - timedelta(seconds=1)
    )

    report = await manager.perform_maintenance()

    assert report.consolidated == 1
    assert report.cleaned == 1
    assert report.stats.memory_count[MemoryLevel.LONG_TERM] == 1
    assert report.stats.total_memories == 1


@pytest.mark.asyncio
async def test_export_records(manager: MemoryManager):
    await manager.store_semantic("fact")
    await manager.store_short_term("note")
    await manager.store_episodic("event")

    everything = await manager.export_records()
    assert [r.level for r in everything] == [
        MemoryLevel.SHORT_TERM,
        MemoryLevel.EPISODIC,
        MemoryLevel.SEMANTIC,
    ]

    only_semantic = await manager.export_records(MemoryLevel.SEMANTIC)
    assert [r.content for r in only_semantic] == ["fact"]


@pytest.mark.asyncio
async def test_import_skips_malformed(manager: MemoryManager):
    """Bad records are counted out without aborting the batch."""
    good = [
        MemoryRecord(id="r1", content="one", level=MemoryLevel.SEMANTIC),
        MemoryRecord(id="r2", content="two", level=MemoryLevel.EPISODIC).to_dict(),
        MemoryRecord(id="r3", content="three", level=MemoryLevel.LONG_TERM),
    ]
    malformed = {"id": "broken", "level": "short_term"}

    imported = await manager.import_records([good[0], malformed, good[1], "junk", good[2]])

    assert imported == 3
    assert await manager.get("r2") is not None
    assert await manager.get("broken") is None


@pytest.mark.asyncio
async def test_export_import_round_trip(manager: MemoryManager):
    await manager.store_semantic({"fact": "sky is blue"}, tags=["nature"])
    exported = [r.to_dict() for r in await manager.export_records()]

    target = MemoryManager(
        store_config=StoreConfig(auto_cleanup=False), auto_consolidation=False
    )
    assert await target.import_records(exported) == 1
    [record] = await target.get_by_level(MemoryLevel.SEMANTIC)
    assert record.content == {"fact": "sky is blue"}
    assert record.tags == ["nature"]
    await target.destroy()


@pytest.mark.asyncio
async def test_events_are_relayed(manager: MemoryManager):
    listener = Mock()
    for event_type in MemoryEventType:
        manager.subscribe(event_type, listener)

    memory_id = await manager.store_short_term("x", importance=0.9)
    await manager.get(memory_id)
    await manager.add_tags(memory_id, ["t"])
    await manager.consolidate()
    await manager.cleanup()

    seen = [call.args[0].type for call in listener.call_args_list]
    assert seen == [
        MemoryEventType.STORED,
        MemoryEventType.RETRIEVED,
        MemoryEventType.UPDATED,
        MemoryEventType.CONSOLIDATED,
        MemoryEventType.CLEANED,
    ]


@pytest.mark.asyncio
async def test_destroy_disposes_store():
    store = InMemoryStore(StoreConfig(cleanup_interval=60))
    mgr = MemoryManager(store, consolidation_interval=60)
    mgr.subscribe(MemoryEventType.STORED, Mock())
    assert store._cleanup_task.active
    assert mgr.engine._consolidation_task.active

    await mgr.destroy()

    assert not store._cleanup_task.active
    assert not mgr.engine._consolidation_task.active
    assert mgr.listener_count() == 0


@pytest.mark.asyncio
async def test_from_settings():
    settings = Settings(
        _env_file=None,
        auto_consolidation=False,
        auto_cleanup=False,
        level_policies={"short_term": {"max_size": 2}},
        max_memories={"episodic": 3},
    )
    mgr = MemoryManager.from_settings(settings)

    assert mgr.engine.policy(MemoryLevel.SHORT_TERM).max_size == 2
    assert mgr.memory_store.config.max_memories == {MemoryLevel.EPISODIC: 3}
    assert mgr.engine._consolidation_task is None
    assert mgr.memory_store._cleanup_task is None
    await mgr.destroy()


@pytest.mark.asyncio
async def test_sqlite_backed_manager(tmp_path: Path):
    """The facade works unchanged over the SQLite backend."""
    store = SQLiteMemoryStore(tmp_path / "memory.db", StoreConfig(auto_cleanup=False))
    await store.connect()
    mgr = MemoryManager(store, auto_consolidation=False)

    original = await mgr.store_short_term({"text": "A"}, importance=0.9)
    assert await mgr.consolidate() == 1
    assert await mgr.get_by_level(MemoryLevel.SHORT_TERM) == []
    [promoted] = await mgr.get_by_level(MemoryLevel.LONG_TERM)
    assert promoted.metadata["consolidated_from"] == "short_term"
    assert await mgr.get(original) is None

    await mgr.destroy()
    assert store._conn is None


@pytest.mark.asyncio
async def test_uses_supplied_empty_store():
    """A caller's store is used even while it holds no records."""
    store = InMemoryStore(StoreConfig(auto_cleanup=False))
    mgr = MemoryManager(store, auto_consolidation=False)
    assert mgr.memory_store is store

    memory_id = await mgr.store_short_term("x")
    await mgr.import_records(
        [MemoryRecord(id="imported", content="y", level=MemoryLevel.SEMANTIC)]
    )

    assert len(store) == 2
    assert await store.get(memory_id) is not None
    await mgr.destroy()
