"""Tests for memory record types."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from hiermem.memory.base import MemoryLevel, MemoryRecord, TimeRange, serialize_content


@dataclass
class Note:
    title: str
    body: str

    def to_text(self) -> str:
        return f"{self.title}: {self.body}"


def test_record_defaults():
    """New records start unaccessed with neutral importance."""
    record = MemoryRecord(id="r1", content="hello", level=MemoryLevel.SHORT_TERM)
    assert record.access_count == 0
    assert record.importance == 0.5
    assert record.tags == []
    assert record.metadata == {}
    assert record.expires_at is None


def test_record_rejects_out_of_range_importance():
    with pytest.raises(ValueError):
        MemoryRecord(id="r1", content="x", level=MemoryLevel.SHORT_TERM, importance=1.5)
    with pytest.raises(ValueError):
        MemoryRecord(id="r1", content="x", level=MemoryLevel.SHORT_TERM, importance=-0.1)


def test_record_requires_id():
    with pytest.raises(ValueError):
        MemoryRecord(id="", content="x", level=MemoryLevel.SHORT_TERM)


def test_record_level_from_string():
    record = MemoryRecord(id="r1", content="x", level="episodic")
    assert record.level == MemoryLevel.EPISODIC


def test_record_tags_deduplicated():
    record = MemoryRecord(id="r1", content="x", level=MemoryLevel.SEMANTIC, tags=["a", "b", "a"])
    assert record.tags == ["a", "b"]


def test_copy_is_detached():
    """Mutating a copy's tags or metadata leaves the original alone."""
    record = MemoryRecord(
        id="r1", content="x", level=MemoryLevel.SEMANTIC, tags=["a"], metadata={"k": 1}
    )
    clone = record.copy()
    clone.tags.append("b")
    clone.metadata["k"] = 2
    assert record.tags == ["a"]
    assert record.metadata == {"k": 1}


def test_dict_serialization():
    """to_dict output restores an equal record."""
    now = datetime.now()
    record = MemoryRecord(
        id="r1",
        content={"text": "User prefers dark mode"},
        level=MemoryLevel.LONG_TERM,
        timestamp=now,
        access_count=3,
        importance=0.8,
        tags=["prefs"],
        metadata={"source": "chat"},
        expires_at=now + timedelta(days=30),
    )
    data = record.to_dict()
    assert data["level"] == "long_term"
    assert data["timestamp"] == now.isoformat()
    assert MemoryRecord.from_dict(data) == record


def test_from_dict_malformed():
    with pytest.raises(KeyError):
        MemoryRecord.from_dict({"id": "r1", "level": "short_term"})
    with pytest.raises(ValueError):
        MemoryRecord.from_dict({"id": "r1", "content": "x", "level": "nowhere"})


def test_serialize_content():
    """Strings pass through, objects become JSON, to_text() wins."""
    assert serialize_content("plain") == "plain"
    assert serialize_content({"a": 1}) == '{"a": 1}'
    assert serialize_content([1, "two"]) == '[1, "two"]'
    assert serialize_content(Note("Trip", "Lisbon in May")) == "Trip: Lisbon in May"


def test_content_text_and_tags_text():
    record = MemoryRecord(
        id="r1", content=Note("Trip", "Lisbon"), level=MemoryLevel.EPISODIC, tags=["travel", "eu"]
    )
    assert record.content_text() == "Trip: Lisbon"
    assert record.tags_text() == "travel eu"


def test_aware_datetimes_become_local():
    instant = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
    record = MemoryRecord(
        id="r1", content="x", level=MemoryLevel.SHORT_TERM, timestamp=instant, expires_at=instant
    )

    expected = instant.astimezone().replace(tzinfo=None)
    assert record.timestamp == expected
    assert record.expires_at == expected
    assert record.expires_at.tzinfo is None

    window = TimeRange(start=instant)
    assert window.start == expected
