"""Tests for configuration module."""

from pathlib import Path

from hiermem.core.config import Settings


def test_default_settings():
    """Settings load with defaults."""
    settings = Settings(
        _env_file=None,  # Don't load .env in tests
    )
    assert settings.data_dir == Path("data")
    assert settings.auto_consolidation is True
    assert settings.consolidation_interval == 3600
    assert settings.auto_cleanup is True
    assert settings.cleanup_interval == 300
    assert settings.level_policies == {}
    assert settings.max_memories is None


def test_db_path():
    """Database path combines data_dir and db_name."""
    settings = Settings(
        data_dir=Path("/tmp/test"),
        db_name="test.db",
        _env_file=None,
    )
    assert settings.db_path == Path("/tmp/test/test.db")


def test_env_overrides(monkeypatch):
    """Environment variables with HIERMEM_ prefix override defaults."""
    monkeypatch.setenv("HIERMEM_AUTO_CONSOLIDATION", "false")
    monkeypatch.setenv("HIERMEM_CLEANUP_INTERVAL", "60")
    monkeypatch.setenv("HIERMEM_LEVEL_POLICIES", '{"short_term": {"max_size": 5}}')

    settings = Settings(_env_file=None)

    assert settings.auto_consolidation is False
    assert settings.cleanup_interval == 60
    assert settings.level_policies == {"short_term": {"max_size": 5}}
