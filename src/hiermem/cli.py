"""
CLI entry point.

Commands:
- init: Initialize data directory and database
- stats: Show per-level counts and activity
- maintain: Consolidate, purge expired records, show stats
- search <text> [level]: Ranked text search
- export [level]: Write records as JSON to stdout
- import <file>: Load records from a JSON export

Flags:
- --debug: Enable debug logging
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

from hiermem.core.config import Settings, get_settings
from hiermem.core.logging import get_logger, setup_logging
from hiermem.memory.base import MemoryLevel, MemoryStats, SearchQuery
from hiermem.memory.manager import MemoryManager, store_config_from_settings
from hiermem.memory.store import SQLiteMemoryStore

USAGE = """Usage: hiermem [--debug] <command> [args]
Commands: init, stats, maintain, search <text> [level], export [level], import <file>
Levels: short_term, long_term, episodic, semantic"""


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = list(sys.argv[1:] if argv is None else argv)
    settings = get_settings()

    # Parse --debug flag (enables verbose DEBUG traces)
    debug_mode = "--debug" in args
    if debug_mode:
        args.remove("--debug")

    setup_logging(level=logging.DEBUG if debug_mode else logging.WARNING)
    logger = get_logger("cli")

    if not args:
        print(USAGE)
        return 1

    command, rest = args[0], args[1:]

    if command == "init":
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initialized data directory: {settings.data_dir}")
        return asyncio.run(_with_manager(settings, _init))

    try:
        if command == "stats":
            return asyncio.run(_with_manager(settings, _stats))
        if command == "maintain":
            return asyncio.run(_with_manager(settings, _maintain))
        if command == "search" and rest:
            level = _parse_level(rest[1]) if len(rest) > 1 else None
            return asyncio.run(_with_manager(settings, _search, rest[0], level))
        if command == "export":
            level = _parse_level(rest[0]) if rest else None
            return asyncio.run(_with_manager(settings, _export, level))
        if command == "import" and rest:
            return asyncio.run(_with_manager(settings, _import, Path(rest[0])))
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    print(f"Unknown command: {' '.join(args)}")
    print(USAGE)
    return 1


def _parse_level(value: str) -> MemoryLevel:
    try:
        return MemoryLevel(value)
    except ValueError:
        raise ValueError(f"Unknown level: {value}") from None


async def _with_manager(settings: Settings, handler, *args) -> int:
    """Open the SQLite store, run handler, always close."""
    # One-shot process, no background tasks
    store_config = store_config_from_settings(settings)
    store_config.auto_cleanup = False
    store = SQLiteMemoryStore(settings.db_path, store_config)
    await store.connect()

    manager = MemoryManager(
        store,
        level_policies=settings.level_policies,
        auto_consolidation=False,
    )
    try:
        return await handler(manager, *args)
    finally:
        await manager.destroy()


async def _init(manager: MemoryManager) -> int:
    print(f"Created: {manager.memory_store.db_path}")
    return 0


def _print_stats(stats: MemoryStats) -> None:
    print(f"Total memories: {stats.total_memories}")
    for level in MemoryLevel:
        print(
            f"  {level.value:<11} {stats.memory_count[level]:>6}"
            f"  avg importance {stats.average_importance[level]:.2f}"
        )


async def _stats(manager: MemoryManager) -> int:
    _print_stats(await manager.get_stats())
    return 0


async def _maintain(manager: MemoryManager) -> int:
    report = await manager.perform_maintenance()
    print(f"Consolidated: {report.consolidated}")
    print(f"Cleaned: {report.cleaned}")
    _print_stats(report.stats)
    return 0


async def _search(manager: MemoryManager, text: str, level: MemoryLevel | None) -> int:
    result = await manager.search(SearchQuery(text=text, level=level))
    print(f"{result.total} matches ({result.elapsed_ms:.1f} ms)")
    for record in result.records:
        preview = record.content_text().replace("\n", " ")[:80]
        print(f"  [{record.level.value}] {record.id} ({record.importance:.2f}) {preview}")
    return 0


async def _export(manager: MemoryManager, level: MemoryLevel | None) -> int:
    records = await manager.export_records(level)
    print(json.dumps([record.to_dict() for record in records], indent=2, ensure_ascii=False))
    return 0


async def _import(manager: MemoryManager, path: Path) -> int:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: cannot read {path}: {e}")
        return 1
    if not isinstance(data, list):
        print(f"Error: {path} must contain a JSON list of records")
        return 1

    imported = await manager.import_records(data)
    print(f"Imported {imported} of {len(data)} records")
    return 0 if imported == len(data) else 1


if __name__ == "__main__":
    sys.exit(main())
