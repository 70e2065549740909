"""
Per-level memory policies.

Each level has a capacity, an optional time-to-live and an optional
importance threshold above which its records are promoted. Promotion only
happens along the fixed paths in CONSOLIDATION_PATHS.
"""

from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

from hiermem.memory.base import MemoryLevel


class InvalidConfigurationError(ValueError):
    """Raised when a level policy is out of bounds."""


@dataclass(frozen=True)
class LevelPolicy:
    max_size: int
    ttl: float | None = None  # seconds, None = never expires
    consolidation_threshold: float | None = None

    def __post_init__(self) -> None:
        if self.max_size <= 0:
            raise InvalidConfigurationError(f"max_size must be positive, got {self.max_size}")
        if self.ttl is not None and self.ttl < 0:
            raise InvalidConfigurationError(f"ttl must not be negative, got {self.ttl}")
        threshold = self.consolidation_threshold
        if threshold is not None and not 0.0 <= threshold <= 1.0:
            raise InvalidConfigurationError(
                f"consolidation_threshold must be between 0 and 1, got {threshold}"
            )

    def with_overrides(self, **overrides: Any) -> "LevelPolicy":
        """Copy with some fields replaced. None clears ttl or threshold."""
        allowed = {f.name for f in fields(self)}
        unknown = set(overrides) - allowed
        if unknown:
            raise InvalidConfigurationError(
                f"Unknown policy fields: {', '.join(sorted(unknown))}"
            )
        if "max_size" in overrides and overrides["max_size"] is None:
            raise InvalidConfigurationError("max_size cannot be cleared")
        return replace(self, **overrides)


DEFAULT_POLICIES: dict[MemoryLevel, LevelPolicy] = {
    MemoryLevel.SHORT_TERM: LevelPolicy(max_size=100, ttl=3600, consolidation_threshold=0.7),
    MemoryLevel.LONG_TERM: LevelPolicy(
        max_size=1000, ttl=86400 * 30, consolidation_threshold=0.8
    ),
    MemoryLevel.EPISODIC: LevelPolicy(max_size=500, ttl=86400 * 7, consolidation_threshold=0.6),
    # Semantic facts persist
    MemoryLevel.SEMANTIC: LevelPolicy(max_size=2000, consolidation_threshold=0.9),
}

# (source, target) promotion pairs
CONSOLIDATION_PATHS: tuple[tuple[MemoryLevel, MemoryLevel], ...] = (
    (MemoryLevel.SHORT_TERM, MemoryLevel.LONG_TERM),
    (MemoryLevel.EPISODIC, MemoryLevel.SEMANTIC),
)


def resolve_policies(
    overrides: Mapping[MemoryLevel | str, LevelPolicy | Mapping[str, Any]] | None = None,
) -> dict[MemoryLevel, LevelPolicy]:
    """Merge partial per-level overrides onto the defaults.

    Raises InvalidConfigurationError for unknown levels, unknown fields or
    out-of-range values.
    """
    policies = dict(DEFAULT_POLICIES)
    for key, override in (overrides or {}).items():
        try:
            level = key if isinstance(key, MemoryLevel) else MemoryLevel(key)
        except ValueError:
            raise InvalidConfigurationError(f"Unknown memory level: {key}") from None

        if isinstance(override, LevelPolicy):
            policies[level] = override
        else:
            policies[level] = policies[level].with_overrides(**override)
    return policies
