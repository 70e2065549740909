"""
hiermem - hierarchical memory for agents.

Package structure:
- core: Config, logging, events, background scheduling
- memory: Records, level policies, storage backends, engine and manager
- cli: Command-line maintenance tool for SQLite-backed stores
"""

__version__ = "0.1.0"
