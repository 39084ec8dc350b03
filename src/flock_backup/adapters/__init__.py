"""Record store adapters package.

Provides the ``RecordStore`` Protocol and its implementations:
``AsyncPostgresStore`` for production and ``MemoryStore`` for tests and
local dry runs.

Usage:
    from flock_backup.adapters import RecordStore, AsyncPostgresStore, MemoryStore
"""

from flock_backup.adapters.base import RELATIONS, RecordStore, Relation
from flock_backup.adapters.memory import MemoryStore
from flock_backup.adapters.postgres import AsyncPostgresStore

__all__ = [
    "RecordStore",
    "Relation",
    "RELATIONS",
    "AsyncPostgresStore",
    "MemoryStore",
]
