"""flock-backup: Tenant-scoped snapshot backup and non-destructive restore.

Exports a fixed set of collections into a self-describing JSON snapshot,
optionally encrypts it at rest, validates cross-collection references,
and restores by natural key without ever deleting or nulling data.

Usage:
    from flock_backup import get_store, load_settings
    from flock_backup import export_snapshot, persist_snapshot, restore_snapshot
    from flock_backup import restore_by_member_name, validate_consistency
    from flock_backup import BackupScheduler, MemoryStore
"""

__version__ = "0.1.0"

# Adapters
from flock_backup.adapters.base import RecordStore
from flock_backup.adapters.memory import MemoryStore
from flock_backup.adapters.postgres import AsyncPostgresStore

# Config
from flock_backup.config.loader import load_settings
from flock_backup.config.models import BackupSettings

# Errors
from flock_backup.errors import (
    BackupError,
    CollectionUnavailableError,
    RestoreError,
    SnapshotDecryptError,
    StoreNotConfiguredError,
)

# Factory
from flock_backup.factory import get_store

# Backup
from flock_backup.backup.exporter import export_snapshot
from flock_backup.backup.models import RestoreReport, Snapshot
from flock_backup.backup.recovery import restore_by_member_name
from flock_backup.backup.restore import restore_snapshot
from flock_backup.backup.serializer import persist_snapshot
from flock_backup.backup.validator import validate_consistency

# Scheduling
from flock_backup.scheduler import BackupScheduler

__all__ = [
    # Adapters
    "RecordStore",
    "MemoryStore",
    "AsyncPostgresStore",
    # Config
    "load_settings",
    "BackupSettings",
    # Errors
    "BackupError",
    "CollectionUnavailableError",
    "RestoreError",
    "SnapshotDecryptError",
    "StoreNotConfiguredError",
    # Factory
    "get_store",
    # Backup
    "Snapshot",
    "RestoreReport",
    "export_snapshot",
    "persist_snapshot",
    "restore_snapshot",
    "restore_by_member_name",
    "validate_consistency",
    # Scheduling
    "BackupScheduler",
]
