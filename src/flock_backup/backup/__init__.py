"""Snapshot export, persistence, validation, and non-destructive restore.

Usage:
    from flock_backup.backup import export_snapshot, persist_snapshot, list_snapshots
    from flock_backup.backup import restore_snapshot, restore_by_member_name
    from flock_backup.backup import validate_consistency
"""

from flock_backup.backup.catalog import ensure_backup_dir, list_snapshots, load_snapshot
from flock_backup.backup.crypto import (
    decrypt_bytes,
    decrypt_snapshot,
    encrypt_bytes,
    encrypt_document,
)
from flock_backup.backup.exporter import export_snapshot
from flock_backup.backup.models import (
    EntityDef,
    ForeignKey,
    LinkDef,
    MemberRestoreResult,
    PersistResult,
    RestoreReport,
    RestoreSchema,
    SkippedRow,
    Snapshot,
    SnapshotInfo,
    SnapshotMeta,
)
from flock_backup.backup.recovery import restore_by_member_name
from flock_backup.backup.restore import restore_snapshot
from flock_backup.backup.schema import RESTORE_SCHEMA, SNAPSHOT_COLLECTIONS
from flock_backup.backup.serializer import persist_snapshot
from flock_backup.backup.validator import REFERENCE_CHECKS, ReferenceCheck, validate_consistency

__all__ = [
    "Snapshot",
    "SnapshotMeta",
    "SnapshotInfo",
    "PersistResult",
    "EntityDef",
    "LinkDef",
    "ForeignKey",
    "RestoreSchema",
    "RestoreReport",
    "SkippedRow",
    "MemberRestoreResult",
    "RESTORE_SCHEMA",
    "SNAPSHOT_COLLECTIONS",
    "REFERENCE_CHECKS",
    "ReferenceCheck",
    "export_snapshot",
    "persist_snapshot",
    "encrypt_bytes",
    "encrypt_document",
    "decrypt_bytes",
    "decrypt_snapshot",
    "ensure_backup_dir",
    "list_snapshots",
    "load_snapshot",
    "validate_consistency",
    "restore_snapshot",
    "restore_by_member_name",
]
