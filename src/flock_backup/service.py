"""Operations exposed to the route/CLI layer.

Each operation is tenant-scoped and returns a JSON-serializable dict on
success.  Failures are raised as ``BackupError`` carrying a short
message only.  Observers are notified through an explicitly passed
``emit`` callable.

Usage:
    from flock_backup import service

    result = await service.create_backup(store, settings, tenant_id=1)
    result["file"]          # "backups/backup-2026-...json"

    result = await service.restore_backup(store, payload, tenant_id=1)
    result["summary"]       # {"users": 3, ...}
"""

import json
import logging
from collections.abc import Callable
from typing import Any, Literal

from flock_backup.adapters.base import RecordStore
from flock_backup.backup.catalog import list_snapshots
from flock_backup.backup.exporter import export_snapshot
from flock_backup.backup.recovery import restore_by_member_name
from flock_backup.backup.restore import restore_snapshot
from flock_backup.backup.serializer import persist_snapshot, serialize_snapshot
from flock_backup.backup.validator import validate_consistency
from flock_backup.config.models import BackupSettings
from flock_backup.errors import BackupError

logger = logging.getLogger(__name__)

EventEmitter = Callable[[str, dict[str, Any]], None]


def _emit(emit: EventEmitter | None, event: str, payload: dict[str, Any]) -> None:
    if emit is not None:
        emit(event, payload)


async def export_backup(store: RecordStore, tenant_id: int | None) -> dict[str, Any]:
    """Export the tenant's collections and return the snapshot document."""
    snapshot = await export_snapshot(store, tenant_id)
    return json.loads(serialize_snapshot(snapshot))


async def create_backup(
    store: RecordStore,
    settings: BackupSettings,
    tenant_id: int | None,
    emit: EventEmitter | None = None,
) -> dict[str, Any]:
    """Export and persist a snapshot file.

    Raises:
        BackupError: If serialization, encryption, or the write fails.
    """
    snapshot = await export_snapshot(store, tenant_id)
    try:
        written = persist_snapshot(
            snapshot, settings.backup_dir, encryption_key=settings.encryption_key
        )
    except Exception as e:
        logger.error(f"Backup failed: {e}")
        raise BackupError(f"Backup failed: {e}") from e

    result = {
        "success": True,
        "meta": snapshot.meta.model_dump(by_alias=True),
        "file": str(written.path),
        "size": written.size_bytes,
        "encrypted": written.encrypted,
    }
    _emit(emit, "backup.created", {"tenantId": tenant_id, "file": result["file"]})
    return result


def list_backups(settings: BackupSettings) -> dict[str, Any]:
    """List persisted snapshot files newest-first."""
    try:
        files = list_snapshots(settings.backup_dir)
    except OSError as e:
        raise BackupError(f"Cannot list backups: {e}") from e
    return {
        "success": True,
        "files": [
            {
                "file": str(info.path),
                "createdAt": info.created_at.isoformat(),
                "size": info.size_bytes,
            }
            for info in files
        ],
    }


async def restore_backup(
    store: RecordStore,
    payload: dict[str, Any],
    tenant_id: int,
    dry_run: bool = False,
    emit: EventEmitter | None = None,
) -> dict[str, Any]:
    """Restore a snapshot payload non-destructively.

    Raises:
        BackupError: ``RestoreError`` when the transaction was rolled back.
    """
    if not isinstance(payload, dict):
        raise BackupError("Restore payload must be a JSON object")
    report = await restore_snapshot(store, payload, tenant_id, dry_run=dry_run)
    result = {
        "success": True,
        "summary": report.summary,
        "skipped": [row.model_dump() for row in report.skipped],
        "dryRun": report.dry_run,
    }
    if not dry_run:
        _emit(emit, "backup.restored", {"tenantId": tenant_id, "summary": report.summary})
    return result


async def restore_member(
    store: RecordStore,
    settings: BackupSettings,
    name: str,
    tenant_id: int,
    strategy: Literal["latest", "earliest"] = "latest",
    include: list[str] | None = None,
    emit: EventEmitter | None = None,
) -> dict[str, Any]:
    """Find a member by name in the snapshot catalog and restore from that file.

    Not finding the member is a normal outcome (``found`` is ``False``).

    Raises:
        BackupError: Invalid query, unreadable catalog, or failed restore.
    """
    try:
        result = await restore_by_member_name(
            store,
            settings.backup_dir,
            name,
            tenant_id,
            strategy=strategy,
            include_collections=include,
            encryption_key=settings.encryption_key,
        )
    except BackupError:
        raise
    except (ValueError, OSError) as e:
        raise BackupError(str(e)) from e

    if result is None:
        return {"success": False, "found": False, "message": "Member not found in any backup"}

    _emit(
        emit,
        "backup.member_restored",
        {"tenantId": tenant_id, "name": name, "file": str(result.source_file)},
    )
    return {
        "success": True,
        "found": True,
        "restoredFor": result.restored_for,
        "sourceFile": str(result.source_file),
        "summary": result.report.summary,
    }


async def check_consistency(store: RecordStore, tenant_id: int | None) -> dict[str, Any]:
    """Run the consistency validator.

    Raises:
        BackupError: If the store cannot be read.
    """
    try:
        issues = await validate_consistency(store, tenant_id)
    except BackupError:
        raise
    except Exception as e:
        raise BackupError(f"Consistency check failed: {e}") from e
    return {"success": True, "issues": issues, "healthy": not issues}
