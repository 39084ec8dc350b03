"""Restore by member name.

Scans the snapshot catalog for the first file containing a member whose
name matches the query and restores a subset of that one file.  The
scan stops at the first match -- it does not rank matches across files.

Usage:
    from flock_backup.backup.recovery import restore_by_member_name

    result = await restore_by_member_name(
        store, "backups", "Jane Doe", tenant_id=1, strategy="earliest",
    )
    if result is None:
        print("not found")
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Literal

from flock_backup.adapters.base import RecordStore
from flock_backup.backup.catalog import list_snapshots, load_snapshot
from flock_backup.backup.models import MemberRestoreResult
from flock_backup.backup.restore import restore_snapshot
from flock_backup.errors import SnapshotDecryptError

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE: tuple[str, ...] = ("users", "members", "departments")


def normalize_name(name: str) -> str:
    """Trim, lowercase, and collapse internal whitespace."""
    return re.sub(r"\s+", " ", name.strip().lower())


def member_matches(member: dict[str, Any], query: str) -> bool:
    """True when the member's full name equals ``query`` or contains all its tokens.

    ``query`` must already be normalized.
    """
    first = str(member.get("firstName") or "")
    last = str(member.get("lastName") or "")
    full = normalize_name(f"{first} {last}")
    if not full:
        return False
    if full == query:
        return True
    tokens = set(full.split(" "))
    return all(token in tokens for token in query.split(" "))


async def restore_by_member_name(
    store: RecordStore,
    backup_dir: str | Path,
    name: str,
    tenant_id: int,
    strategy: Literal["latest", "earliest"] = "latest",
    include_collections: list[str] | None = None,
    encryption_key: str | bytes | None = None,
) -> MemberRestoreResult | None:
    """Restore from the first snapshot (in ``strategy`` order) containing ``name``.

    Args:
        store: Record store to restore into.
        backup_dir: Snapshot directory.
        name: Member name to search for, e.g. ``"Jane Doe"``.
        tenant_id: Target tenant.
        strategy: ``"latest"`` scans newest-first, ``"earliest"`` oldest-first.
        include_collections: Collections restored from the matching file
            (default users, members, departments).
        encryption_key: Key for encrypted snapshot files.

    Returns:
        MemberRestoreResult, or ``None`` when no snapshot contains the member.

    Raises:
        ValueError: If ``name`` is shorter than 2 characters or the
            strategy is unknown.
        RestoreError: If the restore itself fails.
    """
    query = normalize_name(name)
    if len(query) < 2:
        raise ValueError('Provide full member name (e.g., "First Last")')
    if strategy not in ("latest", "earliest"):
        raise ValueError(f"Unknown strategy: {strategy}")

    files = list_snapshots(backup_dir)
    if strategy == "earliest":
        files.reverse()

    include = list(include_collections) if include_collections else list(DEFAULT_INCLUDE)

    for info in files:
        try:
            document = load_snapshot(info.path, encryption_key)
        except (json.JSONDecodeError, UnicodeDecodeError, SnapshotDecryptError) as e:
            logger.warning(f"Skipping unreadable snapshot {info.path.name}: {e}")
            continue

        members = document.get("members") if isinstance(document, dict) else None
        if not isinstance(members, list):
            continue
        if not any(isinstance(m, dict) and member_matches(m, query) for m in members):
            continue

        selected = {
            key: document[key] for key in include if isinstance(document.get(key), list)
        }
        report = await restore_snapshot(store, selected, tenant_id)
        logger.info(f"Restored member '{name}' from {info.path.name}")
        return MemberRestoreResult(
            restored_for=name, source_file=info.path, report=report
        )

    return None
