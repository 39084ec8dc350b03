"""Write snapshots to disk, encrypted when a key is configured.

Usage:
    from flock_backup.backup.serializer import persist_snapshot

    result = persist_snapshot(snapshot, "backups", encryption_key=key)
    result.path         # backups/backup-2026-01-15T09-30-00-123Z.enc
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from flock_backup.backup.catalog import ensure_backup_dir
from flock_backup.backup.crypto import encrypt_bytes, is_usable_key
from flock_backup.backup.models import PersistResult, Snapshot

logger = logging.getLogger(__name__)


def snapshot_filename(created_at: str, encrypted: bool = False) -> str:
    """``backup-<timestamp>.json`` with ``:`` and ``.`` made filesystem-safe."""
    stamp = created_at.replace(":", "-").replace(".", "-")
    return f"backup-{stamp}{'.enc' if encrypted else '.json'}"


def serialize_snapshot(snapshot: Snapshot) -> str:
    """Render the snapshot as its on-disk JSON document."""
    return json.dumps(snapshot.to_document(), indent=2, default=str)


def _atomic_write(path: Path, data: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=path.suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def persist_snapshot(
    snapshot: Snapshot,
    backup_dir: str | Path,
    encryption_key: str | bytes | None = None,
) -> PersistResult:
    """Serialize ``snapshot`` and write it to ``backup_dir``.

    Args:
        snapshot: Snapshot to write.
        backup_dir: Target directory (created if missing).
        encryption_key: Secret of at least 32 bytes to enable AES-256-GCM.
            Shorter secrets are ignored and a plaintext file is written.

    Returns:
        PersistResult with the written path and its size in bytes.
    """
    directory = ensure_backup_dir(backup_dir)
    payload = serialize_snapshot(snapshot).encode("utf-8")

    encrypted = is_usable_key(encryption_key)
    if encryption_key is not None and not encrypted:
        logger.warning("Backup encryption key shorter than 32 bytes; writing plaintext")
    if encrypted:
        payload = encrypt_bytes(payload, encryption_key)

    path = directory / snapshot_filename(snapshot.meta.created_at, encrypted=encrypted)
    _atomic_write(path, payload)
    logger.info(f"Wrote snapshot {path} ({len(payload)} bytes)")
    return PersistResult(path=path, size_bytes=len(payload), encrypted=encrypted)
