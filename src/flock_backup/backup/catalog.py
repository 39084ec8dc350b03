"""Snapshot catalog: the directory of persisted snapshot files."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from flock_backup.backup.crypto import MAGIC, decrypt_snapshot
from flock_backup.backup.models import SnapshotInfo
from flock_backup.errors import SnapshotDecryptError

SNAPSHOT_SUFFIXES = (".json", ".enc")


def ensure_backup_dir(backup_dir: str | Path) -> Path:
    """Create the snapshot directory (and parents) if needed."""
    path = Path(backup_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def list_snapshots(backup_dir: str | Path) -> list[SnapshotInfo]:
    """List snapshot files newest-first by modification time.

    Covers plaintext (``.json``) and encrypted (``.enc``) files.
    """
    directory = ensure_backup_dir(backup_dir)
    entries: list[SnapshotInfo] = []
    for path in directory.iterdir():
        # dotfiles are in-flight atomic writes
        if path.suffix not in SNAPSHOT_SUFFIXES or path.name.startswith("."):
            continue
        if not path.is_file():
            continue
        st = path.stat()
        entries.append(
            SnapshotInfo(
                path=path,
                created_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                size_bytes=st.st_size,
            )
        )
    entries.sort(key=lambda e: e.created_at, reverse=True)
    return entries


def load_snapshot(
    path: str | Path, encryption_key: str | bytes | None = None
) -> dict[str, Any]:
    """Read a snapshot file into its JSON document.

    Encrypted files are recognised by the ``FCBK`` marker and need
    ``encryption_key``.

    Raises:
        SnapshotDecryptError: Encrypted file without a key, or one that
            fails authentication.
        json.JSONDecodeError: Plaintext file that is not valid JSON.
        OSError: File cannot be read.
    """
    path = Path(path)
    with open(path, "rb") as f:
        head = f.read(len(MAGIC))
    if head == MAGIC:
        if encryption_key is None:
            raise SnapshotDecryptError(f"{path.name} is encrypted and no key is configured")
        return decrypt_snapshot(path, encryption_key)

    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
