"""Tests for the operations facade and the backup scheduler."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from flock_backup import service
from flock_backup.adapters.memory import MemoryStore
from flock_backup.backup.restore import restore_snapshot
from flock_backup.config.models import BackupSettings
from flock_backup.errors import BackupError, RestoreError
from flock_backup.scheduler import BackupScheduler

KEY = "k" * 32


@pytest.fixture
def settings(tmp_path) -> BackupSettings:
    return BackupSettings(
        database_url="memory://", backup_dir=tmp_path / "backups", encryption_key=None
    )


@pytest.fixture
async def store() -> MemoryStore:
    store = MemoryStore()
    await restore_snapshot(
        store,
        {
            "users": [{"id": 1, "email": "jane@example.org"}],
            "members": [{"id": 2, "userId": 1, "firstName": "Jane", "lastName": "Doe"}],
        },
        tenant_id=1,
    )
    return store


class _Recorder:
    """EventEmitter that remembers what it was given."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))


# ------------------------------------------------------------------
# Export and backup
# ------------------------------------------------------------------


class TestExportAndBackup:
    """export_backup, create_backup, list_backups."""

    async def test_export_backup_is_json_document(self, store):
        document = await service.export_backup(store, tenant_id=1)
        assert document["meta"]["version"] == "1.0"
        assert document["members"][0]["firstName"] == "Jane"
        json.dumps(document)

    async def test_create_backup(self, store, settings):
        emit = _Recorder()
        result = await service.create_backup(store, settings, tenant_id=1, emit=emit)

        assert result["success"] is True
        assert result["encrypted"] is False
        assert result["file"].endswith(".json")
        assert result["size"] > 0
        assert result["meta"]["version"] == "1.0"
        assert emit.events == [("backup.created", {"tenantId": 1, "file": result["file"]})]

    async def test_create_encrypted_backup(self, store, settings):
        settings.encryption_key = KEY
        result = await service.create_backup(store, settings, tenant_id=1)
        assert result["encrypted"] is True
        assert result["file"].endswith(".enc")

    async def test_create_backup_write_failure(self, store, settings):
        settings.backup_dir.parent.mkdir(parents=True, exist_ok=True)
        settings.backup_dir.write_text("not a directory")

        with pytest.raises(BackupError, match="Backup failed"):
            await service.create_backup(store, settings, tenant_id=1)

    async def test_list_backups(self, store, settings):
        created = await service.create_backup(store, settings, tenant_id=1)
        result = service.list_backups(settings)

        assert result["success"] is True
        assert [entry["file"] for entry in result["files"]] == [created["file"]]
        assert result["files"][0]["size"] == created["size"]

    def test_list_backups_empty(self, settings):
        assert service.list_backups(settings) == {"success": True, "files": []}


# ------------------------------------------------------------------
# Restore
# ------------------------------------------------------------------


class TestRestoreBackup:
    """restore_backup and restore_member."""

    async def test_restore_backup(self):
        store = MemoryStore()
        emit = _Recorder()

        result = await service.restore_backup(
            store,
            {"users": [{"email": "a@x.org"}], "events": [{"title": "No date"}]},
            tenant_id=3,
            emit=emit,
        )

        assert result["success"] is True
        assert result["summary"] == {"users": 1, "events": 0}
        assert result["skipped"][0]["collection"] == "events"
        assert result["dryRun"] is False
        assert emit.events[0][0] == "backup.restored"

    async def test_dry_run_does_not_emit(self):
        store = MemoryStore()
        emit = _Recorder()
        result = await service.restore_backup(
            store, {"users": [{"email": "a@x.org"}]}, tenant_id=3, dry_run=True, emit=emit
        )
        assert result["dryRun"] is True
        assert emit.events == []
        assert store.count("users") == 0

    async def test_payload_must_be_object(self):
        with pytest.raises(BackupError, match="JSON object"):
            await service.restore_backup(MemoryStore(), ["users"], tenant_id=1)

    async def test_failure_is_restore_error(self):
        store = MemoryStore(collections=["users"])
        with pytest.raises(RestoreError):
            await service.restore_backup(
                store, {"users": [{"email": "a@x.org"}], "departments": [{"name": "Choir"}]},
                tenant_id=1,
            )
        assert store.count("users") == 0

    async def test_restore_member_found(self, store, settings):
        await service.create_backup(store, settings, tenant_id=1)
        target = MemoryStore()
        emit = _Recorder()

        result = await service.restore_member(
            target, settings, "Jane Doe", tenant_id=4, emit=emit
        )

        assert result["success"] is True
        assert result["found"] is True
        assert result["restoredFor"] == "Jane Doe"
        assert result["summary"]["members"] == 1
        assert target.count("members", {"tenantId": 4}) == 1
        assert emit.events[0][0] == "backup.member_restored"

    async def test_restore_member_not_found(self, settings):
        result = await service.restore_member(MemoryStore(), settings, "Jane Doe", tenant_id=1)
        assert result == {
            "success": False,
            "found": False,
            "message": "Member not found in any backup",
        }

    async def test_restore_member_short_name(self, settings):
        with pytest.raises(BackupError, match="full member name"):
            await service.restore_member(MemoryStore(), settings, "J", tenant_id=1)


# ------------------------------------------------------------------
# Consistency
# ------------------------------------------------------------------


class TestCheckConsistency:
    """check_consistency wraps the validator."""

    async def test_healthy(self, store):
        assert await service.check_consistency(store, tenant_id=1) == {
            "success": True,
            "issues": [],
            "healthy": True,
        }

    async def test_issues(self, store):
        await store.delete("users", 1)
        result = await service.check_consistency(store, tenant_id=1)
        assert result["healthy"] is False
        assert result["issues"] == ["Member #1 references missing userId=1"]

    async def test_store_error(self):
        store = AsyncMock()
        store.find_many = AsyncMock(side_effect=ConnectionError("down"))
        with pytest.raises(BackupError, match="Consistency check failed: down"):
            await service.check_consistency(store, tenant_id=1)


# ------------------------------------------------------------------
# Scheduler
# ------------------------------------------------------------------


class TestBackupScheduler:
    """Periodic export + persist + validate."""

    def test_interval_floor(self, settings):
        settings.interval_minutes = 1
        assert BackupScheduler(MemoryStore(), settings).interval_seconds == 300

    def test_interval(self, settings):
        settings.interval_minutes = 60
        assert BackupScheduler(MemoryStore(), settings).interval_seconds == 3600

    async def test_run_once(self, store, settings):
        written, issues = await BackupScheduler(store, settings).run_once()
        assert written.path.exists()
        assert written.path.parent == settings.backup_dir
        assert issues == []

    async def test_run_once_reports_issues(self, store, settings):
        await store.delete("users", 1)
        _, issues = await BackupScheduler(store, settings).run_once()
        assert issues == ["Member #1 references missing userId=1"]

    async def test_run_once_reports_cross_tenant_reference(self, settings):
        store = MemoryStore()
        user = await store.create("users", {"email": "a@x.org", "tenantId": 2})
        await store.create("members", {"userId": user["id"], "tenantId": 1})

        _, issues = await BackupScheduler(store, settings).run_once()
        assert issues == ["Member #1 references missing userId=1"]

    async def test_run_once_failure_is_logged(self, store, settings, caplog):
        settings.backup_dir.parent.mkdir(parents=True, exist_ok=True)
        settings.backup_dir.write_text("not a directory")

        assert await BackupScheduler(store, settings).run_once() is None
        assert "Scheduled backup failed" in caplog.text

    async def test_start_and_stop(self, store, settings):
        scheduler = BackupScheduler(store, settings)
        scheduler.interval_seconds = 0.01

        task = asyncio.create_task(scheduler.start())
        await asyncio.sleep(0.05)
        await scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert any(settings.backup_dir.iterdir())

    async def test_cancel(self, store, settings):
        scheduler = BackupScheduler(store, settings)
        task = asyncio.create_task(scheduler.start())
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert scheduler._running is False
