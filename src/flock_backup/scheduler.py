"""Scheduled backups.

``BackupScheduler`` exports every tenant, writes the snapshot, and runs
the consistency validator on a fixed interval (never less than five
minutes).  Each tick runs as its own task, so a slow export can overlap
the next tick; exports share no mutable state.

Usage:
    scheduler = BackupScheduler(store, settings)
    await scheduler.start()      # runs until stop() or cancellation
"""

import asyncio
import logging

from flock_backup.adapters.base import RecordStore
from flock_backup.backup.exporter import export_snapshot
from flock_backup.backup.models import PersistResult
from flock_backup.backup.serializer import persist_snapshot
from flock_backup.backup.validator import validate_consistency
from flock_backup.config.models import BackupSettings

logger = logging.getLogger(__name__)


class BackupScheduler:
    """Periodic export + persist + validate loop.

    Args:
        store: Record store to back up.
        settings: Backup settings (directory, key, interval).
    """

    def __init__(self, store: RecordStore, settings: BackupSettings) -> None:
        self.store = store
        self.settings = settings
        self.interval_seconds = settings.effective_interval_minutes * 60

        self._running = False
        self._tasks: set[asyncio.Task] = set()

    async def run_once(self) -> tuple[PersistResult, list[str]] | None:
        """Run one backup tick.

        Failures are logged and swallowed; the next tick retries.

        Returns:
            (written file, consistency issues), or ``None`` on failure.
        """
        try:
            snapshot = await export_snapshot(self.store)
            written = persist_snapshot(
                snapshot,
                self.settings.backup_dir,
                encryption_key=self.settings.encryption_key,
            )
            issues = await validate_consistency(self.store)
        except Exception as e:
            logger.error(f"Scheduled backup failed: {e}", exc_info=True)
            return None

        logger.info(
            f"Wrote {written.path} ({written.size_bytes} bytes). Issues: {len(issues)}"
        )
        return written, issues

    def _spawn(self) -> None:
        task = asyncio.create_task(self.run_once())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def start(self) -> None:
        """Run the scheduler loop until ``stop()`` is called."""
        if self._running:
            logger.warning("Backup scheduler already running")
            return

        self._running = True
        logger.info(
            f"Backups scheduled every {self.settings.effective_interval_minutes} minutes"
        )
        try:
            while self._running:
                await asyncio.sleep(self.interval_seconds)
                if self._running:
                    self._spawn()
        except asyncio.CancelledError:
            logger.info("Backup scheduler cancelled")
            raise
        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop the loop and wait for in-flight ticks."""
        self._running = False
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Backup scheduler stopped")
