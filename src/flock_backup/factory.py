"""Record store factory.

Builds the store named by ``BackupSettings.database_url``:

- ``postgres://`` / ``postgresql://`` / ``postgresql+asyncpg://`` ->
  ``AsyncPostgresStore``
- ``memory://`` -> ``MemoryStore`` (empty, process-local)
"""

from flock_backup.adapters.base import RecordStore
from flock_backup.adapters.memory import MemoryStore
from flock_backup.adapters.postgres import AsyncPostgresStore
from flock_backup.config.models import BackupSettings
from flock_backup.errors import StoreNotConfiguredError

_POSTGRES_SCHEMES = ("postgres://", "postgresql://", "postgresql+asyncpg://")


def get_store(settings: BackupSettings) -> RecordStore:
    """Create a record store for the configured database URL.

    Raises:
        StoreNotConfiguredError: If no URL is configured or the scheme is
            not supported.
    """
    url = settings.database_url
    if not url:
        raise StoreNotConfiguredError(
            "No database configured.\n"
            "Set DATABASE_URL or [database] url in the config file."
        )

    if url.startswith("memory://"):
        return MemoryStore()
    if url.startswith(_POSTGRES_SCHEMES):
        return AsyncPostgresStore(url, table_map=settings.table_map)

    scheme = url.split("://", 1)[0]
    raise StoreNotConfiguredError(f"Unsupported database scheme: {scheme}")
