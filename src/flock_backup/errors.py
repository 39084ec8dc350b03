"""Exception types raised by the backup subsystem.

Every failure that crosses the public boundary is a ``BackupError``
carrying a short ``message``.
"""


class BackupError(Exception):
    """Base error for backup, restore, and validation operations."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CollectionUnavailableError(BackupError):
    """Raised when the store does not provide a requested collection."""

    pass


class SnapshotDecryptError(BackupError):
    """Raised when an encrypted snapshot cannot be authenticated or read."""

    pass


class RestoreError(BackupError):
    """Raised when a restore transaction fails and is rolled back."""

    pass


class StoreNotConfiguredError(BackupError):
    """Raised when no database URL is configured."""

    pass
