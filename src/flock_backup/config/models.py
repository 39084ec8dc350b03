"""Pydantic settings for the backup subsystem."""

from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Scheduled backups never run more often than this.
MIN_INTERVAL_MINUTES = 5


class BackupSettings(BaseSettings):
    """Runtime configuration, read from environment variables.

    Environment variables:
        DATABASE_URL: Store URL (``postgresql://...`` or ``memory://``).
        BACKUP_DIR: Directory holding snapshot files.
        BACKUP_ENCRYPTION_KEY: Symmetric key; encryption is enabled when
            it is at least 32 bytes long.
        BACKUP_INTERVAL_MINUTES: Scheduler interval (floor of 5 minutes).
    """

    model_config = SettingsConfigDict(extra="ignore")

    database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("database_url", "DATABASE_URL", "FLOCK_DATABASE_URL"),
    )
    backup_dir: Path = Field(
        default=Path("backups"),
        validation_alias=AliasChoices("backup_dir", "BACKUP_DIR"),
    )
    encryption_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("encryption_key", "BACKUP_ENCRYPTION_KEY"),
    )
    interval_minutes: int = Field(
        default=60,
        validation_alias=AliasChoices("interval_minutes", "BACKUP_INTERVAL_MINUTES"),
    )
    table_map: dict[str, str] = Field(default_factory=dict)

    @field_validator("encryption_key")
    @classmethod
    def _blank_key_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def effective_interval_minutes(self) -> int:
        """Configured interval, raised to the 5-minute floor."""
        return max(MIN_INTERVAL_MINUTES, self.interval_minutes)
