"""Configuration management: environment settings and TOML loading.

Usage:
    >>> from flock_backup.config import load_settings, BackupSettings
"""

from flock_backup.config.loader import load_settings
from flock_backup.config.models import MIN_INTERVAL_MINUTES, BackupSettings

__all__ = ["load_settings", "BackupSettings", "MIN_INTERVAL_MINUTES"]
