"""
Backup and archive configuration.
Loaded once from environment variables at startup and read-only afterwards.
"""
import os
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from blog_backend.constants import (
    DEFAULT_BACKUP_DIR, DEFAULT_MAX_BACKUPS, DEFAULT_BACKUP_INTERVAL_MINUTES,
    DEFAULT_BACKUP_RETENTION_DAYS, DEFAULT_COMPRESSION_LEVEL,
    DEFAULT_ARCHIVE_DIR, DEFAULT_ARCHIVE_RETENTION_DAYS, DEFAULT_ARCHIVE_AFTER_DAYS,
    DEFAULT_ARCHIVE_BATCH_SIZE, DEFAULT_ARCHIVE_CLEANUP_INTERVAL_MINUTES,
    DEFAULT_ARCHIVE_INTERVAL_MINUTES, DEFAULT_ARCHIVE_DATE_COLUMN,
)
from blog_backend.exceptions import ConfigurationException


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationException(name, f"expected an integer, got {value!r}")


def _build(model, setting: str, **values):
    """Construct a config model, converting pydantic errors to ConfigurationException"""
    try:
        return model(**values)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or setting
        raise ConfigurationException(field, first["msg"])


class BackupConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    backup_dir: str = DEFAULT_BACKUP_DIR
    max_backups: int = Field(default=DEFAULT_MAX_BACKUPS, ge=1)
    compression_enabled: bool = False
    compression_level: int = Field(default=DEFAULT_COMPRESSION_LEVEL, ge=1, le=9)
    incremental_enabled: bool = False
    schedule_interval_minutes: int = Field(default=DEFAULT_BACKUP_INTERVAL_MINUTES, ge=1)
    retention_days: int = Field(default=DEFAULT_BACKUP_RETENTION_DAYS, ge=1)
    encryption_enabled: bool = False
    encryption_key: Optional[str] = Field(default=None, repr=False)
    auto_backup_enabled: bool = True

    @model_validator(mode="after")
    def _check_encryption_key(self):
        if self.encryption_enabled and not self.encryption_key:
            raise ValueError("encryption is enabled but BACKUP_ENCRYPTION_KEY is not set")
        return self

    @classmethod
    def create(cls, **values) -> "BackupConfig":
        return _build(cls, "backup", **values)

    @classmethod
    def from_env(cls) -> "BackupConfig":
        return cls.create(
            backup_dir=os.getenv("BACKUP_DIR", DEFAULT_BACKUP_DIR),
            max_backups=_env_int("MAX_BACKUPS", DEFAULT_MAX_BACKUPS),
            compression_enabled=_env_bool("BACKUP_COMPRESSION", False),
            compression_level=_env_int("BACKUP_COMPRESSION_LEVEL", DEFAULT_COMPRESSION_LEVEL),
            incremental_enabled=_env_bool("INCREMENTAL_BACKUP", False),
            schedule_interval_minutes=_env_int("BACKUP_INTERVAL", DEFAULT_BACKUP_INTERVAL_MINUTES),
            retention_days=_env_int("BACKUP_RETENTION_DAYS", DEFAULT_BACKUP_RETENTION_DAYS),
            encryption_enabled=_env_bool("BACKUP_ENCRYPTION", False),
            encryption_key=os.getenv("BACKUP_ENCRYPTION_KEY") or None,
            auto_backup_enabled=_env_bool("BACKUP_AUTO", True),
        )

    def public_dict(self) -> dict:
        """Configuration without secrets (for the admin console)"""
        return self.model_dump(exclude={"encryption_key"})


class ArchiveTable(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    date_column: str = DEFAULT_ARCHIVE_DATE_COLUMN


def parse_archive_tables(value: Optional[str]) -> List[ArchiveTable]:
    """
    Parse ARCHIVE_TABLES ("comments:created_at,articles").

    Returns:
        List of tables to archive on schedule (empty when unset)
    """
    tables = []
    for item in (value or "").split(","):
        item = item.strip()
        if not item:
            continue
        name, _, date_column = item.partition(":")
        tables.append(ArchiveTable(
            name=name.strip(),
            date_column=date_column.strip() or DEFAULT_ARCHIVE_DATE_COLUMN
        ))
    return tables


class ArchiveConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    archive_dir: str = DEFAULT_ARCHIVE_DIR
    retention_days: int = Field(default=DEFAULT_ARCHIVE_RETENTION_DAYS, ge=1)
    archive_after_days: int = Field(default=DEFAULT_ARCHIVE_AFTER_DAYS, ge=0)
    batch_size: int = Field(default=DEFAULT_ARCHIVE_BATCH_SIZE, ge=1)
    compression_enabled: bool = False
    compression_level: int = Field(default=DEFAULT_COMPRESSION_LEVEL, ge=1, le=9)
    auto_cleanup: bool = True
    cleanup_interval_minutes: int = Field(default=DEFAULT_ARCHIVE_CLEANUP_INTERVAL_MINUTES, ge=1)
    auto_archive_tables: List[ArchiveTable] = Field(default_factory=list)
    archive_interval_minutes: int = Field(default=DEFAULT_ARCHIVE_INTERVAL_MINUTES, ge=1)

    @classmethod
    def create(cls, **values) -> "ArchiveConfig":
        return _build(cls, "archive", **values)

    @classmethod
    def from_env(cls) -> "ArchiveConfig":
        try:
            tables = parse_archive_tables(os.getenv("ARCHIVE_TABLES"))
        except ValidationError as e:
            raise ConfigurationException("ARCHIVE_TABLES", e.errors()[0]["msg"])

        return cls.create(
            archive_dir=os.getenv("ARCHIVE_DIR", DEFAULT_ARCHIVE_DIR),
            retention_days=_env_int("ARCHIVE_RETENTION_DAYS", DEFAULT_ARCHIVE_RETENTION_DAYS),
            archive_after_days=_env_int("ARCHIVE_AFTER_DAYS", DEFAULT_ARCHIVE_AFTER_DAYS),
            batch_size=_env_int("ARCHIVE_BATCH_SIZE", DEFAULT_ARCHIVE_BATCH_SIZE),
            compression_enabled=_env_bool("ARCHIVE_COMPRESSION", False),
            compression_level=_env_int("ARCHIVE_COMPRESSION_LEVEL", DEFAULT_COMPRESSION_LEVEL),
            auto_cleanup=_env_bool("ARCHIVE_AUTO_CLEANUP", True),
            cleanup_interval_minutes=_env_int(
                "ARCHIVE_CLEANUP_INTERVAL", DEFAULT_ARCHIVE_CLEANUP_INTERVAL_MINUTES
            ),
            auto_archive_tables=tables,
            archive_interval_minutes=_env_int("ARCHIVE_INTERVAL", DEFAULT_ARCHIVE_INTERVAL_MINUTES),
        )
