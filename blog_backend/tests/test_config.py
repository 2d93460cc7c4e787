"""
Tests for backup/archive configuration loading.
"""
import pytest
from pydantic import ValidationError

from blog_backend.config import ArchiveConfig, BackupConfig, parse_archive_tables
from blog_backend.exceptions import ConfigurationException


class TestBackupConfig:
    def test_defaults(self, monkeypatch):
        """Should use defaults when nothing is set"""
        for name in ("BACKUP_DIR", "MAX_BACKUPS", "BACKUP_COMPRESSION", "BACKUP_ENCRYPTION", "BACKUP_AUTO"):
            monkeypatch.delenv(name, raising=False)

        config = BackupConfig.from_env()

        assert config.backup_dir == "./backups"
        assert config.max_backups == 10
        assert config.compression_enabled is False
        assert config.auto_backup_enabled is True

    def test_from_env(self, monkeypatch):
        """Should read every setting from the environment"""
        monkeypatch.setenv("BACKUP_DIR", "/srv/backups")
        monkeypatch.setenv("MAX_BACKUPS", "5")
        monkeypatch.setenv("BACKUP_COMPRESSION", "true")
        monkeypatch.setenv("BACKUP_COMPRESSION_LEVEL", "9")
        monkeypatch.setenv("INCREMENTAL_BACKUP", "1")
        monkeypatch.setenv("BACKUP_RETENTION_DAYS", "7")

        config = BackupConfig.from_env()

        assert config.backup_dir == "/srv/backups"
        assert config.max_backups == 5
        assert config.compression_enabled is True
        assert config.compression_level == 9
        assert config.incremental_enabled is True
        assert config.retention_days == 7

    def test_malformed_integer(self, monkeypatch):
        """Should name the setting that is not an integer"""
        monkeypatch.setenv("MAX_BACKUPS", "ten")

        with pytest.raises(ConfigurationException) as exc_info:
            BackupConfig.from_env()
        assert exc_info.value.setting == "MAX_BACKUPS"

    def test_invalid_compression_level(self):
        """Should reject a compression level above 9"""
        with pytest.raises(ConfigurationException):
            BackupConfig.create(compression_level=12)

    def test_non_positive_retention(self):
        """Should reject zero retention days"""
        with pytest.raises(ConfigurationException):
            BackupConfig.create(retention_days=0)

    def test_encryption_requires_key(self):
        """Should require a key when encryption is on"""
        with pytest.raises(ConfigurationException):
            BackupConfig.create(encryption_enabled=True)

    def test_public_dict_hides_key(self):
        """Should never expose the encryption key"""
        config = BackupConfig.create(encryption_enabled=True, encryption_key="secret")

        assert "encryption_key" not in config.public_dict()
        assert "secret" not in repr(config)

    def test_immutable(self):
        """Should not allow changes after loading"""
        config = BackupConfig.create()
        with pytest.raises(ValidationError):
            config.max_backups = 3


class TestArchiveConfig:
    def test_parse_archive_tables(self):
        """Should parse table:column pairs with a default column"""
        tables = parse_archive_tables(" comments:created_at , articles:published_at,users ,")

        assert [(t.name, t.date_column) for t in tables] == [
            ("comments", "created_at"),
            ("articles", "published_at"),
            ("users", "created_at"),
        ]

    def test_parse_empty(self):
        """Should return no tables when unset"""
        assert parse_archive_tables(None) == []
        assert parse_archive_tables("") == []

    def test_from_env(self, monkeypatch):
        """Should read archive settings from the environment"""
        monkeypatch.setenv("ARCHIVE_DIR", "/srv/archives")
        monkeypatch.setenv("ARCHIVE_AFTER_DAYS", "30")
        monkeypatch.setenv("ARCHIVE_TABLES", "comments")

        config = ArchiveConfig.from_env()

        assert config.archive_dir == "/srv/archives"
        assert config.archive_after_days == 30
        assert [t.name for t in config.auto_archive_tables] == ["comments"]

    def test_invalid_table_entry(self, monkeypatch):
        """Should reject an entry without a table name"""
        monkeypatch.setenv("ARCHIVE_TABLES", ":created_at")

        with pytest.raises(ConfigurationException):
            ArchiveConfig.from_env()

    def test_invalid_batch_size(self):
        """Should reject a zero batch size"""
        with pytest.raises(ConfigurationException):
            ArchiveConfig.create(batch_size=0)
