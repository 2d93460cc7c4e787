"""
Custom exceptions for the blog durability layer.
Provides specific exception types so callers can tell store, file system,
validation and concurrency failures apart.
"""
from typing import Optional


class DurabilityException(Exception):
    """Base exception for backup and archive operations"""
    pass


class ConfigurationException(DurabilityException):
    """Raised when backup/archive configuration values are invalid"""
    def __init__(self, setting: str, message: str):
        self.setting = setting
        super().__init__(f"Invalid configuration for {setting}: {message}")


class StoreException(DurabilityException):
    """Raised when a query or statement against the live store fails"""
    def __init__(self, statement: str, details: str):
        self.statement = statement
        self.details = details
        super().__init__(f"Store operation failed: {details} [statement: {statement}]")


class StorageIOException(DurabilityException):
    """Raised when reading, writing or compressing a file fails"""
    def __init__(self, path: str, details: str):
        self.path = path
        self.details = details
        super().__init__(f"File operation failed for {path}: {details}")


class ValidationException(DurabilityException):
    """Raised when input or a backup/archive file is structurally invalid"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")


class ConflictException(DurabilityException):
    """Raised when a task cannot start because another one is running"""
    def __init__(self, message: str, active: Optional[str] = None):
        self.active = active
        super().__init__(message)


class BackupNotFoundException(DurabilityException):
    """Raised when a backup is not found in history"""
    def __init__(self, backup_id: str):
        self.backup_id = backup_id
        super().__init__(f"Backup with ID {backup_id} not found")


class ArchiveTaskNotFoundException(DurabilityException):
    """Raised when an archive task is not found"""
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Archive task with ID {task_id} not found")
