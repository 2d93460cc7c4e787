"""
Backup task and restore models.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from blog_backend.shared.tasks import TaskRecord


class BackupTask(TaskRecord):
    kind: str  # "full" or "incremental"
    compressed: bool = False
    encrypted: bool = False

    # Set only on success
    file_path: Optional[str] = None
    file_size_bytes: Optional[int] = None


class BackupStats(BaseModel):
    total_backups: int = 0  # completed backups
    full_backups: int = 0
    incremental_backups: int = 0
    total_size_bytes: int = 0
    success_rate: float = 0.0  # percent of recorded tasks that completed
    average_duration_seconds: float = 0.0
    last_backup_time: Optional[datetime] = None
    last_full_backup_time: Optional[datetime] = None
    oldest_backup: Optional[datetime] = None
    newest_backup: Optional[datetime] = None


class RestoreOptions(BaseModel):
    backup_file: str = Field(..., min_length=1)  # file name in the backup directory, or a path inside it
    target_tables: Optional[List[str]] = None
    drop_existing: bool = False
    validate_before_restore: bool = True
    create_backup_before_restore: bool = True


class RestoreResult(BaseModel):
    backup_file: str
    tables_restored: List[str]
    statements_executed: int
    safety_backup_id: Optional[str] = None  # backup taken right before the restore


class Recommendation(BaseModel):
    type: str  # "info", "warning" or "error"
    message: str
    action: str
