"""
Backup API request/response schemas.
"""
from typing import List

from pydantic import BaseModel, Field

from .models import BackupTask


class ValidateBackupRequest(BaseModel):
    backup_file: str = Field(..., min_length=1)


class ValidateBackupResponse(BaseModel):
    backup_file: str
    is_valid: bool


class BackupHistoryPage(BaseModel):
    backups: List[BackupTask]
    total: int
    page: int
    limit: int
    total_pages: int
