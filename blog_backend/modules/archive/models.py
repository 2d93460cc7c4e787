"""
Archive task models.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from blog_backend.shared.tasks import TaskRecord


class ArchiveTask(TaskRecord):
    table_name: str
    condition: str  # SQLite WHERE predicate, fixed at creation
    records_processed: int = 0
    created_at: datetime
    archive_file: Optional[str] = None  # file name in the archive directory


class ArchiveFileInfo(BaseModel):
    name: str
    size_bytes: int
    modified_at: datetime


class ArchiveStats(BaseModel):
    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    running_tasks: int = 0
    total_records_archived: int = 0
    total_archive_size_bytes: int = 0
    last_archive_time: Optional[datetime] = None
    archive_files: List[ArchiveFileInfo] = []
