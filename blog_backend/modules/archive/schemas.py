"""
Archive API request/response schemas.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from blog_backend.config import ArchiveTable
from blog_backend.constants import DEFAULT_ARCHIVE_DATE_COLUMN


class ArchiveTaskCreate(BaseModel):
    table_name: str = Field(..., min_length=1)
    condition: str = Field(..., min_length=1)
    task_id: Optional[str] = None


class ArchiveTableRequest(BaseModel):
    date_column: str = DEFAULT_ARCHIVE_DATE_COLUMN


class BatchArchiveRequest(BaseModel):
    tables: List[ArchiveTable] = Field(..., min_length=1)


class ArchiveRestoreRequest(BaseModel):
    archive_file_name: str = Field(..., min_length=1)
    table_name: Optional[str] = None


class ArchiveRestoreResponse(BaseModel):
    archive_file_name: str
    records_restored: int


class ArchiveCleanupResponse(BaseModel):
    files_deleted: int
