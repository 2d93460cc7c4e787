"""
Archive HTTP routes.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from blog_backend.constants import DEFAULT_ARCHIVE_DATE_COLUMN
from blog_backend.core.errors import to_http_exception
from blog_backend.core.security import verify_api_key
from blog_backend.exceptions import DurabilityException
from .models import ArchiveStats, ArchiveTask
from .schemas import (
    ArchiveCleanupResponse, ArchiveRestoreRequest, ArchiveRestoreResponse,
    ArchiveTableRequest, ArchiveTaskCreate, BatchArchiveRequest,
)
from .service import ArchiveManager

router = APIRouter(prefix="/api/archive", tags=["archive"], dependencies=[Depends(verify_api_key)])


def get_archive_manager(request: Request) -> ArchiveManager:
    return request.app.state.archive_manager


@router.post("/tasks", response_model=ArchiveTask, status_code=status.HTTP_201_CREATED)
def create_archive_task(body: ArchiveTaskCreate, manager: ArchiveManager = Depends(get_archive_manager)):
    """Register an archive task (no data is moved until it is executed)."""
    try:
        task_id = manager.create_archive_task(body.table_name, body.condition, body.task_id)
        return manager.get_task(task_id)
    except DurabilityException as e:
        raise to_http_exception(e)


@router.get("/tasks", response_model=List[ArchiveTask])
def get_archive_tasks(manager: ArchiveManager = Depends(get_archive_manager)):
    return manager.get_all_tasks()


@router.get("/tasks/{task_id}", response_model=ArchiveTask)
def get_archive_task(task_id: str, manager: ArchiveManager = Depends(get_archive_manager)):
    try:
        return manager.get_task(task_id)
    except DurabilityException as e:
        raise to_http_exception(e)


@router.post("/tasks/{task_id}/execute", response_model=ArchiveTask)
def execute_archive_task(task_id: str, manager: ArchiveManager = Depends(get_archive_manager)):
    try:
        return manager.execute_archive_task(task_id)
    except DurabilityException as e:
        raise to_http_exception(e)


@router.post("/tables/batch-archive")
def archive_multiple_tables(body: BatchArchiveRequest, manager: ArchiveManager = Depends(get_archive_manager)):
    """Archive old data of several tables; failures are reported per task."""
    task_ids = manager.archive_multiple_tables(body.tables)
    return {"task_ids": task_ids, "tasks": [manager.get_task(task_id) for task_id in task_ids]}


@router.post("/tables/{table_name}/archive", response_model=ArchiveTask)
def archive_old_data(
    table_name: str,
    body: Optional[ArchiveTableRequest] = None,
    manager: ArchiveManager = Depends(get_archive_manager)
):
    """Archive rows older than the configured age."""
    try:
        date_column = body.date_column if body else DEFAULT_ARCHIVE_DATE_COLUMN
        task_id = manager.archive_old_data(table_name, date_column)
        return manager.get_task(task_id)
    except DurabilityException as e:
        raise to_http_exception(e)


@router.post("/restore", response_model=ArchiveRestoreResponse)
def restore_from_archive(body: ArchiveRestoreRequest, manager: ArchiveManager = Depends(get_archive_manager)):
    try:
        restored = manager.restore_from_archive(body.archive_file_name, body.table_name)
    except DurabilityException as e:
        raise to_http_exception(e)
    return ArchiveRestoreResponse(archive_file_name=body.archive_file_name, records_restored=restored)


@router.post("/cleanup", response_model=ArchiveCleanupResponse)
def cleanup_expired_archives(manager: ArchiveManager = Depends(get_archive_manager)):
    return ArchiveCleanupResponse(files_deleted=manager.cleanup_expired_archives())


@router.get("/stats", response_model=ArchiveStats)
def get_archive_stats(manager: ArchiveManager = Depends(get_archive_manager)):
    return manager.get_archive_stats()


@router.get("/config")
def get_archive_config(manager: ArchiveManager = Depends(get_archive_manager)):
    return manager.config.model_dump()


@router.get("/history", response_model=List[ArchiveTask])
def get_archive_history(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    manager: ArchiveManager = Depends(get_archive_manager)
):
    """Completed archive tasks, newest first."""
    return manager.get_history(limit, offset)
