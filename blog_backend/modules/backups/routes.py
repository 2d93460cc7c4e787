"""
Backup HTTP routes.
"""
import math
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import FileResponse

from blog_backend.core.errors import to_http_exception
from blog_backend.core.security import verify_api_key
from blog_backend.exceptions import DurabilityException
from .models import BackupStats, BackupTask, Recommendation, RestoreOptions, RestoreResult
from .schemas import BackupHistoryPage, ValidateBackupRequest, ValidateBackupResponse
from .service import BackupManager

router = APIRouter(prefix="/api/backups", tags=["backups"], dependencies=[Depends(verify_api_key)])


def get_backup_manager(request: Request) -> BackupManager:
    return request.app.state.backup_manager


@router.post("/full", response_model=BackupTask)
def create_full_backup(manager: BackupManager = Depends(get_backup_manager)):
    """Create a full backup of every table."""
    try:
        return manager.create_full_backup()
    except DurabilityException as e:
        raise to_http_exception(e)


@router.post("/incremental", response_model=BackupTask)
def create_incremental_backup(manager: BackupManager = Depends(get_backup_manager)):
    """Create an incremental backup (full if there is no full backup yet)."""
    try:
        return manager.create_incremental_backup()
    except DurabilityException as e:
        raise to_http_exception(e)


@router.post("/restore", response_model=RestoreResult)
def restore_database(options: RestoreOptions, manager: BackupManager = Depends(get_backup_manager)):
    """Restore tables from a backup file."""
    try:
        return manager.restore_database(options)
    except DurabilityException as e:
        raise to_http_exception(e)


@router.post("/validate", response_model=ValidateBackupResponse)
def validate_backup(body: ValidateBackupRequest, manager: BackupManager = Depends(get_backup_manager)):
    return ValidateBackupResponse(
        backup_file=body.backup_file,
        is_valid=manager.validate_backup_file(body.backup_file)
    )


@router.get("/history", response_model=BackupHistoryPage)
def get_backup_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    kind: Optional[str] = Query(None, pattern="^(full|incremental)$"),
    status_filter: Optional[str] = Query(None, alias="status"),
    manager: BackupManager = Depends(get_backup_manager)
):
    """Backup history, newest first, paginated."""
    history = manager.get_backup_history(kind=kind, status=status_filter)
    start = (page - 1) * limit
    return BackupHistoryPage(
        backups=history[start:start + limit],
        total=len(history),
        page=page,
        limit=limit,
        total_pages=math.ceil(len(history) / limit),
    )


@router.get("/stats", response_model=BackupStats)
def get_backup_stats(manager: BackupManager = Depends(get_backup_manager)):
    return manager.get_backup_stats()


@router.get("/current-task", response_model=Optional[BackupTask])
def get_current_task(manager: BackupManager = Depends(get_backup_manager)):
    """The running backup task, or null."""
    return manager.get_current_task()


@router.get("/config")
def get_backup_config(manager: BackupManager = Depends(get_backup_manager)):
    """Backup configuration (encryption key is never returned)."""
    return manager.config.public_dict()


@router.get("/recommendations", response_model=List[Recommendation])
def get_recommendations(manager: BackupManager = Depends(get_backup_manager)):
    return manager.get_recommendations()


@router.get("/{backup_id}/download")
def download_backup(backup_id: str, manager: BackupManager = Depends(get_backup_manager)):
    """Download a backup file."""
    try:
        backup = manager.get_backup(backup_id)
    except DurabilityException as e:
        raise to_http_exception(e)

    if not backup.file_path or not Path(backup.file_path).exists():
        raise HTTPException(status_code=404, detail="Backup file not found")

    return FileResponse(
        path=backup.file_path,
        filename=Path(backup.file_path).name,
        media_type="application/octet-stream"
    )


@router.delete("/{backup_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_backup(backup_id: str, manager: BackupManager = Depends(get_backup_manager)):
    """Delete a backup file and its history entry."""
    try:
        manager.delete_backup(backup_id)
    except DurabilityException as e:
        raise to_http_exception(e)
