"""
Translation of durability errors to HTTP errors.
"""
from fastapi import HTTPException, status

from blog_backend.exceptions import (
    ArchiveTaskNotFoundException, BackupNotFoundException, ConflictException,
    DurabilityException, ValidationException,
)


def to_http_exception(error: DurabilityException) -> HTTPException:
    if isinstance(error, ConflictException):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, (BackupNotFoundException, ArchiveTaskNotFoundException)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, ValidationException):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
