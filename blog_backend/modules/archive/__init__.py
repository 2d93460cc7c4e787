from .models import ArchiveTask, ArchiveStats, ArchiveFileInfo
from .service import ArchiveManager

__all__ = ["ArchiveTask", "ArchiveStats", "ArchiveFileInfo", "ArchiveManager"]
