from .models import BackupTask, BackupStats, RestoreOptions, RestoreResult, Recommendation
from .service import BackupManager

__all__ = [
    "BackupTask", "BackupStats", "RestoreOptions", "RestoreResult", "Recommendation",
    "BackupManager",
]
