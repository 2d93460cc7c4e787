"""
Background scheduler for the durability layer
Handles:
- Automatic backups (full or incremental) followed by retention cleanup
- Deleting expired archive files
- Archiving old rows of the configured tables
"""

import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from blog_backend.modules.archive import ArchiveManager
from blog_backend.modules.backups import BackupManager

logger = logging.getLogger("blog.scheduler")


def run_scheduled_backup(backup_manager: BackupManager):
    """Scheduled backup + cleanup"""
    try:
        logger.info("[AUTO_BACKUP] Running scheduled backup")
        backup_manager.run_scheduled_backup()
    except Exception as e:
        logger.error(f"Scheduler Error (Backup): {e}")


def run_archive_cleanup(archive_manager: ArchiveManager):
    """Scheduled deletion of expired archive files"""
    try:
        removed = archive_manager.cleanup_expired_archives()
        if removed:
            logger.info(f"[ARCHIVE_CLEANUP] Removed {removed} expired archive file(s)")
    except Exception as e:
        logger.error(f"Scheduler Error (Archive cleanup): {e}")


def run_scheduled_archive(archive_manager: ArchiveManager):
    """Scheduled archiving of the configured tables"""
    try:
        archive_manager.run_scheduled_archive()
    except Exception as e:
        logger.error(f"Scheduler Error (Archive): {e}")


def start_scheduler(backup_manager: BackupManager, archive_manager: ArchiveManager) -> BackgroundScheduler:
    """
    Start the background scheduler.

    Jobs run on the scheduler's own thread, one instance at a time; an
    interval that elapses while the previous run is still going is skipped.
    """
    scheduler = BackgroundScheduler()

    if backup_manager.config.auto_backup_enabled:
        scheduler.add_job(
            run_scheduled_backup,
            IntervalTrigger(minutes=backup_manager.config.schedule_interval_minutes),
            args=[backup_manager],
            id='scheduled_backup',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

    if archive_manager.config.auto_cleanup:
        scheduler.add_job(
            run_archive_cleanup,
            IntervalTrigger(minutes=archive_manager.config.cleanup_interval_minutes),
            args=[archive_manager],
            id='archive_cleanup',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

    if archive_manager.config.auto_archive_tables:
        scheduler.add_job(
            run_scheduled_archive,
            IntervalTrigger(minutes=archive_manager.config.archive_interval_minutes),
            args=[archive_manager],
            id='scheduled_archive',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

    scheduler.start()
    logger.info(">>> APScheduler STARTED <<<")
    logger.info(f"Scheduled jobs: {[job.id for job in scheduler.get_jobs()]}")
    return scheduler


def stop_scheduler(scheduler: BackgroundScheduler):
    """Stop the scheduler, waiting for a running job to finish"""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("APScheduler stopped")
