"""
Backup/restore manager.
Takes full and incremental SQL snapshots of the live store, validates and
restores them, and prunes old snapshots on a retention policy.
"""
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from blog_backend.config import BackupConfig
from blog_backend.constants import (
    BACKUP_HISTORY_FILE, BACKUP_KIND_FULL, BACKUP_KIND_INCREMENTAL,
    TASK_STATUS_COMPLETED, TASK_STATUS_RUNNING,
    RECOMMEND_MAX_DAYS_SINCE_BACKUP, RECOMMEND_MIN_SUCCESS_RATE,
    RECOMMEND_MIN_BACKUP_COPIES, RECOMMEND_MAX_AVERAGE_DURATION_SECONDS,
)
from blog_backend.core.store import Store
from blog_backend.exceptions import (
    BackupNotFoundException, ConflictException, DurabilityException,
    StorageIOException, ValidationException,
)
from blog_backend.modules.backups.models import (
    BackupStats, BackupTask, Recommendation, RestoreOptions, RestoreResult,
)
from blog_backend.shared import codec
from blog_backend.shared import statements as sql
from blog_backend.shared.tasks import ActiveTaskGuard, HistoryFile, new_task_id

logger = logging.getLogger("blog.backup")


class BackupManager:
    """Full/incremental backups, restore, validation and retention"""

    def __init__(
        self,
        store: Store,
        config: BackupConfig,
        guard: Optional[ActiveTaskGuard] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.store = store
        self.config = config
        self.guard = guard or ActiveTaskGuard()
        self.clock = clock

        self.backup_dir = Path(config.backup_dir)
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOException(str(self.backup_dir), str(e)) from e

        self._history_file = HistoryFile(self.backup_dir / BACKUP_HISTORY_FILE)
        self._history: List[BackupTask] = []
        self._history_lock = threading.RLock()
        self._last_full_backup_time: Optional[datetime] = None
        self._current_task: Optional[BackupTask] = None

        self.load_history()
        logger.info(f"Backup manager ready (directory: {self.backup_dir}, {len(self._history)} tasks in history)")

    # ===== BACKUPS =====

    def create_full_backup(self) -> BackupTask:
        """
        Snapshot every user table.

        Raises:
            ConflictException: another task is running (nothing is recorded)
            DurabilityException: the backup failed; the task is recorded as failed
        """
        with self.guard.hold("full backup"):
            return self._run_backup(BACKUP_KIND_FULL, self.store.list_tables)

    def create_incremental_backup(self) -> BackupTask:
        """
        Snapshot the tables modified since the last full backup.
        Falls back to a full backup when there is no full baseline yet.
        """
        if self._last_full_backup_time is None:
            logger.warning("No full backup found, creating full backup instead")
            return self.create_full_backup()

        with self.guard.hold("incremental backup"):
            return self._run_backup(
                BACKUP_KIND_INCREMENTAL,
                lambda: self._get_modified_tables(self._last_full_backup_time)
            )

    def _get_modified_tables(self, since: datetime) -> List[str]:
        # SQLite keeps no per-table modification time, so every table counts as modified
        return self.store.list_tables()

    def _run_backup(self, kind: str, get_tables: Callable[[], List[str]]) -> BackupTask:
        now = self.clock()
        task = BackupTask(
            id=new_task_id(kind, now),
            kind=kind,
            compressed=self.config.compression_enabled,
            encrypted=self.config.encryption_enabled,
        )
        task.start(now)
        self._current_task = task
        logger.info(f"Starting {kind} backup: {task.id}")

        file_path = None
        try:
            tables = get_tables()
            if tables:
                file_path = self.backup_dir / codec.backup_file_name(
                    kind, now, task.compressed, task.encrypted
                )
                size = codec.write_backup_file(
                    file_path,
                    self._dump_lines(kind, now, tables),
                    compress=task.compressed,
                    level=self.config.compression_level,
                    encryption_key=self.config.encryption_key if task.encrypted else None,
                )
                task.file_path = str(file_path)
                task.file_size_bytes = size
            else:
                logger.info(f"No tables to back up for {task.id}")

            task.complete(self.clock())
            if kind == BACKUP_KIND_FULL:
                self._last_full_backup_time = task.started_at
            logger.info(
                f"✓ {kind.capitalize()} backup completed: {task.id} "
                f"({len(tables)} tables, {task.file_size_bytes or 0} bytes)"
            )
            return task

        except Exception as e:
            task.fail(self.clock(), e)
            if file_path is not None and file_path.exists():
                logger.error(f"Partial backup file left for inspection: {file_path}")
            logger.error(f"✗ {kind.capitalize()} backup failed: {task.id}: {e}")
            raise

        finally:
            self._current_task = None
            self._record(task)

    def _dump_lines(self, kind: str, now: datetime, tables: List[str]) -> Iterator[str]:
        yield f"-- Blog {kind} backup"
        yield f"-- Created: {now.isoformat()}"
        for table in tables:
            schema = self.store.table_schema(table)
            rows = self.store.query(sql.select_all(table).sql)
            yield from codec.table_statements(table, schema, rows)

    # ===== RESTORE =====

    def resolve_backup_path(self, backup_file: str) -> Path:
        """Resolve a file name or path and make sure it lies inside the backup directory"""
        candidate = Path(backup_file)
        if not candidate.is_absolute() and candidate.parent == Path("."):
            candidate = self.backup_dir / candidate

        resolved = candidate.resolve()
        try:
            resolved.relative_to(self.backup_dir.resolve())
        except ValueError:
            raise ValidationException("backup_file", f"{backup_file} is outside the backup directory")
        return resolved

    def restore_database(self, options: RestoreOptions) -> RestoreResult:
        """
        Restore tables from a backup file.

        Steps, in order: validate the file, take a safety backup, then per
        table drop (if requested) and replay its statements inside one
        transaction. Any failure aborts the restore and propagates.
        """
        path = self.resolve_backup_path(options.backup_file)
        logger.info(f"Starting database restore from: {path.name}")

        if not path.exists():
            raise ValidationException("backup_file", f"{path.name} does not exist")

        if options.validate_before_restore and not self.validate_backup_file(str(path)):
            raise ValidationException("backup_file", f"{path.name} failed validation")

        safety_backup_id = None
        if options.create_backup_before_restore:
            safety_backup_id = self.create_full_backup().id
            logger.info(f"Safety backup created before restore: {safety_backup_id}")

        units = codec.parse_dump(codec.read_backup_file(path, self.config.encryption_key))

        targets = options.target_tables or []
        if targets:
            available = {unit.name for unit in units}
            missing = [table for table in targets if table not in available]
            if missing:
                raise ValidationException(
                    "target_tables", f"not present in {path.name}: {', '.join(missing)}"
                )
            units = [unit for unit in units if unit.name in targets]

        drop = options.drop_existing and bool(targets)
        executed = 0
        try:
            with self.guard.hold(f"restore from {path.name}"):
                for unit in units:
                    with self.store.transaction() as tx:
                        if drop:
                            tx.execute(sql.drop_table(unit.name).sql)
                        for statement in unit.statements:
                            tx.execute(statement)
                    executed += len(unit.statements)
                    logger.info(f"Restored table {unit.name or '(unnamed)'}: {len(unit.statements)} statements")
        except ConflictException:
            raise
        except DurabilityException as e:
            logger.error(f"✗ Database restore failed: {path.name}: {e}")
            raise

        logger.info(f"✓ Database restore completed: {path.name} ({executed} statements)")
        return RestoreResult(
            backup_file=path.name,
            tables_restored=[unit.name for unit in units if unit.name],
            statements_executed=executed,
            safety_backup_id=safety_backup_id,
        )

    def validate_backup_file(self, backup_file: str) -> bool:
        """
        Shallow structural check: the decoded dump is non-empty and holds at
        least one CREATE TABLE or INSERT statement.
        """
        try:
            path = self.resolve_backup_path(backup_file)
            content = codec.read_backup_file(path, self.config.encryption_key)
            if not content.strip():
                return False
            return any(codec.is_schema_or_data_statement(s) for s in codec.iter_statements(content))
        except DurabilityException as e:
            logger.error(f"Backup file validation failed: {backup_file}: {e}")
            return False

    # ===== HISTORY & STATS =====

    def get_backup_history(self, kind: Optional[str] = None, status: Optional[str] = None) -> List[BackupTask]:
        """Recorded tasks, newest first"""
        with self._history_lock:
            history = list(self._history)
        if kind:
            history = [task for task in history if task.kind == kind]
        if status:
            history = [task for task in history if task.status == status]
        return sorted(history, key=lambda task: task.started_at or datetime.min, reverse=True)

    def get_current_task(self) -> Optional[BackupTask]:
        task = self._current_task
        if task is not None and task.status == TASK_STATUS_RUNNING:
            return task
        return None

    def get_backup(self, backup_id: str) -> BackupTask:
        with self._history_lock:
            for task in self._history:
                if task.id == backup_id:
                    return task
        raise BackupNotFoundException(backup_id)

    def get_backup_stats(self) -> BackupStats:
        with self._history_lock:
            history = list(self._history)

        completed = sorted(
            (task for task in history if task.status == TASK_STATUS_COMPLETED),
            key=lambda task: task.started_at or datetime.min
        )
        durations = [task.duration_seconds for task in completed if task.duration_seconds is not None]

        return BackupStats(
            total_backups=len(completed),
            full_backups=sum(1 for task in completed if task.kind == BACKUP_KIND_FULL),
            incremental_backups=sum(1 for task in completed if task.kind == BACKUP_KIND_INCREMENTAL),
            total_size_bytes=sum(task.file_size_bytes or 0 for task in completed),
            success_rate=(len(completed) / len(history) * 100) if history else 0.0,
            average_duration_seconds=(sum(durations) / len(durations)) if durations else 0.0,
            last_backup_time=completed[-1].started_at if completed else None,
            last_full_backup_time=self._last_full_backup_time,
            oldest_backup=completed[0].started_at if completed else None,
            newest_backup=completed[-1].started_at if completed else None,
        )

    def get_recommendations(self) -> List[Recommendation]:
        """Advice for the admin console derived from backup stats"""
        stats = self.get_backup_stats()
        recommendations = []

        if stats.last_backup_time is None:
            recommendations.append(Recommendation(
                type="warning",
                message="No backups found. Consider creating your first backup.",
                action="Create full backup"
            ))
        else:
            days_since = (self.clock() - stats.last_backup_time).days
            if days_since > RECOMMEND_MAX_DAYS_SINCE_BACKUP:
                recommendations.append(Recommendation(
                    type="warning",
                    message=f"Last backup was {days_since} days ago. Consider creating a new backup.",
                    action="Create backup"
                ))

        if self.get_backup_history() and stats.success_rate < RECOMMEND_MIN_SUCCESS_RATE:
            recommendations.append(Recommendation(
                type="error",
                message=f"Backup success rate is {stats.success_rate:.1f}%. Check backup configuration.",
                action="Review backup logs"
            ))

        if stats.total_backups < RECOMMEND_MIN_BACKUP_COPIES:
            recommendations.append(Recommendation(
                type="info",
                message=f"Consider maintaining at least {RECOMMEND_MIN_BACKUP_COPIES} backup copies.",
                action="Increase backup frequency"
            ))

        if stats.average_duration_seconds > RECOMMEND_MAX_AVERAGE_DURATION_SECONDS:
            recommendations.append(Recommendation(
                type="info",
                message="Backups are taking longer than expected. Consider enabling compression or incremental backups.",
                action="Optimize backup settings"
            ))

        return recommendations

    # ===== DELETION & RETENTION =====

    def delete_backup(self, backup_id: str):
        """Delete a backup file and its history entry"""
        with self._history_lock:
            task = self.get_backup(backup_id)
            self._delete_file(task, strict=True)
            self._history = [t for t in self._history if t.id != backup_id]
            self._save_history()
        logger.info(f"Deleted backup: {backup_id}")

    def cleanup_old_backups(self) -> int:
        """
        Remove backups older than the retention window, then the oldest ones
        beyond max_backups. A history entry is kept when its file cannot be
        deleted.

        Returns:
            Number of backups removed
        """
        cutoff = self.clock() - timedelta(days=self.config.retention_days)
        removed = 0

        with self._history_lock:
            expired = [t for t in self._history if t.started_at is not None and t.started_at < cutoff]
            for task in expired:
                if self._delete_file(task):
                    self._history.remove(task)
                    removed += 1

            if len(self._history) > self.config.max_backups:
                newest_first = sorted(
                    self._history, key=lambda t: t.started_at or datetime.min, reverse=True
                )
                for task in newest_first[self.config.max_backups:]:
                    if self._delete_file(task):
                        self._history.remove(task)
                        removed += 1

            if removed:
                self._save_history()

        if removed:
            logger.info(f"Backup cleanup removed {removed} backup(s)")
        return removed

    def _delete_file(self, task: BackupTask, strict: bool = False) -> bool:
        """
        Delete the task's backing file.

        Returns:
            True if the file is gone (or there never was one)
        """
        if not task.file_path:
            return True
        try:
            Path(task.file_path).unlink()
            logger.info(f"Deleted backup file: {task.file_path}")
        except FileNotFoundError:
            logger.warning(f"Backup file already missing: {task.file_path}")
        except OSError as e:
            logger.error(f"✗ Failed to delete backup file {task.file_path}: {e}")
            if strict:
                raise StorageIOException(task.file_path, str(e)) from e
            return False
        return True

    # ===== SCHEDULING =====

    def run_scheduled_backup(self):
        """Timer entry point: back up per configuration, then prune"""
        try:
            if self.config.incremental_enabled:
                self.create_incremental_backup()
            else:
                self.create_full_backup()
        except ConflictException as e:
            logger.warning(f"Scheduled backup skipped: {e}")
        except DurabilityException as e:
            logger.error(f"Scheduled backup failed: {e}")

        try:
            self.cleanup_old_backups()
        except DurabilityException as e:
            logger.error(f"Scheduled backup cleanup failed: {e}")

    # ===== PERSISTENCE =====

    def load_history(self):
        document = self._history_file.load()
        tasks = []
        for entry in document.get("backups", []):
            try:
                tasks.append(BackupTask.model_validate(entry))
            except ValueError as e:
                logger.warning(f"Skipping unreadable backup history entry: {e}")

        last_full = document.get("last_full_backup_time")
        with self._history_lock:
            self._history = tasks
            self._last_full_backup_time = datetime.fromisoformat(last_full) if last_full else None

    def _record(self, task: BackupTask):
        with self._history_lock:
            self._history.append(task)
            try:
                self._save_history()
            except StorageIOException as e:
                logger.error(f"✗ Failed to save backup history: {e}")

    def _save_history(self):
        self._history_file.save({
            "backups": [task.model_dump(mode="json") for task in self._history],
            "last_full_backup_time": (
                self._last_full_backup_time.isoformat() if self._last_full_backup_time else None
            ),
        })
