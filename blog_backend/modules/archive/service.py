"""
Archive manager.
Moves cold rows out of live tables into archive files, restores them on
demand and deletes archive files once they pass the retention window.
"""
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional

from blog_backend.config import ArchiveConfig, ArchiveTable
from blog_backend.constants import (
    ARCHIVE_HISTORY_FILE, DEFAULT_ARCHIVE_DATE_COLUMN,
    TASK_STATUS_COMPLETED, TASK_STATUS_FAILED, TASK_STATUS_RUNNING,
)
from blog_backend.core.store import Store
from blog_backend.exceptions import (
    ArchiveTaskNotFoundException, ConflictException, DurabilityException,
    StorageIOException, ValidationException,
)
from blog_backend.modules.archive.models import ArchiveFileInfo, ArchiveStats, ArchiveTask
from blog_backend.shared import codec
from blog_backend.shared import statements as sql
from blog_backend.shared.tasks import ActiveTaskGuard, HistoryFile, new_task_id

logger = logging.getLogger("blog.archive")


class ArchiveManager:
    """Condition-based archiving of table rows to files"""

    def __init__(
        self,
        store: Store,
        config: ArchiveConfig,
        guard: Optional[ActiveTaskGuard] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.store = store
        self.config = config
        self.guard = guard or ActiveTaskGuard()
        self.clock = clock

        self.archive_dir = Path(config.archive_dir)
        try:
            self.archive_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOException(str(self.archive_dir), str(e)) from e

        self._history_file = HistoryFile(self.archive_dir / ARCHIVE_HISTORY_FILE)
        self._tasks: Dict[str, ArchiveTask] = {}
        self._tasks_lock = threading.RLock()

        self.load_history()
        logger.info(f"Archive manager ready (directory: {self.archive_dir}, {len(self._tasks)} tasks in history)")

    # ===== TASKS =====

    def create_archive_task(self, table_name: str, condition: str, task_id: Optional[str] = None) -> str:
        """
        Register a pending archive task. No data is touched.

        Raises:
            ValidationException: table does not exist or condition is empty
            ConflictException: a task with the given id already exists
        """
        if not condition or not condition.strip():
            raise ValidationException("condition", "archive condition must not be empty")
        if not self.store.table_exists(table_name):
            raise ValidationException("table_name", f"table {table_name} does not exist")

        now = self.clock()
        task_id = task_id or new_task_id("archive", now)
        task = ArchiveTask(id=task_id, table_name=table_name, condition=condition.strip(), created_at=now)

        with self._tasks_lock:
            if task_id in self._tasks:
                raise ConflictException(f"Archive task {task_id} already exists")
            self._tasks[task_id] = task
            self._save_history_logged()

        logger.info(f"Created archive task {task_id} for {table_name} WHERE {task.condition}")
        return task_id

    def execute_archive_task(self, task_id: str) -> ArchiveTask:
        """
        Run an archive task: select matching rows, write them to a file, then
        delete them from the live table. Rows are deleted only after the file
        is fully written and synced.

        Raises:
            ArchiveTaskNotFoundException: unknown task id
            ConflictException: task already ran, or another task is active
            DurabilityException: archiving failed; the task is recorded as failed
        """
        task = self.get_task(task_id)
        if task.status == TASK_STATUS_RUNNING:
            raise ConflictException(f"Archive task {task_id} is already running", active=task_id)
        if task.is_terminal:
            raise ConflictException(
                f"Archive task {task_id} already finished with status {task.status}; create a new task to retry"
            )

        with self.guard.hold(f"archive task {task_id}"):
            task.start(self.clock())
            logger.info(f"Starting archive task {task_id} ({task.table_name})")
            try:
                rows = self.store.query(sql.select_with_rowid(task.table_name, task.condition).sql)
                rowids = [row.pop(sql.ROWID_COLUMN) for row in rows]

                if not rows:
                    task.complete(self.clock())
                    logger.info(f"✓ Archive task {task_id}: no rows matched, nothing to archive")
                    return task

                file_name = codec.archive_file_name(
                    task.table_name, task.started_at, task.id, self.config.compression_enabled
                )
                codec.write_archive_file(
                    self.archive_dir / file_name,
                    task.table_name,
                    rows,
                    exported_at=self.clock(),
                    compress=self.config.compression_enabled,
                    level=self.config.compression_level,
                )
                task.archive_file = file_name

                # Only the exported rows are deleted, whatever matches the condition now
                deleted = 0
                with self.store.transaction() as tx:
                    for start in range(0, len(rowids), self.config.batch_size):
                        statement = sql.delete_by_rowid(
                            task.table_name, rowids[start:start + self.config.batch_size]
                        )
                        deleted += tx.execute(statement.sql, statement.params)
                task.records_processed = deleted
                task.complete(self.clock())
                if deleted != len(rows):
                    logger.warning(
                        f"Archive task {task_id}: exported {len(rows)} rows but deleted {deleted}"
                    )
                logger.info(f"✓ Archive task {task_id} completed: {deleted} rows archived to {file_name}")
                return task

            except Exception as e:
                task.fail(self.clock(), e)
                logger.error(f"✗ Archive task {task_id} failed: {e}")
                raise

            finally:
                self._save_history_logged()

    def _old_data_condition(self, table_name: str, date_column: str) -> str:
        """
        Condition for rows older than archive_after_days.

        Raises:
            ValidationException: table or date column does not exist
        """
        if not self.store.table_exists(table_name):
            raise ValidationException("table_name", f"table {table_name} does not exist")
        if date_column not in self.store.table_columns(table_name):
            raise ValidationException("date_column", f"column {date_column} does not exist in {table_name}")
        cutoff = self.clock() - timedelta(days=self.config.archive_after_days)
        return sql.older_than(date_column, cutoff)

    def archive_old_data(self, table_name: str, date_column: str = DEFAULT_ARCHIVE_DATE_COLUMN) -> str:
        """Archive rows whose date column is older than archive_after_days"""
        task_id = self.create_archive_task(table_name, self._old_data_condition(table_name, date_column))
        self.execute_archive_task(task_id)
        return task_id

    def archive_multiple_tables(self, tables: List[ArchiveTable]) -> List[str]:
        """
        Archive old data of several tables, one task each. A failing table
        is logged and does not stop the others.

        Returns:
            Ids of the tasks that were created (including ones that failed)
        """
        task_ids = []
        for table in tables:
            try:
                condition = self._old_data_condition(table.name, table.date_column)
                task_id = self.create_archive_task(table.name, condition)
            except DurabilityException as e:
                logger.error(f"✗ Cannot archive table {table.name}: {e}")
                continue

            task_ids.append(task_id)
            try:
                self.execute_archive_task(task_id)
            except DurabilityException as e:
                logger.error(f"✗ Archiving table {table.name} failed: {e}")

        return task_ids

    def get_task(self, task_id: str) -> ArchiveTask:
        with self._tasks_lock:
            task = self._tasks.get(task_id)
        if task is None:
            raise ArchiveTaskNotFoundException(task_id)
        return task

    def get_all_tasks(self) -> List[ArchiveTask]:
        with self._tasks_lock:
            return sorted(self._tasks.values(), key=lambda t: t.created_at, reverse=True)

    def get_history(self, limit: int = 50, offset: int = 0) -> List[ArchiveTask]:
        """Completed tasks, newest first"""
        completed = [t for t in self.get_all_tasks() if t.status == TASK_STATUS_COMPLETED]
        completed.sort(key=lambda t: t.completed_at or t.created_at, reverse=True)
        return completed[offset:offset + limit]

    # ===== RESTORE =====

    def _resolve_archive_path(self, file_name: str) -> Path:
        path = (self.archive_dir / file_name).resolve()
        try:
            path.relative_to(self.archive_dir.resolve())
        except ValueError:
            raise ValidationException("archive_file_name", f"{file_name} is outside the archive directory")
        if not path.is_file():
            raise ValidationException("archive_file_name", f"{file_name} does not exist")
        return path

    def restore_from_archive(self, file_name: str, target_table: Optional[str] = None) -> int:
        """
        Put archived rows back into a table.

        Rows are written with INSERT OR REPLACE, so restoring the same file
        again leaves the table unchanged.

        Returns:
            Number of rows restored
        """
        path = self._resolve_archive_path(file_name)
        document = codec.read_archive_file(path)

        table = target_table or codec.table_from_archive_name(path.name) or document.get("table_name")
        if not table:
            raise ValidationException("table_name", f"cannot determine target table for {file_name}")
        if not self.store.table_exists(table):
            raise ValidationException("table_name", f"table {table} does not exist")

        records = document["records"]
        if not records:
            logger.info(f"Archive {file_name} holds no records, nothing to restore")
            return 0

        restored = 0
        try:
            with self.guard.hold(f"archive restore from {file_name}"):
                with self.store.transaction() as tx:
                    for start in range(0, len(records), self.config.batch_size):
                        batch = records[start:start + self.config.batch_size]
                        columns = list(batch[0].keys())
                        if any(list(record.keys()) != columns for record in batch):
                            # Mixed column sets: fall back to one statement per row
                            for record in batch:
                                statement = sql.insert(table, record, replace=True)
                                tx.execute(statement.sql, statement.params)
                        else:
                            tx.execute_many(
                                sql.insert_many(table, columns, replace=True),
                                [[record[column] for column in columns] for record in batch]
                            )
                        restored += len(batch)
        except DurabilityException as e:
            logger.error(f"✗ Restore from archive {file_name} failed: {e}")
            raise

        logger.info(f"✓ Restored {restored} rows into {table} from {file_name}")
        return restored

    # ===== CLEANUP & STATS =====

    def _archive_files(self) -> List[Path]:
        return sorted(
            path for path in self.archive_dir.iterdir()
            if path.is_file() and codec.is_archive_file_name(path.name)
        )

    def cleanup_expired_archives(self) -> int:
        """
        Delete archive files last modified before the retention window.

        Returns:
            Number of files deleted
        """
        cutoff = self.clock() - timedelta(days=self.config.retention_days)
        removed = 0
        for path in self._archive_files():
            try:
                modified_at = datetime.fromtimestamp(path.stat().st_mtime)
                if modified_at < cutoff:
                    path.unlink()
                    removed += 1
                    logger.info(f"Deleted expired archive file: {path.name}")
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"✗ Failed to delete archive file {path.name}: {e}")

        if removed:
            logger.info(f"Archive cleanup removed {removed} file(s)")
        return removed

    def list_archive_files(self) -> List[ArchiveFileInfo]:
        files = []
        for path in self._archive_files():
            try:
                stat = path.stat()
            except OSError as e:
                logger.warning(f"Cannot stat archive file {path.name}: {e}")
                continue
            files.append(ArchiveFileInfo(
                name=path.name,
                size_bytes=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime),
            ))
        return files

    def get_archive_stats(self) -> ArchiveStats:
        tasks = self.get_all_tasks()
        completed = [t for t in tasks if t.status == TASK_STATUS_COMPLETED]
        files = self.list_archive_files()

        return ArchiveStats(
            total_tasks=len(tasks),
            completed_tasks=len(completed),
            failed_tasks=sum(1 for t in tasks if t.status == TASK_STATUS_FAILED),
            running_tasks=sum(1 for t in tasks if t.status == TASK_STATUS_RUNNING),
            total_records_archived=sum(t.records_processed for t in completed),
            total_archive_size_bytes=sum(f.size_bytes for f in files),
            last_archive_time=max((t.completed_at for t in completed if t.completed_at), default=None),
            archive_files=files,
        )

    # ===== SCHEDULING =====

    def run_scheduled_archive(self):
        """Timer entry point: archive the configured tables"""
        if not self.config.auto_archive_tables:
            return
        task_ids = self.archive_multiple_tables(self.config.auto_archive_tables)
        logger.info(f"Scheduled archive ran {len(task_ids)} task(s)")

    # ===== PERSISTENCE =====

    def load_history(self):
        document = self._history_file.load()
        tasks = {}
        for entry in document.get("tasks", []):
            try:
                task = ArchiveTask.model_validate(entry)
            except ValueError as e:
                logger.warning(f"Skipping unreadable archive history entry: {e}")
                continue
            if task.status == TASK_STATUS_RUNNING:
                # Interrupted by a restart
                task.fail(self.clock(), RuntimeError("interrupted before completion"))
            tasks[task.id] = task

        with self._tasks_lock:
            self._tasks = tasks

    def _save_history_logged(self):
        with self._tasks_lock:
            document = {"tasks": [task.model_dump(mode="json") for task in self._tasks.values()]}
            try:
                self._history_file.save(document)
            except StorageIOException as e:
                logger.error(f"✗ Failed to save archive history: {e}")
