"""
Task lifecycle shared by backup and archive tasks.

pending -> running -> completed | failed. Terminal states are final: a retry
is always a new task.
"""
import json
import logging
import os
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from pydantic import BaseModel

from blog_backend.constants import (
    TASK_STATUS_PENDING, TASK_STATUS_RUNNING, TASK_STATUS_COMPLETED, TASK_STATUS_FAILED,
)
from blog_backend.exceptions import ConflictException, StorageIOException

logger = logging.getLogger("blog.tasks")

TERMINAL_STATUSES = (TASK_STATUS_COMPLETED, TASK_STATUS_FAILED)


def new_task_id(prefix: str, now: datetime) -> str:
    """Unique id that sorts by creation time, e.g. full_1760870400000_3fa2c1"""
    return f"{prefix}_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:6]}"


class TaskRecord(BaseModel):
    id: str
    status: str = TASK_STATUS_PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def start(self, now: datetime):
        if self.status != TASK_STATUS_PENDING:
            raise ConflictException(f"Task {self.id} cannot start: status is {self.status}")
        self.status = TASK_STATUS_RUNNING
        self.started_at = now

    def complete(self, now: datetime):
        self._require_running("complete")
        self.status = TASK_STATUS_COMPLETED
        self.completed_at = now

    def fail(self, now: datetime, error: BaseException):
        self._require_running("fail")
        self.status = TASK_STATUS_FAILED
        self.completed_at = now
        self.error_message = str(error)

    def _require_running(self, transition: str):
        if self.status != TASK_STATUS_RUNNING:
            raise ConflictException(f"Task {self.id} cannot {transition}: status is {self.status}")


class ActiveTaskGuard:
    """
    Tracks the single task allowed to run at a time.

    The lock only protects the check-and-set; work never runs under it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Optional[str] = None

    @property
    def active(self) -> Optional[str]:
        return self._active

    @contextmanager
    def hold(self, description: str) -> Iterator[None]:
        with self._lock:
            if self._active is not None:
                raise ConflictException(
                    f"Cannot start {description}: {self._active} is still running",
                    active=self._active
                )
            self._active = description
        try:
            yield
        finally:
            with self._lock:
                self._active = None


class HistoryFile:
    """JSON file holding a manager's task history, replaced atomically on save"""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"✗ Cannot read task history {self.path}, starting empty: {e}")
            return {}

    def save(self, document: Dict[str, Any]):
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(json.dumps(document, indent=2, default=str))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageIOException(str(self.path), str(e)) from e
