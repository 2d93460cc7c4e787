"""
Shared fixtures: a temporary SQLite store seeded with blog content, backup
and archive managers writing under tmp_path, and a controllable clock.
"""
import pytest
from datetime import datetime, timedelta

from blog_backend import models  # noqa: F401  registers the blog tables
from blog_backend.config import ArchiveConfig, BackupConfig
from blog_backend.core.database import Base, create_database_engine
from blog_backend.core.store import Store
from blog_backend.modules.archive import ArchiveManager
from blog_backend.modules.backups import BackupManager
from blog_backend.shared import statements as sql
from blog_backend.shared.tasks import ActiveTaskGuard


class FakeClock:
    """Returns the current fake time and moves forward one step per call"""

    def __init__(self, now: datetime, step: timedelta = timedelta(seconds=1)):
        self.now = now
        self.step = step

    def __call__(self) -> datetime:
        value = self.now
        self.now += self.step
        return value

    def set(self, moment: datetime):
        self.now = moment


USERS = [
    {"id": 1, "username": "alice", "email": "alice@example.com", "display_name": "Alice",
     "role": "admin", "is_active": 1, "created_at": "2025-11-01 09:00:00"},
    {"id": 2, "username": "bob", "email": "bob@example.com", "display_name": None,
     "role": "author", "is_active": 1, "created_at": "2025-12-15 18:30:00"},
]

CATEGORIES = [
    {"id": 1, "name": "News", "slug": "news", "description": "Site news", "created_at": "2025-11-01 09:05:00"},
]

ARTICLES = [
    {"id": 1, "title": "Hello", "slug": "hello", "content": "First post; with a semicolon",
     "status": "published", "author_id": 1, "category_id": 1, "view_count": 12,
     "created_at": "2026-01-10 10:00:00", "updated_at": "2026-01-10 10:00:00",
     "published_at": "2026-01-10 10:00:00"},
    {"id": 2, "title": "It's late", "slug": "late", "content": "Line one\nline two -- not a comment",
     "status": "draft", "author_id": 2, "category_id": None, "view_count": 0,
     "created_at": "2026-09-01 08:00:00", "updated_at": "2026-09-01 08:00:00",
     "published_at": None},
]

COMMENTS = [
    {"id": 1, "article_id": 1, "author_name": "Carol", "author_email": "carol@example.com",
     "content": "Nice!", "is_approved": 1, "created_at": "2026-01-11 12:00:00"},
    {"id": 2, "article_id": 1, "author_name": "Dan", "author_email": None,
     "content": "Quote ' and ; inside", "is_approved": 0, "created_at": "2026-02-01 07:15:00"},
    {"id": 3, "article_id": 2, "author_name": "Eve", "author_email": "eve@example.com",
     "content": "Recent comment", "is_approved": 1, "created_at": "2026-10-01 20:45:00"},
]

SEED_DATA = {
    "users": USERS,
    "categories": CATEGORIES,
    "articles": ARTICLES,
    "comments": COMMENTS,
}


def rows_as_set(store: Store, table: str):
    """Table contents as an order-independent set"""
    return {tuple(sorted(row.items())) for row in store.query(sql.select_all(table).sql)}


def count_rows(store: Store, table: str) -> int:
    return store.query(f"SELECT COUNT(*) AS n FROM {sql.quote_identifier(table)}")[0]["n"]


@pytest.fixture
def now():
    return datetime(2026, 10, 19, 12, 0, 0)


@pytest.fixture
def clock(now):
    return FakeClock(now)


@pytest.fixture
def engine(tmp_path):
    engine = create_database_engine(f"sqlite:///{tmp_path / 'blog.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    store = Store(engine)
    with store.transaction() as tx:
        for table, rows in SEED_DATA.items():
            for row in rows:
                statement = sql.insert(table, row)
                tx.execute(statement.sql, statement.params)
    return store


@pytest.fixture
def empty_store(tmp_path):
    engine = create_database_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    yield Store(engine)
    engine.dispose()


@pytest.fixture
def guard():
    return ActiveTaskGuard()


@pytest.fixture
def backup_config(tmp_path):
    return BackupConfig.create(backup_dir=str(tmp_path / "backups"))


@pytest.fixture
def archive_config(tmp_path):
    return ArchiveConfig.create(archive_dir=str(tmp_path / "archives"), batch_size=2)


@pytest.fixture
def backup_manager(store, backup_config, guard, clock):
    return BackupManager(store, backup_config, guard, clock)


@pytest.fixture
def archive_manager(store, archive_config, guard, clock):
    return ArchiveManager(store, archive_config, guard, clock)
