"""
Database engine and declarative base.
"""
import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from blog_backend.constants import DEFAULT_DATABASE_URL

DATABASE_URL = os.getenv("BLOG_DATABASE_URL", DEFAULT_DATABASE_URL)


def create_database_engine(url: str = DATABASE_URL) -> Engine:
    """
    Create an engine for the blog store.

    For SQLite the driver's implicit transaction handling is disabled and
    BEGIN is emitted explicitly, so DDL inside a transaction is rolled back
    together with DML.
    """
    if not url.startswith("sqlite"):
        return create_engine(url)

    engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


engine = create_database_engine()
Base = declarative_base()
