from contextlib import asynccontextmanager
from typing import Optional
import logging
import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blog_backend.core.database import engine, Base
from blog_backend.core.store import Store
from blog_backend import models  # Import all models to register them with Base
from blog_backend.config import ArchiveConfig, BackupConfig
from blog_backend.modules.archive import ArchiveManager
from blog_backend.modules.archive.routes import router as archive_router
from blog_backend.modules.backups import BackupManager
from blog_backend.modules.backups.routes import router as backups_router
from blog_backend.services.scheduler_service import start_scheduler, stop_scheduler
from blog_backend.shared.tasks import ActiveTaskGuard

from blog_backend.constants import (
    DEFAULT_LOG_DIRECTORY_PROD, DEFAULT_LOG_DIRECTORY_DEV, DEFAULT_LOG_FILE, CORS_ALLOWED_ORIGINS,
)

LOG_DIR = os.getenv("BLOG_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
LOG_FILE = os.getenv("BLOG_LOG_FILE", DEFAULT_LOG_FILE)

# Create log directory if it doesn't exist (for development)
try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
except PermissionError:
    # Fallback to local directory if no permissions for /var/log
    LOG_DIR = DEFAULT_LOG_DIRECTORY_DEV
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_path),
        logging.StreamHandler()  # Also log to console
    ]
)

logger = logging.getLogger("blog")


def build_managers(store: Store):
    """Backup and archive managers sharing one active-task guard"""
    guard = ActiveTaskGuard()
    backup_manager = BackupManager(store, BackupConfig.from_env(), guard)
    archive_manager = ArchiveManager(store, ArchiveConfig.from_env(), guard)
    return backup_manager, archive_manager


def create_app(
    backup_manager: Optional[BackupManager] = None,
    archive_manager: Optional[ArchiveManager] = None,
    enable_scheduler: bool = True
) -> FastAPI:
    """
    Build the API. Managers are created from the environment at startup
    unless given explicitly.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if backup_manager is None or archive_manager is None:
            # Create database tables
            Base.metadata.create_all(bind=engine)
            app.state.backup_manager, app.state.archive_manager = build_managers(Store(engine))
        else:
            app.state.backup_manager = backup_manager
            app.state.archive_manager = archive_manager

        scheduler = None
        if enable_scheduler:
            scheduler = start_scheduler(app.state.backup_manager, app.state.archive_manager)
        logger.info(f"Blog API started. Logging to: {log_path}")

        yield

        logger.info("Shutting down Blog API")
        if scheduler is not None:
            stop_scheduler(scheduler)

    app = FastAPI(
        title="Blog API",
        description="Blog backend with backup, restore and data archiving",
        version="1.0.0",
        lifespan=lifespan
    )

    # CORS settings for the admin console
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth required)
    @app.get("/")
    async def root():
        return {"message": "Blog API", "status": "active"}

    app.include_router(backups_router)
    app.include_router(archive_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("blog_backend.main:app", host="0.0.0.0", port=8000, reload=False)
