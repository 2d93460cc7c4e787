"""
Application-wide constants and configuration defaults.
Environment variables override most of these at startup (see config.py).
"""

# Logging
DEFAULT_LOG_DIRECTORY_PROD = "/var/log/blog-backend"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"
DEFAULT_LOG_FILE = "app.log"

# Database
DEFAULT_DATABASE_URL = "sqlite:///./blog.db"

# CORS settings for the admin console
CORS_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
]

# Task status values (shared by backup and archive tasks)
TASK_STATUS_PENDING = "pending"
TASK_STATUS_RUNNING = "running"
TASK_STATUS_COMPLETED = "completed"
TASK_STATUS_FAILED = "failed"

# Backup kinds
BACKUP_KIND_FULL = "full"
BACKUP_KIND_INCREMENTAL = "incremental"

# Backup defaults
DEFAULT_BACKUP_DIR = "./backups"
DEFAULT_MAX_BACKUPS = 10
DEFAULT_BACKUP_INTERVAL_MINUTES = 60
DEFAULT_BACKUP_RETENTION_DAYS = 30
DEFAULT_COMPRESSION_LEVEL = 6
BACKUP_HISTORY_FILE = "backup_history.json"

# Archive defaults
DEFAULT_ARCHIVE_DIR = "./archives"
DEFAULT_ARCHIVE_RETENTION_DAYS = 365
DEFAULT_ARCHIVE_AFTER_DAYS = 90
DEFAULT_ARCHIVE_BATCH_SIZE = 1000
DEFAULT_ARCHIVE_CLEANUP_INTERVAL_MINUTES = 24 * 60
DEFAULT_ARCHIVE_INTERVAL_MINUTES = 24 * 60
DEFAULT_ARCHIVE_DATE_COLUMN = "created_at"
ARCHIVE_HISTORY_FILE = "archive_history.json"

# File naming
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%f"
SQL_SUFFIX = ".sql"
JSON_SUFFIX = ".json"
GZIP_SUFFIX = ".gz"
ENCRYPTED_SUFFIX = ".enc"

# Encryption (PBKDF2 key derivation for Fernet)
ENCRYPTION_SALT_BYTES = 16
ENCRYPTION_KDF_ITERATIONS = 100_000

# Backup recommendations thresholds
RECOMMEND_MAX_DAYS_SINCE_BACKUP = 7
RECOMMEND_MIN_SUCCESS_RATE = 90.0
RECOMMEND_MIN_BACKUP_COPIES = 3
RECOMMEND_MAX_AVERAGE_DURATION_SECONDS = 300
