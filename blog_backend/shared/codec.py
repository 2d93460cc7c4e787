"""
Serialization codec for backup and archive files.

Backups are SQL dumps: per table, the CREATE statements followed by one
INSERT per row. Archives are JSON documents holding the exported rows.
Both can be gzip-compressed; backups can additionally be encrypted.
"""
import base64
import gzip
import io
import json
import os
import re
import sqlite3
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from blog_backend.constants import (
    TIMESTAMP_FORMAT, SQL_SUFFIX, JSON_SUFFIX, GZIP_SUFFIX, ENCRYPTED_SUFFIX,
    ENCRYPTION_SALT_BYTES, ENCRYPTION_KDF_ITERATIONS,
)
from blog_backend.exceptions import StorageIOException, ValidationException
from blog_backend.shared import statements as sql

_IDENTIFIER = r'(?:"((?:[^"]|"")+)"|\[([^\]]+)\]|`([^`]+)`|([^\s(]+))'
_CREATE_TABLE_RE = re.compile(
    r"^CREATE\s+(?:TEMP\w*\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?" + _IDENTIFIER, re.IGNORECASE
)
_CREATE_INDEX_RE = re.compile(
    r"^CREATE\s+(?:UNIQUE\s+)?INDEX\s+.*?\s+ON\s+" + _IDENTIFIER, re.IGNORECASE | re.DOTALL
)
_INSERT_RE = re.compile(
    r"^(?:INSERT|REPLACE)\s+(?:OR\s+\w+\s+)?INTO\s+" + _IDENTIFIER, re.IGNORECASE
)
_ARCHIVE_NAME_RE = re.compile(
    r"^(?P<table>.+?)_(?P<timestamp>\d{8}T\d{12})_(?P<task_id>.+?)"
    + re.escape(JSON_SUFFIX) + r"(?:" + re.escape(GZIP_SUFFIX) + r")?$"
)

_BYTES_MARKER = "__bytes__"


def file_timestamp(moment: datetime) -> str:
    return moment.strftime(TIMESTAMP_FORMAT)


# ===== COMPRESSION / ENCRYPTION =====

def _fernet(passphrase: str, salt: bytes) -> Fernet:
    """Derive a Fernet key from a passphrase"""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=ENCRYPTION_KDF_ITERATIONS,
    )
    return Fernet(base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8"))))


def encrypt_bytes(data: bytes, passphrase: str) -> bytes:
    """Encrypt data; the random salt is stored as a prefix of the result"""
    salt = os.urandom(ENCRYPTION_SALT_BYTES)
    return salt + _fernet(passphrase, salt).encrypt(data)


def decrypt_bytes(blob: bytes, passphrase: str) -> bytes:
    salt, token = blob[:ENCRYPTION_SALT_BYTES], blob[ENCRYPTION_SALT_BYTES:]
    try:
        return _fernet(passphrase, salt).decrypt(token)
    except InvalidToken:
        raise ValidationException("encryption", "wrong key or corrupted encrypted file")


def _decode_file(path: Path, encryption_key: Optional[str]) -> bytes:
    """Read a file and undo encryption/compression according to its suffixes"""
    try:
        data = path.read_bytes()
    except OSError as e:
        raise StorageIOException(str(path), str(e)) from e

    name = path.name
    if name.endswith(ENCRYPTED_SUFFIX):
        if not encryption_key:
            raise ValidationException(str(path), "file is encrypted but no encryption key is configured")
        data = decrypt_bytes(data, encryption_key)
        name = name[:-len(ENCRYPTED_SUFFIX)]

    if name.endswith(GZIP_SUFFIX):
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise ValidationException(str(path), f"cannot decompress: {e}") from e

    return data


def _fsync_write(path: Path, payload: bytes):
    with open(path, "wb") as f:
        f.write(payload)
        f.flush()
        os.fsync(f.fileno())


# ===== BACKUP DUMPS =====

def backup_file_name(kind: str, moment: datetime, compressed: bool, encrypted: bool) -> str:
    """e.g. full_backup_20261019T120000000000.sql.gz.enc"""
    name = f"{kind}_backup_{file_timestamp(moment)}{SQL_SUFFIX}"
    if compressed:
        name += GZIP_SUFFIX
    if encrypted:
        name += ENCRYPTED_SUFFIX
    return name


def table_statements(table: str, schema: List[str], rows: Iterable[Mapping[str, Any]]) -> Iterator[str]:
    """
    Serialize one table: its CREATE statements, then one INSERT per row.
    """
    yield f"-- Table: {table}"
    for create_sql in schema:
        yield sql.idempotent_create(create_sql) + ";"
    for row in rows:
        yield sql.insert(table, row).render() + ";"


def _write_statements(fileobj, lines: Iterable[str], compress: bool, level: int):
    if compress:
        with gzip.GzipFile(fileobj=fileobj, mode="wb", compresslevel=level, filename="") as gz:
            for line in lines:
                gz.write((line + "\n").encode("utf-8"))
    else:
        for line in lines:
            fileobj.write((line + "\n").encode("utf-8"))


def write_backup_file(
    path: Path,
    lines: Iterable[str],
    compress: bool = False,
    level: int = 6,
    encryption_key: Optional[str] = None
) -> int:
    """
    Write dump lines to a backup file.

    Unencrypted dumps are streamed straight to disk, so a failure part way
    leaves the partial file behind. Encrypted dumps are assembled in memory
    and written in one go.

    Returns:
        Size of the written file in bytes
    """
    try:
        if encryption_key:
            buffer = io.BytesIO()
            _write_statements(buffer, lines, compress, level)
            _fsync_write(path, encrypt_bytes(buffer.getvalue(), encryption_key))
        else:
            with open(path, "wb") as f:
                _write_statements(f, lines, compress, level)
                f.flush()
                os.fsync(f.fileno())
        return path.stat().st_size
    except OSError as e:
        raise StorageIOException(str(path), str(e)) from e


def read_backup_file(path: Path, encryption_key: Optional[str] = None) -> str:
    data = _decode_file(path, encryption_key)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationException(str(path), f"not a text dump: {e}") from e


def iter_statements(content: str) -> Iterator[str]:
    """
    Split a dump into complete SQL statements.

    Uses SQLite's own completeness check, so semicolons and newlines inside
    string literals do not split a statement.
    """
    buffer = ""
    for line in content.splitlines(keepends=True):
        if not buffer and (not line.strip() or line.lstrip().startswith("--")):
            continue
        buffer += line
        if sqlite3.complete_statement(buffer):
            yield buffer.strip()
            buffer = ""
    if buffer.strip():
        raise ValidationException("backup_file", "dump ends with an incomplete statement")


def _identifier(match: "re.Match") -> str:
    quoted, bracketed, backticked, bare = match.groups()[-4:]
    if quoted is not None:
        return quoted.replace('""', '"')
    return bracketed or backticked or bare


def statement_table(statement: str) -> Optional[str]:
    """Table a dump statement belongs to (None for anything else)"""
    for pattern in (_CREATE_TABLE_RE, _CREATE_INDEX_RE, _INSERT_RE):
        match = pattern.match(statement)
        if match:
            return _identifier(match)
    return None


def is_schema_or_data_statement(statement: str) -> bool:
    return bool(_CREATE_TABLE_RE.match(statement) or _INSERT_RE.match(statement))


@dataclass
class TableDump:
    """All statements of one table, in file order"""
    name: str
    statements: List[str] = field(default_factory=list)


def parse_dump(content: str) -> List[TableDump]:
    """
    Group dump statements per table, keeping the order tables appear in.
    Statements that name no table stay with the table before them.
    """
    units: Dict[str, TableDump] = {}
    current: Optional[TableDump] = None
    for statement in iter_statements(content):
        table = statement_table(statement)
        if table is not None:
            current = units.get(table)
            if current is None:
                current = units[table] = TableDump(table)
        elif current is None:
            current = units[""] = TableDump("")
        current.statements.append(statement)
    return list(units.values())


# ===== ARCHIVES =====

def archive_file_name(table: str, moment: datetime, task_id: str, compressed: bool) -> str:
    """{table}_{timestamp}_{task_id}.json[.gz]"""
    name = f"{table}_{file_timestamp(moment)}_{task_id}{JSON_SUFFIX}"
    if compressed:
        name += GZIP_SUFFIX
    return name


def table_from_archive_name(file_name: str) -> Optional[str]:
    match = _ARCHIVE_NAME_RE.match(file_name)
    return match.group("table") if match else None


def is_archive_file_name(file_name: str) -> bool:
    return _ARCHIVE_NAME_RE.match(file_name) is not None


def _json_default(value: Any):
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {_BYTES_MARKER: base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _json_object_hook(obj: Dict[str, Any]):
    if len(obj) == 1 and _BYTES_MARKER in obj:
        return base64.b64decode(obj[_BYTES_MARKER])
    return obj


def write_archive_file(
    path: Path,
    table: str,
    records: List[Dict[str, Any]],
    exported_at: datetime,
    compress: bool = False,
    level: int = 6
) -> int:
    """
    Write exported rows and fsync the file before returning.

    Returns:
        Size of the written file in bytes
    """
    document = {
        "table_name": table,
        "exported_at": exported_at.isoformat(),
        "record_count": len(records),
        "records": records,
    }
    payload = json.dumps(document, default=_json_default, ensure_ascii=False, indent=2).encode("utf-8")
    if compress:
        payload = gzip.compress(payload, compresslevel=level)
    try:
        _fsync_write(path, payload)
        return path.stat().st_size
    except OSError as e:
        raise StorageIOException(str(path), str(e)) from e


def read_archive_file(path: Path) -> Dict[str, Any]:
    data = _decode_file(path, None)
    try:
        document = json.loads(data.decode("utf-8"), object_hook=_json_object_hook)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationException(str(path), f"not a valid archive document: {e}") from e

    if not isinstance(document, dict) or not isinstance(document.get("records"), list):
        raise ValidationException(str(path), "archive document has no records list")
    return document
