"""
SQL statement builder.

Statements are built from typed column/value pairs and executed with bound
parameters. The same statements can be rendered to literal SQL text for
backup dumps; every value goes through render_literal, which escapes it.
"""
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, List, Mapping, Tuple

ROWID_COLUMN = "_archive_rowid"

_CREATE_TABLE_RE = re.compile(r"^\s*CREATE\s+TABLE\s+(?!IF\s+NOT\s+EXISTS)", re.IGNORECASE)
_CREATE_INDEX_RE = re.compile(
    r"^\s*CREATE\s+(UNIQUE\s+)?INDEX\s+(?!IF\s+NOT\s+EXISTS)", re.IGNORECASE
)


def quote_identifier(name: str) -> str:
    """Quote a table or column name for SQLite"""
    if not name:
        raise ValueError("Identifier must not be empty")
    return '"' + name.replace('"', '""') + '"'


def render_literal(value: Any) -> str:
    """Render a Python value as an escaped SQL literal"""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        # SQLite has no literal for infinity or NaN; 9e999 overflows to
        # infinity and NaN is stored as NULL anyway
        if math.isnan(value):
            return "NULL"
        if math.isinf(value):
            return "9e999" if value > 0 else "-9e999"
        return repr(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "X'" + bytes(value).hex() + "'"
    if isinstance(value, datetime):
        value = value.isoformat(sep=" ")
    elif isinstance(value, date):
        value = value.isoformat()
    return "'" + str(value).replace("'", "''") + "'"


@dataclass(frozen=True)
class Statement:
    """A parameterized statement with positional (?) placeholders"""
    sql: str
    params: Tuple[Any, ...] = field(default_factory=tuple)

    def render(self) -> str:
        """Substitute parameters as escaped literals, skipping quoted sections"""
        rendered = []
        values = list(self.params)
        quote = None
        for char in self.sql:
            if quote:
                if char == quote:
                    quote = None
                rendered.append(char)
            elif char in ("'", '"'):
                quote = char
                rendered.append(char)
            elif char == "?":
                if not values:
                    raise ValueError(f"Not enough parameters for statement: {self.sql}")
                rendered.append(render_literal(values.pop(0)))
            else:
                rendered.append(char)
        if values:
            raise ValueError(f"Too many parameters for statement: {self.sql}")
        return "".join(rendered)


def insert(table: str, row: Mapping[str, Any], replace: bool = False) -> Statement:
    """INSERT (or INSERT OR REPLACE) of one row"""
    if not row:
        raise ValueError(f"Cannot build INSERT for {table}: row has no columns")
    columns = ", ".join(quote_identifier(column) for column in row)
    placeholders = ", ".join("?" for _ in row)
    verb = "INSERT OR REPLACE INTO" if replace else "INSERT INTO"
    return Statement(
        f"{verb} {quote_identifier(table)} ({columns}) VALUES ({placeholders})",
        tuple(row.values())
    )


def insert_many(table: str, columns: List[str], replace: bool = False) -> str:
    """Parameterized INSERT text for executemany over a fixed column list"""
    column_list = ", ".join(quote_identifier(column) for column in columns)
    placeholders = ", ".join("?" for _ in columns)
    verb = "INSERT OR REPLACE INTO" if replace else "INSERT INTO"
    return f"{verb} {quote_identifier(table)} ({column_list}) VALUES ({placeholders})"


def select_all(table: str) -> Statement:
    return Statement(f"SELECT * FROM {quote_identifier(table)}")


def select_with_rowid(table: str, condition: str) -> Statement:
    """
    Select rows matching a caller-supplied predicate, each with its rowid
    under ROWID_COLUMN.

    The condition is SQLite filter syntax passed through as-is; only the
    table name is quoted here.
    """
    return Statement(
        f"SELECT rowid AS {quote_identifier(ROWID_COLUMN)}, * "
        f"FROM {quote_identifier(table)} WHERE {condition}"
    )


def drop_table(table: str) -> Statement:
    return Statement(f"DROP TABLE IF EXISTS {quote_identifier(table)}")


def delete_by_rowid(table: str, rowids: List[int]) -> Statement:
    """DELETE of the given rows by rowid"""
    placeholders = ", ".join("?" for _ in rowids)
    return Statement(
        f"DELETE FROM {quote_identifier(table)} WHERE rowid IN ({placeholders})",
        tuple(rowids)
    )


def older_than(column: str, cutoff: datetime) -> str:
    """Condition matching rows whose column value is before the cutoff"""
    return f"{quote_identifier(column)} < {render_literal(cutoff)}"


def idempotent_create(sql: str) -> str:
    """Rewrite CREATE TABLE / CREATE INDEX so replaying it over an existing schema is a no-op"""
    sql = _CREATE_TABLE_RE.sub("CREATE TABLE IF NOT EXISTS ", sql, count=1)
    return _CREATE_INDEX_RE.sub(
        lambda m: f"CREATE {m.group(1) or ''}INDEX IF NOT EXISTS ", sql, count=1
    )
