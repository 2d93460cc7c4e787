"""
Tests for the SQL statement builder.
"""
import pytest
from datetime import date, datetime

from blog_backend.shared.statements import (
    Statement, delete_by_rowid, drop_table, idempotent_create, insert, insert_many,
    older_than, quote_identifier, render_literal, select_with_rowid,
)


class TestRenderLiteral:
    """Tests for literal rendering used in backup dumps"""

    def test_null(self):
        """Should render None as NULL"""
        assert render_literal(None) == "NULL"

    def test_booleans_are_integers(self):
        """Should render booleans as 1 and 0"""
        assert render_literal(True) == "1"
        assert render_literal(False) == "0"

    def test_numbers(self):
        """Should render numbers as-is"""
        assert render_literal(42) == "42"
        assert render_literal(-1.5) == "-1.5"

    def test_non_finite_floats(self):
        """Should render infinity as an overflowing literal and NaN as NULL"""
        assert render_literal(float("inf")) == "9e999"
        assert render_literal(float("-inf")) == "-9e999"
        assert render_literal(float("nan")) == "NULL"

    def test_string_quotes_are_doubled(self):
        """Should double single quotes in strings"""
        assert render_literal("it's") == "'it''s'"

    def test_bytes_as_hex(self):
        """Should render bytes as a hex blob"""
        assert render_literal(b"\x00\xff") == "X'00ff'"

    def test_datetime_and_date(self):
        """Should render dates as ISO strings"""
        assert render_literal(datetime(2026, 1, 2, 3, 4, 5)) == "'2026-01-02 03:04:05'"
        assert render_literal(date(2026, 1, 2)) == "'2026-01-02'"


class TestStatement:
    """Tests for building and rendering statements"""

    def test_insert_uses_placeholders(self):
        """Should bind values as parameters"""
        statement = insert("comments", {"id": 1, "content": "hi"})

        assert statement.sql == 'INSERT INTO "comments" ("id", "content") VALUES (?, ?)'
        assert statement.params == (1, "hi")

    def test_insert_or_replace(self):
        """Should build INSERT OR REPLACE on request"""
        assert insert("comments", {"id": 1}, replace=True).sql.startswith("INSERT OR REPLACE INTO")

    def test_insert_without_columns(self):
        """Should refuse an empty row"""
        with pytest.raises(ValueError):
            insert("comments", {})

    def test_render_substitutes_literals(self):
        """Should substitute escaped literals for placeholders"""
        statement = insert("comments", {"id": 1, "content": "a ? b", "email": None})

        assert statement.render() == (
            'INSERT INTO "comments" ("id", "content", "email") VALUES (1, \'a ? b\', NULL)'
        )

    def test_render_skips_question_marks_in_quotes(self):
        """Should leave question marks inside quotes alone"""
        statement = Statement("SELECT '?' , ? FROM \"t?\"", ("x",))
        assert statement.render() == "SELECT '?' , 'x' FROM \"t?\""

    def test_render_parameter_count_mismatch(self):
        """Should refuse too few or too many parameters"""
        with pytest.raises(ValueError):
            Statement("SELECT ?, ?", (1,)).render()
        with pytest.raises(ValueError):
            Statement("SELECT ?", (1, 2)).render()

    def test_insert_many(self):
        """Should build one INSERT for executemany"""
        assert insert_many("users", ["id", "name"], replace=True) == (
            'INSERT OR REPLACE INTO "users" ("id", "name") VALUES (?, ?)'
        )

    def test_select_with_rowid(self):
        """Should select the rowid alongside the columns"""
        assert select_with_rowid("comments", "id > 2").sql == (
            'SELECT rowid AS "_archive_rowid", * FROM "comments" WHERE id > 2'
        )

    def test_delete_by_rowid(self):
        """Should delete exactly the given rowids"""
        statement = delete_by_rowid("comments", [4, 7])

        assert statement.sql == 'DELETE FROM "comments" WHERE rowid IN (?, ?)'
        assert statement.params == (4, 7)

    def test_drop_table(self):
        """Should quote the table being dropped"""
        assert drop_table('we"ird').sql == 'DROP TABLE IF EXISTS "we""ird"'

    def test_older_than(self):
        """Should compare the column against a quoted cutoff"""
        assert older_than("created_at", datetime(2026, 7, 21, 12, 0)) == (
            "\"created_at\" < '2026-07-21 12:00:00'"
        )


class TestIdentifiers:
    def test_quote_identifier(self):
        """Should double-quote identifiers"""
        assert quote_identifier("users") == '"users"'

    def test_empty_identifier(self):
        """Should refuse an empty identifier"""
        with pytest.raises(ValueError):
            quote_identifier("")


class TestIdempotentCreate:
    """Tests for IF NOT EXISTS rewriting"""

    def test_create_table(self):
        """Should add IF NOT EXISTS to CREATE TABLE"""
        assert idempotent_create("CREATE TABLE users (id INTEGER)") == (
            "CREATE TABLE IF NOT EXISTS users (id INTEGER)"
        )

    def test_create_unique_index(self):
        """Should add IF NOT EXISTS to CREATE UNIQUE INDEX"""
        assert idempotent_create("CREATE UNIQUE INDEX ix_users_email ON users (email)") == (
            "CREATE UNIQUE INDEX IF NOT EXISTS ix_users_email ON users (email)"
        )

    def test_already_idempotent(self):
        """Should leave IF NOT EXISTS statements unchanged"""
        sql = "CREATE TABLE IF NOT EXISTS users (id INTEGER)"
        assert idempotent_create(sql) == sql
