"""SqlExecutor のテスト."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any
from unittest.mock import MagicMock

import pytest

from userdao import SqlExecutor, User
from userdao.exceptions import DuplicateEmailError, ExecutionError
from userdao.executor import fetch_dicts, wrap_driver_error

INSERT = (
    "INSERT INTO users (name, email, department, role, active, created_at, updated_at) "
    "VALUES (?, ?, ?, ?, ?, ?, ?)"
)


def insert_params(name: str, email: str, now: Any) -> tuple[Any, ...]:
    return (name, email, "IT", "dev", True, now, now)


class TestWrapDriverError:
    """ドライバ例外の分類."""

    def test_non_driver_error_returned_as_is(self) -> None:
        exc = ValueError("bad")
        assert wrap_driver_error(exc, "Query") is exc

    def test_driver_error_becomes_execution_error(self) -> None:
        wrapped = wrap_driver_error(sqlite3.OperationalError("no such table"), "Query")
        assert type(wrapped) is ExecutionError
        assert str(wrapped) == "Query failed: no such table"

    def test_message_text_alone_is_not_unique_violation(self) -> None:
        """メッセージに "UNIQUE" を含むだけでは重複と判定しない."""
        wrapped = wrap_driver_error(
            sqlite3.IntegrityError("UNIQUE constraint failed: users.email"), "Insert"
        )
        assert not isinstance(wrapped, DuplicateEmailError)


class TestFetchDicts:
    def test_no_result_set(self) -> None:
        cursor = MagicMock()
        cursor.description = None
        assert fetch_dicts(cursor) == []

    def test_rows_as_dicts(self) -> None:
        cursor = MagicMock()
        cursor.description = [("id",), ("name",)]
        cursor.fetchall.return_value = [(1, "a"), (2, "b")]
        assert fetch_dicts(cursor) == [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]


class TestSqlExecutor:
    """SQLite での単一文実行."""

    def test_insert_returns_id(self, sqlite_provider: Any, now: Any) -> None:
        executor = SqlExecutor(sqlite_provider)
        first = executor.insert(INSERT, insert_params("a", "a@example.com", now))
        second = executor.insert(INSERT, insert_params("b", "b@example.com", now))
        assert first is not None
        assert second == first + 1

    def test_query_one_maps_entity(self, sqlite_provider: Any, now: Any) -> None:
        executor = SqlExecutor(sqlite_provider)
        user_id = executor.insert(INSERT, insert_params("a", "a@example.com", now))
        user = executor.query_one(User, "users/find_by_id.sql", (user_id,))
        assert user is not None
        assert user.email == "a@example.com"
        assert user.active is True
        assert user.created_at == now

    def test_query_one_none(self, sqlite_provider: Any) -> None:
        assert SqlExecutor(sqlite_provider).query_one(User, "users/find_by_id.sql", (99,)) is None

    def test_query_scalar(self, sqlite_provider: Any) -> None:
        assert SqlExecutor(sqlite_provider).query_scalar("SELECT 1 AS test") == 1

    def test_query_scalar_no_rows(self, sqlite_provider: Any) -> None:
        executor = SqlExecutor(sqlite_provider)
        assert executor.query_scalar("SELECT id FROM users WHERE id = ?", (1,)) is None

    def test_execute_returns_rowcount(self, sqlite_provider: Any, now: Any) -> None:
        executor = SqlExecutor(sqlite_provider)
        user_id = executor.insert(INSERT, insert_params("a", "a@example.com", now))
        assert executor.execute("users/delete.sql", (user_id,)) == 1
        assert executor.execute("users/delete.sql", (user_id,)) == 0

    def test_duplicate_email(self, sqlite_provider: Any, now: Any) -> None:
        executor = SqlExecutor(sqlite_provider)
        executor.insert(INSERT, insert_params("a", "a@example.com", now))
        with pytest.raises(DuplicateEmailError) as exc_info:
            executor.insert(
                INSERT, insert_params("b", "a@example.com", now), email="a@example.com"
            )
        assert exc_info.value.email == "a@example.com"
        assert "'a@example.com' is already registered" in str(exc_info.value)

    def test_invalid_sql(self, sqlite_provider: Any) -> None:
        with pytest.raises(ExecutionError, match="Query failed"):
            SqlExecutor(sqlite_provider).fetch("SELECT * FROM missing_table")

    def test_connection_released(self, shared_provider: Any) -> None:
        SqlExecutor(shared_provider).query_scalar("SELECT 1")
        assert shared_provider.released == 1

    def test_connection_released_on_error(self, shared_provider: Any) -> None:
        with pytest.raises(ExecutionError):
            SqlExecutor(shared_provider).fetch("SELECT * FROM missing_table")
        assert shared_provider.released == 1

    def test_echo_sql(self, sqlite_provider: Any, caplog: pytest.LogCaptureFixture) -> None:
        executor = SqlExecutor(sqlite_provider, echo_sql=True)
        with caplog.at_level(logging.DEBUG, logger="userdao.executor"):
            executor.query_scalar("SELECT\n  1")
        assert "SQL: SELECT 1" in caplog.text

    def test_no_echo_by_default(
        self, sqlite_provider: Any, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.DEBUG, logger="userdao.executor"):
            SqlExecutor(sqlite_provider).query_scalar("SELECT 1")
        assert "SQL:" not in caplog.text


class TestResolveSql:
    def test_inline_sql_unchanged(self, sqlite_provider: Any) -> None:
        assert SqlExecutor(sqlite_provider).resolve_sql("SELECT 1") == "SELECT 1"

    def test_file_loaded(self, sqlite_provider: Any) -> None:
        assert "DELETE FROM users" in SqlExecutor(sqlite_provider).resolve_sql("users/delete.sql")
