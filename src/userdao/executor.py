"""SqlExecutor: 単一文の実行（接続ごとの auto-commit 実行）."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, TypeVar

from userdao.connection import connection_scope
from userdao.dialect import is_unique_violation
from userdao.exceptions import DuplicateEmailError, ExecutionError, is_driver_error
from userdao.loader import SqlLoader
from userdao.mapper.factory import create_mapper

if TYPE_CHECKING:
    from userdao.connection import ConnectionProvider
    from userdao.dialect import Dialect
    from userdao.mapper.factory import RowMapper

T = TypeVar("T")

logger = logging.getLogger(__name__)


def wrap_driver_error(exc: Exception, action: str, *, email: str | None = None) -> Exception:
    """ドライバの例外を ExecutionError（一意制約違反は DuplicateEmailError）に変換する.

    ドライバ由来でない例外はそのまま返す。
    """
    if not is_driver_error(exc):
        return exc
    if is_unique_violation(exc):
        subject = f"email {email!r}" if email is not None else "a unique value"
        msg = f"{action} failed: {subject} is already registered ({exc})"
        return DuplicateEmailError(msg, email=email)
    return ExecutionError(f"{action} failed: {exc}")


def fetch_dicts(cursor: Any) -> list[dict[str, Any]]:
    """実行済みカーソルの結果を辞書のリストで返す."""
    if cursor.description is None:
        return []
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


class SqlExecutor:
    """単一文の実行.

    呼び出しごとに接続を取得し、auto-commit モードのまま1文を実行して解放する。

    Examples:
        >>> executor = SqlExecutor(SqliteConnectionProvider("users.db"))
        >>> user = executor.query_one(User, "users/find_by_id.sql", (1,))
        >>> affected = executor.execute("users/delete.sql", (1,))

    """

    def __init__(
        self,
        provider: ConnectionProvider,
        *,
        loader: SqlLoader | None = None,
        echo_sql: bool = False,
    ) -> None:
        self._provider = provider
        self._loader = loader if loader is not None else SqlLoader()
        self._echo_sql = echo_sql

    @property
    def provider(self) -> ConnectionProvider:
        return self._provider

    @property
    def dialect(self) -> Dialect | None:
        return self._provider.dialect

    @property
    def loader(self) -> SqlLoader:
        return self._loader

    def resolve_sql(self, sql: str) -> str:
        """``.sql`` で終わる場合は SQL ファイルを読み込み、それ以外はそのまま返す."""
        if sql.endswith(".sql"):
            return self._loader.load(sql, dialect=self.dialect)
        return sql

    def bind(self, params: Sequence[Any]) -> tuple[Any, ...]:
        """バインド値を方言に合わせて変換する."""
        if self.dialect is None:
            return tuple(params)
        return tuple(self.dialect.bind_value(p) for p in params)

    def query(
        self,
        entity: type[T],
        sql: str,
        params: Sequence[Any] = (),
        *,
        mapper: RowMapper[T] | None = None,
    ) -> list[T]:
        """SELECT を実行し、結果をエンティティのリストで返す."""
        rows = self.fetch(sql, params)
        return create_mapper(entity, mapper=mapper).map_rows(rows)

    def query_one(
        self,
        entity: type[T],
        sql: str,
        params: Sequence[Any] = (),
        *,
        mapper: RowMapper[T] | None = None,
    ) -> T | None:
        """SELECT を実行し、最初の1行をエンティティで返す. 結果がなければ None."""
        rows = self.fetch(sql, params)
        if not rows:
            return None
        return create_mapper(entity, mapper=mapper).map_row(rows[0])

    def query_scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """SELECT を実行し、最初の行の最初の列を返す. 結果がなければ None."""
        rows = self.fetch(sql, params)
        if not rows:
            return None
        return next(iter(rows[0].values()))

    def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """SELECT を実行し、結果を辞書のリストで返す."""
        statement = self.resolve_sql(sql)
        with connection_scope(self._provider) as connection:
            cursor = connection.cursor()
            try:
                self._run(cursor, statement, params, "Query")
                return fetch_dicts(cursor)
            finally:
                cursor.close()

    def execute(self, sql: str, params: Sequence[Any] = (), *, email: str | None = None) -> int:
        """INSERT/UPDATE/DELETE を実行し、影響行数を返す."""
        statement = self.resolve_sql(sql)
        with connection_scope(self._provider) as connection:
            cursor = connection.cursor()
            try:
                self._run(cursor, statement, params, "Statement", email=email)
                return cursor.rowcount
            finally:
                cursor.close()

    def insert(self, sql: str, params: Sequence[Any] = (), *, email: str | None = None) -> int | None:
        """INSERT を実行し、自動生成された ID を返す.

        ``RETURNING`` 句付きの SQL（PostgreSQL）は結果行から、それ以外は ``lastrowid`` から取得する。
        """
        statement = self.resolve_sql(sql)
        with connection_scope(self._provider) as connection:
            cursor = connection.cursor()
            try:
                self._run(cursor, statement, params, "Insert", email=email)
                if cursor.description is not None:
                    row = cursor.fetchone()
                    return row[0] if row is not None else None
                return cursor.lastrowid
            finally:
                cursor.close()

    def _run(
        self,
        cursor: Any,
        statement: str,
        params: Sequence[Any],
        action: str,
        *,
        email: str | None = None,
    ) -> None:
        if self._echo_sql:
            logger.debug("SQL: %s | params=%r", " ".join(statement.split()), params)
        try:
            cursor.execute(statement, self.bind(params))
        except Exception as exc:
            wrapped = wrap_driver_error(exc, action, email=email)
            if wrapped is exc:
                raise
            raise wrapped from exc
