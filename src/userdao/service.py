"""UserService: users テーブルに対するデータアクセス操作."""

from __future__ import annotations

import importlib
import logging
import re
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from userdao.batch import BatchWriter
from userdao.connection import create_provider
from userdao.dialect import Dialect
from userdao.escape_utils import contains_pattern
from userdao.exceptions import ConnectivityError, ExecutionError, UserNotFoundError
from userdao.executor import SqlExecutor
from userdao.loader import SqlLoader
from userdao.mapper.factory import create_mapper
from userdao.models import ColumnInfo, DatabaseInfo, User

if TYPE_CHECKING:
    from userdao.config import DatabaseConfig
    from userdao.connection import ConnectionProvider
    from userdao.models import UserCreate, UserQuery, UserUpdate

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class UserService:
    """users テーブルの CRUD・検索・トランザクション・メタデータ操作.

    単一文の操作は呼び出しごとに接続を取得して auto-commit で実行する。
    複数ユーザーの挿入（``transfer_data`` / ``batch_insert_users``）は
    1接続・1トランザクションで原子的に実行する。

    Examples:
        >>> service = UserService.from_config(DatabaseConfig.from_env())
        >>> service.create_schema()
        >>> user = service.create_user(
        ...     UserCreate(name="Alice", email="alice@example.com", department="IT", role="dev")
        ... )
        >>> service.batch_insert_users([User(name="Bob", email="bob@example.com")])
        1

    """

    def __init__(
        self,
        provider: ConnectionProvider,
        *,
        clock: Callable[[], datetime] = datetime.now,
        loader: SqlLoader | None = None,
        echo_sql: bool = False,
    ) -> None:
        self._provider = provider
        self._clock = clock
        self._executor = SqlExecutor(provider, loader=loader, echo_sql=echo_sql)
        self._writer = BatchWriter(provider, clock=clock, loader=self._executor.loader)

    @classmethod
    def from_config(cls, config: DatabaseConfig, **kwargs: Any) -> UserService:
        """設定から生成する."""
        if config.sql_dir is not None:
            kwargs.setdefault("loader", SqlLoader(config.sql_dir))
        kwargs.setdefault("echo_sql", config.echo_sql)
        logger.debug("UserService for %s", config.safe_url)
        return cls(create_provider(config), **kwargs)

    @property
    def provider(self) -> ConnectionProvider:
        return self._provider

    @property
    def executor(self) -> SqlExecutor:
        """単一文の実行に使う SqlExecutor."""
        return self._executor

    @property
    def _placeholder(self) -> str:
        dialect = self._executor.dialect
        return dialect.placeholder if dialect is not None else "?"

    # ---- connection ----

    def test_connection(self) -> str:
        """``SELECT 1`` で接続を確認し、結果の要約を返す.

        Raises:
            ConnectivityError: 接続またはクエリに失敗した場合

        """
        try:
            test_value = self._executor.query_scalar("SELECT 1 AS test")
            product, version = self._product_and_version()
        except ExecutionError as exc:
            msg = f"Connection test failed: {exc}"
            raise ConnectivityError(msg) from exc
        if test_value is None:
            msg = "Connection test returned no rows"
            raise ConnectivityError(msg)
        return f"Connection OK: {product} {version} | test={test_value}"

    # ---- CRUD ----

    def create_user(self, data: UserCreate) -> User:
        """ユーザーを1件挿入し、生成された ID を持つ User を返す.

        Raises:
            DuplicateEmailError: email が既に登録されている場合

        """
        now = self._clock()
        user_id = self._executor.insert(
            "users/create.sql",
            (data.name, data.email, data.department, data.role, True, now, now),
            email=data.email,
        )
        if user_id is None:
            msg = "Insert succeeded but no id was generated"
            raise ExecutionError(msg)
        logger.debug("User created: id=%s", user_id)
        return User(
            id=user_id,
            name=data.name,
            email=data.email,
            department=data.department,
            role=data.role,
            active=True,
            created_at=now,
            updated_at=now,
        )

    def find_user_by_id(self, user_id: int) -> User | None:
        """ID でユーザーを取得する. 存在しない場合は None."""
        return self._executor.query_one(User, "users/find_by_id.sql", (user_id,))

    def update_user(self, user_id: int, data: UserUpdate) -> User:
        """指定されたフィールドを更新し、更新後のユーザーを返す.

        Raises:
            UserNotFoundError: ユーザーが存在しない場合
            DuplicateEmailError: 変更後の email が既に登録されている場合

        """
        existing = self.find_user_by_id(user_id)
        if existing is None:
            raise UserNotFoundError(user_id)
        updated = data.apply_to(existing)
        affected = self._executor.execute(
            "users/update.sql",
            (
                updated.name,
                updated.email,
                updated.department,
                updated.role,
                True if updated.active is None else updated.active,
                self._clock(),
                user_id,
            ),
            email=updated.email,
        )
        if affected == 0:
            raise UserNotFoundError(user_id)
        result = self.find_user_by_id(user_id)
        if result is None:
            raise UserNotFoundError(user_id)
        return result

    def delete_user(self, user_id: int) -> bool:
        """ユーザーを削除する.

        Raises:
            UserNotFoundError: ユーザーが存在しない場合

        """
        if self.find_user_by_id(user_id) is None:
            raise UserNotFoundError(user_id)
        return self._executor.execute("users/delete.sql", (user_id,)) > 0

    # ---- queries ----

    def find_all(self, limit: int | None = None) -> list[User]:
        """全ユーザーを作成日時の新しい順に返す."""
        if limit is None:
            return self._executor.query(User, "users/find_all.sql")
        if limit < 1:
            msg = f"limit must be positive: {limit}"
            raise ValueError(msg)
        sql = self._executor.resolve_sql("users/find_all.sql").rstrip()
        return self._executor.query(User, f"{sql}\nLIMIT {self._placeholder}", (limit,))

    def find_users_by_department(self, department: str) -> list[User]:
        return self._executor.query(User, "users/find_by_department.sql", (department,))

    def search_users(self, query: UserQuery) -> list[User]:
        """指定された条件の AND で検索する. None の条件は無視される."""
        ph = self._placeholder
        conditions: list[str] = []
        params: list[Any] = []
        if query.department is not None:
            conditions.append(f"department = {ph}")
            params.append(query.department)
        if query.role is not None:
            conditions.append(f"role = {ph}")
            params.append(query.role)
        if query.active is not None:
            conditions.append(f"active = {ph}")
            params.append(query.active)
        if query.name_contains:
            dialect = self._executor.dialect or Dialect.SQLITE
            conditions.append(f"name LIKE {ph} ESCAPE '{dialect.like_escape_char}'")
            params.append(contains_pattern(query.name_contains, dialect))

        lines = [self._executor.resolve_sql("users/search.sql").rstrip()]
        if conditions:
            lines.append("WHERE " + "\n  AND ".join(conditions))
        lines.append("ORDER BY id")
        lines.append(f"LIMIT {ph} OFFSET {ph}")
        params.extend([query.limit, query.offset])
        return self._executor.query(User, "\n".join(lines), params)

    def count_by_department(self, department: str) -> int:
        """部署のアクティブユーザー数を返す."""
        count = self._executor.query_scalar("users/count_by_department.sql", (department, True))
        return int(count or 0)

    # ---- transactions ----

    def transfer_data(self, users: Iterable[User]) -> bool:
        """1件ずつ即時実行し、1トランザクションとしてコミットする."""
        return self._writer.insert_each(users)

    def batch_insert_users(self, users: Iterable[User]) -> int:
        """1回のバッチ実行・1トランザクションで挿入し、成功件数を返す."""
        return self._writer.batch_insert(users)

    # ---- metadata ----

    def get_database_info(self) -> DatabaseInfo:
        """データベース製品・ドライバ・接続のメタデータを返す."""
        dialect = self._require_dialect()
        product, version = self._product_and_version()
        user = ""
        if dialect.current_user_query is not None:
            user = str(self._executor.query_scalar(dialect.current_user_query) or "")
        driver = importlib.import_module(dialect.driver_module)
        return DatabaseInfo(
            product_name=product,
            product_version=version,
            driver_name=f"{dialect.driver_module} (DB-API {driver.apilevel})",
            url=getattr(self._provider, "url", ""),
            user=user,
        )

    def get_table_columns(self, table_name: str) -> list[ColumnInfo]:
        """テーブルのカラム情報を定義順に返す.

        Raises:
            ValueError: テーブル名が識別子として不正な場合

        """
        if not _IDENTIFIER.fullmatch(table_name):
            msg = f"Invalid table name: {table_name!r}"
            raise ValueError(msg)
        dialect = self._require_dialect()
        if dialect is Dialect.SQLITE:
            rows = self._executor.fetch(f"PRAGMA table_info({table_name})")
            return create_mapper(ColumnInfo).map_rows(
                [
                    {"name": r["name"], "type_name": r["type"], "nullable": not r["notnull"]}
                    for r in rows
                ]
            )
        if dialect is Dialect.POSTGRESQL:
            table_name = table_name.lower()
        return self._executor.query(ColumnInfo, "users/table_columns.sql", (table_name,))

    def create_schema(self) -> None:
        """users テーブルが存在しなければ作成する."""
        self._executor.execute("users/schema.sql")

    def _product_and_version(self) -> tuple[str, str]:
        dialect = self._require_dialect()
        version = self._executor.query_scalar(dialect.version_query)
        return dialect.product_name, str(version)

    def _require_dialect(self) -> Dialect:
        dialect = self._executor.dialect
        if dialect is None:
            msg = "Database metadata requires a provider with a known dialect"
            raise ValueError(msg)
        return dialect
