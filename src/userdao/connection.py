"""ConnectionProvider: 操作ごとの接続取得と解放."""

from __future__ import annotations

import logging
import re
import sqlite3
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from userdao.config import mask_password
from userdao.dialect import Dialect
from userdao.exceptions import ConnectivityError, is_driver_error

if TYPE_CHECKING:
    from userdao.config import DatabaseConfig

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


@runtime_checkable
class ConnectionProvider(Protocol):
    """接続の取得・解放インターフェース.

    ``acquire()`` が返す接続は auto-commit モードでなければならない。
    """

    dialect: Dialect | None

    def acquire(self) -> Any:
        """接続を取得する."""
        ...

    def release(self, connection: Any) -> None:
        """接続を解放する."""
        ...


class SqliteConnectionProvider:
    """acquire ごとに新しい sqlite3 接続を開く.

    ``:memory:`` は接続ごとに別の DB になるため、プロバイダ固有の名前付き
    共有キャッシュ DB（``file:userdao-<id>?mode=memory&cache=shared``）に置き換える。
    最後の接続が閉じるとメモリ DB は破棄されるので、プロバイダは ``close()`` まで
    アンカー接続を1本保持する。
    """

    dialect = Dialect.SQLITE

    def __init__(self, database: str = MEMORY_DATABASE, *, timeout: float = 5.0) -> None:
        self.database = database
        self.timeout = timeout
        self._anchor: sqlite3.Connection | None = None
        self._uri = database == MEMORY_DATABASE
        if self._uri:
            self._target = f"file:userdao-{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._anchor = sqlite3.connect(self._target, uri=True, check_same_thread=False)
        else:
            self._target = database

    @property
    def url(self) -> str:
        return f"sqlite:///{self.database}"

    def acquire(self) -> sqlite3.Connection:
        return sqlite3.connect(
            self._target,
            timeout=self.timeout,
            isolation_level=None,
            uri=self._uri,
        )

    def release(self, connection: sqlite3.Connection) -> None:
        connection.close()

    def close(self) -> None:
        """メモリ DB のアンカー接続を閉じる. ファイル DB では何もしない."""
        if self._anchor is not None:
            self._anchor.close()
            self._anchor = None


class PostgresConnectionProvider:
    """psycopg 3 による PostgreSQL 接続."""

    dialect = Dialect.POSTGRESQL

    def __init__(self, conninfo: str, *, connect_timeout: int = 10) -> None:
        self.conninfo = conninfo
        self.connect_timeout = connect_timeout

    @property
    def url(self) -> str:
        """パスワードを伏せた接続文字列."""
        return re.sub(r"password=\S+", "password=***", mask_password(self.conninfo))

    def acquire(self) -> Any:
        import psycopg

        return psycopg.connect(self.conninfo, autocommit=True, connect_timeout=self.connect_timeout)

    def release(self, connection: Any) -> None:
        connection.close()


class MysqlConnectionProvider:
    """PyMySQL による MySQL 接続."""

    dialect = Dialect.MYSQL

    def __init__(
        self,
        *,
        host: str = "localhost",
        port: int = 3306,
        user: str = "",
        password: str = "",
        database: str = "",
        connect_timeout: int = 10,
    ) -> None:
        self.params: dict[str, Any] = {
            "host": host,
            "port": port,
            "user": user,
            "password": password,
            "database": database,
        }
        self.connect_timeout = connect_timeout

    @property
    def url(self) -> str:
        p = self.params
        return f"mysql://{p['user']}@{p['host']}:{p['port']}/{p['database']}"

    def acquire(self) -> Any:
        import pymysql

        return pymysql.connect(**self.params, autocommit=True, connect_timeout=self.connect_timeout)

    def release(self, connection: Any) -> None:
        connection.close()


def create_provider(config: DatabaseConfig) -> ConnectionProvider:
    """設定から ConnectionProvider を生成する."""
    match config.dialect:
        case Dialect.SQLITE:
            return SqliteConnectionProvider(config.sqlite_path, timeout=config.connect_timeout)
        case Dialect.POSTGRESQL:
            return PostgresConnectionProvider(
                config.conninfo, connect_timeout=config.connect_timeout
            )
        case Dialect.MYSQL:
            return MysqlConnectionProvider(
                **config.connect_params(),  # type: ignore[arg-type]
                connect_timeout=config.connect_timeout,
            )


def acquire_connection(provider: ConnectionProvider) -> Any:
    """接続を取得する. ドライバのエラーは ConnectivityError に変換する."""
    try:
        connection = provider.acquire()
    except Exception as exc:
        if not is_driver_error(exc) and not isinstance(exc, OSError):
            raise
        msg = f"Could not acquire a database connection: {exc}"
        raise ConnectivityError(msg) from exc
    logger.debug("Connection acquired: %s", type(connection).__name__)
    return connection


def release_connection(provider: ConnectionProvider, connection: Any) -> None:
    """接続を解放する. 失敗はログに記録し、送出しない."""
    try:
        provider.release(connection)
    except Exception:
        logger.warning("Failed to release connection", exc_info=True)
    else:
        logger.debug("Connection released")


@contextmanager
def connection_scope(provider: ConnectionProvider) -> Generator[Any, None, None]:
    """接続を取得し、どの経路で抜けても解放する.

    Examples:
        >>> with connection_scope(provider) as conn:
        ...     conn.execute("SELECT 1")

    """
    connection = acquire_connection(provider)
    try:
        yield connection
    finally:
        release_connection(provider, connection)
