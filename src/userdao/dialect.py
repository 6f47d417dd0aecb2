"""Dialect enum: RDBMS ごとの差異（プレースホルダ・auto-commit 制御・エラー分類）."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

# sqlite3 拡張エラーコード
_SQLITE_CONSTRAINT_PRIMARYKEY = 1555
_SQLITE_CONSTRAINT_UNIQUE = 2067
# SQLSTATE: unique_violation
_SQLSTATE_UNIQUE_VIOLATION = "23505"
# MySQL: ER_DUP_ENTRY
_MYSQL_DUP_ENTRY = 1062


class Dialect(Enum):
    """RDBMS ごとの SQL 方言.

    POSTGRESQL と MYSQL は同じプレースホルダ ``%s`` を使用するが、
    auto-commit の制御方法が異なるため別メンバーとして定義する。
    """

    SQLITE = ("sqlite", "?", "SQLite")
    POSTGRESQL = ("postgresql", "%s", "PostgreSQL")
    MYSQL = ("mysql", "%s", "MySQL")

    def __init__(self, dialect_id: str, placeholder_fmt: str, product_name: str) -> None:
        self._dialect_id = dialect_id
        self._placeholder_fmt = placeholder_fmt
        self._product_name = product_name

    @classmethod
    def detect(cls, connection: Any) -> Dialect | None:
        """Connection オブジェクトのモジュール名から Dialect を判定する."""
        module = type(connection).__module__
        if "sqlite3" in module:
            return cls.SQLITE
        if "psycopg" in module:
            return cls.POSTGRESQL
        if "pymysql" in module:
            return cls.MYSQL
        return None

    @classmethod
    def from_scheme(cls, scheme: str) -> Dialect:
        """URL スキーム（``postgresql+psycopg`` 等のドライバ指定付きも可）から判定する."""
        base = scheme.split("+", 1)[0].lower()
        if base == "postgres":
            base = "postgresql"
        for dialect in cls:
            if dialect._dialect_id == base:
                return dialect
        msg = f"Unsupported database scheme: {scheme!r}"
        raise ValueError(msg)

    @property
    def dialect_id(self) -> str:
        """方言 ID（SQL ファイルのサフィックスに使用）."""
        return self._dialect_id

    @property
    def placeholder(self) -> str:
        """プレースホルダ文字列を返す."""
        return self._placeholder_fmt

    @property
    def product_name(self) -> str:
        return self._product_name

    @property
    def version_query(self) -> str:
        """サーバーバージョンを取得する SQL."""
        match self:
            case Dialect.SQLITE:
                return "SELECT sqlite_version()"
            case Dialect.POSTGRESQL:
                return "SHOW server_version"
            case _:
                return "SELECT VERSION()"

    @property
    def current_user_query(self) -> str | None:
        """接続ユーザーを取得する SQL（SQLite にはユーザーの概念がないため None）."""
        match self:
            case Dialect.SQLITE:
                return None
            case Dialect.POSTGRESQL:
                return "SELECT current_user"
            case _:
                return "SELECT CURRENT_USER()"

    @property
    def driver_module(self) -> str:
        """PEP 249 ドライバのモジュール名."""
        match self:
            case Dialect.SQLITE:
                return "sqlite3"
            case Dialect.POSTGRESQL:
                return "psycopg"
            case _:
                return "pymysql"

    @property
    def like_escape_char(self) -> str:
        """LIKE 句で使用するエスケープ文字."""
        return "#"

    @property
    def like_escape_chars(self) -> frozenset[str]:
        """LIKE 句でエスケープが必要な特殊文字を返す."""
        return frozenset({"#", "%", "_"})

    def set_autocommit(self, connection: Any, enabled: bool) -> None:
        """Connection の auto-commit モードを切り替える.

        sqlite3 は ``isolation_level`` が ``None`` のとき auto-commit となる。
        ``None`` への変更時、未確定のトランザクションは sqlite3 によってコミットされる。
        """
        match self:
            case Dialect.SQLITE:
                connection.isolation_level = None if enabled else "DEFERRED"
            case Dialect.MYSQL:
                connection.autocommit(enabled)
            case _:
                connection.autocommit = enabled

    def get_autocommit(self, connection: Any) -> bool:
        """Connection が auto-commit モードか判定する."""
        match self:
            case Dialect.SQLITE:
                return connection.isolation_level is None
            case Dialect.MYSQL:
                return bool(connection.get_autocommit())
            case _:
                return bool(connection.autocommit)

    def bind_value(self, value: Any) -> Any:
        """バインド値をドライバが受け付ける型に変換する.

        sqlite3 の datetime アダプタは 3.12 で非推奨となったため、
        SQLite には ISO 8601 文字列で渡す。
        """
        if self is Dialect.SQLITE and isinstance(value, datetime):
            return value.isoformat(sep=" ")
        return value


def set_autocommit(connection: Any, enabled: bool, dialect: Dialect | None) -> None:
    """Dialect 不明の接続にも対応する auto-commit 切り替え.

    ``autocommit`` が呼び出し可能ならメソッドとして、そうでなければ属性として扱う。
    """
    if dialect is not None:
        dialect.set_autocommit(connection, enabled)
        return
    toggle = getattr(connection, "autocommit", None)
    if callable(toggle):
        toggle(enabled)
    else:
        connection.autocommit = enabled


def is_unique_violation(exc: BaseException) -> bool:
    """一意制約違反か判定する.

    エラーメッセージの文字列ではなく、ドライバが公開する構造化コードで分類する:

    - PostgreSQL: SQLSTATE ``23505``（psycopg の ``sqlstate`` / psycopg2 の ``pgcode``）
    - SQLite: 拡張エラーコード ``SQLITE_CONSTRAINT_UNIQUE`` / ``SQLITE_CONSTRAINT_PRIMARYKEY``
    - MySQL: エラー番号 ``1062``（``ER_DUP_ENTRY``）
    """
    sqlstate = getattr(exc, "sqlstate", None) or getattr(exc, "pgcode", None)
    if sqlstate == _SQLSTATE_UNIQUE_VIOLATION:
        return True
    if getattr(exc, "sqlite_errorcode", None) in (
        _SQLITE_CONSTRAINT_UNIQUE,
        _SQLITE_CONSTRAINT_PRIMARYKEY,
    ):
        return True
    return (
        type(exc).__module__.startswith("pymysql")
        and bool(exc.args)
        and exc.args[0] == _MYSQL_DUP_ENTRY
    )
