"""DatabaseConfig: 環境変数（および .env）からの接続設定."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

from dotenv import find_dotenv, load_dotenv

from userdao.dialect import Dialect

ENV_PREFIX = "USERDAO_"
DEFAULT_URL = "sqlite:///users.db"
DEFAULT_CONNECT_TIMEOUT = 10


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class DatabaseConfig:
    """接続設定.

    Examples:
        >>> cfg = DatabaseConfig.from_env()
        >>> cfg.dialect
        <Dialect.SQLITE: ('sqlite', '?', 'SQLite')>

    """

    url: str = DEFAULT_URL
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    sql_dir: Path | None = None
    echo_sql: bool = False

    @classmethod
    def from_env(cls, *, dotenv: bool = True) -> DatabaseConfig:
        """環境変数から設定を構築する.

        Args:
            dotenv: True の場合、カレントディレクトリの ``.env`` を先に読み込む
                （既存の環境変数は上書きしない）

        Raises:
            ValueError: 値が不正な場合

        """
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True))
        timeout_raw = os.getenv(f"{ENV_PREFIX}CONNECT_TIMEOUT", str(DEFAULT_CONNECT_TIMEOUT))
        try:
            timeout = int(timeout_raw)
        except ValueError:
            msg = f"{ENV_PREFIX}CONNECT_TIMEOUT must be an integer: {timeout_raw!r}"
            raise ValueError(msg) from None
        sql_dir = os.getenv(f"{ENV_PREFIX}SQL_DIR")
        config = cls(
            url=os.getenv(f"{ENV_PREFIX}DATABASE_URL", DEFAULT_URL),
            connect_timeout=timeout,
            sql_dir=Path(sql_dir) if sql_dir else None,
            echo_sql=_get_bool(os.getenv(f"{ENV_PREFIX}ECHO_SQL")),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """設定値を検証する."""
        _ = self.dialect
        if self.connect_timeout <= 0:
            msg = f"connect_timeout must be positive: {self.connect_timeout}"
            raise ValueError(msg)

    @property
    def dialect(self) -> Dialect:
        return Dialect.from_scheme(urlparse(self.url).scheme)

    @property
    def sqlite_path(self) -> str:
        """SQLite のデータベースパス（``sqlite:///a.db`` → ``a.db``、``sqlite:////tmp/a.db`` → ``/tmp/a.db``）."""
        if self.dialect is not Dialect.SQLITE:
            msg = f"Not a SQLite URL: {self.safe_url}"
            raise ValueError(msg)
        path = self.url.split(":///", 1)[1] if ":///" in self.url else ""
        return unquote(path) or ":memory:"

    def connect_params(self) -> dict[str, object]:
        """サーバー型 RDBMS の接続パラメータ（MySQL 用の分解済み形式）."""
        parsed = urlparse(self.url)
        return {
            "host": parsed.hostname or "localhost",
            "port": parsed.port or (3306 if self.dialect is Dialect.MYSQL else 5432),
            "user": unquote(parsed.username or ""),
            "password": unquote(parsed.password or ""),
            "database": (parsed.path or "/").lstrip("/"),
        }

    @property
    def conninfo(self) -> str:
        """psycopg に渡す接続文字列（ドライバ指定 ``+psycopg`` を除去）."""
        parsed = urlparse(self.url)
        return parsed._replace(scheme="postgresql").geturl()

    @property
    def safe_url(self) -> str:
        """パスワードを伏せた URL（ログ・メタデータ表示用）."""
        return mask_password(self.url)


def mask_password(url: str) -> str:
    """URL 中のパスワードを ``***`` に置き換える."""
    parsed = urlparse(url)
    if not parsed.password:
        return url
    netloc = parsed.netloc.replace(f":{parsed.password}@", ":***@", 1)
    return parsed._replace(netloc=netloc).geturl()
