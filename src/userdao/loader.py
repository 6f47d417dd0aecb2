"""SqlLoader: SQL ファイルの読み込み."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from userdao.exceptions import SqlFileNotFoundError

if TYPE_CHECKING:
    from userdao.dialect import Dialect

BUNDLED_SQL_DIR = Path(__file__).parent / "sql"


class SqlLoader:
    """SQL ファイルの読み込み.

    SQL ファイルは ``?`` プレースホルダで記述し、読み込み時に方言の
    プレースホルダへ置き換える。文字列リテラル内に ``?`` を書いてはならない。
    """

    def __init__(self, base_path: str | Path | None = None) -> None:
        self.base_path = Path(base_path) if base_path is not None else BUNDLED_SQL_DIR
        self._cache: dict[tuple[str, Dialect | None], str] = {}

    def load(self, path: str, *, dialect: Dialect | None = None) -> str:
        """SQL ファイルを読み込む.

        dialect が指定された場合、まず RDBMS 固有ファイル（例: ``schema.sql-postgresql``）を
        探し、存在しなければ汎用ファイル（例: ``schema.sql``）にフォールバックする。

        Args:
            path: base_path からの相対パス
            dialect: RDBMS 方言。指定時は方言固有ファイルを優先し、プレースホルダを変換する

        Returns:
            SQL 文字列

        Raises:
            SqlFileNotFoundError: ファイルが存在しない、または base_path の外を指す場合

        """
        key = (path, dialect)
        if key not in self._cache:
            sql = self._read(path, dialect)
            if dialect is not None and dialect.placeholder != "?":
                sql = sql.replace("?", dialect.placeholder)
            self._cache[key] = sql
        return self._cache[key]

    def _read(self, path: str, dialect: Dialect | None) -> str:
        root = self.base_path.resolve()
        candidates = [f"{path}-{dialect.dialect_id}"] if dialect is not None else []
        candidates.append(path)
        for candidate in candidates:
            file_path = (root / candidate).resolve()
            if _is_sql_file_under(root, file_path):
                return file_path.read_text(encoding="utf-8")
        msg = f"SQL file not found: {root / path}"
        raise SqlFileNotFoundError(msg)


def _is_sql_file_under(root: Path, file_path: Path) -> bool:
    # base_path の外（../ 等）は存在しても読まない
    return root in file_path.parents and file_path.is_file()
