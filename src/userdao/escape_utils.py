"""LIKE 検索用エスケープ."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from userdao.dialect import Dialect


def escape_like(value: str, dialect: Dialect) -> str:
    """LIKE 句で使用する値のワイルドカード（``%``, ``_``）とエスケープ文字自体をエスケープする.

    エスケープした値を使う SQL には ``ESCAPE '#'`` 句が必要::

        SELECT * FROM users WHERE name LIKE ? ESCAPE '#'

    Examples:
        >>> escape_like("100%_done", Dialect.SQLITE)
        '100#%#_done'

    """
    esc = dialect.like_escape_char
    special = dialect.like_escape_chars
    return "".join(f"{esc}{ch}" if ch in special else ch for ch in value)


def contains_pattern(value: str, dialect: Dialect) -> str:
    """部分一致用の LIKE パターンを組み立てる."""
    return f"%{escape_like(value, dialect)}%"
