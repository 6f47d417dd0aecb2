"""transaction: 1接続・1トランザクションの作業単位."""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from userdao.connection import acquire_connection, release_connection
from userdao.dialect import Dialect, set_autocommit
from userdao.exceptions import (
    ConnectivityError,
    ExecutionError,
    RollbackError,
    UserDaoError,
    is_driver_error,
)

if TYPE_CHECKING:
    from userdao.connection import ConnectionProvider

logger = logging.getLogger(__name__)


@contextmanager
def transaction(
    provider: ConnectionProvider,
    *,
    label: str = "Transaction",
) -> Generator[Any, None, None]:
    """auto-commit を無効化した接続を yield し、結果に応じてコミット/ロールバックする.

    - 正常終了: commit（commit の失敗は実行エラーとして扱う）
    - 例外発生: rollback 後に再送出。ドライバの例外は ExecutionError に包む。
      rollback 自体が失敗した場合は RollbackError が元の例外に代わって送出される。
    - どの経路でも: auto-commit を復元し、接続を解放する。
      この段階の失敗は結果を上書きしないよう、ログに記録するのみ。

    Args:
        provider: 接続の取得元
        label: エラーメッセージ・ログに使う操作名

    Raises:
        ConnectivityError: 接続の取得、または auto-commit の無効化に失敗した場合
        ExecutionError: 作業単位またはコミットがストアに拒否された場合
        RollbackError: ロールバックに失敗した場合

    Examples:
        >>> with transaction(provider, label="Batch insert") as conn:
        ...     cursor = conn.cursor()
        ...     cursor.execute("INSERT ...", params)

    """
    connection = acquire_connection(provider)
    dialect = provider.dialect or Dialect.detect(connection)
    try:
        try:
            set_autocommit(connection, False, dialect)
        except Exception as exc:
            if not is_driver_error(exc):
                raise
            msg = f"{label} could not start a transaction: {exc}"
            raise ConnectivityError(msg) from exc

        try:
            yield connection
            connection.commit()
        except BaseException as exc:
            # 未確定の変更を残したまま auto-commit を復元してはならない
            _rollback(connection, label, exc)
            if isinstance(exc, UserDaoError) or not is_driver_error(exc):
                raise
            msg = f"{label} failed, rolled back: {exc}"
            raise ExecutionError(msg) from exc
        logger.debug("%s committed", label)
    finally:
        _restore_autocommit(connection, dialect)
        release_connection(provider, connection)


def _rollback(connection: Any, label: str, cause: BaseException) -> None:
    """ロールバックする. 失敗時は RollbackError を送出する."""
    try:
        connection.rollback()
    except Exception as rollback_exc:
        logger.error("%s: rollback failed after %r", label, cause, exc_info=True)
        msg = f"{label}: rollback failed after error ({cause}): {rollback_exc}"
        raise RollbackError(msg, original=cause) from rollback_exc
    logger.warning("%s rolled back: %s", label, cause)


def _restore_autocommit(connection: Any, dialect: Dialect | None) -> None:
    try:
        set_autocommit(connection, True, dialect)
    except Exception:
        logger.warning("Failed to restore auto-commit mode", exc_info=True)
