"""BatchWriter: 複数ユーザーを1トランザクションで挿入する."""

from __future__ import annotations

import logging
import warnings
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from userdao.dialect import Dialect
from userdao.exceptions import MismatchWarning
from userdao.executor import wrap_driver_error
from userdao.loader import SqlLoader
from userdao.transaction import transaction

if TYPE_CHECKING:
    from userdao.connection import ConnectionProvider
    from userdao.models import User

logger = logging.getLogger(__name__)

INSERT_SQL = "users/insert.sql"

# 文単位の結果コード（件数不明の成功 / 失敗）
SUCCESS_NO_INFO = -2
EXECUTE_FAILED = -3


def result_codes(rowcount: int | None, size: int) -> list[int]:
    """executemany の集計 rowcount を文ごとの結果コードに展開する.

    DB-API は文ごとの件数を返さないため、集計値から次のように割り当てる:

    - 件数不明（``-1`` / ``None``）: 全文 ``SUCCESS_NO_INFO``
    - バッチ件数以上: 全文 ``1``
    - それ未満の ``k``: 先頭 ``k`` 文が ``1``、残りが ``EXECUTE_FAILED``
      （どの文が失敗したかは特定できない）
    """
    if rowcount is None or rowcount < 0:
        return [SUCCESS_NO_INFO] * size
    succeeded = min(rowcount, size)
    return [1] * succeeded + [EXECUTE_FAILED] * (size - succeeded)


def count_successes(codes: Iterable[int]) -> int:
    """非負の件数、または SUCCESS_NO_INFO の文を成功として数える."""
    return sum(1 for code in codes if code >= 0 or code == SUCCESS_NO_INFO)


class StatementBatch:
    """パラメータ化された1つの文に対するバッチ.

    ``add()`` でパラメータを積み、``execute()`` で1回の executemany として送信する。
    """

    def __init__(self, cursor: Any, sql: str) -> None:
        self._cursor = cursor
        self._sql = sql
        self._params: list[tuple[Any, ...]] = []

    def __len__(self) -> int:
        return len(self._params)

    def add(self, params: Sequence[Any]) -> None:
        self._params.append(tuple(params))

    def execute(self) -> list[int]:
        """積まれた文をまとめて実行し、文ごとの結果コードを返す. 空のバッチは送信しない."""
        if not self._params:
            return []
        self._cursor.executemany(self._sql, self._params)
        return result_codes(self._cursor.rowcount, len(self._params))


class BatchWriter:
    """複数ユーザーを原子的に挿入する.

    すべてのレコードが永続化されるか、1件も永続化されないかのどちらかとなる。
    呼び出し元の User オブジェクトは変更せず、生成された ID も取得しない。

    Examples:
        >>> writer = BatchWriter(SqliteConnectionProvider("users.db"))
        >>> writer.batch_insert([User(name="Alice", email="alice@example.com")])
        1

    """

    def __init__(
        self,
        provider: ConnectionProvider,
        *,
        clock: Callable[[], datetime] = datetime.now,
        loader: SqlLoader | None = None,
    ) -> None:
        self._provider = provider
        self._clock = clock
        self._loader = loader if loader is not None else SqlLoader()

    def bind_user(self, user: User, now: datetime, dialect: Dialect | None = None) -> tuple[Any, ...]:
        """INSERT の7パラメータを固定順で組み立てる.

        name, email, department, role, active（未設定なら True）,
        created_at（未設定なら now）, updated_at（常に now）
        """
        values = (
            user.name,
            user.email,
            user.department,
            user.role,
            True if user.active is None else user.active,
            user.created_at if user.created_at is not None else now,
            now,
        )
        if dialect is None:
            return values
        return tuple(dialect.bind_value(v) for v in values)

    def batch_insert(self, users: Iterable[User]) -> int:
        """ユーザーを1回のバッチ実行で挿入し、成功と報告された件数を返す.

        成功件数が投入件数と一致しない場合でも、例外が発生していなければ
        コミットした上で MismatchWarning を出す。警告フィルタで error に
        昇格されていても送出せず、件数を返す。

        Args:
            users: 挿入するユーザー（この順序で実行される）

        Returns:
            ストアが成功（非負の件数または件数不明の成功）を報告した文の数

        Raises:
            ConnectivityError: 接続を取得できない場合
            DuplicateEmailError: 一意制約違反（ロールバック済み）
            ExecutionError: バッチが拒否された場合（ロールバック済み）
            RollbackError: ロールバック自体が失敗した場合

        """
        records = list(users)
        sql = self._loader.load(INSERT_SQL, dialect=self._provider.dialect)
        logger.debug("Batch insert: %d record(s)", len(records))

        with transaction(self._provider, label="Batch insert") as connection:
            dialect = self._provider.dialect or Dialect.detect(connection)
            cursor = connection.cursor()
            try:
                batch = StatementBatch(cursor, sql)
                for user in records:
                    batch.add(self.bind_user(user, self._clock(), dialect))
                try:
                    codes = batch.execute()
                except Exception as exc:
                    wrapped = wrap_driver_error(exc, "Batch insert")
                    if wrapped is exc:
                        raise
                    raise wrapped from exc
            finally:
                _close_cursor(cursor)

            inserted = count_successes(codes)

        logger.info("Batch insert committed: %d record(s)", inserted)
        if inserted != len(records):
            msg = (
                f"Batch insert reported {inserted} successful insert(s) "
                f"for {len(records)} record(s)"
            )
            logger.warning(msg)
            try:
                warnings.warn(msg, MismatchWarning, stacklevel=2)
            except MismatchWarning:
                # コミット済みのため、警告がエラーに昇格されていても件数を返す
                logger.debug("MismatchWarning escalated by warnings filter; ignored after commit")
        return inserted

    def insert_each(self, users: Iterable[User]) -> bool:
        """ユーザーを1件ずつ即時実行で挿入し、最後に1回だけコミットする.

        いずれかの文が失敗した場合はすべてロールバックする。

        Returns:
            コミットした場合 True

        Raises:
            ConnectivityError: 接続を取得できない場合
            DuplicateEmailError: 一意制約違反（ロールバック済み）
            ExecutionError: 文が拒否された場合（ロールバック済み）
            RollbackError: ロールバック自体が失敗した場合

        """
        records = list(users)
        sql = self._loader.load(INSERT_SQL, dialect=self._provider.dialect)

        with transaction(self._provider, label="Transfer") as connection:
            dialect = self._provider.dialect or Dialect.detect(connection)
            cursor = connection.cursor()
            try:
                for user in records:
                    try:
                        cursor.execute(sql, self.bind_user(user, self._clock(), dialect))
                    except Exception as exc:
                        wrapped = wrap_driver_error(exc, "Transfer", email=user.email)
                        if wrapped is exc:
                            raise
                        raise wrapped from exc
            finally:
                _close_cursor(cursor)

        logger.info("Transfer committed: %d record(s)", len(records))
        return True


def _close_cursor(cursor: Any) -> None:
    try:
        cursor.close()
    except Exception:
        logger.warning("Failed to close cursor", exc_info=True)
