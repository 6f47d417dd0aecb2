"""userdao 例外クラス."""

from __future__ import annotations

import sys


class UserDaoError(Exception):
    """userdao の基底例外."""


class ConnectivityError(UserDaoError):
    """接続の取得、またはトランザクション開始に失敗した."""


class ExecutionError(UserDaoError):
    """ストアが文・バッチ・コミットを拒否した."""


class DuplicateEmailError(ExecutionError):
    """email の一意制約違反."""

    def __init__(self, msg: str, email: str | None = None) -> None:
        super().__init__(msg)
        self.email = email


class RollbackError(UserDaoError):
    """ExecutionError 後のロールバック自体が失敗した.

    トランザクションが未解決の状態であるため、元の例外に代わって送出される。
    元の例外は ``original``、ロールバックの失敗は ``__cause__`` に保持される。
    """

    def __init__(self, msg: str, original: BaseException | None = None) -> None:
        super().__init__(msg)
        self.original = original


class UserNotFoundError(UserDaoError):
    """更新・削除対象のユーザーが存在しない."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User not found: id={user_id}")
        self.user_id = user_id


class MappingError(UserDaoError):
    """マッピングエラー."""


class SqlFileNotFoundError(UserDaoError):
    """SQLファイルが見つからない."""


class MismatchWarning(UserWarning):
    """バッチの成功件数が投入件数と一致しない（コミットは行われる）."""


# 対応する PEP 249 ドライバ（Dialect.driver_module と一致させる）
DRIVER_MODULES = ("sqlite3", "psycopg", "pymysql")


def driver_error_classes() -> tuple[type[BaseException], ...]:
    """読み込み済みドライバの ``Error`` 基底クラスを返す.

    未インストールのドライバは import しない。ドライバの例外が発生している時点で
    そのモジュールは読み込み済みとなる。
    """
    classes: list[type[BaseException]] = []
    for name in DRIVER_MODULES:
        error = getattr(sys.modules.get(name), "Error", None)
        if isinstance(error, type) and issubclass(error, BaseException):
            classes.append(error)
    return tuple(classes)


def is_driver_error(exc: BaseException) -> bool:
    """対応ドライバ（sqlite3 / psycopg / PyMySQL）由来の例外か判定する.

    DB-API 2.0 の ``Error`` 基底クラスで判定する。同名の ``Error`` を持つ
    無関係なライブラリの例外（``binascii.Error`` 等）は含まない。
    """
    return isinstance(exc, driver_error_classes())
