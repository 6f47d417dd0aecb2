"""ユーザーエンティティ、リクエストモデル、メタデータモデル."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


@dataclass
class User:
    """users テーブルの1行.

    ``id`` は永続化されるまで ``None``。``active`` / ``created_at`` が未設定の場合、
    書き込み時にそれぞれ ``True`` / 送信時刻が補われる。
    """

    id: int | None = None
    name: str = ""
    email: str = ""
    department: str | None = None
    role: str | None = None
    active: bool | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def _check_email(value: str) -> str:
    local, sep, domain = value.partition("@")
    if not sep or not local or not domain or "@" in domain:
        msg = f"invalid email address: {value!r}"
        raise ValueError(msg)
    return value


class UserCreate(BaseModel):
    """ユーザー作成リクエスト."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    department: str = Field(min_length=1, max_length=100)
    role: str = Field(min_length=1, max_length=50)

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        return _check_email(value)


class UserUpdate(BaseModel):
    """ユーザー更新リクエスト. 指定されたフィールドのみ反映する."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(default=None, min_length=1, max_length=100)
    email: str | None = Field(default=None, min_length=3, max_length=255)
    department: str | None = Field(default=None, min_length=1, max_length=100)
    role: str | None = Field(default=None, min_length=1, max_length=50)
    active: bool | None = None

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str | None) -> str | None:
        return _check_email(value) if value is not None else None

    def apply_to(self, user: User) -> User:
        """指定フィールドを反映した User のコピーを返す（引数は変更しない）."""
        changes = self.model_dump(exclude_none=True)
        return replace(user, **changes)


class UserQuery(BaseModel):
    """search_users の検索条件. None の条件は WHERE 句から除外される."""

    department: str | None = None
    role: str | None = None
    active: bool | None = None
    name_contains: str | None = None
    limit: int = Field(default=10, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class ColumnInfo(BaseModel):
    """テーブルカラムのメタデータ."""

    name: str
    type_name: str
    nullable: bool

    @field_validator("nullable", mode="before")
    @classmethod
    def _parse_nullable(cls, value: Any) -> Any:
        # information_schema は 'YES' / 'NO' を返す
        if isinstance(value, str):
            return value.strip().upper() in {"YES", "Y", "TRUE", "1"}
        return value


@dataclass(frozen=True)
class DatabaseInfo:
    """データベース製品・接続のメタデータ."""

    product_name: str
    product_version: str
    driver_name: str
    url: str
    user: str
    supports_batch: bool = True
    supports_transactions: bool = True

    def describe(self) -> str:
        """人が読むための複数行サマリ."""

        def yes_no(flag: bool) -> str:
            return "YES" if flag else "NO"

        return "\n".join(
            [
                f"Database: {self.product_name} {self.product_version}",
                f"Driver: {self.driver_name}",
                f"URL: {self.url}",
                f"User: {self.user}",
                f"Supports batch: {yes_no(self.supports_batch)}",
                f"Supports transactions: {yes_no(self.supports_transactions)}",
            ]
        )
