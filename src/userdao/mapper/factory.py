"""RowMapper プロトコルと create_mapper ファクトリ関数."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import is_dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")

# fetch_dicts が返す1行（カラム名 → 値）
Row = Mapping[str, Any]


@runtime_checkable
class RowMapper(Protocol[T]):
    """取得した行をエンティティに変換する."""

    def map_row(self, row: Row) -> T: ...

    def map_rows(self, rows: Iterable[Row]) -> list[T]: ...


def create_mapper(entity_cls: type, *, mapper: RowMapper[Any] | None = None) -> RowMapper[Any]:
    """エンティティクラスに合うマッパーを返す.

    Args:
        entity_cls: エンティティクラス（dataclass または Pydantic BaseModel）
        mapper: 明示的に使用するマッパー. 指定時は判定せずにそのまま返す

    Raises:
        TypeError: マッパーを自動判定できない場合

    """
    if mapper is not None:
        return mapper

    if is_dataclass(entity_cls):
        from userdao.mapper.dataclass import DataclassMapper

        return DataclassMapper(entity_cls)

    if hasattr(entity_cls, "model_validate"):
        from userdao.mapper.pydantic import PydanticMapper

        return PydanticMapper(entity_cls)

    msg = f"Cannot create mapper for {entity_cls}. Use a dataclass or a Pydantic model."
    raise TypeError(msg)
