"""PydanticMapper: Pydantic BaseModel 用のマッパー."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from userdao.exceptions import MappingError

if TYPE_CHECKING:
    from userdao.mapper.factory import Row


class PydanticMapper:
    """Pydantic BaseModel 用のマッパー. 型変換と検証は model_validate に委ねる."""

    def __init__(self, model_cls: type) -> None:
        if not hasattr(model_cls, "model_validate"):
            msg = f"{model_cls} is not a Pydantic BaseModel"
            raise TypeError(msg)
        self.model_cls = model_cls

    def map_row(self, row: Row) -> Any:
        try:
            return self.model_cls.model_validate(row)
        except ValidationError as exc:
            msg = f"Cannot map row to {self.model_cls.__name__}: {exc}"
            raise MappingError(msg) from exc

    def map_rows(self, rows: Iterable[Row]) -> list[Any]:
        return [self.map_row(row) for row in rows]
