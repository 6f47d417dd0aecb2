"""DataclassMapper: dataclass 用の自動マッパー（型注釈に基づく値変換付き）."""

from __future__ import annotations

import types
from collections.abc import Callable, Iterable
from dataclasses import fields, is_dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, Union, get_args, get_origin, get_type_hints

from userdao.exceptions import MappingError

if TYPE_CHECKING:
    from userdao.mapper.factory import Row


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str) and value.strip().lower() in {"1", "true", "t", "yes"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"0", "false", "f", "no"}:
        return False
    msg = f"Cannot convert {value!r} to bool"
    raise ValueError(msg)


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    msg = f"Cannot convert {value!r} to datetime"
    raise ValueError(msg)


_CONVERTERS: dict[type, Callable[[Any], Any]] = {
    bool: _to_bool,
    datetime: _to_datetime,
    int: int,
}


def _unwrap_optional(hint: Any) -> Any:
    """``X | None`` / ``Optional[X]`` から X を取り出す."""
    if get_origin(hint) in (Union, types.UnionType):
        args = [arg for arg in get_args(hint) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


class DataclassMapper:
    """Dataclass 用の自動マッパー.

    カラム名はフィールド名と大文字小文字を区別せずに照合する。
    フィールドの型注釈が ``bool`` / ``datetime`` / ``int`` の場合、
    ドライバが返す値（SQLite の 0/1 や ISO 8601 文字列など）を変換する。
    """

    _converter_cache: ClassVar[dict[type, dict[str, Callable[[Any], Any] | None]]] = {}

    def __init__(self, entity_cls: type) -> None:
        if not is_dataclass(entity_cls):
            msg = f"{entity_cls} is not a dataclass"
            raise TypeError(msg)
        self.entity_cls = entity_cls
        self._converters = self._get_converters(entity_cls)

    @classmethod
    def _get_converters(cls, entity_cls: type) -> dict[str, Callable[[Any], Any] | None]:
        """フィールド名→変換関数（キャッシュ付き）."""
        if entity_cls not in cls._converter_cache:
            hints = get_type_hints(entity_cls)
            cls._converter_cache[entity_cls] = {
                f.name: _CONVERTERS.get(_unwrap_optional(hints.get(f.name)))
                for f in fields(entity_cls)
            }
        return cls._converter_cache[entity_cls]

    def map_row(self, row: Row) -> Any:
        """1行をエンティティに変換."""
        row_lower = {str(k).lower(): v for k, v in row.items()}
        kwargs: dict[str, Any] = {}
        for field_name, convert in self._converters.items():
            if field_name in row:
                value = row[field_name]
            elif field_name.lower() in row_lower:
                value = row_lower[field_name.lower()]
            else:
                continue
            if value is not None and convert is not None:
                try:
                    value = convert(value)
                except (TypeError, ValueError) as exc:
                    msg = f"Cannot map column {field_name!r} of {self.entity_cls.__name__}: {exc}"
                    raise MappingError(msg) from exc
            kwargs[field_name] = value
        return self.entity_cls(**kwargs)

    def map_rows(self, rows: Iterable[Row]) -> list[Any]:
        """複数行をエンティティのリストに変換."""
        return [self.map_row(row) for row in rows]
