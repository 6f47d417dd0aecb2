"""userdao マッパーパッケージ."""

from userdao.mapper.dataclass import DataclassMapper
from userdao.mapper.factory import RowMapper, create_mapper
from userdao.mapper.pydantic import PydanticMapper

__all__ = ["DataclassMapper", "PydanticMapper", "RowMapper", "create_mapper"]
