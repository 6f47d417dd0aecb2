"""userdao: users テーブル向けのトランザクション対応データアクセス層."""

from userdao.batch import BatchWriter, StatementBatch, count_successes
from userdao.config import DatabaseConfig
from userdao.connection import (
    ConnectionProvider,
    MysqlConnectionProvider,
    PostgresConnectionProvider,
    SqliteConnectionProvider,
    connection_scope,
    create_provider,
)
from userdao.dialect import Dialect
from userdao.escape_utils import escape_like
from userdao.exceptions import (
    ConnectivityError,
    DuplicateEmailError,
    ExecutionError,
    MappingError,
    MismatchWarning,
    RollbackError,
    SqlFileNotFoundError,
    UserDaoError,
    UserNotFoundError,
)
from userdao.executor import SqlExecutor
from userdao.loader import SqlLoader
from userdao.mapper import DataclassMapper, PydanticMapper, RowMapper, create_mapper
from userdao.models import ColumnInfo, DatabaseInfo, User, UserCreate, UserQuery, UserUpdate
from userdao.service import UserService
from userdao.transaction import transaction

__all__ = [
    "BatchWriter",
    "ColumnInfo",
    "ConnectionProvider",
    "ConnectivityError",
    "DataclassMapper",
    "DatabaseConfig",
    "DatabaseInfo",
    "Dialect",
    "DuplicateEmailError",
    "ExecutionError",
    "MappingError",
    "MismatchWarning",
    "MysqlConnectionProvider",
    "PostgresConnectionProvider",
    "PydanticMapper",
    "RollbackError",
    "RowMapper",
    "SqlExecutor",
    "SqlFileNotFoundError",
    "SqlLoader",
    "SqliteConnectionProvider",
    "StatementBatch",
    "User",
    "UserCreate",
    "UserDaoError",
    "UserNotFoundError",
    "UserQuery",
    "UserService",
    "UserUpdate",
    "connection_scope",
    "count_successes",
    "create_mapper",
    "create_provider",
    "escape_like",
    "transaction",
]
