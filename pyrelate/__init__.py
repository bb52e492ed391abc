"""
Pyrelate - 关系型记录 ORM

基于 sqlite3 的记录/关系/查询核心：
- 声明式记录类，修改跟踪与校验
- 一对一、一对多、经由连接表的多对多关系
- 参数化 SQL 编译，软删除过滤，关系连接
- 在一个事务中按依赖顺序保存关系图
- 按记录类配置的权限模型
"""

from .auth import (
    AdminsOnly,
    Everyone,
    PermissionAction,
    PermissionsModel,
    ReadOnly,
    StaticUser,
    UserInterface,
    ViaRelation,
)
from .common.exceptions import (
    ColumnNotFoundError,
    ConfigurationError,
    DeleteRestrictError,
    ForbiddenError,
    InvalidIdentifierError,
    PyrelateException,
    QueryError,
    RelationNotFoundError,
    SchemaError,
    StorageError,
    TransactionError,
    UnknownPropertyError,
    UnsupportedOperationError,
    ValidationError,
)
from .common.options import RegistryOptions, SqliteConnectorOptions
from .core import (
    CacheInterface,
    Column,
    Connection,
    DeleteAction,
    EmailValidator,
    ErrorCode,
    MemoryCache,
    NoneCache,
    Record,
    RegexValidator,
    Relation,
    RelationStore,
    SaveAction,
    SchemaRegistry,
    Store,
    Table,
    ValidationErrorInfo,
    Validator,
    declarative_base,
)
from .query import CompiledQuery, Criteria, Expression, FetchMode, Query, QueryBuilder

__version__ = '0.1.0'

__all__ = [
    # Schema
    'Connection',
    'SchemaRegistry',
    'declarative_base',
    'Record',
    'Column',
    'Table',
    'Relation',
    'DeleteAction',
    # Query
    'Query',
    'Criteria',
    'Expression',
    'FetchMode',
    'QueryBuilder',
    'CompiledQuery',
    'Store',
    'RelationStore',
    'SaveAction',
    # Cache
    'CacheInterface',
    'NoneCache',
    'MemoryCache',
    # Validation
    'Validator',
    'RegexValidator',
    'EmailValidator',
    'ErrorCode',
    'ValidationErrorInfo',
    # Permissions
    'PermissionAction',
    'PermissionsModel',
    'AdminsOnly',
    'Everyone',
    'ReadOnly',
    'ViaRelation',
    'UserInterface',
    'StaticUser',
    # Options
    'RegistryOptions',
    'SqliteConnectorOptions',
    # Exceptions
    'PyrelateException',
    'ForbiddenError',
    'DeleteRestrictError',
    'QueryError',
    'InvalidIdentifierError',
    'UnknownPropertyError',
    'RelationNotFoundError',
    'ColumnNotFoundError',
    'SchemaError',
    'ConfigurationError',
    'StorageError',
    'TransactionError',
    'ValidationError',
    'UnsupportedOperationError',
]
