"""
Pyrelate 异常定义
"""

from typing import Any


class PyrelateException(Exception):
    """Pyrelate 基础异常类"""


class ForbiddenError(PyrelateException):
    """权限不足异常"""
    def __init__(self, action: str, target: Any):
        self.action = action
        self.target = target
        name = target.__name__ if isinstance(target, type) else type(target).__name__
        super().__init__(f"Permission '{action}' denied on '{name}'")


class DeleteRestrictError(PyrelateException):
    """删除受限异常（RESTRICT 关系仍有关联记录）"""
    def __init__(self, record: Any, relation: Any):
        self.record = record
        self.relation = relation
        super().__init__(
            f"Can't delete '{type(record).__name__}' because it has related "
            f"'{relation.name}' records"
        )


class QueryError(PyrelateException):
    """查询构建/编译异常"""


class InvalidIdentifierError(QueryError):
    """非法的表名或列名"""
    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Invalid identifier '{identifier}'")


class UnknownPropertyError(PyrelateException):
    """未知的属性或关系名"""
    def __init__(self, record_type: type, name: str):
        self.record_type = record_type
        self.name = name
        super().__init__(f"'{record_type.__name__}' has no column, property or relation '{name}'")


class RelationNotFoundError(PyrelateException):
    """关系不存在异常"""
    def __init__(self, record_type: type, name: str):
        self.record_type = record_type
        self.name = name
        super().__init__(f"Relation '{name}' not found in '{record_type.__name__}'")


class ColumnNotFoundError(PyrelateException):
    """列不存在异常"""
    def __init__(self, table_name: str, column_name: str):
        self.table_name = table_name
        self.column_name = column_name
        super().__init__(f"Column '{column_name}' not found in table '{table_name}'")


class SchemaError(PyrelateException):
    """记录或关系定义错误"""


class ConfigurationError(PyrelateException):
    """配置错误"""


class StorageError(PyrelateException):
    """数据库执行异常（不可恢复）"""


class TransactionError(PyrelateException):
    """事务异常"""


class ValidationError(PyrelateException):
    """输入数据无法转换为列类型"""


class UnsupportedOperationError(PyrelateException):
    """不支持的操作"""
