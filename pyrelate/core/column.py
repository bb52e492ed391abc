"""
Pyrelate 列与表元数据

Column 既是表结构描述，也是记录类上的类型化字段访问器：

    class Contact(Base):
        __tablename__ = 'contacts'
        id = Column(int, primary_key=True, auto_increment=True)
        name = Column(str, length=190, required=True)
"""

from typing import Any, Dict, List, Optional, Type, TYPE_CHECKING

from ..common.exceptions import ColumnNotFoundError, SchemaError
from .types import COLUMN_TYPES, TypeRegistry, UNSET_CHECKED_DB_TYPES

if TYPE_CHECKING:
    from .record import Record


class Column:
    """列定义"""

    def __init__(self,
                 col_type: Type,
                 *,
                 length: Optional[int] = None,
                 required: bool = False,
                 default: Any = None,
                 primary_key: bool = False,
                 auto_increment: bool = False,
                 unique: Optional[str] = None,
                 db_type: Optional[str] = None,
                 comment: Optional[str] = None):
        """
        初始化列定义

        Args:
            col_type: Python 类型（int, str, float, bool, bytes, datetime, date, list, dict）
            length: 最大长度（仅对字符串生效）
            required: 是否必填
            default: 默认值，可为无参可调用对象
            primary_key: 是否为主键
            auto_increment: 是否自增
            unique: 唯一约束组名
            db_type: 显式指定数据库类型名
            comment: 备注
        """
        if col_type not in COLUMN_TYPES:
            raise SchemaError(f"Unsupported column type: {col_type}")
        self.col_type = col_type
        self.name: str = ''
        self.length = length
        self.required = required
        self.default = default
        self.primary_key = primary_key
        self.auto_increment = auto_increment
        self.unique = unique
        self.comment = comment
        if db_type is None:
            db_type = 'varchar' if col_type is str and length else TypeRegistry.db_type_name(col_type)
        self.db_type = db_type

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Optional['Record'], owner: type) -> Any:
        if instance is None:
            return self
        return instance._values.get(self.name)

    def __set__(self, instance: 'Record', value: Any) -> None:
        instance._values[self.name] = value

    def get_default(self) -> Any:
        """获取默认值"""
        if callable(self.default):
            return self.default()
        return self.default

    def normalize_input(self, value: Any) -> Any:
        """客户端输入 -> 记录值"""
        return TypeRegistry.normalize_input(value, self.col_type)

    def to_db(self, value: Any) -> Any:
        """记录值 -> 数据库值"""
        return TypeRegistry.to_db(value, self.col_type)

    def from_db(self, value: Any) -> Any:
        """数据库值 -> 记录值"""
        return TypeRegistry.from_db(value, self.col_type)

    def violates_required(self, value: Any) -> bool:
        """
        检查值是否违反必填约束

        数值、日期和二进制类型只判断是否设置，其余类型判断是否为空。
        """
        if self.db_type in UNSET_CHECKED_DB_TYPES:
            return value is None
        return value is None or value == '' or value == [] or value == {}

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            'name': self.name,
            'type': self.col_type.__name__,
            'db_type': self.db_type,
            'length': self.length,
            'required': self.required,
            'default': None if callable(self.default) else self.default,
            'primary_key': self.primary_key,
            'auto_increment': self.auto_increment,
            'unique': self.unique,
            'comment': self.comment,
        }

    def __repr__(self) -> str:
        return f"Column(name='{self.name}', type={self.col_type.__name__}, pk={self.primary_key})"


class Table:
    """表元数据"""

    def __init__(self, name: str, columns: Dict[str, Column]):
        self.name = name
        self.columns: Dict[str, Column] = dict(columns)
        self.primary_key: List[str] = [c.name for c in self.columns.values() if c.primary_key]
        if not self.primary_key:
            raise SchemaError(f"Table '{name}' has no primary key")

        auto = [c.name for c in self.columns.values() if c.auto_increment]
        self.auto_increment_column: Optional[str] = auto[0] if auto else None

    def has_column(self, name: str) -> bool:
        return name in self.columns

    def get_column(self, name: str) -> Column:
        """
        获取列定义

        Raises:
            ColumnNotFoundError: 列不存在
        """
        try:
            return self.columns[name]
        except KeyError:
            raise ColumnNotFoundError(self.name, name) from None

    def get_column_names(self) -> List[str]:
        return list(self.columns)

    def __repr__(self) -> str:
        return f"Table(name='{self.name}', columns={list(self.columns)})"
