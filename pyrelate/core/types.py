"""
Pyrelate 类型系统

定义列类型与数据库值之间的转换：
- normalize_input: 客户端输入 -> 记录值（如 ISO 字符串 -> UTC datetime）
- to_db: 记录值 -> 数据库驱动值（如 bool -> 0/1，dict -> JSON 文本）
- from_db: 数据库驱动值 -> 记录值
"""

import base64
import json
from datetime import datetime, date, timezone
from typing import Any, Callable, Dict, FrozenSet, Type

from ..common.exceptions import ValidationError


# 支持的列类型
COLUMN_TYPES = (int, str, float, bool, bytes, datetime, date, list, dict)

# 列类型 -> 数据库类型名
DB_TYPE_NAMES: Dict[type, str] = {
    int: 'int',
    str: 'text',
    float: 'double',
    bool: 'tinyint',
    bytes: 'binary',
    datetime: 'datetime',
    date: 'date',
    list: 'text',
    dict: 'text',
}

# 这些数据库类型的 required 校验以 "未设置" 判定，其余以 "为空" 判定
UNSET_CHECKED_DB_TYPES: FrozenSet[str] = frozenset({
    'int', 'tinyint', 'bigint', 'float', 'double', 'decimal',
    'datetime', 'date', 'binary', 'blob',
})


# ========== 写入数据库 ==========

def _serialize_bool(value: Any) -> int:
    """bool 存为 0/1"""
    return 1 if value else 0


def _serialize_datetime(value: datetime) -> str:
    """序列化 datetime 为 ISO 格式字符串"""
    return value.isoformat()


def _serialize_date(value: date) -> str:
    """序列化 date 为 ISO 格式字符串"""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def _serialize_json(value: Any) -> str:
    """序列化 list/dict 为 JSON 字符串"""
    return json.dumps(value, ensure_ascii=False)


_DB_SERIALIZERS: Dict[type, Callable[[Any], Any]] = {
    bool: _serialize_bool,
    datetime: _serialize_datetime,
    date: _serialize_date,
    list: _serialize_json,
    dict: _serialize_json,
}


# ========== 读取数据库 / 规范化输入 ==========

def _deserialize_datetime(value: Any) -> datetime:
    """反序列化 datetime，带时区的值统一转为 UTC"""
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        result = datetime.fromisoformat(text)
    if result.tzinfo is not None:
        result = result.astimezone(timezone.utc)
    return result


def _deserialize_date(value: Any) -> date:
    """反序列化 date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _deserialize_bytes(value: Any) -> bytes:
    """反序列化 bytes（字符串按 base64 解码）"""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return base64.b64decode(value)


def _deserialize_list(value: Any) -> list:
    """反序列化 list"""
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    return json.loads(value)


def _deserialize_dict(value: Any) -> dict:
    """反序列化 dict"""
    if isinstance(value, dict):
        return value
    return json.loads(value)


def _deserialize_bool(value: Any) -> bool:
    """反序列化 bool"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'on')
    return bool(value)


def _deserialize_int(value: Any) -> int:
    """反序列化 int"""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float):
        return int(value)
    return int(str(value).strip())


def _deserialize_float(value: Any) -> float:
    """反序列化 float"""
    if isinstance(value, float):
        return value
    return float(value)


def _deserialize_str(value: Any) -> str:
    """反序列化 str"""
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode('utf-8')
    return str(value)


_DESERIALIZERS: Dict[type, Callable[[Any], Any]] = {
    int: _deserialize_int,
    str: _deserialize_str,
    float: _deserialize_float,
    bool: _deserialize_bool,
    bytes: _deserialize_bytes,
    datetime: _deserialize_datetime,
    date: _deserialize_date,
    list: _deserialize_list,
    dict: _deserialize_dict,
}


class TypeRegistry:
    """类型注册表"""

    @classmethod
    def db_type_name(cls, col_type: Type) -> str:
        """获取列类型对应的数据库类型名"""
        if col_type not in DB_TYPE_NAMES:
            raise TypeError(f"Unsupported column type: {col_type}")
        return DB_TYPE_NAMES[col_type]

    @classmethod
    def to_db(cls, value: Any, col_type: Type) -> Any:
        """
        将记录值转换为数据库驱动值

        Args:
            value: 记录值
            col_type: 列类型

        Returns:
            可绑定到 sqlite3 的值
        """
        if value is None:
            return None
        serializer = _DB_SERIALIZERS.get(col_type)
        if serializer is None:
            return value
        return serializer(value)

    @classmethod
    def from_db(cls, value: Any, col_type: Type) -> Any:
        """
        将数据库驱动值转换为记录值

        Args:
            value: 数据库返回的原始值
            col_type: 列类型

        Returns:
            记录值
        """
        if value is None:
            return None
        return _DESERIALIZERS[col_type](value)

    @classmethod
    def normalize_input(cls, value: Any, col_type: Type) -> Any:
        """
        规范化客户端输入

        Args:
            value: 客户端提交的值
            col_type: 列类型

        Returns:
            记录值

        Raises:
            ValidationError: 无法转换
        """
        if value is None:
            return None
        if col_type in (int, float, datetime, date) and value == '':
            return None
        try:
            return _DESERIALIZERS[col_type](value)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"Cannot convert {value!r} to {col_type.__name__}: {e}"
            ) from e
