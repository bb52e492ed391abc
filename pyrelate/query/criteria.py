"""
Pyrelate 条件树

Criteria 是 (连接词, 条件) 列表，条件可以是：
- 原始 SQL 片段（str 或 Expression），原样输出
- Condition（由简写形式规范化而来）
- 嵌套的 Criteria

简写形式：
    {'name': 'Alice', 'age': 30}           # AND 连接的等值条件
    ['!=', {'deleted': True}]              # 指定比较符
    ['OR', 'LIKE', {'name': 'A%', 'email': 'a%'}]
    ['EXISTS', store]                      # 子查询
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..common.exceptions import QueryError


CONNECTIVES = ('AND', 'OR')

COMPARATORS = frozenset({
    '=', '!=', '<>', '<', '>', '<=', '>=',
    'LIKE', 'NOT LIKE', 'IS', 'NOT IS', 'IS NOT',
    'IN', 'NOT IN', 'EXISTS', 'NOT EXISTS',
})


class Expression:
    """原始 SQL 表达式，编译时不做引用和参数化"""

    def __init__(self, sql: str):
        self.sql = sql

    def __str__(self) -> str:
        return self.sql

    def __repr__(self) -> str:
        return f"Expression({self.sql!r})"


class Selectable:
    """可作为子查询编译的对象（Store）"""
    record_class: Any

    def get_query(self) -> Any:
        raise NotImplementedError


@dataclass
class Condition:
    """
    规范化后的条件

    Attributes:
        type: 多个列之间的连接词 AND / OR
        comparator: 比较符
        values: {列名: 值} 或子查询
    """
    type: str
    comparator: str
    values: Any

    def clone(self) -> 'Condition':
        values = dict(self.values) if isinstance(self.values, dict) else self.values
        return Condition(self.type, self.comparator, values)


def _check_comparator(comparator: Any) -> str:
    if not isinstance(comparator, str) or comparator.upper() not in COMPARATORS:
        raise QueryError(f"Invalid comparator {comparator!r}")
    return comparator.upper()


class Criteria:
    """条件集合"""

    def __init__(self) -> None:
        self._where: List[Tuple[str, Any]] = []
        self._bind_parameters: Dict[str, Any] = {}

    @classmethod
    def normalize(cls, condition: Any) -> Any:
        """
        将简写条件规范化

        Args:
            condition: 简写条件

        Returns:
            str / Expression / Condition / Criteria

        Raises:
            QueryError: 条件格式错误
        """
        if isinstance(condition, (str, Expression, Criteria, Condition)):
            return condition
        if isinstance(condition, dict):
            if not condition:
                raise QueryError("Condition map can not be empty")
            return Condition('AND', '=', dict(condition))
        if isinstance(condition, (list, tuple)):
            parts = list(condition)
            if len(parts) == 3:
                connective, comparator, values = parts
                if not isinstance(connective, str) or connective.upper() not in CONNECTIVES:
                    raise QueryError(f"Invalid condition type {connective!r}")
                connective = connective.upper()
            elif len(parts) == 2:
                connective = 'AND'
                comparator, values = parts
            else:
                raise QueryError(f"Invalid condition {condition!r}")
            comparator = _check_comparator(comparator)
            if isinstance(values, Selectable):
                return Condition(connective, comparator, values)
            if not isinstance(values, dict) or not values:
                raise QueryError(f"Invalid condition values {values!r}")
            return Condition(connective, comparator, dict(values))
        raise QueryError(f"Invalid condition {condition!r}")

    def where(self, condition: Any) -> 'Criteria':
        """添加 AND 条件"""
        return self.and_where(condition)

    def and_where(self, condition: Any) -> 'Criteria':
        self._where.append(('AND', Criteria.normalize(condition)))
        return self

    def or_where(self, condition: Any) -> 'Criteria':
        self._where.append(('OR', Criteria.normalize(condition)))
        return self

    def bind(self, tag: str, value: Any) -> 'Criteria':
        """
        为原始 SQL 片段中的命名参数绑定值

        Args:
            tag: 参数名，如 ':name'
            value: 值
        """
        if not tag.startswith(':'):
            tag = ':' + tag
        self._bind_parameters[tag] = value
        return self

    def get_where(self) -> List[Tuple[str, Any]]:
        return self._where

    def get_bind_parameters(self) -> Dict[str, Any]:
        return self._bind_parameters

    def is_empty(self) -> bool:
        return not self._where

    def reset_criteria(self) -> 'Criteria':
        """清除 where 条件（保留绑定参数）"""
        self._where = []
        return self

    def get_where_as_criteria(self) -> Optional['Criteria']:
        """把当前 where 条件包装为一个新的 Criteria，没有条件时返回 None"""
        if not self._where:
            return None
        criteria = Criteria()
        criteria._where = [(c, _clone_condition(x)) for c, x in self._where]
        return criteria

    def clone(self) -> 'Criteria':
        criteria = Criteria()
        criteria._copy_criteria_from(self)
        return criteria

    def _copy_criteria_from(self, other: 'Criteria') -> None:
        self._where = [(c, _clone_condition(x)) for c, x in other._where]
        self._bind_parameters = dict(other._bind_parameters)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._where!r})"


def _clone_condition(condition: Any) -> Any:
    if isinstance(condition, (Criteria, Condition)):
        return condition.clone()
    return condition
