"""
Pyrelate 查询参数对象

Query 只保存查询参数，不执行任何数据库操作。编译由 QueryBuilder 完成，执行由 Store 完成。

    query = (Query()
             .join_relation('company', select_attributes=['name'], type='LEFT')
             .where({'name': 'Alice'})
             .or_where(['LIKE', {'email': '%@example.com'}])
             .order_by({'name': 'ASC'})
             .limit(10))
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

from ..common.actions import PermissionAction
from ..common.exceptions import QueryError
from .criteria import Criteria, Expression

JOIN_TYPES = ('INNER', 'LEFT', 'RIGHT', 'CROSS')


class FetchMode(Enum):
    """结果获取模式"""
    RECORD = 'record'  # 记录实例
    COLUMN = 'column'  # 每行第一列的值
    ROW = 'row'  # 原始行字典


@dataclass
class Join:
    """手动连接：src 为记录类或 Store（子查询）"""
    src: Any
    alias: str
    on: Optional[Criteria]
    type: str = 'INNER'


@dataclass
class RelationJoin:
    """关系连接"""
    name: str
    select_attributes: Union[bool, List[str]] = False
    type: str = 'INNER'
    on: Optional[Criteria] = None


@dataclass
class OrderBy:
    column: Union[str, Expression]
    direction: str = 'ASC'


def _check_join_type(type: str) -> str:
    type = type.upper()
    if type not in JOIN_TYPES:
        raise QueryError(f"Invalid join type '{type}'")
    return type


def _to_criteria(on: Any) -> Optional[Criteria]:
    if on is None:
        return None
    if isinstance(on, Criteria):
        return on
    return Criteria().where(on)


class Query(Criteria):
    """查询参数"""

    def __init__(self) -> None:
        super().__init__()
        self._select: List[str] = []
        self._distinct = False
        self._table_alias = 't'
        self._joins: List[Union[Join, RelationJoin]] = []
        self._group_by: List[Union[str, Expression]] = []
        self._having = Criteria()
        self._order_by: List[OrderBy] = []
        self._limit = 0
        self._offset = 0
        self._with_deleted = False
        self._allowed_permission_types: FrozenSet[str] = frozenset()
        self._fetch_mode = FetchMode.RECORD
        self._relation: Any = None

    @classmethod
    def normalize(cls, query: Any = None) -> 'Query':
        """
        规范化查询参数

        Args:
            query: None、Query 或任意 where 条件简写

        Returns:
            Query 实例
        """
        if query is None:
            return cls()
        if isinstance(query, Query):
            return query
        return cls().where(query)

    # ---- select ----

    def select(self, *columns: str) -> 'Query':
        """
        设置查询列（原样输出）

        Args:
            *columns: 列表达式，如 't.id', 'count(*) AS total'
        """
        if len(columns) == 1 and isinstance(columns[0], (list, tuple)):
            columns = tuple(columns[0])
        self._select = [str(c) for c in columns]
        return self

    def distinct(self, distinct: bool = True) -> 'Query':
        self._distinct = distinct
        return self

    def table_alias(self, alias: str) -> 'Query':
        self._table_alias = alias
        return self

    def fetch_mode(self, mode: FetchMode) -> 'Query':
        self._fetch_mode = mode
        return self

    def fetch_single_value(self, expression: str) -> 'Query':
        """只查询单个表达式，结果为该值"""
        self._select = [expression]
        self._fetch_mode = FetchMode.COLUMN
        return self

    # ---- joins ----

    def join(self, src: Any, alias: str, on: Any = None, type: str = 'INNER') -> 'Query':
        """
        手动连接

        Args:
            src: 记录类或 Store
            alias: 别名
            on: 连接条件
            type: INNER / LEFT / RIGHT / CROSS
        """
        self._joins.append(Join(src, alias, _to_criteria(on), _check_join_type(type)))
        return self

    def join_relation(self,
                      name: str,
                      select_attributes: Union[bool, Iterable[str]] = False,
                      type: str = 'INNER',
                      on: Any = None) -> 'Query':
        """
        按关系名连接，同名关系再次连接时替换原连接

        Args:
            name: 关系名，嵌套关系用点分隔，如 'contact.company'
            select_attributes: True 选择目标表所有列，列表则只选择指定列
            type: 连接类型
            on: 附加连接条件
        """
        if not isinstance(select_attributes, bool):
            select_attributes = list(select_attributes)
        join = RelationJoin(name, select_attributes, _check_join_type(type), _to_criteria(on))
        index = self.relation_is_joined(name)
        if index is None:
            self._joins.append(join)
        else:
            self._joins[index] = join
        return self

    def relation_is_joined(self, name: str) -> Optional[int]:
        """返回关系连接在连接列表中的位置"""
        for index, join in enumerate(self._joins):
            if isinstance(join, RelationJoin) and join.name == name:
                return index
        return None

    # ---- grouping / ordering ----

    def group_by(self, *columns: Union[str, Expression]) -> 'Query':
        self._group_by = list(columns)
        return self

    def having(self, condition: Any) -> 'Query':
        self._having.and_where(condition)
        return self

    def and_having(self, condition: Any) -> 'Query':
        self._having.and_where(condition)
        return self

    def or_having(self, condition: Any) -> 'Query':
        self._having.or_where(condition)
        return self

    def order_by(self, order: Union[Dict[str, str], List[Any], Expression], append: bool = False) -> 'Query':
        """
        设置排序

        Args:
            order: {列名: 'ASC'|'DESC'}、Expression 或二者组成的列表
            append: 追加到已有排序之后
        """
        if not append:
            self._order_by = []
        items = order if isinstance(order, list) else [order]
        for item in items:
            if isinstance(item, dict):
                for column, direction in item.items():
                    direction = str(direction).upper()
                    if direction not in ('ASC', 'DESC'):
                        raise QueryError(f"Invalid sort direction '{direction}'")
                    self._order_by.append(OrderBy(column, direction))
            elif isinstance(item, Expression):
                self._order_by.append(OrderBy(item, ''))
            else:
                self._order_by.append(OrderBy(str(item), 'ASC'))
        return self

    def limit(self, limit: int) -> 'Query':
        self._limit = int(limit)
        return self

    def offset(self, offset: int) -> 'Query':
        self._offset = int(offset)
        return self

    # ---- visibility / permissions ----

    def with_deleted(self, with_deleted: bool = True) -> 'Query':
        """包含软删除的记录"""
        self._with_deleted = with_deleted
        return self

    def skip_read_permission(self) -> 'Query':
        """跳过加载记录时的读权限检查"""
        return self.allow_permission_types(PermissionAction.READ)

    def allow_permission_types(self, *types: str) -> 'Query':
        """加载的记录对这些操作类型不再做权限检查"""
        self._allowed_permission_types = self._allowed_permission_types | frozenset(types)
        return self

    def set_relation(self, relation: Any) -> 'Query':
        """记录该查询由哪个关系生成"""
        self._relation = relation
        return self

    # ---- getters ----

    def get_select(self) -> List[str]:
        return self._select

    def get_distinct(self) -> bool:
        return self._distinct

    def get_table_alias(self) -> str:
        return self._table_alias

    def get_joins(self) -> List[Union[Join, RelationJoin]]:
        return self._joins

    def get_group_by(self) -> List[Union[str, Expression]]:
        return self._group_by

    def get_having(self) -> Criteria:
        return self._having

    def get_order_by(self) -> List[OrderBy]:
        return self._order_by

    def get_limit(self) -> int:
        return self._limit

    def get_offset(self) -> int:
        return self._offset

    def get_with_deleted(self) -> bool:
        return self._with_deleted

    def get_allowed_permission_types(self) -> FrozenSet[str]:
        return self._allowed_permission_types

    def get_fetch_mode(self) -> FetchMode:
        return self._fetch_mode

    def get_relation(self) -> Any:
        return self._relation

    def clone(self) -> 'Query':
        """复制查询，连接和条件列表不与原查询共享"""
        query = Query()
        query._copy_criteria_from(self)
        query._select = list(self._select)
        query._distinct = self._distinct
        query._table_alias = self._table_alias
        query._joins = [_clone_join(j) for j in self._joins]
        query._group_by = list(self._group_by)
        query._having = self._having.clone()
        query._order_by = list(self._order_by)
        query._limit = self._limit
        query._offset = self._offset
        query._with_deleted = self._with_deleted
        query._allowed_permission_types = self._allowed_permission_types
        query._fetch_mode = self._fetch_mode
        query._relation = self._relation
        return query

    def __copy__(self) -> 'Query':
        return self.clone()


def _clone_join(join: Union[Join, RelationJoin]) -> Union[Join, RelationJoin]:
    on = join.on.clone() if join.on is not None else None
    if isinstance(join, RelationJoin):
        attributes = join.select_attributes
        if isinstance(attributes, list):
            attributes = list(attributes)
        return RelationJoin(join.name, attributes, join.type, on)
    return Join(join.src, join.alias, on, join.type)
