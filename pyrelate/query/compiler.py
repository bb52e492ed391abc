"""
Pyrelate SQL 编译器

QueryBuilder 把 Query 和记录类的表/关系元数据编译为带命名参数的 SQL：

    compiled = QueryBuilder(Contact).build_select(Query().where({'name': 'Alice'}))
    compiled.sql     # SELECT `t`.* FROM `contacts` `t` WHERE (`t`.`name` = :p1) ...
    compiled.params  # [BindParameter(':p1', 'Alice'), ...]

参数名由进程级计数器生成，嵌套子查询的参数名不会冲突。
"""

import itertools
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type, TYPE_CHECKING

from ..common.exceptions import InvalidIdentifierError, QueryError
from .builder import Join, Query, RelationJoin
from .criteria import Condition, Criteria, Expression, Selectable

if TYPE_CHECKING:
    from ..core.record import Record


_INVALID_IDENTIFIER = re.compile(r'[`\\\x00(),]')

_param_counter = itertools.count(1)

_PLACEHOLDER = re.compile(r':[A-Za-z_][A-Za-z0-9_]*')

# 关系连接中被选择列的别名分隔符：`contact@company@name`
JOINED_ATTRIBUTE_SEPARATOR = '@'


def next_param_tag() -> str:
    """生成全局唯一的参数名"""
    return f':p{next(_param_counter)}'


@dataclass
class BindParameter:
    tag: str
    value: Any


@dataclass
class CompiledQuery:
    """
    编译结果

    params 按占位符在 sql 中首次出现的顺序排列，未出现的参数排在最后。
    """
    sql: str
    params: List[BindParameter]

    def __post_init__(self) -> None:
        positions: Dict[str, int] = {}
        for match in _PLACEHOLDER.finditer(self.sql):
            positions.setdefault(match.group(), match.start())
        end = len(self.sql)
        self.params = sorted(self.params, key=lambda p: positions.get(p.tag, end))

    def bind_dict(self) -> Dict[str, Any]:
        """转换为 sqlite3 命名参数字典"""
        return {p.tag.lstrip(':'): p.value for p in self.params}

    def __str__(self) -> str:
        return self.sql


def quote_identifier(name: str) -> str:
    """
    引用表名、列名或别名

    Raises:
        InvalidIdentifierError: 名称包含反引号、反斜杠、NUL、括号或逗号
    """
    if not name or _INVALID_IDENTIFIER.search(name):
        raise InvalidIdentifierError(name)
    return f'`{name}`'


class QueryBuilder:
    """SQL 编译器，每次编译使用一个新实例"""

    def __init__(self, record_class: Type['Record']):
        self.record_class = record_class
        self.table = record_class.get_table()
        self._soft_delete_column = record_class.get_registry().options.soft_delete_column
        self._params: List[BindParameter] = []
        # {别名: 记录类}，子查询连接的别名对应 None
        self._alias_map: Dict[str, Optional[Type['Record']]] = {}
        self._table_alias = 't'
        self._joined_relations: Dict[str, Type['Record']] = {}
        self._relation_selects: List[str] = []

    # ================== SELECT ==================

    def build_select(self,
                     query: Optional[Query] = None,
                     prefix: str = '',
                     outer_alias_map: Optional[Dict[str, Any]] = None) -> CompiledQuery:
        """
        编译 SELECT 语句

        Args:
            query: 查询参数，编译过程不会修改它
            prefix: 缩进（嵌套子查询使用）
            outer_alias_map: 外层查询的别名表（关联子查询使用）

        Returns:
            CompiledQuery
        """
        query = Query.normalize(query).clone()
        self._table_alias = query.get_table_alias()
        if outer_alias_map:
            self._alias_map.update(outer_alias_map)
        self._alias_map[self._table_alias] = self.record_class

        self._apply_soft_delete(query)

        joins = self._build_joins(query, prefix)

        select = prefix + 'SELECT '
        if query.get_distinct():
            select += 'DISTINCT '
        select += self._build_select_fields(query)

        sql = f"{select}\n{prefix}FROM {quote_identifier(self.table.name)} {quote_identifier(self._table_alias)}"
        sql += joins

        where = self._build_where(query, prefix)
        if where:
            sql += f"\n{prefix}WHERE {where}"

        if query.get_group_by():
            sql += f"\n{prefix}GROUP BY " + ', '.join(self._build_column_ref(c) for c in query.get_group_by())

        having = self._build_where(query.get_having(), prefix)
        if having:
            sql += f"\n{prefix}HAVING {having}"

        if query.get_order_by():
            orders = []
            for order in query.get_order_by():
                ref = self._build_column_ref(order.column)
                orders.append(f"{ref} {order.direction}" if order.direction else ref)
            sql += f"\n{prefix}ORDER BY " + ', '.join(orders)

        if query.get_limit() > 0:
            sql += f"\n{prefix}LIMIT {query.get_limit()}"
            if query.get_offset() > 0:
                sql += f" OFFSET {query.get_offset()}"
        elif query.get_offset() > 0:
            sql += f"\n{prefix}LIMIT -1 OFFSET {query.get_offset()}"

        return CompiledQuery(sql, self._collect_params(query))

    def _apply_soft_delete(self, query: Query) -> None:
        """未指定 with_deleted 且表有软删除列时，把已有条件包为一组再 AND deleted != true"""
        if query.get_with_deleted() or not self.table.has_column(self._soft_delete_column):
            return
        criteria = query.get_where_as_criteria()
        query.reset_criteria()
        query.and_where(['!=', {f'{self._table_alias}.{self._soft_delete_column}': True}])
        if criteria is not None:
            query.and_where(criteria)

    def _build_select_fields(self, query: Query) -> str:
        fields = list(query.get_select())
        if not fields:
            fields = [f'{quote_identifier(self._table_alias)}.*']
        return ', '.join(fields + self._relation_selects)

    def _collect_params(self, query: Query) -> List[BindParameter]:
        params = [BindParameter(tag, value) for tag, value in query.get_bind_parameters().items()]
        return params + self._params

    # ================== INSERT / UPDATE / DELETE ==================

    def build_insert(self, data: Dict[str, Any]) -> CompiledQuery:
        """
        编译 INSERT 语句

        Args:
            data: {列名: 记录值}

        Returns:
            CompiledQuery
        """
        table = quote_identifier(self.table.name)
        if not data:
            return CompiledQuery(f"INSERT INTO {table} DEFAULT VALUES", [])
        columns = []
        tags = []
        for name, value in data.items():
            column = self.table.get_column(name)
            columns.append(quote_identifier(name))
            tags.append(self._add_param(column.to_db(value)))
        sql = f"INSERT INTO {table} ({', '.join(columns)})\nVALUES ({', '.join(tags)})"
        return CompiledQuery(sql, self._params)

    def build_insert_select(self, store: Selectable, columns: Optional[List[str]] = None) -> CompiledQuery:
        """
        编译 INSERT ... SELECT 语句

        Args:
            store: 提供数据的 Store
            columns: 目标列，默认使用子查询的全部列顺序
        """
        sql = f"INSERT INTO {quote_identifier(self.table.name)}"
        if columns:
            sql += f" ({', '.join(quote_identifier(self.table.get_column(c).name) for c in columns)})"
        builder = QueryBuilder(store.record_class)
        compiled = builder.build_select(store.get_query())
        self._params.extend(compiled.params)
        return CompiledQuery(f"{sql}\n{compiled.sql}", self._params)

    def build_update(self, data: Dict[str, Any], query: Optional[Query] = None) -> CompiledQuery:
        """
        编译 UPDATE 语句

        Args:
            data: {列名: 记录值}
            query: 只使用其 where 条件

        Returns:
            CompiledQuery
        """
        if not data:
            raise QueryError("Nothing to update")
        query = Query.normalize(query).clone()
        self._use_table_name_as_alias()
        sets = []
        for name, value in data.items():
            column = self.table.get_column(name)
            sets.append(f"{quote_identifier(name)} = {self._add_param(column.to_db(value))}")
        sql = f"UPDATE {quote_identifier(self.table.name)} SET {', '.join(sets)}"
        where = self._build_where(query, '')
        if where:
            sql += f"\nWHERE {where}"
        return CompiledQuery(sql, self._collect_params(query))

    def build_delete(self, query: Optional[Query] = None) -> CompiledQuery:
        """编译 DELETE 语句"""
        query = Query.normalize(query).clone()
        self._use_table_name_as_alias()
        sql = f"DELETE FROM {quote_identifier(self.table.name)}"
        where = self._build_where(query, '')
        if where:
            sql += f"\nWHERE {where}"
        return CompiledQuery(sql, self._collect_params(query))

    def _use_table_name_as_alias(self) -> None:
        # sqlite 的 UPDATE / DELETE 不支持表别名
        self._table_alias = self.table.name
        self._alias_map[self._table_alias] = self.record_class

    # ================== 条件 ==================

    def _build_where(self, criteria: Criteria, prefix: str) -> str:
        if not isinstance(criteria, Query):
            self._import_bind_parameters(criteria)
        parts = []
        for connective, condition in criteria.get_where():
            built = self._build_condition(condition, prefix)
            if not parts:
                parts.append(built)
            else:
                parts.append(f"\n{prefix}{connective} {built}")
        return ''.join(parts)

    def _import_bind_parameters(self, criteria: Criteria) -> None:
        for tag, value in criteria.get_bind_parameters().items():
            self._params.append(BindParameter(tag, value))

    def _build_condition(self, condition: Any, prefix: str) -> str:
        if isinstance(condition, Criteria):
            inner = self._build_where(condition, prefix + '\t')
            if not inner:
                return '(1)'
            return f"(\n{prefix}\t{inner}\n{prefix})"
        if isinstance(condition, Condition):
            return f"({self._condition_to_string(condition, prefix)})"
        return f"({condition})"

    def _condition_to_string(self, condition: Condition, prefix: str) -> str:
        if isinstance(condition.values, Selectable):
            if condition.comparator not in ('EXISTS', 'NOT EXISTS'):
                raise QueryError(f"Subquery condition requires EXISTS, got '{condition.comparator}'")
            return f"{condition.comparator} {self._build_sub_query(condition.values, prefix)}"
        return self._build_and_or(condition, prefix)

    def _build_and_or(self, condition: Condition, prefix: str) -> str:
        parts = []
        comparator = condition.comparator
        for name, value in condition.values.items():
            alias, column = self.split_table_and_column(name)
            if alias is None:
                raise QueryError(
                    f"Invalid column name '{name}'. Not a column of '{self.table.name}' and no table alias given"
                )
            key = f"{quote_identifier(alias)}.{quote_identifier(column)}"

            if value is None:
                parts.append(self._build_null_condition(key, comparator))
            elif isinstance(value, (list, tuple, set, frozenset)):
                parts.append(self._build_in_condition(key, alias, column, comparator, value))
            elif isinstance(value, Selectable):
                parts.append(f"{key} {comparator} {self._build_sub_query(value, prefix)}")
            elif isinstance(value, Criteria):
                raise QueryError(
                    f"Sub-select value for '{name}' must be a Store, a bare Query has no record type"
                )
            else:
                tag = self._add_param(self._to_db_value(alias, column, value))
                parts.append(f"{key} {comparator} {tag}")
        return f" {condition.type} ".join(parts)

    def _build_null_condition(self, key: str, comparator: str) -> str:
        if comparator in ('=', 'IS'):
            return f"{key} IS NULL"
        if comparator in ('!=', '<>', 'NOT IS', 'IS NOT'):
            return f"{key} IS NOT NULL"
        raise QueryError(f"Null value not possible with comparator '{comparator}'")

    def _build_in_condition(self, key: str, alias: str, column: str, comparator: str, values: Any) -> str:
        if comparator in ('=', 'IN'):
            keyword = 'IN'
        elif comparator in ('!=', '<>', 'NOT IN'):
            keyword = 'NOT IN'
        else:
            raise QueryError(f"Comparator '{comparator}' not possible with a list of values")
        values = list(values)
        if not values:
            raise QueryError(f"IN condition can not be empty for '{column}'")
        tags = [self._add_param(self._to_db_value(alias, column, v)) for v in values]
        return f"{key} {keyword} ({', '.join(tags)})"

    def _build_sub_query(self, store: Selectable, prefix: str) -> str:
        query = store.get_query().clone()
        if query.get_table_alias() == self._table_alias:
            query.table_alias('sub')
        builder = QueryBuilder(store.record_class)
        compiled = builder.build_select(query, prefix + '\t', self._alias_map)
        self._params.extend(compiled.params)
        return f"(\n{compiled.sql}\n{prefix})"

    def _to_db_value(self, alias: str, column: str, value: Any) -> Any:
        record_class = self._alias_map.get(alias)
        if record_class is None:
            return value
        table = record_class.get_table()
        if not table.has_column(column):
            raise QueryError(f"Invalid column name '{alias}.{column}'")
        col = table.get_column(column)
        return col.to_db(col.normalize_input(value))

    def _add_param(self, value: Any) -> str:
        tag = next_param_tag()
        self._params.append(BindParameter(tag, value))
        return tag

    # ================== 标识符 ==================

    def split_table_and_column(self, name: str) -> Tuple[Optional[str], str]:
        """
        拆分 'alias.column'

        嵌套关系连接的别名是关系路径（如 'contact.company'），列名前的完整路径是已知别名时按它拆分。
        未带别名的列名在主表有该列时归属主表别名，否则别名为 None。
        """
        parts = name.split('.')
        if len(parts) > 1:
            alias = '.'.join(parts[:-1])
            if alias in self._alias_map:
                return alias, parts[-1]
            return parts[-2], parts[-1]
        if self.table.has_column(name):
            return self._table_alias, name
        return None, name

    def _build_column_ref(self, column: Any) -> str:
        if isinstance(column, Expression):
            return str(column)
        alias, name = self.split_table_and_column(column)
        if alias is None:
            return quote_identifier(name)
        return f"{quote_identifier(alias)}.{quote_identifier(name)}"

    # ================== 连接 ==================

    def _build_joins(self, query: Query, prefix: str) -> str:
        sql = ''
        for join in query.get_joins():
            if isinstance(join, RelationJoin):
                sql += self._build_relation_join(join, query, prefix)
            else:
                sql += self._build_join(join, prefix)
        return sql

    def _build_join(self, join: Join, prefix: str) -> str:
        if isinstance(join.src, Selectable):
            src = self._build_sub_query(join.src, prefix)
            self._alias_map[join.alias] = None
        else:
            src = quote_identifier(join.src.get_table().name)
            self._alias_map[join.alias] = join.src
        sql = f"\n{prefix}{join.type} JOIN {src} {quote_identifier(join.alias)}"
        if join.on is not None and not join.on.is_empty():
            sql += f" ON {self._build_where(join.on, prefix)}"
        return sql

    def _build_relation_join(self, join: RelationJoin, query: Query, prefix: str) -> str:
        parts = join.name.split('.')
        record_class = self.record_class
        parent_alias = self._table_alias
        sql = ''
        for i, part in enumerate(parts):
            path = '.'.join(parts[:i + 1])
            relation = record_class.get_relation(part)
            last = i == len(parts) - 1
            if path not in self._joined_relations:
                on = join.on if last else None
                sql += self._join_single_relation(relation, parent_alias, path, join.type, on, query, prefix)
                self._joined_relations[path] = relation.to_record
            if last and join.select_attributes:
                if relation.has_many:
                    raise QueryError(f"Can't select attributes of has many relation '{join.name}'")
                self._add_relation_select(path, relation.to_record, join.select_attributes)
            record_class = relation.to_record
            parent_alias = path
        return sql

    def _join_single_relation(self, relation: Any, parent_alias: str, alias: str, type: str,
                              on: Optional[Criteria], query: Query, prefix: str) -> str:
        sql = ''
        if relation.via_record is not None:
            link_alias = f'{alias}Link'
            self._alias_map[link_alias] = relation.via_record
            link_on = Criteria()
            for from_column, to_column in relation.keys.items():
                link_on.and_where(
                    f"{quote_identifier(parent_alias)}.{quote_identifier(from_column)} = "
                    f"{quote_identifier(link_alias)}.{quote_identifier(to_column)}"
                )
            sql += (f"\n{prefix}{type} JOIN {quote_identifier(relation.via_record.get_table().name)} "
                    f"{quote_identifier(link_alias)} ON {self._build_where(link_on, prefix)}")
            keys = relation.via_keys
            from_alias = link_alias
        else:
            keys = relation.keys
            from_alias = parent_alias

        target = relation.to_record
        self._alias_map[alias] = target
        criteria = Criteria()
        for from_column, to_column in keys.items():
            criteria.and_where(
                f"{quote_identifier(from_alias)}.{quote_identifier(from_column)} = "
                f"{quote_identifier(alias)}.{quote_identifier(to_column)}"
            )
        if on is not None and not on.is_empty():
            criteria.and_where(on)
        if not query.get_with_deleted() and target.get_table().has_column(self._soft_delete_column):
            criteria.and_where(['!=', {f'{alias}.{self._soft_delete_column}': True}])

        sql += (f"\n{prefix}{type} JOIN {quote_identifier(target.get_table().name)} "
                f"{quote_identifier(alias)} ON {self._build_where(criteria, prefix)}")
        return sql

    def _add_relation_select(self, path: str, target: Any, attributes: Any) -> None:
        columns = target.get_table().get_column_names() if attributes is True else attributes
        prefix = path.replace('.', JOINED_ATTRIBUTE_SEPARATOR)
        for column in columns:
            target.get_table().get_column(column)
            self._relation_selects.append(
                f"{quote_identifier(path)}.{quote_identifier(column)} AS "
                f"{quote_identifier(prefix + JOINED_ATTRIBUTE_SEPARATOR + column)}"
            )
