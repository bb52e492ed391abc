"""
Pyrelate 查询子系统

包含条件树、查询参数对象和 SQL 编译器
"""

from .builder import FetchMode, Join, OrderBy, Query, RelationJoin
from .compiler import BindParameter, CompiledQuery, QueryBuilder, quote_identifier
from .criteria import Condition, Criteria, Expression

__all__ = [
    # Criteria
    'Criteria',
    'Condition',
    'Expression',
    # Query
    'Query',
    'FetchMode',
    'Join',
    'RelationJoin',
    'OrderBy',
    # Compiler
    'QueryBuilder',
    'CompiledQuery',
    'BindParameter',
    'quote_identifier',
]
