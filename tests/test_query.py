"""
Pyrelate Query / Criteria 测试

测试 Query 作为纯参数对象的行为：条件规范化、复制、关系连接替换等。
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pyrelate import Criteria, Expression, FetchMode, PermissionAction, Query, QueryError
from pyrelate.query import Condition, RelationJoin


class TestCriteriaNormalize(unittest.TestCase):
    """条件简写规范化"""

    def test_dict_becomes_and_equals(self) -> None:
        condition = Criteria.normalize({'name': 'Alice', 'age': 30})
        self.assertIsInstance(condition, Condition)
        self.assertEqual(condition.type, 'AND')
        self.assertEqual(condition.comparator, '=')
        self.assertEqual(condition.values, {'name': 'Alice', 'age': 30})

    def test_two_element_list(self) -> None:
        condition = Criteria.normalize(['like', {'name': 'A%'}])
        self.assertEqual(condition.comparator, 'LIKE')
        self.assertEqual(condition.type, 'AND')

    def test_three_element_list(self) -> None:
        condition = Criteria.normalize(['or', '!=', {'a': 1, 'b': 2}])
        self.assertEqual(condition.type, 'OR')
        self.assertEqual(condition.comparator, '!=')

    def test_raw_string_and_expression_pass_through(self) -> None:
        expression = Expression('1 = 1')
        self.assertIs(Criteria.normalize(expression), expression)
        self.assertEqual(Criteria.normalize('a = b'), 'a = b')

    def test_invalid_comparator(self) -> None:
        with self.assertRaises(QueryError):
            Criteria.normalize(['~~', {'a': 1}])

    def test_invalid_connective(self) -> None:
        with self.assertRaises(QueryError):
            Criteria.normalize(['XOR', '=', {'a': 1}])

    def test_empty_dict(self) -> None:
        with self.assertRaises(QueryError):
            Criteria.normalize({})

    def test_unsupported_type(self) -> None:
        with self.assertRaises(QueryError):
            Criteria.normalize(42)

    def test_normalize_copies_values(self) -> None:
        """规范化不共享调用方的字典"""
        values = {'a': 1}
        condition = Criteria.normalize(values)
        values['a'] = 2
        self.assertEqual(condition.values, {'a': 1})


class TestCriteria(unittest.TestCase):
    """Criteria 行为"""

    def test_connectives_recorded(self) -> None:
        criteria = Criteria().where({'a': 1}).or_where({'b': 2}).and_where('c = 3')
        self.assertEqual([c for c, _ in criteria.get_where()], ['AND', 'OR', 'AND'])

    def test_is_empty(self) -> None:
        self.assertTrue(Criteria().is_empty())
        self.assertFalse(Criteria().where('1').is_empty())

    def test_bind_adds_colon(self) -> None:
        criteria = Criteria().bind('name', 'x')
        self.assertEqual(criteria.get_bind_parameters(), {':name': 'x'})

    def test_reset_keeps_bind_parameters(self) -> None:
        criteria = Criteria().where('a = :a').bind(':a', 1)
        criteria.reset_criteria()
        self.assertTrue(criteria.is_empty())
        self.assertEqual(criteria.get_bind_parameters(), {':a': 1})

    def test_where_as_criteria(self) -> None:
        criteria = Criteria().where({'a': 1})
        wrapped = criteria.get_where_as_criteria()
        self.assertIsNotNone(wrapped)
        self.assertEqual(len(wrapped.get_where()), 1)
        self.assertIsNone(Criteria().get_where_as_criteria())


class TestQuery(unittest.TestCase):
    """Query 参数对象"""

    def test_normalize(self) -> None:
        query = Query()
        self.assertIs(Query.normalize(query), query)
        self.assertTrue(Query.normalize(None).is_empty())
        self.assertEqual(len(Query.normalize({'a': 1}).get_where()), 1)

    def test_where_on_query_builds_conditions(self) -> None:
        """Query 上的 where 条件按条件简写规范化，而不是转成 Query"""
        query = Query().where({'name': 'Alice'}).or_where(['!=', {'age': 3}]).and_where('a = b')
        connectives = [c for c, _ in query.get_where()]
        conditions = [c for _, c in query.get_where()]
        self.assertEqual(connectives, ['AND', 'OR', 'AND'])
        self.assertIsInstance(conditions[0], Condition)
        self.assertEqual(conditions[0].values, {'name': 'Alice'})
        self.assertEqual(conditions[1].comparator, '!=')
        self.assertEqual(conditions[2], 'a = b')

    def test_clone_is_independent(self) -> None:
        """复制后修改不影响原查询"""
        query = (Query()
                 .where({'a': 1})
                 .join_relation('company', select_attributes=['name'])
                 .order_by({'name': 'ASC'})
                 .having('count(*) > 1'))
        clone = query.clone()
        clone.where({'b': 2})
        clone.join_relation('tags')
        clone.order_by({'id': 'DESC'}, append=True)
        clone.get_joins()[0].select_attributes.append('id')
        clone.having('sum(x) > 0')
        clone.get_where()[0][1].values['a'] = 99

        self.assertEqual(len(query.get_where()), 1)
        self.assertEqual(query.get_where()[0][1].values, {'a': 1})
        self.assertEqual(len(query.get_joins()), 1)
        self.assertEqual(query.get_joins()[0].select_attributes, ['name'])
        self.assertEqual(len(query.get_order_by()), 1)
        self.assertEqual(len(query.get_having().get_where()), 1)

    def test_join_relation_replaces_same_name(self) -> None:
        query = Query().join_relation('company').join_relation('tags')
        query.join_relation('company', select_attributes=True, type='left')
        joins = query.get_joins()
        self.assertEqual(len(joins), 2)
        self.assertIsInstance(joins[0], RelationJoin)
        self.assertEqual(joins[0].type, 'LEFT')
        self.assertTrue(joins[0].select_attributes)
        self.assertEqual(query.relation_is_joined('tags'), 1)
        self.assertIsNone(query.relation_is_joined('profile'))

    def test_order_by_replaces_unless_append(self) -> None:
        query = Query().order_by({'a': 'ASC'}).order_by({'b': 'DESC'})
        self.assertEqual([o.column for o in query.get_order_by()], ['b'])
        query.order_by(['c', Expression('RANDOM()')], append=True)
        self.assertEqual(len(query.get_order_by()), 3)

    def test_fetch_single_value(self) -> None:
        query = Query().fetch_single_value('count(*)')
        self.assertEqual(query.get_select(), ['count(*)'])
        self.assertIs(query.get_fetch_mode(), FetchMode.COLUMN)

    def test_permission_flags(self) -> None:
        query = Query().skip_read_permission().allow_permission_types(PermissionAction.WRITE)
        self.assertEqual(
            query.get_allowed_permission_types(),
            frozenset({PermissionAction.READ, PermissionAction.WRITE})
        )

    def test_defaults(self) -> None:
        query = Query()
        self.assertEqual(query.get_table_alias(), 't')
        self.assertEqual(query.get_limit(), 0)
        self.assertFalse(query.get_with_deleted())
        self.assertIs(query.get_fetch_mode(), FetchMode.RECORD)


if __name__ == '__main__':
    unittest.main()
