"""
Pyrelate 类型、列与校验器测试

测试内容：
- TypeRegistry 的输入规范化与数据库转换
- Column 元数据、默认值与必填判定
- Table 主键与自增列
- RegexValidator / EmailValidator
"""

import os
import sys
import unittest
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pyrelate import (
    Column,
    ColumnNotFoundError,
    EmailValidator,
    ErrorCode,
    RegexValidator,
    SchemaError,
    Table,
    ValidationError,
    ValidationErrorInfo,
)
from pyrelate.core.types import TypeRegistry


class TestTypeRegistry(unittest.TestCase):
    """类型转换"""

    def test_bool_stored_as_int(self) -> None:
        self.assertEqual(TypeRegistry.to_db(True, bool), 1)
        self.assertEqual(TypeRegistry.to_db(False, bool), 0)
        self.assertIs(TypeRegistry.from_db(1, bool), True)
        self.assertIs(TypeRegistry.from_db(0, bool), False)

    def test_datetime_round_trip(self) -> None:
        value = datetime(2024, 3, 1, 10, 30, tzinfo=timezone.utc)
        stored = TypeRegistry.to_db(value, datetime)
        self.assertIsInstance(stored, str)
        self.assertEqual(TypeRegistry.from_db(stored, datetime), value)

    def test_datetime_converted_to_utc(self) -> None:
        value = TypeRegistry.normalize_input('2024-03-01T12:00:00+02:00', datetime)
        self.assertEqual(value, datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc))
        self.assertEqual(value.utcoffset(), timedelta(0))

    def test_zulu_suffix(self) -> None:
        value = TypeRegistry.normalize_input('2024-03-01T10:00:00Z', datetime)
        self.assertEqual(value.tzinfo, timezone.utc)

    def test_date(self) -> None:
        self.assertEqual(TypeRegistry.normalize_input('2024-03-01', date), date(2024, 3, 1))
        self.assertEqual(TypeRegistry.to_db(date(2024, 3, 1), date), '2024-03-01')

    def test_json_columns(self) -> None:
        self.assertEqual(TypeRegistry.to_db({'a': [1, 2]}, dict), '{"a": [1, 2]}')
        self.assertEqual(TypeRegistry.from_db('[1, 2]', list), [1, 2])

    def test_empty_string_is_none_for_numbers_and_dates(self) -> None:
        for col_type in (int, float, datetime, date):
            self.assertIsNone(TypeRegistry.normalize_input('', col_type))
        self.assertEqual(TypeRegistry.normalize_input('', str), '')

    def test_numeric_strings(self) -> None:
        self.assertEqual(TypeRegistry.normalize_input(' 12 ', int), 12)
        self.assertEqual(TypeRegistry.normalize_input('1.5', float), 1.5)
        self.assertIs(TypeRegistry.normalize_input('true', bool), True)

    def test_invalid_input(self) -> None:
        with self.assertRaises(ValidationError):
            TypeRegistry.normalize_input('abc', int)
        with self.assertRaises(ValidationError):
            TypeRegistry.normalize_input('not a date', datetime)

    def test_none_passes_through(self) -> None:
        self.assertIsNone(TypeRegistry.to_db(None, bool))
        self.assertIsNone(TypeRegistry.from_db(None, datetime))
        self.assertIsNone(TypeRegistry.normalize_input(None, int))


class TestColumn(unittest.TestCase):
    """列定义"""

    def test_db_type(self) -> None:
        self.assertEqual(Column(str, length=50).db_type, 'varchar')
        self.assertEqual(Column(str).db_type, 'text')
        self.assertEqual(Column(bool).db_type, 'tinyint')
        self.assertEqual(Column(int, db_type='bigint').db_type, 'bigint')

    def test_unsupported_type(self) -> None:
        with self.assertRaises(SchemaError):
            Column(set)

    def test_callable_default(self) -> None:
        column = Column(list, default=list)
        first = column.get_default()
        self.assertEqual(first, [])
        self.assertIsNot(first, column.get_default())

    def test_required_for_numbers_checks_unset(self) -> None:
        """数值类型只判断是否设置，0 满足必填"""
        column = Column(int, required=True)
        self.assertFalse(column.violates_required(0))
        self.assertTrue(column.violates_required(None))

    def test_required_for_text_checks_empty(self) -> None:
        column = Column(str, required=True)
        self.assertTrue(column.violates_required(''))
        self.assertTrue(column.violates_required(None))
        self.assertFalse(column.violates_required('x'))
        self.assertTrue(Column(list, required=True).violates_required([]))

    def test_to_dict(self) -> None:
        column = Column(str, length=20, required=True, comment='name')
        column.__set_name__(object, 'name')
        data = column.to_dict()
        self.assertEqual(data['name'], 'name')
        self.assertEqual(data['type'], 'str')
        self.assertEqual(data['length'], 20)
        self.assertTrue(data['required'])


class TestTable(unittest.TestCase):
    """表元数据"""

    def setUp(self) -> None:
        self.id = Column(int, primary_key=True, auto_increment=True)
        self.id.__set_name__(object, 'id')
        self.name = Column(str)
        self.name.__set_name__(object, 'name')
        self.table = Table('items', {'id': self.id, 'name': self.name})

    def test_primary_key(self) -> None:
        self.assertEqual(self.table.primary_key, ['id'])
        self.assertEqual(self.table.auto_increment_column, 'id')

    def test_get_column(self) -> None:
        self.assertIs(self.table.get_column('name'), self.name)
        self.assertTrue(self.table.has_column('name'))
        self.assertEqual(self.table.get_column_names(), ['id', 'name'])
        with self.assertRaises(ColumnNotFoundError):
            self.table.get_column('age')

    def test_composite_key_without_auto_increment(self) -> None:
        a = Column(int, primary_key=True)
        a.__set_name__(object, 'a')
        b = Column(int, primary_key=True)
        b.__set_name__(object, 'b')
        table = Table('links', {'a': a, 'b': b})
        self.assertEqual(table.primary_key, ['a', 'b'])
        self.assertIsNone(table.auto_increment_column)


class TestValidators(unittest.TestCase):
    """校验器"""

    def test_regex_validator(self) -> None:
        validator = RegexValidator('code', r'^[A-Z]{3}$', 'Three capitals')
        self.assertTrue(validator.validate(SimpleNamespace(code='ABC')))
        self.assertFalse(validator.validate(SimpleNamespace(code='abc')))
        self.assertEqual(validator.error_code, ErrorCode.MALFORMED)
        self.assertEqual(validator.error_description, 'Three capitals')
        self.assertEqual(validator.error_data, {'value': 'abc'})

    def test_empty_values_are_skipped(self) -> None:
        validator = RegexValidator('code', r'^[A-Z]{3}$')
        self.assertTrue(validator.validate(SimpleNamespace(code=None)))
        self.assertTrue(validator.validate(SimpleNamespace(code='')))

    def test_email_validator(self) -> None:
        validator = EmailValidator('email')
        self.assertTrue(validator.validate(SimpleNamespace(email='alice@example.com')))
        self.assertFalse(validator.validate(SimpleNamespace(email='alice@example')))
        self.assertFalse(validator.validate(SimpleNamespace(email='alice example.com')))

    def test_error_info_to_dict(self) -> None:
        info = ValidationErrorInfo(ErrorCode.REQUIRED, 'missing')
        self.assertEqual(info.to_dict(), {'code': 2, 'description': 'missing', 'data': None})


if __name__ == '__main__':
    unittest.main()
