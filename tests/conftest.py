"""
Pytest 配置和共享 fixtures

此文件提供 pytest 测试所需的共享配置和 fixtures：
内存 SQLite 连接、建表脚本、模式注册表和一组联系人模型。
"""
import sys
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace
from typing import Generator

import pytest

# 确保可以导入 pyrelate
sys.path.insert(0, str(Path(__file__).parent.parent))

from pyrelate import (
    Column,
    Connection,
    DeleteAction,
    EmailValidator,
    SchemaRegistry,
    StaticUser,
    ViaRelation,
    declarative_base,
)


SCHEMA_SQL = """
CREATE TABLE companies (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name VARCHAR(100) NOT NULL,
    deleted TINYINT NOT NULL DEFAULT 0
);
CREATE TABLE contacts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name VARCHAR(50) NOT NULL,
    company_id INTEGER,
    deleted TINYINT NOT NULL DEFAULT 0,
    created_at DATETIME,
    modified_at DATETIME,
    created_by INTEGER,
    modified_by INTEGER
);
CREATE TABLE email_addresses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    contact_id INTEGER NOT NULL,
    email VARCHAR(190) NOT NULL,
    type TEXT
);
CREATE TABLE tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE contact_tags (
    contact_id INTEGER NOT NULL,
    tag_id INTEGER NOT NULL,
    PRIMARY KEY (contact_id, tag_id)
);
CREATE TABLE profiles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    contact_id INTEGER,
    bio TEXT
);
"""

ADMIN = StaticUser(1, admin=True)
USER = StaticUser(2)


def build_models(registry: SchemaRegistry) -> SimpleNamespace:
    """在注册表上声明联系人模型"""
    Base = declarative_base(registry)

    class Company(Base):
        __tablename__ = 'companies'
        id = Column(int, primary_key=True, auto_increment=True)
        name = Column(str, length=100, required=True)
        deleted = Column(bool, default=False)

        @classmethod
        def define_relations(cls):
            cls.has_many('contacts', 'Contact', {'id': 'company_id'}).on_delete(DeleteAction.RESTRICT)

    class Contact(Base):
        __tablename__ = 'contacts'
        id = Column(int, primary_key=True, auto_increment=True)
        name = Column(str, length=50, required=True)
        company_id = Column(int)
        deleted = Column(bool, default=False)
        created_at = Column(datetime)
        modified_at = Column(datetime)
        created_by = Column(int)
        modified_by = Column(int)

        @classmethod
        def define_relations(cls):
            cls.belongs_to('company', 'Company', {'company_id': 'id'})
            cls.has_many('email_addresses', 'EmailAddress', {'id': 'contact_id'}).on_delete(DeleteAction.CASCADE)
            cls.has_many('tags', 'Tag', {'id': 'contact_id'}).via('ContactTag', {'tag_id': 'id'})
            cls.has_one('profile', 'Profile', {'id': 'contact_id'}).on_delete(DeleteAction.CASCADE)

    class EmailAddress(Base):
        __tablename__ = 'email_addresses'
        id = Column(int, primary_key=True, auto_increment=True)
        contact_id = Column(int, required=True)
        email = Column(str, length=190, required=True)
        type = Column(str, default='work')

        @classmethod
        def define_relations(cls):
            cls.belongs_to('contact', 'Contact', {'contact_id': 'id'})

        @classmethod
        def define_validation_rules(cls):
            return [EmailValidator('email')]

        @classmethod
        def internal_get_permissions(cls):
            return ViaRelation('contact')

    class Tag(Base):
        __tablename__ = 'tags'
        id = Column(int, primary_key=True, auto_increment=True)
        name = Column(str, required=True)

    class ContactTag(Base):
        __tablename__ = 'contact_tags'
        contact_id = Column(int, primary_key=True)
        tag_id = Column(int, primary_key=True)

    class Profile(Base):
        __tablename__ = 'profiles'
        id = Column(int, primary_key=True, auto_increment=True)
        contact_id = Column(int)
        bio = Column(str)

        @classmethod
        def define_relations(cls):
            cls.belongs_to('contact', 'Contact', {'contact_id': 'id'})

    return SimpleNamespace(
        Base=Base,
        Company=Company,
        Contact=Contact,
        EmailAddress=EmailAddress,
        Tag=Tag,
        ContactTag=ContactTag,
        Profile=Profile,
    )


@pytest.fixture
def connection() -> Generator[Connection, None, None]:
    """
    提供已建表的内存数据库连接

    Yields:
        Connection
    """
    conn = Connection(':memory:')
    conn.execute_script(SCHEMA_SQL)
    yield conn
    conn.close()


@pytest.fixture
def registry(connection: Connection) -> SchemaRegistry:
    """以管理员身份登录的模式注册表"""
    registry = SchemaRegistry(connection)
    registry.set_user(ADMIN)
    return registry


@pytest.fixture
def models(registry: SchemaRegistry) -> SimpleNamespace:
    """联系人模型"""
    return build_models(registry)


def count_rows(connection: Connection, table: str) -> int:
    """直接统计表的行数"""
    return connection.execute(f'SELECT count(*) FROM {table}').fetchone()[0]


@pytest.fixture
def rows(connection: Connection):
    """返回按表名统计行数的函数"""
    return lambda table: count_rows(connection, table)
