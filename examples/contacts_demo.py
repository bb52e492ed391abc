"""
Pyrelate 联系人示例

展示记录与关系的常用方式：
- belongs-to / 一对多 / 经由连接表的多对多
- 一次 save() 保存整个关系图，失败时整体回滚
- 关系连接查询与软删除
- ViaRelation 权限
"""

import logging
import os
import sys
from datetime import datetime

# 添加父目录到路径
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from pyrelate import (
    Column,
    Connection,
    DeleteAction,
    DeleteRestrictError,
    EmailValidator,
    Query,
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
    name VARCHAR(100) NOT NULL,
    company_id INTEGER,
    deleted TINYINT NOT NULL DEFAULT 0,
    created_at DATETIME,
    modified_at DATETIME
);
CREATE TABLE email_addresses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    contact_id INTEGER NOT NULL,
    email VARCHAR(190) NOT NULL
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
"""

logging.basicConfig(level=logging.WARNING, format='%(levelname)s %(name)s: %(message)s')

print("=" * 70)
print("Pyrelate 联系人示例")
print("=" * 70)

connection = Connection(':memory:')
connection.execute_script(SCHEMA_SQL)
registry = SchemaRegistry(connection)
registry.set_user(StaticUser(1, admin=True))
Base = declarative_base(registry)


class Company(Base):
    """公司"""
    __tablename__ = 'companies'
    id = Column(int, primary_key=True, auto_increment=True)
    name = Column(str, length=100, required=True)
    deleted = Column(bool, default=False)

    @classmethod
    def define_relations(cls):
        cls.has_many('contacts', 'Contact', {'id': 'company_id'}).on_delete(DeleteAction.RESTRICT)


class Contact(Base):
    """联系人"""
    __tablename__ = 'contacts'
    id = Column(int, primary_key=True, auto_increment=True)
    name = Column(str, length=100, required=True)
    company_id = Column(int)
    deleted = Column(bool, default=False)
    created_at = Column(datetime)
    modified_at = Column(datetime)

    @classmethod
    def define_relations(cls):
        cls.belongs_to('company', 'Company', {'company_id': 'id'})
        cls.has_many('email_addresses', 'EmailAddress', {'id': 'contact_id'}).on_delete(DeleteAction.CASCADE)
        cls.has_many('tags', 'Tag', {'id': 'contact_id'}).via('ContactTag', {'tag_id': 'id'})


class EmailAddress(Base):
    """邮箱地址，权限跟随所属联系人"""
    __tablename__ = 'email_addresses'
    id = Column(int, primary_key=True, auto_increment=True)
    contact_id = Column(int, required=True)
    email = Column(str, length=190, required=True)

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
    """标签"""
    __tablename__ = 'tags'
    id = Column(int, primary_key=True, auto_increment=True)
    name = Column(str, required=True)


class ContactTag(Base):
    """联系人-标签连接表"""
    __tablename__ = 'contact_tags'
    contact_id = Column(int, primary_key=True)
    tag_id = Column(int, primary_key=True)


# ============================================================================
# 1. 一次保存整个关系图
# ============================================================================

print("\n1. 一次保存整个关系图")

contact = Contact(name='Alice')
contact.set_related('company', {'name': 'Acme'})
contact.set_related('email_addresses', [{'email': 'alice@example.com'}, {'email': 'alice@work.example.com'}])
contact.set_related('tags', [{'name': 'customer'}, {'name': 'vip'}])
contact.save()

print(f"   {contact!r} company_id={contact.company_id}")
for email in EmailAddress.find(Query().order_by({'id': 'ASC'})):
    print(f"   {email!r} {email.email} -> contact {email.contact_id}")

# ============================================================================
# 2. 校验失败整体回滚
# ============================================================================

print("\n2. 校验失败整体回滚")

bob = Contact(name='Bob')
bob.set_related('email_addresses', [{'email': 'not-an-email'}])
if not bob.save():
    error = bob.get_validation_error('email_addresses')
    print(f"   保存失败: {error.description}, 子记录错误: {error.data}")
    print(f"   回滚后 id={bob.id}, 联系人数量={Contact.find().count()}")

# ============================================================================
# 3. 关系连接查询
# ============================================================================

print("\n3. 关系连接查询")

store = Contact.find(Query().join_relation('company', select_attributes=True, type='LEFT'))
print(f"   SQL:\n{store}")
for row in store:
    print(f"   {row.name} @ {row.related('company').name}")

# ============================================================================
# 4. 修改关系并保存
# ============================================================================

print("\n4. 修改关系并保存")

alice = Contact.find_by_pk(contact.id)
alice.related('email_addresses')[0].email = 'alice@new.example.com'
alice.set_related('email_addresses', [{'email': 'alice@home.example.com'}])
print(f"   修改: {alice.get_modified()}")
alice.save()
print(f"   邮箱: {sorted(e.email for e in Contact.find_by_pk(contact.id).related('email_addresses'))}")

# ============================================================================
# 5. 删除
# ============================================================================

print("\n5. 删除")

company = Company.find().single()
try:
    company.delete()
except DeleteRestrictError as e:
    print(f"   {type(e).__name__}: {e}")

alice.delete()
print(f"   软删除后查询: {Contact.find().count()}，按主键加载: deleted={Contact.find_by_pk(alice.id).deleted}")
print(f"   级联删除后邮箱数量: {EmailAddress.find().count()}")

connection.close()
