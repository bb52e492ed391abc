"""
Pyrelate 关系测试

测试内容：
- 一对多：键传播、暂存读写、字典载荷、markDeleted、负数主键
- belongs-to：父记录先保存，外键回填
- 一对一：赋值与解除
- via 连接表：创建连接、幂等、移除
- 关系元数据：反向关系、路径、冻结
"""

from typing import Any

import pytest

from pyrelate import (
    Column,
    Query,
    RelationNotFoundError,
    RelationStore,
    SchemaError,
    UnsupportedOperationError,
    declarative_base,
)


def make_contact(models: Any, name: str = 'Alice', **values: Any) -> Any:
    contact = models.Contact(name=name, **values)
    assert contact.save()
    return contact


class TestHasMany:
    """一对多关系"""

    def test_new_children_receive_parent_key(self, models: Any, rows: Any) -> None:
        """父记录插入后子记录获得外键"""
        contact = models.Contact(name='Alice')
        contact.set_related('email_addresses', [
            {'email': 'alice@example.com'},
            {'email': 'alice@work.example.com', 'type': 'home'},
        ])
        assert contact.save()

        emails = models.EmailAddress.find(Query().order_by({'id': 'ASC'})).all()
        assert [e.email for e in emails] == ['alice@example.com', 'alice@work.example.com']
        assert all(e.contact_id == contact.id for e in emails)
        assert rows('email_addresses') == 2

    def test_related_returns_relation_store(self, models: Any) -> None:
        contact = make_contact(models)
        store = contact.related('email_addresses')
        assert isinstance(store, RelationStore)
        assert store.all() == []
        assert contact.relation_is_fetched('email_addresses')

    def test_loaded_children_link_back_to_owner(self, models: Any) -> None:
        """通过关系加载的子记录上的反向关系指向所属记录"""
        contact = models.Contact(name='Alice')
        contact.set_related('email_addresses', [{'email': 'alice@example.com'}])
        assert contact.save()

        loaded = models.Contact.find_by_pk(contact.id)
        email = loaded.related('email_addresses').single()
        assert email.relation_is_fetched('contact')
        assert email.related('contact') is loaded

    def test_staged_reads_do_not_requery(self, models: Any, connection: Any) -> None:
        """写入后读取只返回暂存列表"""
        contact = make_contact(models)
        store = contact.related('email_addresses')
        store.add({'email': 'a@example.com'})
        connection.execute(
            "INSERT INTO email_addresses (contact_id, email) VALUES (?, 'b@example.com')", (contact.id,)
        )
        assert [e.email for e in store] == ['a@example.com']
        assert store.count() == 1

    def test_append_to_loaded_store(self, models: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('email_addresses', [{'email': 'a@example.com'}])
        assert contact.save()

        loaded = models.Contact.find_by_pk(contact.id)
        store = loaded.related('email_addresses')
        store.all()
        store.append(models.EmailAddress(email='b@example.com'))
        assert loaded.is_modified()
        assert loaded.save()
        assert models.Contact.find_by_pk(contact.id).related('email_addresses').count() == 2

    def test_modified_child_saved_through_parent(self, models: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('email_addresses', [{'email': 'a@example.com'}])
        assert contact.save()

        loaded = models.Contact.find_by_pk(contact.id)
        email = loaded.related('email_addresses')[0]
        email.email = 'changed@example.com'
        assert loaded.is_modified()
        assert loaded.get_modified() == ['email_addresses']
        assert loaded.save()
        assert models.EmailAddress.find().single().email == 'changed@example.com'

    def test_dict_with_primary_key_updates_existing(self, models: Any, rows: Any) -> None:
        """带主键的字典载荷合并到已有记录"""
        contact = models.Contact(name='Alice')
        contact.set_related('email_addresses', [{'email': 'a@example.com'}])
        assert contact.save()
        email_id = models.EmailAddress.find().single().id

        loaded = models.Contact.find_by_pk(contact.id)
        loaded.set_related('email_addresses', [{'id': email_id, 'email': 'new@example.com'}])
        assert loaded.save()
        assert rows('email_addresses') == 1
        assert models.EmailAddress.find_by_pk(email_id).email == 'new@example.com'

    def test_negative_primary_key_is_new(self, models: Any, rows: Any) -> None:
        """负数主键视为客户端临时 ID"""
        contact = make_contact(models)
        contact.set_related('email_addresses', [{'id': -1, 'email': 'tmp@example.com'}])
        assert contact.save()
        email = models.EmailAddress.find().single()
        assert email.id > 0
        assert rows('email_addresses') == 1

    def test_mark_deleted_payload_stages_delete(self, models: Any, rows: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('email_addresses', [{'email': 'a@example.com'}, {'email': 'b@example.com'}])
        assert contact.save()
        first = models.EmailAddress.find(Query().order_by({'id': 'ASC'})).single()

        loaded = models.Contact.find_by_pk(contact.id)
        loaded.set_related('email_addresses', [{'id': first.id, 'markDeleted': True}])
        assert loaded.is_modified()
        assert loaded.save()
        assert rows('email_addresses') == 1
        assert models.EmailAddress.find_by_pk(first.id) is None

    def test_remove_stages_delete(self, models: Any, rows: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('email_addresses', [{'email': 'a@example.com'}, {'email': 'b@example.com'}])
        assert contact.save()

        loaded = models.Contact.find_by_pk(contact.id)
        store = loaded.related('email_addresses')
        victim = store[1]
        store.remove(victim)
        assert [e.email for e in store] == ['a@example.com']
        assert loaded.save()
        assert rows('email_addresses') == 1

    def test_set_has_many_to_none_raises(self, models: Any) -> None:
        contact = models.Contact(name='Alice')
        with pytest.raises(UnsupportedOperationError):
            contact.set_related('email_addresses', None)

    def test_set_values_routes_relations(self, models: Any) -> None:
        contact = models.Contact()
        contact.set_values({'name': 'Alice', 'email_addresses': [{'email': 'a@example.com'}]})
        assert contact.save()
        assert models.EmailAddress.find().single().contact_id == contact.id

    def test_unbound_owner_has_empty_store(self, models: Any) -> None:
        """所属记录没有键值时集合为空，不查询"""
        contact = models.Contact(name='Alice')
        store = contact.related('email_addresses')
        assert store.is_loaded()
        assert store.count() == 0

    def test_has(self, models: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('email_addresses', [{'email': 'a@example.com'}])
        assert contact.save()
        other = make_contact(models, 'Bob')

        email = models.EmailAddress.find().single()
        assert models.Contact.find_by_pk(contact.id).related('email_addresses').has(email)
        assert not other.related('email_addresses').has(email)

    def test_reset_discards_staged_changes(self, models: Any) -> None:
        contact = make_contact(models)
        store = contact.related('email_addresses')
        store.add({'email': 'a@example.com'})
        store.reset()
        assert store.all() == []
        assert not contact.is_modified()

    def test_to_dict_with_relation(self, models: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('email_addresses', [{'email': 'a@example.com'}])
        assert contact.save()
        data = models.Contact.find_by_pk(contact.id).to_dict(['name', 'email_addresses'])
        assert data['name'] == 'Alice'
        assert [e['email'] for e in data['email_addresses']] == ['a@example.com']


class TestBelongsTo:
    """belongs-to 关系"""

    def test_parent_saved_before_child(self, models: Any) -> None:
        """子记录外键由先保存的父记录填充，必填校验不受影响"""
        email = models.EmailAddress(email='bob@example.com')
        email.set_related('contact', {'name': 'Bob'})
        assert email.save()

        contact = models.Contact.find().single()
        assert contact.name == 'Bob'
        assert email.contact_id == contact.id

    def test_assign_existing_record(self, models: Any) -> None:
        company = models.Company(name='Acme')
        assert company.save()
        contact = models.Contact(name='Alice')
        contact.set_related('company', company)
        assert contact.company_id == company.id
        assert contact.save()
        assert models.Contact.find_by_pk(contact.id).related('company').name == 'Acme'

    def test_dict_with_key_sets_foreign_key(self, models: Any) -> None:
        company = models.Company(name='Acme')
        assert company.save()
        contact = models.Contact(name='Alice')
        contact.set_related('company', {'id': company.id})
        assert contact.company_id == company.id
        assert contact.save()

    def test_unset_belongs_to(self, models: Any) -> None:
        company = models.Company(name='Acme')
        assert company.save()
        contact = make_contact(models, company_id=company.id)
        contact.set_related('company', None)
        assert contact.company_id is None
        assert contact.related('company') is None
        assert contact.save()
        assert models.Contact.find_by_pk(contact.id).company_id is None

    def test_parent_relation_of_has_many_child_is_owner(self, models: Any) -> None:
        contact = models.Contact(name='Alice')
        email = models.EmailAddress(email='a@example.com')
        contact.related('email_addresses').add(email)
        assert email.related('contact') is contact


class TestHasOne:
    """一对一关系"""

    def test_set_and_load(self, models: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('profile', {'bio': 'Hello'})
        assert contact.save()

        loaded = models.Contact.find_by_pk(contact.id)
        profile = loaded.related('profile')
        assert profile.bio == 'Hello'
        assert profile.contact_id == contact.id
        assert profile.related('contact') is loaded

    def test_replace_single_record(self, models: Any, rows: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('profile', {'bio': 'first'})
        contact.set_related('profile', {'bio': 'second'})
        assert contact.related('profile').bio == 'second'
        assert contact.save()
        assert rows('profiles') == 1

    def test_unset_clears_target_key(self, models: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('profile', {'bio': 'Hello'})
        assert contact.save()

        loaded = models.Contact.find_by_pk(contact.id)
        loaded.set_related('profile', None)
        assert loaded.save()
        assert models.Profile.find().single().contact_id is None
        assert models.Contact.find_by_pk(contact.id).related('profile') is None

    def test_cleared_foreign_key_not_restored_by_back_reference(self, models: Any) -> None:
        """直接清空的外键不会被已加载的反向关系改回"""
        contact = models.Contact(name='Alice')
        contact.set_related('profile', {'bio': 'Hello'})
        assert contact.save()

        profile = models.Contact.find_by_pk(contact.id).related('profile')
        assert profile.relation_is_fetched('contact')
        profile.contact_id = None
        assert profile.save()
        assert models.Profile.find_by_pk(profile.id).contact_id is None

    def test_back_reference_still_fills_key(self, models: Any) -> None:
        """外键未被直接修改时，仍从反向关系记录复制键值"""
        contact = models.Contact(name='Alice')
        contact.set_related('profile', {'bio': 'Hello'})
        assert contact.save()

        profile = models.Contact.find_by_pk(contact.id).related('profile')
        profile.bio = 'Changed'
        assert profile.save()
        stored = models.Profile.find_by_pk(profile.id)
        assert stored.bio == 'Changed'
        assert stored.contact_id == contact.id


class TestVia:
    """via 连接表关系"""

    def test_new_target_and_link_created(self, models: Any, rows: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('tags', [{'name': 'vip'}, {'name': 'friend'}])
        assert contact.save()
        assert rows('tags') == 2
        assert rows('contact_tags') == 2

        loaded = models.Contact.find_by_pk(contact.id)
        names = sorted(t.name for t in loaded.related('tags'))
        assert names == ['friend', 'vip']

    def test_link_existing_target(self, models: Any, rows: Any) -> None:
        tag = models.Tag(name='vip')
        assert tag.save()
        contact = models.Contact(name='Alice')
        contact.set_related('tags', [tag])
        assert contact.save()
        assert rows('tags') == 1
        assert rows('contact_tags') == 1

    def test_linking_twice_is_idempotent(self, models: Any, rows: Any) -> None:
        """已存在的连接不重复创建"""
        tag = models.Tag(name='vip')
        assert tag.save()
        contact = make_contact(models)
        contact.set_related('tags', [tag])
        assert contact.save()

        loaded = models.Contact.find_by_pk(contact.id)
        loaded.set_related('tags', [models.Tag.find_by_pk(tag.id)])
        assert not loaded.is_modified()
        assert loaded.save()
        assert rows('contact_tags') == 1

    def test_remove_deletes_link_only(self, models: Any, rows: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('tags', [{'name': 'vip'}])
        assert contact.save()

        loaded = models.Contact.find_by_pk(contact.id)
        store = loaded.related('tags')
        store.remove(store.single())
        assert loaded.save()
        assert rows('contact_tags') == 0
        assert rows('tags') == 1

    def test_has_checks_link(self, models: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('tags', [{'name': 'vip'}])
        assert contact.save()
        other = models.Tag(name='other')
        assert other.save()

        loaded = models.Contact.find_by_pk(contact.id)
        tag = models.Tag.find({'name': 'vip'}).single()
        assert loaded.related('tags').has(tag)
        assert not loaded.related('tags').has(other)


class TestRelationMetadata:
    """关系元数据"""

    def test_find_parent(self, models: Any) -> None:
        relation = models.Contact.get_relation('email_addresses')
        parent = relation.find_parent()
        assert parent is models.EmailAddress.get_relation('contact')
        assert models.Contact.get_relation('tags').find_parent() is None

    def test_dotted_path(self, models: Any) -> None:
        relation = models.EmailAddress.get_relation('contact.company')
        assert relation.to_record is models.Company

    def test_unknown_relation(self, models: Any) -> None:
        with pytest.raises(RelationNotFoundError):
            models.Contact.get_relation('nope')

    def test_relations_frozen_after_definition(self, models: Any) -> None:
        """定义完成后不能再添加或修改关系"""
        relation = models.Contact.get_relation('tags')
        with pytest.raises(SchemaError):
            models.Contact.has_many('more', 'Tag', {'id': 'contact_id'})
        with pytest.raises(SchemaError):
            relation.on_delete(None)

    def test_relation_name_collides_with_column(self, registry: Any) -> None:
        Base = declarative_base(registry)

        class Broken(Base):
            __tablename__ = 'broken'
            id = Column(int, primary_key=True)
            owner = Column(int)

            @classmethod
            def define_relations(cls):
                cls.belongs_to('owner', 'Broken', {'owner': 'id'})

        with pytest.raises(SchemaError):
            Broken.get_relations()
