"""
Pyrelate 删除测试

测试内容：
- 软删除：查询默认排除，按主键仍可加载
- 硬删除与 delete_hard
- RESTRICT 阻止删除，CASCADE 级联删除
- 删除事件
"""

from typing import Any

import pytest

from pyrelate import DeleteRestrictError, Query, UnsupportedOperationError


def make_contact(models: Any, name: str = 'Alice', **values: Any) -> Any:
    contact = models.Contact(name=name, **values)
    assert contact.save()
    return contact


class TestSoftDelete:
    """软删除"""

    def test_soft_deleted_hidden_from_find(self, models: Any, rows: Any) -> None:
        contact = make_contact(models)
        make_contact(models, 'Bob')
        assert contact.delete()

        assert contact.is_deleted
        assert not contact.is_new
        assert contact.deleted is True
        assert rows('contacts') == 2
        assert [c.name for c in models.Contact.find()] == ['Bob']
        assert models.Contact.find(Query().with_deleted()).count() == 2

    def test_find_by_pk_includes_deleted(self, models: Any) -> None:
        contact = make_contact(models)
        assert contact.delete()
        loaded = models.Contact.find_by_pk(contact.id)
        assert loaded is not None
        assert loaded.deleted is True

    def test_delete_twice(self, models: Any, rows: Any) -> None:
        contact = make_contact(models)
        assert contact.delete()
        assert contact.delete()
        assert rows('contacts') == 1

    def test_delete_hard(self, models: Any, rows: Any) -> None:
        contact = make_contact(models)
        assert contact.delete_hard()
        assert rows('contacts') == 0
        assert contact.is_deleted
        assert contact.is_new

    def test_delete_hard_requires_soft_delete_column(self, models: Any) -> None:
        tag = models.Tag(name='vip')
        assert tag.save()
        with pytest.raises(UnsupportedOperationError):
            tag.delete_hard()


class TestHardDelete:
    """没有软删除列的表"""

    def test_delete_removes_row(self, models: Any, rows: Any) -> None:
        tag = models.Tag(name='vip')
        assert tag.save()
        assert tag.delete()
        assert rows('tags') == 0

    def test_new_record(self, models: Any, rows: Any) -> None:
        """新记录删除直接成功，不执行 SQL"""
        tag = models.Tag(name='vip')
        assert tag.delete()
        assert rows('tags') == 0

    def test_composite_key(self, models: Any, rows: Any) -> None:
        link = models.ContactTag(contact_id=1, tag_id=2)
        assert link.save()
        assert models.ContactTag(contact_id=1, tag_id=3).save()
        assert models.ContactTag.find_by_pk((1, 2)).delete()
        assert rows('contact_tags') == 1


class TestRelationalDelete:
    """RESTRICT / CASCADE"""

    def test_restrict(self, models: Any, rows: Any) -> None:
        company = models.Company(name='Acme')
        assert company.save()
        make_contact(models, company_id=company.id)

        with pytest.raises(DeleteRestrictError) as exc_info:
            company.delete()
        assert exc_info.value.relation.name == 'contacts'
        assert not models.Company.find_by_pk(company.id).deleted

    def test_restrict_ignores_soft_deleted(self, models: Any) -> None:
        """已软删除的关联记录不再阻止删除"""
        company = models.Company(name='Acme')
        assert company.save()
        contact = make_contact(models, company_id=company.id)
        assert contact.delete()
        assert company.delete()

    def test_cascade(self, models: Any, rows: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('email_addresses', [{'email': 'a@example.com'}, {'email': 'b@example.com'}])
        contact.set_related('profile', {'bio': 'Hi'})
        assert contact.save()

        loaded = models.Contact.find_by_pk(contact.id)
        assert loaded.delete()
        assert rows('email_addresses') == 0
        assert rows('profiles') == 0
        assert rows('contacts') == 1

    def test_via_relation_not_cascaded(self, models: Any, rows: Any) -> None:
        contact = models.Contact(name='Alice')
        contact.set_related('tags', [{'name': 'vip'}])
        assert contact.save()
        assert contact.delete_hard()
        assert rows('tags') == 1


class TestDeleteEvents:
    """删除事件"""

    def test_before_delete_false_cancels(self, registry: Any, models: Any) -> None:
        contact = make_contact(models)
        registry.events.listen(models.Contact, 'before_delete', lambda r: False)
        assert not contact.delete()
        assert not contact.is_deleted
        assert models.Contact.find().count() == 1

    def test_after_delete_receives_record(self, registry: Any, models: Any) -> None:
        deleted = []
        registry.events.listen(models.Tag, 'after_delete', deleted.append)
        tag = models.Tag(name='vip')
        assert tag.save()
        assert tag.delete()
        assert deleted == [tag]
