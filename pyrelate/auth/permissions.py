"""
Pyrelate 权限模型

每个记录类通过 internal_get_permissions() 指定一个权限模型：
- can(): 判断用户能否对单条记录执行操作（加载、保存、删除时调用）
- apply_to_query(): 向查询添加约束，只返回用户可读的记录
- before_create(): 新记录插入前的钩子

    class EmailAddress(Base):
        @classmethod
        def internal_get_permissions(cls):
            return ViaRelation('contact')
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Type, TYPE_CHECKING

from ..common.actions import PermissionAction
from ..query.builder import Query

if TYPE_CHECKING:
    from ..core.record import Record

logger = logging.getLogger(__name__)


class UserInterface(ABC):
    """当前用户接口"""

    @property
    @abstractmethod
    def id(self) -> Any:
        pass

    @property
    @abstractmethod
    def is_admin(self) -> bool:
        pass


@dataclass(frozen=True)
class StaticUser(UserInterface):
    """固定身份的用户"""
    user_id: Any
    admin: bool = False

    @property
    def id(self) -> Any:
        return self.user_id

    @property
    def is_admin(self) -> bool:
        return self.admin


class PermissionsModel:
    """权限模型基类"""

    def can(self, action: str, user: Optional[UserInterface], record: 'Record') -> bool:
        """
        判断用户能否对记录执行操作

        记录加载时被允许的操作类型不再检查。

        Args:
            action: PermissionAction 中的操作类型
            user: 当前用户，可能为 None
            record: 记录

        Returns:
            是否允许
        """
        allowed = record.get_allowed_permission_types()
        if PermissionAction.ALL in allowed or action in allowed:
            return True
        return self.internal_can(action, user, record)

    def internal_can(self, action: str, user: Optional[UserInterface], record: 'Record') -> bool:
        return False

    def apply_to_query(self, query: Query, user: Optional[UserInterface], record_class: Type['Record']) -> None:
        """
        限制查询只返回用户可读的记录

        查询已跳过读权限检查时不做任何修改。
        """
        allowed = query.get_allowed_permission_types()
        if PermissionAction.ALL in allowed or PermissionAction.READ in allowed:
            return
        self.internal_apply_to_query(query, user, record_class)

    def internal_apply_to_query(self, query: Query, user: Optional[UserInterface],
                                record_class: Type['Record']) -> None:
        pass

    def before_create(self, record: 'Record') -> None:
        pass


class AdminsOnly(PermissionsModel):
    """只有管理员可以访问（默认）"""

    def internal_can(self, action: str, user: Optional[UserInterface], record: 'Record') -> bool:
        return user is not None and user.is_admin

    def internal_apply_to_query(self, query: Query, user: Optional[UserInterface],
                                record_class: Type['Record']) -> None:
        if user is None or not user.is_admin:
            query.and_where('0 = 1')


class Everyone(PermissionsModel):
    """所有人可以执行所有操作"""

    def internal_can(self, action: str, user: Optional[UserInterface], record: 'Record') -> bool:
        return True


class ReadOnly(PermissionsModel):
    """所有人可读，只有管理员可写"""

    def internal_can(self, action: str, user: Optional[UserInterface], record: 'Record') -> bool:
        if action == PermissionAction.READ:
            return True
        return user is not None and user.is_admin


class ViaRelation(PermissionsModel):
    """
    沿关系继承权限

    对记录的 READ 检查转为对关联记录的 READ 检查，其余操作转为关联记录的 WRITE 检查。
    查询时添加 EXISTS 子查询，只返回关联记录可读的记录。
    """

    def __init__(self, relation_name: str):
        self.relation_name = relation_name

    def internal_can(self, action: str, user: Optional[UserInterface], record: 'Record') -> bool:
        if record.get_relation(self.relation_name).has_many:
            candidates = record.related(self.relation_name).all()
        else:
            related = record.related(self.relation_name)
            candidates = [related] if related is not None else []
        if not candidates:
            logger.debug(
                "%s has no related '%s', denying '%s'", type(record).__name__, self.relation_name, action
            )
            return False
        relayed = PermissionAction.READ if action == PermissionAction.READ else PermissionAction.WRITE
        # 一对多关系中任一关联记录允许即可
        return any(related.can(relayed) for related in candidates)

    def internal_apply_to_query(self, query: Query, user: Optional[UserInterface],
                                record_class: Type['Record']) -> None:
        # 通过反向关系加载时所属记录已经过检查
        query_relation = query.get_relation()
        if query_relation is not None:
            parent = query_relation.find_parent()
            if parent is not None and parent.name == self.relation_name:
                return

        relation = record_class.get_relation(self.relation_name)
        target = relation.to_record
        name = self.relation_name
        outer = query.get_table_alias()

        sub = Query().table_alias(name).select('1')
        if relation.via_record is not None:
            link = f'{name}Link'
            on = ' AND '.join(
                f'`{link}`.`{via_from}` = `{name}`.`{via_to}`' for via_from, via_to in relation.via_keys.items()
            )
            sub.join(relation.via_record, link, on)
            for frm, to in relation.keys.items():
                sub.and_where(f'`{link}`.`{to}` = `{outer}`.`{frm}`')
        else:
            for frm, to in relation.keys.items():
                sub.and_where(f'`{name}`.`{to}` = `{outer}`.`{frm}`')

        query.and_where(['EXISTS', target.find(sub)])
        query.skip_read_permission()
