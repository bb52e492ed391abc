"""
Pyrelate 关系定义

关系在记录类的 define_relations() 中声明，注册表完成定义后冻结：

    class Contact(Base):
        @classmethod
        def define_relations(cls):
            cls.has_many('email_addresses', 'EmailAddress', {'id': 'contact_id'})
            cls.belongs_to('company', 'Company', {'company_id': 'id'})
            cls.has_many('tags', 'Tag', {'id': 'contact_id'}).via('ContactTag', {'tag_id': 'id'})
            cls.has_many('notes', 'Note', {'id': 'contact_id'}).on_delete(DeleteAction.CASCADE)
"""

from enum import Enum
from typing import Dict, Optional, Type, Union, TYPE_CHECKING

from ..common.exceptions import SchemaError
from ..query.builder import Query

if TYPE_CHECKING:
    from .record import Record
    from .store import RelationStore

RecordRef = Union[str, Type['Record']]


class DeleteAction(Enum):
    """删除所属记录时对关联记录的处理方式"""
    NONE = 'none'
    RESTRICT = 'restrict'
    CASCADE = 'cascade'


class Relation:
    """
    关系定义

    Attributes:
        name: 关系名
        from_record: 声明关系的记录类
        keys: {本表列: 对方列}，via 关系时对方为连接表
        has_many: 是否一对多
        via_keys: {连接表列: 目标表列}
        delete_action: 删除策略
    """

    def __init__(self,
                 name: str,
                 from_record: Type['Record'],
                 to_record: RecordRef,
                 keys: Dict[str, str],
                 has_many: bool = False,
                 belongs_to: bool = False):
        if not keys:
            raise SchemaError(f"Relation '{name}' has no keys")
        if has_many and belongs_to:
            raise SchemaError(f"Relation '{name}' can't be both has many and belongs to")
        self.name = name
        self.from_record = from_record
        self._to_record = to_record
        self.keys: Dict[str, str] = dict(keys)
        self.has_many = has_many
        self._belongs_to = belongs_to
        self._via_record: Optional[RecordRef] = None
        self.via_keys: Dict[str, str] = {}
        self.delete_action = DeleteAction.NONE
        self._query: Optional[Query] = None
        self._frozen = False

    def _check_mutable(self) -> None:
        if self._frozen:
            raise SchemaError(f"Relation '{self.name}' is already defined and can't be changed")

    def via(self, via_record: RecordRef, via_keys: Dict[str, str]) -> 'Relation':
        """
        通过连接表建立多对多关系

        Args:
            via_record: 连接表记录类
            via_keys: {连接表列: 目标表列}
        """
        self._check_mutable()
        if self._belongs_to:
            raise SchemaError(f"Belongs to relation '{self.name}' can't use a link table")
        self._via_record = via_record
        self.via_keys = dict(via_keys)
        return self

    def on_delete(self, action: DeleteAction) -> 'Relation':
        self._check_mutable()
        self.delete_action = action
        return self

    def set_query(self, query: Query) -> 'Relation':
        """附加到关系查询上的额外条件"""
        self._check_mutable()
        self._query = query
        return self

    def freeze(self) -> None:
        self._frozen = True

    @property
    def to_record(self) -> Type['Record']:
        if isinstance(self._to_record, str):
            self._to_record = self.from_record.get_registry().resolve(self._to_record)
        return self._to_record

    @property
    def via_record(self) -> Optional[Type['Record']]:
        if isinstance(self._via_record, str):
            self._via_record = self.from_record.get_registry().resolve(self._via_record)
        return self._via_record

    @property
    def is_belongs_to(self) -> bool:
        """外键在本表，目标记录必须先保存"""
        return self._belongs_to

    def get_query(self) -> Optional[Query]:
        return self._query

    def keys_mirror(self, other: 'Relation') -> bool:
        """other 的键是否与本关系互为镜像"""
        return {to: frm for frm, to in self.keys.items()} == other.keys

    def find_parent(self) -> Optional['Relation']:
        """目标记录类上指回本关系所属类的反向关系"""
        return self.to_record.find_parent_relation(self)

    def get(self, record: 'Record') -> 'RelationStore':
        """
        创建由 record 的键值限定的 RelationStore

        Args:
            record: 所属记录

        Returns:
            RelationStore，record 的键值缺失时不关联查询
        """
        from .store import RelationStore

        values = {frm: getattr(record, frm) for frm in self.keys}
        if any(v is None for v in values.values()):
            return RelationStore(self, record, None)

        query = self._query.clone() if self._query is not None else Query()
        query.set_relation(self)

        if self.via_record is not None:
            link_alias = f'{self.name}Link'
            on = {}
            alias = query.get_table_alias()
            criteria = []
            for via_from, via_to in self.via_keys.items():
                criteria.append(f'`{link_alias}`.`{via_from}` = `{alias}`.`{via_to}`')
            query.join(self.via_record, link_alias, ' AND '.join(criteria))
            for frm, to in self.keys.items():
                on[f'{link_alias}.{to}'] = values[frm]
            query.and_where(on)
        else:
            query.and_where({to: values[frm] for frm, to in self.keys.items()})

        return RelationStore(self, record, query)

    def __repr__(self) -> str:
        target = self._to_record if isinstance(self._to_record, str) else self._to_record.__name__
        return f"Relation(name='{self.name}', to={target}, has_many={self.has_many})"
