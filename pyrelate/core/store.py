"""
Pyrelate 结果集

Store 是绑定到 Query 的惰性结果集，迭代时才执行 SQL：

    for contact in Contact.find({'company_id': 1}):
        ...
    first = Contact.find().single()

RelationStore 绑定到一个关系和所属记录，同时作为关系集合的暂存区：
一旦写入或读取过，所有读取都从暂存列表返回，不再重新查询。
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Type, TYPE_CHECKING

from ..common.actions import PermissionAction
from ..common.exceptions import UnsupportedOperationError
from ..query.builder import FetchMode, Query
from ..query.compiler import CompiledQuery, QueryBuilder
from ..query.criteria import Selectable
from .transaction import SaveAction, SaveContext

if TYPE_CHECKING:
    from .record import Record
    from .relation import Relation

logger = logging.getLogger(__name__)

# 关系载荷中的特殊键
IS_NEW_KEY = 'isNew'
MARK_DELETED_KEY = 'markDeleted'


class Store(Selectable):
    """查询结果集"""

    def __init__(self, record_class: Type['Record'], query: Optional[Query] = None):
        self.record_class = record_class
        self._query = Query.normalize(query)

    def get_query(self) -> Query:
        return self._query

    @property
    def query(self) -> Query:
        return self._query

    def build(self) -> CompiledQuery:
        """编译为 SQL"""
        return QueryBuilder(self.record_class).build_select(self._query)

    def execute(self, query: Optional[Query] = None) -> Any:
        """执行查询，返回游标"""
        compiled = QueryBuilder(self.record_class).build_select(query or self._query)
        return self.record_class.get_registry().connection.execute(compiled.sql, compiled.bind_dict())

    def __iter__(self) -> Iterator[Any]:
        return self._fetch(self._query)

    def _fetch(self, query: Query) -> Iterator[Any]:
        mode = query.get_fetch_mode()
        for row in self.execute(query):
            if mode is FetchMode.COLUMN:
                yield row[0]
            elif mode is FetchMode.ROW:
                yield dict(row)
            else:
                yield self._hydrate(dict(row))

    def _hydrate(self, row: Dict[str, Any]) -> 'Record':
        return self.record_class._hydrate(
            row, self._query.get_allowed_permission_types(), self._parent_links()
        )

    def _parent_links(self) -> Optional[Dict[str, 'Record']]:
        return None

    def all(self) -> List[Any]:
        return list(self)

    def single(self) -> Any:
        """返回第一条结果，没有时返回 None"""
        return next(self._fetch(self._query.clone().limit(1)), None)

    def count(self) -> int:
        """匹配的总行数（忽略 limit / offset / order）"""
        query = self._query.clone().limit(0).offset(0).order_by([])
        query.fetch_mode(FetchMode.COLUMN)
        compiled = QueryBuilder(self.record_class).build_select(query)
        sql = f"SELECT count(*) FROM (\n{compiled.sql}\n) `countQuery`"
        cursor = self.record_class.get_registry().connection.execute(sql, compiled.bind_dict())
        return int(cursor.fetchone()[0])

    def clone(self) -> 'Store':
        return Store(self.record_class, self._query.clone())

    def __str__(self) -> str:
        return self.build().sql

    def __repr__(self) -> str:
        return f"Store({self.record_class.__name__})"


@dataclass
class StagedRecord:
    """暂存的关系记录及其保存操作"""
    record: 'Record'
    action: SaveAction
    # 一对一关系解除后仍需保存，但不再属于该关系
    detached: bool = False


class RelationStore(Store):
    """关系结果集"""

    def __init__(self, relation: 'Relation', owner: 'Record', query: Optional[Query]):
        """
        Args:
            relation: 关系定义
            owner: 所属记录
            query: 关系查询，None 表示所属记录还没有键值，集合为空
        """
        super().__init__(relation.to_record, query)
        self.relation = relation
        self.owner = owner
        self._entries: Optional[List[StagedRecord]] = None if query is not None else []
        self._assigned = False
        self.failed_record: Optional['Record'] = None

    @classmethod
    def loaded(cls, relation: 'Relation', owner: 'Record', records: Iterable['Record']) -> 'RelationStore':
        """用已加载的记录创建（关系连接或父记录回指）"""
        store = relation.get(owner)
        store._entries = [StagedRecord(r, SaveAction.UPDATE) for r in records]
        return store

    def _parent_links(self) -> Optional[Dict[str, 'Record']]:
        if self.relation.via_record is not None:
            return None
        parent = self.relation.find_parent()
        if parent is None:
            return None
        return {parent.name: self.owner}

    # ================== 读取 ==================

    def _records(self) -> List['Record']:
        return [e.record for e in self._entries or [] if e.action is not SaveAction.DELETE and not e.detached]

    def __iter__(self) -> Iterator[Any]:
        if self._entries is None:
            yield from super().__iter__()
        else:
            yield from self._records()

    def all(self) -> List['Record']:
        if self._entries is None:
            self._entries = [StagedRecord(r, SaveAction.UPDATE) for r in super().__iter__()]
        return self._records()

    def single(self) -> Optional['Record']:
        if self._entries is None:
            if self.relation.has_many:
                return super().single()
            record = super().single()
            self._entries = [StagedRecord(record, SaveAction.UPDATE)] if record is not None else []
        records = self._records()
        return records[0] if records else None

    def count(self) -> int:
        if self._entries is None:
            return super().count()
        return len(self._records())

    def __getitem__(self, index: int) -> 'Record':
        return self.all()[index]

    def is_loaded(self) -> bool:
        return self._entries is not None

    def is_assigned(self) -> bool:
        """是否通过写操作修改过"""
        return self._assigned

    # ================== 写入 ==================

    def __setitem__(self, index: int, value: Any) -> None:
        self.all()
        self._set(value, index)

    def __delitem__(self, index: int) -> None:
        self.remove(self.all()[index])

    def append(self, value: Any) -> None:
        self._set(value, None)

    def add(self, value: Any) -> Optional['Record']:
        """添加记录或属性字典，返回规范化后的记录"""
        return self._set(value, None)

    def assign(self, values: Iterable[Any]) -> None:
        """一对多赋值：依次添加到暂存列表"""
        if self._entries is None:
            self._entries = []
        self._assigned = True
        for value in values:
            self._set(value, None)

    def set_single(self, value: Any) -> None:
        """一对一赋值，None 表示解除关联"""
        if value is None:
            self._clear_has_one()
        else:
            self._set(value, 0)

    def remove(self, record: 'Record') -> None:
        """暂存删除操作；via 关系只删除连接记录"""
        self.all()
        self._assigned = True
        for entry in self._entries:
            if entry.record is record or entry.record.equals(record):
                entry.action = SaveAction.DELETE
                return
        self._entries.append(StagedRecord(record, SaveAction.DELETE))

    def _set(self, value: Any, offset: Optional[int]) -> Optional['Record']:
        if value is None:
            if self.relation.has_many:
                raise UnsupportedOperationError(f"Can't set has many relation '{self.relation.name}' to None")
            self._clear_has_one()
            return None

        record, action = self.normalize(value)
        self._set_parent_relation(record)

        if self._entries is None:
            self._entries = []
        self._assigned = True

        for entry in self._entries:
            if entry.record is record:
                entry.action = action
                entry.detached = False
                return record

        staged = StagedRecord(record, action)
        if offset is not None and offset < len(self._entries):
            self._entries[offset] = staged
        else:
            self._entries.append(staged)
        return record

    def _clear_has_one(self) -> None:
        if self.relation.is_belongs_to:
            for frm in self.relation.keys:
                setattr(self.owner, frm, None)
            self._entries = []
            self._assigned = True
            return
        record = self.single()
        if record is not None:
            for to in self.relation.keys.values():
                setattr(record, to, None)
            parent = self.relation.find_parent()
            if parent is not None:
                record._relations.pop(parent.name, None)
            self._entries = [StagedRecord(record, SaveAction.UPDATE, detached=True)]
            self._assigned = True

    def _set_parent_relation(self, record: 'Record') -> None:
        """把目标记录上的反向关系指向所属记录"""
        if self.relation.via_record is not None:
            return
        parent = self.relation.find_parent()
        if parent is None or record.relation_is_fetched(parent.name):
            return
        record._set_loaded_relation(parent.name, [self.owner])

    def normalize(self, value: Any) -> Tuple['Record', SaveAction]:
        """
        把记录或属性字典规范化为目标记录

        字典带有 isNew=False 时直接实例化；否则按主键查找已有记录并合并属性，
        找不到时新建。字典带有 markDeleted=True 时暂存为删除。

        Returns:
            (记录, 保存操作)
        """
        to_record = self.relation.to_record
        via = self.relation.via_record is not None

        if isinstance(value, to_record):
            if not via:
                self.apply_keys(value)
            return value, self._action_for(value)

        if not isinstance(value, dict):
            raise TypeError(
                f"Relation '{self.relation.name}' expects {to_record.__name__} or dict, got {type(value).__name__}"
            )

        values = dict(value)
        delete = bool(values.pop(MARK_DELETED_KEY, False))
        is_new = values.pop(IS_NEW_KEY, None)

        if not via:
            self._apply_keys_to_dict(values)

        if is_new is False:
            record = to_record._instantiate(values)
        else:
            pk = self._build_pk(values)
            record = to_record.find_by_pk(pk) if pk is not None else None
            if record is None:
                record = to_record()
            record.set_values(values)

        if not via:
            self.apply_keys(record)
        return record, SaveAction.DELETE if delete else self._action_for(record)

    @staticmethod
    def _action_for(record: 'Record') -> SaveAction:
        return SaveAction.INSERT if record.is_new else SaveAction.UPDATE

    def _build_pk(self, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """从属性字典取主键，缺失、空值或负数（按配置）视为没有主键"""
        options = self.record_class.get_registry().options
        pk = {}
        for name in self.record_class.get_table().primary_key:
            value = values.get(name)
            if value is None or value == '':
                values.pop(name, None)
                return None
            if options.negative_pk_is_new and isinstance(value, (int, float)) and value < 0:
                values.pop(name, None)
                return None
            pk[name] = value
        return pk

    def _apply_keys_to_dict(self, values: Dict[str, Any]) -> None:
        for frm, to in self.relation.keys.items():
            if self.relation.is_belongs_to:
                if values.get(to) is not None:
                    column = self.owner.get_table().get_column(frm)
                    setattr(self.owner, frm, column.normalize_input(values[to]))
            else:
                owner_value = getattr(self.owner, frm)
                if owner_value is not None:
                    values[to] = owner_value

    def apply_keys(self, record: 'Record') -> None:
        """在所属记录与目标记录之间复制键值"""
        for frm, to in self.relation.keys.items():
            if self.relation.is_belongs_to:
                value = getattr(record, to)
                if value is not None:
                    setattr(self.owner, frm, value)
            else:
                value = getattr(self.owner, frm)
                if value is not None:
                    setattr(record, to, value)

    def set_new_keys(self) -> None:
        for entry in self._entries or []:
            self.apply_keys(entry.record)

    # ================== via ==================

    def build_via_pk(self, record: 'Record') -> Dict[str, Any]:
        """连接记录的键：keys 映射所属记录，via_keys 映射目标记录"""
        pk = {to: getattr(self.owner, frm) for frm, to in self.relation.keys.items()}
        for via_from, via_to in self.relation.via_keys.items():
            pk[via_from] = getattr(record, via_to)
        return pk

    def _find_via_record(self, record: 'Record') -> Optional['Record']:
        pk = self.build_via_pk(record)
        if any(v is None for v in pk.values()):
            return None
        query = Query().where(pk).allow_permission_types(PermissionAction.ALL)
        return Store(self.relation.via_record, query).single()

    def has_via_record(self, record: 'Record') -> bool:
        return self._find_via_record(record) is not None

    def _create_via_record(self, record: 'Record', context: SaveContext) -> bool:
        if self.has_via_record(record):
            return True
        via = self.relation.via_record()
        for name, value in self.build_via_pk(record).items():
            setattr(via, name, value)
        if not via._save(context):
            logger.warning(
                "Could not create link record %s: %s", type(via).__name__, via.get_validation_errors()
            )
            self.failed_record = via
            return False
        return True

    def _delete_via_record(self, record: 'Record') -> bool:
        via = self._find_via_record(record)
        if via is None:
            return True
        if not via._process_delete(True, None):
            self.failed_record = via
            return False
        return True

    # ================== 状态 ==================

    def is_modified(self, visited: Optional[set] = None) -> bool:
        """
        关系是否有待保存的修改

        belongs-to 关系只要被赋值过就算修改；其余关系检查暂存记录本身是否修改、
        是否待删除，以及 via 连接记录是否需要创建或删除。
        """
        if self._entries is None:
            return False
        if visited is None:
            visited = set()
        if self.relation.is_belongs_to:
            return self._assigned and bool(self._entries)
        via = self.relation.via_record is not None
        for entry in self._entries:
            record = entry.record
            if entry.action is SaveAction.DELETE:
                if via:
                    if self.has_via_record(record):
                        return True
                elif not record.is_new and not record.is_deleted:
                    return True
                continue
            if record.is_new or record._is_modified(visited):
                return True
            if via and not self.has_via_record(record):
                return True
        return False

    def has(self, record: 'Record') -> bool:
        """记录是否属于该关系"""
        if self.relation.via_record is not None:
            return self.has_via_record(record)
        if self._entries is not None:
            return any(r is record or r.equals(record) for r in self._records())
        store = Store(self.record_class, self._query.clone().where(record.pk()))
        return store.single() is not None

    def reset(self) -> None:
        """丢弃暂存的修改，下次读取重新查询"""
        self._entries = None if self._query_is_bound() else []
        self._assigned = False

    def _query_is_bound(self) -> bool:
        return all(getattr(self.owner, frm) is not None for frm in self.relation.keys)

    # ================== 保存 ==================

    def save(self, context: SaveContext) -> bool:
        """
        保存暂存的记录

        via 关系先保存目标记录再创建或删除连接记录；
        直接外键关系中，拥有方先复制键再保存目标，belongs-to 保存目标后再复制键。

        Returns:
            任一记录保存失败时返回 False，失败的记录在 failed_record 中
        """
        self.failed_record = None
        via = self.relation.via_record is not None
        belongs_to = self.relation.is_belongs_to
        for entry in list(self._entries or []):
            record = entry.record
            if entry.action is SaveAction.DELETE:
                if via:
                    ok = self._delete_via_record(record)
                else:
                    ok = record._process_delete(False, None)
                if not ok:
                    self.failed_record = self.failed_record or record
                    return False
                continue

            if via:
                if (record.is_new or record.is_modified()) and not record._save(context):
                    self.failed_record = record
                    return False
                if not self._create_via_record(record, context):
                    return False
                continue

            if not belongs_to and not entry.detached:
                self.apply_keys(record)
            if (record.is_new or record.is_modified()) and not record._save(context):
                self.failed_record = record
                return False
            if belongs_to:
                self.apply_keys(record)
        return True

    def __repr__(self) -> str:
        return f"RelationStore({type(self.owner).__name__}.{self.relation.name})"
