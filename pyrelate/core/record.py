"""
Pyrelate 记录

Record 是映射到一行数据的有状态实体：
- 保存当前值和修改基线（old attributes），跟踪修改
- 按需创建关系结果集（RelationStore）
- 校验，并在一个事务中按顺序保存关系图：先 belongs-to 父记录，再自身，最后子记录和连接记录
- 软删除 / 硬删除，处理 RESTRICT / CASCADE 关系

    class Contact(Base):
        __tablename__ = 'contacts'
        id = Column(int, primary_key=True, auto_increment=True)
        name = Column(str, length=100, required=True)
        deleted = Column(bool, default=False)

        @classmethod
        def define_relations(cls):
            cls.has_many('email_addresses', 'EmailAddress', {'id': 'contact_id'})

    contact = Contact(name='Alice')
    contact.set_related('email_addresses', [{'email': 'alice@example.com'}])
    contact.save()
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, List, Optional, Set, Union, TYPE_CHECKING

from ..common.actions import PermissionAction
from ..common.exceptions import (
    ConfigurationError,
    DeleteRestrictError,
    ForbiddenError,
    StorageError,
    UnknownPropertyError,
    UnsupportedOperationError,
)
from ..query.builder import Query
from ..query.compiler import JOINED_ATTRIBUTE_SEPARATOR, QueryBuilder
from .column import Column, Table
from .relation import DeleteAction, Relation
from .store import RelationStore, Store
from .transaction import SaveContext
from .validation import ErrorCode, ValidationErrorInfo, Validator

if TYPE_CHECKING:
    from ..auth.permissions import PermissionsModel
    from .registry import SchemaRegistry

logger = logging.getLogger(__name__)


class RecordMeta(type):
    """收集 Column 定义，并把非抽象记录类注册到注册表"""

    def __new__(mcs, name: str, bases: tuple, namespace: Dict[str, Any]) -> 'RecordMeta':
        cls = super().__new__(mcs, name, bases, namespace)

        columns: Dict[str, Column] = {}
        for base in reversed(cls.__mro__[1:]):
            columns.update(base.__dict__.get('__columns__', {}))
        for key, value in namespace.items():
            if isinstance(value, Column):
                columns[key] = value
        cls.__columns__ = columns

        registry = getattr(cls, '__registry__', None)
        if registry is not None and not namespace.get('__abstract__', False):
            registry.register(cls)
        return cls


class Record(metaclass=RecordMeta):
    """记录基类，通过 declarative_base(registry) 获得绑定注册表的子类"""

    __abstract__: ClassVar[bool] = True
    __registry__: ClassVar[Optional['SchemaRegistry']] = None
    __tablename__: ClassVar[Optional[str]] = None
    __columns__: ClassVar[Dict[str, Column]] = {}

    def __init__(self, **values: Any):
        """
        创建新记录

        应用列默认值和 created_by，之后的赋值才计为修改。

        Args:
            **values: 初始属性，等同于 set_values()
        """
        self._init_state(True, frozenset())
        registry = self.get_registry()
        table = self.get_table()
        for name, column in table.columns.items():
            self._values[name] = column.get_default()
        created_by = registry.options.created_by_column
        if table.has_column(created_by) and self._values.get(created_by) is None:
            self._values[created_by] = registry.current_user_id()
        self._set_old_attributes()
        self.init()
        if values:
            self.set_values(values)
        registry.events.dispatch(type(self), 'construct', self)

    def _init_state(self, is_new: bool, allowed: FrozenSet[str]) -> None:
        self._values: Dict[str, Any] = {}
        self._old_attributes: Dict[str, Any] = {}
        self._extra: Dict[str, Any] = {}
        self._relations: Dict[str, RelationStore] = {}
        self._validation_errors: Dict[str, ValidationErrorInfo] = {}
        self._is_new = is_new
        self._is_deleted = False
        self._allowed_permission_types = allowed

    def init(self) -> None:
        """构造完成后的钩子，子类覆盖"""

    @classmethod
    def _hydrate(cls,
                 row: Dict[str, Any],
                 allowed: FrozenSet[str] = frozenset(),
                 parents: Optional[Dict[str, 'Record']] = None) -> 'Record':
        """
        从数据库行创建记录

        Args:
            row: 列名 -> 数据库值；'relation@column' 形式的键为关系连接选择的列
            allowed: 跳过权限检查的操作类型
            parents: 关系名 -> 父记录，作为已加载关系设置

        Raises:
            ForbiddenError: 当前用户不能读取该记录
        """
        record = cls.__new__(cls)
        record._init_state(False, allowed)
        table = cls.get_table()

        joined: Dict[str, Dict[str, Any]] = {}
        for key, value in row.items():
            if JOINED_ATTRIBUTE_SEPARATOR in key:
                name, rest = key.split(JOINED_ATTRIBUTE_SEPARATOR, 1)
                joined.setdefault(name, {})[rest] = value
            elif key in table.columns:
                record._values[key] = table.columns[key].from_db(value)
            else:
                record._extra[key] = value
        for name in table.columns:
            record._values.setdefault(name, None)
        record._set_old_attributes()

        for name, values in joined.items():
            relation = cls.get_relation(name)
            if all(v is None for v in values.values()):
                records = []
            else:
                records = [relation.to_record._hydrate(values, frozenset({PermissionAction.ALL}))]
            record._set_loaded_relation(name, records)
        for name, parent in (parents or {}).items():
            if name not in record._relations:
                record._set_loaded_relation(name, [parent])

        record.init()
        if not record.can(PermissionAction.READ):
            raise ForbiddenError(PermissionAction.READ, record)
        cls.get_registry().events.dispatch(cls, 'construct', record)
        return record

    @classmethod
    def _instantiate(cls, values: Dict[str, Any]) -> 'Record':
        """用已知存在的属性直接创建非新记录，不查询数据库"""
        table = cls.get_table()
        row = {}
        for name, value in values.items():
            if name in table.columns:
                column = table.columns[name]
                row[name] = column.to_db(column.normalize_input(value))
        return cls._hydrate(row, frozenset({PermissionAction.ALL}))

    # ================== 元数据 ==================

    @classmethod
    def get_registry(cls) -> 'SchemaRegistry':
        """
        Raises:
            ConfigurationError: 记录类没有绑定注册表
        """
        registry = cls.__registry__
        if registry is None:
            raise ConfigurationError(
                f"'{cls.__name__}' is not bound to a SchemaRegistry, derive it from declarative_base()"
            )
        return registry

    @classmethod
    def get_table(cls) -> Table:
        return cls.get_registry().get_table(cls)

    @classmethod
    def table_name(cls) -> str:
        return cls.get_table().name

    @classmethod
    def get_primary_key(cls) -> List[str]:
        return cls.get_table().primary_key

    @classmethod
    def define_relations(cls) -> None:
        """子类覆盖，使用 has_many / has_one / belongs_to 声明关系"""

    @classmethod
    def define_validation_rules(cls) -> List[Validator]:
        """子类覆盖，返回校验器列表"""
        return []

    @classmethod
    def internal_get_permissions(cls) -> 'PermissionsModel':
        """子类覆盖以指定权限模型，默认仅管理员"""
        from ..auth.permissions import AdminsOnly
        return AdminsOnly()

    @classmethod
    def get_permissions(cls) -> 'PermissionsModel':
        return cls.get_registry().get_permissions(cls)

    @classmethod
    def has_many(cls, name: str, to_record: Any, keys: Dict[str, str]) -> Relation:
        """声明一对多关系，keys 为 {本表列: 目标表列}"""
        return cls.get_registry().add_relation(Relation(name, cls, to_record, keys, has_many=True))

    @classmethod
    def has_one(cls, name: str, to_record: Any, keys: Dict[str, str]) -> Relation:
        """声明一对一关系（本记录拥有目标记录）"""
        return cls.get_registry().add_relation(Relation(name, cls, to_record, keys))

    @classmethod
    def belongs_to(cls, name: str, to_record: Any, keys: Dict[str, str]) -> Relation:
        """声明从属关系（外键在本表，目标记录先保存）"""
        return cls.get_registry().add_relation(Relation(name, cls, to_record, keys, belongs_to=True))

    @classmethod
    def get_relations(cls) -> Dict[str, Relation]:
        return cls.get_registry().get_relations(cls)

    @classmethod
    def get_relation(cls, path: str) -> Relation:
        """按点分路径获取关系，如 'contact.company'"""
        return cls.get_registry().get_relation(cls, path)

    @classmethod
    def find_parent_relation(cls, child: Relation) -> Optional[Relation]:
        return cls.get_registry().find_parent_relation(cls, child)

    @classmethod
    def allow(cls, relation_path: str, *types: str) -> None:
        """
        通过该关系加载的记录跳过指定操作类型的权限检查

        Args:
            relation_path: 关系路径
            *types: 操作类型，默认 READ
        """
        cls.get_registry().allow(cls, relation_path, types or (PermissionAction.READ,))

    # ================== 查询 ==================

    @classmethod
    def find(cls, query: Any = None) -> Store:
        """
        查询记录

        当前用户的权限约束会加入查询。

        Args:
            query: Query 或 where 条件简写

        Returns:
            Store
        """
        query = Query.normalize(query)
        registry = cls.get_registry()
        cls.get_permissions().apply_to_query(query, registry.user, cls)
        registry.events.dispatch(cls, 'find', cls, query)
        return Store(cls, query)

    @classmethod
    def find_by_pk(cls, pk: Any) -> Optional['Record']:
        """
        按主键查询（包含软删除的记录）

        Args:
            pk: 主键值、主键值元组或 {列名: 值}

        Returns:
            记录，不存在时返回 None
        """
        if not isinstance(pk, dict):
            primary = cls.get_primary_key()
            if isinstance(pk, (list, tuple)):
                pk = dict(zip(primary, pk))
            else:
                pk = {primary[0]: pk}
        return cls.find(Query().where(pk).with_deleted()).single()

    # ================== 属性 ==================

    @property
    def is_new(self) -> bool:
        return self._is_new

    @property
    def is_deleted(self) -> bool:
        return self._is_deleted

    def get_allowed_permission_types(self) -> FrozenSet[str]:
        return self._allowed_permission_types

    def pk(self) -> Dict[str, Any]:
        return {name: self._values.get(name) for name in self.get_primary_key()}

    def get_extra(self, name: str) -> Any:
        """查询中选择的非列值"""
        return self._extra.get(name)

    def set_values(self, values: Dict[str, Any]) -> 'Record':
        """
        批量设置列、可写属性和关系

        列值按列类型规范化（如 ISO 字符串转为 datetime）。

        Raises:
            UnknownPropertyError: 名称既不是列、可写属性，也不是关系
            ValidationError: 值无法转换为列类型
        """
        cls = type(self)
        table = self.get_table()
        for name, value in values.items():
            if table.has_column(name):
                setattr(self, name, table.columns[name].normalize_input(value))
            elif cls.get_registry().has_relation(cls, name):
                self.set_related(name, value)
            else:
                attr = getattr(cls, name, None)
                if isinstance(attr, property) and attr.fset is not None:
                    setattr(self, name, value)
                else:
                    raise UnknownPropertyError(cls, name)
        return self

    # ================== 关系访问 ==================

    def relation_store(self, name: str) -> RelationStore:
        """获取关系结果集，首次访问时创建"""
        store = self._relations.get(name)
        if store is None:
            relation = self.get_relation(name)
            store = relation.get(self)
            self._apply_relation_permissions(store)
            self._relations[name] = store
        return store

    def related(self, name: str) -> Union[RelationStore, 'Record', None]:
        """
        一对多关系返回 RelationStore，其余返回目标记录或 None
        """
        store = self.relation_store(name)
        if store.relation.has_many:
            return store
        return store.single()

    def set_related(self, name: str, value: Any) -> RelationStore:
        """
        设置关系

        一对多关系接受记录或属性字典的列表（追加到暂存列表），
        一对一关系接受单个记录、属性字典或 None。
        """
        store = self.relation_store(name)
        if store.relation.has_many:
            if value is None:
                raise UnsupportedOperationError(f"Can't set has many relation '{name}' to None")
            if isinstance(value, (Record, dict)):
                value = [value]
            store.assign(value)
        else:
            store.set_single(value)
        return store

    def relation_is_fetched(self, name: str) -> bool:
        return name in self._relations

    def _set_loaded_relation(self, name: str, records: List['Record']) -> None:
        relation = self.get_relation(name)
        self._relations[name] = RelationStore.loaded(relation, self, records)

    def _apply_relation_permissions(self, store: RelationStore) -> None:
        relation = store.relation
        registry = self.get_registry()
        allowed = registry.get_allowed_permission_types(type(self), relation.name)
        if allowed:
            store.get_query().allow_permission_types(*allowed)
        elif relation.has_many:
            target = relation.to_record
            target.get_permissions().apply_to_query(store.get_query(), registry.user, target)

    # ================== 修改跟踪 ==================

    def _set_old_attributes(self) -> None:
        self._old_attributes = {
            k: copy.deepcopy(v) if isinstance(v, (list, dict)) else v
            for k, v in self._values.items()
        }

    def is_modified(self, attributes: Union[str, Iterable[str], None] = None) -> bool:
        """
        是否有修改

        Args:
            attributes: 只检查这些列或关系名，None 检查所有列和已访问的关系
        """
        return self._is_modified(set(), attributes)

    def _is_modified(self, visited: Set[int], attributes: Union[str, Iterable[str], None] = None) -> bool:
        if id(self) in visited:
            return False
        visited.add(id(self))

        if attributes is None:
            for name in self.get_table().columns:
                if self._column_modified(name):
                    return True
            return any(store.is_modified(visited) for store in list(self._relations.values()))

        if isinstance(attributes, str):
            attributes = [attributes]
        for name in attributes:
            if name in self.get_table().columns:
                if self._column_modified(name):
                    return True
            elif name in self._relations and self._relations[name].is_modified(visited):
                return True
        return False

    def _column_modified(self, name: str) -> bool:
        return self._values.get(name) != self._old_attributes.get(name)

    def get_modified_attributes(self) -> Dict[str, Any]:
        """修改过的列及其修改前的值"""
        return {
            name: self._old_attributes.get(name)
            for name in self.get_table().columns
            if self._column_modified(name)
        }

    def get_modified(self) -> List[str]:
        """修改过的列名和关系名"""
        names = list(self.get_modified_attributes())
        names.extend(name for name, store in self._relations.items() if store.is_modified())
        return names

    def get_old_attribute_value(self, name: str) -> Any:
        return self._old_attributes.get(name)

    def reset(self, *names: str) -> None:
        """
        撤销修改

        Args:
            *names: 列名或关系名，不指定则撤销全部
        """
        if not names:
            names = tuple(self.get_table().columns) + tuple(self._relations)
        for name in names:
            if name in self.get_table().columns:
                self._values[name] = copy.deepcopy(self._old_attributes.get(name))
            else:
                self._relations.pop(name, None)

    # ================== 权限 ==================

    def can(self, action: str) -> bool:
        """当前用户是否可以对该记录执行操作"""
        return self.get_permissions().can(action, self.get_registry().user, self)

    def _check_relation_permissions(self) -> None:
        """直接设置的 belongs-to 外键必须指向当前用户可读的记录"""
        for relation in self.get_relations().values():
            if not relation.is_belongs_to:
                continue
            if not any(getattr(self, frm) is not None and self._column_modified(frm) for frm in relation.keys):
                continue
            store = self._relations.get(relation.name)
            if store is not None and store.is_assigned():
                continue
            related = store.single() if store is not None else None
            if related is None or any(getattr(related, to) != getattr(self, frm)
                                      for frm, to in relation.keys.items()):
                # 之前加载的目标记录与外键不一致
                self._relations.pop(relation.name, None)
                related = self.related(relation.name)
            if related is not None and not related.is_new and not related.can(PermissionAction.READ):
                raise ForbiddenError(PermissionAction.READ, related)

    # ================== 校验 ==================

    def validate(self) -> bool:
        """
        校验记录

        Returns:
            没有校验错误时为 True，错误见 get_validation_errors()
        """
        self._validation_errors = {}
        events = self.get_registry().events
        if not events.dispatch(type(self), 'before_validate', self):
            return False
        self.internal_validate()
        if not events.dispatch(type(self), 'after_validate', self):
            return False
        return not self.has_validation_errors()

    def internal_validate(self) -> None:
        """新记录校验所有列，已有记录只校验修改过的列"""
        table = self.get_table()
        if self._is_new:
            fields = table.get_column_names()
        else:
            fields = list(self.get_modified_attributes())
        exempt = self._find_keys_to_be_set_by_relation()

        for name in fields:
            column = table.get_column(name)
            value = self._values.get(name)
            if column.required and not column.auto_increment and name not in exempt \
                    and column.violates_required(value):
                self.set_validation_error(name, ErrorCode.REQUIRED, f"'{name}' is required")
            elif column.length and isinstance(value, str) and len(value) > column.length:
                self.set_validation_error(
                    name, ErrorCode.MALFORMED,
                    f"Length can't be greater than {column.length}", {'length': column.length}
                )

        for validator in self.get_registry().get_validation_rules(type(self)):
            if validator.id in fields and not validator.validate(self):
                self.set_validation_error(
                    validator.id, validator.error_code, validator.error_description, validator.error_data
                )

    def _find_keys_to_be_set_by_relation(self) -> Set[str]:
        """由即将保存的 belongs-to 目标记录填充的外键列"""
        keys: Set[str] = set()
        for store in self._relations.values():
            if store.relation.is_belongs_to and store.is_modified():
                keys.update(store.relation.keys)
        return keys

    def set_validation_error(self, key: str, code: ErrorCode,
                             description: Optional[str] = None, data: Any = None) -> None:
        self._validation_errors[key] = ValidationErrorInfo(code, description, data)

    def get_validation_errors(self) -> Dict[str, ValidationErrorInfo]:
        return self._validation_errors

    def get_validation_error(self, key: str) -> Optional[ValidationErrorInfo]:
        return self._validation_errors.get(key)

    def has_validation_errors(self) -> bool:
        return bool(self._validation_errors)

    # ================== 保存 ==================

    def save(self) -> bool:
        """
        保存记录及其已访问的关系

        belongs-to 关系先保存，然后插入或更新自身，最后保存其余关系，
        全部在同一个事务中完成；最外层保存成功后重置所有参与记录的修改基线。

        Returns:
            校验或关系保存失败时为 False（事务已回滚）

        Raises:
            ForbiddenError: 权限不足
            StorageError: 数据库执行失败
        """
        return self._save(None)

    def _save(self, context: Optional[SaveContext]) -> bool:
        if context is not None and context.has_visited(self):
            return True

        registry = self.get_registry()
        action = PermissionAction.CREATE if self._is_new else PermissionAction.WRITE
        if not self.can(action):
            raise ForbiddenError(action, self)
        self._check_relation_permissions()

        if not self.validate():
            logger.warning(
                "Validation of %s failed: %s", type(self).__name__, ', '.join(self._validation_errors)
            )
            return False

        outermost = context is None
        if context is None:
            context = SaveContext(registry.connection)
        context.enter(self)

        success = False
        try:
            if outermost:
                context.begin()
            if self._is_new:
                self.get_permissions().before_create(self)
            success = self.internal_save(context)
            if success and not registry.events.dispatch(type(self), 'after_save', self):
                success = False
            return success
        finally:
            if outermost:
                if success:
                    context.commit()
                else:
                    context.roll_back()

    def internal_save(self, context: SaveContext) -> bool:
        """belongs-to 关系 -> 自身 -> 其余关系"""
        if not self.get_registry().events.dispatch(type(self), 'before_save', self):
            return False
        if not self._save_belongs_to_relations(context):
            return False
        if self._is_new:
            self._insert()
        else:
            self._update()
        return self._save_relations(context)

    def _save_belongs_to_relations(self, context: SaveContext) -> bool:
        for name, store in list(self._relations.items()):
            if not store.relation.is_belongs_to:
                continue
            if not store.is_modified():
                # 直接修改过的外键不再用已加载的关联记录覆盖
                if not any(self._column_modified(frm) for frm in store.relation.keys):
                    store.set_new_keys()
                continue
            if not store.save(context):
                self._set_relational_error(name, store)
                return False
        return True

    def _save_relations(self, context: SaveContext) -> bool:
        for name, store in list(self._relations.items()):
            if store.relation.is_belongs_to or not store.is_modified():
                continue
            if not store.save(context):
                self._set_relational_error(name, store)
                return False
        return True

    def _set_relational_error(self, name: str, store: RelationStore) -> None:
        data = None
        if store.failed_record is not None:
            data = {k: v.to_dict() for k, v in store.failed_record.get_validation_errors().items()}
        self.set_validation_error(name, ErrorCode.RELATIONAL, f"Could not save relation '{name}'", data)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _insert(self) -> None:
        """
        插入记录

        Raises:
            StorageError: 语句失败或自增列没有生成值
        """
        registry = self.get_registry()
        options = registry.options
        table = self.get_table()

        if table.has_column(options.created_at_column) and self._values.get(options.created_at_column) is None:
            self._values[options.created_at_column] = self._now()
        if table.has_column(options.modified_at_column) and not self._column_modified(options.modified_at_column):
            self._values[options.modified_at_column] = self._now()
        if table.has_column(options.modified_by_column) and not self._column_modified(options.modified_by_column):
            self._values[options.modified_by_column] = registry.current_user_id()

        data = {name: self._values.get(name) for name in table.columns}
        auto_increment = table.auto_increment_column
        if auto_increment is not None and data[auto_increment] is None:
            del data[auto_increment]

        compiled = QueryBuilder(type(self)).build_insert(data)
        registry.connection.execute(compiled.sql, compiled.bind_dict())

        if auto_increment is not None and self._values.get(auto_increment) is None:
            last_id = registry.connection.last_insert_id()
            if not last_id:
                raise StorageError(f"Auto increment column didn't increment in '{table.name}'")
            self._values[auto_increment] = last_id

    def _update(self) -> None:
        """
        只更新修改过的列，主键被修改时按旧主键定位

        Raises:
            StorageError: 语句失败
        """
        if not self.is_modified():
            return
        registry = self.get_registry()
        options = registry.options
        table = self.get_table()

        if table.has_column(options.modified_at_column) and not self._column_modified(options.modified_at_column):
            self._values[options.modified_at_column] = self._now()
        if table.has_column(options.modified_by_column) and not self._column_modified(options.modified_by_column):
            self._values[options.modified_by_column] = registry.current_user_id()

        modified = self.get_modified_attributes()
        if not modified:
            return
        data = {name: self._values.get(name) for name in modified}
        compiled = QueryBuilder(type(self)).build_update(data, Query().where(self._old_pk()))
        registry.connection.execute(compiled.sql, compiled.bind_dict())

    def _old_pk(self) -> Dict[str, Any]:
        return {
            name: self._old_attributes.get(name) if self._column_modified(name) else self._values.get(name)
            for name in self.get_primary_key()
        }

    def _after_commit(self) -> None:
        self._is_new = False
        self._set_old_attributes()
        self._relations = {}
        self.get_registry().events.dispatch(type(self), 'commit', self)

    def _after_roll_back(self, was_new: bool) -> None:
        if was_new:
            auto_increment = self.get_table().auto_increment_column
            if auto_increment is not None:
                self._values[auto_increment] = None

    # ================== 删除 ==================

    def delete(self) -> bool:
        """
        删除记录，有软删除列时只设置该列

        Returns:
            删除被事件取消或级联删除失败时为 False

        Raises:
            ForbiddenError: 权限不足
            DeleteRestrictError: RESTRICT 关系仍有关联记录
        """
        return self._process_delete(False, None)

    def delete_hard(self) -> bool:
        """
        物理删除有软删除列的记录

        Raises:
            UnsupportedOperationError: 表没有软删除列
        """
        column = self.get_registry().options.soft_delete_column
        if not self.get_table().has_column(column):
            raise UnsupportedOperationError(
                f"'{type(self).__name__}' does not support soft delete, use delete()"
            )
        return self._process_delete(True, None)

    def _process_delete(self, hard: bool, visited: Optional[Set[int]]) -> bool:
        if visited is None:
            visited = set()
        if id(self) in visited:
            return True
        visited.add(id(self))

        if not self.can(PermissionAction.WRITE):
            raise ForbiddenError(PermissionAction.WRITE, self)
        if self._is_new:
            logger.debug("Not deleting new %s", type(self).__name__)
            return True

        self._delete_check_restrictions()
        success = self.internal_delete(hard, visited)
        if success and not self.get_registry().events.dispatch(type(self), 'after_delete', self):
            success = False
        return success

    def internal_delete(self, hard: bool, visited: Set[int]) -> bool:
        if not self.get_registry().events.dispatch(type(self), 'before_delete', self):
            return False
        if not self._delete_cascade(visited):
            return False

        soft = not hard and self.get_table().has_column(self.get_registry().options.soft_delete_column)
        if soft:
            self._soft_delete()
        else:
            self._hard_delete()
        self._is_new = not soft
        self._is_deleted = True
        self._relations = {}
        return True

    def _soft_delete(self) -> None:
        column = self.get_registry().options.soft_delete_column
        if self._values.get(column):
            return
        self._values[column] = True
        self._update()
        self._set_old_attributes()

    def _hard_delete(self) -> None:
        compiled = QueryBuilder(type(self)).build_delete(Query().where(self._old_pk()))
        self.get_registry().connection.execute(compiled.sql, compiled.bind_dict())

    def _delete_check_restrictions(self) -> None:
        for relation in self.get_relations().values():
            if relation.delete_action is not DeleteAction.RESTRICT:
                continue
            result = self.related(relation.name)
            if relation.has_many:
                result = result.single()
            if result is not None:
                raise DeleteRestrictError(self, relation)

    def _delete_cascade(self, visited: Set[int]) -> bool:
        for relation in self.get_relations().values():
            if relation.delete_action is not DeleteAction.CASCADE:
                continue
            result = self.related(relation.name)
            if relation.has_many:
                children = list(result)
            else:
                children = [result] if result is not None else []
            for child in children:
                if child.equals(self):
                    continue
                if not child._process_delete(False, visited):
                    return False
        return True

    # ================== 其他 ==================

    def equals(self, other: Any) -> bool:
        """同一类型且主键相同（新记录只与自身相等）"""
        if other is self:
            return True
        if type(other) is not type(self):
            return False
        pk = self.pk()
        if any(v is None for v in pk.values()):
            return False
        return pk == other.pk()

    def to_dict(self, properties: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        转换为字典

        Args:
            properties: 要输出的列、关系或属性名，None 输出所有列

        Returns:
            字典，存在校验错误时包含 validation_errors
        """
        table = self.get_table()
        names = list(properties) if properties is not None else table.get_column_names()
        result: Dict[str, Any] = {}
        for name in names:
            if name in table.columns:
                result[name] = self._values.get(name)
            elif self.get_registry().has_relation(type(self), name):
                related = self.related(name)
                if isinstance(related, RelationStore):
                    result[name] = [r.to_dict() for r in related.all()]
                else:
                    result[name] = related.to_dict() if related is not None else None
            elif name in self._extra:
                result[name] = self._extra[name]
            else:
                result[name] = getattr(self, name)
        if self._validation_errors:
            result['validation_errors'] = {k: v.to_dict() for k, v in self._validation_errors.items()}
        return result

    def __repr__(self) -> str:
        pk = ', '.join(f'{k}={v!r}' for k, v in self.pk().items())
        return f"<{type(self).__name__}({pk})>"
