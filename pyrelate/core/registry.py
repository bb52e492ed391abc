"""
Pyrelate 模式注册表

SchemaRegistry 持有一组记录类共享的元数据和协作对象：
数据库连接、缓存、事件、当前用户、表结构、关系定义、权限模型和校验规则。

    registry = SchemaRegistry(Connection('app.db'))
    Base = declarative_base(registry)

    class Contact(Base):
        __tablename__ = 'contacts'
        id = Column(int, primary_key=True, auto_increment=True)
"""

import logging
import re
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Type, TYPE_CHECKING

from ..common.exceptions import ConfigurationError, RelationNotFoundError, SchemaError
from ..common.options import RegistryOptions, get_default_registry_options
from .cache import CacheInterface, NoneCache
from .column import Table
from .connection import Connection
from .event import EventManager
from .relation import Relation

if TYPE_CHECKING:
    from ..auth.permissions import PermissionsModel, UserInterface
    from ..core.validation import Validator
    from .record import Record

logger = logging.getLogger(__name__)

_MODEL_SEGMENTS = ('model', 'models')


def camel_to_snake(name: str) -> str:
    """camelCase / PascalCase 转 snake_case"""
    name = re.sub(r'(.)([A-Z][a-z]+)', r'\1_\2', name)
    return re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', name).lower()


def derive_table_name(qualified_name: str, strip_segments: int = 1) -> str:
    """
    从完整类名推导表名

    去掉前 strip_segments 个模块段和 model/models 段，拼接为驼峰后转为下划线：
    'app.contacts.models.EmailAddress' -> 'contacts_email_address'

    Args:
        qualified_name: 模块路径加类名
        strip_segments: 去掉的前导段数

    Returns:
        表名
    """
    parts = qualified_name.split('.')
    if len(parts) > strip_segments + 1:
        parts = parts[strip_segments:]
    else:
        parts = parts[-1:]
    parts = [p for p in parts[:-1] if p.lower() not in _MODEL_SEGMENTS] + parts[-1:]
    camel = parts[0] + ''.join(p[:1].upper() + p[1:] for p in parts[1:])
    return camel_to_snake(camel)


class SchemaRegistry:
    """模式注册表"""

    def __init__(self,
                 connection: Connection,
                 cache: Optional[CacheInterface] = None,
                 options: Optional[RegistryOptions] = None):
        self.connection = connection
        self.cache: CacheInterface = cache if cache is not None else NoneCache()
        self.options = options or get_default_registry_options()
        self.events = EventManager()
        self._user: Optional['UserInterface'] = None

        self._record_classes: Dict[str, Type['Record']] = {}
        self._tables: Dict[type, Table] = {}
        self._relations: Dict[type, Dict[str, Relation]] = {}
        self._defined: Set[type] = set()
        self._defining = False
        self._permissions: Dict[type, 'PermissionsModel'] = {}
        self._validation_rules: Dict[type, List['Validator']] = {}
        self._allowed: Dict[type, Dict[str, FrozenSet[str]]] = {}

    # ================== 记录类 ==================

    def register(self, record_class: Type['Record']) -> None:
        """注册记录类（由 declarative_base 的元类调用）"""
        name = record_class.__name__
        existing = self._record_classes.get(name)
        if existing is not None and existing is not record_class:
            logger.debug("Record class name '%s' re-registered", name)
        self._record_classes[name] = record_class

    def resolve(self, record: Any) -> Type['Record']:
        """
        把类名解析为已注册的记录类

        Raises:
            ConfigurationError: 未注册
        """
        if not isinstance(record, str):
            return record
        try:
            return self._record_classes[record]
        except KeyError:
            raise ConfigurationError(f"Record class '{record}' is not registered") from None

    def get_record_classes(self) -> List[Type['Record']]:
        return list(self._record_classes.values())

    # ================== 表 ==================

    def table_name(self, record_class: Type['Record']) -> str:
        explicit = getattr(record_class, '__tablename__', None)
        if explicit:
            return explicit
        qualified = f'{record_class.__module__}.{record_class.__name__}'
        key = f'tableName-{qualified}'
        name = self.cache.get(key)
        if name is None:
            name = derive_table_name(qualified, self.options.table_name_strip_segments)
            self.cache.set(key, name, self.options.cache_ttl)
        return name

    def get_table(self, record_class: Type['Record']) -> Table:
        table = self._tables.get(record_class)
        if table is None:
            table = Table(self.table_name(record_class), record_class.__columns__)
            self._tables[record_class] = table
        return table

    # ================== 关系 ==================

    def add_relation(self, relation: Relation) -> Relation:
        """
        添加关系定义

        Raises:
            SchemaError: 关系名与列名冲突，或记录类的关系已定义完成
        """
        record_class = relation.from_record
        if record_class in self._defined and not self._defining:
            raise SchemaError(
                f"Relations of '{record_class.__name__}' are already defined; "
                f"declare '{relation.name}' in define_relations()"
            )
        if relation.name in record_class.__columns__:
            raise SchemaError(
                f"Relation '{relation.name}' collides with a column of '{record_class.__name__}'"
            )
        self._relations.setdefault(record_class, {})[relation.name] = relation
        return relation

    def _ensure_relations(self) -> None:
        """为尚未定义关系的已注册记录类调用 define_relations()，完成后冻结"""
        pending = [c for c in self._record_classes.values() if c not in self._defined]
        if not pending or self._defining:
            return
        self._defining = True
        try:
            for record_class in pending:
                self._defined.add(record_class)
                record_class.define_relations()
        finally:
            self._defining = False
        for relations in self._relations.values():
            for relation in relations.values():
                relation.freeze()
        self.cache.delete(self._relations_cache_key())

    def _relations_cache_key(self) -> str:
        return f'relations-{id(self)}'

    def get_relations(self, record_class: Type['Record']) -> Dict[str, Relation]:
        """记录类的所有关系（包含基类声明的关系）"""
        self._ensure_relations()
        key = self._relations_cache_key()
        cached = self.cache.get(key)
        if cached is None:
            cached = {}
        relations = cached.get(record_class)
        if relations is None:
            relations = {}
            for klass in reversed(record_class.__mro__):
                relations.update(self._relations.get(klass, {}))
            cached[record_class] = relations
            self.cache.set(key, cached, self.options.cache_ttl)
        return relations

    def has_relation(self, record_class: Type['Record'], name: str) -> bool:
        return name in self.get_relations(record_class)

    def get_relation(self, record_class: Type['Record'], path: str) -> Relation:
        """
        按点分路径获取关系

        Raises:
            RelationNotFoundError: 关系不存在
        """
        relation = None
        current = record_class
        for name in path.split('.'):
            relation = self.get_relations(current).get(name)
            if relation is None:
                raise RelationNotFoundError(current, name)
            current = relation.to_record
        return relation

    def find_parent_relation(self, record_class: Type['Record'], child: Relation) -> Optional[Relation]:
        """
        在 record_class 上查找 child 的反向关系

        反向关系指向 child 的所属类，不是一对多，且键互为镜像。
        """
        for relation in self.get_relations(record_class).values():
            if relation.has_many or relation.via_record is not None:
                continue
            if not issubclass(child.from_record, relation.to_record):
                continue
            if child.keys_mirror(relation):
                return relation
        return None

    # ================== 权限与校验 ==================

    def get_permissions(self, record_class: Type['Record']) -> 'PermissionsModel':
        permissions = self._permissions.get(record_class)
        if permissions is None:
            permissions = record_class.internal_get_permissions()
            self._permissions[record_class] = permissions
        return permissions

    def get_validation_rules(self, record_class: Type['Record']) -> List['Validator']:
        rules = self._validation_rules.get(record_class)
        if rules is None:
            rules = list(record_class.define_validation_rules())
            self._validation_rules[record_class] = rules
        return rules

    def allow(self, record_class: Type['Record'], relation_path: str, types: Iterable[str]) -> None:
        """通过该关系加载的记录跳过指定操作类型的权限检查"""
        self.get_relation(record_class, relation_path)
        current = self._allowed.setdefault(record_class, {}).get(relation_path, frozenset())
        self._allowed[record_class][relation_path] = current | frozenset(types)

    def get_allowed_permission_types(self, record_class: Type['Record'], relation_path: str) -> FrozenSet[str]:
        for klass in record_class.__mro__:
            allowed = self._allowed.get(klass, {}).get(relation_path)
            if allowed:
                return allowed
        return frozenset()

    # ================== 当前用户 ==================

    @property
    def user(self) -> Optional['UserInterface']:
        return self._user

    def set_user(self, user: Optional['UserInterface']) -> None:
        self._user = user

    def current_user_id(self) -> Any:
        """当前用户 ID，没有登录用户时使用 default_user_id"""
        if self._user is None:
            return self.options.default_user_id
        return self._user.id


def declarative_base(registry: SchemaRegistry) -> Type['Record']:
    """
    创建绑定到注册表的记录基类

    Args:
        registry: 模式注册表

    Returns:
        抽象记录基类，所有非抽象子类自动注册
    """
    from .record import Record

    return type(Record)('Base', (Record,), {
        '__abstract__': True,
        '__registry__': registry,
        '__module__': Record.__module__,
    })
