"""
Pyrelate 核心模块

包含连接、记录、关系、结果集、注册表、缓存、事件和校验
"""

from .cache import CacheInterface, MemoryCache, NoneCache
from .column import Column, Table
from .connection import Connection
from .event import EventManager
from .record import Record
from .registry import SchemaRegistry, declarative_base
from .relation import DeleteAction, Relation
from .store import RelationStore, Store
from .transaction import SaveAction, SaveContext
from .types import TypeRegistry
from .validation import EmailValidator, ErrorCode, RegexValidator, ValidationErrorInfo, Validator

__all__ = [
    # Connection & schema
    'Connection',
    'SchemaRegistry',
    'declarative_base',
    'Column',
    'Table',
    'TypeRegistry',
    # Records
    'Record',
    'Relation',
    'DeleteAction',
    'Store',
    'RelationStore',
    'SaveAction',
    'SaveContext',
    # Collaborators
    'CacheInterface',
    'NoneCache',
    'MemoryCache',
    'EventManager',
    'Validator',
    'RegexValidator',
    'EmailValidator',
    'ErrorCode',
    'ValidationErrorInfo',
]
