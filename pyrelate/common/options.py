"""
Pyrelate 配置选项 dataclass 定义

该模块定义了连接器和模式注册表的配置选项，替代 **kwargs 参数。
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class SqliteConnectorOptions:
    """SQLite 连接器配置选项"""
    check_same_thread: bool = True  # 检查同一线程
    timeout: Optional[float] = None  # 连接超时时间
    isolation_level: Optional[str] = None  # None 表示自动提交，事务由 Connection 显式管理
    foreign_keys: bool = False  # 是否启用 PRAGMA foreign_keys


@dataclass(slots=True)
class RegistryOptions:
    """模式注册表配置选项"""
    table_name_strip_segments: int = 1  # 推导表名时去掉的前导模块段数
    cache_ttl: int = 0  # 缓存有效期（秒），0 表示永不过期
    soft_delete_column: str = 'deleted'  # 软删除标记列

    # 自动维护的时间戳与操作人列
    created_at_column: str = 'created_at'
    modified_at_column: str = 'modified_at'
    created_by_column: str = 'created_by'
    modified_by_column: str = 'modified_by'

    negative_pk_is_new: bool = True  # 关系载荷中负数主键视为新记录
    default_user_id: int = 1  # 无当前用户时写入 created_by / modified_by 的值


def get_default_connector_options() -> SqliteConnectorOptions:
    """获取默认连接器选项"""
    return SqliteConnectorOptions()


def get_default_registry_options() -> RegistryOptions:
    """获取默认注册表选项"""
    return RegistryOptions()
