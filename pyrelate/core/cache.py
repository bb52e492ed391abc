"""
Pyrelate 缓存接口

注册表用缓存记忆表名推导和关系定义：
- NoneCache: 空实现，每次 get 都未命中
- MemoryCache: 进程内字典缓存，支持 TTL
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple


class CacheInterface(ABC):
    """缓存接口"""

    @abstractmethod
    def get(self, key: str) -> Any:
        """读取缓存，未命中返回 None"""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """写入缓存，ttl 为 0 或 None 时使用默认有效期"""

    @abstractmethod
    def delete(self, key: str) -> None:
        """删除缓存项"""

    @abstractmethod
    def flush(self) -> None:
        """清空缓存"""

    def supported(self) -> bool:
        """当前环境是否支持该缓存"""
        return True


class NoneCache(CacheInterface):
    """不缓存任何内容"""

    def get(self, key: str) -> Any:
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        pass

    def delete(self, key: str) -> None:
        pass

    def flush(self) -> None:
        pass


class MemoryCache(CacheInterface):
    """进程内缓存"""

    def __init__(self, default_ttl: int = 0):
        self.default_ttl = default_ttl
        # {key: (过期时间或 None, 值)}
        self._items: Dict[str, Tuple[Optional[float], Any]] = {}

    def get(self, key: str) -> Any:
        item = self._items.get(key)
        if item is None:
            return None
        expires, value = item
        if expires is not None and expires <= time.monotonic():
            del self._items[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = ttl or self.default_ttl
        expires = time.monotonic() + ttl if ttl else None
        self._items[key] = (expires, value)

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def flush(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
