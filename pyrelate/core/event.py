"""
Pyrelate 记录生命周期事件

每个 SchemaRegistry 持有一个 EventManager，监听器按注册顺序调用。

记录事件：
- construct: 记录实例化（新建或从数据库加载）后
- find: Record.find() 返回 Store 前，回调参数为 (record_class, query)
- before_validate / after_validate
- before_save / after_save
- before_delete / after_delete
- commit: 最外层 save 提交后，每个参与保存的记录各触发一次

before_*、after_save、after_delete 回调返回 False 时操作被取消。

使用方式：
    @registry.events.listens_for(Contact, 'before_save')
    def stamp(contact):
        contact.search_name = contact.name.lower()

    # 在基类上注册的监听器对所有子类生效
    registry.events.listen(Base, 'commit', audit)
"""

from typing import Any, Callable, Dict, List, Set, Tuple


# 有效的事件名称
RECORD_EVENTS: Set[str] = {
    'construct', 'find',
    'before_validate', 'after_validate',
    'before_save', 'after_save',
    'before_delete', 'after_delete',
    'commit',
}


class EventManager:
    """
    事件管理器

    管理记录类上的事件监听器，作用域为所属的 SchemaRegistry。
    """

    def __init__(self) -> None:
        # {(record_class, event_name): [callbacks]}
        self._listeners: Dict[Tuple[type, str], List[Callable[..., Any]]] = {}

    def listen(self, target: type, event_name: str, fn: Callable[..., Any]) -> None:
        """
        注册事件监听器

        Args:
            target: 记录类
            event_name: 事件名称
            fn: 回调函数
        """
        if event_name not in RECORD_EVENTS:
            raise ValueError(
                f"Unknown event: '{event_name}'. "
                f"Valid events: {', '.join(sorted(RECORD_EVENTS))}"
            )
        self._listeners.setdefault((target, event_name), []).append(fn)

    def listens_for(self, target: type, event_name: str) -> Callable[..., Any]:
        """
        装饰器方式注册事件监听器

        Args:
            target: 记录类
            event_name: 事件名称

        Returns:
            装饰器函数
        """
        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.listen(target, event_name, fn)
            return fn
        return decorator

    def remove(self, target: type, event_name: str, fn: Callable[..., Any]) -> None:
        """移除事件监听器"""
        listeners = self._listeners.get((target, event_name), [])
        if fn in listeners:
            listeners.remove(fn)

    def dispatch(self, record_class: type, event_name: str, *args: Any) -> bool:
        """
        分发事件

        按 MRO 从子类到基类依次调用监听器。

        Args:
            record_class: 触发事件的记录类
            event_name: 事件名称
            *args: 传给回调的参数

        Returns:
            任一回调返回 False 时为 False
        """
        result = True
        for klass in record_class.__mro__:
            for fn in list(self._listeners.get((klass, event_name), [])):
                if fn(*args) is False:
                    result = False
        return result

    def clear(self, target: Any = None) -> None:
        """
        清除监听器

        Args:
            target: None 清除所有，记录类只清除该类的
        """
        if target is None:
            self._listeners.clear()
            return
        for key in [k for k in self._listeners if k[0] is target]:
            del self._listeners[key]
