"""
Pyrelate 保存上下文

一次 save() 调用树共享一个 SaveContext：
- visited: 已进入保存流程的记录，再次遇到时直接视为成功
- participants: 参与保存的记录，提交后统一重置修改基线，回滚时恢复自增主键
- 只有真正开启事务的最外层 save 才提交或回滚
"""

import logging
from enum import Enum
from typing import List, Set, Tuple, TYPE_CHECKING

from .connection import Connection

if TYPE_CHECKING:
    from .record import Record

logger = logging.getLogger(__name__)


class SaveAction(Enum):
    """关系中暂存记录的保存操作"""
    INSERT = 'insert'
    UPDATE = 'update'
    DELETE = 'delete'


class SaveContext:
    """保存上下文"""

    def __init__(self, connection: Connection):
        self.connection = connection
        self.visited: Set[int] = set()
        # (记录, 进入时是否为新记录)
        self.participants: List[Tuple['Record', bool]] = []
        self.started_transaction = False

    def has_visited(self, record: 'Record') -> bool:
        return id(record) in self.visited

    def enter(self, record: 'Record') -> None:
        self.visited.add(id(record))
        self.participants.append((record, record.is_new))

    def begin(self) -> None:
        """连接上没有活动事务时开启事务"""
        if not self.connection.in_transaction():
            self.connection.begin_transaction()
            self.started_transaction = True

    def commit(self) -> None:
        if self.started_transaction:
            self.connection.commit()
        for record, _ in self.participants:
            record._after_commit()

    def roll_back(self) -> None:
        if self.started_transaction and self.connection.in_transaction():
            self.connection.roll_back()
        logger.debug("Rolled back save of %d record(s)", len(self.participants))
        for record, was_new in self.participants:
            record._after_roll_back(was_new)
