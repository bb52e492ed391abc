"""
Pyrelate 数据库连接

基于 sqlite3 的命令执行层。连接运行在自动提交模式下，
事务通过 begin_transaction() / commit() / roll_back() 显式管理，
嵌套的记录保存通过 in_transaction() 共享同一事务。
"""

import logging
import sqlite3
from typing import Any, Dict, Iterable, Optional, Union

from ..common.exceptions import StorageError, TransactionError
from ..common.options import SqliteConnectorOptions, get_default_connector_options

logger = logging.getLogger(__name__)

Params = Union[Dict[str, Any], Iterable[Any], None]


class Connection:
    """数据库连接"""

    def __init__(self, database: str = ':memory:', options: Optional[SqliteConnectorOptions] = None):
        """
        打开连接

        Args:
            database: 数据库文件路径，默认内存数据库
            options: 连接器选项
        """
        self.database = database
        self.options = options or get_default_connector_options()

        kwargs: Dict[str, Any] = {
            'check_same_thread': self.options.check_same_thread,
            'isolation_level': self.options.isolation_level,
        }
        if self.options.timeout is not None:
            kwargs['timeout'] = self.options.timeout

        try:
            self._conn: Optional[sqlite3.Connection] = sqlite3.connect(database, **kwargs)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database '{database}': {e}") from e
        self._conn.row_factory = sqlite3.Row
        if self.options.foreign_keys:
            self._conn.execute('PRAGMA foreign_keys = ON')

    @property
    def raw(self) -> sqlite3.Connection:
        """底层 sqlite3 连接"""
        if self._conn is None:
            raise StorageError("Connection is closed")
        return self._conn

    def execute(self, sql: str, params: Params = None) -> sqlite3.Cursor:
        """
        执行 SQL

        Args:
            sql: SQL 语句
            params: 命名参数字典或位置参数序列

        Returns:
            游标

        Raises:
            StorageError: 执行失败
        """
        logger.debug("%s %r", sql, params)
        try:
            if params is None:
                return self.raw.execute(sql)
            return self.raw.execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError(f"{e} (SQL: {sql})") from e

    def execute_script(self, script: str) -> None:
        """执行多条 SQL 语句（建表脚本等）"""
        try:
            self.raw.executescript(script)
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def last_insert_id(self) -> Optional[int]:
        """获取最后插入行的 rowid"""
        row = self.raw.execute('SELECT last_insert_rowid()').fetchone()
        return row[0] if row and row[0] else None

    def in_transaction(self) -> bool:
        return self.raw.in_transaction

    def begin_transaction(self) -> None:
        """开始事务"""
        if self.in_transaction():
            raise TransactionError("A transaction is already active")
        logger.debug("BEGIN")
        self.execute('BEGIN')

    def commit(self) -> None:
        """提交事务"""
        if not self.in_transaction():
            raise TransactionError("No active transaction to commit")
        logger.debug("COMMIT")
        self.raw.commit()

    def roll_back(self) -> None:
        """回滚事务"""
        if not self.in_transaction():
            raise TransactionError("No active transaction to roll back")
        logger.debug("ROLLBACK")
        self.raw.rollback()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> 'Connection':
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
