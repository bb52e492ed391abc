"""
Pyrelate 校验

校验失败不抛异常，而是以 {key: ValidationErrorInfo} 的形式记录在记录实例上，
save() / validate() 返回 False。
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .record import Record


class ErrorCode(IntEnum):
    """校验错误码"""
    MALFORMED = 1
    REQUIRED = 2
    UNIQUE = 3
    RELATIONAL = 4
    FORBIDDEN = 5
    INVALID_INPUT = 6


@dataclass
class ValidationErrorInfo:
    """单个校验错误"""
    code: ErrorCode
    description: Optional[str] = None
    data: Any = None

    def to_dict(self) -> dict:
        return {'code': int(self.code), 'description': self.description, 'data': self.data}


class Validator(ABC):
    """
    校验器基类

    Args:
        id: 被校验的列名，只有当该列需要校验时才会执行
    """

    def __init__(self, id: str):
        self.id = id
        self.error_code: ErrorCode = ErrorCode.MALFORMED
        self.error_description: Optional[str] = None
        self.error_data: Any = None

    @abstractmethod
    def validate(self, record: 'Record') -> bool:
        """校验记录，失败时设置 error_* 属性"""


class RegexValidator(Validator):
    """正则校验"""

    def __init__(self, id: str, pattern: str, description: Optional[str] = None):
        super().__init__(id)
        self.pattern = re.compile(pattern)
        self.description = description

    def validate(self, record: 'Record') -> bool:
        value = getattr(record, self.id)
        if value is None or value == '':
            return True
        if self.pattern.search(str(value)):
            return True
        self.error_code = ErrorCode.MALFORMED
        self.error_description = self.description or f"'{self.id}' does not match {self.pattern.pattern}"
        self.error_data = {'value': value}
        return False


class EmailValidator(RegexValidator):
    """邮箱地址校验"""

    def __init__(self, id: str):
        super().__init__(id, r'^[^@\s]+@[^@\s]+\.[^@\s]+$', 'Invalid e-mail address')
