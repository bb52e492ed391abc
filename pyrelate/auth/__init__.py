"""
Pyrelate 权限
"""

from ..common.actions import PermissionAction
from .permissions import (
    AdminsOnly,
    Everyone,
    PermissionsModel,
    ReadOnly,
    StaticUser,
    UserInterface,
    ViaRelation,
)

__all__ = [
    'PermissionAction',
    'PermissionsModel',
    'AdminsOnly',
    'Everyone',
    'ReadOnly',
    'ViaRelation',
    'UserInterface',
    'StaticUser',
]
