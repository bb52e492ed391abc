"""
Pyrelate 权限操作类型
"""


class PermissionAction:
    """权限操作类型常量"""
    READ = 'read'
    WRITE = 'write'
    CREATE = 'create'
    CHANGE_PERMISSIONS = 'changePermissions'
    ALL = '*'  # 允许所有操作类型
