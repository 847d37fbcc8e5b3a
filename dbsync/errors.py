from typing import Any, Dict, Optional


class SyncError(Exception):
    """同步过程中所有已知错误的基类"""


class DBConnectionError(SyncError, ConnectionError):
    """数据库不可达或认证失败"""


class SchemaError(SyncError):
    """数据库或表不存在"""


class SchemaMismatchError(SchemaError):
    """源表与目标表没有共同列"""


class KeyColumnMissingError(SchemaError):
    """insert_update 模式下无法确定用于匹配的主键列"""


class RowRejectedError(SyncError):
    """目标库拒绝了某一行 (约束冲突等)"""

    def __init__(self, message: str, key: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.key = key or {}


class SyncCancelledError(SyncError):
    """同步任务被取消"""
