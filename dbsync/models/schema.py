from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from dbsync.errors import RowRejectedError


@dataclass(frozen=True)
class ColumnDescriptor:
    name: str
    type: str
    is_primary_key: bool = False
    nullable: bool = True


@dataclass(frozen=True)
class TableDescriptor:
    name: str
    columns: Tuple[ColumnDescriptor, ...]
    primary_key_columns: Tuple[str, ...] = ()

    @property
    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]

    def find_column(self, name: str) -> Optional[ColumnDescriptor]:
        """按列名查找, 不区分大小写"""
        lowered = name.lower()
        for col in self.columns:
            if col.name.lower() == lowered:
                return col
        return None


@dataclass
class UpsertResult:
    """upsert_batch 的返回结果"""
    inserted: int = 0
    updated: int = 0
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    failures: List[RowRejectedError] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)
