from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from dbsync.errors import KeyColumnMissingError, SchemaMismatchError
from dbsync.models.config import DEFAULT_BATCH_SIZE, SyncMode
from dbsync.models.schema import TableDescriptor


@dataclass(frozen=True)
class ColumnMapping:
    source: str
    target: str


@dataclass(frozen=True)
class TablePlan:
    table: str
    columns: Tuple[ColumnMapping, ...]
    key_columns: Tuple[str, ...]
    mode: SyncMode
    batch_size: int = DEFAULT_BATCH_SIZE
    dropped_columns: Tuple[str, ...] = field(default=())
    unfilled_columns: Tuple[str, ...] = field(default=())

    @property
    def target_columns(self) -> List[str]:
        return [mapping.target for mapping in self.columns]

    def map_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return {mapping.target: row.get(mapping.source) for mapping in self.columns}

    def map_rows(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self.map_row(row) for row in rows]


def plan_table(source: TableDescriptor, target: TableDescriptor, mode: SyncMode,
               batch_size: int = DEFAULT_BATCH_SIZE) -> TablePlan:
    """
    计算单张表的列映射和匹配用的主键列

    列名比较不区分大小写, 顺序与源表一致; 映射后使用目标表的列名写法

    Raises:
        SchemaMismatchError: 源表和目标表没有共同列
        KeyColumnMissingError: insert_update 模式下目标表没有可用的主键列
    """
    mode = SyncMode(mode)
    columns = []
    dropped = []
    for col in source.columns:
        target_col = target.find_column(col.name)
        if target_col is None:
            dropped.append(col.name)
        else:
            columns.append(ColumnMapping(source=col.name, target=target_col.name))

    if not columns:
        raise SchemaMismatchError(
            f"Table {source.name} has no columns in common with target table {target.name}"
        )

    mapped = {mapping.target.lower() for mapping in columns}
    unfilled = [col.name for col in target.columns if col.name.lower() not in mapped]
    key_columns = [
        target_col.name
        for target_col in (target.find_column(name) for name in target.primary_key_columns)
        if target_col is not None and target_col.name.lower() in mapped
    ]

    if mode is SyncMode.INSERT_UPDATE and not key_columns:
        raise KeyColumnMissingError(
            f"Table {target.name} has no primary key columns shared with the source, "
            f"insert_update needs at least one"
        )

    return TablePlan(
        table=target.name,
        columns=tuple(columns),
        key_columns=tuple(key_columns),
        mode=mode,
        batch_size=batch_size,
        dropped_columns=tuple(dropped),
        unfilled_columns=tuple(unfilled),
    )
