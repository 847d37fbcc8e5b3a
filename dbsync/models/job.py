from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TableState(str, Enum):
    INTROSPECTING = "introspecting"
    PLANNING = "planning"
    TRANSFERRING = "transferring"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


_JOB_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.RUNNING, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


@dataclass
class TableSyncResult:
    table: str
    state: TableState = TableState.INTROSPECTING
    rows_read: int = 0
    rows_inserted: int = 0
    rows_updated: int = 0
    rows_skipped: int = 0
    rows_failed: int = 0
    batches: int = 0
    error: Optional[str] = None
    cancelled: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def duration(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "state": self.state.value,
            "rowsRead": self.rows_read,
            "rowsInserted": self.rows_inserted,
            "rowsUpdated": self.rows_updated,
            "rowsSkipped": self.rows_skipped,
            "rowsFailed": self.rows_failed,
            "batches": self.batches,
            "error": self.error,
        }


@dataclass
class SyncJob:
    """单次同步执行的运行时状态, 只由编排器和传输引擎修改"""
    tables: Tuple[str, ...]
    status: JobStatus = JobStatus.PENDING
    results: Dict[str, TableSyncResult] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    cancelled: bool = False

    def _transition(self, status: JobStatus) -> None:
        if status not in _JOB_TRANSITIONS[self.status]:
            raise RuntimeError(f"Illegal job status transition: {self.status.value} -> {status.value}")
        self.status = status

    def log(self, message: str, level: str = "INFO") -> None:
        """追加一行作业日志, 同时输出到 loguru"""
        line = f"[{datetime.now():%H:%M:%S}] {message}"
        self.logs.append(line)
        logger.opt(depth=1).log(level, message)

    def start(self) -> None:
        self._transition(JobStatus.RUNNING)
        self.started_at = datetime.now()

    def record(self, result: TableSyncResult) -> None:
        self.results[result.table] = result

    def finish(self) -> None:
        self.finished_at = datetime.now()
        if self.cancelled:
            self._transition(JobStatus.FAILED)
        else:
            self._transition(JobStatus.COMPLETED)

    def fail(self, error: str) -> None:
        self.error = error
        self.finished_at = datetime.now()
        self._transition(JobStatus.FAILED)


@dataclass(frozen=True)
class SyncReport:
    success: bool
    message: str
    tables_synced: int
    rows_inserted: int
    rows_updated: int
    logs: Tuple[str, ...]
    rows_failed: int = 0
    rows_skipped: int = 0
    tables: Tuple[Dict[str, Any], ...] = ()
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """调用方使用的响应结构"""
        return {
            "success": self.success,
            "message": self.message,
            "tablesSynced": self.tables_synced,
            "rowsInserted": self.rows_inserted,
            "rowsUpdated": self.rows_updated,
            "rowsFailed": self.rows_failed,
            "rowsSkipped": self.rows_skipped,
            "tables": list(self.tables),
            "logs": list(self.logs),
        }
