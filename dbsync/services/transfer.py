import asyncio
import time
from contextlib import aclosing
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from dbsync.connectors.base import BaseConnector, format_key
from dbsync.errors import KeyColumnMissingError, SchemaMismatchError, SyncCancelledError, SyncError
from dbsync.models.config import SyncOptions, SyncRequest
from dbsync.models.job import SyncJob, TableState, TableSyncResult
from dbsync.models.schema import UpsertResult
from dbsync.services.introspector import SchemaIntrospector
from dbsync.services.planner import TablePlan, plan_table

# 连接器抛出的错误, 都只影响当前表
ADAPTER_ERRORS = (SyncError, SQLAlchemyError)


class TableTransfer:
    """
    单张表的同步状态机

    Introspecting -> Planning -> Transferring -> Done
                             \\-> Skipped        \\-> Failed
    """

    def __init__(self,
                 table: str,
                 source: BaseConnector,
                 target: BaseConnector,
                 request: SyncRequest,
                 options: SyncOptions,
                 job: SyncJob,
                 cancel_event: Optional[asyncio.Event] = None,
                 introspector: Optional[SchemaIntrospector] = None):
        self.table = table
        self.source = source
        self.target = target
        self.request = request
        self.options = options
        self.job = job
        self.cancel_event = cancel_event
        self.introspector = introspector or SchemaIntrospector()
        self.result = TableSyncResult(table=table)

    @property
    def state(self) -> TableState:
        return self.result.state

    def _log(self, message: str, level: str = "INFO") -> None:
        self.job.log(f"table {self.table}: {message}", level)

    def _finish(self, state: TableState, error: Optional[str] = None) -> TableSyncResult:
        self.result.state = state
        self.result.error = error
        self.result.finished_at = datetime.now()
        return self.result

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def run(self) -> TableSyncResult:
        """把表推进到终止状态 (Done / Skipped / Failed), 不向外抛出表级错误"""
        self._log("introspecting source and target schema")
        try:
            source_desc = await self.introspector.describe_table(
                self.source, self.request.source_database, self.table)
            target_desc = await self.introspector.describe_table(
                self.target, self.request.target_database, self.table)
        except ADAPTER_ERRORS as e:
            self._log(f"schema introspection failed: {e}", "ERROR")
            return self._finish(TableState.FAILED, str(e))

        self.result.state = TableState.PLANNING
        try:
            plan = plan_table(source_desc, target_desc, self.request.mode, self.options.batch_size)
        except (SchemaMismatchError, KeyColumnMissingError) as e:
            self._log(f"skipped: {e}", "WARNING")
            return self._finish(TableState.SKIPPED, str(e))

        if plan.dropped_columns:
            self._log(f"columns missing in target, dropped: {', '.join(plan.dropped_columns)}", "WARNING")
        if plan.unfilled_columns:
            self._log(f"target columns not present in source, left to defaults: "
                      f"{', '.join(plan.unfilled_columns)}")
        self._log(f"syncing columns [{', '.join(plan.target_columns)}], "
                  f"key [{', '.join(plan.key_columns)}], mode {plan.mode.value}")

        self.result.state = TableState.TRANSFERRING
        try:
            await self._transfer(plan)
        except SyncCancelledError:
            self.result.cancelled = True
            self._log(f"cancelled after {self.result.batches} batch(es), applied batches are kept", "WARNING")
            return self._finish(TableState.FAILED, "cancelled")
        except ADAPTER_ERRORS as e:
            self._log(f"failed after {self.result.batches} batch(es): {e}", "ERROR")
            return self._finish(TableState.FAILED, str(e))

        result = self._finish(TableState.DONE)
        logger.success(f"表 {self.table} 同步完成")
        self._log(f"done, {result.rows_read} read, {result.rows_inserted} inserted, "
                  f"{result.rows_updated} updated, {result.rows_skipped} skipped, "
                  f"{result.rows_failed} failed in {result.duration:.2f}s")
        return result

    async def _transfer(self, plan: TablePlan) -> None:
        batches = self.source.stream_rows(self.request.source_database, self.table, plan.batch_size)
        async with aclosing(batches):
            while True:
                # 只在批次之间检查取消
                if self._cancelled():
                    raise SyncCancelledError(f"table {self.table} cancelled")
                try:
                    batch = await batches.__anext__()
                except StopAsyncIteration:
                    break
                batch_num = self.result.batches + 1
                rows = plan.map_rows(batch)
                self.result.rows_read += len(rows)

                batch_start_time = time.time()
                outcome = await self._write_batch(plan, rows, batch_num)
                self._record(outcome, batch_num, time.time() - batch_start_time)

    async def _write_batch(self, plan: TablePlan, rows: List[Dict[str, Any]], batch_num: int) -> UpsertResult:
        """写入一个批次, 失败后立即重试, 连续失败则抛出"""
        retry_count = 0
        while True:
            try:
                return await self.target.upsert_batch(
                    self.request.target_database, plan.table, rows, plan.key_columns, plan.mode)
            except ADAPTER_ERRORS as e:
                retry_count += 1
                if retry_count > self.options.retry_times:
                    self._log(f"batch {batch_num} failed after {retry_count} attempt(s): {e}", "ERROR")
                    raise
                self._log(f"batch {batch_num} failed, retrying ({retry_count}/{self.options.retry_times}): {e}",
                          "WARNING")
                if self.options.retry_interval:
                    await asyncio.sleep(self.options.retry_interval)

    def _record(self, outcome: UpsertResult, batch_num: int, duration: float) -> None:
        result = self.result
        result.batches = batch_num
        result.rows_inserted += outcome.inserted
        result.rows_updated += outcome.updated
        result.rows_skipped += len(outcome.skipped)
        result.rows_failed += outcome.failed

        for key in outcome.skipped:
            self._log(f"row ({format_key(key)}) already exists in target, skipped", "WARNING")
        for failure in outcome.failures:
            self._log(f"row ({format_key(failure.key)}) rejected: {failure}", "ERROR")

        line = (f"batch {batch_num}, +{outcome.inserted} inserted, "
                f"+{outcome.updated} updated, +{outcome.failed} failed")
        if outcome.skipped:
            line += f", +{len(outcome.skipped)} skipped"
        self._log(line)
        logger.debug(f"表 {self.table} 批次 {batch_num} 耗时: {duration:.2f}秒")
