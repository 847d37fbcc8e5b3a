import asyncio
import time
from typing import Optional, Tuple

from loguru import logger

from dbsync.connectors.base import BaseConnector
from dbsync.connectors.factory import ConnectorFactory
from dbsync.errors import DBConnectionError
from dbsync.models.config import SyncOptions, SyncRequest
from dbsync.models.job import SyncJob, SyncReport
from dbsync.services.introspector import SchemaIntrospector
from dbsync.services.reporter import build_report
from dbsync.services.transfer import TableTransfer


class SyncService:
    """
    同步编排器

    先打开源库和目标库 (任一不可达则整个作业失败), 然后逐表同步;
    单表的跳过或失败不影响后续表
    """

    def __init__(self, options: Optional[SyncOptions] = None, connector_factory=ConnectorFactory):
        self.options = options or SyncOptions()
        self.connector_factory = connector_factory
        self.introspector = SchemaIntrospector(connector_factory)

    async def _open(self, request: SyncRequest, job: SyncJob) -> Tuple[BaseConnector, BaseConnector]:
        """打开源和目标连接, 失败时已打开的连接会被关闭"""
        job.log(f"connecting to source {request.source.describe()}")
        source = await self.connector_factory.open(request.source)
        try:
            job.log(f"connecting to target {request.target.describe()}")
            target = await self.connector_factory.open(request.target)
        except BaseException:
            await source.disconnect()
            raise
        return source, target

    async def run(self, request: SyncRequest, cancel_event: Optional[asyncio.Event] = None) -> SyncReport:
        job = SyncJob(tables=request.tables)
        job.start()
        start_time = time.time()
        job.log(f"sync started: {len(request.tables)} table(s), mode {request.mode.value}, "
                f"batch size {self.options.batch_size}")

        try:
            source, target = await self._open(request, job)
        except (DBConnectionError, ValueError) as e:
            job.log(f"sync aborted: {e}", "ERROR")
            job.fail(str(e))
            return build_report(job)

        try:
            for table in request.tables:
                if cancel_event is not None and cancel_event.is_set():
                    job.cancelled = True
                    job.log(f"sync cancelled, table {table} and later tables not started", "WARNING")
                    break
                transfer = TableTransfer(
                    table=table,
                    source=source,
                    target=target,
                    request=request,
                    options=self.options,
                    job=job,
                    cancel_event=cancel_event,
                    introspector=self.introspector,
                )
                result = await transfer.run()
                job.record(result)
                if result.cancelled:
                    job.cancelled = True
                    break
        finally:
            await source.disconnect()
            await target.disconnect()

        job.finish()
        total_duration = time.time() - start_time
        job.log(f"sync finished in {total_duration:.2f}s")
        report = build_report(job)
        if report.success:
            logger.success(f"所有表同步完成，总耗时: {total_duration:.2f}秒")
        else:
            logger.error(f"同步未全部成功，总耗时: {total_duration:.2f}秒: {report.message}")
        return report
