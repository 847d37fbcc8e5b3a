"""
调用方使用的三个接口: 列出数据库, 列出表, 执行同步

列库和列表返回引擎原始的元数据行, 调用方用 normalize_table_names 取出表名
"""
import asyncio
from typing import Any, Dict, Iterable, List, Optional, Union

from loguru import logger

from dbsync.connectors.base import normalize_table_name
from dbsync.connectors.factory import ConnectorFactory
from dbsync.errors import SyncError
from dbsync.models.config import DatabaseConfig, SyncOptions, SyncRequest
from dbsync.services.sync import SyncService


def _as_config(config: Union[DatabaseConfig, Dict[str, Any]]) -> DatabaseConfig:
    if isinstance(config, DatabaseConfig):
        return config
    return DatabaseConfig.from_dict(config)


def _response(success: bool, message: str, data: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {"success": success, "message": message, "data": data or []}


def normalize_table_names(rows: Iterable[Dict[str, Any]]) -> List[str]:
    return [name for name in (normalize_table_name(row) for row in rows) if name]


async def list_databases(config: Union[DatabaseConfig, Dict[str, Any]]) -> Dict[str, Any]:
    try:
        config = _as_config(config)
        connector = await ConnectorFactory.open(config)
        try:
            rows = await connector.fetch_databases()
        finally:
            await connector.disconnect()
    except (SyncError, ValueError) as e:
        logger.error(f"Failed to list databases: {str(e)}")
        return _response(False, str(e))
    return _response(True, f"{len(rows)} database(s)", rows)


async def list_tables(config: Union[DatabaseConfig, Dict[str, Any]], database: Optional[str] = None) -> Dict[str, Any]:
    try:
        config = _as_config(config)
        connector = await ConnectorFactory.open(config)
        try:
            rows = await connector.fetch_tables(database or config.database)
        finally:
            await connector.disconnect()
    except (SyncError, ValueError) as e:
        logger.error(f"Failed to list tables: {str(e)}")
        return _response(False, str(e))
    return _response(True, f"{len(rows)} table(s)", rows)


async def data_sync(request: Union[SyncRequest, Dict[str, Any]],
                    options: Optional[SyncOptions] = None,
                    cancel_event: Optional[asyncio.Event] = None) -> Dict[str, Any]:
    """执行一次同步, 返回报告字典; 请求无效时返回失败报告"""
    if not isinstance(request, SyncRequest):
        try:
            request = SyncRequest.from_dict(request)
        except ValueError as e:
            logger.error(f"Invalid sync request: {str(e)}")
            return {
                "success": False,
                "message": str(e),
                "tablesSynced": 0,
                "rowsInserted": 0,
                "rowsUpdated": 0,
                "rowsFailed": 0,
                "rowsSkipped": 0,
                "tables": [],
                "logs": [],
            }
    report = await SyncService(options).run(request, cancel_event)
    return report.to_dict()
