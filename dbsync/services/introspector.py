from typing import List, Optional

from loguru import logger

from dbsync.connectors.base import BaseConnector
from dbsync.connectors.factory import ConnectorFactory
from dbsync.models.config import DatabaseConfig
from dbsync.models.schema import TableDescriptor


class SchemaIntrospector:
    """把各引擎的元数据统一为 TableDescriptor"""

    def __init__(self, connector_factory=ConnectorFactory):
        self.connector_factory = connector_factory

    async def describe(self, config: DatabaseConfig, database: Optional[str] = None) -> List[TableDescriptor]:
        """
        读取数据库中所有表的结构

        Args:
            config: 连接配置
            database: 数据库名, 为空时使用配置中的库

        Raises:
            DBConnectionError: 无法连接
            SchemaError: 数据库不存在
        """
        connector = await self.connector_factory.open(config)
        try:
            tables = await connector.list_tables(database or config.database)
            for descriptor in tables:
                self._warn_without_key(descriptor)
            return tables
        finally:
            await connector.disconnect()

    async def describe_table(self, connector: BaseConnector, database: Optional[str],
                             table_name: str) -> TableDescriptor:
        return await connector.get_table_schema(database, table_name)

    @staticmethod
    def _warn_without_key(descriptor: TableDescriptor) -> None:
        if not descriptor.primary_key_columns:
            logger.warning(f"Table {descriptor.name} has no primary key, only insert_only can be used")
