from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import URL, Connection

from dbsync.connectors.base import BaseConnector
from dbsync.models.schema import ColumnDescriptor


class PostgreSQLConnector(BaseConnector):
    """PostgreSQL 的每个数据库是独立连接, 切换数据库需要重建 engine"""

    name = "PostgreSQL"

    def __init__(self, config):
        super().__init__(config)
        self._current_database = config.database or "postgres"

    @property
    def pg_schema(self) -> str:
        return self.config.schema or "public"

    def _build_url(self) -> URL:
        query = {}
        # 添加schema搜索路径
        if self.config.schema:
            query["options"] = f"-csearch_path={self.config.schema}"
        if self.config.sslmode:
            query["sslmode"] = self.config.sslmode
        return URL.create(
            "postgresql+psycopg2",
            username=self.config.username,
            password=self.config.password,
            host=self.config.host,
            port=self.config.port or 5432,
            database=self._current_database,
            query=query,
        )

    async def use_database(self, database: Optional[str]) -> None:
        if not database or database == self._current_database:
            return
        logger.debug(f"Switching PostgreSQL connection to database {database}")
        await self.disconnect()
        self._current_database = database
        await self.connect()

    def _databases_sql(self) -> str:
        return "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname"

    def _fetch_table_rows(self, conn: Connection, database: str) -> List[Dict[str, Any]]:
        query = """
        SELECT table_name AS "TABLE_NAME"
        FROM information_schema.tables
        WHERE table_schema = :schema AND table_type = 'BASE TABLE'
        ORDER BY table_name
        """
        return [dict(row) for row in conn.execute(text(query), {"schema": self.pg_schema}).mappings()]

    def _fetch_columns(self, conn: Connection, database: str, table_name: str) -> List[ColumnDescriptor]:
        query = """
        SELECT c.column_name, c.data_type, c.is_nullable
        FROM information_schema.columns c
        WHERE c.table_name = :table AND c.table_schema = :schema
        ORDER BY c.ordinal_position
        """
        result = conn.execute(text(query), {"table": table_name, "schema": self.pg_schema})
        return [
            ColumnDescriptor(name=row.column_name, type=row.data_type, nullable=row.is_nullable == "YES")
            for row in result
        ]

    def _fetch_primary_keys(self, conn: Connection, database: str, table_name: str) -> List[str]:
        query = """
        SELECT ku.column_name
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage ku
            ON tc.constraint_name = ku.constraint_name
            AND tc.table_schema = ku.table_schema
            AND tc.table_name = ku.table_name
        WHERE tc.constraint_type = 'PRIMARY KEY'
            AND tc.table_name = :table
            AND tc.table_schema = :schema
        ORDER BY ku.ordinal_position
        """
        result = conn.execute(text(query), {"table": table_name, "schema": self.pg_schema})
        return [row.column_name for row in result]

    def _schema_for(self, database: Optional[str]) -> Optional[str]:
        return self.pg_schema
