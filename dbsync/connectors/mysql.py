from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import URL, Connection

from dbsync.connectors.base import BaseConnector
from dbsync.models.schema import ColumnDescriptor


class MySQLConnector(BaseConnector):
    name = "MySQL"

    def _build_url(self) -> URL:
        return URL.create(
            "mysql+pymysql",
            username=self.config.username,
            password=self.config.password,
            host=self.config.host,
            port=self.config.port or 3306,
            database=self.config.database,
            query={"charset": "utf8mb4"},
        )

    def _databases_sql(self) -> str:
        return "SHOW DATABASES"

    def _fetch_table_rows(self, conn: Connection, database: str) -> List[Dict[str, Any]]:
        # 返回 {Tables_in_<db>: ..., Table_type: ...}, 表名在第一列
        query = f"SHOW FULL TABLES FROM {self.quote(database)} WHERE Table_type = 'BASE TABLE'"
        return [dict(row) for row in conn.execute(text(query)).mappings()]

    def _fetch_columns(self, conn: Connection, database: str, table_name: str) -> List[ColumnDescriptor]:
        query = """
        SELECT COLUMN_NAME, DATA_TYPE, IS_NULLABLE, COLUMN_KEY
        FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_SCHEMA = :database AND TABLE_NAME = :table
        ORDER BY ORDINAL_POSITION
        """
        result = conn.execute(text(query), {"database": database, "table": table_name})
        return [
            ColumnDescriptor(
                name=row.COLUMN_NAME,
                type=row.DATA_TYPE,
                is_primary_key=row.COLUMN_KEY == "PRI",
                nullable=row.IS_NULLABLE == "YES",
            )
            for row in result
        ]

    def _fetch_primary_keys(self, conn: Connection, database: str, table_name: str) -> List[str]:
        query = """
        SELECT COLUMN_NAME
        FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE
        WHERE TABLE_SCHEMA = :database AND TABLE_NAME = :table AND CONSTRAINT_NAME = 'PRIMARY'
        ORDER BY ORDINAL_POSITION
        """
        result = conn.execute(text(query), {"database": database, "table": table_name})
        return [row.COLUMN_NAME for row in result]

    def _schema_for(self, database: Optional[str]) -> Optional[str]:
        return database or self.config.database
