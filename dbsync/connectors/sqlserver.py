from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import URL, Connection

from dbsync.connectors.base import BaseConnector
from dbsync.models.schema import ColumnDescriptor


class SQLServerConnector(BaseConnector):
    name = "SQL Server"

    @property
    def owner(self) -> str:
        return self.config.schema or "dbo"

    def _build_url(self) -> URL:
        return URL.create(
            "mssql+pyodbc",
            username=self.config.username,
            password=self.config.password,
            host=self.config.host,
            port=self.config.port or 1433,
            database=self.config.database or "master",
            query={
                "driver": self.config.driver or "ODBC Driver 17 for SQL Server",
                "TrustServerCertificate": "yes" if self.config.trust_server_certificate else "no",
            },
        )

    def _databases_sql(self) -> str:
        return "SELECT name FROM sys.databases ORDER BY name"

    def _fetch_table_rows(self, conn: Connection, database: str) -> List[Dict[str, Any]]:
        query = f"""
        SELECT TABLE_NAME
        FROM {self.quote(database)}.INFORMATION_SCHEMA.TABLES
        WHERE TABLE_TYPE = 'BASE TABLE' AND TABLE_SCHEMA = :owner
        ORDER BY TABLE_NAME
        """
        return [dict(row) for row in conn.execute(text(query), {"owner": self.owner}).mappings()]

    def _fetch_columns(self, conn: Connection, database: str, table_name: str) -> List[ColumnDescriptor]:
        query = f"""
        SELECT c.COLUMN_NAME, c.DATA_TYPE, c.IS_NULLABLE
        FROM {self.quote(database)}.INFORMATION_SCHEMA.COLUMNS c
        WHERE c.TABLE_NAME = :table AND c.TABLE_SCHEMA = :owner
        ORDER BY c.ORDINAL_POSITION
        """
        result = conn.execute(text(query), {"table": table_name, "owner": self.owner})
        return [
            ColumnDescriptor(name=row.COLUMN_NAME, type=row.DATA_TYPE.lower(), nullable=row.IS_NULLABLE == "YES")
            for row in result
        ]

    def _fetch_primary_keys(self, conn: Connection, database: str, table_name: str) -> List[str]:
        prefix = self.quote(database)
        query = f"""
        SELECT ku.COLUMN_NAME
        FROM {prefix}.INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
        JOIN {prefix}.INFORMATION_SCHEMA.KEY_COLUMN_USAGE ku
            ON tc.CONSTRAINT_NAME = ku.CONSTRAINT_NAME
            AND tc.TABLE_SCHEMA = ku.TABLE_SCHEMA
        WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
            AND ku.TABLE_NAME = :table
            AND ku.TABLE_SCHEMA = :owner
        ORDER BY ku.ORDINAL_POSITION
        """
        result = conn.execute(text(query), {"table": table_name, "owner": self.owner})
        return [row.COLUMN_NAME for row in result]

    def _schema_for(self, database: Optional[str]) -> Optional[str]:
        # 形如 "db.dbo", SQLAlchemy 的 mssql 方言会拆分为库名和 owner
        database = database or self.config.database
        if database:
            return f"{database}.{self.owner}"
        return self.owner
