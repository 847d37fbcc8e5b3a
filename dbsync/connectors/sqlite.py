from typing import Any, Dict, List, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import URL, Connection, Engine

from dbsync.connectors.base import BaseConnector
from dbsync.models.schema import ColumnDescriptor


class SQLiteConnector(BaseConnector):
    """
    SQLite 连接器

    host 为数据库文件路径; 数据库名对应 SQLite 的 schema (main 或 ATTACH 的库)
    """

    name = "SQLite"
    default_database = "main"

    def _build_url(self) -> URL:
        if not self.config.host:
            return URL.create("sqlite", database=":memory:")
        # mode=rw: 文件不存在时连接失败, 而不是创建一个空库
        return URL.create("sqlite", database=f"file:{self.config.host}", query={"mode": "rw", "uri": "true"})

    def _on_engine_created(self, engine: Engine) -> None:
        # pysqlite 自带的事务处理会破坏 SAVEPOINT, 改为由 SQLAlchemy 显式发出 BEGIN
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    def _databases_sql(self) -> str:
        return "PRAGMA database_list"

    def _fetch_table_rows(self, conn: Connection, database: str) -> List[Dict[str, Any]]:
        query = f"""
        SELECT name AS "table"
        FROM {self.quote(database)}.sqlite_master
        WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
        ORDER BY name
        """
        return [dict(row) for row in conn.execute(text(query)).mappings()]

    def _table_info(self, conn: Connection, database: str, table_name: str):
        query = f"PRAGMA {self.quote(database)}.table_info({self.quote(table_name)})"
        return conn.execute(text(query)).mappings().all()

    def _fetch_columns(self, conn: Connection, database: str, table_name: str) -> List[ColumnDescriptor]:
        return [
            ColumnDescriptor(
                name=row["name"],
                type=(row["type"] or "").lower(),
                is_primary_key=row["pk"] > 0,
                nullable=not row["notnull"],
            )
            for row in self._table_info(conn, database, table_name)
        ]

    def _fetch_primary_keys(self, conn: Connection, database: str, table_name: str) -> List[str]:
        keyed = [row for row in self._table_info(conn, database, table_name) if row["pk"] > 0]
        return [row["name"] for row in sorted(keyed, key=lambda row: row["pk"])]

    def _schema_for(self, database: Optional[str]) -> Optional[str]:
        return self._resolve(database)
