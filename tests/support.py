import os
import tempfile
import unittest
from typing import Any, List, Optional

from sqlalchemy import create_engine, text

from dbsync.models.config import DatabaseConfig, SyncMode, SyncRequest

USERS_DDL = "CREATE TABLE users (id INTEGER PRIMARY KEY, name VARCHAR(64), email VARCHAR(128) {email_constraint})"


def sqlite_config(path: str, database: Optional[str] = "main") -> DatabaseConfig:
    return DatabaseConfig(type="sqlite", host=path, database=database)


class SQLiteTestCase(unittest.IsolatedAsyncioTestCase):
    """每个测试使用临时目录中的源库和目标库文件"""

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.tmp_dir = tmp.name
        self.source_path = os.path.join(tmp.name, "source.db")
        self.target_path = os.path.join(tmp.name, "target.db")
        self.source = sqlite_config(self.source_path)
        self.target = sqlite_config(self.target_path)

    def execute(self, path: str, sql: str, params: Any = None) -> None:
        engine = create_engine(f"sqlite:///{path}")
        try:
            with engine.begin() as conn:
                conn.execute(text(sql), params or {})
        finally:
            engine.dispose()

    def query(self, path: str, sql: str) -> List[tuple]:
        engine = create_engine(f"sqlite:///{path}")
        try:
            with engine.connect() as conn:
                return [tuple(row) for row in conn.execute(text(sql))]
        finally:
            engine.dispose()

    def create_users(self, path: str, rows: int = 0, start: int = 1, email_not_null: bool = False,
                     null_email_ids: tuple = ()) -> None:
        self.execute(path, USERS_DDL.format(email_constraint="NOT NULL" if email_not_null else ""))
        if rows:
            self.execute(path, "INSERT INTO users (id, name, email) VALUES (:id, :name, :email)", [
                {
                    "id": i,
                    "name": f"user{i}",
                    "email": None if i in null_email_ids else f"user{i}@example.com",
                }
                for i in range(start, start + rows)
            ])

    def request(self, tables, mode: SyncMode = SyncMode.INSERT_UPDATE) -> SyncRequest:
        return SyncRequest(source=self.source, target=self.target, tables=tuple(tables), mode=mode)
