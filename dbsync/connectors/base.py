from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger
from sqlalchemy import and_, bindparam, column, create_engine, insert, literal_column, or_, select, table, text, update
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.sql.expression import TableClause

from dbsync.errors import DBConnectionError, RowRejectedError, SchemaError
from dbsync.models.config import DatabaseConfig, SyncMode
from dbsync.models.schema import ColumnDescriptor, TableDescriptor, UpsertResult

TABLE_NAME_KEYS = ("Table", "table", "TABLE_NAME")
DATABASE_NAME_KEYS = ("Database", "database", "name")

# 查询已存在主键时每条 SELECT 覆盖的行数, 避免超过驱动的参数数量上限
KEY_LOOKUP_CHUNK = 200

# 目标库针对单行数据的拒绝 (约束冲突, 数据类型错误)
ROW_LEVEL_ERRORS = (IntegrityError, DataError)


def _first_value(row: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = row.get(key)
        if value:
            return str(value)
    # 单个未命名列, 或各引擎自己的列名 (Tables_in_xxx 等)
    for value in row.values():
        if value:
            return str(value)
    return None


def normalize_table_name(row: Mapping[str, Any]) -> Optional[str]:
    """从不同引擎的表元数据行中取出表名"""
    return _first_value(row, TABLE_NAME_KEYS)


def normalize_database_name(row: Mapping[str, Any]) -> Optional[str]:
    """从不同引擎的库元数据行中取出库名"""
    return _first_value(row, DATABASE_NAME_KEYS)


def row_key(row: Mapping[str, Any], key_columns: Sequence[str]) -> Tuple[Any, ...]:
    return tuple(row.get(col) for col in key_columns)


def format_key(key: Mapping[str, Any]) -> str:
    return ", ".join(f"{name}={value!r}" for name, value in key.items())


def loose_key(key: Tuple[Any, ...]) -> Tuple[Any, ...]:
    """按字符串比较并忽略大小写与尾部空格的主键形式, 对应目标库较宽松的比较规则"""
    return tuple(None if value is None else str(value).rstrip().casefold() for value in key)


def bind_prefix(columns: Sequence[str], prefix: str) -> str:
    """生成不与任何列名冲突的绑定参数前缀, SQLAlchemy 保留与列同名的参数"""
    while any(name.startswith(prefix) for name in columns):
        prefix = "_" + prefix
    return prefix


class BaseConnector(ABC):
    """
    单个数据库引擎的统一能力接口

    一个实例只对应一个物理连接 (一个 SQLAlchemy engine), 不保证并发安全
    """

    name = "base"
    default_database: Optional[str] = None

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._engine: Optional[Engine] = None

    # ---- 各引擎需要实现的部分 ----

    @abstractmethod
    def _build_url(self) -> URL:
        """构建 SQLAlchemy 连接 URL"""

    @abstractmethod
    def _databases_sql(self) -> str:
        """列出数据库的查询"""

    @abstractmethod
    def _fetch_table_rows(self, conn: Connection, database: str) -> List[Dict[str, Any]]:
        """查询数据库中的表, 返回引擎原始的元数据行"""

    @abstractmethod
    def _fetch_columns(self, conn: Connection, database: str, table_name: str) -> List[ColumnDescriptor]:
        """查询表的列定义, 按列顺序"""

    @abstractmethod
    def _fetch_primary_keys(self, conn: Connection, database: str, table_name: str) -> List[str]:
        """查询表的主键列, 按主键顺序"""

    @abstractmethod
    def _schema_for(self, database: Optional[str]) -> Optional[str]:
        """生成 SQL 时用于限定表名的 schema"""

    def _engine_options(self) -> Dict[str, Any]:
        return {"pool_pre_ping": True}

    def _on_engine_created(self, engine: Engine) -> None:
        pass

    # ---- 连接管理 ----

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise DBConnectionError(f"{self.name} connector is not connected")
        return self._engine

    async def connect(self) -> None:
        try:
            self._engine = create_engine(self._build_url(), **self._engine_options())
            self._on_engine_created(self._engine)
            # 测试连接
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info(f"Successfully connected to {self.name}: {self.config.describe()}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to connect to {self.name} ({self.config.describe()}): {str(e)}")
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None
            raise DBConnectionError(f"Cannot connect to {self.config.describe()}: {e}") from e

    async def disconnect(self) -> None:
        if self._engine:
            self._engine.dispose()
            self._engine = None
            logger.info(f"Disconnected from {self.name}: {self.config.describe()}")

    async def use_database(self, database: Optional[str]) -> None:
        """切换当前连接的数据库; 可以用限定名跨库访问的引擎无需处理"""

    def _resolve(self, database: Optional[str]) -> Optional[str]:
        return database or self.config.database or self.default_database

    def quote(self, identifier: str) -> str:
        return self.engine.dialect.identifier_preparer.quote_identifier(identifier)

    def _table(self, database: Optional[str], table_name: str, columns: Sequence[str] = ()) -> TableClause:
        return table(table_name, *[column(name) for name in columns], schema=self._schema_for(database))

    # ---- 元数据 ----

    async def fetch_databases(self) -> List[Dict[str, Any]]:
        try:
            with self.engine.connect() as conn:
                return [dict(row) for row in conn.execute(text(self._databases_sql())).mappings()]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list databases on {self.config.describe()}: {str(e)}")
            raise DBConnectionError(f"Cannot list databases: {e}") from e

    async def list_databases(self) -> List[str]:
        names = []
        for row in await self.fetch_databases():
            name = normalize_database_name(row)
            if name:
                names.append(name)
        return names

    async def _ensure_database(self, database: Optional[str]) -> str:
        database = self._resolve(database)
        if not database:
            raise SchemaError("No database selected")
        if database not in await self.list_databases():
            raise SchemaError(f"Database does not exist: {database}")
        await self.use_database(database)
        return database

    async def fetch_tables(self, database: Optional[str]) -> List[Dict[str, Any]]:
        database = await self._ensure_database(database)
        try:
            with self.engine.connect() as conn:
                return self._fetch_table_rows(conn, database)
        except SQLAlchemyError as e:
            logger.error(f"Failed to list tables of {database}: {str(e)}")
            raise SchemaError(f"Cannot list tables of {database}: {e}") from e

    async def list_tables(self, database: Optional[str]) -> List[TableDescriptor]:
        descriptors = []
        for row in await self.fetch_tables(database):
            name = normalize_table_name(row)
            if name:
                descriptors.append(await self.get_table_schema(database, name))
        return descriptors

    async def get_columns(self, database: Optional[str], table_name: str) -> List[ColumnDescriptor]:
        database = self._resolve(database)
        await self.use_database(database)
        try:
            with self.engine.connect() as conn:
                return self._fetch_columns(conn, database, table_name)
        except SQLAlchemyError as e:
            logger.error(f"Failed to get columns for table {table_name}: {str(e)}")
            raise SchemaError(f"Cannot read columns of {table_name}: {e}") from e

    async def get_primary_keys(self, database: Optional[str], table_name: str) -> List[str]:
        database = self._resolve(database)
        await self.use_database(database)
        try:
            with self.engine.connect() as conn:
                return self._fetch_primary_keys(conn, database, table_name)
        except SQLAlchemyError as e:
            logger.error(f"Failed to get primary keys for table {table_name}: {str(e)}")
            raise SchemaError(f"Cannot read primary keys of {table_name}: {e}") from e

    async def get_table_schema(self, database: Optional[str], table_name: str) -> TableDescriptor:
        columns = await self.get_columns(database, table_name)
        if not columns:
            raise SchemaError(f"Table does not exist: {database}.{table_name}")
        primary_keys = await self.get_primary_keys(database, table_name)
        if not primary_keys:
            primary_keys = [col.name for col in columns if col.is_primary_key]
        return TableDescriptor(name=table_name, columns=tuple(columns), primary_key_columns=tuple(primary_keys))

    # ---- 数据 ----

    async def stream_rows(self, database: Optional[str], table_name: str,
                          batch_size: int = 500) -> AsyncIterator[List[Dict[str, Any]]]:
        """分批读取整张表; 每次调用都从头读取"""
        await self.use_database(database)
        stmt = select(literal_column("*")).select_from(self._table(database, table_name))
        with self.engine.connect() as conn:
            result = conn.execution_options(stream_results=True).execute(stmt)
            for partition in result.mappings().partitions(batch_size):
                yield [dict(row) for row in partition]

    def _existing_keys(self, conn: Connection, tbl: TableClause, rows: List[Dict[str, Any]],
                       key_columns: Sequence[str]) -> set:
        keys = {row_key(row, key_columns) for row in rows}
        found = set()
        key_list = list(keys)
        for start in range(0, len(key_list), KEY_LOOKUP_CHUNK):
            chunk = key_list[start:start + KEY_LOOKUP_CHUNK]
            if len(key_columns) == 1:
                condition = tbl.c[key_columns[0]].in_([key[0] for key in chunk])
            else:
                condition = or_(*[
                    and_(*[tbl.c[col] == value for col, value in zip(key_columns, key)])
                    for key in chunk
                ])
            stmt = select(*[tbl.c[col] for col in key_columns]).where(condition)
            found.update(tuple(row) for row in conn.execute(stmt))
        return found

    @staticmethod
    def _prefixes(columns: Sequence[str]) -> Tuple[str, str]:
        return bind_prefix(columns, "v_"), bind_prefix(columns, "k_")

    def _insert_stmt(self, tbl: TableClause, columns: Sequence[str]):
        value_prefix, _ = self._prefixes(columns)
        return insert(tbl).values({
            tbl.c[col]: bindparam(f"{value_prefix}{idx}") for idx, col in enumerate(columns)
        })

    def _update_stmt(self, tbl: TableClause, columns: Sequence[str], key_columns: Sequence[str]):
        value_prefix, key_prefix = self._prefixes(columns)
        where = and_(*[tbl.c[col] == bindparam(f"{key_prefix}{idx}") for idx, col in enumerate(key_columns)])
        values = {
            tbl.c[col]: bindparam(f"{value_prefix}{idx}")
            for idx, col in enumerate(columns) if col not in key_columns
        }
        return update(tbl).where(where).values(values)

    @classmethod
    def _params(cls, row: Dict[str, Any], columns: Sequence[str], key_columns: Sequence[str]) -> Dict[str, Any]:
        value_prefix, key_prefix = cls._prefixes(columns)
        params = {
            f"{value_prefix}{idx}": row.get(col)
            for idx, col in enumerate(columns) if col not in key_columns
        }
        params.update({f"{key_prefix}{idx}": row.get(col) for idx, col in enumerate(key_columns)})
        return params

    async def upsert_batch(self, database: Optional[str], table_name: str, rows: List[Dict[str, Any]],
                           key_columns: Sequence[str], mode: SyncMode) -> UpsertResult:
        """
        写入一个批次

        Args:
            database: 目标数据库
            table_name: 目标表
            rows: 已映射为目标列名的行
            key_columns: 用于匹配已有行的列, 可以为空 (仅 insert_only)
            mode: insert_only 跳过已存在的行, insert_update 更新已存在的行

        Returns:
            UpsertResult, 被目标库拒绝的行记录在 failures 中

        Raises:
            SQLAlchemyError: 连接级别的错误, 整个批次未写入
        """
        result = UpsertResult()
        if not rows:
            return result

        mode = SyncMode(mode)
        key_columns = list(key_columns)
        columns = list(rows[0].keys())
        await self.use_database(database)
        tbl = self._table(database, table_name, columns)

        with self.engine.connect() as conn:
            existing = self._existing_keys(conn, tbl, rows, key_columns) if key_columns else set()
            conn.commit()

            # 目标库返回了批次中没有原样出现的主键, 说明它的比较规则更宽松 (排序规则, 类型转换)
            batch_keys = {row_key(row, key_columns) for row in rows} if key_columns else set()
            unclaimed = {loose_key(key) for key in existing - batch_keys}

            inserts, updates = [], []
            pending = set()
            for row in rows:
                key = row_key(row, key_columns) if key_columns else None
                matched = key is not None and (
                    key in existing
                    or key in pending
                    or (bool(unclaimed) and loose_key(key) in unclaimed)
                )
                if matched:
                    if mode is SyncMode.INSERT_ONLY:
                        result.skipped.append({col: row.get(col) for col in key_columns})
                        continue
                    # 批次内重复的主键按出现顺序更新, 后出现的行生效
                    updates.append(row)
                else:
                    inserts.append(row)
                    if key is not None and None not in key:
                        pending.add(key)

            update_columns = [col for col in columns if col not in key_columns]
            try:
                with conn.begin():
                    if inserts:
                        conn.execute(self._insert_stmt(tbl, columns),
                                     [self._params(row, columns, ()) for row in inserts])
                    # 只有主键列的表没有可更新的内容
                    if updates and update_columns:
                        conn.execute(self._update_stmt(tbl, columns, key_columns),
                                     [self._params(row, columns, key_columns) for row in updates])
                result.inserted = len(inserts)
                result.updated = len(updates)
                return result
            except ROW_LEVEL_ERRORS as e:
                logger.warning(f"Batch rejected by {table_name}, retrying row by row: {str(e.orig)}")

            # 逐行写入, 每行一个 savepoint, 只有出错的行失败
            with conn.begin():
                for position, row in enumerate(inserts + updates):
                    is_update = position >= len(inserts)
                    try:
                        with conn.begin_nested():
                            if not is_update:
                                conn.execute(self._insert_stmt(tbl, columns), self._params(row, columns, ()))
                            elif update_columns:
                                conn.execute(self._update_stmt(tbl, columns, key_columns),
                                             self._params(row, columns, key_columns))
                    except ROW_LEVEL_ERRORS as e:
                        if key_columns:
                            key = {col: row.get(col) for col in key_columns}
                        else:
                            key = dict(row)
                        result.failures.append(RowRejectedError(str(e.orig), key))
                        continue
                    if is_update:
                        result.updated += 1
                    else:
                        result.inserted += 1
        return result
