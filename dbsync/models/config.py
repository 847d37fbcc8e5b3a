from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

DEFAULT_BATCH_SIZE = 500


class SyncMode(str, Enum):
    INSERT_ONLY = "insert_only"
    INSERT_UPDATE = "insert_update"


@dataclass(frozen=True)
class DatabaseConfig:
    """
    单个数据库连接的配置

    SQLite 使用 host 作为数据库文件路径, database 为逻辑库名 (默认 main)
    """
    type: str
    host: str = ""
    port: int = 0
    username: str = ""
    password: str = ""
    database: Optional[str] = None
    driver: Optional[str] = None
    schema: Optional[str] = None
    sslmode: Optional[str] = None
    trust_server_certificate: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabaseConfig":
        """从调用方传入的字典构建配置, 兼容 user/username 两种写法"""
        if "type" not in data:
            raise ValueError("Connection config is missing 'type'")
        port = data.get("port") or 0
        return cls(
            type=str(data["type"]).lower(),
            host=data.get("host") or "",
            port=int(port),
            username=data.get("username", data.get("user")) or "",
            password=data.get("password") or "",
            database=data.get("database") or None,
            driver=data.get("driver"),
            schema=data.get("schema"),
            sslmode=data.get("sslmode"),
            trust_server_certificate=data.get("trust_server_certificate"),
        )

    def describe(self) -> str:
        """不含密码的连接描述, 用于日志"""
        location = self.host if self.type == "sqlite" else f"{self.host}:{self.port}"
        return f"{self.type}://{location}/{self.database or ''}"


@dataclass(frozen=True)
class SyncOptions:
    batch_size: int = DEFAULT_BATCH_SIZE
    retry_times: int = 1
    retry_interval: float = 0

    def __post_init__(self):
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.retry_times < 0:
            raise ValueError(f"retry_times must not be negative, got {self.retry_times}")
        if self.retry_interval < 0:
            raise ValueError(f"retry_interval must not be negative, got {self.retry_interval}")


def _unique(tables: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for table in tables:
        if table and table not in seen:
            seen.append(table)
    return tuple(seen)


@dataclass(frozen=True)
class SyncRequest:
    source: DatabaseConfig
    target: DatabaseConfig
    tables: Tuple[str, ...]
    mode: SyncMode = SyncMode.INSERT_UPDATE

    def __post_init__(self):
        # 保持请求中的顺序, 去掉重复表名
        object.__setattr__(self, "tables", _unique(self.tables))
        object.__setattr__(self, "mode", SyncMode(self.mode))

    @property
    def source_database(self) -> Optional[str]:
        return self.source.database

    @property
    def target_database(self) -> Optional[str]:
        return self.target.database

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncRequest":
        """
        从调用方的请求结构构建

        Args:
            data: {sourceConfig, targetConfig, tables, mode}

        Raises:
            ValueError: 请求内容无效
        """
        try:
            source = DatabaseConfig.from_dict(data["sourceConfig"])
            target = DatabaseConfig.from_dict(data["targetConfig"])
            tables = data["tables"]
        except KeyError as e:
            raise ValueError(f"Sync request is missing field: {e}") from e
        if isinstance(tables, str):
            raise ValueError("Sync request 'tables' must be a list of table names")
        try:
            mode = SyncMode(data.get("mode", SyncMode.INSERT_UPDATE.value))
        except ValueError as e:
            raise ValueError(f"Unsupported sync mode: {data.get('mode')}") from e
        return cls(source=source, target=target, tables=tuple(tables), mode=mode)
