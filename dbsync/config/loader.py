import json
from typing import Tuple

from loguru import logger

from dbsync.models.config import DatabaseConfig, SyncMode, SyncOptions, SyncRequest


def load_config(config_path: str) -> Tuple[SyncRequest, SyncOptions]:
    """
    从JSON文件加载同步配置

    Args:
        config_path: 配置文件路径

    Returns:
        (SyncRequest, SyncOptions)

    Raises:
        FileNotFoundError: 配置文件不存在
        ValueError: JSON格式错误或配置内容无效
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"配置文件不存在: {config_path}")
    except json.JSONDecodeError as e:
        raise ValueError(f"配置文件JSON格式错误: {str(e)}") from e

    try:
        source_config = DatabaseConfig.from_dict(data["source"])
        target_config = DatabaseConfig.from_dict(data["target"])
        tables = data["tables"]
    except KeyError as e:
        raise ValueError(f"配置文件缺少必要字段: {str(e)}") from e

    if not isinstance(tables, list) or not tables:
        raise ValueError("配置文件中的 tables 必须是非空的表名列表")

    # 可选配置, 未设置时使用默认值
    option_kwargs = {}
    for field in ("batch_size", "retry_times", "retry_interval"):
        if field in data:
            option_kwargs[field] = data[field]
            logger.debug(f"使用配置文件中的 {field}: {data[field]}")
        else:
            logger.debug(f"使用默认值 {field}")

    try:
        mode = SyncMode(data.get("mode", SyncMode.INSERT_UPDATE.value))
        options = SyncOptions(**option_kwargs)
    except (TypeError, ValueError) as e:
        raise ValueError(f"配置文件内容无效: {str(e)}") from e

    request = SyncRequest(source=source_config, target=target_config, tables=tuple(tables), mode=mode)
    logger.debug(f"最终配置: {len(request.tables)} 张表, mode = {mode.value}, batch_size = {options.batch_size}")
    return request, options
