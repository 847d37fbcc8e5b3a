import asyncio
import json
import signal
import sys
from pathlib import Path

from loguru import logger

from dbsync.config.loader import load_config
from dbsync.services.sync import SyncService

# 移除默认的处理器
logger.remove()

# 添加文件处理器
logger.add(
    "sync.log",
    rotation="500 MB",
    level="INFO",
    format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

# 添加控制台处理器
logger.add(
    sys.stderr,
    level="DEBUG",
    format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <level>{message}</level>"
)


def parse_args() -> str:
    """解析命令行参数"""
    config_path = None
    for arg in sys.argv[1:]:
        if arg.startswith("config="):
            # 去除可能存在的引号
            config_path = arg.split("=", 1)[1].strip("'\"")
            break

    if not config_path:
        raise ValueError("Missing required argument: config=<path_to_config_file>")

    logger.debug(f"Parsed config path: {config_path}")
    return config_path


async def main() -> int:
    try:
        config_file = Path(parse_args())
        logger.info(f"Loading configuration from: {config_file.absolute()}")
        request, options = load_config(str(config_file))
    except (ValueError, FileNotFoundError) as e:
        logger.error(f"Sync failed: {str(e)}")
        return 2

    # Ctrl+C 只设置取消标记, 当前批次写完后停止
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except NotImplementedError:
            logger.debug(f"Signal {sig.name} cannot be handled on this platform")

    report = await SyncService(options).run(request, cancel_event)
    print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
