"""MTFoundry - Logging

"mtfoundry" 包日志：控制台 + 可选文件输出，级别与位置来自 Settings。
生成/执行的逐事件日志在 DEBUG 级别。
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Union

from mtfoundry.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PACKAGE_LOGGER = "mtfoundry"


def setup_logging(
    level: Optional[Union[int, str]] = None,
    log_dir: Optional[Union[str, Path]] = None,
    *,
    to_file: bool = True,
) -> logging.Logger:
    """配置 mtfoundry 日志（可重复调用，已有的处理器会被替换）

    Args:
        level: 日志级别，默认 settings.LOG_LEVEL
        log_dir: 日志目录，默认 settings.LOG_DIR
        to_file: 是否写入 <log_dir>/<settings.LOG_FILE>
    """
    level = level if level is not None else settings.LOG_LEVEL
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    log_dir = settings.LOG_DIR if log_dir is None else log_dir

    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if to_file and log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path / settings.LOG_FILE, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level)
    logger.propagate = False

    # 第三方库
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logger.debug(f"logging configured: level={logging.getLevelName(level)}, dir={log_dir or '-'}")
    return logger
