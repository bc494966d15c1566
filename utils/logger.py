"""
Logger Configuration
统一日志配置: rich 控制台输出 + 可选文件输出
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler


console = Console(stderr=True)

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_FORMAT_SIMPLE = "%(message)s"

LOG_DIR = Path(__file__).parent.parent / "logs"

ROOT_LOGGER_NAME = "daily_web_scanner"

# 第三方库默认过于啰嗦
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level or "INFO").upper(), logging.INFO)


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    use_rich: bool = True,
) -> logging.Logger:
    """
    给指定 logger 挂上控制台 (和文件) handler

    Args:
        name: 日志记录器名称, "" 表示 root
        level: 日志级别 (int 或 "DEBUG" 之类的名字)
        log_file: 日志文件名, 写到 logs/ 目录下
        use_rich: 控制台是否用 RichHandler

    Returns:
        配置好的 Logger; 已有 handler 时只更新级别
    """
    numeric_level = _coerce_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)

    if logger.handlers:
        return logger

    if use_rich:
        console_handler: logging.Handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT_SIMPLE))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler.setLevel(numeric_level)
    logger.addHandler(console_handler)

    if log_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(LOG_DIR / log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(numeric_level)
        logger.addHandler(file_handler)

    return logger


def configure_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """CLI 入口调用: 配置 root logger, 并把第三方库压到 WARNING"""
    root = setup_logger("", level=level, log_file=log_file)
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return root


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """获取 logger; 自身和祖先都没有 handler 时才做默认配置"""
    logger = logging.getLogger(name)
    if not logger.hasHandlers():
        return setup_logger(name)
    return logger


# 包内命名空间日志器, 不单独挂 handler, 向 root 传播
def get_scheduler_logger() -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.scheduler")


def get_executor_logger() -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.executor")


def get_storage_logger() -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.storage")


def get_fetch_logger() -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.fetch")
