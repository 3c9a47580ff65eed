from __future__ import annotations

import os
import logging
from datetime import datetime
from typing import Dict, Any, Optional
from loguru import logger


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[component]}</magenta> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def _to_logging_level(level_str: str) -> int:
    """Convert string level to standard library logging level value."""
    level = getattr(logging, str(level_str).upper(), None)
    return level if isinstance(level, int) else logging.INFO


class InterceptHandler(logging.Handler):
    """Bridge standard library logging to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(config: Optional[Dict[str, Any]] = None, base_dir: Optional[str] = None) -> str:
    """Setup unified logging (JSON file + console) and bridge standard library logging.

    Args:
        config: Full configuration dictionary; reads logging.console_level, logging.file_level,
            logging.log_dir, logging.intercept_std_logging
        base_dir: Log base directory; overrides logging.log_dir and the PUMPPANDA_LOG_DIR environment variable

    Returns:
        str: Main log file path
    """
    log_cfg = (config.get("logging", {}) if isinstance(config, dict) else {}) or {}
    console_level = str(log_cfg.get("console_level", "INFO")).upper()
    file_level = str(log_cfg.get("file_level", "DEBUG")).upper()
    intercept_std_logging = bool(log_cfg.get("intercept_std_logging", True))

    if base_dir is None:
        base_dir = log_cfg.get("log_dir") or os.environ.get(
            "PUMPPANDA_LOG_DIR", os.path.join(os.getcwd(), "logs")
        )

    os.makedirs(base_dir, exist_ok=True)
    date_str = datetime.now().strftime("%Y-%m-%d")
    log_path = os.path.join(base_dir, f"pumppanda_{date_str}.log")

    # Remove default handlers to avoid duplication
    logger.remove()
    logger.configure(extra={"component": "-"})

    # Main log file handler (JSON)
    logger.add(
        log_path,
        serialize=True,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        rotation="00:00",
        retention=log_cfg.get("retention", "14 days"),
        level=file_level,
    )

    # Console output (non-JSON format, convenient for debugging)
    logger.add(
        lambda msg: print(msg, end=""),
        format=CONSOLE_FORMAT,
        level=console_level,
    )

    if intercept_std_logging:
        logging.basicConfig(
            handlers=[InterceptHandler()],
            level=_to_logging_level(console_level),
            force=True,
        )
        for name in ("asyncio", "urllib3"):
            logging.getLogger(name).setLevel(logging.WARNING)

    logger.bind(component="system").info(
        "[SYS_INIT] Logging configured",
        log_path=log_path,
        console_level=console_level,
        file_level=file_level,
    )
    return log_path
