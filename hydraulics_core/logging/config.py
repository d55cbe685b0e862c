# =============================================================================
# hydraulics_core/logging/config.py
# Logging setup for the sync core
# =============================================================================

import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")

# HTTP / Supabase client loggers report every request at INFO
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack", "supabase", "postgrest")


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _build_handlers(
    log_to_file: bool,
    log_filename: Optional[str],
    log_dir: Optional[Path],
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if not log_to_file:
        return handlers

    directory = Path(log_dir) if log_dir else LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    filename = log_filename or f"sync_{datetime.now():%Y-%m-%d}.log"
    handlers.append(logging.FileHandler(directory / filename, encoding="utf-8"))
    return handlers


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Configure the root logger for the app process.

    Args:
        level: int level or name ("DEBUG", "info", ...); unknown names mean INFO
        log_to_file: Also write to logs/sync_YYYY-MM-DD.log (or log_dir/log_filename)
        log_filename: File name override
        log_dir: Directory override
    """
    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=_build_handlers(log_to_file, log_filename, log_dir),
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("hydraulics_core").info(
        f"Logging initialized at {logging.getLevelName(logging.getLogger().level)}"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Module or class logger.

    Usage:
        logger = get_logger(__name__)
        logger.info("Sync pass started")
    """
    return logging.getLogger(name)


class LogContext:
    """
    Logs the start, duration and outcome of a block. Never swallows errors.

    Usage:
        with LogContext(logger, "Refreshing workOrders") as ctx:
            service.refresh()
        ctx.elapsed   # seconds
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.elapsed: Optional[float] = None
        self._started: Optional[float] = None

    def __enter__(self) -> "LogContext":
        self._started = time.perf_counter()
        self.logger.info(f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.elapsed = time.perf_counter() - self._started
        if exc_type is None:
            self.logger.info(f"{self.operation}... completed ({self.elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed ({self.elapsed:.2f}s): {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
        return False
