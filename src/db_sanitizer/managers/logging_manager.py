"""
Centralized logging manager for the sanitizer.

Every module obtains its logger through get_logger(). Records go to the console (stdout) and, unless
LOG_TO_FILE is disabled, to a per-process log file under LOG_DIR so that an irreversible cleanup run
always leaves a trace on disk next to the terminal output.

Usage:
- get_logger() returns the application logger.
- get_logger(prefix="[PatternSweep]") returns a child logger whose messages carry the prefix.
  Handlers live on the application logger only; child loggers propagate to it.
"""

from datetime import datetime, timezone
import json
import logging
import os
import sys

from db_sanitizer.config import settings

APP_LOGGER_NAME: str = "DB_Sanitizer"
LOG_LEVEL: str = os.getenv("LOG_LEVEL", getattr(settings, "LOG_LEVEL", "INFO")).upper()
LOG_FORMAT: str = "[%(asctime)s] %(levelname)s in %(name)s: %(message)s"


def _ensure_console_handler(logger: logging.Logger, formatter: logging.Formatter) -> bool:
    """
    Ensure logger has a StreamHandler for console output.

    Args:
        logger: The logger instance to check and modify
        formatter: The formatter to apply to the StreamHandler

    Returns:
        bool: True if a new StreamHandler was added, False if one already existed
    """
    # Any non-file stream handler counts; sys.stdout may have been swapped since it was attached
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            return False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logger.level)
    logger.addHandler(console_handler)
    return True


def get_run_log_filename() -> str:
    return os.path.join(settings.LOG_DIR, f"sanitizer_{os.getpid()}.log")


def get_run_registry_filename() -> str:
    return os.path.join(settings.LOG_DIR, "run_registry.json")


def _ensure_file_handler(logger: logging.Logger, formatter: logging.Formatter) -> bool:
    """Attach the per-process file handler and register the run. Returns True if a handler was added."""
    log_filename = get_run_log_filename()
    if any(
        isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == os.path.abspath(log_filename)
        for h in logger.handlers
    ):
        return False

    try:
        os.makedirs(os.path.dirname(log_filename), exist_ok=True)
        file_handler = logging.FileHandler(log_filename)
    except OSError as e:
        logger.warning("[LoggingManager] Could not open log file '%s': %s", log_filename, e)
        return False

    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    reg_file = get_run_registry_filename()
    run_info = {
        "pid": os.getpid(),
        "log_file": log_filename,
        "start_time": datetime.now(timezone.utc).isoformat(),
        "hostname": os.getenv("HOSTNAME", os.uname().nodename),
    }
    try:
        if os.path.exists(reg_file):
            with open(reg_file, "r", encoding="utf-8") as f:
                reg = json.load(f)
        else:
            reg = {}
        reg[str(os.getpid())] = run_info
        with open(reg_file, "w", encoding="utf-8") as f:
            json.dump(reg, f, indent=2)
    except (OSError, ValueError) as e:
        logger.warning("[LoggingManager] Could not update run registry: %s", e)
    return True


class PrefixFilter(logging.Filter):
    """Prepend a fixed prefix to every record passing through the logger it is attached to."""

    def __init__(self, prefix: str):
        super().__init__()
        self.prefix = prefix

    def filter(self, record: logging.LogRecord) -> bool:
        if self.prefix and not getattr(record, "_prefix_applied", False):
            record.msg = f"{self.prefix} {record.msg}"
            record._prefix_applied = True
        return True


def _configure_app_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT)

    console_added = _ensure_console_handler(logger, formatter)
    if console_added:
        logger.debug("[LoggingManager] Console StreamHandler attached to logger '%s'", name)

    if settings.LOG_TO_FILE and _ensure_file_handler(logger, formatter):
        logger.debug("[LoggingManager] File handler attached to logger '%s' (%s)", name, get_run_log_filename())
    return logger


def get_logger(name: str = APP_LOGGER_NAME, prefix: str = "") -> logging.Logger:
    logger = _configure_app_logger(name)
    if not prefix:
        return logger

    child = logger.getChild(prefix.strip("[]").replace(" ", "_") or "prefixed")
    if not any(isinstance(f, PrefixFilter) for f in child.filters):
        child.addFilter(PrefixFilter(prefix))
    return child
