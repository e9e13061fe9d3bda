"""
Logging configuration for worker processes.

``setup_logging`` installs one console handler, and optionally a DEBUG file
handler, on the root logger and applies ``MODULE_LOG_LEVELS``. Defaults come
from ``settings.log`` (``RELAYWORKS_AI_LOG_LEVEL``, ``LOG_FORMAT``,
``LOG_FILE_DIR``, ``ENABLE_FILE_LOGGING``); arguments override them.

Calling it again replaces the handlers it installed earlier and leaves any
other root handler alone.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from relayworks_ai.core.config import LoggingConfig

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "relayworks_ai.log"

SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

MODULE_LOG_LEVELS = {
    "relayworks_ai.agent_core": "DEBUG",
    "relayworks_ai.agent_core.llm": "DEBUG",
    "relayworks_ai.agent_core.eval": "DEBUG",
    "relayworks_ai.agent_core.runtime": "DEBUG",
    "relayworks_ai.agent_core.observability": "INFO",
    "relayworks_ai.agent_core.repos": "INFO",
    "relayworks_ai.workflow": "DEBUG",
    "relayworks_ai.job_queue": "INFO",
    # Third-party noise
    "sqlalchemy": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "sqlalchemy.pool": "WARNING",
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "asyncio": "WARNING",
}

_installed: List[logging.Handler] = []


class JsonFormatter(logging.Formatter):
    """One JSON object per record, safe for messages containing quotes."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.filename,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def build_formatter(log_format: str) -> logging.Formatter:
    """Formatter for ``simple``, ``detailed`` or ``json``; anything else is ``detailed``."""
    if log_format == "json":
        return JsonFormatter()
    if log_format == "simple":
        return logging.Formatter(SIMPLE_FORMAT, datefmt=DATE_FORMAT)
    return logging.Formatter(DETAILED_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_file: Optional[bool] = None,
    *,
    config: Optional[LoggingConfig] = None,
) -> List[logging.Handler]:
    """Configure the root logger and return the handlers that were installed."""
    if config is None:
        from relayworks_ai.core.config import settings

        config = settings.log
    level = (log_level or config.level).upper()
    fmt = log_format or config.format
    to_file = config.enable_file if enable_file is None else enable_file

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    formatter = build_formatter(fmt)
    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    _installed.append(console)

    if to_file:
        log_dir = Path(config.file_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        _installed.append(file_handler)

    for handler in _installed:
        root.addHandler(handler)
    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)

    root.info(f"Logging configured: level={level}, format={fmt}, file_logging={to_file}")
    return list(_installed)
