"""
File: s3ping/logging.py
Logging setup shared by the discovery components.
Console output is one JSON object per line; structlog events are routed
through the standard logging handlers so both end up in the same stream.
"""
import datetime
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

import structlog

DEBUG = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")
LOG_DIR = os.getenv("LOG_DIR")

# Attributes every LogRecord has; anything else came in through "extra"
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def setup_logging(component_name: str, debug: Optional[bool] = None,
                  log_dir: Optional[str] = None) -> logging.Logger:
    """
    Configures logging for a component.

    Args:
        component_name: Component name written in every entry
        debug: If True, enables DEBUG entries (overrides the DEBUG variable)
        log_dir: Directory for a rotating log file (overrides LOG_DIR; no file if neither is set)

    Returns:
        logging.Logger: Logger of the component
    """
    debug_enabled = debug if debug is not None else DEBUG
    logs_directory = log_dir if log_dir is not None else LOG_DIR
    level = logging.DEBUG if debug_enabled else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(JsonFormatter(component_name, detailed=debug_enabled))
    root_logger.addHandler(console_handler)

    if logs_directory:
        os.makedirs(logs_directory, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(logs_directory, f"{component_name}.log"),
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JsonFormatter(component_name, detailed=True))
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    logger = logging.getLogger(component_name)
    logger.info(f"Logging initialized for {component_name}. Debug: {debug_enabled}")
    if logs_directory:
        logger.debug(f"Log file directory: {logs_directory}")
    return logger


class JsonFormatter(logging.Formatter):
    """
    Formats log records as JSON.
    """

    def __init__(self, component: str, detailed: bool = False):
        """
        Args:
            component: Component name
            detailed: If True, includes module, function, line and thread
        """
        super().__init__()
        self.component = component
        self.detailed = detailed

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": int(record.created * 1000),  # milliseconds
            "datetime": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": self.component,
            "logger": record.name,
            "message": record.getMessage()
        }

        if self.detailed:
            log_data.update({
                "module": record.module,
                "function": record.funcName,
                "lineno": record.lineno,
                "thread": record.thread,
            })

        context = {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS}
        if context:
            log_data["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        return json.dumps(log_data, default=str)
