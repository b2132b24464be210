import json
import logging
import os
import sys
import threading
from logging.handlers import RotatingFileHandler
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional

# One StructuredLogger per name; handlers live on the shared logging.Logger
_logger_cache: Dict[str, 'StructuredLogger'] = {}
_cache_lock = threading.RLock()


class CustomJsonEncoder(json.JSONEncoder):
    """JSON encoder for datetimes, enums, exceptions and anything else with a str()."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, BaseException):
            return f"{type(obj).__name__}: {obj}"
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        return str(obj)


class JsonFormatter(logging.Formatter):
    """Formats log records into a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            message_dict = {str(k): v for k, v in record.msg.items()}
        else:
            message_dict = {"message": record.getMessage()}

        log_object = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
            **message_dict,
        }
        if record.exc_info:
            log_object["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_object, cls=CustomJsonEncoder)


class StructuredLogger:
    """
    Thin wrapper over logging.Logger that logs ``event_type`` + ``data`` dicts.

    Usage:
        logger.info("orchestrator.session_created", {"session_id": "s1"})
    """

    def __init__(self, name: str, config: Any, filename: Optional[str] = None):
        level = getattr(config, 'level', 'INFO')
        level = getattr(level, 'value', level)
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
        self.logger.propagate = False

        console_enabled = getattr(config, 'console_enabled', True)
        file_enabled = getattr(config, 'file_enabled', False)
        structured = getattr(config, 'structured_logging', True)
        log_dir = getattr(config, 'log_dir', 'logs')

        log_file = None
        if filename:
            log_file = str(Path(log_dir) / filename)
        elif file_enabled:
            log_file = str(Path(log_dir) / f"{name}.jsonl")

        self._setup_console_handler(console_enabled, structured)
        self._setup_file_handler(
            log_file,
            getattr(config, 'max_file_size_mb', 100),
            getattr(config, 'backup_count', 5),
            structured,
        )

    @staticmethod
    def _formatter(structured: bool) -> logging.Formatter:
        if structured:
            return JsonFormatter()
        return logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    def _setup_console_handler(self, enabled: bool, structured: bool) -> None:
        if not enabled:
            return

        for existing in self.logger.handlers:
            if isinstance(existing, logging.StreamHandler) and getattr(existing, 'stream', None) is sys.stdout:
                return

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(self._formatter(structured))
        self.logger.addHandler(handler)

    def _setup_file_handler(self, log_file: Optional[str], max_size_mb: int, backup_count: int, structured: bool) -> None:
        if not log_file:
            return

        target = os.path.abspath(log_file)
        for existing in self.logger.handlers:
            if isinstance(existing, RotatingFileHandler) and os.path.abspath(existing.baseFilename) == target:
                return

        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        try:
            handler = RotatingFileHandler(
                log_file,
                maxBytes=max_size_mb * 1024 * 1024,
                backupCount=backup_count,
                encoding='utf-8'
            )
        except OSError as e:
            # The logger itself cannot report this, so stderr is the only channel left
            print(f"ERROR: Failed to create file handler for {log_file}: {e}", file=sys.stderr)
            return

        handler.setFormatter(self._formatter(structured))
        self.logger.addHandler(handler)

    def _log(self, level: int, event_type: str, data: Optional[Dict[str, Any]], exc_info=False) -> None:
        self.logger.log(level, {"event_type": event_type, "data": data or {}}, exc_info=exc_info)

    def debug(self, event_type: str, data: Dict[str, Any] = None):
        self._log(logging.DEBUG, event_type, data)

    def info(self, event_type: str, data: Dict[str, Any] = None):
        self._log(logging.INFO, event_type, data)

    def warning(self, event_type: str, data: Dict[str, Any] = None):
        self._log(logging.WARNING, event_type, data)

    def error(self, event_type: str, data: Dict[str, Any] = None, exc_info=False):
        """
        Log an error event.

        Args:
            event_type: Dotted event name, e.g. ``event_dispatcher.delivery_failed``
            data: Error context
            exc_info: Attach the active exception's traceback
        """
        self._log(logging.ERROR, event_type, data, exc_info=exc_info)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a cached structured logger for ``name``.

    Settings are read from the working directory configuration on first use.
    Cached per name so repeated calls never stack handlers.
    """
    if name in _logger_cache:
        return _logger_cache[name]

    with _cache_lock:
        if name in _logger_cache:
            return _logger_cache[name]

        from ..infrastructure.config.config_loader import get_settings_from_working_directory
        try:
            logging_settings = get_settings_from_working_directory().logging
        except Exception as e:
            print(f"WARNING: Failed to load logging config for '{name}': {e}", file=sys.stderr)
            from ..infrastructure.config.settings import LoggingSettings
            logging_settings = LoggingSettings.model_construct(
                level="INFO",
                console_enabled=True,
                file_enabled=False,
                structured_logging=True,
                log_dir="logs",
                max_file_size_mb=100,
                backup_count=5,
            )

        logger = StructuredLogger(name, logging_settings)
        _logger_cache[name] = logger
        return logger
