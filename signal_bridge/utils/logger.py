"""
JSON log lines for the signal bridge.

All records under the signal_bridge logger share one stream handler, so
StructuredLogger output and plain library records look the same.
"""

import logging
import json
import os
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple
from functools import wraps


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


PACKAGE_LOGGER = "signal_bridge"

_configure_lock = threading.Lock()
_configured = False


def resolve_level(value: Optional[str] = None) -> int:
    """LOG_LEVEL name to a logging level; unknown names fall back to INFO"""
    name = (value or os.environ.get('LOG_LEVEL') or 'INFO').strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: Optional[str] = None):
    """
    Attach one JSON stream handler to the package logger.

    Every module logger under signal_bridge propagates to it, including
    plain logging.getLogger(__name__) users such as the tenacity retry hook.
    Idempotent.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        package_logger.addHandler(handler)
        package_logger.setLevel(resolve_level(level))
        _configured = True


class StructuredLogger:
    """
    Logger wrapper whose every call becomes one JSON line.

    Keyword arguments are merged into the line next to the timestamp,
    level, message and (when set) the role of the component logging it.

        logger = get_logger(__name__, role="Bybit")
        logger.info("Placing order", symbol="BTCUSDT", side="Buy")
        # {"timestamp": "2026-01-27T16:30:00.000Z", "level": "INFO", "message": "Placing order", "role": "Bybit", "symbol": "BTCUSDT", "side": "Buy"}
    """

    def __init__(self, name: str, role: Optional[str] = None):
        configure_logging()
        self.logger = logging.getLogger(name)
        self.role = role

    def debug(self, message: str, **fields):
        self._emit(logging.DEBUG, message, fields)

    def info(self, message: str, **fields):
        self._emit(logging.INFO, message, fields)

    def warning(self, message: str, **fields):
        self._emit(logging.WARNING, message, fields)

    def error(self, message: str, **fields):
        self._emit(logging.ERROR, message, fields)

    def success(self, message: str, **fields):
        """INFO record labelled SUCCESS"""
        self._emit(logging.INFO, message, fields, label="SUCCESS")

    def _emit(self, level: int, message: str, fields: dict, label: Optional[str] = None):
        if not self.logger.isEnabledFor(level):
            return

        line = {'timestamp': iso_now(), 'level': label or logging.getLevelName(level), 'message': message}
        if self.role:
            line['role'] = self.role
        line.update(fields)

        self.logger.log(level, json.dumps(line, default=str), extra={'structured': True})


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line"""

    def format(self, record):
        if getattr(record, 'structured', False):
            return record.getMessage()

        # Plain logging calls (retry hooks, libraries) get the same shape
        data = {
            'timestamp': iso_now(),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
        }
        if record.exc_info:
            data['exception'] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def log_execution_time(logger: StructuredLogger, operation: Optional[str] = None):
    """
    Log how long the wrapped call took, and whether it raised.

    Exceptions are logged with their type and re-raised unchanged.

        @log_execution_time(logger, operation="process_signal")
        def process(self, signal):
            ...
    """
    def decorator(func: Callable) -> Callable:
        op_name = operation or func.__name__

        @wraps(func)
        def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(f"{op_name} failed", operation=op_name, status="error",
                             duration_ms=_elapsed_ms(started), error=str(e), error_type=type(e).__name__)
                raise
            logger.info(f"{op_name} completed", operation=op_name, status="success",
                        duration_ms=_elapsed_ms(started))
            return result

        return wrapper
    return decorator


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


_loggers: Dict[Tuple[str, Optional[str]], StructuredLogger] = {}
_loggers_lock = threading.Lock()


def get_logger(name: str, role: Optional[str] = None) -> StructuredLogger:
    """Cached StructuredLogger per (name, role)"""
    with _loggers_lock:
        logger = _loggers.get((name, role))
        if logger is None:
            logger = _loggers[(name, role)] = StructuredLogger(name, role)
        return logger
