"""
Logging configuration for the Register Path service.
"""

import json
import logging
import logging.config
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional

from ..config import get_settings

APP_LOGGER = "register_path"

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_RECORD_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName', 'taskName',
    'processName', 'process', 'exc_info', 'exc_text', 'stack_info',
    'request_id', 'message',
}


def _quiet_logger(level: str) -> Dict[str, Any]:
    return {"level": level, "handlers": ["console"], "propagate": False}


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_json_logging: bool = False,
) -> None:
    """
    Configure application logging.

    Args:
        log_level: Logging level for the application loggers
        log_file: Optional path of a rotating log file
        enable_json_logging: Emit one JSON document per record
    """
    settings = get_settings()
    formatter = "json" if enable_json_logging else "detailed"

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": (
                    "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d "
                    "[%(request_id)s] %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "json": {
                "()": f"{APP_LOGGER}.utils.logging_config.JSONFormatter",
            }
        },
        "filters": {
            "request_id": {
                "()": f"{APP_LOGGER}.utils.logging_config.RequestIDFilter"
            },
            "sensitive_data": {
                "()": f"{APP_LOGGER}.utils.logging_config.SensitiveDataFilter"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": formatter,
                "stream": sys.stdout,
                "filters": ["request_id", "sensitive_data"]
            }
        },
        "loggers": {
            APP_LOGGER: {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False
            },
            "uvicorn": _quiet_logger("INFO"),
            "uvicorn.access": _quiet_logger("INFO"),
            "sqlalchemy.engine": _quiet_logger("WARNING"),
            "sqlalchemy.pool": _quiet_logger("WARNING"),
            "redis": _quiet_logger("WARNING"),
            "celery": _quiet_logger("INFO"),
            "stripe": _quiet_logger("WARNING"),
        },
        "root": {
            "level": log_level,
            "handlers": ["console"]
        }
    }

    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": formatter,
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "filters": ["request_id", "sensitive_data"]
        }
        for logger_config in config["loggers"].values():
            logger_config["handlers"].append("file")
        config["root"]["handlers"].append("file")

    if settings.environment == "production" and log_file:
        config["handlers"]["error_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": formatter,
            "filename": log_file.replace(".log", "_errors.log"),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 10,
            "filters": ["request_id", "sensitive_data"]
        }
        config["loggers"][APP_LOGGER]["handlers"].append("error_file")

    logging.config.dictConfig(config)


class RequestIDFilter(logging.Filter):
    """Stamp each record with the id of the request being served."""

    def filter(self, record):
        if not getattr(record, 'request_id', None):
            from ..middleware.logging import request_id_var
            record.request_id = request_id_var.get() or 'no-request-id'
        return True


class SensitiveDataFilter(logging.Filter):
    """Mask secrets and attendee contact data before records are emitted."""

    SENSITIVE_KEYS = {
        'password', 'token', 'secret', 'authorization', 'cookie',
        'client_secret', 'api_key', 'access_token', 'phone', 'signature',
    }

    _EMAIL_RE = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
    _SECRET_RE = re.compile(r'\b(?:sk|pk|whsec|pi)_[A-Za-z0-9_]{12,}\b')

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = self._sanitize_string(record.msg)

        for key, value in list(record.__dict__.items()):
            if key in _RESERVED_RECORD_ATTRS:
                continue
            if any(sensitive in key.lower() for sensitive in self.SENSITIVE_KEYS):
                setattr(record, key, '***MASKED***')
            elif isinstance(value, (str, dict)):
                setattr(record, key, self._sanitize_data(value))

        return True

    def _sanitize_string(self, text: str) -> str:
        text = self._SECRET_RE.sub('***MASKED***', text)
        return self._EMAIL_RE.sub('***EMAIL***', text)

    def _sanitize_data(self, data):
        if isinstance(data, dict):
            return {
                key: '***MASKED***' if any(sensitive in key.lower() for sensitive in self.SENSITIVE_KEYS)
                else self._sanitize_data(value)
                for key, value in data.items()
            }
        if isinstance(data, str):
            return self._sanitize_string(data)
        if isinstance(data, (list, tuple)):
            return type(data)(self._sanitize_data(item) for item in data)
        return data


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, 'request_id'):
            log_entry["request_id"] = record.request_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_ATTRS
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def log_business_event(event_type: str, details: Dict[str, Any], actor: Optional[str] = None):
    """Log a workflow milestone (registration created, payment reconciled, check-in)."""
    logger = logging.getLogger(f"{APP_LOGGER}.business")
    logger.info(
        f"Business event: {event_type}",
        extra={
            "event_type": event_type,
            "business_event": True,
            "actor": actor,
            **details
        }
    )


def log_security_event(event_type: str, details: Dict[str, Any], severity: str = "WARNING"):
    """Log security-related events such as failed admin logins."""
    logger = logging.getLogger(f"{APP_LOGGER}.security")

    log_method = getattr(logger, severity.lower(), logger.warning)
    log_method(
        f"Security event: {event_type}",
        extra={
            "event_type": event_type,
            "security_event": True,
            "severity": severity,
            **details
        }
    )
