"""
Secure Logging Module
=====================

Logging setup that keeps credentials and session tokens out of log
output.

Features:
- Redaction of password/token/secret assignments
- Redaction of long hex or base64 runs (salts, hashes, tokens)
- Rotating log files with size limits
- Optional JSON output for log aggregation
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Final, Optional, Pattern

if TYPE_CHECKING:
    from sessionauth.core.config import LoggingConfig

ROOT_LOGGER_NAME: Final[str] = "sessionauth"

_CONSOLE_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_FILE_FORMAT: Final[str] = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
)

_SENSITIVE_PATTERNS: Final[list[tuple[str, Pattern[str]]]] = [
    ("password", re.compile(r'(?i)(password|passwd|pwd)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("token", re.compile(r'(?i)(token|bearer)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("secret", re.compile(r'(?i)(secret|salt)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("base64_secret", re.compile(r'[A-Za-z0-9+/]{40,}={0,2}')),
    ("hex_secret", re.compile(r'(?i)(?:0x)?[a-f0-9]{32,}')),
]

_REDACTED_TEXT: Final[str] = "[REDACTED]"


class SecureLogFilter(logging.Filter):
    """
    Log filter that removes sensitive information from log messages.

    Scans the message and its string arguments for credential-looking
    content and replaces it with [REDACTED]. Records are never dropped.
    """

    def __init__(self, name: str = "", additional_patterns: Optional[list[Pattern[str]]] = None) -> None:
        super().__init__(name)
        self._additional_patterns = additional_patterns or []

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._sanitize_arg(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._sanitize_arg(arg) for arg in record.args)
            # Merge so patterns spanning the format string and its
            # arguments ("password=%s") are caught
            try:
                record.msg = record.getMessage()
                record.args = None
            except (TypeError, ValueError):
                pass

        if record.msg and isinstance(record.msg, str):
            record.msg = self._sanitize(record.msg)

        return True

    def _sanitize_arg(self, arg: object) -> object:
        if isinstance(arg, str):
            return self._sanitize(arg)
        if isinstance(arg, (bytes, bytearray)):
            return _REDACTED_TEXT
        return arg

    def _sanitize(self, text: str) -> str:
        """Remove sensitive data from text."""
        result = text
        for name, pattern in _SENSITIVE_PATTERNS:
            result = pattern.sub(f"{name}={_REDACTED_TEXT}", result)
        for pattern in self._additional_patterns:
            result = pattern.sub(_REDACTED_TEXT, result)
        return result


class StructuredLogFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class SecureRotatingFileHandler(RotatingFileHandler):
    """Rotating file handler that creates its directory and rejects traversal."""

    def __init__(
        self,
        filename: str | Path,
        mode: str = "a",
        maxBytes: int = 10 * 1024 * 1024,
        backupCount: int = 5,
        encoding: str = "utf-8",
    ) -> None:
        if ".." in Path(filename).parts:
            raise ValueError("Log path cannot contain path traversal sequences")
        log_path = Path(filename).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(
            str(log_path),
            mode=mode,
            maxBytes=maxBytes,
            backupCount=backupCount,
            encoding=encoding,
        )


def get_secure_logger(
    name: str = ROOT_LOGGER_NAME,
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    enable_console: bool = True,
    enable_file: bool = True,
    enable_json: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Create a logger with automatic secret filtering.

    Handlers are attached only once per logger name; later calls return
    the already configured logger.

    Args:
        name: Logger name (typically the package root)
        log_dir: Directory for log files (file output needs this)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_console: Whether to output to stderr
        enable_file: Whether to output to a rotating file
        enable_json: Whether to use JSON format for file output
        max_file_size: Maximum log file size before rotation
        backup_count: Number of backup files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper()))
    secure_filter = SecureLogFilter()

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        console_handler.addFilter(secure_filter)
        logger.addHandler(console_handler)

    if enable_file and log_dir:
        file_handler = SecureRotatingFileHandler(
            filename=Path(log_dir) / f"{name.replace('.', '_')}.log",
            maxBytes=max_file_size,
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        if enable_json:
            file_handler.setFormatter(StructuredLogFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        file_handler.addFilter(secure_filter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """
    Configure the package logger from a ``LoggingConfig``.

    Call once at startup; the vault and session store log through
    children of this logger.
    """
    return get_secure_logger(
        ROOT_LOGGER_NAME,
        log_dir=config.log_dir,
        level=config.level,
        enable_console=config.enable_console,
        enable_file=config.enable_file,
        enable_json=config.enable_json,
        max_file_size=config.max_file_size_bytes,
        backup_count=config.backup_count,
    )
