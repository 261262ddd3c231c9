"""
Secure Logging
==============

Logging helpers that keep credentials out of log output.

Security Features:
- Redaction of passwords, session tokens and Argon2 hashes
- Rotating log files with size limits
- Optional JSON output for log collectors
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Optional, Pattern


_REDACTED_TEXT: Final[str] = "[REDACTED]"

_SENSITIVE_PATTERNS: Final[list[tuple[str, Pattern[str]]]] = [
    # Encoded password hashes ($argon2id$v=19$m=...,t=...,p=...$salt$digest)
    ("password_hash", re.compile(r"\$argon2(?:id|i|d)\$[^\s\"']+")),
    ("password", re.compile(r'(?i)(password|passwd|pwd)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("token", re.compile(r'(?i)(token|bearer)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("secret", re.compile(r'(?i)(secret|api[_-]?key)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    # Long url-safe base64 runs, e.g. raw session tokens
    ("opaque", re.compile(r"[A-Za-z0-9_\-+/]{40,}={0,2}")),
    ("hex_secret", re.compile(r"(?i)\b[a-f0-9]{32,}\b")),
]


def redact(text: str) -> str:
    """Replace anything that looks like a credential with a placeholder."""
    result = text
    for name, pattern in _SENSITIVE_PATTERNS:
        result = pattern.sub(f"{name}={_REDACTED_TEXT}", result)
    return result


class SecureLogFilter(logging.Filter):
    """
    Log filter that redacts credentials from messages and arguments.

    Records are never dropped, only sanitized.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg and isinstance(record.msg, str):
            record.msg = redact(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: redact(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    redact(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True


class StructuredLogFormatter(logging.Formatter):
    """Formatter that emits one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


def _file_handler(
    log_file: Path,
    max_file_size: int,
    backup_count: int,
    enable_json: bool,
) -> logging.Handler:
    log_path = Path(log_file).resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=max_file_size,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    if enable_json:
        handler.setFormatter(StructuredLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    return handler


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    ))
    return handler


def get_secure_logger(
    name: str,
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    enable_console: bool = True,
    enable_file: bool = True,
    enable_json: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Create a logger with credential redaction on every handler.

    Args:
        name: Logger name (typically ``lexguard.<area>``)
        log_dir: Directory for log files; no file output if omitted
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_console: Whether to output to stderr
        enable_file: Whether to output to a rotating file
        enable_json: Whether to use JSON format for file output
        max_file_size: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper()))
    secure_filter = SecureLogFilter()

    if enable_console:
        console = _console_handler()
        console.addFilter(secure_filter)
        logger.addHandler(console)

    if enable_file and log_dir:
        file_handler = _file_handler(
            Path(log_dir) / f"{name.replace('.', '_')}.log",
            max_file_size,
            backup_count,
            enable_json,
        )
        file_handler.addFilter(secure_filter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def configure_root_logger(
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    enable_console: bool = True,
    enable_file: bool = True,
    enable_json: bool = False,
) -> None:
    """
    Configure the ``lexguard`` logger hierarchy once at application startup.

    Every ``lexguard.*`` logger inherits the redacting handlers.
    """
    root = logging.getLogger("lexguard")
    root.setLevel(getattr(logging, level.upper()))
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()

    secure_filter = SecureLogFilter()

    if enable_console:
        console = _console_handler()
        console.addFilter(secure_filter)
        root.addHandler(console)

    if enable_file and log_dir:
        file_handler = _file_handler(
            Path(log_dir) / "lexguard.log",
            10 * 1024 * 1024,
            5,
            enable_json,
        )
        file_handler.addFilter(secure_filter)
        root.addHandler(file_handler)
