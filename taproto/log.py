#!/usr/bin/env python3
"""
TA client logging configuration

Centralized logging setup for consistent formatting across the project.
Supports both development (console + file) and production modes.

Usage:
    from taproto.log import get_logger

    logger = get_logger(__name__)
    logger.info("Connecting...")
    logger.error("Frame dropped", extra={"user_id": "123", "packet_type": "event"})
"""

from __future__ import annotations
import logging
import os
import sys
from pathlib import Path
from typing import Optional


# ========================================
#           LOGGING FORMATTERS
# ========================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"

        return super().format(record)


class ContextFormatter(logging.Formatter):
    """Prefixes the message with protocol context passed through ``extra=``."""

    def format(self, record: logging.LogRecord) -> str:
        context = []

        if hasattr(record, 'user_id'):
            context.append(f"user={str(record.user_id)[:8]}...")
        if hasattr(record, 'match_id'):
            context.append(f"match={str(record.match_id)[:8]}...")
        if hasattr(record, 'packet_type'):
            context.append(f"packet={record.packet_type}")
        if hasattr(record, 'attempt'):
            context.append(f"attempt={record.attempt}")

        if not context:
            return super().format(record)

        original = record.msg
        record.msg = f"[{' '.join(context)}] {original}"
        try:
            return super().format(record)
        finally:
            record.msg = original


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure each logger once
    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    """Configure a logger with appropriate handlers and formatters"""

    logger.setLevel(_get_log_level(level))

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    if _is_development():
        _add_file_handler(logger)
        _add_console_handler(logger, colored=True)
    else:
        _add_console_handler(logger, colored=False)
        _add_file_handler(logger)

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    if level:
        return getattr(logging, level.upper(), logging.INFO)

    env_level = os.getenv('TA_LOG_LEVEL')
    if env_level:
        return getattr(logging, env_level.upper(), logging.INFO)

    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    """Detect if we're in development mode"""
    return (
        os.getenv('PYTHON_ENV', '').lower() in ['dev', 'development'] or
        'pytest' in sys.modules
    )


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stdout)

    if colored and _supports_color():
        formatter: logging.Formatter = ColoredFormatter(fmt=fmt, datefmt='%H:%M:%S')
    else:
        formatter = ContextFormatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S')

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger) -> None:
    """Add file handler under ./logs"""

    log_dir = Path(os.getenv('TA_LOG_DIR', 'logs'))
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_dir / "taclient.log")
    handler.setFormatter(ContextFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False

    if os.getenv("TERM", "") == "dumb":
        return False

    if sys.platform == "win32":
        return (
            os.getenv("ANSICON") is not None
            or os.getenv("WT_SESSION") is not None
            or os.getenv("TERM_PROGRAM") == "vscode"
            or "WindowsTerminal" in os.getenv("TERM", "")
        )

    return True


# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def configure_root_logging(level: str = "INFO") -> None:
    """
    Configure root logging for the entire application.
    Call this once at application startup.
    """
    _configure_logger(logging.getLogger(), level)


def set_level(level: str) -> None:
    """Apply ``level`` to every logger configured through get_logger."""
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(_get_log_level(level))
