"""
Logging module for Room Recorder.
Provides structured logging with file rotation and colored console output.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOGGER_NAME = 'room_recorder'


# ANSI color codes for console output
class Colors:
    RESET = "\033[0m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"


def record_context(record: logging.LogRecord) -> Optional[str]:
    """Room the record belongs to, else the component (room_recorder.<name>)."""
    room = getattr(record, 'room', None)
    if room:
        return room
    if record.name.startswith(f'{LOGGER_NAME}.'):
        return record.name[len(LOGGER_NAME) + 1:]
    return None


class ColoredFormatter(logging.Formatter):
    """Console formatter: colored level, rooms in cyan, components in gray."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GRAY,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.MAGENTA,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
        clock = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        context = record_context(record)
        if context is None:
            tag = ""
        elif getattr(record, 'room', None):
            tag = f"{Colors.CYAN}[{context}]{Colors.RESET} "
        else:
            tag = f"{Colors.GRAY}({context}){Colors.RESET} "

        line = (
            f"{Colors.GRAY}{clock}{Colors.RESET} "
            f"{color}{record.levelname:8}{Colors.RESET} {tag}{record.getMessage()}"
        )
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


class FileFormatter(logging.Formatter):
    """Plain pipe-separated formatter for the rotating log file."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        context = record_context(record) or '-'

        line = f"{stamp} | {record.levelname:8} | {context:20} | {record.getMessage()}"
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


class RoomLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds room context to log messages."""

    def __init__(self, logger: logging.Logger, room: str):
        super().__init__(logger, {'room': room})

    def process(self, msg, kwargs):
        kwargs.setdefault('extra', {})
        kwargs['extra']['room'] = self.extra['room']
        return msg, kwargs


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up the main application logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_file: Path to log file. If None, logs only to console.
        max_size_mb: Maximum log file size before rotation.
        backup_count: Number of backup log files to keep.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter())
    console_handler.setLevel(logging.DEBUG)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(FileFormatter())
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get the application logger.

    Args:
        name: Optional name for child logger.
    """
    if name:
        return logging.getLogger(f'{LOGGER_NAME}.{name}')
    return logging.getLogger(LOGGER_NAME)


def get_room_logger(room: str) -> RoomLoggerAdapter:
    """Get a logger adapter that tags every record with the room name."""
    return RoomLoggerAdapter(get_logger(), room)
