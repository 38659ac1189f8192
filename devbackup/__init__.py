import os
import sys
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler


__version__ = '1.0.0'

logger = logging.getLogger(__name__)


class IsoFormatter(logging.Formatter):
    """Formatter stamping records with an ISO-8601 local time and UTC offset."""

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created).astimezone().isoformat(timespec='seconds')


class _BelowLevelFilter(logging.Filter):
    def __init__(self, level):
        super().__init__()
        self.level = level

    def filter(self, record):
        return record.levelno < self.level


def configure_logging(config):
    """Configure application logging"""

    # Set log level based on environment
    log_level = logging.DEBUG if config.get('DEBUG', False) else logging.INFO

    console_formatter = IsoFormatter('[%(asctime)s] %(levelname)s: %(message)s')

    # Progress and status go to stdout, warnings and errors to stderr
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(log_level)
    stdout_handler.addFilter(_BelowLevelFilter(logging.WARNING))
    stdout_handler.setFormatter(console_formatter)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(console_formatter)

    handlers = [stdout_handler, stderr_handler]

    # File handler
    log_dir = config.get('LOG_DIR')
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'devbackup.log'),
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(IsoFormatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        ))
        handlers.append(file_handler)

    # Replace handlers from an earlier call in the same process
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(log_level)
    for handler in handlers:
        logger.addHandler(handler)

    logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)})")
