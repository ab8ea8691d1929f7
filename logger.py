"""Structured logging infrastructure with verbosity levels and progress tracking."""

import copy
import logging
import logging.handlers
import time
from typing import Any, Dict, List, Optional

LOGGER_NAME = 'confluence_offline_copy'
DEFAULT_LOG_FILE = 'confluence-offline-copy.log'
DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}


def _resolve_level(verbosity: int, level: Optional[str]) -> int:
    if not level:
        return logging.DEBUG if verbosity >= 1 else logging.INFO

    level_upper = level.upper()
    if level_upper not in LOG_COLORS:
        raise ValueError(f"Invalid log level '{level}'. Must be one of: {sorted(LOG_COLORS)}")
    return getattr(logging, level_upper)


def _console_formatter(log_format: str, date_format: str) -> logging.Formatter:
    try:
        import colorlog
    except ImportError:
        return logging.Formatter(fmt=log_format, datefmt=date_format)

    return colorlog.ColoredFormatter(fmt='%(log_color)s' + log_format, datefmt=date_format,
                                     log_colors=LOG_COLORS)


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Configure the ``confluence_offline_copy`` logger; safe to call again to reconfigure.

    Args:
        verbosity: Verbosity level (0=INFO, 1+=DEBUG)
        log_file: Optional path to a rotating log file
        log_format: Optional custom log format string
        date_format: Optional custom date format string
        level: Optional explicit log level string, overrides verbosity

    Returns:
        Configured logger instance
    """
    log_level = _resolve_level(verbosity, level)
    log_format = log_format or DEFAULT_FORMAT
    date_format = date_format or DEFAULT_DATE_FORMAT

    # Root stays at WARNING to keep urllib3 and playwright quiet
    logging.basicConfig(level=logging.WARNING, format=log_format, datefmt=date_format)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(_console_formatter(log_format, date_format))
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding='utf-8'
            )
        except OSError as e:
            logger.warning(f"Failed to set up file logging: {e}")
        else:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
            logger.addHandler(file_handler)
            logger.debug(f"Logging to file: {log_file}")

    logger.debug(f"Log level: {logging.getLevelName(log_level)}")
    return logger


class ProgressTracker:
    """
    Counts settled export tasks and logs a one-line summary when the batch ends.

    The summary is logged at WARNING when some tasks failed and at ERROR when
    all of them did. Intermediate progress is logged every ``log_every`` tasks
    and after every failure.
    """

    def __init__(self, total_items: int, item_type: str = "items", log_every: int = 10):
        self.total_items = total_items
        self.item_type = item_type
        self.log_every = max(1, log_every)
        self.successful_items = 0
        self.failed_items = 0
        self.start_time: Optional[float] = None
        self.logger = logging.getLogger(LOGGER_NAME)

    @property
    def processed_items(self) -> int:
        return self.successful_items + self.failed_items

    def __enter__(self) -> 'ProgressTracker':
        self.start_time = time.time()
        self.logger.debug(f"Tracking {self.total_items} {self.item_type}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is None or self.total_items == 0:
            return

        if self.failed_items == self.total_items:
            level = logging.ERROR
        elif self.failed_items:
            level = logging.WARNING
        else:
            level = logging.INFO

        stats = self.get_stats()
        self.logger.log(
            level,
            f"{self.item_type.capitalize()}: {stats['successful']} succeeded, {stats['failed']} failed, "
            f"{self.total_items - stats['processed']} unsettled of {self.total_items} "
            f"({stats['success_rate']:.0f}% in {stats['elapsed_time_formatted']})"
        )

    def increment(self, success: bool = True) -> None:
        """Record one settled task."""
        if success:
            self.successful_items += 1
        else:
            self.failed_items += 1

        done = self.processed_items
        if not success or done % self.log_every == 0:
            self.logger.info(f"{done}/{self.total_items} {self.item_type} settled, {self.failed_items} failed so far")

    def get_stats(self) -> Dict[str, Any]:
        """Current counts and elapsed time."""
        elapsed = time.time() - self.start_time if self.start_time else 0.0
        rate = self.successful_items / self.total_items * 100 if self.total_items else 0.0

        return {
            'total': self.total_items,
            'processed': self.processed_items,
            'successful': self.successful_items,
            'failed': self.failed_items,
            'success_rate': rate,
            'elapsed_time': elapsed,
            'elapsed_time_formatted': format_elapsed(elapsed)
        }


def format_elapsed(seconds: float) -> str:
    """Render a duration as ``4.2s``, ``3m 7s`` or ``1h 2m 5s``."""
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


def log_section(title: str) -> None:
    """
    Log a decorative section header.

    Args:
        title: Section title to display
    """
    logger = logging.getLogger(LOGGER_NAME)

    separator = "=" * 60
    logger.info(separator)
    logger.info(f"  {title.upper()}")
    logger.info(separator)


def log_config(sources: List[Dict[str, Any]]) -> None:
    """
    Log sanitized source configurations for debugging.

    Args:
        sources: Source configuration dictionaries (``SourceConfig.to_dict()``)
    """
    logger = logging.getLogger(LOGGER_NAME)

    log_section("Configuration")

    for source in sources:
        sanitized = sanitize_config(source)
        logger.info(f"Source: {sanitized.get('NAME')}")
        for key, value in sanitized.items():
            if key != 'NAME':
                logger.info(f"  {key}: {value}")


def sanitize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a sanitized copy of configuration with sensitive fields masked.

    Args:
        config: Configuration dictionary

    Returns:
        Sanitized configuration copy
    """
    sanitized = copy.deepcopy(config)

    sensitive_fields = {'auth', 'password', 'secret', 'token', 'api_key'}

    def mask_sensitive(data: Any) -> Any:
        if isinstance(data, dict):
            masked = {}
            for key, value in data.items():
                is_sensitive = any(sensitive in str(key).lower() for sensitive in sensitive_fields)

                if is_sensitive and isinstance(value, str):
                    masked[key] = "***REDACTED***"
                else:
                    masked[key] = mask_sensitive(value)

            return masked
        elif isinstance(data, list):
            return [mask_sensitive(item) for item in data]
        else:
            return data

    return mask_sensitive(sanitized)


__all__ = [
    'setup_logging',
    'ProgressTracker',
    'format_elapsed',
    'log_section',
    'log_config',
    'sanitize_config',
    'LOGGER_NAME',
    'DEFAULT_LOG_FILE'
]
