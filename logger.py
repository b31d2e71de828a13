"""Structured logging infrastructure with verbosity levels and progress tracking."""

import copy
import logging
import logging.handlers
import time
from typing import Any, Dict, Optional

import colorlog

ROOT_LOGGER = 'claycli'


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Set up structured logging with configurable verbosity levels.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
        log_file: Optional path to log file
        log_format: Optional custom log format string
        date_format: Optional custom date format string
        level: Optional explicit log level string

    Returns:
        Configured logger instance

    Raises:
        ValueError: If ``level`` is not a standard level name
    """
    if level:
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level_upper = level.upper()
        if level_upper not in allowed_levels:
            raise ValueError(
                f"Invalid log level '{level}'. Must be one of: {sorted(allowed_levels)}"
            )
        log_level = getattr(logging, level_upper)
    elif verbosity >= 2:
        log_level = logging.DEBUG
    elif verbosity >= 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    if log_format is None:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    if date_format is None:
        date_format = '%Y-%m-%d %H:%M:%S'

    # root stays at WARNING so requests/urllib3 stay quiet
    logging.basicConfig(
        level=logging.WARNING,
        format=log_format,
        datefmt=date_format
    )

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(colorlog.ColoredFormatter(
        fmt='%(log_color)s' + log_format,
        datefmt=date_format,
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    ))
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
        except OSError as e:
            logger.warning(f"Failed to set up file logging: {e}")
        else:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
            logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")
            logger.info(f"Log level: {logging.getLevelName(log_level)}")
    else:
        logger.info(f"Console logging only. Level: {logging.getLevelName(log_level)}")

    return logger


class ProgressTracker:
    """Context manager for tracking progress across operations."""

    def __init__(self, total_items: Optional[int] = None, item_type: str = "items"):
        """
        Initialize progress tracker.

        Args:
            total_items: Total number of items to process, None for streams of unknown length
            item_type: Description of item type (e.g., "assets", "references")
        """
        self.total_items = total_items
        self.item_type = item_type
        self.processed_items = 0
        self.successful_items = 0
        self.failed_items = 0
        self.skipped_items = 0
        self.start_time: Optional[float] = None
        self.logger = logging.getLogger(ROOT_LOGGER)

    def __enter__(self) -> 'ProgressTracker':
        self.start_time = time.time()
        if self.total_items is None:
            self.logger.info(f"Starting processing of {self.item_type}")
        else:
            self.logger.info(f"Starting processing of {self.total_items} {self.item_type}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit progress tracking context and log summary."""
        if self.start_time is None:
            return

        elapsed = time.time() - self.start_time

        if self.failed_items > 0 and self.failed_items == self.processed_items:
            log_method = self.logger.error
        elif self.failed_items > 0:
            log_method = self.logger.warning
        else:
            log_method = self.logger.info

        log_method(f"=== Progress Summary: {self.item_type.upper()} ===")
        log_method(f"Processed: {self.processed_items}")
        log_method(f"Successful: {self.successful_items}")
        log_method(f"Skipped: {self.skipped_items}")
        log_method(f"Failed: {self.failed_items}")
        log_method(f"Success Rate: {self.success_rate:.1f}%")
        log_method(f"Elapsed Time: {self._format_elapsed(elapsed)}")

    @property
    def success_rate(self) -> float:
        if not self.processed_items:
            return 0.0
        return (self.successful_items + self.skipped_items) / self.processed_items * 100

    def increment(self, success: bool = True, skipped: bool = False) -> None:
        """
        Increment progress counter.

        Args:
            success: Whether the item was processed successfully
            skipped: Whether the item was deliberately left alone
        """
        self.processed_items += 1

        if skipped:
            self.skipped_items += 1
        elif success:
            self.successful_items += 1
        else:
            self.failed_items += 1

        if self.processed_items % 10 == 0 or not success:
            status = "Success" if success else "Failed"
            total = self.total_items if self.total_items is not None else '?'
            self.logger.info(
                f"Processed {self.processed_items}/{total} {self.item_type} - Last: {status}"
            )

    def get_stats(self) -> Dict[str, Any]:
        """Get current progress statistics."""
        elapsed = 0.0 if self.start_time is None else time.time() - self.start_time

        return {
            'total': self.total_items,
            'processed': self.processed_items,
            'successful': self.successful_items,
            'skipped': self.skipped_items,
            'failed': self.failed_items,
            'success_rate': self.success_rate,
            'elapsed_time': elapsed,
            'elapsed_time_formatted': self._format_elapsed(elapsed)
        }

    @staticmethod
    def _format_elapsed(seconds: float) -> str:
        """Format elapsed time in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"

        minutes = int(seconds // 60)
        seconds = int(seconds % 60)

        if minutes < 60:
            return f"{minutes}m {seconds}s"

        hours = minutes // 60
        minutes = minutes % 60

        return f"{hours}h {minutes}m {seconds}s"


def log_section(title: str) -> None:
    """Log a decorative section header."""
    logger = logging.getLogger(ROOT_LOGGER)

    separator = "=" * 60
    logger.info("")
    logger.info(separator)
    logger.info(f"  {title.upper()}")
    logger.info(separator)
    logger.info("")


def log_config(config: Dict[str, Any]) -> None:
    """
    Log sanitized settings for debugging.

    Args:
        config: Settings dictionary to log
    """
    logger = logging.getLogger(ROOT_LOGGER)
    sanitized = _sanitize_config(config)

    log_section("Configuration")

    clay = sanitized.get('clay', {})
    logger.info(f"Concurrency: {clay.get('concurrency', 10)}")
    logger.info(f"Request Timeout: {clay.get('timeout', 30)}s")
    logger.info(f"Max Retries: {clay.get('max_retries', 3)}")
    logger.info(f"Verify SSL: {clay.get('verify_ssl', True)}")
    for name, value in (clay.get('headers') or {}).items():
        logger.info(f"Header {name}: {value}")

    logger.info("")

    export_settings = sanitized.get('export', {})
    logger.info(f"Export Layouts: {export_settings.get('layout', False)}")
    logger.info(f"Export As YAML: {export_settings.get('yaml', False)}")
    logger.info(f"Query Size: {export_settings.get('size') or 'Default'}")

    logger.info("")

    import_settings = sanitized.get('import', {})
    logger.info(f"Overwrite Layouts: {import_settings.get('overwrite_layouts', False)}")
    logger.info(f"Publish: {import_settings.get('publish', False)}")


def _sanitize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a sanitized copy of configuration with sensitive fields masked.

    Args:
        config: Configuration dictionary

    Returns:
        Sanitized configuration copy
    """
    sensitive_fields = {
        'password', 'secret', 'key', 'token', 'authorization', 'cookie'
    }

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

    return mask_sensitive(copy.deepcopy(config))


__all__ = [
    'setup_logging',
    'ProgressTracker',
    'log_section',
    'log_config',
]
