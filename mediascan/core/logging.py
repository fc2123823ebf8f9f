"""
Logging System for Media Scanner

Sets up the `mediascan` logger with a rotating log file and console
output, and offers helpers that attach structured context to page,
sync and summary messages.
"""

import json
import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Optional, Dict, Any

LOGGER_NAME = 'mediascan'

FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s'
CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

_SIZE_UNITS = {'': 1, 'B': 1, 'KB': 1024, 'MB': 1024 ** 2, 'GB': 1024 ** 3}
_SIZE_PATTERN = re.compile(r'^\s*(\d+)\s*([KMG]?B)?\s*$', re.IGNORECASE)


def parse_size(size: str) -> int:
    """Byte count of a size such as '50MB', '512KB' or '1048576'"""
    match = _SIZE_PATTERN.match(str(size))
    if not match:
        raise ValueError(f"Invalid log file size: {size!r}")
    return int(match.group(1)) * _SIZE_UNITS[(match.group(2) or '').upper()]


def _with_context(message: str, context: Optional[Dict[str, Any]]) -> str:
    if not context:
        return message
    return f"{message} | Context: {json.dumps(context, default=str)}"


class LoggingManager:
    """
    Owns the handlers of the `mediascan` logger.

    Components call get_logger() at construction; until setup_logging()
    runs they get the bare package logger and whatever handlers the host
    application configured.
    """

    def __init__(self):
        self.logger: Optional[logging.Logger] = None
        self.file_handler: Optional[logging.handlers.RotatingFileHandler] = None
        self.console_handler: Optional[logging.StreamHandler] = None
        self._setup_complete = False

    def setup_logging(self, level: str = "INFO", log_file: str = "./logs/mediascan.log",
                      max_size: str = "50MB", backup_count: int = 5) -> None:
        """
        Set up logging with file rotation and console output

        Args:
            level: Console and logger level name (DEBUG, INFO, ...)
            log_file: Path of the rotating log file; parent directories are created
            max_size: Size at which the file rotates (e.g. "50MB")
            backup_count: Rotated files to keep
        """
        log_level = getattr(logging, level.upper())
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(log_level)
        self.close()
        self.logger.handlers.clear()

        self.file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=parse_size(max_size), backupCount=backup_count, encoding='utf-8'
        )
        self.file_handler.setLevel(logging.DEBUG)
        self.file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        self.logger.addHandler(self.file_handler)

        self.console_handler = logging.StreamHandler(sys.stdout)
        self.console_handler.setLevel(log_level)
        self.console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
        self.logger.addHandler(self.console_handler)

        self._setup_complete = True
        self.logger.info(f"Logging initialized: level={level.upper()}, file={log_file}")

    def get_logger(self) -> logging.Logger:
        """The configured logger, or the bare package logger before setup"""
        if not self._setup_complete or not self.logger:
            return logging.getLogger(LOGGER_NAME)
        return self.logger

    def log_error(self, error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
        """Log an exception with its traceback and context"""
        self.get_logger().error(_with_context(f"Error: {error}", context), exc_info=error)

    def log_warning(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.get_logger().warning(_with_context(message, context))

    def log_page_failure(self, location: str, error: BaseException) -> None:
        """Log a page that contributed no items"""
        self.log_warning(f"Page failed: {location}",
                         {'error_type': type(error).__name__, 'error': str(error),
                          'status_code': getattr(error, 'status_code', None)})

    def log_progress(self, current: int, total: int, message: str = "") -> None:
        """Log scan progress at debug level"""
        percentage = (current / total) * 100 if total > 0 else 0
        progress_msg = f"Progress: {current}/{total} ({percentage:.1f}%)"
        if message:
            progress_msg += f" - {message}"
        self.get_logger().debug(progress_msg)

    def generate_summary_report(self, stats: Dict[str, Any]) -> str:
        """Generate and log a summary report for a site scan"""
        report_lines = [
            "=" * 60,
            "MEDIA SCAN SUMMARY",
            "=" * 60,
            f"Site: {stats.get('site_key', 'Unknown')}",
            f"Duration: {stats.get('duration_ms', 0)} ms",
            "",
            "PAGES:",
            f"  Supplied: {stats.get('total_pages', 0)}",
            f"  Scanned: {stats.get('scanned_pages', 0)}",
            f"  Skipped (unchanged): {stats.get('skipped_pages', 0)}",
            f"  Failed: {stats.get('failed_pages', 0)}",
            "",
            "MEDIA:",
            f"  Items found this scan: {stats.get('items_found', 0)}",
            f"  Items in index: {stats.get('total_items', 0)}",
            "",
            "SYNC:",
            f"  Added: {stats.get('synced_added', 0)}",
            f"  Deleted: {stats.get('synced_deleted', 0)}",
        ]

        category_stats = stats.get('category_stats', {})
        if category_stats:
            report_lines.extend(["", "CATEGORIES:"])
            for category, count in sorted(category_stats.items()):
                report_lines.append(f"  {category}: {count}")

        failed = stats.get('failed_locations', [])
        if failed:
            report_lines.extend(["", "FAILED PAGES:"])
            for location in failed[:10]:
                report_lines.append(f"  - {location}")
            if len(failed) > 10:
                report_lines.append(f"  ... and {len(failed) - 10} more")

        report_lines.append("=" * 60)

        report = "\n".join(report_lines)
        self.get_logger().info(f"Scan Summary:\n{report}")

        return report

    def close(self) -> None:
        """Close logging handlers"""
        if self.file_handler:
            self.file_handler.close()
        if self.console_handler:
            self.console_handler.close()


# Global logging manager instance
logging_manager = LoggingManager()


def get_logger() -> logging.Logger:
    """Get the global logger instance"""
    return logging_manager.get_logger()


def setup_logging(level: str = "INFO", log_file: str = "./logs/mediascan.log",
                  max_size: str = "50MB", backup_count: int = 5) -> None:
    """Set up global logging system"""
    logging_manager.setup_logging(level, log_file, max_size, backup_count)
