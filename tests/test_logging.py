"""
Tests for the logging system
"""

import logging

import pytest

from mediascan.core.base import FetchError
from mediascan.core.logging import LOGGER_NAME, LoggingManager, logging_manager, parse_size


def read_log(tmp_path):
    logging_manager.file_handler.flush()
    return (tmp_path / "logs" / "test_mediascan.log").read_text(encoding='utf-8')


class TestParseSize:
    """Test cases for parse_size"""

    @pytest.mark.parametrize('size,expected', [
        ('50MB', 50 * 1024 * 1024),
        ('512kb', 512 * 1024),
        ('1GB', 1024 ** 3),
        ('2048', 2048),
        (' 10 MB ', 10 * 1024 * 1024),
    ])
    def test_sizes(self, size, expected):
        assert parse_size(size) == expected

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            parse_size('lots')


class TestLoggingManager:
    """Test cases for LoggingManager"""

    def test_logger_before_setup(self):
        manager = LoggingManager()

        assert manager.get_logger() is logging.getLogger(LOGGER_NAME)

    def test_setup_creates_log_file(self, tmp_path):
        manager = LoggingManager()
        log_file = tmp_path / 'nested' / 'dir' / 'scan.log'

        manager.setup_logging(level='WARNING', log_file=str(log_file), max_size='1MB', backup_count=2)
        try:
            assert log_file.exists()
            assert manager.file_handler.maxBytes == 1024 * 1024
            assert manager.file_handler.backupCount == 2
            assert manager.console_handler.level == logging.WARNING
        finally:
            manager.close()

    def test_page_failure_context(self, tmp_path):
        logging_manager.log_page_failure('https://example.com/gone',
                                         FetchError('HTTP 404 for https://example.com/gone', status_code=404))

        contents = read_log(tmp_path)
        assert 'Page failed: https://example.com/gone' in contents
        assert '"error_type": "FetchError"' in contents
        assert '"status_code": 404' in contents

    def test_error_includes_traceback(self, tmp_path):
        try:
            raise RuntimeError('store unavailable')
        except RuntimeError as e:
            logging_manager.log_error(e, {'component': 'store'})

        contents = read_log(tmp_path)
        assert 'Error: store unavailable | Context: {"component": "store"}' in contents
        assert 'Traceback' in contents

    def test_progress_logged_at_debug(self, tmp_path):
        logging_manager.log_progress(3, 4, 'https://example.com/c')

        assert 'Progress: 3/4 (75.0%) - https://example.com/c' in read_log(tmp_path)


class TestSummaryReport:
    """Test cases for the scan summary report"""

    def test_report_contents(self):
        report = logging_manager.generate_summary_report({
            'site_key': 'example.com',
            'total_pages': 12,
            'scanned_pages': 3,
            'skipped_pages': 8,
            'failed_pages': 1,
            'failed_locations': ['https://example.com/broken'],
            'category_stats': {'logos': 2, 'other': 5},
        })

        assert 'Site: example.com' in report
        assert 'Skipped (unchanged): 8' in report
        assert '  logos: 2' in report
        assert '  - https://example.com/broken' in report

    def test_long_failure_list_is_truncated(self):
        failed = [f'https://example.com/p{i}' for i in range(13)]

        report = logging_manager.generate_summary_report({'failed_locations': failed})

        assert 'https://example.com/p9' in report
        assert 'https://example.com/p10' not in report
        assert '... and 3 more' in report
