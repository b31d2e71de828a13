"""Tests for logging setup and progress tracking."""

import logging

import pytest

from logger import ProgressTracker, _sanitize_config, log_config, setup_logging


class TestSetupLogging:
    """Test logger configuration."""

    @pytest.mark.parametrize('verbosity,level', [
        (0, logging.WARNING),
        (1, logging.INFO),
        (2, logging.DEBUG),
        (5, logging.DEBUG),
    ])
    def test_verbosity(self, verbosity, level):
        logger = setup_logging(verbosity=verbosity)

        assert logger.name == 'claycli'
        assert logger.level == level

    def test_explicit_level_wins(self):
        assert setup_logging(verbosity=2, level='error').level == logging.ERROR

    def test_invalid_level(self):
        with pytest.raises(ValueError, match='Invalid log level'):
            setup_logging(level='LOUD')

    def test_handlers_are_replaced(self):
        setup_logging()
        logger = setup_logging()

        assert len(logger.handlers) == 1

    def test_log_file(self, tmp_path):
        path = tmp_path / 'clay.log'

        logger = setup_logging(verbosity=1, log_file=str(path))
        logging.getLogger('claycli.test').info('hello file')
        for handler in logger.handlers:
            handler.flush()

        assert len(logger.handlers) == 2
        assert 'hello file' in path.read_text(encoding='utf-8')


class TestProgressTracker:
    """Test progress counting."""

    def test_counts(self):
        with ProgressTracker(item_type='assets') as tracker:
            tracker.increment()
            tracker.increment(skipped=True)
            tracker.increment(success=False)

        stats = tracker.get_stats()
        assert stats['processed'] == 3
        assert stats['successful'] == 1
        assert stats['skipped'] == 1
        assert stats['failed'] == 1
        assert stats['total'] is None

    def test_success_rate_counts_skips(self):
        tracker = ProgressTracker()
        tracker.increment()
        tracker.increment(skipped=True)

        assert tracker.success_rate == 100.0

    def test_empty_rate(self):
        assert ProgressTracker().success_rate == 0.0

    def test_summary_is_logged(self, caplog):
        caplog.set_level(logging.INFO, logger='claycli')

        with ProgressTracker(item_type='references') as tracker:
            tracker.increment(success=False)

        # Every item failed, so the summary is an error
        assert 'Progress Summary: REFERENCES' in caplog.text
        assert any(r.levelno == logging.ERROR for r in caplog.records)

    @pytest.mark.parametrize('seconds,text', [
        (5, '5.0s'),
        (125, '2m 5s'),
        (3725, '1h 2m 5s'),
    ])
    def test_format_elapsed(self, seconds, text):
        assert ProgressTracker._format_elapsed(seconds) == text


class TestConfigLogging:
    """Test settings are logged without secrets."""

    def test_sensitive_values_are_masked(self):
        config = {'clay': {'headers': {'Authorization': 'Token abc', 'X-Host': 'domain.com'}}}

        sanitized = _sanitize_config(config)

        assert sanitized['clay']['headers'] == {'Authorization': '***REDACTED***', 'X-Host': 'domain.com'}
        assert config['clay']['headers']['Authorization'] == 'Token abc'

    def test_log_config(self, caplog):
        caplog.set_level(logging.INFO, logger='claycli')

        log_config({'clay': {'concurrency': 3, 'headers': {'Cookie': 'secret'}}})

        assert 'Concurrency: 3' in caplog.text
        assert 'secret' not in caplog.text
