"""
Tests for the log filter and logger setup.
"""

import logging

from uploader.logging_setup import DebugOutputFilter, setup_logging


def make_log_record(level, message):
    return logging.LogRecord("video_uploader", level, __file__, 1, message, None, None)


class TestDebugOutputFilter:
    """Tests for gating debug output on the settings flag."""

    def test_debug_hidden_until_enabled(self, settings):
        log_filter = DebugOutputFilter(settings)
        record = make_log_record(logging.DEBUG, "progress 10%")

        assert not log_filter.filter(record)
        settings.debug_output_enabled = True
        assert log_filter.filter(record)

    def test_info_and_above_pass(self, settings):
        log_filter = DebugOutputFilter(settings)

        assert log_filter.filter(make_log_record(logging.INFO, "uploaded"))
        assert log_filter.filter(make_log_record(logging.ERROR, "failed"))

    def test_min_level(self, settings):
        log_filter = DebugOutputFilter(settings, min_level=logging.WARNING)

        assert not log_filter.filter(make_log_record(logging.INFO, "uploaded"))
        assert log_filter.filter(make_log_record(logging.WARNING, "slow"))

    def test_platform_noise_dropped(self, settings):
        settings.debug_output_enabled = True
        log_filter = DebugOutputFilter(settings)

        assert not log_filter.filter(make_log_record(logging.ERROR, "VSGating: frame dropped"))
        assert not log_filter.filter(make_log_record(logging.DEBUG, "Backtrace: 0x1"))

    def test_without_settings_debug_is_hidden(self):
        assert not DebugOutputFilter().filter(make_log_record(logging.DEBUG, "x"))


class TestSetupLogging:
    """Tests for logger construction."""

    def test_writes_log_file(self, tmp_path, settings):
        logger = setup_logging("INFO", str(tmp_path), settings)
        try:
            logger.info("hello")
            for handler in logger.handlers:
                handler.flush()

            log_file = tmp_path / "uploader" / "log.log"
            assert "hello" in log_file.read_text()
            assert logger.level == logging.DEBUG
        finally:
            for handler in logger.handlers[:]:
                handler.close()
                logger.removeHandler(handler)
