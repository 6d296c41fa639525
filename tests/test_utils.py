# tests/test_utils.py
"""Test utilities and helpers"""

import logging
import pytest
from nowplaying.utils.helpers import (
    format_duration,
    format_timestamp_ms,
    parse_iso_timestamp_ms,
    truncate_string,
)
from nowplaying.utils.logger import ConsoleMessageFilter, get_logger, parse_size
from nowplaying.utils.validation import validate_client_id, validate_port


class TestHelpers:
    """Test helper functions"""

    def test_format_duration(self):
        """Test duration formatting"""
        assert format_duration(90) == "1:30"
        assert format_duration(3661) == "1:01:01"
        assert format_duration(0) == "0:00"
        assert format_duration(-10) == "0:00"

    def test_format_timestamp_ms(self):
        assert format_timestamp_ms(0) == "never"
        assert len(format_timestamp_ms(1_700_000_000_000)) == len("2023-11-14 22:13:20")

    def test_parse_iso_timestamp_ms(self):
        assert parse_iso_timestamp_ms("1970-01-01T00:00:01.500Z") == 1500
        assert parse_iso_timestamp_ms("2024-05-08T12:00:00+00:00") == 1715169600000
        assert parse_iso_timestamp_ms("yesterday") is None
        assert parse_iso_timestamp_ms("") is None

    def test_truncate_string(self):
        assert truncate_string("short", 10) == "short"
        assert truncate_string("a long piece of text", 10) == "a long ..."


class TestValidation:
    """Test input validation"""

    def test_validate_client_id(self):
        assert validate_client_id("0123456789abcdef0123456789ABCDEF") == (True, None)
        assert validate_client_id("")[0] is False
        assert validate_client_id("0123456789abcdef")[0] is False
        assert validate_client_id("z" * 32)[0] is False

    def test_validate_port(self):
        assert validate_port(43821) == (True, None)
        assert validate_port(80)[0] is False
        assert validate_port(70000)[0] is False
        assert validate_port("43821")[0] is False
        assert validate_port(True)[0] is False


class TestLogger:
    """Test logging helpers"""

    def test_parse_size(self):
        assert parse_size("10MB") == 10 * 1024 ** 2
        assert parse_size("500 kb") == 500 * 1024
        assert parse_size("1.5GB") == int(1.5 * 1024 ** 3)
        with pytest.raises(ValueError):
            parse_size("lots")

    def test_console_filter(self):
        console_filter = ConsoleMessageFilter()

        def record(level, **extra):
            rec = logging.LogRecord("nowplaying.test", level, __file__, 1, "msg", None, None)
            for key, value in extra.items():
                setattr(rec, key, value)
            return rec

        assert console_filter.filter(record(logging.WARNING))
        assert not console_filter.filter(record(logging.INFO))
        assert console_filter.filter(record(logging.INFO, console_output=True))

    def test_get_logger_has_console_info(self):
        logger = get_logger("nowplaying.test")
        assert callable(logger.console_info)
