"""
Unit tests for Apache log line formatting.
"""

import locale
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from accesslog.errors import ConfigError
from accesslog.formatting import (
    LogFormat,
    RequestObservation,
    ResponseObservation,
    escape_quoted,
    format_log_entry,
    format_offset,
    format_timestamp,
)
from accesslog.http import HTTPRequest


class TestTimestamp:
    """Tests for the %t timestamp."""

    def test_utc(self, start_time):
        assert format_timestamp(start_time) == "[10/Oct/2023:13:55:36 +0000]"

    def test_negative_offset(self, eastern_time):
        assert format_timestamp(eastern_time) == "[05/Jan/2023:08:03:09 -0500]"

    def test_half_hour_offset(self):
        india = datetime(2024, 2, 29, 23, 59, 59, tzinfo=timezone(timedelta(hours=5, minutes=30)))

        assert format_timestamp(india) == "[29/Feb/2024:23:59:59 +0530]"

    def test_negative_half_hour_offset(self):
        newfoundland = timezone(-timedelta(hours=3, minutes=30))

        assert format_offset(datetime(2024, 1, 1, tzinfo=newfoundland)) == "-0330"

    def test_naive_datetime_is_local_time(self):
        naive = datetime(2023, 10, 10, 13, 55, 36)
        rendered = format_timestamp(naive)

        assert rendered.startswith("[10/Oct/2023:13:55:36 ")
        assert rendered.endswith(f"{format_offset(naive.astimezone())}]")

    def test_month_names_ignore_locale(self, start_time):
        """Month abbreviations stay English whatever LC_TIME says."""
        saved = locale.setlocale(locale.LC_TIME)
        try:
            try:
                locale.setlocale(locale.LC_TIME, "de_DE.UTF-8")
            except locale.Error:
                pytest.skip("de_DE locale not available")
            assert "/Oct/" in format_timestamp(start_time)
        finally:
            locale.setlocale(locale.LC_TIME, saved)


class TestCommonFormat:
    """Tests for Common Log Format lines."""

    def test_exact_line(self, hello_observation):
        line = format_log_entry(hello_observation, ResponseObservation(200, 27), LogFormat.COMMON)

        assert line == '1.2.3.4 - - [10/Oct/2023:13:55:36 +0000] "GET /api/hello HTTP/1.1" 200 27'

    def test_default_format_is_common(self, hello_observation):
        line = format_log_entry(hello_observation, ResponseObservation(404, 0))

        assert line.endswith('"GET /api/hello HTTP/1.1" 404 0')

    def test_ignores_headers(self, hello_observation):
        obs = replace(hello_observation, referer="https://example.com/", user_agent="curl/8.4.0")

        line = format_log_entry(obs, ResponseObservation(), LogFormat.COMMON)

        assert "example.com" not in line
        assert "curl" not in line

    def test_target_logged_raw(self, hello_observation):
        obs = replace(hello_observation, target="/search?q=a%20b&page=2")

        line = format_log_entry(obs, ResponseObservation())

        assert '"GET /search?q=a%20b&page=2 HTTP/1.1"' in line

    def test_no_trailing_newline(self, hello_observation):
        assert not format_log_entry(hello_observation, ResponseObservation()).endswith("\n")


class TestCombinedFormat:
    """Tests for Combined Log Format lines."""

    def test_missing_headers_render_dash(self, hello_observation):
        line = format_log_entry(hello_observation, ResponseObservation(200, 27), LogFormat.COMBINED)

        assert line == (
            '1.2.3.4 - - [10/Oct/2023:13:55:36 +0000] "GET /api/hello HTTP/1.1" 200 27 "-" "-"'
        )

    def test_empty_headers_render_dash(self, hello_observation):
        obs = replace(hello_observation, referer="", user_agent="")

        line = format_log_entry(obs, ResponseObservation(), LogFormat.COMBINED)

        assert line.endswith('"-" "-"')
        assert '""' not in line

    def test_headers_present(self, hello_observation):
        obs = replace(hello_observation, referer="https://example.com/", user_agent="Mozilla/5.0")

        line = format_log_entry(obs, ResponseObservation(301, 0), LogFormat.COMBINED)

        assert line.endswith(' 301 0 "https://example.com/" "Mozilla/5.0"')

    def test_quote_in_header_cannot_forge_fields(self, hello_observation):
        obs = replace(hello_observation, user_agent='evil" "forged')

        line = format_log_entry(obs, ResponseObservation(), LogFormat.COMBINED)

        assert line.endswith(r' "-" "evil\" \"forged"')

    def test_backslash_and_control_chars_escaped(self, hello_observation):
        obs = replace(hello_observation, referer="a\\b\tc")

        line = format_log_entry(obs, ResponseObservation(), LogFormat.COMBINED)

        assert line.endswith(r' "a\\b\x09c" "-"')

    def test_render_strategy_matches(self, hello_observation):
        response = ResponseObservation(200, 5)

        assert LogFormat.COMBINED.render(hello_observation, response) == format_log_entry(
            hello_observation, response, LogFormat.COMBINED
        )


class TestEscapeQuoted:
    def test_plain_text_unchanged(self):
        assert escape_quoted("Mozilla/5.0 (X11; Linux)") == "Mozilla/5.0 (X11; Linux)"

    def test_target_with_quote(self, hello_observation):
        obs = replace(hello_observation, target='/a"b')

        line = format_log_entry(obs, ResponseObservation())

        assert r'"GET /a\"b HTTP/1.1"' in line


class TestLogFormatParse:
    """Tests for LogFormat.parse()."""

    @pytest.mark.parametrize("text,expected", [
        ("common", LogFormat.COMMON),
        ("COMBINED", LogFormat.COMBINED),
        (" Combined ", LogFormat.COMBINED),
        (LogFormat.COMMON, LogFormat.COMMON),
    ])
    def test_accepts(self, text, expected):
        assert LogFormat.parse(text) is expected

    def test_rejects_unknown(self):
        with pytest.raises(ConfigError, match="Unknown log format"):
            LogFormat.parse("json")

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            LogFormat.parse("vhost_combined")


class TestRequestObservation:
    """Tests for building observations from requests."""

    def test_from_request(self, start_time):
        request = HTTPRequest(
            method="POST",
            path="/a b",
            target="/a%20b?x=1",
            version="HTTP/1.0",
            headers={"referer": "https://ref/", "user-agent": "ua"},
            client_address=("10.1.2.3", 4444),
        )

        obs = RequestObservation.from_request(request, start_time)

        assert obs == RequestObservation(
            remote_addr="10.1.2.3",
            method="POST",
            target="/a%20b?x=1",
            protocol="HTTP/1.0",
            start=start_time,
            referer="https://ref/",
            user_agent="ua",
        )

    def test_absent_headers_are_none(self, hello_request, start_time):
        obs = RequestObservation.from_request(hello_request, start_time)

        assert obs.referer is None
        assert obs.user_agent is None
