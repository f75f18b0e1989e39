import logging

import pytest
import pytz

from shared.logging.logging_setup import ColorLogger, EngagementContextFilter


def test_number_values(helper_config, monkeypatch):
    monkeypatch.setenv("SWEEP_REMINDER_INTERVAL_HOURS", "48")
    monkeypatch.setenv("SWEEP_EXPIRATION_WARNING_HOURS", "1.5")
    assert helper_config.get_number_val("sweep_reminder_interval_hours", default=72) == 48
    assert helper_config.get_number_val("SWEEP_EXPIRATION_WARNING_HOURS", default=24) == 1.5
    assert helper_config.get_number_val("SWEEP_POLL_INTERVAL_SECONDS", default=900) == 900


def test_invalid_number(helper_config, monkeypatch):
    monkeypatch.setenv("SWEEP_POLL_INTERVAL_SECONDS", "often")
    with pytest.raises(ValueError):
        helper_config.get_number_val("SWEEP_POLL_INTERVAL_SECONDS", default=900)


def test_missing_value_without_default(helper_config):
    with pytest.raises(ValueError):
        helper_config.get_string_val("NOTIFIER_ENGINE")


def test_bool_and_list_values(helper_config, monkeypatch):
    monkeypatch.setenv("SWEEP_RUN_IN_API", "Yes")
    monkeypatch.setenv("ENGAGEMENT_TEST_LIST", "[1, 2,3]")
    assert helper_config.get_bool_val("SWEEP_RUN_IN_API", default=False) is True
    assert helper_config.get_list_val("ENGAGEMENT_TEST_LIST", element_type=int) == [1, 2, 3]

    monkeypatch.setenv("ENGAGEMENT_TEST_LIST", "1,2")
    with pytest.raises(ValueError):
        helper_config.get_list_val("ENGAGEMENT_TEST_LIST")


def test_timezone_values(helper_config, monkeypatch):
    assert helper_config.get_timezone_val("SCHEDULE_TIMEZONE") == pytz.utc
    monkeypatch.setenv("SCHEDULE_TIMEZONE", "Europe/Berlin")
    assert helper_config.get_timezone_val("SCHEDULE_TIMEZONE").zone == "Europe/Berlin"


def test_context_filter_fills_sweep_id():
    record = logging.LogRecord("engagement", logging.INFO, __file__, 1, "hello", (), None)
    assert EngagementContextFilter().filter(record) is True
    assert record.sweep_id == "-"

    record.sweep_id = "abc123"
    EngagementContextFilter().filter(record)
    assert record.sweep_id == "abc123"


def test_color_logger_passes_color_as_extra(caplog):
    logger = ColorLogger(logging.getLogger("engagement.tests.color"))
    with caplog.at_level(logging.INFO, logger="engagement.tests.color"):
        logger.info("sweep %s done", "x1", color="green", extra={"sweep_id": "x1"})
    record = caplog.records[-1]
    assert record.getMessage() == "sweep x1 done"
    assert record.color == "green"
    assert record.sweep_id == "x1"
