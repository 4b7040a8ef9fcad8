from __future__ import annotations

import json
import logging

from pinmap.utils.logging import _json_formatter, configure_logging, get_logger

EXPECTED_PIN_ID = 10
EXPECTED_VERSION = 3


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.pin_id = EXPECTED_PIN_ID
    record.backend = "sqlite"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["pin_id"] == EXPECTED_PIN_ID
    assert payload["backend"] == "sqlite"


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"version": EXPECTED_VERSION}

    payload = json.loads(_json_formatter(record))

    assert payload["version"] == EXPECTED_VERSION


def test_json_formatter_flattens_nested_extra_through_logger(caplog) -> None:
    log = get_logger("test.nested")

    with caplog.at_level(logging.INFO, logger="test.nested"):
        log.info("Pin updated", extra={"pin_id": EXPECTED_PIN_ID, "extra": {"version": EXPECTED_VERSION}})

    payload = json.loads(_json_formatter(caplog.records[-1]))

    assert payload["pin_id"] == EXPECTED_PIN_ID
    assert payload["version"] == EXPECTED_VERSION
    assert "extra" not in payload


def test_json_formatter_serializes_unknown_types_as_strings() -> None:
    record = _record()
    record.path = object()

    payload = json.loads(_json_formatter(record))

    assert payload["path"].startswith("<object")


def test_configure_logging_sets_root_level() -> None:
    configure_logging(level="DEBUG", json_logs=True)
    try:
        assert logging.getLogger().level == logging.DEBUG
        assert get_logger("pinmap.test").name == "pinmap.test"
    finally:
        configure_logging(level="WARNING")
