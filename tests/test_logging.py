"""Tests for structured log output."""

import logging

from intake_safety.core.logging import StructuredFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="intake_safety.services.safety",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Safety check %s",
        args=("done",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_structured_line_includes_intake_context() -> None:
    line = StructuredFormatter().format(
        _record(intake_id="intake-7", service_type="prescription", action="safety_check")
    )

    assert "level=INFO" in line
    assert "logger=intake_safety.services.safety" in line
    assert "message=Safety check done" in line
    assert "intake_id=intake-7" in line
    assert "service_type=prescription" in line
    assert "action=safety_check" in line


def test_structured_line_omits_unset_context() -> None:
    line = StructuredFormatter().format(_record())

    assert "intake_id=" not in line
    assert "service_type=" not in line
    assert "exception=" not in line
