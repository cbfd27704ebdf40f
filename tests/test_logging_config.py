"""Tests for log redaction of applicant personal data."""

import logging

from visaflow.logging_config import PIIRedactionFilter, _redact_message, sanitize_extra


def test_redact_message_key_values() -> None:
    msg = "Imported person full_name=Maria email: maria@example.com case_id=7"
    assert _redact_message(msg) == (
        "Imported person full_name=[REDACTED] email=[REDACTED] case_id=7"
    )


def test_sanitize_extra() -> None:
    out = sanitize_extra({"api_key": "k", "cpf": "123", "case_id": 3})
    assert out == {"api_key": "***", "cpf": "[REDACTED]", "case_id": 3}
    assert sanitize_extra(None) == {}


def test_filter_redacts_record_args() -> None:
    record = logging.LogRecord(
        "visaflow.bulk", logging.INFO, __file__, 1, "Row %s: %s", (3, "cpf=123.456.789-00"), None
    )
    assert PIIRedactionFilter().filter(record) is True
    assert record.getMessage() == "Row 3: cpf=[REDACTED]"
