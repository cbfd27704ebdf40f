"""Logging setup: stdout, no secrets, personal data redacted from records."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

REDACT_FIELDS = frozenset({"password", "secret", "token", "api_key", "authorization"})
# Personal data of applicants: log ids only
PII_REDACT_KEYS = frozenset(
    {
        "full_name",
        "email",
        "cpf",
        "passport_number",
        "birth_date",
        "phone_number",
        "mother_name",
        "father_name",
    }
)
PII_KEY_PATTERN = re.compile(
    r"(\b" + "|".join(re.escape(k) for k in PII_REDACT_KEYS) + r")[\s=:]+[^\s,\)\]]+",
    re.IGNORECASE,
)


def sanitize_extra(extra: dict[str, Any] | None) -> dict[str, Any]:
    if not extra:
        return {}
    out: dict[str, Any] = {}
    for k, v in extra.items():
        key_lower = k.lower()
        if any(r in key_lower for r in REDACT_FIELDS):
            out[k] = "***"
        elif any(p in key_lower for p in PII_REDACT_KEYS):
            out[k] = "[REDACTED]"
        else:
            out[k] = v
    return out


def _redact_message(msg: Any) -> str:
    """Replace PII key=value or key: value in message with [REDACTED]."""
    if not isinstance(msg, str):
        return str(msg)
    return PII_KEY_PATTERN.sub(r"\1=[REDACTED]", msg)


class PIIRedactionFilter(logging.Filter):
    """Redact personal data from log records (message and args)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = _redact_message(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(_redact_message(a) if isinstance(a, str) else a for a in record.args)
        elif isinstance(record.args, dict):
            record.args = sanitize_extra(record.args)
        return True


def setup_logging(log_level: str = "INFO") -> None:
    """Configure root logger: stdout, PII redaction filter, no secrets."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
        stream=sys.stdout,
        force=True,
    )
    redaction = PIIRedactionFilter()
    for handler in logging.getLogger().handlers:
        handler.addFilter(redaction)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for module `name` (redaction applied at the root handlers)."""
    return logging.getLogger(name)
