# mos_core/common/log_filters.py
"""
Logging filters shared by every handler in settings.LOGGING.

SensitiveDataFilter masks values whose key looks like a credential or a piece
of personal data (password, token, email, phone, ...). It runs on the record's
``args`` (when they are a mapping or contain mappings) and on anything passed
through ``extra=``. Redaction is skipped when DEBUG is on so local debugging
keeps full payloads.
"""
from __future__ import annotations

import logging
from typing import Any

REDACTED = "[REDACTED]"

SENSITIVE_KEY_PARTS = (
    "password",
    "token",
    "secret",
    "apikey",
    "api_key",
    "authorization",
    "cookie",
    "session",
    "email",
    "phone",
    "creditcard",
    "credit_card",
    "ssn",
    "cvv",
)

# Attributes every LogRecord carries; never treated as `extra` payload.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_MAX_DEPTH = 6


def is_sensitive_key(key: Any) -> bool:
    k = str(key).lower().replace("-", "_")
    return any(part in k for part in SENSITIVE_KEY_PARTS)


def redact(value: Any, _depth: int = 0) -> Any:
    if _depth > _MAX_DEPTH:
        return value
    if isinstance(value, dict):
        return {
            k: (REDACTED if is_sensitive_key(k) else redact(v, _depth + 1))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact(v, _depth + 1) for v in value)
    return value


class SensitiveDataFilter(logging.Filter):
    def __init__(self, name: str = "", enabled: bool | None = None):
        super().__init__(name)
        self._enabled = enabled

    def _active(self) -> bool:
        if self._enabled is not None:
            return self._enabled

        from django.conf import settings

        return settings.configured and not settings.DEBUG

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._active():
            return True

        if isinstance(record.args, dict):
            record.args = redact(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(redact(a) for a in record.args)

        for key, value in list(vars(record).items()):
            if key in _RECORD_ATTRS:
                continue
            if is_sensitive_key(key):
                setattr(record, key, REDACTED)
            elif isinstance(value, (dict, list, tuple)):
                setattr(record, key, redact(value))
        return True
