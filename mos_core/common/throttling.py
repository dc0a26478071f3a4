# mos_core/common/throttling.py
from __future__ import annotations

import re

from rest_framework.throttling import SimpleRateThrottle

_PERIODS = {"s": 1, "m": 60, "h": 3600, "d": 86400}
_RATE_RE = re.compile(r"^\s*(\d+)\s*/\s*(\d*)\s*([smhd])[a-z]*\s*$", re.IGNORECASE)


def parse_rate(rate: str | None) -> tuple[int | None, int | None]:
    """
    "100/15m" -> (100, 900); "10/h" -> (10, 3600); "5/minute" -> (5, 60).
    """
    if rate is None:
        return None, None
    m = _RATE_RE.match(rate)
    if not m:
        raise ValueError(f"Invalid throttle rate: {rate!r}")
    num = int(m.group(1))
    multiplier = int(m.group(2)) if m.group(2) else 1
    return num, multiplier * _PERIODS[m.group(3).lower()]


def client_ip(request) -> str:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.META.get("REMOTE_ADDR") or "unknown"


class ClientPathRateThrottle(SimpleRateThrottle):
    """
    Fixed rate per (client IP, path), stored in the default Django cache so
    every worker/instance shares the same counters.
    """

    def parse_rate(self, rate):
        return parse_rate(rate)

    def get_cache_key(self, request, view):
        return self.cache_format % {
            "scope": self.scope,
            "ident": f"{client_ip(request)}:{request.path}",
        }


class ApiRateThrottle(ClientPathRateThrottle):
    scope = "api"


class StrictRateThrottle(ClientPathRateThrottle):
    """Public, unauthenticated endpoints (claim codes, login)."""
    scope = "strict"


class UploadRateThrottle(ClientPathRateThrottle):
    scope = "upload"
