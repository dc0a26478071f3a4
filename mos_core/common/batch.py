# mos_core/common/batch.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterable

from django.db import transaction

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """
    Aggregate outcome of a per-org batch job.
    One org failing never aborts the others.
    """
    checked: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def run_per_org(orgs: Iterable, fn: Callable[[Any], dict | None], *, job: str) -> BatchResult:
    """
    Calls fn(org) for each org inside its own transaction.

    fn returns a result dict (appended to `results`) or None when there was
    nothing to do for that org. Exceptions are logged and counted.
    """
    out = BatchResult()
    for org in orgs:
        out.checked += 1
        try:
            with transaction.atomic():
                item = fn(org)
        except Exception as exc:
            logger.exception("%s failed for org %s", job, org.id)
            out.failed += 1
            out.results.append({"org_id": str(org.id), "org_name": org.name, "status": "error", "error": str(exc)})
            continue

        out.succeeded += 1
        if item:
            out.results.append({"org_id": str(org.id), "org_name": org.name, **item})

    logger.info("%s finished: checked=%s succeeded=%s failed=%s", job, out.checked, out.succeeded, out.failed)
    return out
