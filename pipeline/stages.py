"""pipeline.stages

Stage bookkeeping for a pipeline run.

A stage is a named callable. :func:`run_stage` logs its start, times it and
records a :class:`StageResult`. Then it re-raises any exception, so the
orchestrator decides what a failure means.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

OK = "ok"
SKIPPED = "skipped"
FAILED = "failed"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StageResult:
    """Execution record for one stage."""

    name: str
    status: str
    started_at: str
    finished_at: str
    duration_seconds: float = 0.0

    summary: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_seconds": round(self.duration_seconds, 3),
            "summary": dict(self.summary),
            "error": self.error,
        }


def skip_stage(name: str, results: List[StageResult], reason: str = "disabled") -> StageResult:
    now = _now_iso()
    logger.info("Stage '%s' skipped (%s)", name, reason)
    res = StageResult(name=name, status=SKIPPED, started_at=now, finished_at=now, summary={"reason": reason})
    results.append(res)
    return res


def run_stage(name: str, fn: Callable[[], Optional[Dict[str, Any]]], results: List[StageResult]) -> StageResult:
    """Run *fn* as stage *name* and append its record to *results*."""
    logger.info("Stage: %s", name)
    started_at = _now_iso()
    t0 = time.time()
    try:
        summary = fn() or {}
    except Exception as e:
        elapsed = time.time() - t0
        results.append(
            StageResult(
                name=name,
                status=FAILED,
                started_at=started_at,
                finished_at=_now_iso(),
                duration_seconds=elapsed,
                error=str(e),
            )
        )
        logger.error("Stage '%s' failed: %s", name, e)
        raise

    elapsed = time.time() - t0
    res = StageResult(
        name=name,
        status=OK,
        started_at=started_at,
        finished_at=_now_iso(),
        duration_seconds=elapsed,
        summary=dict(summary),
    )
    results.append(res)
    logger.info("Stage '%s' completed in %.1f seconds", name, elapsed)
    return res
