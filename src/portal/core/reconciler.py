"""Stale attempt reconciler.

Finalizes in-progress attempts whose deadline (start time + attempt
duration) has passed without a client submission, e.g. when a detached
unload submission never arrived. Scoring uses the last autosaved answers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog

from portal.core.evaluator import SubmissionEvaluator
from portal.core.models import AttemptResult
from portal.db import attempt_repository

logger = structlog.get_logger(__name__)


@dataclass
class SweepReport:
    """Outcome of one reconciliation sweep."""

    checked: int = 0
    finalized: dict[str, AttemptResult] = field(default_factory=dict)

    @property
    def finalized_count(self) -> int:
        return len(self.finalized)


def attempt_deadline(start_time: str, duration_seconds: int) -> datetime:
    started = datetime.fromisoformat(start_time)
    if started.tzinfo is None:
        started = started.replace(tzinfo=timezone.utc)
    return started + timedelta(seconds=duration_seconds)


def sweep_stale_attempts(
    evaluator: SubmissionEvaluator,
    now: datetime | None = None,
    grace_seconds: int = 0,
) -> SweepReport:
    """Finalize every in-progress attempt past its deadline.

    Args:
        evaluator: Evaluator used to score and finalize
        now: Reference time (defaults to the current UTC time)
        grace_seconds: Extra slack past the deadline before sweeping

    Returns:
        SweepReport listing finalized attempts
    """
    now = now or datetime.now(timezone.utc)
    duration = evaluator.attempt_duration_seconds
    report = SweepReport()

    for attempt in attempt_repository.list_in_progress_attempts():
        report.checked += 1
        deadline = attempt_deadline(attempt.start_time, duration) + timedelta(seconds=grace_seconds)
        if now < deadline:
            continue

        result = evaluator.submit(attempt.attempt_id, attempt.answers, time_remaining_seconds=0)
        report.finalized[attempt.attempt_id] = result
        logger.info(
            "stale_attempt_finalized",
            attempt_id=attempt.attempt_id,
            student_id=attempt.student_id,
            deadline=deadline.isoformat(),
            status=result.status.value,
            score_percent=result.score_percent,
        )

    logger.info("stale_sweep_completed", checked=report.checked, finalized=report.finalized_count)
    return report
