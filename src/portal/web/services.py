"""Engine services shared by the Web API (F5).

Holds one ProgressionTracker, AttemptSessionManager, and
SubmissionEvaluator per process. None of them keeps per-student state, so
writes made by other processes (workers, the sweep CLI) show up on the
next request.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header, HTTPException, status

from portal.core.attempt_session import AttemptSessionManager
from portal.core.evaluator import SubmissionEvaluator
from portal.core.progression import ProgressionTracker


@dataclass
class PortalServices:
    """Engine components used by request handlers."""

    tracker: ProgressionTracker
    attempts: AttemptSessionManager
    evaluator: SubmissionEvaluator


def build_services() -> PortalServices:
    tracker = ProgressionTracker()
    return PortalServices(
        tracker=tracker,
        attempts=AttemptSessionManager(tracker=tracker),
        evaluator=SubmissionEvaluator(),
    )


# Global services instance
_services: PortalServices | None = None


def get_services() -> PortalServices:
    """Get the global services instance."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def reset_services() -> None:
    """Reset the services (for testing)."""
    global _services
    _services = None


async def get_student_id(x_student_id: str | None = Header(default=None)) -> str:
    """Student id from the externally issued session credential."""
    if not x_student_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Student-Id header",
        )
    return x_student_id
