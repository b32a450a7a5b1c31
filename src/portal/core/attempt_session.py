"""Attempt session manager.

Owns the lifecycle of quiz attempts up to finalization: eligibility
checks, creation with a question snapshot, resumption of an in-progress
attempt, and autosaved progress writes.

Creation relies on the attempt store's uniqueness constraints rather than
in-process locking. A duplicate request that loses the insert race gets a
ConflictError from the store and resumes the winner instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from portal.config.app_config import get_quiz_config
from portal.core.errors import ConflictError, LockedError, NotFoundError, ValidationError
from portal.core.models import AttemptStatus, QuizAttempt
from portal.core.progression import ProgressionTracker
from portal.db import attempt_repository, content_repository

logger = structlog.get_logger(__name__)


@dataclass
class AttemptEligibility:
    """Whether a student may start a new attempt on a quiz."""

    allowed: bool
    reason: str | None = None
    attempts_used: int = 0
    max_attempts: int = 3

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.attempts_used)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "attempts_used": self.attempts_used,
            "attempts_remaining": self.attempts_remaining,
            "max_attempts": self.max_attempts,
        }


class AttemptSessionManager:
    """Creates, resumes, and autosaves quiz attempts."""

    def __init__(
        self,
        tracker: ProgressionTracker | None = None,
        attempt_duration_seconds: int | None = None,
        max_attempts: int | None = None,
    ):
        self._tracker = tracker
        self._duration = attempt_duration_seconds
        self._max_attempts = max_attempts

    @property
    def attempt_duration_seconds(self) -> int:
        if self._duration is not None:
            return self._duration
        return get_quiz_config().attempt_duration_seconds

    @property
    def max_attempts(self) -> int:
        if self._max_attempts is not None:
            return self._max_attempts
        return get_quiz_config().max_attempts

    # -------------------------------------------------------------------------
    # Eligibility
    # -------------------------------------------------------------------------

    def can_attempt(self, student_id: str, quiz_id: str) -> AttemptEligibility:
        """Check whether a new attempt may be created.

        Disallowed once a passed attempt exists or once max_attempts
        non-passed attempts exist.

        Raises:
            NotFoundError: If the quiz does not exist
        """
        quiz = content_repository.get_quiz(quiz_id)
        attempts = attempt_repository.list_attempts(student_id, quiz_id)
        used = len(attempts)

        if any(a.status is AttemptStatus.PASSED for a in attempts):
            return AttemptEligibility(False, "already_passed", used, self.max_attempts)

        non_passed = sum(1 for a in attempts if a.status is not AttemptStatus.PASSED)
        if non_passed >= self.max_attempts:
            return AttemptEligibility(False, "attempts_exhausted", used, self.max_attempts)

        if self._tracker is not None and quiz.lesson_id is not None:
            progress = self._tracker.get_lesson_progress(student_id, quiz.lesson_id)
            if not progress.is_unlocked:
                return AttemptEligibility(False, "lesson_locked", used, self.max_attempts)

        return AttemptEligibility(True, None, used, self.max_attempts)

    # -------------------------------------------------------------------------
    # Create / resume
    # -------------------------------------------------------------------------

    def create_or_resume_attempt(self, student_id: str, quiz_id: str) -> QuizAttempt:
        """Return the in-progress attempt, or create the next one.

        A resumed attempt is returned exactly as last persisted.

        Raises:
            NotFoundError: If the quiz does not exist
            LockedError: If no new attempt is allowed
        """
        current = attempt_repository.get_current_attempt(student_id, quiz_id)
        if current is not None:
            logger.info(
                "attempt_resumed",
                attempt_id=current.attempt_id,
                student_id=student_id,
                quiz_id=quiz_id,
                time_remaining_seconds=current.time_remaining_seconds,
            )
            return current

        eligibility = self.can_attempt(student_id, quiz_id)
        if not eligibility.allowed:
            logger.info(
                "attempt_refused",
                student_id=student_id,
                quiz_id=quiz_id,
                reason=eligibility.reason,
            )
            raise LockedError(
                f"Cannot start a new attempt on quiz '{quiz_id}': {eligibility.reason}",
                reason=eligibility.reason,
            )

        quiz = content_repository.get_quiz(quiz_id)
        try:
            attempt = attempt_repository.create_attempt(
                student_id=student_id,
                quiz_id=quiz_id,
                questions=quiz.ordered_questions(),
                duration_seconds=self.attempt_duration_seconds,
                passing_score=quiz.passing_score,
                max_attempts=self.max_attempts,
            )
        except ConflictError:
            winner = attempt_repository.get_current_attempt(student_id, quiz_id)
            if winner is None:
                raise
            logger.info(
                "attempt_creation_conflict_resumed",
                attempt_id=winner.attempt_id,
                student_id=student_id,
                quiz_id=quiz_id,
            )
            return winner

        logger.info(
            "attempt_created",
            attempt_id=attempt.attempt_id,
            student_id=student_id,
            quiz_id=quiz_id,
            attempt_number=attempt.attempt_number,
            questions=len(attempt.question_ids),
        )
        return attempt

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_attempt(self, attempt_id: str, student_id: str | None = None) -> QuizAttempt:
        """Get an attempt, optionally checking ownership.

        Raises:
            NotFoundError: If missing or owned by another student
        """
        attempt = attempt_repository.get_attempt(attempt_id)
        if student_id is not None and attempt.student_id != student_id:
            raise NotFoundError(f"Attempt '{attempt_id}' not found")
        return attempt

    def get_current_attempt(self, student_id: str, quiz_id: str) -> QuizAttempt | None:
        return attempt_repository.get_current_attempt(student_id, quiz_id)

    def list_attempts(self, student_id: str, quiz_id: str) -> list[QuizAttempt]:
        return attempt_repository.list_attempts(student_id, quiz_id)

    def list_attempts_for_lesson(self, student_id: str, lesson_id: str) -> list[QuizAttempt]:
        """Attempt history for the quiz of a lesson (empty when it has none).

        Raises:
            NotFoundError: If the lesson does not exist
        """
        lesson = content_repository.get_lesson(lesson_id)
        if lesson.quiz_id is None:
            return []
        return attempt_repository.list_attempts(student_id, lesson.quiz_id)

    # -------------------------------------------------------------------------
    # Autosave
    # -------------------------------------------------------------------------

    def save_progress(
        self,
        attempt_id: str,
        answers: dict[str, Any],
        current_question_index: int,
        time_remaining_seconds: int,
        student_id: str | None = None,
    ) -> bool:
        """Persist {answers, index, time remaining} for an in-progress attempt.

        The stored clock never moves backwards: a larger time_remaining than
        the persisted one is clamped.

        Returns:
            True if written, False if the attempt is already terminal

        Raises:
            NotFoundError: If the attempt does not exist
            ValidationError: If answers reference unknown questions or the
                index is out of range
        """
        attempt = self.get_attempt(attempt_id, student_id)
        if attempt.is_terminal:
            logger.warning(
                "progress_write_after_finalize",
                attempt_id=attempt_id,
                status=attempt.status.value,
            )
            return False

        question_ids = attempt.question_ids
        unknown = sorted(set(answers) - set(question_ids))
        if unknown:
            raise ValidationError(f"Unknown question ids: {', '.join(unknown)}")
        if question_ids and not 0 <= current_question_index < len(question_ids):
            raise ValidationError(
                f"Question index {current_question_index} out of range 0..{len(question_ids) - 1}"
            )

        time_remaining = max(0, min(time_remaining_seconds, attempt.time_remaining_seconds))
        return attempt_repository.update_progress(
            attempt_id,
            answers=answers,
            current_question_index=current_question_index,
            time_remaining_seconds=time_remaining,
        )
