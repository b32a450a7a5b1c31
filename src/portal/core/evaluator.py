"""Submission evaluator.

Scores answers against the attempt's snapshotted answer key and finalizes
the attempt exactly once. A second submit of a terminal attempt returns
the stored result without rescoring.

Correctness per question type:
- single_choice: submitted index equals the correct index
- multiple_choice: submitted index set equals the correct set
- fill_in: strings equal after trimming and case folding

Unanswered questions count as incorrect.
"""

from __future__ import annotations

import math
from typing import Any

import structlog

from portal.config.app_config import get_quiz_config
from portal.core.errors import ValidationError
from portal.core.models import (
    AttemptResult,
    AttemptStatus,
    Question,
    QuestionType,
    QuizAttempt,
)
from portal.db import attempt_repository

logger = structlog.get_logger(__name__)


# =============================================================================
# NORMALIZATION
# =============================================================================


def _normalize_index(value: Any) -> int | None:
    """Normalize a single-choice response to an option index."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped == "":
            return None
        try:
            return int(stripped)
        except ValueError:
            return None
    return None


def _normalize_index_set(value: Any) -> frozenset[int] | None:
    """Normalize a multiple-choice response to a set of option indices."""
    if not isinstance(value, (list, tuple, set, frozenset)):
        return None
    indices = set()
    for item in value:
        index = _normalize_index(item)
        if index is None:
            return None
        indices.add(index)
    return frozenset(indices)


def _normalize_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip().casefold()


def is_answered(value: Any) -> bool:
    """Whether a submitted value counts as an answer for manual submission."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) > 0
    return True


def is_answer_correct(question: Question, value: Any) -> bool:
    """Check one submitted value against a question's answer key."""
    if value is None:
        return False

    if question.question_type is QuestionType.SINGLE_CHOICE:
        submitted = _normalize_index(value)
        return submitted is not None and submitted == _normalize_index(question.correct_answer)

    if question.question_type is QuestionType.MULTIPLE_CHOICE:
        submitted_set = _normalize_index_set(value)
        return submitted_set is not None and submitted_set == _normalize_index_set(
            question.correct_answer
        )

    if question.question_type is QuestionType.FILL_IN:
        submitted_text = _normalize_text(value)
        return submitted_text is not None and submitted_text == _normalize_text(
            question.correct_answer
        )

    raise ValueError(f"Unsupported question type: {question.question_type}")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_answers(
    questions: list[Question],
    answers: dict[str, Any],
    passing_score: int,
) -> AttemptResult:
    """Score answers against a question set.

    Args:
        questions: Snapshotted questions (answer key included)
        answers: question_id -> submitted value; missing ids are incorrect
        passing_score: Threshold percentage for a pass

    Returns:
        AttemptResult with a terminal status
    """
    total = len(questions)
    correct = sum(1 for q in questions if is_answer_correct(q, answers.get(q.question_id)))

    score_percent = _round_half_up(correct / total * 100) if total else 0
    status = AttemptStatus.PASSED if score_percent >= passing_score else AttemptStatus.FAILED

    return AttemptResult(
        status=status,
        score_percent=score_percent,
        correct_answers=correct,
        total_questions=total,
    )


def stored_result(attempt: QuizAttempt) -> AttemptResult:
    """Result recorded on a terminal attempt."""
    if attempt.status is AttemptStatus.IN_PROGRESS:
        raise ValueError(f"Attempt '{attempt.attempt_id}' is not finalized")
    return AttemptResult(
        status=attempt.status,
        score_percent=attempt.score or 0,
        correct_answers=attempt.correct_answers or 0,
        total_questions=attempt.total_questions or 0,
    )


# =============================================================================
# EVALUATOR
# =============================================================================


class SubmissionEvaluator:
    """Scores and finalizes attempts.

    Progression reads the finalized status straight from the store, so
    nothing else needs notifying.
    """

    def __init__(self, attempt_duration_seconds: int | None = None):
        self._duration = attempt_duration_seconds

    @property
    def attempt_duration_seconds(self) -> int:
        if self._duration is not None:
            return self._duration
        return get_quiz_config().attempt_duration_seconds

    def submit(
        self,
        attempt_id: str,
        answers: dict[str, Any],
        time_remaining_seconds: int | None = None,
    ) -> AttemptResult:
        """Score and finalize an attempt; idempotent once terminal.

        Args:
            attempt_id: Attempt to finalize
            answers: Submitted answers (may be partial)
            time_remaining_seconds: Clock value at submission; defaults to
                the last persisted value

        Returns:
            The authoritative AttemptResult

        Raises:
            NotFoundError: If the attempt does not exist
        """
        attempt = attempt_repository.get_attempt(attempt_id)
        if attempt.is_terminal:
            logger.info(
                "submit_replayed",
                attempt_id=attempt_id,
                status=attempt.status.value,
            )
            return stored_result(attempt)

        questions = attempt.questions
        known_ids = {q.question_id for q in questions}
        accepted = {qid: value for qid, value in answers.items() if qid in known_ids}
        if len(accepted) != len(answers):
            logger.warning(
                "submit_unknown_questions_dropped",
                attempt_id=attempt_id,
                dropped=sorted(set(answers) - known_ids),
            )

        passing_score = attempt.metadata.get(
            "passingScore", get_quiz_config().default_passing_score
        )
        result = score_answers(questions, accepted, passing_score)

        if time_remaining_seconds is None:
            time_remaining_seconds = attempt.time_remaining_seconds
        # The clock only runs down: never above what was last persisted
        time_remaining_seconds = max(
            0,
            min(time_remaining_seconds, attempt.time_remaining_seconds, self.attempt_duration_seconds),
        )
        time_taken = self.attempt_duration_seconds - time_remaining_seconds

        finalized = attempt_repository.finalize_attempt(
            attempt_id,
            answers=accepted,
            result=result,
            time_remaining_seconds=time_remaining_seconds,
            time_taken_seconds=time_taken,
        )
        if not finalized:
            # Another submission won; its result is authoritative
            return stored_result(attempt_repository.get_attempt(attempt_id))

        logger.info(
            "attempt_finalized",
            attempt_id=attempt_id,
            student_id=attempt.student_id,
            quiz_id=attempt.quiz_id,
            attempt_number=attempt.attempt_number,
            status=result.status.value,
            score_percent=result.score_percent,
            correct_answers=result.correct_answers,
            total_questions=result.total_questions,
            time_taken=time_taken,
        )
        return result

    def submit_manual(
        self,
        attempt_id: str,
        answers: dict[str, Any],
        time_remaining_seconds: int | None = None,
    ) -> AttemptResult:
        """Student-initiated submission: every question must be answered.

        Raises:
            ValidationError: If any snapshot question is unanswered
        """
        attempt = attempt_repository.get_attempt(attempt_id)
        if not attempt.is_terminal:
            missing = [
                q.question_id for q in attempt.questions if not is_answered(answers.get(q.question_id))
            ]
            if missing:
                raise ValidationError(
                    f"{len(missing)} question(s) unanswered",
                    missing_question_ids=missing,
                )
        return self.submit(attempt_id, answers, time_remaining_seconds)
