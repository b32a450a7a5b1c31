"""Repository functions for the quiz_attempts table.

The table's constraints are the single source of truth for attempt
uniqueness: one in-progress attempt per (student, quiz) and a unique
attempt_number per (student, quiz). The attempt cap is checked by the
creating INSERT itself. Progress writes and finalization are
conditional on status = 'in_progress', so replayed or late writes against
a terminal attempt are no-ops.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

import structlog

from portal.core.errors import ConflictError, LockedError, NotFoundError
from portal.core.models import AttemptResult, AttemptStatus, Question, QuizAttempt
from portal.db.database import get_db

logger = structlog.get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_attempt(
    student_id: str,
    quiz_id: str,
    questions: list[Question],
    duration_seconds: int,
    passing_score: int,
    max_attempts: int,
) -> QuizAttempt:
    """Insert a new in-progress attempt with a question snapshot.

    attempt_number and the attempt cap are evaluated by the INSERT itself,
    so a request that raced past an earlier eligibility check cannot create
    an attempt beyond max_attempts or after a pass.

    Raises:
        ConflictError: If another in-progress attempt or the same
            attempt_number already exists for (student, quiz)
        LockedError: If the quiz is already passed or max_attempts
            non-passed attempts exist
    """
    attempt_id = str(uuid.uuid4())
    start_time = _now_iso()
    metadata = {
        "questions": [q.to_dict() for q in questions],
        "passingScore": passing_score,
        "totalQuestions": len(questions),
    }

    try:
        with get_db() as conn:
            cursor = conn.execute(
                """
                INSERT INTO quiz_attempts (
                    attempt_id, quiz_id, student_id, attempt_number, status,
                    answers, current_question_index, time_remaining_seconds,
                    start_time, metadata
                )
                SELECT ?, ?, ?, prior.last_number + 1, 'in_progress', '{}', 0, ?, ?, ?
                FROM (
                    SELECT COALESCE(MAX(attempt_number), 0) AS last_number,
                           COUNT(CASE WHEN status = 'passed' THEN 1 END) AS passed,
                           COUNT(CASE WHEN status != 'passed' THEN 1 END) AS used
                    FROM quiz_attempts
                    WHERE student_id = ? AND quiz_id = ?
                ) AS prior
                WHERE prior.passed = 0 AND prior.used < ?
                """,
                (
                    attempt_id,
                    quiz_id,
                    student_id,
                    duration_seconds,
                    start_time,
                    json.dumps(metadata),
                    student_id,
                    quiz_id,
                    max_attempts,
                ),
            )

            if cursor.rowcount == 0:
                passed = conn.execute(
                    "SELECT 1 FROM quiz_attempts "
                    "WHERE student_id = ? AND quiz_id = ? AND status = 'passed'",
                    (student_id, quiz_id),
                ).fetchone()
                reason = "already_passed" if passed is not None else "attempts_exhausted"
                logger.warning(
                    "quiz_attempts.insert_refused",
                    student_id=student_id,
                    quiz_id=quiz_id,
                    reason=reason,
                )
                raise LockedError(
                    f"Cannot start a new attempt on quiz '{quiz_id}': {reason}",
                    reason=reason,
                )

            attempt_number = conn.execute(
                "SELECT attempt_number FROM quiz_attempts WHERE attempt_id = ?",
                (attempt_id,),
            ).fetchone()["attempt_number"]
    except sqlite3.IntegrityError as e:
        raise ConflictError(
            f"Attempt already exists for student '{student_id}' on quiz '{quiz_id}'"
        ) from e

    logger.debug(
        "quiz_attempts.inserted",
        attempt_id=attempt_id,
        student_id=student_id,
        quiz_id=quiz_id,
        attempt_number=attempt_number,
    )

    return QuizAttempt(
        attempt_id=attempt_id,
        quiz_id=quiz_id,
        student_id=student_id,
        attempt_number=attempt_number,
        status=AttemptStatus.IN_PROGRESS,
        answers={},
        current_question_index=0,
        time_remaining_seconds=duration_seconds,
        start_time=start_time,
        metadata=metadata,
    )


def get_attempt(attempt_id: str) -> QuizAttempt:
    """Get attempt by ID.

    Raises:
        NotFoundError: If the attempt does not exist
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM quiz_attempts WHERE attempt_id = ?", (attempt_id,)
        ).fetchone()

    if row is None:
        raise NotFoundError(f"Attempt '{attempt_id}' not found")

    return _row_to_attempt(row)


def get_current_attempt(student_id: str, quiz_id: str) -> QuizAttempt | None:
    """Get the in-progress attempt for (student, quiz), if any."""
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT * FROM quiz_attempts
            WHERE student_id = ? AND quiz_id = ? AND status = 'in_progress'
            """,
            (student_id, quiz_id),
        ).fetchone()

    return _row_to_attempt(row) if row is not None else None


def list_attempts(student_id: str, quiz_id: str) -> list[QuizAttempt]:
    """List attempts for (student, quiz) in creation order."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT * FROM quiz_attempts
            WHERE student_id = ? AND quiz_id = ?
            ORDER BY attempt_number
            """,
            (student_id, quiz_id),
        ).fetchall()

    return [_row_to_attempt(r) for r in rows]


def list_attempt_statuses(student_id: str) -> dict[str, list[AttemptStatus]]:
    """Map quiz_id to the statuses of the student's attempts, in order."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT quiz_id, status FROM quiz_attempts
            WHERE student_id = ?
            ORDER BY quiz_id, attempt_number
            """,
            (student_id,),
        ).fetchall()

    statuses: dict[str, list[AttemptStatus]] = {}
    for row in rows:
        statuses.setdefault(row["quiz_id"], []).append(AttemptStatus(row["status"]))
    return statuses


def list_in_progress_attempts() -> list[QuizAttempt]:
    """List every in-progress attempt across students."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM quiz_attempts WHERE status = 'in_progress' ORDER BY start_time"
        ).fetchall()

    return [_row_to_attempt(r) for r in rows]


def update_progress(
    attempt_id: str,
    answers: dict[str, Any],
    current_question_index: int,
    time_remaining_seconds: int,
) -> bool:
    """Persist autosaved progress of an in-progress attempt.

    Returns:
        True if written, False if the attempt is no longer in progress

    Raises:
        NotFoundError: If the attempt does not exist
    """
    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE quiz_attempts
            SET answers = ?, current_question_index = ?, time_remaining_seconds = ?,
                updated_at = datetime('now')
            WHERE attempt_id = ? AND status = 'in_progress'
            """,
            (
                json.dumps(answers),
                current_question_index,
                max(0, time_remaining_seconds),
                attempt_id,
            ),
        )
        if cursor.rowcount == 0:
            exists = conn.execute(
                "SELECT 1 FROM quiz_attempts WHERE attempt_id = ?", (attempt_id,)
            ).fetchone()
            if exists is None:
                raise NotFoundError(f"Attempt '{attempt_id}' not found")
            logger.warning("quiz_attempts.progress_rejected", attempt_id=attempt_id)
            return False

    logger.debug(
        "quiz_attempts.progress_saved",
        attempt_id=attempt_id,
        answered=len(answers),
        time_remaining_seconds=time_remaining_seconds,
    )
    return True


def finalize_attempt(
    attempt_id: str,
    answers: dict[str, Any],
    result: AttemptResult,
    time_remaining_seconds: int,
    time_taken_seconds: int,
) -> bool:
    """Move an in-progress attempt to its terminal status.

    Returns:
        True if this call finalized the attempt, False if it was already
        terminal (the stored result is left untouched)
    """
    if not result.status.is_terminal:
        raise ValueError("finalize_attempt requires a terminal status")

    completed_at = _now_iso()

    with get_db() as conn:
        row = conn.execute(
            "SELECT metadata FROM quiz_attempts WHERE attempt_id = ?", (attempt_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Attempt '{attempt_id}' not found")

        metadata = json.loads(row["metadata"])
        metadata["timeTaken"] = time_taken_seconds
        metadata["completedAt"] = completed_at
        metadata["totalQuestions"] = result.total_questions

        cursor = conn.execute(
            """
            UPDATE quiz_attempts
            SET status = ?, answers = ?, score = ?, correct_answers = ?,
                total_questions = ?, time_remaining_seconds = ?, metadata = ?,
                updated_at = datetime('now')
            WHERE attempt_id = ? AND status = 'in_progress'
            """,
            (
                result.status.value,
                json.dumps(answers),
                result.score_percent,
                result.correct_answers,
                result.total_questions,
                max(0, time_remaining_seconds),
                json.dumps(metadata),
                attempt_id,
            ),
        )
        finalized = cursor.rowcount == 1

    if finalized:
        logger.debug("quiz_attempts.finalized", attempt_id=attempt_id, status=result.status.value)
    return finalized


def _row_to_attempt(row: sqlite3.Row) -> QuizAttempt:
    """Convert database row to QuizAttempt."""
    return QuizAttempt(
        attempt_id=row["attempt_id"],
        quiz_id=row["quiz_id"],
        student_id=row["student_id"],
        attempt_number=row["attempt_number"],
        status=AttemptStatus(row["status"]),
        answers=json.loads(row["answers"]),
        current_question_index=row["current_question_index"],
        time_remaining_seconds=row["time_remaining_seconds"],
        start_time=row["start_time"],
        metadata=json.loads(row["metadata"]),
        score=row["score"],
        correct_answers=row["correct_answers"],
        total_questions=row["total_questions"],
    )
