"""Repository functions for course content.

Lessons, course materials, videos, quizzes, and questions. Content is
authored outside the engine; the insert functions here are the seeding
path used by the course loader and by tests.
"""

from __future__ import annotations

import json
import sqlite3

import structlog

from portal.core.errors import NotFoundError
from portal.core.models import Lesson, Question, QuestionType, Quiz, Video
from portal.db.database import get_db

logger = structlog.get_logger(__name__)


# =============================================================================
# INSERTS
# =============================================================================


def insert_course_material(course_material_id: str, language: str, title: str = "") -> None:
    """Insert or replace a course material (slide deck)."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO course_materials (course_material_id, title, language)
            VALUES (?, ?, ?)
            """,
            (course_material_id, title, language),
        )

    logger.debug("course_materials.inserted", course_material_id=course_material_id)


def insert_lesson(
    lesson_id: str,
    session_number: int,
    course_material_id: str,
    title: str = "",
) -> None:
    """Insert a lesson.

    Raises:
        sqlite3.IntegrityError: If lesson_id exists or the material is unknown
    """
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO lessons (lesson_id, session_number, title, course_material_id)
            VALUES (?, ?, ?, ?)
            """,
            (lesson_id, session_number, title, course_material_id),
        )

    logger.debug("lessons.inserted", lesson_id=lesson_id, session_number=session_number)


def insert_video(video_id: str, lesson_id: str, title: str = "", order: int = 0) -> None:
    """Insert a lesson video."""
    with get_db() as conn:
        conn.execute(
            "INSERT INTO videos (video_id, lesson_id, title, video_order) VALUES (?, ?, ?, ?)",
            (video_id, lesson_id, title, order),
        )


def insert_quiz(
    quiz_id: str,
    lesson_id: str | None,
    questions: list[Question],
    title: str = "",
    passing_score: int = 100,
    description: str = "",
) -> None:
    """Insert a quiz with its questions in one transaction."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO quizzes (quiz_id, lesson_id, title, description, passing_score)
            VALUES (?, ?, ?, ?, ?)
            """,
            (quiz_id, lesson_id, title, description, passing_score),
        )
        for question in questions:
            _insert_question(conn, quiz_id, question)

    logger.debug("quizzes.inserted", quiz_id=quiz_id, questions=len(questions))


def _insert_question(conn: sqlite3.Connection, quiz_id: str, question: Question) -> None:
    conn.execute(
        """
        INSERT INTO questions (
            question_id, quiz_id, question_type, question, options,
            correct_answer, explanation, points, question_order
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            question.question_id,
            quiz_id,
            question.question_type.value,
            question.question,
            json.dumps(question.options),
            json.dumps(question.correct_answer),
            question.explanation,
            question.points,
            question.order,
        ),
    )


def update_question(question: Question) -> None:
    """Overwrite an authored question.

    Attempts already in progress keep their snapshot.

    Raises:
        NotFoundError: If the question does not exist
    """
    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE questions
            SET question_type = ?, question = ?, options = ?, correct_answer = ?,
                explanation = ?, points = ?, question_order = ?
            WHERE question_id = ?
            """,
            (
                question.question_type.value,
                question.question,
                json.dumps(question.options),
                json.dumps(question.correct_answer),
                question.explanation,
                question.points,
                question.order,
                question.question_id,
            ),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Question '{question.question_id}' not found")


# =============================================================================
# QUERIES
# =============================================================================


def get_quiz(quiz_id: str) -> Quiz:
    """Get a quiz with its questions (answer key included).

    Raises:
        NotFoundError: If the quiz does not exist
    """
    with get_db() as conn:
        row = conn.execute("SELECT * FROM quizzes WHERE quiz_id = ?", (quiz_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Quiz '{quiz_id}' not found")
        question_rows = conn.execute(
            "SELECT * FROM questions WHERE quiz_id = ? ORDER BY question_order, question_id",
            (quiz_id,),
        ).fetchall()

    return Quiz(
        quiz_id=row["quiz_id"],
        lesson_id=row["lesson_id"],
        title=row["title"],
        description=row["description"],
        passing_score=row["passing_score"],
        questions=[_row_to_question(r) for r in question_rows],
    )


def get_lesson(lesson_id: str) -> Lesson:
    """Get a lesson with its videos and quiz reference.

    Raises:
        NotFoundError: If the lesson does not exist
    """
    lessons = _load_lessons("WHERE l.lesson_id = ?", (lesson_id,))
    if not lessons:
        raise NotFoundError(f"Lesson '{lesson_id}' not found")
    return lessons[0]


def list_lessons(track: str | None = None) -> list[Lesson]:
    """List lessons ordered by track and session number."""
    if track is None:
        return _load_lessons("", ())
    return _load_lessons("WHERE cm.language = ?", (track,))


def _load_lessons(where: str, params: tuple) -> list[Lesson]:
    with get_db() as conn:
        rows = conn.execute(
            f"""
            SELECT l.lesson_id, l.session_number, l.title, l.course_material_id,
                   cm.language AS track, q.quiz_id
            FROM lessons l
            JOIN course_materials cm ON cm.course_material_id = l.course_material_id
            LEFT JOIN quizzes q ON q.lesson_id = l.lesson_id
            {where}
            ORDER BY cm.language, l.session_number, l.lesson_id
            """,
            params,
        ).fetchall()

        lessons = []
        for row in rows:
            video_rows = conn.execute(
                "SELECT * FROM videos WHERE lesson_id = ? ORDER BY video_order, video_id",
                (row["lesson_id"],),
            ).fetchall()
            lessons.append(
                Lesson(
                    lesson_id=row["lesson_id"],
                    session_number=row["session_number"],
                    track=row["track"],
                    course_material_id=row["course_material_id"],
                    title=row["title"],
                    quiz_id=row["quiz_id"],
                    videos=[
                        Video(
                            video_id=v["video_id"],
                            lesson_id=v["lesson_id"],
                            title=v["title"],
                            order=v["video_order"],
                        )
                        for v in video_rows
                    ],
                )
            )

    return lessons


def _row_to_question(row: sqlite3.Row) -> Question:
    """Convert database row to Question."""
    return Question(
        question_id=row["question_id"],
        question_type=QuestionType(row["question_type"]),
        question=row["question"],
        options=json.loads(row["options"]),
        correct_answer=json.loads(row["correct_answer"]),
        explanation=row["explanation"],
        points=row["points"],
        order=row["question_order"],
    )
