"""SQLite database connection and schema management.

Provides connection management and schema initialization for the portal.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/portal.db")

# Current database path (module-level, set by init_db)
_db_path: Path | None = None


def init_db(db_path: Path | None = None) -> None:
    """Initialize database with schema.

    Creates the database file and all required tables if they don't exist.

    Args:
        db_path: Path to database file. Defaults to db/portal.db
    """
    global _db_path
    _db_path = db_path or DEFAULT_DB_PATH

    # Ensure directory exists
    _db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        _create_schema(conn)

    logger.info("database.initialized", path=str(_db_path))


def get_db_path() -> Path:
    """Path of the active database file."""
    return _db_path or DEFAULT_DB_PATH


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Commits on success and rolls back on any exception.

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            rows = conn.execute("SELECT * FROM lessons").fetchall()
    """
    db_path = get_db_path()

    # Ensure directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=10.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        -- Content (authored elsewhere, read-only for the engine)
        CREATE TABLE IF NOT EXISTS course_materials (
            course_material_id TEXT PRIMARY KEY,
            title TEXT NOT NULL DEFAULT '',
            language TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS lessons (
            lesson_id TEXT PRIMARY KEY,
            session_number INTEGER NOT NULL CHECK(session_number >= 1),
            title TEXT NOT NULL DEFAULT '',
            course_material_id TEXT NOT NULL REFERENCES course_materials(course_material_id)
        );

        CREATE TABLE IF NOT EXISTS videos (
            video_id TEXT PRIMARY KEY,
            lesson_id TEXT NOT NULL REFERENCES lessons(lesson_id) ON DELETE CASCADE,
            title TEXT NOT NULL DEFAULT '',
            video_order INTEGER NOT NULL DEFAULT 0
        );

        -- At most one quiz per lesson
        CREATE TABLE IF NOT EXISTS quizzes (
            quiz_id TEXT PRIMARY KEY,
            lesson_id TEXT UNIQUE REFERENCES lessons(lesson_id) ON DELETE CASCADE,
            title TEXT NOT NULL DEFAULT '',
            description TEXT NOT NULL DEFAULT '',
            passing_score INTEGER NOT NULL DEFAULT 100
        );

        CREATE TABLE IF NOT EXISTS questions (
            question_id TEXT PRIMARY KEY,
            quiz_id TEXT NOT NULL REFERENCES quizzes(quiz_id) ON DELETE CASCADE,
            question_type TEXT NOT NULL CHECK(question_type IN ('single_choice', 'multiple_choice', 'fill_in')),
            question TEXT NOT NULL DEFAULT '',
            options TEXT NOT NULL DEFAULT '[]',
            correct_answer TEXT NOT NULL,
            explanation TEXT NOT NULL DEFAULT '',
            points INTEGER NOT NULL DEFAULT 1,
            question_order INTEGER NOT NULL DEFAULT 0
        );

        -- Completion facts
        CREATE TABLE IF NOT EXISTS slide_reads (
            student_id TEXT NOT NULL,
            course_material_id TEXT NOT NULL,
            read_at TEXT NOT NULL DEFAULT (datetime('now')),
            PRIMARY KEY (student_id, course_material_id)
        );

        CREATE TABLE IF NOT EXISTS video_watches (
            student_id TEXT NOT NULL,
            video_id TEXT NOT NULL,
            watched_at TEXT NOT NULL DEFAULT (datetime('now')),
            PRIMARY KEY (student_id, video_id)
        );

        -- Attempts: attempt_number is unique per (student, quiz)
        CREATE TABLE IF NOT EXISTS quiz_attempts (
            attempt_id TEXT PRIMARY KEY,
            quiz_id TEXT NOT NULL REFERENCES quizzes(quiz_id),
            student_id TEXT NOT NULL,
            attempt_number INTEGER NOT NULL CHECK(attempt_number >= 1),
            status TEXT NOT NULL DEFAULT 'in_progress' CHECK(status IN ('in_progress', 'passed', 'failed')),
            answers TEXT NOT NULL DEFAULT '{}',
            current_question_index INTEGER NOT NULL DEFAULT 0,
            time_remaining_seconds INTEGER NOT NULL,
            start_time TEXT NOT NULL,
            score INTEGER,
            correct_answers INTEGER,
            total_questions INTEGER,
            metadata TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            UNIQUE (student_id, quiz_id, attempt_number)
        );

        -- Indexes
        CREATE UNIQUE INDEX IF NOT EXISTS idx_attempts_one_in_progress
            ON quiz_attempts(student_id, quiz_id) WHERE status = 'in_progress';
        CREATE INDEX IF NOT EXISTS idx_attempts_status ON quiz_attempts(status);
        CREATE INDEX IF NOT EXISTS idx_lessons_material ON lessons(course_material_id);
        CREATE INDEX IF NOT EXISTS idx_videos_lesson ON videos(lesson_id);
        CREATE INDEX IF NOT EXISTS idx_questions_quiz ON questions(quiz_id);
        """
    )
