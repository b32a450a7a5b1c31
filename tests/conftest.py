"""Pytest configuration for phased testing.

Tests are organized by phase (f1, f2, ..., f5).
Only tests for the current phase and completed phases should run.
Future phase tests are automatically skipped.

Phases:
- f1: configuration and persistence
- f2: progression tracker
- f3: attempt session manager and submission evaluator
- f4: session runtime (timer, autosave, auto-submit), reconciler, course loader
- f5: Web API and CLI
"""

from pathlib import Path
from typing import Callable

import pytest

from portal.config.app_config import clear_config_cache
from portal.core.attempt_session import AttemptSessionManager
from portal.core.course_loader import CourseLoadResult, load_course
from portal.core.evaluator import SubmissionEvaluator
from portal.core.progression import ProgressionTracker
from portal.db import content_repository
from portal.db.database import init_db

# Current implementation phase
CURRENT_PHASE = 5

SAMPLE_COURSE = Path(__file__).parent.parent / "data" / "courses" / "sample_course.yaml"

# Correct answers for the sample course quizzes
JAVA_01_CORRECT = {"quiz-java-01-q1": 1, "quiz-java-01-q2": "final"}
JAVA_02_CORRECT = {"quiz-java-02-q1": [0, 2], "quiz-java-02-q2": 0}


def pytest_collection_modifyitems(config, items):
    """Skip tests from phases that haven't been implemented yet."""
    for item in items:
        # Extract phase from path (tests/f2/... -> 2)
        parts = item.fspath.strpath.split("/")
        for part in parts:
            if part.startswith("f") and part[1:].isdigit():
                test_phase = int(part[1:])
                if test_phase > CURRENT_PHASE:
                    item.add_marker(
                        pytest.mark.skip(
                            reason=f"Phase F{test_phase} not yet implemented (current: F{CURRENT_PHASE})"
                        )
                    )
                break


@pytest.fixture
def portal_db(tmp_path) -> Path:
    """Fresh SQLite database for one test."""
    clear_config_cache()
    db_path = tmp_path / "db" / "portal.db"
    init_db(db_path)
    yield db_path
    clear_config_cache()


@pytest.fixture
def course(portal_db) -> CourseLoadResult:
    """Sample course loaded into the database.

    java: java-01 (2 videos, quiz), java-02 (1 video, quiz), java-03 (1 video, no quiz)
    python: python-01 (no videos, no quiz)
    """
    return load_course(SAMPLE_COURSE)


@pytest.fixture
def tracker(portal_db) -> ProgressionTracker:
    return ProgressionTracker(max_attempts=3)


@pytest.fixture
def manager(tracker) -> AttemptSessionManager:
    return AttemptSessionManager(tracker=tracker, attempt_duration_seconds=900, max_attempts=3)


@pytest.fixture
def evaluator(portal_db) -> SubmissionEvaluator:
    return SubmissionEvaluator(attempt_duration_seconds=900)


@pytest.fixture
def finish_content(tracker) -> Callable[[str, str], None]:
    """Mark a lesson's slide as read and all its videos as watched."""

    def _finish(student_id: str, lesson_id: str) -> None:
        lesson = content_repository.get_lesson(lesson_id)
        tracker.mark_slide_read(student_id, lesson.course_material_id)
        for video in lesson.videos:
            tracker.mark_video_watched(student_id, video.video_id)

    return _finish


@pytest.fixture
def java_01_correct() -> dict:
    return dict(JAVA_01_CORRECT)


@pytest.fixture
def java_02_correct() -> dict:
    return dict(JAVA_02_CORRECT)
