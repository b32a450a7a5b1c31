"""Lesson progression tracker.

Derives per-lesson unlock, completion, and progress percentage from
completion facts. The derivation (`unlock_status`) is a pure function;
`ProgressionTracker` adds the store lookups and recomputes on every read,
so finalizations made by other processes are visible immediately.

Rules:
- Session 1 of a track is always unlocked.
- Session N is unlocked iff session N-1 is resolved (completed, or its
  quiz attempts are exhausted without a pass).
- Completed = slide read AND every video watched AND (no quiz OR passed).
- Anything not recorded counts as not done.
"""

from __future__ import annotations

from collections import defaultdict

import structlog

from portal.config.app_config import get_quiz_config
from portal.core.errors import LockedError, NotFoundError
from portal.core.models import AttemptStatus, CompletionFacts, Lesson, LessonProgress
from portal.db import completion_repository, content_repository

logger = structlog.get_logger(__name__)

# Progress weights (percent)
SLIDE_WEIGHT = 20
VIDEOS_WEIGHT = 50
QUIZ_WEIGHT = 30
SLIDE_WEIGHT_NO_QUIZ = 40
VIDEOS_WEIGHT_NO_QUIZ = 60


def quiz_passed(quiz_id: str | None, facts: CompletionFacts) -> bool:
    if quiz_id is None:
        return False
    return AttemptStatus.PASSED in facts.attempt_statuses.get(quiz_id, [])


def attempts_exhausted(quiz_id: str | None, facts: CompletionFacts, max_attempts: int) -> bool:
    """True when the quiz was failed on every permitted attempt."""
    if quiz_id is None:
        return False
    statuses = facts.attempt_statuses.get(quiz_id, [])
    if AttemptStatus.PASSED in statuses:
        return False
    return statuses.count(AttemptStatus.FAILED) >= max_attempts


def progress_percent(
    lesson: Lesson,
    slide_read: bool,
    videos_watched: int,
    passed: bool,
) -> int:
    """Weighted progress: slide 20, videos 50, quiz 30 (40/60 without a quiz)."""
    if lesson.quiz_id is None:
        slide_weight, videos_weight, quiz_weight = SLIDE_WEIGHT_NO_QUIZ, VIDEOS_WEIGHT_NO_QUIZ, 0
    else:
        slide_weight, videos_weight, quiz_weight = SLIDE_WEIGHT, VIDEOS_WEIGHT, QUIZ_WEIGHT

    total = 0.0
    if slide_read:
        total += slide_weight
    if lesson.total_videos == 0:
        total += videos_weight
    else:
        total += videos_weight * min(videos_watched, lesson.total_videos) / lesson.total_videos
    if passed:
        total += quiz_weight

    return int(round(total))


def _lesson_progress(
    lesson: Lesson,
    facts: CompletionFacts,
    is_unlocked: bool,
    max_attempts: int,
) -> LessonProgress:
    slide_read = lesson.course_material_id in facts.slides_read
    watched = sum(1 for v in lesson.videos if v.video_id in facts.videos_watched)
    passed = quiz_passed(lesson.quiz_id, facts)
    exhausted = attempts_exhausted(lesson.quiz_id, facts, max_attempts)

    is_completed = (
        slide_read
        and watched == lesson.total_videos
        and (lesson.quiz_id is None or passed)
    )

    return LessonProgress(
        lesson=lesson,
        slide_read=slide_read,
        videos_watched=watched,
        total_videos=lesson.total_videos,
        quiz_passed=passed,
        attempts_exhausted=exhausted,
        is_completed=is_completed,
        is_unlocked=is_unlocked,
        progress_percent=progress_percent(lesson, slide_read, watched, passed),
    )


def unlock_status(
    lessons: list[Lesson],
    facts: CompletionFacts,
    max_attempts: int = 3,
) -> list[LessonProgress]:
    """Compute progress for every lesson, grouped by track.

    Output keeps the input order. Lessons whose predecessor session is
    missing from the input stay locked.

    Args:
        lessons: Lessons of one or more tracks
        facts: The student's completion facts
        max_attempts: Attempts after which a failed quiz counts as resolved

    Returns:
        One LessonProgress per input lesson
    """
    by_track: dict[str, dict[int, list[Lesson]]] = defaultdict(lambda: defaultdict(list))
    for lesson in lessons:
        by_track[lesson.track][lesson.session_number].append(lesson)

    results: dict[str, LessonProgress] = {}
    for track, sessions in by_track.items():
        resolved: dict[int, bool] = {}
        for number in sorted(sessions):
            if number == 1:
                unlocked = True
            else:
                unlocked = resolved.get(number - 1, False)

            session_resolved = True
            for lesson in sessions[number]:
                progress = _lesson_progress(lesson, facts, unlocked, max_attempts)
                results[lesson.lesson_id] = progress
                session_resolved = session_resolved and progress.is_resolved
            resolved[number] = session_resolved

    return [results[lesson.lesson_id] for lesson in lessons]


# =============================================================================
# TRACKER (store-backed)
# =============================================================================


class ProgressionTracker:
    """Derives progress from the stored lessons and completion facts.

    Holds no per-student state: every read goes back to the store.
    """

    def __init__(self, max_attempts: int | None = None):
        self._max_attempts = max_attempts

    @property
    def max_attempts(self) -> int:
        if self._max_attempts is not None:
            return self._max_attempts
        return get_quiz_config().max_attempts

    def get_lesson_unlock_status(self, student_id: str) -> list[LessonProgress]:
        """Progress of every lesson for a student."""
        lessons = content_repository.list_lessons()
        facts = completion_repository.get_completion_facts(student_id)
        status = unlock_status(lessons, facts, self.max_attempts)

        logger.debug(
            "progression_computed",
            student_id=student_id,
            lessons=len(status),
            unlocked=sum(1 for p in status if p.is_unlocked),
        )
        return status

    def get_lesson_progress(self, student_id: str, lesson_id: str) -> LessonProgress:
        """Progress of a single lesson.

        Raises:
            NotFoundError: If the lesson does not exist
        """
        for progress in self.get_lesson_unlock_status(student_id):
            if progress.lesson.lesson_id == lesson_id:
                return progress
        raise NotFoundError(f"Lesson '{lesson_id}' not found")

    def require_unlocked(self, student_id: str, lesson_id: str) -> Lesson:
        """Get a lesson the student is allowed to open.

        Raises:
            NotFoundError: If the lesson does not exist
            LockedError: If the lesson is still locked
        """
        progress = self.get_lesson_progress(student_id, lesson_id)
        if not progress.is_unlocked:
            raise LockedError(
                f"Complete session {progress.lesson.session_number - 1} to unlock this lesson",
                reason="lesson_locked",
            )
        return progress.lesson

    def mark_slide_read(self, student_id: str, course_material_id: str) -> None:
        completion_repository.mark_slide_read(student_id, course_material_id)

    def mark_video_watched(self, student_id: str, video_id: str) -> None:
        completion_repository.mark_video_watched(student_id, video_id)
