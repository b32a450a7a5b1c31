"""Tests for the progression tracker (F2)."""

import pytest

from portal.core.errors import LockedError, NotFoundError
from portal.core.evaluator import SubmissionEvaluator
from portal.core.models import AttemptStatus, CompletionFacts, Lesson, Video
from portal.core.progression import ProgressionTracker, progress_percent, unlock_status

P = AttemptStatus.PASSED
F = AttemptStatus.FAILED


def _lesson(n, quiz=True, videos=2, track="java"):
    lesson_id = f"{track}-{n:02d}"
    return Lesson(
        lesson_id=lesson_id,
        session_number=n,
        track=track,
        course_material_id=f"cm-{lesson_id}",
        videos=[Video(f"vid-{lesson_id}-{i}", lesson_id, order=i) for i in range(videos)],
        quiz_id=f"quiz-{lesson_id}" if quiz else None,
    )


def _done(lesson, facts, quiz_statuses=None):
    facts.slides_read.add(lesson.course_material_id)
    facts.videos_watched.update(v.video_id for v in lesson.videos)
    if quiz_statuses is not None:
        facts.attempt_statuses[lesson.quiz_id] = quiz_statuses


class TestUnlockStatus:
    def test_first_session_always_unlocked(self):
        lessons = [_lesson(1), _lesson(2)]
        status = unlock_status(lessons, CompletionFacts())

        assert status[0].is_unlocked is True
        assert status[1].is_unlocked is False
        assert all(not p.is_completed for p in status)

    def test_completed_predecessor_unlocks_next(self):
        lessons = [_lesson(1), _lesson(2), _lesson(3)]
        facts = CompletionFacts()
        _done(lessons[0], facts, [F, P])

        status = unlock_status(lessons, facts)
        assert status[0].is_completed
        assert status[1].is_unlocked
        assert not status[2].is_unlocked

    def test_passed_quiz_without_videos_does_not_complete(self):
        lessons = [_lesson(1), _lesson(2)]
        facts = CompletionFacts(
            slides_read={"cm-java-01"},
            videos_watched={"vid-java-01-0"},
            attempt_statuses={"quiz-java-01": [P]},
        )

        status = unlock_status(lessons, facts)
        assert not status[0].is_completed
        assert not status[1].is_unlocked

    def test_exhausted_attempts_resolve_lesson(self):
        """Three failed attempts unlock the next session (exhaustion policy)."""
        lessons = [_lesson(1), _lesson(2)]
        facts = CompletionFacts(attempt_statuses={"quiz-java-01": [F, F, F]})

        status = unlock_status(lessons, facts)
        assert status[0].attempts_exhausted
        assert not status[0].is_completed
        assert status[1].is_unlocked

    def test_two_failures_do_not_resolve(self):
        lessons = [_lesson(1), _lesson(2)]
        facts = CompletionFacts(attempt_statuses={"quiz-java-01": [F, F, AttemptStatus.IN_PROGRESS]})

        status = unlock_status(lessons, facts)
        assert not status[0].attempts_exhausted
        assert not status[1].is_unlocked

    def test_lesson_without_quiz_completes_on_content(self):
        lessons = [_lesson(1, quiz=False), _lesson(2)]
        facts = CompletionFacts()
        _done(lessons[0], facts)

        status = unlock_status(lessons, facts)
        assert status[0].is_completed
        assert status[0].progress_percent == 100
        assert status[1].is_unlocked

    def test_tracks_are_independent(self):
        lessons = [_lesson(1), _lesson(2), _lesson(1, track="python"), _lesson(2, track="python")]
        facts = CompletionFacts()
        _done(lessons[2], facts, [P])

        status = {p.lesson.lesson_id: p for p in unlock_status(lessons, facts)}
        assert not status["java-02"].is_unlocked
        assert status["python-02"].is_unlocked

    def test_missing_predecessor_stays_locked(self):
        lessons = [_lesson(1), _lesson(3)]
        facts = CompletionFacts()
        _done(lessons[0], facts, [P])

        status = unlock_status(lessons, facts)
        assert not status[1].is_unlocked

    def test_output_keeps_input_order(self):
        lessons = [_lesson(2), _lesson(1)]
        status = unlock_status(lessons, CompletionFacts())
        assert [p.lesson.session_number for p in status] == [2, 1]
        assert status[1].is_unlocked and not status[0].is_unlocked

    def test_unlock_iff_predecessor_resolved(self):
        """Lesson N is unlocked exactly when N-1 is completed or exhausted."""
        lessons = [_lesson(n) for n in range(1, 6)]
        facts = CompletionFacts()
        _done(lessons[0], facts, [P])
        facts.attempt_statuses["quiz-java-02"] = [F, F, F]
        _done(lessons[2], facts, [F])

        status = unlock_status(lessons, facts)
        for n in range(1, len(status)):
            assert status[n].is_unlocked == status[n - 1].is_resolved
        assert [p.is_unlocked for p in status] == [True, True, True, False, False]


class TestProgressPercent:
    @pytest.mark.parametrize(
        "slide,videos,passed,expected",
        [
            (False, 0, False, 0),
            (True, 0, False, 20),
            (True, 1, False, 45),
            (True, 2, False, 70),
            (True, 2, True, 100),
            (False, 0, True, 30),
        ],
    )
    def test_weights_with_quiz(self, slide, videos, passed, expected):
        assert progress_percent(_lesson(1), slide, videos, passed) == expected

    @pytest.mark.parametrize(
        "slide,videos,expected",
        [(False, 0, 0), (True, 0, 40), (True, 1, 70), (False, 2, 60), (True, 2, 100)],
    )
    def test_weights_without_quiz(self, slide, videos, expected):
        assert progress_percent(_lesson(1, quiz=False), slide, videos, False) == expected

    def test_uneven_video_split_rounds(self):
        lesson = _lesson(1, videos=3)
        # 20 + 50/3
        assert progress_percent(lesson, True, 1, False) == 37

    def test_exhausted_quiz_earns_no_quiz_credit(self):
        lesson = _lesson(1)
        facts = CompletionFacts(attempt_statuses={lesson.quiz_id: [F, F, F]})
        _done(lesson, facts)
        assert unlock_status([lesson], facts)[0].progress_percent == 70


class TestProgressionTracker:
    def test_reads_store(self, course, tracker):
        statuses = tracker.get_lesson_unlock_status("stu01")
        assert [p.lesson.lesson_id for p in statuses] == ["java-01", "java-02", "java-03", "python-01"]
        assert [p.is_unlocked for p in statuses] == [True, False, False, True]

    def test_marks_are_visible_on_next_read(self, course, tracker):
        assert tracker.get_lesson_progress("stu01", "java-01").progress_percent == 0
        tracker.mark_slide_read("stu01", "cm-java-01")
        assert tracker.get_lesson_progress("stu01", "java-01").progress_percent == 20

    def test_sees_writes_from_other_trackers(self, course, tracker, manager, java_01_correct):
        """Progress is derived from the store, not from what this tracker wrote."""
        assert not tracker.get_lesson_progress("stu01", "java-02").is_unlocked

        other = ProgressionTracker(max_attempts=3)
        other.mark_slide_read("stu01", "cm-java-01")
        other.mark_video_watched("stu01", "vid-java-01-a")
        other.mark_video_watched("stu01", "vid-java-01-b")
        attempt = manager.create_or_resume_attempt("stu01", "quiz-java-01")
        SubmissionEvaluator(attempt_duration_seconds=900).submit(attempt.attempt_id, java_01_correct)

        assert tracker.get_lesson_progress("stu01", "java-02").is_unlocked

    def test_python_lesson_without_content(self, course, tracker, finish_content):
        """A lesson with no videos and no quiz completes on the slide alone."""
        finish_content("stu01", "python-01")
        progress = tracker.get_lesson_progress("stu01", "python-01")
        assert progress.is_completed
        assert progress.progress_percent == 100

    def test_require_unlocked(self, course, tracker):
        assert tracker.require_unlocked("stu01", "java-01").lesson_id == "java-01"
        with pytest.raises(LockedError) as exc_info:
            tracker.require_unlocked("stu01", "java-02")
        assert exc_info.value.reason == "lesson_locked"

    def test_unknown_lesson(self, course, tracker):
        with pytest.raises(NotFoundError):
            tracker.get_lesson_progress("stu01", "nope")
