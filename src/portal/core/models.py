"""Domain models for lessons, quizzes, and quiz attempts.

Content (Lesson, Quiz, Question, Video) is authored elsewhere and is
read-only here. QuizAttempt is mutated only while in progress and is
frozen once it reaches a terminal status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class QuestionType(str, Enum):
    """Supported question types."""

    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    FILL_IN = "fill_in"


class AttemptStatus(str, Enum):
    """Lifecycle status of a quiz attempt."""

    IN_PROGRESS = "in_progress"
    PASSED = "passed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not AttemptStatus.IN_PROGRESS


# Submitted value: option index, list of option indices, or free text
AnswerValue = Any


@dataclass
class Question:
    """A single quiz question, including its answer key."""

    question_id: str
    question_type: QuestionType
    question: str
    correct_answer: int | list[int] | str
    options: list[str] = field(default_factory=list)
    points: int = 1
    order: int = 0
    explanation: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization (answer key included)."""
        return {
            "question_id": self.question_id,
            "type": self.question_type.value,
            "question": self.question,
            "options": list(self.options),
            "correct_answer": self.correct_answer,
            "points": self.points,
            "order": self.order,
            "explanation": self.explanation,
        }

    def to_public_dict(self) -> dict[str, Any]:
        """Dictionary safe to hand to a student before submission."""
        data = self.to_dict()
        del data["correct_answer"]
        del data["explanation"]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Question":
        return cls(
            question_id=data["question_id"],
            question_type=QuestionType(data["type"]),
            question=data.get("question", ""),
            correct_answer=data["correct_answer"],
            options=list(data.get("options", [])),
            points=data.get("points", 1),
            order=data.get("order", 0),
            explanation=data.get("explanation", ""),
        )


@dataclass
class Quiz:
    """A quiz attached to a lesson."""

    quiz_id: str
    lesson_id: str | None
    title: str
    questions: list[Question]
    passing_score: int = 100
    description: str = ""

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    def ordered_questions(self) -> list[Question]:
        """Questions sorted by their authored order."""
        return sorted(self.questions, key=lambda q: q.order)


@dataclass
class Video:
    """A lesson video."""

    video_id: str
    lesson_id: str
    title: str = ""
    order: int = 0


@dataclass
class Lesson:
    """A lesson: one course material, ordered videos, optional quiz."""

    lesson_id: str
    session_number: int
    track: str
    course_material_id: str
    title: str = ""
    videos: list[Video] = field(default_factory=list)
    quiz_id: str | None = None

    @property
    def total_videos(self) -> int:
        return len(self.videos)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lesson_id": self.lesson_id,
            "session_number": self.session_number,
            "track": self.track,
            "course_material_id": self.course_material_id,
            "title": self.title,
            "videos": [
                {"video_id": v.video_id, "title": v.title, "order": v.order}
                for v in self.videos
            ],
            "quiz_id": self.quiz_id,
        }


@dataclass
class QuizAttempt:
    """One timed instance of a student taking a quiz."""

    attempt_id: str
    quiz_id: str
    student_id: str
    attempt_number: int
    status: AttemptStatus
    answers: dict[str, AnswerValue]
    current_question_index: int
    time_remaining_seconds: int
    start_time: str
    metadata: dict[str, Any] = field(default_factory=dict)
    score: int | None = None
    correct_answers: int | None = None
    total_questions: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def questions(self) -> list[Question]:
        """Snapshotted question set, in order."""
        snapshot = [Question.from_dict(q) for q in self.metadata.get("questions", [])]
        return sorted(snapshot, key=lambda q: q.order)

    @property
    def question_ids(self) -> list[str]:
        return [q.question_id for q in self.questions]

    def to_dict(self, include_answer_key: bool = False) -> dict[str, Any]:
        """Convert to dictionary for API responses.

        The snapshot's answer key is only included on request; terminal
        attempts may reveal it, in-progress attempts must not.
        """
        metadata = dict(self.metadata)
        questions = self.questions
        metadata["questions"] = [
            q.to_dict() if include_answer_key else q.to_public_dict() for q in questions
        ]
        return {
            "attempt_id": self.attempt_id,
            "quiz_id": self.quiz_id,
            "student_id": self.student_id,
            "attempt_number": self.attempt_number,
            "status": self.status.value,
            "answers": dict(self.answers),
            "current_question_index": self.current_question_index,
            "time_remaining_seconds": self.time_remaining_seconds,
            "start_time": self.start_time,
            "score": self.score,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "metadata": metadata,
        }


@dataclass(frozen=True)
class AttemptResult:
    """Authoritative outcome of a finalized attempt."""

    status: AttemptStatus
    score_percent: int
    correct_answers: int
    total_questions: int

    @property
    def passed(self) -> bool:
        return self.status is AttemptStatus.PASSED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "score_percent": self.score_percent,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "passed": self.passed,
        }


@dataclass
class CompletionFacts:
    """Durable completion facts for one student.

    Anything absent is treated as not done.
    """

    slides_read: set[str] = field(default_factory=set)
    videos_watched: set[str] = field(default_factory=set)
    # quiz_id -> statuses of every attempt, in attempt order
    attempt_statuses: dict[str, list[AttemptStatus]] = field(default_factory=dict)


@dataclass
class LessonProgress:
    """Derived progress of a lesson for one student."""

    lesson: Lesson
    slide_read: bool
    videos_watched: int
    total_videos: int
    quiz_passed: bool
    attempts_exhausted: bool
    is_completed: bool
    is_unlocked: bool
    progress_percent: int

    @property
    def is_resolved(self) -> bool:
        return self.is_completed or self.attempts_exhausted

    def to_dict(self) -> dict[str, Any]:
        return {
            "lesson": self.lesson.to_dict(),
            "slide_read": self.slide_read,
            "videos_watched": self.videos_watched,
            "total_videos": self.total_videos,
            "quiz_passed": self.quiz_passed,
            "attempts_exhausted": self.attempts_exhausted,
            "is_completed": self.is_completed,
            "is_unlocked": self.is_unlocked,
            "progress_percent": self.progress_percent,
        }
