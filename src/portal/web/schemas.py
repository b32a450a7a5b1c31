"""Pydantic schemas for Web API (F5).

Serialization models for lessons, progress, quizzes, and quiz attempts.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


# =============================================================================
# LESSON / PROGRESS SCHEMAS
# =============================================================================


class VideoResponse(BaseModel):
    """A lesson video."""

    video_id: str
    title: str = ""
    order: int = 0


class LessonResponse(BaseModel):
    """Response for a lesson."""

    lesson_id: str
    session_number: int
    track: str
    course_material_id: str
    title: str = ""
    videos: list[VideoResponse] = Field(default_factory=list)
    quiz_id: str | None = None


class LessonProgressResponse(BaseModel):
    """Derived progress of one lesson."""

    lesson: LessonResponse
    slide_read: bool
    videos_watched: int
    total_videos: int
    quiz_passed: bool
    attempts_exhausted: bool
    is_completed: bool
    is_unlocked: bool
    progress_percent: int


class SlideReadRequest(BaseModel):
    """Request to mark a course material as read."""

    course_material_id: str


class VideoWatchedRequest(BaseModel):
    """Request to mark a video as watched."""

    video_id: str


# =============================================================================
# QUIZ SCHEMAS
# =============================================================================


class QuestionResponse(BaseModel):
    """A question as shown to a student (no answer key)."""

    question_id: str
    type: str
    question: str
    options: list[str] = Field(default_factory=list)
    points: int = 1
    order: int = 0


class QuizResponse(BaseModel):
    """Response for a quiz."""

    quiz_id: str
    lesson_id: str | None = None
    title: str = ""
    description: str = ""
    passing_score: int
    total_questions: int
    questions: list[QuestionResponse]


# =============================================================================
# ATTEMPT SCHEMAS
# =============================================================================


class CanAttemptResponse(BaseModel):
    """Whether a new attempt may be started."""

    allowed: bool
    reason: str | None = None
    attempts_used: int
    attempts_remaining: int
    max_attempts: int


class AttemptCreateRequest(BaseModel):
    """Request to create or resume an attempt."""

    quiz_id: str


class AttemptResponse(BaseModel):
    """Response for a quiz attempt."""

    attempt_id: str
    quiz_id: str
    student_id: str
    attempt_number: int
    status: str
    answers: dict[str, Any] = Field(default_factory=dict)
    current_question_index: int = 0
    time_remaining_seconds: int
    start_time: str
    score: int | None = None
    correct_answers: int | None = None
    total_questions: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProgressUpdateRequest(BaseModel):
    """Autosave payload."""

    answers: dict[str, Any] = Field(default_factory=dict)
    current_question_index: int = Field(default=0, ge=0)
    time_remaining_seconds: int = Field(..., ge=0)


class ProgressUpdateResponse(BaseModel):
    """Whether the autosave was applied."""

    saved: bool


class SubmitRequest(BaseModel):
    """Submission payload; partial answers are accepted."""

    answers: dict[str, Any] = Field(default_factory=dict)
    time_remaining_seconds: int | None = Field(default=None, ge=0)
    manual: bool = False


class SubmitResponse(BaseModel):
    """Authoritative attempt result."""

    status: str
    score_percent: int
    correct_answers: int
    total_questions: int
    passed: bool


# =============================================================================
# HEALTH SCHEMAS
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
