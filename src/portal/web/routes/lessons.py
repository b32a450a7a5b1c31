"""Lesson endpoints (F5)."""

from fastapi import APIRouter, Depends

from portal.web.schemas import LessonResponse
from portal.web.services import get_services, get_student_id

router = APIRouter(prefix="/api/lessons", tags=["lessons"])


@router.get("/{lesson_id}", response_model=LessonResponse)
async def get_lesson(lesson_id: str, student_id: str = Depends(get_student_id)) -> LessonResponse:
    """Get a lesson the student has unlocked.

    Locked lessons answer 403, unknown lessons 404.
    """
    lesson = get_services().tracker.require_unlocked(student_id, lesson_id)
    return LessonResponse(**lesson.to_dict())
