"""Progress endpoints (F5)."""

from fastapi import APIRouter, Depends, status

from portal.core.models import LessonProgress
from portal.web.schemas import (
    LessonProgressResponse,
    LessonResponse,
    SlideReadRequest,
    VideoWatchedRequest,
)
from portal.web.services import get_services, get_student_id

router = APIRouter(prefix="/api/progress", tags=["progress"])


def _to_response(progress: LessonProgress) -> LessonProgressResponse:
    data = progress.to_dict()
    data["lesson"] = LessonResponse(**data["lesson"])
    return LessonProgressResponse(**data)


@router.get("/lessons/unlock-status", response_model=list[LessonProgressResponse])
async def get_unlock_status(student_id: str = Depends(get_student_id)) -> list[LessonProgressResponse]:
    """Unlock, completion, and progress of every lesson."""
    statuses = get_services().tracker.get_lesson_unlock_status(student_id)
    return [_to_response(p) for p in statuses]


@router.get("/lesson/{lesson_id}", response_model=LessonProgressResponse)
async def get_lesson_progress(
    lesson_id: str, student_id: str = Depends(get_student_id)
) -> LessonProgressResponse:
    """Progress of a single lesson."""
    return _to_response(get_services().tracker.get_lesson_progress(student_id, lesson_id))


@router.post("/slide/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_slide_read(request: SlideReadRequest, student_id: str = Depends(get_student_id)) -> None:
    """Mark a course material's slides as read."""
    get_services().tracker.mark_slide_read(student_id, request.course_material_id)


@router.post("/video/watched", status_code=status.HTTP_204_NO_CONTENT)
async def mark_video_watched(
    request: VideoWatchedRequest, student_id: str = Depends(get_student_id)
) -> None:
    """Mark a video as watched."""
    get_services().tracker.mark_video_watched(student_id, request.video_id)
