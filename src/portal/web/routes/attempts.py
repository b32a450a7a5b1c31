"""Quiz attempt endpoints (F5)."""

from fastapi import APIRouter, Depends, HTTPException, status

from portal.core.models import QuizAttempt
from portal.web.schemas import (
    AttemptCreateRequest,
    AttemptResponse,
    CanAttemptResponse,
    ProgressUpdateRequest,
    ProgressUpdateResponse,
    SubmitRequest,
    SubmitResponse,
)
from portal.web.services import get_services, get_student_id

router = APIRouter(prefix="/api/quiz-attempts", tags=["quiz-attempts"])


def _to_response(attempt: QuizAttempt) -> AttemptResponse:
    # The answer key is only revealed once the attempt is finalized
    return AttemptResponse(**attempt.to_dict(include_answer_key=attempt.is_terminal))


@router.get("/quiz/{quiz_id}/can-attempt", response_model=CanAttemptResponse)
async def can_attempt(quiz_id: str, student_id: str = Depends(get_student_id)) -> CanAttemptResponse:
    """Check whether a new attempt may be started."""
    eligibility = get_services().attempts.can_attempt(student_id, quiz_id)
    return CanAttemptResponse(**eligibility.to_dict())


@router.get("/quiz/{quiz_id}/current", response_model=AttemptResponse)
async def get_current_attempt(quiz_id: str, student_id: str = Depends(get_student_id)) -> AttemptResponse:
    """Get the in-progress attempt for a quiz."""
    attempt = get_services().attempts.get_current_attempt(student_id, quiz_id)
    if attempt is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No attempt in progress for quiz '{quiz_id}'",
        )
    return _to_response(attempt)


@router.post("", response_model=AttemptResponse, status_code=status.HTTP_201_CREATED)
async def create_or_resume_attempt(
    request: AttemptCreateRequest, student_id: str = Depends(get_student_id)
) -> AttemptResponse:
    """Start a new attempt, or return the one already in progress."""
    attempt = get_services().attempts.create_or_resume_attempt(student_id, request.quiz_id)
    return _to_response(attempt)


@router.get("/lesson/{lesson_id}", response_model=list[AttemptResponse])
async def list_attempts_for_lesson(
    lesson_id: str, student_id: str = Depends(get_student_id)
) -> list[AttemptResponse]:
    """Attempt history for a lesson's quiz."""
    attempts = get_services().attempts.list_attempts_for_lesson(student_id, lesson_id)
    return [_to_response(a) for a in attempts]


@router.get("/{attempt_id}", response_model=AttemptResponse)
async def get_attempt(attempt_id: str, student_id: str = Depends(get_student_id)) -> AttemptResponse:
    """Get one of the student's attempts."""
    return _to_response(get_services().attempts.get_attempt(attempt_id, student_id))


@router.put("/{attempt_id}/progress", response_model=ProgressUpdateResponse)
async def update_progress(
    attempt_id: str,
    request: ProgressUpdateRequest,
    student_id: str = Depends(get_student_id),
) -> ProgressUpdateResponse:
    """Autosave answers, position, and remaining time.

    Writes against a finalized attempt are not applied (saved=false).
    """
    saved = get_services().attempts.save_progress(
        attempt_id,
        answers=request.answers,
        current_question_index=request.current_question_index,
        time_remaining_seconds=request.time_remaining_seconds,
        student_id=student_id,
    )
    return ProgressUpdateResponse(saved=saved)


@router.post("/{attempt_id}/submit", response_model=SubmitResponse)
async def submit_attempt(
    attempt_id: str,
    request: SubmitRequest,
    student_id: str = Depends(get_student_id),
) -> SubmitResponse:
    """Score and finalize an attempt.

    Forced submissions may be partial; `manual=true` requires every
    question to be answered. Replays return the stored result.
    """
    services = get_services()
    services.attempts.get_attempt(attempt_id, student_id)

    if request.manual:
        result = services.evaluator.submit_manual(
            attempt_id, request.answers, request.time_remaining_seconds
        )
    else:
        result = services.evaluator.submit(attempt_id, request.answers, request.time_remaining_seconds)
    return SubmitResponse(**result.to_dict())
