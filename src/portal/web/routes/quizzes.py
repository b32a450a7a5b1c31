"""Quiz endpoints (F5)."""

from fastapi import APIRouter, Depends

from portal.db import content_repository
from portal.web.schemas import QuestionResponse, QuizResponse
from portal.web.services import get_student_id

router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])


@router.get("/{quiz_id}", response_model=QuizResponse)
async def get_quiz(quiz_id: str, student_id: str = Depends(get_student_id)) -> QuizResponse:
    """Get a quiz for display. The answer key is never included."""
    quiz = content_repository.get_quiz(quiz_id)
    return QuizResponse(
        quiz_id=quiz.quiz_id,
        lesson_id=quiz.lesson_id,
        title=quiz.title,
        description=quiz.description,
        passing_score=quiz.passing_score,
        total_questions=quiz.total_questions,
        questions=[QuestionResponse(**q.to_public_dict()) for q in quiz.ordered_questions()],
    )
