"""Route handlers for Web API (F5)."""

from portal.web.routes.health import router as health_router
from portal.web.routes.lessons import router as lessons_router
from portal.web.routes.quizzes import router as quizzes_router
from portal.web.routes.attempts import router as attempts_router
from portal.web.routes.progress import router as progress_router

__all__ = [
    "health_router",
    "lessons_router",
    "quizzes_router",
    "attempts_router",
    "progress_router",
]
