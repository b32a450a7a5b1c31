"""Repository functions for completion facts.

Slide-read and video-watched flags are idempotent upserts; reading a
student's facts also pulls the attempt statuses so progression can be
derived from a single snapshot.
"""

from __future__ import annotations

import structlog

from portal.core.errors import NotFoundError
from portal.core.models import CompletionFacts
from portal.db.attempt_repository import list_attempt_statuses
from portal.db.database import get_db

logger = structlog.get_logger(__name__)


def mark_slide_read(student_id: str, course_material_id: str) -> None:
    """Record that the student has read a course material's slides.

    Raises:
        NotFoundError: If the course material does not exist
    """
    with get_db() as conn:
        exists = conn.execute(
            "SELECT 1 FROM course_materials WHERE course_material_id = ?",
            (course_material_id,),
        ).fetchone()
        if exists is None:
            raise NotFoundError(f"Course material '{course_material_id}' not found")

        conn.execute(
            "INSERT OR IGNORE INTO slide_reads (student_id, course_material_id) VALUES (?, ?)",
            (student_id, course_material_id),
        )

    logger.info("slide_read_marked", student_id=student_id, course_material_id=course_material_id)


def mark_video_watched(student_id: str, video_id: str) -> None:
    """Record that the student has watched a video.

    Raises:
        NotFoundError: If the video does not exist
    """
    with get_db() as conn:
        exists = conn.execute("SELECT 1 FROM videos WHERE video_id = ?", (video_id,)).fetchone()
        if exists is None:
            raise NotFoundError(f"Video '{video_id}' not found")

        conn.execute(
            "INSERT OR IGNORE INTO video_watches (student_id, video_id) VALUES (?, ?)",
            (student_id, video_id),
        )

    logger.info("video_watched_marked", student_id=student_id, video_id=video_id)


def get_completion_facts(student_id: str) -> CompletionFacts:
    """Load every completion fact recorded for a student."""
    with get_db() as conn:
        slides = conn.execute(
            "SELECT course_material_id FROM slide_reads WHERE student_id = ?", (student_id,)
        ).fetchall()
        videos = conn.execute(
            "SELECT video_id FROM video_watches WHERE student_id = ?", (student_id,)
        ).fetchall()

    return CompletionFacts(
        slides_read={r["course_material_id"] for r in slides},
        videos_watched={r["video_id"] for r in videos},
        attempt_statuses=list_attempt_statuses(student_id),
    )
