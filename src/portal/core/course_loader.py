"""Course content loader.

Reads a YAML course description and writes lessons, course materials,
videos, and quizzes into the content tables. Content authoring itself is
external; this is how authored content reaches the portal.

Expected structure:

    lessons:
      - lesson_id: java-01
        session_number: 1
        track: java
        title: Variables
        course_material: {id: cm-java-01, title: Variables slides}
        videos:
          - {id: vid-java-01-a, title: Intro}
        quiz:
          id: quiz-java-01
          passing_score: 100
          questions:
            - {id: q1, type: single_choice, question: ..., options: [...], correct_answer: 0}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from portal.config.app_config import get_quiz_config
from portal.core.models import Question, QuestionType
from portal.db import content_repository

logger = structlog.get_logger(__name__)

QUESTION_TYPES = {t.value for t in QuestionType}


class CourseLoadError(Exception):
    """Error loading course content."""

    pass


@dataclass
class CourseLoadResult:
    """Result of loading a course file."""

    lessons: int = 0
    videos: int = 0
    quizzes: int = 0
    questions: int = 0
    tracks: list[str] = field(default_factory=list)


def _validate_question(q: dict[str, Any], where: str) -> list[str]:
    errors = []
    for key in ("id", "type", "correct_answer"):
        if key not in q:
            errors.append(f"{where}: missing '{key}'")
    qtype = q.get("type")
    if qtype is not None and qtype not in QUESTION_TYPES:
        errors.append(f"{where}: unknown type '{qtype}'")
        return errors

    answer = q.get("correct_answer")
    options = q.get("options", [])
    if qtype == "single_choice":
        if not isinstance(answer, int) or isinstance(answer, bool) or not 0 <= answer < len(options):
            errors.append(f"{where}: correct_answer must be an option index")
    elif qtype == "multiple_choice":
        if not isinstance(answer, list) or not all(
            isinstance(i, int) and 0 <= i < len(options) for i in answer
        ):
            errors.append(f"{where}: correct_answer must be a list of option indices")
    elif qtype == "fill_in":
        if not isinstance(answer, str) or not answer.strip():
            errors.append(f"{where}: correct_answer must be a non-empty string")
    return errors


def validate_course(data: Any) -> list[str]:
    """Return a list of structural errors (empty when valid)."""
    if not isinstance(data, dict) or not isinstance(data.get("lessons"), list):
        return ["top level must be a mapping with a 'lessons' list"]

    errors: list[str] = []
    seen_sessions: set[tuple[str, int]] = set()
    for i, lesson in enumerate(data["lessons"]):
        where = f"lessons[{i}]"
        for key in ("lesson_id", "session_number", "track", "course_material"):
            if key not in lesson:
                errors.append(f"{where}: missing '{key}'")
        if "course_material" in lesson and "id" not in (lesson["course_material"] or {}):
            errors.append(f"{where}.course_material: missing 'id'")

        session = (lesson.get("track"), lesson.get("session_number"))
        if session in seen_sessions:
            errors.append(f"{where}: duplicate session {session[1]} in track '{session[0]}'")
        seen_sessions.add(session)

        quiz = lesson.get("quiz")
        if quiz:
            if "id" not in quiz:
                errors.append(f"{where}.quiz: missing 'id'")
            for j, q in enumerate(quiz.get("questions", [])):
                errors.extend(_validate_question(q, f"{where}.quiz.questions[{j}]"))

    return errors


def _question_from_yaml(q: dict[str, Any], position: int) -> Question:
    return Question(
        question_id=q["id"],
        question_type=QuestionType(q["type"]),
        question=q.get("question", ""),
        options=list(q.get("options", [])),
        correct_answer=q["correct_answer"],
        points=q.get("points", 1),
        order=q.get("order", position),
        explanation=q.get("explanation", ""),
    )


def load_course(path: Path) -> CourseLoadResult:
    """Load a YAML course file into the content tables.

    Args:
        path: Course YAML file

    Returns:
        CourseLoadResult with counts

    Raises:
        FileNotFoundError: If the file does not exist
        CourseLoadError: If the structure is invalid
    """
    if not path.exists():
        raise FileNotFoundError(f"Course file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    errors = validate_course(data)
    if errors:
        raise CourseLoadError("Invalid course file:\n" + "\n".join(f"  - {e}" for e in errors))

    default_passing = get_quiz_config().default_passing_score
    result = CourseLoadResult()

    for lesson in data["lessons"]:
        material = lesson["course_material"]
        content_repository.insert_course_material(
            material["id"], language=lesson["track"], title=material.get("title", "")
        )
        content_repository.insert_lesson(
            lesson["lesson_id"],
            session_number=lesson["session_number"],
            course_material_id=material["id"],
            title=lesson.get("title", ""),
        )
        result.lessons += 1
        if lesson["track"] not in result.tracks:
            result.tracks.append(lesson["track"])

        for position, video in enumerate(lesson.get("videos", [])):
            content_repository.insert_video(
                video["id"],
                lesson_id=lesson["lesson_id"],
                title=video.get("title", ""),
                order=video.get("order", position),
            )
            result.videos += 1

        quiz = lesson.get("quiz")
        if quiz:
            questions = [
                _question_from_yaml(q, position)
                for position, q in enumerate(quiz.get("questions", []))
            ]
            content_repository.insert_quiz(
                quiz["id"],
                lesson_id=lesson["lesson_id"],
                questions=questions,
                title=quiz.get("title", ""),
                description=quiz.get("description", ""),
                passing_score=quiz.get("passing_score", default_passing),
            )
            result.quizzes += 1
            result.questions += len(questions)

    logger.info(
        "course_loaded",
        path=str(path),
        lessons=result.lessons,
        quizzes=result.quizzes,
        tracks=result.tracks,
    )
    return result
