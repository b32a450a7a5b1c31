"""Core engine: progression tracking and quiz attempt lifecycle.

Modules:
- models: lessons, quizzes, attempts, derived progress
- errors: engine error taxonomy
- progression: unlock/completion/progress derivation
- attempt_session: attempt creation, resumption, autosave writes
- evaluator: scoring and exactly-once finalization
- quiz_session: countdown, coalesced autosave, auto-submit guard
- reconciler: sweep of attempts past their deadline
- course_loader: YAML course content import
"""

__all__ = [
    "models",
    "errors",
    "progression",
    "attempt_session",
    "evaluator",
    "quiz_session",
    "reconciler",
    "course_loader",
]
