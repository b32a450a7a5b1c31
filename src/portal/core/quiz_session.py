"""Quiz session runtime: countdown, coalesced autosave, auto-submit guard.

One `QuizSession` per open attempt, driven on a single asyncio event loop.
Timer ticks, answer changes, and termination triggers are all callbacks on
that loop, so the session's in-memory state never sees parallel mutation.

Termination triggers (timeout, tab hidden, page unload) go through one
guard: the first trigger sets `finalizing`, stops the timer, flushes the
latest state, and submits. Later triggers are ignored.
"""

from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

import structlog

from portal.config.app_config import get_quiz_config
from portal.core.attempt_session import AttemptSessionManager
from portal.core.errors import PortalError, TransientNetworkError, ValidationError
from portal.core.evaluator import SubmissionEvaluator, is_answered
from portal.core.models import AttemptResult, QuizAttempt

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProgressSnapshot:
    """State persisted by an autosave write."""

    answers: dict[str, Any] = field(default_factory=dict)
    current_question_index: int = 0
    time_remaining_seconds: int = 0


class AttemptGateway(Protocol):
    """Attempt store operations used by a running session."""

    async def update_progress(self, attempt_id: str, snapshot: ProgressSnapshot) -> bool: ...

    async def submit(
        self, attempt_id: str, answers: dict[str, Any], time_remaining_seconds: int
    ) -> AttemptResult: ...

    def submit_detached(
        self, attempt_id: str, answers: dict[str, Any], time_remaining_seconds: int
    ) -> None:
        """Send a submission without waiting for (or observing) the outcome."""
        ...


# =============================================================================
# LOCAL GATEWAY
# =============================================================================


class LocalAttemptGateway:
    """AttemptGateway bound to the in-process manager and evaluator."""

    def __init__(self, manager: AttemptSessionManager, evaluator: SubmissionEvaluator):
        self._manager = manager
        self._evaluator = evaluator
        self._detached: set[asyncio.Task] = set()

    async def update_progress(self, attempt_id: str, snapshot: ProgressSnapshot) -> bool:
        try:
            return self._manager.save_progress(
                attempt_id,
                answers=snapshot.answers,
                current_question_index=snapshot.current_question_index,
                time_remaining_seconds=snapshot.time_remaining_seconds,
            )
        except sqlite3.OperationalError as e:
            raise TransientNetworkError(str(e)) from e

    async def submit(
        self, attempt_id: str, answers: dict[str, Any], time_remaining_seconds: int
    ) -> AttemptResult:
        try:
            return self._evaluator.submit(attempt_id, answers, time_remaining_seconds)
        except sqlite3.OperationalError as e:
            raise TransientNetworkError(str(e)) from e

    def submit_detached(
        self, attempt_id: str, answers: dict[str, Any], time_remaining_seconds: int
    ) -> None:
        task = asyncio.get_running_loop().create_task(
            self.submit(attempt_id, answers, time_remaining_seconds)
        )
        self._detached.add(task)
        task.add_done_callback(self._on_detached_done)

    def _on_detached_done(self, task: asyncio.Task) -> None:
        self._detached.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("detached_submit_failed", error=str(error))

    async def drain(self) -> None:
        """Wait for outstanding detached submissions (shutdown and tests)."""
        if self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)


# =============================================================================
# AUTOSAVE BUFFER
# =============================================================================


class AutosaveBuffer:
    """Coalescing write buffer.

    `schedule()` replaces the pending snapshot and restarts the delay, so a
    burst of changes produces one write carrying the latest state. Writes
    are serialized; failures are logged and left to the next write.
    """

    def __init__(
        self,
        write: Callable[[ProgressSnapshot], Awaitable[bool]],
        delay_seconds: float,
        attempt_id: str = "",
    ):
        self._write_fn = write
        self._delay = delay_seconds
        self._attempt_id = attempt_id
        self._pending: ProgressSnapshot | None = None
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._closed = False
        self.writes = 0
        self.failures = 0

    @property
    def pending(self) -> ProgressSnapshot | None:
        return self._pending

    def schedule(self, snapshot: ProgressSnapshot) -> None:
        if self._closed:
            return
        self._pending = snapshot
        if self._handle is not None:
            self._handle.cancel()
        self._handle = asyncio.get_running_loop().call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        snapshot, self._pending = self._pending, None
        if snapshot is not None:
            self._spawn(snapshot)

    def _spawn(self, snapshot: ProgressSnapshot) -> None:
        task = asyncio.get_running_loop().create_task(self._write(snapshot))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _write(self, snapshot: ProgressSnapshot) -> bool:
        async with self._lock:
            try:
                written = await self._write_fn(snapshot)
            except PortalError as e:
                self.failures += 1
                logger.warning(
                    "autosave_failed",
                    attempt_id=self._attempt_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return False
            self.writes += 1
            logger.debug(
                "autosave_written",
                attempt_id=self._attempt_id,
                time_remaining_seconds=snapshot.time_remaining_seconds,
                written=written,
            )
            return written

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def flush(self, snapshot: ProgressSnapshot | None = None) -> bool:
        """Write now, skipping the coalescing delay.

        Args:
            snapshot: State to write; defaults to the pending snapshot
        """
        self._cancel_timer()
        snapshot = snapshot or self._pending
        self._pending = None
        if snapshot is None:
            return False
        return await self._write(snapshot)

    def flush_nowait(self, snapshot: ProgressSnapshot | None = None) -> None:
        """Start an immediate write without awaiting it."""
        self._cancel_timer()
        snapshot = snapshot or self._pending
        self._pending = None
        if snapshot is not None:
            self._spawn(snapshot)

    def close(self) -> None:
        """Drop any pending write and refuse new ones."""
        self._cancel_timer()
        self._pending = None
        self._closed = True

    async def wait_idle(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# =============================================================================
# SESSION
# =============================================================================


class QuizSession:
    """Client-side state of one open attempt."""

    def __init__(
        self,
        attempt: QuizAttempt,
        gateway: AttemptGateway,
        tick_interval_seconds: float | None = None,
        autosave_delay_seconds: float | None = None,
    ):
        config = get_quiz_config()
        self.attempt = attempt
        self.gateway = gateway
        self.tick_interval = (
            tick_interval_seconds if tick_interval_seconds is not None else config.tick_interval_seconds
        )

        # Resume exactly what was last persisted
        self.answers: dict[str, Any] = dict(attempt.answers)
        self.current_question_index = attempt.current_question_index
        self.time_remaining = attempt.time_remaining_seconds

        self.finalizing = attempt.is_terminal
        self.result: AttemptResult | None = None
        self.finalize_trigger: str | None = None
        self.ticks = 0

        self._question_ids = attempt.question_ids
        self._timer_task: asyncio.Task | None = None
        self._autosave = AutosaveBuffer(
            self._persist,
            autosave_delay_seconds
            if autosave_delay_seconds is not None
            else config.autosave_delay_seconds,
            attempt_id=attempt.attempt_id,
        )

    @property
    def attempt_id(self) -> str:
        return self.attempt.attempt_id

    @property
    def autosave(self) -> AutosaveBuffer:
        return self._autosave

    @property
    def timer_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            answers=dict(self.answers),
            current_question_index=self.current_question_index,
            time_remaining_seconds=self.time_remaining,
        )

    async def _persist(self, snapshot: ProgressSnapshot) -> bool:
        return await self.gateway.update_progress(self.attempt_id, snapshot)

    # -------------------------------------------------------------------------
    # Timer
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the countdown (no-op once finalizing or already running)."""
        if self.finalizing or self.timer_running:
            return
        self._timer_task = asyncio.get_running_loop().create_task(self._run_timer())
        logger.info(
            "session_started",
            attempt_id=self.attempt_id,
            time_remaining_seconds=self.time_remaining,
            answered=len(self.answers),
        )

    async def _run_timer(self) -> None:
        while not self.finalizing:
            if self.time_remaining <= 0:
                await self.on_timeout()
                return
            await asyncio.sleep(self.tick_interval)
            if self.finalizing:
                return
            self.time_remaining -= 1
            self.ticks += 1
            self._autosave.schedule(self.snapshot())

    def _stop_timer(self) -> None:
        task = self._timer_task
        self._timer_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    # -------------------------------------------------------------------------
    # Student input
    # -------------------------------------------------------------------------

    def answer(self, question_id: str, value: Any) -> bool:
        """Record an answer; ignored once finalizing.

        Raises:
            ValidationError: If the question is not part of the attempt
        """
        if self.finalizing:
            logger.debug("answer_ignored_finalizing", attempt_id=self.attempt_id)
            return False
        if question_id not in self._question_ids:
            raise ValidationError(f"Unknown question id: {question_id}")
        self.answers[question_id] = value
        self._autosave.schedule(self.snapshot())
        return True

    def navigate(self, index: int) -> bool:
        """Move to another question; ignored once finalizing.

        Raises:
            ValidationError: If the index is out of range
        """
        if self.finalizing:
            return False
        if not 0 <= index < len(self._question_ids):
            raise ValidationError(f"Question index {index} out of range")
        self.current_question_index = index
        self._autosave.schedule(self.snapshot())
        return True

    def unanswered(self) -> list[str]:
        return [qid for qid in self._question_ids if not is_answered(self.answers.get(qid))]

    # -------------------------------------------------------------------------
    # Termination
    # -------------------------------------------------------------------------

    def _begin_finalize(self, trigger: str) -> bool:
        """Flip the guard; False if another trigger got there first."""
        if self.finalizing:
            logger.info(
                "finalize_trigger_ignored",
                attempt_id=self.attempt_id,
                trigger=trigger,
                first_trigger=self.finalize_trigger,
            )
            return False
        self.finalizing = True
        self.finalize_trigger = trigger
        self._stop_timer()
        return True

    def _collect_answers(self) -> dict[str, Any]:
        return {qid: self.answers[qid] for qid in self._question_ids if qid in self.answers}

    async def _finalize(self, trigger: str) -> AttemptResult | None:
        if not self._begin_finalize(trigger):
            return self.result

        snapshot = self.snapshot()
        await self._autosave.flush(snapshot)
        self._autosave.close()

        logger.info(
            "session_submitting",
            attempt_id=self.attempt_id,
            trigger=trigger,
            answered=len(snapshot.answers),
            time_remaining_seconds=self.time_remaining,
        )
        try:
            self.result = await self.gateway.submit(
                self.attempt_id, self._collect_answers(), self.time_remaining
            )
        except TransientNetworkError as e:
            logger.error(
                "session_submit_failed",
                attempt_id=self.attempt_id,
                trigger=trigger,
                error=str(e),
            )
            raise
        return self.result

    async def on_timeout(self) -> AttemptResult | None:
        """Countdown reached zero."""
        self.time_remaining = 0
        return await self._finalize("timeout")

    async def on_hidden(self) -> AttemptResult | None:
        """The page became hidden (tab switch, minimize)."""
        return await self._finalize("hidden")

    def on_unload(self) -> None:
        """The page is being torn down.

        Nothing can be awaited here: the flush and the submission are both
        sent detached and their outcome is not observed.
        """
        if not self._begin_finalize("unload"):
            return
        self._autosave.flush_nowait(self.snapshot())
        self._autosave.close()
        self.gateway.submit_detached(self.attempt_id, self._collect_answers(), self.time_remaining)
        logger.info(
            "session_submitted_detached",
            attempt_id=self.attempt_id,
            answered=len(self.answers),
        )

    async def submit_manual(self) -> AttemptResult | None:
        """Student-initiated submission; every question must be answered.

        Raises:
            ValidationError: If questions are unanswered (nothing changes)
        """
        if self.finalizing:
            return self.result
        missing = self.unanswered()
        if missing:
            raise ValidationError(
                f"{len(missing)} question(s) unanswered",
                missing_question_ids=missing,
            )
        return await self._finalize("manual")

    async def close(self) -> None:
        """Stop the timer and wait for in-flight writes (no submission)."""
        task = self._timer_task
        self._stop_timer()
        if task is not None and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._autosave.wait_idle()
