"""Tests for the quiz session runtime: timer, autosave, auto-submit (F4)."""

import asyncio

import pytest

from portal.core.attempt_session import AttemptSessionManager
from portal.core.errors import TransientNetworkError, ValidationError
from portal.core.evaluator import SubmissionEvaluator, score_answers
from portal.core.models import AttemptStatus, Question, QuestionType, QuizAttempt
from portal.core.quiz_session import AutosaveBuffer, LocalAttemptGateway, ProgressSnapshot, QuizSession
from portal.db import attempt_repository

QUESTIONS = [
    Question("q1", QuestionType.SINGLE_CHOICE, "Pick", 1, options=["a", "b"], order=0),
    Question("q2", QuestionType.FILL_IN, "Type", "final", order=1),
]


def _attempt(**overrides) -> QuizAttempt:
    fields = dict(
        attempt_id="att-1",
        quiz_id="quiz-1",
        student_id="stu01",
        attempt_number=1,
        status=AttemptStatus.IN_PROGRESS,
        answers={},
        current_question_index=0,
        time_remaining_seconds=900,
        start_time="2026-01-01T00:00:00+00:00",
        metadata={"questions": [q.to_dict() for q in QUESTIONS], "passingScore": 100},
    )
    fields.update(overrides)
    return QuizAttempt(**fields)


class FakeGateway:
    """Records every call in order."""

    def __init__(self):
        self.events = []
        self.fail_progress = False
        self.fail_submit = False

    @property
    def progress_writes(self):
        return [payload for kind, payload in self.events if kind == "progress"]

    @property
    def submits(self):
        return [payload for kind, payload in self.events if kind == "submit"]

    @property
    def detached(self):
        return [payload for kind, payload in self.events if kind == "detached"]

    async def update_progress(self, attempt_id, snapshot):
        if self.fail_progress:
            raise TransientNetworkError("offline")
        self.events.append(("progress", snapshot))
        return True

    async def submit(self, attempt_id, answers, time_remaining_seconds):
        if self.fail_submit:
            raise TransientNetworkError("offline")
        self.events.append(("submit", (dict(answers), time_remaining_seconds)))
        return score_answers(QUESTIONS, answers, 100)

    def submit_detached(self, attempt_id, answers, time_remaining_seconds):
        self.events.append(("detached", (dict(answers), time_remaining_seconds)))


async def _wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class TestAutosaveBuffer:
    @pytest.mark.asyncio
    async def test_burst_coalesces_into_one_write(self):
        written = []

        async def write(snapshot):
            written.append(snapshot)
            return True

        buffer = AutosaveBuffer(write, delay_seconds=0.05)
        for i in range(5):
            buffer.schedule(ProgressSnapshot({"q1": i}, 0, 900 - i))

        await asyncio.sleep(0.1)
        await buffer.wait_idle()

        assert len(written) == 1
        assert written[0].answers == {"q1": 4}
        assert written[0].time_remaining_seconds == 896

    @pytest.mark.asyncio
    async def test_flush_skips_delay(self):
        written = []

        async def write(snapshot):
            written.append(snapshot)
            return True

        buffer = AutosaveBuffer(write, delay_seconds=10)
        buffer.schedule(ProgressSnapshot({"q1": 1}, 0, 10))
        assert await buffer.flush()
        assert buffer.pending is None
        assert written[0].answers == {"q1": 1}
        assert not await buffer.flush()

    @pytest.mark.asyncio
    async def test_closed_buffer_drops_writes(self):
        written = []

        async def write(snapshot):
            written.append(snapshot)
            return True

        buffer = AutosaveBuffer(write, delay_seconds=0.01)
        buffer.schedule(ProgressSnapshot({}, 0, 10))
        buffer.close()
        buffer.schedule(ProgressSnapshot({}, 0, 9))
        await asyncio.sleep(0.05)

        assert written == []

    @pytest.mark.asyncio
    async def test_failure_is_counted_not_raised(self):
        async def write(snapshot):
            raise TransientNetworkError("offline")

        buffer = AutosaveBuffer(write, delay_seconds=0.01)
        assert await buffer.flush(ProgressSnapshot({}, 0, 10)) is False
        assert buffer.failures == 1
        assert buffer.writes == 0


class TestQuizSessionState:
    @pytest.mark.asyncio
    async def test_resumes_persisted_state(self):
        attempt = _attempt(answers={"q1": 0}, current_question_index=1, time_remaining_seconds=120)
        session = QuizSession(attempt, FakeGateway(), tick_interval_seconds=1, autosave_delay_seconds=1)

        assert session.answers == {"q1": 0}
        assert session.current_question_index == 1
        assert session.time_remaining == 120
        assert not session.finalizing

    @pytest.mark.asyncio
    async def test_terminal_attempt_is_inert(self):
        gateway = FakeGateway()
        session = QuizSession(_attempt(status=AttemptStatus.FAILED), gateway, 0.01, 0.01)

        assert session.finalizing
        session.start()
        assert not session.timer_running
        assert session.answer("q1", 1) is False
        assert await session.on_hidden() is None
        assert gateway.events == []

    @pytest.mark.asyncio
    async def test_answer_and_navigate_validate(self):
        session = QuizSession(_attempt(), FakeGateway(), 1, 1)
        with pytest.raises(ValidationError):
            session.answer("q9", 1)
        with pytest.raises(ValidationError):
            session.navigate(2)
        assert session.navigate(1)
        assert session.unanswered() == ["q1", "q2"]
        await session.close()

    @pytest.mark.asyncio
    async def test_answers_autosave_with_latest_state(self):
        gateway = FakeGateway()
        session = QuizSession(_attempt(), gateway, tick_interval_seconds=1, autosave_delay_seconds=0.02)

        session.answer("q1", 0)
        session.answer("q1", 1)
        session.navigate(1)
        await asyncio.sleep(0.06)
        await session.autosave.wait_idle()

        assert len(gateway.progress_writes) == 1
        assert gateway.progress_writes[0] == ProgressSnapshot({"q1": 1}, 1, 900)
        await session.close()

    @pytest.mark.asyncio
    async def test_autosave_failure_keeps_session_running(self):
        gateway = FakeGateway()
        gateway.fail_progress = True
        session = QuizSession(_attempt(), gateway, 1, 0.01)

        session.answer("q1", 1)
        await asyncio.sleep(0.03)
        await session.autosave.wait_idle()
        assert session.autosave.failures == 1

        gateway.fail_progress = False
        session.answer("q2", "final")
        await asyncio.sleep(0.03)
        await session.autosave.wait_idle()
        assert gateway.progress_writes[-1].answers == {"q1": 1, "q2": "final"}
        await session.close()


class TestFinalization:
    @pytest.mark.asyncio
    async def test_hidden_flushes_then_submits(self):
        gateway = FakeGateway()
        session = QuizSession(_attempt(), gateway, 1, autosave_delay_seconds=10)

        session.answer("q1", 1)
        result = await session.on_hidden()

        assert [kind for kind, _ in gateway.events] == ["progress", "submit"]
        assert gateway.progress_writes[0].answers == {"q1": 1}
        assert result.score_percent == 50
        assert session.finalize_trigger == "hidden"

    @pytest.mark.asyncio
    async def test_hidden_then_unload_submits_once(self):
        gateway = FakeGateway()
        session = QuizSession(_attempt(), gateway, 1, 1)
        session.answer("q1", 1)

        await session.on_hidden()
        session.on_unload()
        await session.on_timeout()

        assert len(gateway.submits) == 1
        assert gateway.detached == []

    @pytest.mark.asyncio
    async def test_unload_first_sends_detached_only(self):
        gateway = FakeGateway()
        session = QuizSession(_attempt(time_remaining_seconds=40), gateway, 1, 1)
        session.answer("q2", "final")

        session.on_unload()
        assert await session.on_hidden() is None
        await session.autosave.wait_idle()

        assert gateway.submits == []
        assert gateway.detached == [({"q2": "final"}, 40)]
        assert gateway.progress_writes[0].answers == {"q2": "final"}

    @pytest.mark.asyncio
    async def test_simultaneous_triggers_submit_once(self):
        gateway = FakeGateway()
        session = QuizSession(_attempt(), gateway, 1, 1)

        await asyncio.gather(session.on_hidden(), session.on_timeout(), session.on_hidden())

        assert len(gateway.submits) == 1
        assert session.finalize_trigger == "hidden"

    @pytest.mark.asyncio
    async def test_input_ignored_while_finalizing(self):
        gateway = FakeGateway()
        session = QuizSession(_attempt(), gateway, 1, 1)
        await session.on_hidden()

        assert session.answer("q1", 1) is False
        assert session.navigate(1) is False
        assert session.answers == {}

    @pytest.mark.asyncio
    async def test_manual_submit_requires_all_answers(self):
        gateway = FakeGateway()
        session = QuizSession(_attempt(), gateway, 1, 1)
        session.answer("q1", 1)

        with pytest.raises(ValidationError) as exc_info:
            await session.submit_manual()
        assert exc_info.value.missing_question_ids == ["q2"]
        assert not session.finalizing
        assert gateway.submits == []

        session.answer("q2", "Final ")
        result = await session.submit_manual()
        assert result.status is AttemptStatus.PASSED
        assert session.finalize_trigger == "manual"

    @pytest.mark.asyncio
    async def test_submit_failure_propagates(self):
        gateway = FakeGateway()
        gateway.fail_submit = True
        session = QuizSession(_attempt(), gateway, 1, 1)

        with pytest.raises(TransientNetworkError):
            await session.on_hidden()
        assert session.finalizing
        assert session.result is None

    @pytest.mark.asyncio
    async def test_timer_counts_down_and_times_out(self):
        gateway = FakeGateway()
        session = QuizSession(_attempt(time_remaining_seconds=3), gateway, 0.01, 0.001)
        session.answer("q1", 1)
        session.start()

        await _wait_for(lambda: session.result is not None)

        assert session.finalize_trigger == "timeout"
        assert session.ticks == 3
        assert session.time_remaining == 0
        assert gateway.submits == [({"q1": 1}, 0)]

        await asyncio.sleep(0.05)
        assert session.ticks == 3
        assert not session.timer_running

    @pytest.mark.asyncio
    async def test_hidden_stops_timer(self):
        gateway = FakeGateway()
        session = QuizSession(_attempt(time_remaining_seconds=100), gateway, 0.01, 1)
        session.start()
        await _wait_for(lambda: session.ticks >= 2)

        await session.on_hidden()
        ticks = session.ticks
        await asyncio.sleep(0.05)

        assert session.ticks == ticks
        assert gateway.submits[0][1] == session.time_remaining


class TestLocalGateway:
    """Sessions driven against the real store."""

    @pytest.fixture
    def short_quiz(self, course, tracker):
        manager = AttemptSessionManager(tracker, attempt_duration_seconds=3, max_attempts=3)
        evaluator = SubmissionEvaluator(attempt_duration_seconds=3)
        return manager, evaluator, LocalAttemptGateway(manager, evaluator)

    @pytest.mark.asyncio
    async def test_timeout_scores_partial_answers(self, short_quiz):
        manager, _, gateway = short_quiz
        attempt = manager.create_or_resume_attempt("stu01", "quiz-java-01")
        session = QuizSession(attempt, gateway, tick_interval_seconds=0.01, autosave_delay_seconds=0.005)

        session.answer("quiz-java-01-q1", 1)
        session.start()
        await _wait_for(lambda: session.result is not None)
        await session.close()

        assert session.result.status is AttemptStatus.FAILED
        assert session.result.score_percent == 50

        stored = attempt_repository.get_attempt(attempt.attempt_id)
        assert stored.status is AttemptStatus.FAILED
        assert stored.answers == {"quiz-java-01-q1": 1}
        assert stored.time_remaining_seconds == 0
        assert stored.metadata["timeTaken"] == 3

    @pytest.mark.asyncio
    async def test_unload_finalizes_in_background(self, short_quiz):
        manager, _, gateway = short_quiz
        attempt = manager.create_or_resume_attempt("stu01", "quiz-java-01")
        session = QuizSession(attempt, gateway, tick_interval_seconds=1, autosave_delay_seconds=1)

        session.answer("quiz-java-01-q1", 1)
        session.answer("quiz-java-01-q2", "final")
        session.on_unload()
        await gateway.drain()
        await session.close()

        stored = attempt_repository.get_attempt(attempt.attempt_id)
        assert stored.status is AttemptStatus.PASSED
        assert stored.score == 100

    @pytest.mark.asyncio
    async def test_resume_after_reload(self, short_quiz):
        manager, _, gateway = short_quiz
        attempt = manager.create_or_resume_attempt("stu01", "quiz-java-01")
        first = QuizSession(attempt, gateway, tick_interval_seconds=1, autosave_delay_seconds=1)
        first.answer("quiz-java-01-q2", "final")
        first.navigate(1)
        await first.autosave.flush()
        await first.close()

        resumed = QuizSession(
            manager.create_or_resume_attempt("stu01", "quiz-java-01"),
            gateway,
            tick_interval_seconds=1,
            autosave_delay_seconds=1,
        )
        assert resumed.answers == {"quiz-java-01-q2": "final"}
        assert resumed.current_question_index == 1
