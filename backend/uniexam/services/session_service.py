"""
Exam session lifecycle.

`SessionController` starts and resumes attempts and builds the student's exam
list. Each live attempt is an `ExamSession`, the single writer of its
ProgressRecord: ticks, answers, navigation, code-run results and submission
all take the session lock, read the latest snapshot from the session and
replace it with a new one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ..config import LOW_TIME_WARNING_SECONDS, SYNC_INTERVAL_SECONDS, TICK_INTERVAL_SECONDS
from ..schemas.exam_schema import ExamAvailability, ExamDefinition, ExamOverview, Student
from ..schemas.exam_session_schema import SessionView
from ..schemas.progress_schema import (
    CodeAnswer,
    ProgressKey,
    ProgressRecord,
    ProgressStatus,
    now_ms,
)
from ..schemas.question_schema import CodeExerciseQuestion
from .code_runner_service import CodeExecutor, ExecutionErrorKind, ExecutionResult
from .exam_service import ExamCatalog
from .errors import (
    AttemptAlreadyCompleted,
    ExamNotAvailable,
    InvalidAnswer,
    InvalidNavigation,
    SessionCompleted,
    SessionNotFound,
    SubmissionNotPersisted,
)
from .grading_service import grade_submission
from .progress_store import REMOTE, KeyedLocks, ProgressStoreAdapter, WriteResult
from .reconcile_service import apply_propagation, reconcile

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


@dataclass(frozen=True)
class SessionSettings:
    tick_interval: float = TICK_INTERVAL_SECONDS
    sync_interval: int = SYNC_INTERVAL_SECONDS
    low_time_warning: int = LOW_TIME_WARNING_SECONDS


def remaining_seconds(duration_minutes: int, started_at: Optional[int], now: int) -> int:
    """Seconds left, computed from the original start; negative once time is up."""
    if started_at is None:
        return duration_minutes * 60
    return duration_minutes * 60 - (now - started_at) // 1000


def format_remaining(seconds: int) -> str:
    """Format remaining time as m:ss."""
    seconds = max(0, int(seconds))
    m, s = divmod(seconds, 60)
    return f"{m}:{s:02d}"


@dataclass(frozen=True)
class TickOutcome:
    remaining: int
    synced: bool = False
    forced: bool = False


@dataclass(frozen=True)
class RunOutcome:
    question_id: str
    result: ExecutionResult
    # False when the result was discarded (code edited or session completed meanwhile)
    applied: bool


class ExamSession:
    """One student's live attempt on one exam."""

    def __init__(
        self,
        exam: ExamDefinition,
        record: ProgressRecord,
        adapter: ProgressStoreAdapter,
        executor: CodeExecutor,
        clock: Clock = now_ms,
        settings: Optional[SessionSettings] = None,
    ):
        self.exam = exam
        self._state = record
        self._adapter = adapter
        self._executor = executor
        self._clock = clock
        self.settings = settings or SessionSettings()
        self._lock = asyncio.Lock()
        self._timer_task: Optional[asyncio.Task] = None
        self._final_push: Optional[asyncio.Task] = None
        # last sync window seen by tick(); a new window triggers a background push
        self._sync_bucket: Optional[int] = None
        self.completed_by: Optional[str] = "earlier attempt" if record.is_completed else None
        # last failure of the final push, shown to the student until a resync succeeds
        self.submission_error: Optional[str] = None

    # ===== READ SIDE =====

    @property
    def state(self) -> ProgressRecord:
        return self._state

    @property
    def key(self) -> ProgressKey:
        return self._state.key

    def remaining_seconds(self, now: Optional[int] = None) -> int:
        now = self._clock() if now is None else now
        return remaining_seconds(self.exam.duration_minutes, self._state.started_at, now)

    def view(self, now: Optional[int] = None) -> SessionView:
        state = self._state
        remaining = 0 if state.is_completed else max(0, self.remaining_seconds(now))
        return SessionView(
            exam_id=state.exam_id,
            student_id=state.student_id,
            status=state.status,
            current_question_index=state.current_question_index,
            question_count=self.exam.question_count,
            answers=state.answers,
            started_at=state.started_at,
            last_updated=state.last_updated,
            remaining_seconds=remaining,
            remaining_display=format_remaining(remaining),
            low_time=not state.is_completed and remaining < self.settings.low_time_warning,
            score=state.score,
            max_score=state.max_score,
            submission_warning=self.submission_error,
        )

    # ===== STATE TRANSITIONS =====

    def _ensure_in_progress(self):
        if self._state.status != ProgressStatus.IN_PROGRESS:
            raise SessionCompleted(f"Exam {self._state.exam_id} is already submitted")

    def _commit(self, **changes) -> ProgressRecord:
        """Build the next snapshot from the current one, rescore it and make it current."""
        stamp = max(self._clock(), self._state.last_updated)
        record = self._state.evolve(last_updated=stamp, **changes)
        grade = grade_submission(self.exam, record.answers)
        record = record.evolve(score=grade.total, max_score=grade.max)
        self._state = record
        return record

    async def answer(self, question_id: str, answer) -> ProgressRecord:
        async with self._lock:
            self._ensure_in_progress()
            question = self.exam.get_question(question_id)
            if question is None:
                raise InvalidAnswer(f"Question {question_id} is not part of exam {self.exam.id}")
            if answer.kind != question.kind:
                raise InvalidAnswer(f"Question {question_id} expects a {question.kind} answer, got {answer.kind}")

            if isinstance(answer, CodeAnswer):
                # run results are only ever written by run_code; an edit invalidates them
                previous = self._state.answers.get(question_id)
                answer = previous.edited(answer.code) if isinstance(previous, CodeAnswer) else CodeAnswer(code=answer.code)

            answers = dict(self._state.answers)
            answers[question_id] = answer
            record = self._commit(answers=answers)
            await self._adapter.persist(record)
            return record

    async def navigate(self, index: int) -> ProgressRecord:
        async with self._lock:
            self._ensure_in_progress()
            if not 0 <= index < self.exam.question_count:
                raise InvalidNavigation(f"Question index {index} is out of range 0..{self.exam.question_count - 1}")
            record = self._commit(current_question_index=index)
            await self._adapter.persist(record)
            return record

    async def next_question(self) -> ProgressRecord:
        return await self.navigate(self._state.current_question_index + 1)

    async def previous_question(self) -> ProgressRecord:
        return await self.navigate(self._state.current_question_index - 1)

    async def run_code(self, question_id: str) -> RunOutcome:
        async with self._lock:
            self._ensure_in_progress()
            question = self.exam.get_question(question_id)
            if not isinstance(question, CodeExerciseQuestion):
                raise InvalidAnswer(f"Question {question_id} is not a code exercise")
            current = self._state.answers.get(question_id)
            code = current.code if isinstance(current, CodeAnswer) else ""

        # the judge may take seconds; other events keep flowing meanwhile
        try:
            result = await self._executor.execute(code, question.test_cases)
        except Exception as e:
            logger.exception("Code runner failed for question_id=%s", question_id)
            result = ExecutionResult(False, f"EXECUTION ERROR\n\n{e}", ExecutionErrorKind.RUNTIME)

        async with self._lock:
            latest = self._state.answers.get(question_id)
            latest_code = latest.code if isinstance(latest, CodeAnswer) else ""
            if self._state.is_completed or latest_code != code:
                logger.info(
                    "Discarding run result for student_id=%s exam_id=%s question_id=%s (session completed or code edited)",
                    self._state.student_id, self._state.exam_id, question_id,
                )
                return RunOutcome(question_id, result, applied=False)

            answers = dict(self._state.answers)
            answers[question_id] = CodeAnswer(
                code=code,
                last_execution_output=result.report,
                last_execution_passed=result.passed,
            )
            record = self._commit(answers=answers)
            await self._adapter.persist(record)
            return RunOutcome(question_id, result, applied=True)

    def _complete(self, trigger: str) -> ProgressRecord:
        record = self._commit(status=ProgressStatus.COMPLETED)
        self.completed_by = trigger
        # local first: a failed remote push must not let the student re-attempt
        self._adapter.write_local(record)
        logger.info(
            "Exam completed by %s for student_id=%s exam_id=%s score=%.2f/%.2f",
            trigger, record.student_id, record.exam_id, record.score, record.max_score,
        )
        return record

    async def _push_final(self, record: ProgressRecord) -> WriteResult:
        result = await self._adapter.push_remote(record)
        if result.success:
            self.submission_error = None
        else:
            self.submission_error = result.error or "remote store unavailable"
            logger.error(
                "Final submission not saved remotely for student_id=%s exam_id=%s: %s",
                record.student_id, record.exam_id, result.error,
            )
        return result

    async def submit(self) -> ProgressRecord:
        """Student-confirmed submission. A no-op on a completed session."""
        async with self._lock:
            if self._state.is_completed:
                return self._state
            record = self._complete("student")
        self.stop_timer()

        self._final_push = asyncio.ensure_future(self._push_final(record))
        result = await asyncio.shield(self._final_push)
        if not result.success:
            raise SubmissionNotPersisted(record, self.submission_error)
        return record

    async def tick(self, now: Optional[int] = None) -> TickOutcome:
        """Recompute remaining time; sync on the cadence, force submission at zero."""
        now = self._clock() if now is None else now
        async with self._lock:
            remaining = self.remaining_seconds(now)
            if self._state.status != ProgressStatus.IN_PROGRESS:
                return TickOutcome(remaining)

            if remaining > 0:
                # windows end on multiples of sync_interval, so a tick that skips one still syncs
                bucket = (remaining - 1) // self.settings.sync_interval
                if bucket != self._sync_bucket:
                    self._sync_bucket = bucket
                    self._adapter.push_remote_background(self._state)
                    return TickOutcome(remaining, synced=True)
                return TickOutcome(remaining)

            record = self._complete("timer")

        # the final push outlives a cancelled timer task; close() waits for it
        self._final_push = asyncio.ensure_future(self._push_final(record))
        self.stop_timer()
        await asyncio.shield(self._final_push)
        return TickOutcome(remaining, forced=True)

    async def resync(self) -> WriteResult:
        """Manual recovery: push the current record to the remote store and wait for the outcome."""
        record = self._state
        result = await self._adapter.push_remote(record)
        if result.success and record.is_completed:
            self.submission_error = None
        return result

    # ===== TIMER =====

    def start_timer(self):
        if self._timer_task is None or self._timer_task.done():
            self._timer_task = asyncio.ensure_future(self._run_timer())

    def stop_timer(self):
        task = self._timer_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    @property
    def timer_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def settled(self) -> bool:
        """Completed, saved remotely and with no task left running."""
        return (
            self._state.is_completed
            and self.submission_error is None
            and not self.timer_running
            and (self._final_push is None or self._final_push.done())
        )

    async def _run_timer(self):
        while self._state.status == ProgressStatus.IN_PROGRESS:
            try:
                outcome = await self.tick()
                if outcome.forced:
                    return
            except Exception:
                logger.exception("Timer tick failed for student_id=%s exam_id=%s", self._state.student_id, self._state.exam_id)
            await asyncio.sleep(self.settings.tick_interval)

    async def close(self):
        task = self._timer_task
        self.stop_timer()
        if task is not None and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._final_push is not None:
            await self._final_push


@dataclass
class SessionController:
    """Entry point for starting, resuming and listing exam attempts."""

    catalog: ExamCatalog
    adapter: ProgressStoreAdapter
    executor: CodeExecutor
    clock: Clock = now_ms
    settings: SessionSettings = field(default_factory=SessionSettings)
    _sessions: Dict[ProgressKey, ExamSession] = field(default_factory=dict, init=False, repr=False)
    _start_locks: KeyedLocks = field(default_factory=KeyedLocks, init=False, repr=False)

    def _prune(self):
        # settled sessions are answered from the progress stores from here on
        for key, session in list(self._sessions.items()):
            if session.settled:
                del self._sessions[key]

    async def _reconciled(self, student_id: str, exam_id: str) -> Optional[ProgressRecord]:
        local = self.adapter.read_local(student_id, exam_id)
        remote = await self.adapter.read_remote(student_id, exam_id)
        result = reconcile(local, remote)
        apply_propagation(self.adapter, result)
        return result.record

    async def list_exams(self, student: Student) -> List[ExamOverview]:
        self._prune()
        exams = await self.catalog.list_eligible_exams(student)
        now = self.clock()
        out = []
        for exam in exams:
            live = self._sessions.get((student.student_id, exam.id))
            record = live.state if live is not None else await self._reconciled(student.student_id, exam.id)

            if record is None or record.status == ProgressStatus.NOT_STARTED:
                availability, remaining = ExamAvailability.NOT_STARTED, None
            elif record.is_completed:
                availability, remaining = ExamAvailability.COMPLETED, None
            else:
                availability = ExamAvailability.RESUME
                remaining = max(0, remaining_seconds(exam.duration_minutes, record.started_at, now))

            out.append(ExamOverview(
                id=exam.id,
                title=exam.title,
                description=exam.description,
                duration_minutes=exam.duration_minutes,
                question_count=exam.question_count,
                availability=availability,
                score=record.score if record is not None and record.is_completed else None,
                max_score=exam.max_score,
                remaining_seconds=remaining,
            ))
        return out

    async def begin_attempt(self, student: Student, exam_id: str) -> Tuple[ExamSession, bool]:
        """
        Start or resume the student's attempt.

        Returns (session, resumed). Raises ExamNotAvailable if the exam is not
        open to the student and AttemptAlreadyCompleted if it was submitted.
        """
        key = (student.student_id, exam_id)
        # concurrent starts of one attempt must end up sharing a single session
        async with self._start_locks.hold(key):
            self._prune()
            live = self._sessions.get(key)
            if live is not None and not live.state.is_completed:
                return live, True
            return await self._open_session(student, exam_id)

    async def _open_session(self, student: Student, exam_id: str) -> Tuple[ExamSession, bool]:
        key = (student.student_id, exam_id)
        exam = await self.catalog.get_exam_definition(exam_id)
        if exam is None or not exam.is_eligible(student):
            raise ExamNotAvailable(f"Exam {exam_id} is not available")

        prior = await self._reconciled(student.student_id, exam_id)
        if prior is not None and prior.is_completed:
            raise AttemptAlreadyCompleted(f"You have already submitted exam {exam_id}")

        now = self.clock()
        resumed = prior is not None and prior.status == ProgressStatus.IN_PROGRESS
        if resumed:
            # resume on the original start time; elapsed wall-clock time counts
            last_index = max(0, exam.question_count - 1)
            record = prior
            if record.current_question_index > last_index:
                record = record.evolve(current_question_index=last_index)
            logger.info(
                "Resuming exam for student_id=%s exam_id=%s at question %d, %ds left",
                student.student_id, exam_id, record.current_question_index,
                remaining_seconds(exam.duration_minutes, record.started_at, now),
            )
            session = ExamSession(exam, record, self.adapter, self.executor, self.clock, self.settings)
        else:
            started_at = prior.started_at if prior is not None and prior.started_at is not None else now
            record = ProgressRecord(
                student_id=student.student_id,
                exam_id=exam_id,
                student_name=student.name,
                current_question_index=0,
                answers={},
                status=ProgressStatus.IN_PROGRESS,
                started_at=started_at,
                last_updated=max(now, prior.last_updated if prior is not None else 0),
                score=0.0,
                max_score=exam.max_score,
            )
            logger.info("Starting exam for student_id=%s exam_id=%s", student.student_id, exam_id)
            session = ExamSession(exam, record, self.adapter, self.executor, self.clock, self.settings)
            await self.adapter.persist(record)

        self._sessions[key] = session
        # a resumed attempt whose time already ran out is force-submitted here
        outcome = await session.tick(now)
        if not outcome.forced:
            session.start_timer()
        return session, resumed

    def get_session(self, student_id: str, exam_id: str) -> ExamSession:
        session = self._sessions.get((student_id, exam_id))
        if session is None:
            raise SessionNotFound(f"No open session for exam {exam_id}")
        return session

    async def resync(self, student_id: str, exam_id: str) -> WriteResult:
        """Push the student's current progress to the remote store, live session or not."""
        session = self._sessions.get((student_id, exam_id))
        if session is not None:
            return await session.resync()
        record = self.adapter.read_local(student_id, exam_id)
        if record is None:
            return WriteResult(REMOTE, False, "No local progress to resync")
        return await self.adapter.push_remote(record)

    async def close(self):
        for session in list(self._sessions.values()):
            await session.close()
        await self.adapter.drain()
