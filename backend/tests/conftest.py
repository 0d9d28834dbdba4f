import pytest

from uniexam.schemas.exam_schema import ExamDefinition, Student
from uniexam.schemas.question_schema import (
    CodeExerciseQuestion,
    MultipleChoiceQuestion,
    ShortAnswerQuestion,
    TestCase,
)
from uniexam.services.code_runner_service import ExecutionErrorKind, ExecutionResult
from uniexam.services.progress_store import REMOTE, ProgressStoreAdapter, WriteResult
from uniexam.services.session_service import SessionController, SessionSettings

T0 = 1_700_000_000_000


class FakeClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += int(seconds * 1000)


class MemoryCache:
    def __init__(self):
        self.records = {}
        self.writes = []

    def read(self, student_id, exam_id):
        return self.records.get((student_id, exam_id))

    def write(self, record):
        self.records[record.key] = record
        self.writes.append(record)


class MemoryRemoteStore:
    """Same acceptance rule as the SQL upsert: completed rows are final, otherwise newest wins."""

    def __init__(self):
        self.rows = {}
        self.upserts = []
        self.available = True

    async def read(self, student_id, exam_id):
        if not self.available:
            raise OSError("remote store unreachable")
        return self.rows.get((student_id, exam_id))

    async def upsert(self, record):
        if not self.available:
            return WriteResult(REMOTE, False, "remote store unreachable")
        self.upserts.append(record)
        current = self.rows.get(record.key)
        if current is None or (
            not current.is_completed and (record.is_completed or record.last_updated >= current.last_updated)
        ):
            self.rows[record.key] = record
        return WriteResult(REMOTE, True)


class FakeCatalog:
    def __init__(self, exams, students):
        self.exams = {e.id: e for e in exams}
        self.students = {s.student_id: s for s in students}

    async def list_eligible_exams(self, student):
        return [e for e in self.exams.values() if e.is_eligible(student)]

    async def get_exam_definition(self, exam_id):
        return self.exams.get(exam_id)

    async def get_student(self, student_id):
        return self.students.get(student_id)


class FakeExecutor:
    def __init__(self, passed=True):
        self.passed = passed
        self.calls = []
        # when set, execute() waits for it before answering
        self.gate = None

    async def execute(self, source_code, test_cases):
        self.calls.append(source_code)
        if self.gate is not None:
            await self.gate.wait()
        if self.passed:
            return ExecutionResult(True, "BUILD SUCCESSFUL\n\nResult: 1/1 test cases passed")
        return ExecutionResult(False, "BUILD SUCCESSFUL\n\nResult: 0/1 test cases passed", ExecutionErrorKind.MISMATCH)


def make_exam(exam_id="exam-1", duration_minutes=60, sections=("A",)):
    return ExamDefinition(
        id=exam_id,
        title="Geography and Java",
        description="Midterm",
        questions=[
            MultipleChoiceQuestion(id="q1", text="Capital of Thailand?", points=2,
                                   options=["Paris", "Bangkok", "Rome"], correct_option_index=1),
            ShortAnswerQuestion(id="q2", text="Name the capital of Thailand", points=1,
                                accepted_answers=["Bangkok", "Krung Thep"]),
            CodeExerciseQuestion(id="q3", text="Print the sum of two numbers", points=3,
                                 test_cases=[TestCase(input="2 3", output="5")]),
        ],
        duration_minutes=duration_minutes,
        assigned_sections=list(sections),
        is_active=True,
    )


STUDENT = Student(student_id="s1", name="Ada Lovelace", section="A")
OTHER_SECTION = Student(student_id="s2", name="Alan Turing", section="B")

# long tick interval: tests drive tick() themselves
TEST_SETTINGS = SessionSettings(tick_interval=3600, sync_interval=30, low_time_warning=300)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def remote():
    return MemoryRemoteStore()


@pytest.fixture
def adapter(cache, remote):
    return ProgressStoreAdapter(cache, remote)


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def catalog():
    return FakeCatalog(
        [make_exam(), make_exam("exam-short", duration_minutes=1)],
        [STUDENT, OTHER_SECTION],
    )


@pytest.fixture
def controller(catalog, adapter, executor, clock):
    return SessionController(catalog, adapter, executor, clock=clock, settings=TEST_SETTINGS)
