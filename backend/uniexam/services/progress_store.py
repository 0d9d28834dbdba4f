"""
Progress store adapter.

Reads and writes one ProgressRecord to the station-local cache and,
independently, to the remote store of record. Each target reports its own
success or failure; neither write depends on the other.
"""

import asyncio
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Hashable, List, Optional, Protocol, Set

from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from ..models.progress_model import StudentProgress
from ..schemas.progress_schema import ProgressRecord, ProgressStatus

logger = logging.getLogger(__name__)

LOCAL = "local"
REMOTE = "remote"


@dataclass(frozen=True)
class WriteResult:
    target: str
    success: bool
    error: Optional[str] = None


class LocalProgressCache(Protocol):
    def read(self, student_id: str, exam_id: str) -> Optional[ProgressRecord]:
        ...

    def write(self, record: ProgressRecord) -> None:
        ...


class RemoteProgressStore(Protocol):
    async def read(self, student_id: str, exam_id: str) -> Optional[ProgressRecord]:
        ...

    async def upsert(self, record: ProgressRecord) -> WriteResult:
        ...


# ===== LOCAL CACHE =====

def cache_key(student_id: str, exam_id: str) -> str:
    return f"progress__{student_id}__{exam_id}"


class FileProgressCache:
    """Key-value cache on the local disk: one JSON file per (student, exam)."""

    def __init__(self, directory):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, student_id: str, exam_id: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in cache_key(student_id, exam_id))
        return self.directory / f"{safe}.json"

    def read(self, student_id: str, exam_id: str) -> Optional[ProgressRecord]:
        path = self._path(student_id, exam_id)
        if not path.exists():
            return None
        try:
            return ProgressRecord.from_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            # undecodable or invalid entry counts as absent; the remote copy can still win reconciliation
            logger.warning("Ignoring unreadable local progress %s: %s", path, e)
            return None

    def write(self, record: ProgressRecord) -> None:
        path = self._path(record.student_id, record.exam_id)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(record.to_json())
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


# ===== REMOTE STORE =====

def _record_to_row(record: ProgressRecord) -> dict:
    data = record.model_dump(mode="json")
    return {
        "student_id": record.student_id,
        "exam_id": record.exam_id,
        "student_name": record.student_name,
        "current_question_index": record.current_question_index,
        "answers": data["answers"],
        "status": record.status,
        "started_at": record.started_at,
        "last_updated": record.last_updated,
        "score": record.score,
        "max_score": record.max_score,
    }


def _row_to_record(row: StudentProgress) -> ProgressRecord:
    return ProgressRecord.model_validate({
        "student_id": row.student_id,
        "exam_id": row.exam_id,
        "student_name": row.student_name or "",
        "current_question_index": row.current_question_index or 0,
        "answers": dict(row.answers or {}),
        "status": row.status,
        "started_at": row.started_at,
        "last_updated": row.last_updated or 0,
        "score": row.score or 0.0,
        "max_score": row.max_score or 0.0,
    })


class SqlProgressStore:
    """
    Remote store of record on the shared database.

    Upserts use the (student_id, exam_id) unique constraint as conflict key,
    so a replayed snapshot is idempotent. A completed row is never overwritten,
    and an in-progress row only by a snapshot that is at least as recent.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_maker = async_sessionmaker(engine, expire_on_commit=False)

    def _insert(self):
        if self.engine.dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert
        return insert

    async def read(self, student_id: str, exam_id: str) -> Optional[ProgressRecord]:
        async with self._session_maker() as session:
            res = await session.execute(
                select(StudentProgress).where(
                    StudentProgress.student_id == student_id,
                    StudentProgress.exam_id == exam_id,
                )
            )
            row = res.scalar_one_or_none()
            return _row_to_record(row) if row is not None else None

    async def upsert(self, record: ProgressRecord) -> WriteResult:
        values = _record_to_row(record)
        insert = self._insert()
        stmt = insert(StudentProgress).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["student_id", "exam_id"],
            set_={k: stmt.excluded[k] for k in values if k not in ("student_id", "exam_id")},
            where=(StudentProgress.status != ProgressStatus.COMPLETED) & or_(
                stmt.excluded.status == ProgressStatus.COMPLETED,
                stmt.excluded.last_updated >= StudentProgress.last_updated,
            ),
        )
        try:
            async with self._session_maker() as session:
                await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Remote upsert failed for student_id=%s exam_id=%s: %s", record.student_id, record.exam_id, e)
            return WriteResult(REMOTE, False, str(e))
        return WriteResult(REMOTE, True)


# ===== ADAPTER =====

class KeyedLocks:
    """One FIFO asyncio.Lock per key, dropped once nobody holds or waits for it."""

    def __init__(self):
        # key -> [lock, holders + waiters]
        self._entries: Dict[Hashable, List] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class PersistResult:
    local: WriteResult
    # None when the remote push was left running in the background
    remote: Optional[WriteResult] = None


class ProgressStoreAdapter:
    """
    Front for both copies of a progress record.

    Remote pushes for one key run one at a time in issuance order, so a
    background push of an older snapshot never lands after a newer one.
    """

    def __init__(self, local: LocalProgressCache, remote: RemoteProgressStore):
        self.local = local
        self.remote = remote
        self._key_locks = KeyedLocks()
        self._pending: Set[asyncio.Task] = set()

    def read_local(self, student_id: str, exam_id: str) -> Optional[ProgressRecord]:
        return self.local.read(student_id, exam_id)

    async def read_remote(self, student_id: str, exam_id: str) -> Optional[ProgressRecord]:
        """Remote copy, or None if absent or the store cannot be reached."""
        try:
            return await self.remote.read(student_id, exam_id)
        except (SQLAlchemyError, OSError, ValidationError) as e:
            logger.warning("Remote progress read failed for student_id=%s exam_id=%s: %s", student_id, exam_id, e)
            return None

    def write_local(self, record: ProgressRecord) -> WriteResult:
        try:
            self.local.write(record)
        except OSError as e:
            logger.error("Local progress write failed for student_id=%s exam_id=%s: %s", record.student_id, record.exam_id, e)
            return WriteResult(LOCAL, False, str(e))
        return WriteResult(LOCAL, True)

    async def push_remote(self, record: ProgressRecord) -> WriteResult:
        async with self._key_locks.hold(record.key):
            try:
                return await self.remote.upsert(record)
            except Exception as e:
                logger.exception("Unexpected error pushing progress for student_id=%s exam_id=%s", record.student_id, record.exam_id)
                return WriteResult(REMOTE, False, str(e))

    def push_remote_background(self, record: ProgressRecord) -> asyncio.Task:
        task = asyncio.ensure_future(self.push_remote(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def persist(self, record: ProgressRecord, wait_remote: bool = False) -> PersistResult:
        local = self.write_local(record)
        if wait_remote:
            return PersistResult(local, await self.push_remote(record))
        self.push_remote_background(record)
        return PersistResult(local)

    @property
    def pending_pushes(self) -> int:
        return len(self._pending)

    async def drain(self):
        """Wait for all background pushes started so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
