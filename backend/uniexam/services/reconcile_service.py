"""
Choose the current ProgressRecord between the local and the remote copy.

Rules, in order:
1. one side absent -> the present side wins and is copied to the absent side
2. exactly one side completed -> the completed side wins, whatever its timestamp;
   both completed -> the later last_updated is kept
3. neither completed -> the later last_updated wins
4. ties -> remote

`reconcile` is pure. The copy in rule 1 is carried out by `apply_propagation`.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..schemas.progress_schema import ProgressRecord
from .progress_store import LOCAL, REMOTE, ProgressStoreAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reconciliation:
    record: Optional[ProgressRecord]
    # "local", "remote", or None when both sides were absent
    winner: Optional[str]
    # side that lacks the record and should receive it
    propagate_to: Optional[str] = None

    @property
    def is_fresh_start(self) -> bool:
        return self.record is None


def _later(local: ProgressRecord, remote: ProgressRecord) -> Reconciliation:
    if local.last_updated > remote.last_updated:
        return Reconciliation(local, LOCAL)
    return Reconciliation(remote, REMOTE)


def reconcile(local: Optional[ProgressRecord], remote: Optional[ProgressRecord]) -> Reconciliation:
    if local is None and remote is None:
        return Reconciliation(None, None)
    if remote is None:
        return Reconciliation(local, LOCAL, propagate_to=REMOTE)
    if local is None:
        return Reconciliation(remote, REMOTE, propagate_to=LOCAL)

    if local.key != remote.key:
        raise ValueError(f"Cannot reconcile records of different keys: {local.key} vs {remote.key}")

    if local.is_completed != remote.is_completed:
        # completion is terminal; a stale in-progress copy never reverts it
        return Reconciliation(local, LOCAL) if local.is_completed else Reconciliation(remote, REMOTE)

    return _later(local, remote)


def apply_propagation(adapter: ProgressStoreAdapter, result: Reconciliation) -> None:
    """Copy the winning record to the side that lacked it. Remote copies run in the background."""
    if result.record is None or result.propagate_to is None:
        return
    record = result.record
    if result.propagate_to == LOCAL:
        logger.info("Filling local cache from remote for student_id=%s exam_id=%s", record.student_id, record.exam_id)
        adapter.write_local(record)
    else:
        logger.info("Filling remote store from local cache for student_id=%s exam_id=%s", record.student_id, record.exam_id)
        adapter.push_remote_background(record)
