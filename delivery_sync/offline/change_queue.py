# ==============================================
# OfflineChangeQueue
# ==============================================
#
# PURPOSE:
#   Durable FIFO of status changes that the remote store has not yet
#   confirmed. Survives restarts; a change leaves the queue only when
#   its replay succeeds.
#
# WHY THIS CLASS EXISTS:
#   Couriers mark deliveries while driving through areas with no
#   signal. Every change is applied locally right away and parked here
#   until it can be pushed. Losing or reordering an entry would leave
#   the remote sheet showing an older status than the courier set.
#
# STORAGE FORMAT (queue_file, JSON):
#   {
#     "version": 1,
#     "next_seq": 4,
#     "changes": [ {seq, target_id, new_status, update_type,
#                   enqueued_at, retry_count, status_date, group_key}, ... ]
#   }
#   The file is rewritten atomically (tmp file + os.replace) on every
#   mutation, before the mutating call returns.
#
# CLASS: OfflineChangeQueue
# -------------------------
#   Methods:
#   --------
#   - enqueue(target_id, new_status, update_type, status_date="",
#             group_key="") -> int
#       Append and persist. Returns the new queue length.
#   - append(...) -> PendingChange
#       Same, returning the queued entry (with its seq).
#
#   - replay(seq, apply_fn) -> bool
#       Push one entry immediately (used for online status changes,
#       which are queued first and then replayed).
#
#   - drain(apply_fn) -> DrainResult
#       Replay entries strictly in enqueue order, one at a time.
#         success → entry removed
#         failure → retry_count += 1, entry stays
#         an entry for a target (or batch group) that already failed
#         in this pass is deferred: not attempted, retry_count unchanged
#
#   - pending_count() -> int
#   - pending() -> list[PendingChange]          (copies)
#   - pending_for(target_id) -> list[PendingChange]
#   - clear() -> None
#
# CONCURRENCY:
#   `_lock` guards the entry list and the file. `_drain_lock` allows a
#   single drain at a time. Enqueue during a drain is safe: the drain
#   works on a snapshot and removes entries by seq.
#
# ==============================================

import json
import logging
import os
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Set, Union

from .pending_change import PendingChange, UpdateType
from delivery_sync.normalization.record import DeliveryStatus

logger = logging.getLogger(__name__)

QUEUE_FORMAT_VERSION = 1


@dataclass
class DrainResult:
    """Aggregate outcome of one drain pass."""
    succeeded: int = 0
    failed: int = 0
    deferred: int = 0

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "deferred": self.deferred,
        }


class OfflineChangeQueue:
    """
    File-backed FIFO of PendingChanges.
    """

    def __init__(
        self,
        queue_file: Union[str, Path] = "metadata/pending_changes.json",
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            queue_file: JSON file holding the queue
            clock: Returns the current time (UTC now if None)
        """
        self.queue_file = Path(queue_file)
        self.queue_file.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()
        self._drain_lock = threading.Lock()
        self._changes: List[PendingChange] = []
        self._next_seq = 1
        self._load()

    # ======================================
    # Mutation
    # ======================================
    def enqueue(
        self,
        target_id: str,
        new_status: DeliveryStatus,
        update_type: Union[UpdateType, str] = UpdateType.SINGLE,
        status_date: str = "",
        group_key: str = ""
    ) -> int:
        """
        Append a change and persist it before returning.

        Returns:
            Queue length after the append

        Raises:
            OSError: the queue file could not be written (nothing is queued)
        """
        self.append(target_id, new_status, update_type, status_date, group_key)
        return self.pending_count()

    def append(
        self,
        target_id: str,
        new_status: DeliveryStatus,
        update_type: Union[UpdateType, str] = UpdateType.SINGLE,
        status_date: str = "",
        group_key: str = ""
    ) -> PendingChange:
        """Like enqueue(), but returns (a copy of) the queued entry."""
        change_type = UpdateType(update_type) if isinstance(update_type, str) else update_type
        with self._lock:
            change = PendingChange(
                seq=self._next_seq,
                target_id=target_id,
                new_status=new_status,
                update_type=change_type,
                enqueued_at=self._clock().isoformat(),
                status_date=status_date,
                group_key=group_key,
            )
            self._changes.append(change)
            self._next_seq += 1
            try:
                self._save()
            except OSError:
                self._changes.pop()
                self._next_seq -= 1
                raise
            length = len(self._changes)

        logger.debug("Queued %s %s → %s (%d pending)",
                     change_type.value, target_id, new_status.value, length)
        return replace(change)

    def replay(self, seq: int, apply_fn: Callable[[PendingChange], bool]) -> bool:
        """
        Replay a single entry now, outside of a full drain.

        Same bookkeeping as drain(): removed on success, retry_count + 1
        on failure. Returns False when the entry is gone or failed.
        """
        with self._drain_lock:
            with self._lock:
                change = next((replace(c) for c in self._changes if c.seq == seq), None)
            if change is None:
                return False
            ok = self._attempt(change, apply_fn)
            if ok:
                self._remove(seq)
            else:
                self._record_failure(seq)
            return ok

    def drain(self, apply_fn: Callable[[PendingChange], bool]) -> DrainResult:
        """
        Replay queued changes in enqueue order.

        Args:
            apply_fn: Pushes one change; returns True on confirmed success.
                      An exception counts as a failure.

        Returns:
            DrainResult with succeeded / failed / deferred counts
        """
        with self._drain_lock:
            with self._lock:
                snapshot = [replace(c) for c in self._changes]

            result = DrainResult()
            if not snapshot:
                return result

            blocked_targets: Set[str] = set()
            blocked_groups: Set[str] = set()   # groups with a failed batch change
            failed_groups: Set[str] = set()    # groups with any failed change

            for change in snapshot:
                if self._is_blocked(change, blocked_targets, blocked_groups, failed_groups):
                    result.deferred += 1
                    continue

                if self._attempt(change, apply_fn):
                    self._remove(change.seq)
                    result.succeeded += 1
                    continue

                self._record_failure(change.seq)
                result.failed += 1
                blocked_targets.add(change.target_id)
                if change.group_key:
                    failed_groups.add(change.group_key)
                    if change.is_batch:
                        blocked_groups.add(change.group_key)

        if result.failed or result.deferred:
            logger.warning("⚠ Drain: %d succeeded, %d failed, %d deferred",
                           result.succeeded, result.failed, result.deferred)
        else:
            logger.info("✓ Drain: %d changes replayed", result.succeeded)
        return result

    def clear(self) -> None:
        with self._lock:
            self._changes = []
            self._save()

    # ======================================
    # Read-only views
    # ======================================
    def pending_count(self) -> int:
        with self._lock:
            return len(self._changes)

    def pending(self) -> List[PendingChange]:
        with self._lock:
            return [replace(c) for c in self._changes]

    def pending_for(self, target_id: str) -> List[PendingChange]:
        with self._lock:
            return [replace(c) for c in self._changes if c.target_id == target_id]

    # ======================================
    # Internal
    # ======================================
    @staticmethod
    def _attempt(change: PendingChange, apply_fn: Callable[[PendingChange], bool]) -> bool:
        try:
            return bool(apply_fn(change))
        except Exception as e:
            logger.warning("⚠ Replay of change %d for %s failed: %s",
                           change.seq, change.target_id, e)
            return False

    @staticmethod
    def _is_blocked(
        change: PendingChange,
        blocked_targets: Set[str],
        blocked_groups: Set[str],
        failed_groups: Set[str]
    ) -> bool:
        if change.target_id in blocked_targets:
            return True
        if change.group_key and change.group_key in blocked_groups:
            return True
        return change.is_batch and bool(change.group_key) and change.group_key in failed_groups

    def _remove(self, seq: int) -> None:
        with self._lock:
            self._changes = [c for c in self._changes if c.seq != seq]
            self._save()

    def _record_failure(self, seq: int) -> None:
        with self._lock:
            for change in self._changes:
                if change.seq == seq:
                    change.retry_count += 1
                    break
            self._save()

    def _save(self) -> None:
        payload = {
            "version": QUEUE_FORMAT_VERSION,
            "next_seq": self._next_seq,
            "changes": [c.to_dict() for c in self._changes],
        }
        tmp_path = self.queue_file.with_name(self.queue_file.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.queue_file)

    def _load(self) -> None:
        if not self.queue_file.exists():
            return
        try:
            with open(self.queue_file, "r", encoding="utf-8") as f:
                payload = json.load(f)
            changes = [PendingChange.from_dict(c) for c in payload.get("changes", [])]
        except (ValueError, KeyError, TypeError) as e:
            # Keep the unreadable file for inspection instead of overwriting it
            corrupt_path = self.queue_file.with_name(self.queue_file.name + ".corrupt")
            os.replace(self.queue_file, corrupt_path)
            logger.error("✗ Queue file unreadable (%s); moved to %s", e, corrupt_path)
            return

        changes.sort(key=lambda c: c.seq)
        self._changes = changes
        highest = changes[-1].seq if changes else 0
        self._next_seq = max(int(payload.get("next_seq", 1)), highest + 1)
        if changes:
            logger.info("⚠ Recovered %d pending changes from %s", len(changes), self.queue_file)
