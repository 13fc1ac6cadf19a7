# ==============================================
# Tests for the Offline Change Queue
# ==============================================
#
# Tests for:
# - FIFO replay and removal on success
# - Retry counting and deferral behind a failed change
# - Durability across instances and corrupt-file recovery
#
# ==============================================

import json

import pytest

from delivery_sync.normalization.record import DeliveryStatus
from delivery_sync.offline.change_queue import DrainResult, OfflineChangeQueue
from delivery_sync.offline.pending_change import PendingChange, UpdateType


class TestEnqueue:
    """Tests for enqueue and the read-only views."""

    def test_enqueue_returns_length(self, queue):
        """Each enqueue reports the new queue length."""
        assert queue.enqueue("a", DeliveryStatus.DELIVERED) == 1
        assert queue.enqueue("b", DeliveryStatus.FAILED, "batch") == 2
        assert queue.pending_count() == 2

    def test_pending_is_a_copy(self, queue):
        """Mutating the returned list does not touch the queue."""
        queue.enqueue("a", DeliveryStatus.DELIVERED)
        view = queue.pending()
        view[0].retry_count = 99
        assert queue.pending()[0].retry_count == 0

    def test_pending_for(self, queue):
        """Changes can be listed per target."""
        queue.enqueue("a", DeliveryStatus.DELIVERED)
        queue.enqueue("b", DeliveryStatus.DELIVERED)
        queue.enqueue("a", DeliveryStatus.RETURNED)
        assert [c.new_status for c in queue.pending_for("a")] == [
            DeliveryStatus.DELIVERED, DeliveryStatus.RETURNED,
        ]

    def test_change_round_trip(self):
        """PendingChange serializes to plain JSON values."""
        change = PendingChange(
            seq=3, target_id="a", new_status=DeliveryStatus.RETURNED,
            update_type=UpdateType.BATCH, enqueued_at="2024-06-10T08:30:00+00:00",
            group_key="Dana Levi",
        )
        data = json.loads(json.dumps(change.to_dict()))
        assert PendingChange.from_dict(data) == change
        assert change.is_batch


class TestDrain:
    """Tests for drain."""

    def test_fifo_order(self, queue):
        """Changes are applied in enqueue order and removed."""
        for target in ("a", "b", "c"):
            queue.enqueue(target, DeliveryStatus.DELIVERED)
        applied = []

        result = queue.drain(lambda change: applied.append(change.target_id) or True)

        assert applied == ["a", "b", "c"]
        assert result == DrainResult(succeeded=3)
        assert queue.pending_count() == 0

    def test_empty_drain_is_noop(self, queue):
        """Nothing queued: apply_fn is never called."""
        calls = []
        result = queue.drain(lambda change: calls.append(change) or True)
        assert result == DrainResult()
        assert calls == []

    def test_failure_keeps_change_and_counts_retry(self, queue):
        """A failed change stays queued with retry_count + 1."""
        queue.enqueue("a", DeliveryStatus.DELIVERED)
        queue.enqueue("b", DeliveryStatus.DELIVERED)

        result = queue.drain(lambda change: change.target_id != "a")

        assert result == DrainResult(succeeded=1, failed=1)
        remaining = queue.pending()
        assert [c.target_id for c in remaining] == ["a"]
        assert remaining[0].retry_count == 1

    def test_exception_counts_as_failure(self, queue):
        """apply_fn raising is a failure, not a crash."""
        queue.enqueue("a", DeliveryStatus.DELIVERED)

        def boom(change):
            raise RuntimeError("remote down")

        result = queue.drain(boom)
        assert result.failed == 1
        assert queue.pending_count() == 1

    def test_later_change_for_failed_target_is_deferred(self, queue):
        """A change behind a failed one for the same target is not attempted."""
        queue.enqueue("a", DeliveryStatus.IN_PROGRESS)
        queue.enqueue("a", DeliveryStatus.DELIVERED)
        queue.enqueue("b", DeliveryStatus.DELIVERED)
        attempted = []

        def apply(change):
            attempted.append((change.target_id, change.new_status))
            return change.target_id != "a"

        result = queue.drain(apply)

        assert result == DrainResult(succeeded=1, failed=1, deferred=1)
        assert attempted == [("a", DeliveryStatus.IN_PROGRESS), ("b", DeliveryStatus.DELIVERED)]
        assert [(c.target_id, c.retry_count) for c in queue.pending()] == [("a", 1), ("a", 0)]

    def test_group_blocked_behind_failed_batch(self, queue):
        """Members of a group whose batch change failed wait too."""
        queue.enqueue("a", DeliveryStatus.DELIVERED, "batch", group_key="Dana Levi")
        queue.enqueue("c", DeliveryStatus.RETURNED, "single", group_key="Dana Levi")

        result = queue.drain(lambda change: not change.is_batch)

        assert result == DrainResult(failed=1, deferred=1)

    def test_changes_enqueued_during_drain_wait(self, queue):
        """Only changes present when the drain started are replayed."""
        queue.enqueue("a", DeliveryStatus.DELIVERED)

        def apply(change):
            queue.enqueue("late", DeliveryStatus.DELIVERED)
            return True

        result = queue.drain(apply)

        assert result.succeeded == 1
        assert [c.target_id for c in queue.pending()] == ["late"]

    def test_replay_single_entry(self, queue):
        """replay() pushes one entry by seq and leaves the others alone."""
        queue.enqueue("a", DeliveryStatus.DELIVERED)
        change = queue.append("b", DeliveryStatus.RETURNED, group_key="Avi Cohen")
        assert change.seq == 2 and change.group_key == "Avi Cohen"

        seen = []
        assert queue.replay(change.seq, lambda c: seen.append(c.target_id) or True)

        assert seen == ["b"]
        assert [c.target_id for c in queue.pending()] == ["a"]
        assert not queue.replay(change.seq, lambda c: True)

    def test_replay_failure_keeps_entry(self, queue):
        """A failed or raising replay counts a retry."""
        change = queue.append("a", DeliveryStatus.DELIVERED)

        def boom(c):
            raise RuntimeError("lost connection")

        assert not queue.replay(change.seq, boom)
        assert queue.pending()[0].retry_count == 1

    def test_clear(self, queue):
        """clear() empties the queue."""
        queue.enqueue("a", DeliveryStatus.DELIVERED)
        queue.clear()
        assert queue.pending_count() == 0


class TestDurability:
    """Tests for persistence of the queue file."""

    def test_survives_restart(self, tmp_path):
        """A new instance sees the same changes, order and sequence."""
        path = tmp_path / "queue.json"
        first = OfflineChangeQueue(path)
        first.enqueue("a", DeliveryStatus.DELIVERED)
        first.enqueue("b", DeliveryStatus.FAILED, UpdateType.BATCH, group_key="Avi Cohen")

        second = OfflineChangeQueue(path)
        pending = second.pending()
        assert [c.target_id for c in pending] == ["a", "b"]
        assert pending[1].update_type is UpdateType.BATCH
        assert pending[1].group_key == "Avi Cohen"

        second.enqueue("c", DeliveryStatus.DELIVERED)
        assert [c.seq for c in second.pending()] == [1, 2, 3]

    def test_file_written_before_enqueue_returns(self, tmp_path):
        """The change is on disk as soon as enqueue returns."""
        path = tmp_path / "queue.json"
        OfflineChangeQueue(path).enqueue("a", DeliveryStatus.DELIVERED)

        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload["changes"][0]["target_id"] == "a"
        assert payload["next_seq"] == 2

    def test_corrupt_file_is_moved_aside(self, tmp_path):
        """An unreadable file is kept as .corrupt and the queue starts empty."""
        path = tmp_path / "queue.json"
        path.write_text("{not json", encoding="utf-8")

        queue = OfflineChangeQueue(path)

        assert queue.pending_count() == 0
        assert (tmp_path / "queue.json.corrupt").exists()

    def test_failed_write_queues_nothing(self, tmp_path, monkeypatch):
        """If the file cannot be written, enqueue raises and nothing is kept."""
        queue = OfflineChangeQueue(tmp_path / "queue.json")

        def fail_save():
            raise OSError("disk full")

        monkeypatch.setattr(queue, "_save", fail_save)
        with pytest.raises(OSError):
            queue.enqueue("a", DeliveryStatus.DELIVERED)
        assert queue.pending_count() == 0
