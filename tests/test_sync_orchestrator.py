# ==============================================
# Integration Tests for SyncOrchestrator
# ==============================================
#
# These tests run whole sync sessions against in-memory
# collaborators (see conftest.py).
#
# TEST CASES:
# -----------
# - Fresh sync, cache fallback, offline start
# - Mapping reuse / re-classification
# - Status changes: direct push vs offline queue
# - Reconciliation of queued changes over fetched data
# - Batch fan-out against remote group membership at replay
# - Single-flight sync, periodic re-sync, malformed-source blocking
#
# ==============================================

import threading
import time
from unittest.mock import Mock

import pytest

from delivery_sync.analysis.classifier import ColumnClassifier
from delivery_sync.analysis.mapping import AssignmentSource, SemanticField
from delivery_sync.connectivity import ConnectivityMonitor
from delivery_sync.errors import MappingIncomplete, SourceMalformed, SourceUnavailable
from delivery_sync.normalization.record import DeliveryStatus
from delivery_sync.sync_orchestrator import SyncOrchestrator, SyncState

from conftest import SHEET_ROWS, row_id


def _by_id(records):
    return {r.id: r for r in records}


class TestSync:
    """Tests for sync sessions."""

    def test_fresh_sync(self, orchestrator_factory, snapshot_store):
        """Rows are classified, normalized and cached."""
        orchestrator = orchestrator_factory()
        result = orchestrator.sync()

        assert not result.from_cache
        assert len(result.records) == 3
        assert result.mapping.detected_format == "israel_post"
        assert result.last_sync == "2024-06-10T08:30:00+00:00"
        assert result.errors == []
        assert snapshot_store.exists(orchestrator.source_key)
        assert orchestrator.get_state() is SyncState.IDLE

    def test_fetch_failure_falls_back_to_cache(self, orchestrator_factory, sheet_source):
        """A failed fetch returns the last snapshot with the error attached."""
        orchestrator = orchestrator_factory()
        fresh = orchestrator.sync()

        sheet_source.error = SourceUnavailable("timeout")
        cached = orchestrator.sync()

        assert cached.from_cache
        assert [r.id for r in cached.records] == [r.id for r in fresh.records]
        assert isinstance(cached.errors[0], SourceUnavailable)
        assert cached.last_sync == fresh.last_sync

    def test_fetch_failure_without_cache_raises(self, orchestrator_factory, sheet_source):
        """Nothing cached: the fetch error propagates."""
        sheet_source.error = SourceUnavailable("timeout")
        orchestrator = orchestrator_factory()
        with pytest.raises(SourceUnavailable):
            orchestrator.sync()
        assert orchestrator.get_state() is SyncState.IDLE

    def test_offline_without_cache_raises(self, orchestrator_factory, sheet_source):
        """Offline first run has nothing to show."""
        orchestrator = orchestrator_factory(connectivity=ConnectivityMonitor(online=False))
        with pytest.raises(SourceUnavailable):
            orchestrator.sync()
        assert sheet_source.calls == 0

    def test_offline_uses_cache(self, orchestrator_factory, sheet_source):
        """Offline with a cache never touches the source."""
        orchestrator_factory().sync()
        sheet_source.calls = 0

        offline = orchestrator_factory(connectivity=ConnectivityMonitor(online=False))
        assert len(offline.get_records()) == 3

        result = offline.sync()
        assert result.from_cache
        assert sheet_source.calls == 0

    def test_unconfigured_source(self, orchestrator_factory):
        """No sheet reference and no cache is unavailable."""
        orchestrator = orchestrator_factory(source_ref="")
        with pytest.raises(SourceUnavailable):
            orchestrator.sync()

    def test_mapping_reused_until_headers_change(self, orchestrator_factory, sheet_source):
        """Classification runs only for new header sets or on force."""
        classifier = Mock(wraps=ColumnClassifier())
        orchestrator = orchestrator_factory(classifier=classifier)

        orchestrator.sync()
        orchestrator.sync()
        assert classifier.classify.call_count == 1

        orchestrator.sync(force_refresh=True)
        assert classifier.classify.call_count == 2

        sheet_source.headers[1] = "Recipient"
        orchestrator.sync()
        assert classifier.classify.call_count == 3

    def test_mapping_reused_with_spaced_headers(self, orchestrator_factory, sheet_source):
        """Headers that clean to a different label still hit the cached mapping."""
        sheet_source.headers[0] = "Tracking  No"
        sheet_source.headers[1] = "Customer  Name"
        classifier = Mock(wraps=ColumnClassifier())
        orchestrator = orchestrator_factory(classifier=classifier)

        orchestrator.sync()
        orchestrator.sync()

        assert classifier.classify.call_count == 1

    def test_incomplete_mapping_is_reported(self, orchestrator_factory, sheet_source):
        """Unresolved required fields are attached as MappingIncomplete."""
        sheet_source.headers = ["Tracking", "Customer Name"]
        sheet_source.rows = [["RR123456789IL", "Dana Levi"]]
        result = orchestrator_factory().sync()

        incomplete = [e for e in result.errors if isinstance(e, MappingIncomplete)]
        assert incomplete and "phone" in incomplete[0].fields
        assert not result.from_cache

    def test_remote_status_overlays_sheet(self, orchestrator_factory, fake_store):
        """The store's confirmed status wins over the sheet's."""
        fake_store.rows[row_id(1)] = {"status": DeliveryStatus.DELIVERED, "status_date": "9/6/2024"}
        result = orchestrator_factory().sync()

        record = _by_id(result.records)[row_id(1)]
        assert record.status is DeliveryStatus.DELIVERED
        assert record.status_date == "9/6/2024"

    def test_store_failure_is_not_fatal(self, orchestrator_factory, fake_store):
        """A store outage keeps sheet statuses and reports the error."""
        fake_store.fail_merge = True
        result = orchestrator_factory().sync()

        assert not result.from_cache
        assert any(isinstance(e, SourceUnavailable) for e in result.errors)
        assert _by_id(result.records)[row_id(0)].status is DeliveryStatus.DELIVERED

    def test_malformed_source_blocks_auto_sync(self, orchestrator_factory, sheet_source):
        """After a malformed fetch only a manual sync retries the source."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()

        sheet_source.error = SourceMalformed("HTML page")
        assert orchestrator.sync().from_cache
        calls = sheet_source.calls

        assert orchestrator._auto_sync() is None
        assert sheet_source.calls == calls
        assert orchestrator.get_status()["auto_sync_blocked"]

        sheet_source.error = None
        assert not orchestrator.sync().from_cache
        assert orchestrator._auto_sync() is not None

    def test_single_flight(self, orchestrator_factory, sheet_source):
        """Concurrent sync calls share one fetch and one result."""
        orchestrator = orchestrator_factory()
        sheet_source.gate = threading.Event()
        results = []

        def run():
            results.append(orchestrator.sync())

        leader = threading.Thread(target=run)
        leader.start()
        assert sheet_source.started.wait(5)
        follower = threading.Thread(target=run)
        follower.start()
        time.sleep(0.2)
        sheet_source.gate.set()
        leader.join(5)
        follower.join(5)

        assert sheet_source.calls == 1
        assert len(results) == 2
        assert results[0] is results[1]

    def test_periodic_resync(self, orchestrator_factory, sheet_source):
        """start() re-syncs on the configured interval until stop()."""
        orchestrator = orchestrator_factory()
        orchestrator.start()
        deadline = time.time() + 5
        while sheet_source.calls < 2 and time.time() < deadline:
            time.sleep(0.02)
        orchestrator.stop()

        assert sheet_source.calls >= 2


class TestStatusChanges:
    """Tests for update_status, the queue and reconciliation."""

    def test_online_change_is_pushed(self, orchestrator_factory, fake_store):
        """Online with nothing queued: pushed directly."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()

        outcome = orchestrator.update_status(row_id(1), "delivered")

        assert outcome == {"status": "pushed", "affected": [row_id(1)], "pending": 0}
        assert fake_store.pushes == [(row_id(1), DeliveryStatus.DELIVERED, [row_id(1)])]
        assert _by_id(orchestrator.get_records())[row_id(1)].status is DeliveryStatus.DELIVERED

    def test_offline_change_is_queued(self, orchestrator_factory, fake_store, queue):
        """Offline: local state changes now, the push waits in the queue."""
        connectivity = ConnectivityMonitor(online=True)
        orchestrator = orchestrator_factory(connectivity=connectivity)
        orchestrator.sync()
        connectivity.set_online(False)

        outcome = orchestrator.update_status(row_id(0), DeliveryStatus.RETURNED, "batch")

        assert outcome["status"] == "queued"
        assert outcome["affected"] == [row_id(0), row_id(2)]
        assert outcome["pending"] == 1
        assert fake_store.pushes == []
        records = _by_id(orchestrator.get_records())
        assert records[row_id(2)].status is DeliveryStatus.RETURNED
        assert records[row_id(2)].status_date == "10/06/2024 08:30"
        assert queue.pending()[0].group_key == "Dana Levi"

    def test_failed_push_is_queued(self, orchestrator_factory, fake_store):
        """A push that fails online falls back to the queue."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()
        fake_store.fail_push = True

        outcome = orchestrator.update_status(row_id(1), "failed")

        assert outcome["status"] == "queued"
        assert orchestrator.pending_count() == 1

    @pytest.mark.parametrize("push_fails, expected", [(True, "queued"), (False, "pushed")])
    def test_sync_during_push_keeps_local_change(self, orchestrator_factory, fake_store,
                                                 push_fails, expected):
        """A sync that runs while the push is in flight does not revert the change."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()
        fake_store.push_gate = threading.Event()
        fake_store.fail_push = push_fails
        outcomes = []

        worker = threading.Thread(
            target=lambda: outcomes.append(orchestrator.update_status(row_id(0), "failed"))
        )
        worker.start()
        assert fake_store.push_started.wait(5)

        synced = orchestrator.sync()
        fake_store.push_gate.set()
        worker.join(5)

        assert _by_id(synced.records)[row_id(0)].status is DeliveryStatus.FAILED
        assert outcomes[0]["status"] == expected
        assert orchestrator.pending_count() == (1 if push_fails else 0)
        assert _by_id(orchestrator.get_records())[row_id(0)].status is DeliveryStatus.FAILED

    def test_unexpected_push_error_is_queued(self, orchestrator_factory, fake_store):
        """Errors outside the taxonomy still leave the change queued."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()
        fake_store.push_status = Mock(side_effect=RuntimeError("driver crashed"))

        outcome = orchestrator.update_status(row_id(1), "delivered")

        assert outcome["status"] == "queued"
        assert orchestrator.pending_count() == 1
        assert _by_id(orchestrator.get_records())[row_id(1)].status is DeliveryStatus.DELIVERED

    def test_queued_target_is_not_overtaken(self, orchestrator_factory, fake_store):
        """A later change for a queued target is queued behind it."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()
        fake_store.fail_push = True
        orchestrator.update_status(row_id(1), "failed")
        fake_store.fail_push = False

        outcome = orchestrator.update_status(row_id(1), "delivered")

        assert outcome["status"] == "queued"
        assert fake_store.pushes == []
        assert orchestrator.pending_count() == 2

    def test_queued_change_wins_over_fetch(self, orchestrator_factory, fake_store):
        """Fetched state is reconciled with pending changes."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()
        fake_store.fail_push = True
        orchestrator.update_status(row_id(1), "delivered")

        result = orchestrator.sync()

        assert fake_store.rows[row_id(1)]["status"] is DeliveryStatus.PENDING
        assert _by_id(result.records)[row_id(1)].status is DeliveryStatus.DELIVERED

    def test_local_changes_survive_restart(self, orchestrator_factory, sheet_source):
        """Queued changes and local state come back after a restart offline."""
        connectivity = ConnectivityMonitor(online=False)
        orchestrator_factory().sync()
        first = orchestrator_factory(connectivity=connectivity)
        first.update_status(row_id(1), "delivered")
        first.close()

        second = orchestrator_factory(connectivity=ConnectivityMonitor(online=False))
        assert second.pending_count() == 1
        assert _by_id(second.get_records())[row_id(1)].status is DeliveryStatus.DELIVERED
        assert _by_id(second.sync().records)[row_id(1)].status is DeliveryStatus.DELIVERED

    def test_unknown_record(self, orchestrator_factory):
        """Unknown ids and statuses are rejected before anything changes."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()
        with pytest.raises(ValueError):
            orchestrator.update_status("missing", "delivered")
        with pytest.raises(ValueError):
            orchestrator.update_status(row_id(0), "teleported")
        assert orchestrator.pending_count() == 0

    def test_drain_offline_is_noop(self, orchestrator_factory):
        """No replay while offline."""
        orchestrator = orchestrator_factory(connectivity=ConnectivityMonitor(online=False))
        result = orchestrator.drain_queue()
        assert result.to_dict() == {"succeeded": 0, "failed": 0, "deferred": 0}

    def test_reconnect_replays_batch_against_remote_group(self, orchestrator_factory, fake_store):
        """
        A batch made offline for {A, C} reaches every remote member
        of the group at replay time, including rows added since.
        """
        connectivity = ConnectivityMonitor(online=True)
        orchestrator = orchestrator_factory(connectivity=connectivity)
        orchestrator.sync()
        connectivity.set_online(False)

        outcome = orchestrator.update_status(row_id(0), "returned", "batch")
        assert outcome["affected"] == [row_id(0), row_id(2)]

        fake_store.rows["added-remotely"] = {
            "status": DeliveryStatus.PENDING,
            "status_date": "",
            "group_key": "Dana Levi",
        }
        connectivity.set_online(True)

        target, status, pushed_ids = fake_store.pushes[0]
        assert target == row_id(0)
        assert status is DeliveryStatus.RETURNED
        assert set(pushed_ids) == {row_id(0), row_id(2), "added-remotely"}
        assert fake_store.rows["added-remotely"]["status"] is DeliveryStatus.RETURNED
        assert orchestrator.pending_count() == 0

    def test_failed_replay_stays_queued(self, orchestrator_factory, fake_store, queue):
        """Replay failures keep the change with a retry count."""
        connectivity = ConnectivityMonitor(online=True)
        orchestrator = orchestrator_factory(connectivity=connectivity)
        orchestrator.sync()
        connectivity.set_online(False)
        orchestrator.update_status(row_id(1), "delivered")

        fake_store.fail_push = True
        connectivity.set_online(True)

        assert orchestrator.pending_count() == 1
        assert queue.pending()[0].retry_count == 1


class TestManualMapping:
    """Tests for apply_manual_mapping."""

    def test_override_is_used_by_next_sync(self, orchestrator_factory):
        """A manual binding sticks and the sheet is not re-classified."""
        classifier = Mock(wraps=ColumnClassifier())
        orchestrator = orchestrator_factory(classifier=classifier)
        orchestrator.sync()

        mapping = orchestrator.apply_manual_mapping(None, "assignedTo", "Status Date")
        assert mapping.assignments[SemanticField.ASSIGNED_TO].source is AssignmentSource.MANUAL

        result = orchestrator.sync()
        assert classifier.classify.call_count == 1
        assert result.mapping.column_for(SemanticField.ASSIGNED_TO) == 5
        assert result.records[0].assigned_to == SHEET_ROWS[0][5]

    def test_override_survives_forced_reclassification(self, orchestrator_factory):
        """A forced refresh keeps manual bindings."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()
        orchestrator.apply_manual_mapping(None, SemanticField.ASSIGNED_TO, 5)

        result = orchestrator.sync(force_refresh=True)
        assignment = result.mapping.assignments[SemanticField.ASSIGNED_TO]
        assert assignment.column_index == 5
        assert assignment.source is AssignmentSource.MANUAL

    def test_override_without_mapping(self, orchestrator_factory):
        """Nothing to override before the first sync."""
        orchestrator = orchestrator_factory()
        with pytest.raises(ValueError):
            orchestrator.apply_manual_mapping(None, "phone", 2)

    def test_unknown_field(self, orchestrator_factory):
        """Unknown field names are rejected."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()
        with pytest.raises(ValueError):
            orchestrator.apply_manual_mapping(None, "shoeSize", 2)


class TestStatusReport:
    """Tests for get_status / get_groups."""

    def test_status_report(self, orchestrator_factory):
        """Status reflects data and session state."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()
        status = orchestrator.get_status()

        assert status["state"] == "idle"
        assert status["records"] == 3
        assert status["groups"] == 2
        assert status["pending_changes"] == 0
        assert status["unresolved_fields"] == []

    def test_groups(self, orchestrator_factory):
        """Records are grouped by customer."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()
        groups = orchestrator.get_groups()
        assert [r.id for r in groups["Dana Levi"]] == [row_id(0), row_id(2)]

    def test_status_options_from_sheet(self, orchestrator_factory):
        """Only statuses present in the status column are offered."""
        orchestrator = orchestrator_factory()
        orchestrator.sync()

        assert orchestrator.get_status_options() == [
            {"value": "pending", "label": "ממתין"},
            {"value": "in_progress", "label": "בדרך"},
            {"value": "delivered", "label": "נמסר"},
        ]

    def test_status_options_default(self, orchestrator_factory, sheet_source):
        """Without a mapped status column all five statuses are offered."""
        orchestrator = orchestrator_factory()
        assert len(orchestrator.get_status_options()) == 5

        sheet_source.headers = ["Tracking", "Customer Name"]
        sheet_source.rows = [["RR123456789IL", "Dana Levi"]]
        orchestrator.sync()

        options = orchestrator.get_status_options()
        assert [o["value"] for o in options] == [s.value for s in DeliveryStatus]
        assert options[-1]["label"] == "הוחזר"

    def test_context_manager_closes(self, app_config, sheet_source, fake_store, queue, snapshot_store):
        """Leaving the with-block detaches from connectivity."""
        connectivity = ConnectivityMonitor(online=True)
        with SyncOrchestrator(config=app_config, source=sheet_source, store=fake_store,
                              cache=snapshot_store, queue=queue, connectivity=connectivity,
                              source_ref="sheet") as orchestrator:
            orchestrator.sync()
        connectivity.set_online(False)
        connectivity.set_online(True)
        assert sheet_source.calls == 1
