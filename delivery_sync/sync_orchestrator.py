# ==============================================
# SyncOrchestrator: Final Orchestrator
# ==============================================
#
# PURPOSE:
#   This is the MAIN CLASS that ties all topics together into one
#   sync session manager. The CLI (or any UI) talks to this class
#   only. Everything else is internal.
#
# HOW IT CONNECTS THE TOPICS:
#
#   ┌──────────────────────────────────────────────────────────┐
#   │                    SyncOrchestrator                      │
#   │                                                          │
#   │  GoogleSheetsSource.fetch_raw_rows()  (storage/)         │
#   │                 │ headers + raw rows                     │
#   │                 ▼                                        │
#   │  ┌──────────────────────────────────────────────┐        │
#   │  │ TOPIC 2: ANALYSIS                            │        │
#   │  │  cached mapping still valid? reuse :         │        │
#   │  │  ColumnClassifier.classify(prior, history)   │        │
#   │  └──────────────┬───────────────────────────────┘        │
#   │                 │ FieldMapping                           │
#   │                 ▼                                        │
#   │  ┌──────────────────────────────────────────────┐        │
#   │  │ TOPIC 1: NORMALIZATION                       │        │
#   │  │  RecordNormalizer.normalize()                │        │
#   │  └──────────────┬───────────────────────────────┘        │
#   │                 │ DeliveryRecords                        │
#   │                 ▼                                        │
#   │  MySQLDeliveryStore: upsert + overlay remote statuses    │
#   │                 │                                        │
#   │                 ▼                                        │
#   │  TOPIC 3: OfflineChangeQueue → pending changes win       │
#   │                 │                                        │
#   │                 ▼                                        │
#   │  TOPIC 4: SnapshotStore.put_snapshot()                   │
#   └──────────────────────────────────────────────────────────┘
#
# STATE MACHINE (one sync session):
#
#   IDLE → FETCHING → (success → IDLE)
#                   | (failure → USING_CACHE → IDLE)
#
#   Only one session runs at a time. A sync() call that arrives while
#   another is FETCHING waits for that session and gets its result.
#
# CLASS: SyncOrchestrator
# -----------------------
#
#   Constructor:
#   ------------
#   - __init__(config=None, source=None, store=None, cache=None,
#              queue=None, connectivity=None, classifier=None,
#              normalizer=None, clock=None, source_ref=None)
#       Collaborators not passed in are built from config.
#       The last cached snapshot is loaded into memory.
#
#   Public Methods (User-facing API):
#   ---------------------------------
#   - sync(force_refresh=False) -> SyncResult
#       Fetch → classify (if needed) → normalize → merge remote
#       statuses → reconcile with pending queue → cache.
#       Fetch failure falls back to the cached snapshot. Raises only
#       when there is nothing cached either.
#
#   - update_status(target_id, new_status, update_type="single") -> dict
#       Optimistic local change and queue entry first, then an immediate
#       replay of that entry (online and nothing older queued for the
#       target/group). A failed replay leaves it queued.
#
#   - drain_queue() -> DrainResult
#       Replay queued changes (only while online). Batch changes are
#       re-resolved against the remote group membership.
#
#   - apply_manual_mapping(source_ref, field, column_ref) -> FieldMapping
#
#   - start() / stop()
#       Periodic re-sync thread. Connectivity regained → drain, then sync.
#
#   - get_records() / get_groups() / get_mapping() /
#     pending_count() / get_state() / get_status() /
#     get_status_options()
#
#   - close(), context manager
#
# ==============================================

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from delivery_sync.config import AppConfig, get_config
from delivery_sync.connectivity import ConnectivityMonitor
from delivery_sync.errors import (
    DeliverySyncError,
    MappingIncomplete,
    MutationRejected,
    SourceMalformed,
    SourceUnavailable,
)
from delivery_sync.analysis.classifier import ColumnClassifier
from delivery_sync.analysis.mapping import ColumnRef, FieldMapping, MappingHistory, SemanticField
from delivery_sync.normalization.grouping import (
    apply_status_change,
    customer_group_key,
    group_records,
)
from delivery_sync.normalization.record import DeliveryRecord, DeliveryStatus
from delivery_sync.normalization.record_normalizer import RecordNormalizer
from delivery_sync.normalization.vocabulary import status_options
from delivery_sync.offline.change_queue import DrainResult, OfflineChangeQueue
from delivery_sync.offline.pending_change import PendingChange, UpdateType
from delivery_sync.persistence.snapshot_store import Snapshot, SnapshotStore
from delivery_sync.storage.mongo_cache import MongoSnapshotCache
from delivery_sync.storage.mysql_store import MySQLDeliveryStore
from delivery_sync.storage.sheets_source import GoogleSheetsSource

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_KEY = "default"
STATUS_DATE_FORMAT = "%d/%m/%Y %H:%M"


class SyncState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    USING_CACHE = "using_cache"


@dataclass
class SyncResult:
    """What one sync session produced."""
    records: List[DeliveryRecord]
    mapping: Optional[FieldMapping]
    last_sync: Optional[str]
    from_cache: bool = False
    errors: List[Exception] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "records": len(self.records),
            "from_cache": self.from_cache,
            "last_sync": self.last_sync,
            "detected_format": self.mapping.detected_format if self.mapping else None,
            "unresolved": [f.value for f in self.mapping.unresolved] if self.mapping else [],
            "errors": [f"{type(e).__name__}: {e}" for e in self.errors],
        }


class SyncOrchestrator:
    """
    Coordinates fetch, classification, normalization, caching and
    offline status changes for one sheet source.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        source=None,
        store=None,
        cache=None,
        queue: Optional[OfflineChangeQueue] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        classifier: Optional[ColumnClassifier] = None,
        normalizer: Optional[RecordNormalizer] = None,
        clock: Optional[Callable[[], datetime]] = None,
        source_ref: Optional[str] = None
    ):
        """
        Initialize the orchestrator with all collaborators.

        Args:
            config: Application configuration. If None, loads from environment.
            source: Remote row source (GoogleSheetsSource by default)
            store: Remote status store (MySQLDeliveryStore by default)
            cache: Snapshot cache (SnapshotStore or MongoSnapshotCache per config)
            queue: Offline change queue
            connectivity: Connectivity signal
            classifier: Column classifier
            normalizer: Record normalizer
            clock: Returns the current time (UTC now if None)
            source_ref: Sheet to sync (config.source.sheet_url if None)
        """
        self._config = config or get_config()
        cfg = self._config
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._source_ref = source_ref if source_ref is not None else cfg.source.sheet_url

        self._source = source if source is not None else GoogleSheetsSource(
            sheet_url=self._source_ref,
            default_gid=cfg.source.sheet_gid,
            timeout=cfg.source.request_timeout_seconds
        )
        self._store = store if store is not None else MySQLDeliveryStore(
            host=cfg.mysql.host,
            port=cfg.mysql.port,
            user=cfg.mysql.user,
            password=cfg.mysql.password,
            database=cfg.mysql.database
        )
        self._cache = cache if cache is not None else self._build_cache(cfg)
        self._queue = queue if queue is not None else OfflineChangeQueue(cfg.sync.queue_file, clock=self._clock)
        self._connectivity = connectivity or ConnectivityMonitor(probe_url=cfg.sync.connectivity_probe_url)
        self._classifier = classifier or ColumnClassifier(
            thresholds=cfg.thresholds,
            sample_size=cfg.sync.sample_size
        )
        self._normalizer = normalizer or RecordNormalizer()

        # Session state
        self._state = SyncState.IDLE
        self._state_lock = threading.Lock()
        self._flight_lock = threading.Lock()
        self._inflight: Optional[Future] = None
        self._malformed_source = False

        # Local data (guarded by _data_lock)
        self._data_lock = threading.RLock()
        self._records: List[DeliveryRecord] = []
        self._mapping: Optional[FieldMapping] = None
        self._last_sync: Optional[str] = None
        self._local_version = 0
        self._local_log: List[Tuple[int, str, DeliveryStatus, str, str]] = []

        # Periodic re-sync
        self._stop_event = threading.Event()
        self._timer_thread: Optional[threading.Thread] = None

        self._connectivity.add_listener(self._on_connectivity_change)
        self._load_previous_state()

        logger.info("✓ Sync orchestrator ready (source: %s, %d pending changes)",
                    self._source_ref or "not configured", self._queue.pending_count())

    @staticmethod
    def _build_cache(cfg: AppConfig):
        if cfg.cache.backend == "mongo":
            return MongoSnapshotCache(
                host=cfg.mongo.host,
                port=cfg.mongo.port,
                database=cfg.mongo.database,
                user=cfg.mongo.user,
                password=cfg.mongo.password
            )
        return SnapshotStore(cfg.cache.cache_dir)

    @property
    def source_key(self) -> str:
        return self._source_ref or DEFAULT_SOURCE_KEY

    # ======================================
    # Sync
    # ======================================
    def sync(self, force_refresh: bool = False) -> SyncResult:
        """
        Run one sync session, or wait for the one already running.

        Args:
            force_refresh: Re-classify even if the cached mapping is valid

        Returns:
            SyncResult (from_cache=True when the fetch failed or was skipped)

        Raises:
            SourceUnavailable: offline / unconfigured / unreachable, and no cache
            SourceMalformed: the sheet is unusable, and no cache
        """
        with self._flight_lock:
            future = self._inflight
            leader = future is None
            if leader:
                future = Future()
                self._inflight = future

        if not leader:
            logger.debug("Sync already in flight; waiting for its result")
            return future.result()

        try:
            result = self._run_session(force_refresh)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._flight_lock:
                self._inflight = None

    def _run_session(self, force_refresh: bool) -> SyncResult:
        errors: List[Exception] = []
        with self._data_lock:
            start_version = self._local_version
        online = self._connectivity.is_online()
        self._set_state(SyncState.FETCHING)
        try:
            if online and self._source_ref:
                try:
                    headers, rows = self._source.fetch_raw_rows(self._source_ref)
                    result = self._process_fresh(headers, rows, force_refresh, errors, start_version)
                    self._malformed_source = False
                    return result
                except (SourceUnavailable, SourceMalformed) as e:
                    if isinstance(e, SourceMalformed):
                        self._malformed_source = True
                    logger.warning("⚠ Fetch failed (%s: %s); falling back to cache",
                                   type(e).__name__, e)
                    errors.append(e)
                    failure: DeliverySyncError = e
            elif not online:
                failure = SourceUnavailable("Offline and no cached snapshot")
            else:
                failure = SourceUnavailable("No sheet source configured and no cached snapshot")

            self._set_state(SyncState.USING_CACHE)
            return self._use_cache(failure, errors)
        finally:
            self._set_state(SyncState.IDLE)

    def _process_fresh(
        self,
        headers: List[str],
        rows: List[List[str]],
        force_refresh: bool,
        errors: List[Exception],
        start_version: int
    ) -> SyncResult:
        cached = self._read_cache()

        mapping = cached.mapping
        if force_refresh or mapping is None or not mapping.matches_headers(headers):
            history = self._load_history()
            mapping = self._classifier.classify(headers, rows, prior=cached.mapping, history=history)
            self._save_history(history.record(mapping, min_fields=self._config.thresholds.history_min_fields))
        else:
            logger.debug("Header set unchanged; reusing cached mapping")

        if mapping.unresolved:
            errors.append(MappingIncomplete([f.value for f in mapping.unresolved]))

        records = self._normalizer.normalize(rows, mapping, fetched_at=self._status_date())
        # Entries pushed while the merge runs leave the queue before the
        # overlay can see their new status
        queued_before_merge = self._queue.pending()
        self._merge_remote(records, errors)
        self._reconcile_pending(records, queued_before_merge)

        timestamp = self._clock().isoformat()
        with self._data_lock:
            self._replay_local_changes(records, start_version)
            self._records = records
            self._mapping = mapping
            self._last_sync = timestamp
            cache_error = self._write_snapshot()
        if cache_error is not None:
            errors.append(cache_error)

        logger.info("✓ Synced %d records from sheet (%s)", len(records), mapping.detected_format)
        return SyncResult(
            records=self._copy(records),
            mapping=mapping,
            last_sync=timestamp,
            from_cache=False,
            errors=errors,
        )

    def _use_cache(self, failure: DeliverySyncError, errors: List[Exception]) -> SyncResult:
        # The snapshot is rewritten on every local change under _data_lock,
        # so reading it under the same lock sees all of them
        with self._data_lock:
            snapshot = self._read_cache()
            if not snapshot.has_records:
                logger.error("✗ No cached snapshot to fall back to: %s", failure)
                raise failure

            records = snapshot.records
            self._reconcile_pending(records)
            self._local_log = []
            self._records = records
            self._mapping = snapshot.mapping
            self._last_sync = snapshot.last_sync

        logger.info("⚠ Using cached snapshot from %s (%d records)", snapshot.last_sync, len(records))
        return SyncResult(
            records=self._copy(records),
            mapping=snapshot.mapping,
            last_sync=snapshot.last_sync,
            from_cache=True,
            errors=errors,
        )

    def _merge_remote(self, records: List[DeliveryRecord], errors: List[Exception]) -> None:
        # Mirror to the system of record, then take its confirmed statuses
        if not records:
            return
        try:
            self._store.upsert_records(records)
            remote = self._store.fetch_statuses([r.id for r in records])
        except DeliverySyncError as e:
            logger.warning("⚠ Remote store merge skipped: %s", e)
            errors.append(e)
            return
        for record in records:
            if record.id in remote:
                record.status, record.status_date = remote[record.id]

    def _reconcile_pending(
        self,
        records: List[DeliveryRecord],
        earlier: Sequence[PendingChange] = ()
    ) -> None:
        # Queued changes win over fetched state, replayed in FIFO order
        by_seq = {c.seq: c for c in earlier}
        by_seq.update((c.seq, c) for c in self._queue.pending())
        pending = [by_seq[seq] for seq in sorted(by_seq)]
        if not pending:
            return
        keys = {r.id: customer_group_key(r) for r in records}
        for change in pending:
            if change.is_batch:
                group = change.group_key or keys.get(change.target_id, "")
                affected = [r for r in records if group and keys[r.id] == group]
            else:
                affected = [r for r in records if r.id == change.target_id]
            for record in affected:
                record.status = change.new_status
                if change.status_date:
                    record.status_date = change.status_date
        logger.debug("Reconciled %d pending changes over fetched data", len(pending))

    # ======================================
    # Status changes
    # ======================================
    def update_status(
        self,
        target_id: str,
        new_status: Union[DeliveryStatus, str],
        update_type: Union[UpdateType, str] = UpdateType.SINGLE
    ) -> dict:
        """
        Change a delivery's status (or its whole group's).

        Args:
            target_id: Record id
            new_status: DeliveryStatus or its value ("delivered", ...)
            update_type: "single" or "batch"

        Returns:
            {"status": "pushed" | "queued", "affected": [ids], "pending": n}

        Raises:
            ValueError: unknown record id, status or update type
        """
        status = DeliveryStatus(new_status)
        change_type = UpdateType(update_type)
        status_date = self._status_date()

        with self._data_lock:
            target = next((r for r in self._records if r.id == target_id), None)
            if target is None:
                raise ValueError(f"Unknown record id: {target_id}")
            group_key = customer_group_key(target)
            affected = apply_status_change(
                self._records, target_id, status, change_type.value, status_date
            )
            self._local_version += 1
            if self._inflight is not None:
                self._local_log.append(
                    (self._local_version, target_id, status, change_type.value, status_date)
                )
            # Queued before any network call so a concurrent sync reconciles it
            overlap = self._has_pending_overlap(target_id, group_key)
            change = self._queue.append(target_id, status, change_type, status_date, group_key)
            self._write_snapshot()

        if self._connectivity.is_online() and not overlap:
            if not self._queue.replay(change.seq, self._apply_change):
                logger.warning("⚠ Direct push for %s failed; change stays queued", target_id)

        still_queued = any(c.seq == change.seq for c in self._queue.pending())
        return {
            "status": "queued" if still_queued else "pushed",
            "affected": affected,
            "pending": self._queue.pending_count(),
        }

    def _has_pending_overlap(self, target_id: str, group_key: str) -> bool:
        # A direct push must not overtake a queued change for the same rows
        return any(
            c.target_id == target_id or (group_key and c.group_key == group_key)
            for c in self._queue.pending()
        )

    def drain_queue(self) -> DrainResult:
        """
        Replay queued changes against the remote store.

        Returns:
            DrainResult (all zeros when offline or nothing is queued)
        """
        if not self._connectivity.is_online():
            logger.info("⚠ Offline; %d changes stay queued", self._queue.pending_count())
            return DrainResult()
        if self._queue.pending_count() == 0:
            return DrainResult()
        return self._queue.drain(self._apply_change)

    def _apply_change(self, change: PendingChange) -> bool:
        """
        Push one change. Batch membership is read from the remote
        store now, not from local state.
        """
        members = None
        if change.is_batch:
            members = self._store.group_members(change.target_id)
            if not members:
                raise MutationRejected(change.target_id, "not found in remote store")
        self._store.push_status(
            change.target_id,
            change.new_status,
            affected_group_refs=members,
            status_date=change.status_date or None,
        )
        return True

    # ======================================
    # Manual mapping
    # ======================================
    def apply_manual_mapping(
        self,
        source_ref: Optional[str],
        semantic_field: Union[SemanticField, str],
        column_ref: ColumnRef
    ) -> FieldMapping:
        """
        Pin one field to a column, leaving the other fields alone.

        The mapping is cached and used by the next sync (the header
        set is unchanged, so it is reused rather than re-classified).

        Raises:
            ValueError: unknown field, unknown column, or no mapping yet
        """
        target_field = SemanticField(semantic_field)
        key = source_ref or self.source_key
        is_current = key == self.source_key

        with self._data_lock:
            mapping = self._mapping if is_current else None
        if mapping is None:
            mapping = self._cache.get_snapshot(key).mapping
        if mapping is None:
            raise ValueError(f"No column mapping to override for {key}; run a sync first")

        updated = mapping.with_override(target_field, column_ref)
        self._cache.put_mapping(key, updated)
        history = self._cache.load_mapping_history(key, max_entries=self._config.sync.history_size)
        self._cache.save_mapping_history(
            key, history.record(updated, min_fields=self._config.thresholds.history_min_fields)
        )
        if is_current:
            with self._data_lock:
                self._mapping = updated

        logger.info("✓ %s manually mapped to column %d (%s)",
                    target_field.value, updated.column_for(target_field),
                    updated.assignments[target_field].column_label or "unlabelled")
        return updated

    # ======================================
    # Periodic re-sync & connectivity
    # ======================================
    def start(self) -> None:
        """Start the periodic re-sync thread (no-op if running)."""
        if self._timer_thread is not None and self._timer_thread.is_alive():
            return
        self._stop_event.clear()
        self._timer_thread = threading.Thread(
            target=self._run_periodic,
            name="delivery-sync-resync",
            daemon=True
        )
        self._timer_thread.start()
        logger.info("✓ Periodic re-sync every %.0fs", self._config.sync.resync_interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        thread = self._timer_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._timer_thread = None

    def _run_periodic(self) -> None:
        interval = self._config.sync.resync_interval_seconds
        while not self._stop_event.wait(interval):
            if self._connectivity.is_online():
                self._auto_sync()

    def _auto_sync(self) -> Optional[SyncResult]:
        if self._malformed_source:
            logger.debug("Skipping automatic sync: source is malformed until a manual sync succeeds")
            return None
        try:
            return self.sync()
        except DeliverySyncError as e:
            logger.warning("⚠ Automatic sync failed: %s", e)
            return None

    def _on_connectivity_change(self, online: bool) -> None:
        if not online:
            return
        try:
            self.drain_queue()
        except Exception as e:
            logger.error("✗ Queue drain after reconnect failed: %s", e, exc_info=True)
        self._auto_sync()

    # ======================================
    # Read-only accessors
    # ======================================
    def get_records(self) -> List[DeliveryRecord]:
        with self._data_lock:
            return self._copy(self._records)

    def get_groups(self) -> Dict[str, List[DeliveryRecord]]:
        return group_records(self.get_records())

    def get_mapping(self) -> Optional[FieldMapping]:
        with self._data_lock:
            return self._mapping

    def get_status_options(self) -> List[Dict[str, str]]:
        """
        Status choices with Hebrew labels: the statuses found in the
        mapped status column, or all five when no column is mapped.
        """
        with self._data_lock:
            mapping = self._mapping
            if mapping is None or mapping.column_for(SemanticField.STATUS) is None:
                return status_options()
            return status_options(r.status for r in self._records if "status" not in r.defaulted)

    def pending_count(self) -> int:
        return self._queue.pending_count()

    def get_state(self) -> SyncState:
        with self._state_lock:
            return self._state

    def get_status(self) -> dict:
        """
        Get current orchestrator status.

        Returns:
            Dictionary with session and data state information.
        """
        with self._data_lock:
            mapping = self._mapping
            return {
                "state": self.get_state().value,
                "online": self._connectivity.is_online(),
                "source_configured": bool(self._source_ref),
                "records": len(self._records),
                "groups": len(group_records(self._records)),
                "pending_changes": self._queue.pending_count(),
                "last_sync": self._last_sync,
                "detected_format": mapping.detected_format if mapping else None,
                "unresolved_fields": [f.value for f in mapping.unresolved] if mapping else [],
                "auto_sync_blocked": self._malformed_source,
                "timestamp": self._clock().isoformat(),
            }

    # ======================================
    # Internal helpers
    # ======================================
    def _replay_local_changes(self, records: List[DeliveryRecord], start_version: int) -> None:
        # Caller holds _data_lock. Re-applies status changes made while
        # a session was fetching so the swap-in does not undo them.
        for version, target_id, status, update_type, status_date in self._local_log:
            if version <= start_version:
                continue
            try:
                apply_status_change(records, target_id, status, update_type, status_date)
            except ValueError:
                logger.debug("Local change for %s has no row in the new sheet", target_id)
        self._local_log = []

    def _set_state(self, state: SyncState) -> None:
        with self._state_lock:
            self._state = state

    def _status_date(self) -> str:
        return self._clock().strftime(STATUS_DATE_FORMAT)

    @staticmethod
    def _copy(records: List[DeliveryRecord]) -> List[DeliveryRecord]:
        return [replace(r) for r in records]

    def _read_cache(self) -> Snapshot:
        try:
            return self._cache.get_snapshot(self.source_key)
        except (DeliverySyncError, OSError) as e:
            logger.warning("⚠ Cache read failed: %s", e)
            return Snapshot()

    def _write_snapshot(self) -> Optional[Exception]:
        # Caller holds _data_lock
        try:
            self._cache.put_snapshot(self.source_key, self._records, self._mapping, self._last_sync or "")
        except (DeliverySyncError, OSError) as e:
            logger.error("✗ Could not write snapshot cache: %s", e)
            return e
        return None

    def _load_history(self) -> MappingHistory:
        try:
            return self._cache.load_mapping_history(
                self.source_key, max_entries=self._config.sync.history_size
            )
        except (DeliverySyncError, OSError) as e:
            logger.warning("⚠ Mapping history unavailable: %s", e)
            return MappingHistory(max_entries=self._config.sync.history_size)

    def _save_history(self, history: MappingHistory) -> None:
        try:
            self._cache.save_mapping_history(self.source_key, history)
        except (DeliverySyncError, OSError) as e:
            logger.warning("⚠ Could not save mapping history: %s", e)

    def _load_previous_state(self) -> None:
        """Load the cached snapshot so the app works before the first sync."""
        snapshot = self._read_cache()
        if not snapshot.has_records:
            logger.info("✓ No cached snapshot found, starting fresh")
            return
        records = snapshot.records
        self._reconcile_pending(records)
        with self._data_lock:
            self._records = records
            self._mapping = snapshot.mapping
            self._last_sync = snapshot.last_sync
        logger.info("✓ Restored %d cached records (last sync %s)", len(records), snapshot.last_sync)

    def close(self) -> None:
        """
        Stop the re-sync thread and close collaborator connections.
        """
        self.stop()
        self._connectivity.remove_listener(self._on_connectivity_change)
        for collaborator in (self._store, self._cache):
            disconnect = getattr(collaborator, "disconnect", None)
            if disconnect is None:
                continue
            try:
                disconnect()
            except Exception as e:
                logger.warning("⚠ Warning during close: %s", e)
        logger.info("✓ Sync orchestrator closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False  # Don't suppress exceptions
