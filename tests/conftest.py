# ==============================================
# Pytest Configuration and Fixtures
# ==============================================
#
# Shared fixtures for all tests.
#
# FIXTURES:
# ---------
# - sheet_headers / sheet_rows   → A small bilingual delivery sheet
# - standard_mapping             → Hand-built FieldMapping for that sheet
# - make_record                  → DeliveryRecord factory
# - sheet_source                 → In-memory remote row source
# - fake_store                   → In-memory remote status store
# - queue / snapshot_store       → File-backed components under tmp_path
# - orchestrator_factory         → SyncOrchestrator wired to the fakes
#
# NOTES:
# ------
# - No test touches the network, MySQL or MongoDB.
# - Use tmp_path for every file-backed component.
# ==============================================

import threading
from datetime import datetime, timezone

import pytest

from delivery_sync.analysis.mapping import (
    AssignmentSource,
    FieldAssignment,
    FieldMapping,
    SemanticField,
)
from delivery_sync.config import AppConfig, SyncConfig
from delivery_sync.connectivity import ConnectivityMonitor
from delivery_sync.errors import MutationRejected, SourceUnavailable
from delivery_sync.logging_setup import reset_logging
from delivery_sync.normalization.grouping import customer_group_key
from delivery_sync.normalization.record import DeliveryRecord, DeliveryStatus, record_identifier
from delivery_sync.offline.change_queue import OfflineChangeQueue
from delivery_sync.persistence.snapshot_store import SnapshotStore
from delivery_sync.sync_orchestrator import SyncOrchestrator


SHEET_URL = "https://docs.google.com/spreadsheets/d/1AbCdEfGhIjKlMnOpQrStUvWxYz0123456789/edit#gid=0"

SHEET_HEADERS = ["Tracking", "Customer Name", "Phone", "Address", "Status", "Status Date"]

SHEET_ROWS = [
    ["RR123456789IL", "Dana Levi", "050-123-4567", "Herzl St 12, Tel Aviv", "delivered", "5/6/2024"],
    ["RR223456789IL", "Avi Cohen", "052-765-4321", "Main St 3, Ariel", "pending", "6/6/2024"],
    ["RR323456789IL", "Dana Levi", "0541112233", "Herzl St 12, Tel Aviv", "בדרך", "7/6/2024"],
]

FIXED_NOW = datetime(2024, 6, 10, 8, 30, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def row_id(row_index: int) -> str:
    """Record id of SHEET_ROWS[row_index]."""
    return record_identifier(SHEET_ROWS[row_index][0], row_index)


# ==============================================
# In-memory collaborators
# ==============================================

class FakeSheetSource:
    """Remote row source returning fixed rows; can fail or block."""

    def __init__(self, headers, rows):
        self.headers = list(headers)
        self.rows = [list(r) for r in rows]
        self.calls = 0
        self.error = None
        self.gate = None
        self.started = threading.Event()

    def fetch_raw_rows(self, source_ref=None):
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return list(self.headers), [list(r) for r in self.rows]


class FakeDeliveryStore:
    """Remote status store keyed by record id."""

    def __init__(self):
        self.rows = {}
        self.pushes = []
        self.fail_push = False
        self.fail_merge = False
        self.push_gate = None
        self.push_started = threading.Event()

    def upsert_records(self, records):
        if self.fail_merge:
            raise SourceUnavailable("store down")
        for record in records:
            row = self.rows.setdefault(record.id, {
                "status": record.status,
                "status_date": record.status_date,
            })
            row["group_key"] = customer_group_key(record)
        return len(records)

    def fetch_statuses(self, ids):
        return {
            i: (self.rows[i]["status"], self.rows[i]["status_date"])
            for i in ids if i in self.rows
        }

    def group_members(self, target_id):
        key = self.rows.get(target_id, {}).get("group_key")
        if key is None:
            return []
        return sorted(i for i, row in self.rows.items() if row.get("group_key") == key)

    def push_status(self, target_id, status, affected_group_refs=None, status_date=None):
        self.push_started.set()
        if self.push_gate is not None:
            self.push_gate.wait(5)
        if self.fail_push:
            raise SourceUnavailable("push failed")
        ids = [target_id] + [i for i in (affected_group_refs or []) if i != target_id]
        known = [i for i in ids if i in self.rows]
        if not known:
            raise MutationRejected(target_id, "unknown id")
        self.pushes.append((target_id, status, ids))
        for i in known:
            self.rows[i]["status"] = status
            self.rows[i]["status_date"] = status_date or ""
        return len(known)


# ==============================================
# Fixtures
# ==============================================

@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging()


@pytest.fixture
def sheet_headers():
    return list(SHEET_HEADERS)


@pytest.fixture
def sheet_rows():
    return [list(r) for r in SHEET_ROWS]


@pytest.fixture
def standard_mapping():
    """Mapping for SHEET_HEADERS with every column classified."""
    columns = {
        SemanticField.TRACKING_NUMBER: 0,
        SemanticField.NAME: 1,
        SemanticField.PHONE: 2,
        SemanticField.ADDRESS: 3,
        SemanticField.STATUS: 4,
        SemanticField.STATUS_DATE: 5,
    }
    return FieldMapping(
        headers=list(SHEET_HEADERS),
        assignments={
            f: FieldAssignment(f, i, SHEET_HEADERS[i], 100.0, AssignmentSource.CLASSIFIED)
            for f, i in columns.items()
        },
        detected_format="israel_post",
    )


@pytest.fixture
def make_record():
    def _make(tracking="RR123456789IL", name="Dana Levi", address="Herzl St 12, Tel Aviv",
              status=DeliveryStatus.PENDING, row_index=0, **extra):
        return DeliveryRecord(
            id=record_identifier(tracking, row_index),
            tracking_number=tracking,
            name=name,
            address=address,
            status=status,
            row_index=row_index,
            **extra
        )
    return _make


@pytest.fixture
def sheet_source():
    return FakeSheetSource(SHEET_HEADERS, SHEET_ROWS)


@pytest.fixture
def fake_store():
    return FakeDeliveryStore()


@pytest.fixture
def queue(tmp_path):
    return OfflineChangeQueue(tmp_path / "pending_changes.json", clock=fixed_clock)


@pytest.fixture
def snapshot_store(tmp_path):
    return SnapshotStore(str(tmp_path / "cache"))


@pytest.fixture
def app_config():
    return AppConfig(sync=SyncConfig(resync_interval_seconds=0.05))


@pytest.fixture
def orchestrator_factory(app_config, sheet_source, fake_store, queue, snapshot_store):
    """Build orchestrators wired to the fakes; closed after the test."""
    created = []

    def _build(**overrides):
        kwargs = dict(
            config=app_config,
            source=sheet_source,
            store=fake_store,
            cache=snapshot_store,
            queue=queue,
            connectivity=ConnectivityMonitor(online=True),
            clock=fixed_clock,
            source_ref=SHEET_URL,
        )
        kwargs.update(overrides)
        orchestrator = SyncOrchestrator(**kwargs)
        created.append(orchestrator)
        return orchestrator

    yield _build
    for orchestrator in created:
        orchestrator.close()
