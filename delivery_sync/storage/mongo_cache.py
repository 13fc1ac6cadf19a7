# ==============================================
# MongoSnapshotCache
# ==============================================
#
# PURPOSE:
#   Cache collaborator backed by MongoDB. Same contract as the
#   JSON-file SnapshotStore, for deployments where several app
#   instances share one cache.
#
# COLLECTIONS (one document per source, _id = source key):
#   - snapshots         → {source_ref, last_sync, records: [...]}
#   - mappings          → {source_ref, mapping: {...}}
#   - mapping_history   → {source_ref, entries: [...]}
#
# CLASS: MongoSnapshotCache
# -------------------------
#   Stateful: holds a connection to MongoDB. Connects lazily.
#
#   Methods:
#   --------
#   - connect() / disconnect()
#   - get_snapshot(source_ref) -> Snapshot
#   - put_snapshot(source_ref, records, mapping, timestamp) -> None
#   - put_mapping(source_ref, mapping) -> None
#   - load_mapping_history(source_ref, max_entries=5) -> MappingHistory
#   - save_mapping_history(source_ref, history) -> None
#   - exists(source_ref) -> bool
#   - clear(source_ref) -> None
#
#   Driver errors are raised as SourceUnavailable.
#
# ==============================================

import logging
from typing import Optional, Sequence

from pymongo import MongoClient as PyMongoClient
from pymongo.errors import PyMongoError

from delivery_sync.analysis.mapping import FieldMapping, MappingHistory
from delivery_sync.errors import SourceUnavailable
from delivery_sync.normalization.record import DeliveryRecord
from delivery_sync.persistence.snapshot_store import Snapshot, source_key

logger = logging.getLogger(__name__)

SNAPSHOTS = "snapshots"
MAPPINGS = "mappings"
HISTORY = "mapping_history"


class MongoSnapshotCache:
    def __init__(self, host, port, database, user=None, password=None, client=None):
        # Store connection params. Don't connect yet.
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.client = client

    def connect(self) -> None:
        try:
            if self.user and self.password:
                uri = f"mongodb://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"
            else:
                uri = f"mongodb://{self.host}:{self.port}/{self.database}"
            self.client = PyMongoClient(uri, serverSelectionTimeoutMS=5000)
            self.client.admin.command("ping")
        except PyMongoError as e:
            self.client = None
            raise SourceUnavailable(f"Could not connect to MongoDB: {e}") from e
        logger.info("✓ Connected to MongoDB %s:%s/%s", self.host, self.port, self.database)

    def disconnect(self) -> None:
        if self.client:
            self.client.close()
            self.client = None

    # ======================================
    # Saving
    # ======================================
    def put_snapshot(
        self,
        source_ref: str,
        records: Sequence[DeliveryRecord],
        mapping: Optional[FieldMapping],
        timestamp: str
    ) -> None:
        key = source_key(source_ref)
        self._replace(SNAPSHOTS, key, {
            "source_ref": source_ref,
            "last_sync": timestamp,
            "records": [r.to_dict() for r in records],
        })
        if mapping is not None:
            self.put_mapping(source_ref, mapping)
        logger.debug("Cached %d records for %s in MongoDB", len(records), source_ref)

    def put_mapping(self, source_ref: str, mapping: FieldMapping) -> None:
        self._replace(MAPPINGS, source_key(source_ref), {
            "source_ref": source_ref,
            "mapping": mapping.to_dict(),
        })

    def save_mapping_history(self, source_ref: str, history: MappingHistory) -> None:
        self._replace(HISTORY, source_key(source_ref), {
            "source_ref": source_ref,
            "entries": history.to_list(),
        })

    # ======================================
    # Loading
    # ======================================
    def get_snapshot(self, source_ref: str) -> Snapshot:
        key = source_key(source_ref)
        snapshot = Snapshot()

        doc = self._find(SNAPSHOTS, key)
        if doc is not None:
            snapshot.records = [DeliveryRecord.from_dict(r) for r in doc.get("records", [])]
            snapshot.last_sync = doc.get("last_sync")

        mapping_doc = self._find(MAPPINGS, key)
        if mapping_doc is not None and mapping_doc.get("mapping"):
            snapshot.mapping = FieldMapping.from_dict(mapping_doc["mapping"])

        return snapshot

    def load_mapping_history(self, source_ref: str, max_entries: int = 5) -> MappingHistory:
        doc = self._find(HISTORY, source_key(source_ref))
        if not doc or not doc.get("entries"):
            return MappingHistory(max_entries=max_entries)
        return MappingHistory.from_list(doc["entries"], max_entries=max_entries)

    def exists(self, source_ref: str) -> bool:
        return self._find(SNAPSHOTS, source_key(source_ref)) is not None

    def clear(self, source_ref: str) -> None:
        key = source_key(source_ref)
        try:
            for name in (SNAPSHOTS, MAPPINGS, HISTORY):
                self._db()[name].delete_one({"_id": key})
        except PyMongoError as e:
            raise SourceUnavailable(f"MongoDB delete failed: {e}") from e

    # ======================================
    # Internal
    # ======================================
    def _db(self):
        if self.client is None:
            self.connect()
        return self.client[self.database]

    def _replace(self, collection_name: str, key: str, document: dict) -> None:
        try:
            self._db()[collection_name].replace_one(
                {"_id": key},
                {"_id": key, **document},
                upsert=True,
            )
        except PyMongoError as e:
            raise SourceUnavailable(f"MongoDB write to '{collection_name}' failed: {e}") from e

    def _find(self, collection_name: str, key: str) -> Optional[dict]:
        try:
            return self._db()[collection_name].find_one({"_id": key})
        except PyMongoError as e:
            raise SourceUnavailable(f"MongoDB read from '{collection_name}' failed: {e}") from e
