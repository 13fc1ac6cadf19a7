import hashlib
import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence

from delivery_sync.analysis.mapping import FieldMapping, MappingHistory
from delivery_sync.normalization.record import DeliveryRecord

logger = logging.getLogger(__name__)


# ==============================================
# Snapshot
# ==============================================
#
# What the cache hands back for one source. Every part is optional:
# a source may have a mapping (from a manual override) but no records
# yet, or nothing at all.
#
@dataclass
class Snapshot:
    records: Optional[List[DeliveryRecord]] = None
    mapping: Optional[FieldMapping] = None
    last_sync: Optional[str] = None

    @property
    def has_records(self) -> bool:
        return self.records is not None


def source_key(source_ref: str) -> str:
    """
    Filesystem/collection-safe key for a source reference.

    A readable prefix plus a short hash, so two URLs that slug the same
    way never share a cache entry.
    """
    slug = re.sub(r"[^A-Za-z0-9]+", "_", source_ref).strip("_")[-40:] or "default"
    digest = hashlib.sha256(source_ref.encode("utf-8")).hexdigest()[:12]
    return f"{slug}_{digest}"


# ==============================================
# SnapshotStore
# ==============================================
#
# PURPOSE:
#   Keep the last normalized record set, its FieldMapping and the
#   mapping history on disk so the app works offline and after a
#   restart without re-fetching or re-classifying.
#
# FILE STRUCTURE:
# ---------------
#   <cache_dir>/
#   └── <source key>/
#       ├── snapshot.json         → {last_sync, records: [...]}
#       ├── mapping.json          → FieldMapping.to_dict()
#       └── mapping_history.json  → [ {field: label}, ... ]
#
# All files are written atomically (tmp file + os.replace).
#
# CLASS: SnapshotStore
# --------------------
#   - get_snapshot(source_ref) -> Snapshot
#   - put_snapshot(source_ref, records, mapping, timestamp) -> None
#   - put_mapping(source_ref, mapping) -> None
#   - load_mapping_history(source_ref, max_entries=5) -> MappingHistory
#   - save_mapping_history(source_ref, history) -> None
#   - exists(source_ref) -> bool
#   - clear(source_ref) -> None
#
class SnapshotStore:
    """
    JSON-file cache collaborator.
    """

    SNAPSHOT_FILE = "snapshot.json"
    MAPPING_FILE = "mapping.json"
    HISTORY_FILE = "mapping_history.json"

    def __init__(self, cache_dir: str = "metadata/"):
        """
        Args:
            cache_dir: Root directory for all cached sources
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

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
        """
        Replace the cached snapshot for a source.

        Args:
            source_ref: Sheet URL or id
            records: Normalized records
            mapping: Mapping the records were normalized with
            timestamp: Sync time (ISO 8601)
        """
        directory = self._source_dir(source_ref)
        self._write_json(directory / self.SNAPSHOT_FILE, {
            "source_ref": source_ref,
            "last_sync": timestamp,
            "records": [r.to_dict() for r in records],
        })
        if mapping is not None:
            self._write_json(directory / self.MAPPING_FILE, mapping.to_dict())
        logger.debug("Cached %d records for %s", len(records), source_ref)

    def put_mapping(self, source_ref: str, mapping: FieldMapping) -> None:
        self._write_json(self._source_dir(source_ref) / self.MAPPING_FILE, mapping.to_dict())

    def save_mapping_history(self, source_ref: str, history: MappingHistory) -> None:
        self._write_json(self._source_dir(source_ref) / self.HISTORY_FILE, history.to_list())

    # ======================================
    # Loading
    # ======================================
    def get_snapshot(self, source_ref: str) -> Snapshot:
        """
        Load whatever is cached for a source.

        Returns:
            Snapshot (fields are None when nothing was cached)
        """
        directory = self._source_dir(source_ref, create=False)
        snapshot = Snapshot()

        data = self._read_json(directory / self.SNAPSHOT_FILE)
        if data is not None:
            snapshot.records = [DeliveryRecord.from_dict(r) for r in data.get("records", [])]
            snapshot.last_sync = data.get("last_sync")

        mapping_data = self._read_json(directory / self.MAPPING_FILE)
        if mapping_data is not None:
            snapshot.mapping = FieldMapping.from_dict(mapping_data)

        return snapshot

    def load_mapping_history(self, source_ref: str, max_entries: int = 5) -> MappingHistory:
        data = self._read_json(self._source_dir(source_ref, create=False) / self.HISTORY_FILE)
        if not data:
            return MappingHistory(max_entries=max_entries)
        return MappingHistory.from_list(data, max_entries=max_entries)

    # ======================================
    # Utility
    # ======================================
    def exists(self, source_ref: str) -> bool:
        """True if a record snapshot is cached for this source."""
        return (self._source_dir(source_ref, create=False) / self.SNAPSHOT_FILE).exists()

    def clear(self, source_ref: str) -> None:
        """Delete every cached file for a source."""
        directory = self._source_dir(source_ref, create=False)
        for name in (self.SNAPSHOT_FILE, self.MAPPING_FILE, self.HISTORY_FILE):
            path = directory / name
            if path.exists():
                path.unlink()
        if directory.exists() and not any(directory.iterdir()):
            directory.rmdir()
        logger.info("✓ Cleared cache for %s", source_ref)

    def _source_dir(self, source_ref: str, create: bool = True) -> Path:
        directory = self.cache_dir / source_key(source_ref)
        if create:
            directory.mkdir(parents=True, exist_ok=True)
        return directory

    @staticmethod
    def _write_json(path: Path, payload: Any) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)

    @staticmethod
    def _read_json(path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except ValueError as e:
            logger.warning("⚠ Ignoring unreadable cache file %s: %s", path, e)
            return None
