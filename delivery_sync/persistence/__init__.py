# ==============================================
# TOPIC 4: PERSISTENCE (Snapshots across restarts)
# ==============================================
#
# This package keeps the last normalized snapshot, its mapping and
# the mapping history on local disk so the app can start and work
# without network access.
#
# Modules:
# --------
# - snapshot_store.py  → Save/load snapshots, mappings and history
#
# FILE STRUCTURE:
# ---------------
#   metadata/
#   └── <source key>/
#       ├── snapshot.json
#       ├── mapping.json
#       └── mapping_history.json
#
# ==============================================

from .snapshot_store import Snapshot, SnapshotStore, source_key

__all__ = ["Snapshot", "SnapshotStore", "source_key"]
