# ==============================================
# TOPIC 5: STORAGE (Sheets + MySQL + MongoDB)
# ==============================================
#
# External collaborators the sync core talks to:
# where rows come from, where statuses are confirmed, and the
# shared snapshot cache.
#
# Modules:
# --------
# - sheets_source.py  → Google Sheets CSV export (remote row source)
# - mysql_store.py    → Deliveries table (system of record, status sink)
# - mongo_cache.py    → MongoDB snapshot cache
#
# ==============================================

from .sheets_source import GoogleSheetsSource
from .mysql_store import MySQLDeliveryStore
from .mongo_cache import MongoSnapshotCache

__all__ = [
    "GoogleSheetsSource",
    "MySQLDeliveryStore",
    "MongoSnapshotCache",
]
