# ==============================================
# MySQLDeliveryStore
# ==============================================
#
# PURPOSE:
#   Remote system of record for delivery statuses and the mutation
#   sink for status pushes (direct and replayed from the offline
#   queue).
#
# WHY THIS CLASS EXISTS:
#   The sheet is where deliveries come from, but couriers' status
#   changes live here. Several devices push to the same table, so
#   batch fan-out has to be resolved against THIS table's current
#   group membership, not against whatever a device cached.
#
# TABLES:
#   deliveries
#     id (PK), tracking_number, name, phone, address, status,
#     status_date, scan_date, assigned_to, group_key (indexed),
#     updated_at
#   delivery_history
#     id (PK, auto), delivery_id (indexed), status, status_date,
#     changed_at
#
# CLASS: MySQLDeliveryStore
# -------------------------
#   Stateful: holds a connection to MySQL. Connects lazily.
#
#   Methods:
#   --------
#   - connect() / disconnect()
#   - ensure_tables() -> None
#   - upsert_records(records) -> int
#       New rows are inserted with their sheet status. Existing rows
#       get sheet columns refreshed; status columns are NEVER
#       overwritten from the sheet.
#   - fetch_statuses(ids) -> dict[id, (DeliveryStatus, status_date)]
#   - group_members(target_id) -> list[str]
#   - push_status(target_id, status, affected_group_refs=None,
#                 status_date=None) -> int
#       Raises MutationRejected when no row matched.
#
#   Driver errors are raised as SourceUnavailable.
#
#   Context Manager:
#   ----------------
#   - __enter__ / __exit__ for `with MySQLDeliveryStore(...) as db:` usage.
#
# ==============================================

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, cast

import pymysql
import pymysql.cursors
from pymysql.constants import CLIENT

from delivery_sync.errors import MutationRejected, SourceUnavailable
from delivery_sync.normalization.grouping import customer_group_key
from delivery_sync.normalization.record import DeliveryRecord, DeliveryStatus

logger = logging.getLogger(__name__)

DELIVERIES_TABLE = "deliveries"
HISTORY_TABLE = "delivery_history"

# IN (...) lists are split into chunks of this size
QUERY_CHUNK_SIZE = 500

CREATE_DELIVERIES = f"""
CREATE TABLE IF NOT EXISTS {DELIVERIES_TABLE} (
    id VARCHAR(64) NOT NULL PRIMARY KEY,
    tracking_number VARCHAR(128) NOT NULL,
    name VARCHAR(255) NOT NULL,
    phone VARCHAR(32) NOT NULL DEFAULT '',
    address VARCHAR(512) NOT NULL,
    status VARCHAR(32) NOT NULL,
    status_date VARCHAR(64) NOT NULL DEFAULT '',
    scan_date VARCHAR(64) NOT NULL DEFAULT '',
    assigned_to VARCHAR(255) NOT NULL DEFAULT '',
    group_key VARCHAR(255) NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
    INDEX idx_group_key (group_key)
) CHARACTER SET utf8mb4
"""

CREATE_HISTORY = f"""
CREATE TABLE IF NOT EXISTS {HISTORY_TABLE} (
    id BIGINT AUTO_INCREMENT PRIMARY KEY,
    delivery_id VARCHAR(64) NOT NULL,
    status VARCHAR(32) NOT NULL,
    status_date VARCHAR(64) NOT NULL DEFAULT '',
    changed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    INDEX idx_delivery_id (delivery_id)
) CHARACTER SET utf8mb4
"""

UPSERT_DELIVERY = f"""
INSERT INTO {DELIVERIES_TABLE}
    (id, tracking_number, name, phone, address, status, status_date,
     scan_date, assigned_to, group_key)
VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
ON DUPLICATE KEY UPDATE
    tracking_number = VALUES(tracking_number),
    name = VALUES(name),
    phone = VALUES(phone),
    address = VALUES(address),
    scan_date = VALUES(scan_date),
    assigned_to = VALUES(assigned_to),
    group_key = VALUES(group_key)
"""


def _chunks(items: Sequence[str], size: int = QUERY_CHUNK_SIZE) -> Iterable[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class MySQLDeliveryStore:
    def __init__(self, host, port, user, password, database):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.connection = None

    def connect(self) -> None:
        # Establish connection, create database and tables if missing
        try:
            self.connection = pymysql.connect(
                host=self.host,
                port=self.port,
                user=self.user,
                password=self.password,
                charset="utf8mb4",
                # rowcount = matched rows, so re-pushing the same status is not "0 rows"
                client_flag=CLIENT.FOUND_ROWS,
            )
            cursor = self.connection.cursor()
            cursor.execute(f"CREATE DATABASE IF NOT EXISTS {self.database} CHARACTER SET utf8mb4")
            cursor.execute(f"USE {self.database}")
            cursor.close()
        except pymysql.MySQLError as e:
            self.connection = None
            raise SourceUnavailable(f"MySQL connection failed: {e}") from e
        self.ensure_tables()
        logger.info("✓ Connected to MySQL %s:%s/%s", self.host, self.port, self.database)

    def disconnect(self) -> None:
        if self.connection:
            self.connection.close()
            self.connection = None

    def ensure_tables(self) -> None:
        conn = self._conn()
        try:
            cursor = conn.cursor()
            cursor.execute(CREATE_DELIVERIES)
            cursor.execute(CREATE_HISTORY)
            conn.commit()
            cursor.close()
        except pymysql.MySQLError as e:
            raise SourceUnavailable(f"MySQL schema setup failed: {e}") from e

    def upsert_records(self, records: Sequence[DeliveryRecord]) -> int:
        """
        Mirror sheet rows into the deliveries table.

        Returns:
            Number of records sent
        """
        if not records:
            return 0
        rows = [
            (
                r.id, r.tracking_number, r.name, r.phone, r.address,
                r.status.value, r.status_date, r.scan_date, r.assigned_to,
                customer_group_key(r),
            )
            for r in records
        ]
        conn = self._conn()
        try:
            cursor = conn.cursor()
            cursor.executemany(UPSERT_DELIVERY, rows)
            conn.commit()
            cursor.close()
        except pymysql.MySQLError as e:
            self._rollback(conn)
            raise SourceUnavailable(f"MySQL upsert failed: {e}") from e
        logger.debug("Upserted %d deliveries", len(rows))
        return len(rows)

    def fetch_statuses(self, ids: Sequence[str]) -> Dict[str, Tuple[DeliveryStatus, str]]:
        """
        Current remote status per delivery id.

        Ids unknown to the store are absent from the result.
        """
        result: Dict[str, Tuple[DeliveryStatus, str]] = {}
        ids = list(ids)
        for chunk in _chunks(ids):
            placeholders = ", ".join(["%s"] * len(chunk))
            rows = self.fetch_all(
                f"SELECT id, status, status_date FROM {DELIVERIES_TABLE} WHERE id IN ({placeholders})",
                tuple(chunk),
            )
            for row in rows:
                try:
                    status = DeliveryStatus(row["status"])
                except ValueError:
                    logger.warning("⚠ Unknown status %r stored for %s", row["status"], row["id"])
                    continue
                result[row["id"]] = (status, row.get("status_date") or "")
        return result

    def group_members(self, target_id: str) -> List[str]:
        """Ids currently sharing the target's group, target included."""
        rows = self.fetch_all(
            f"SELECT id FROM {DELIVERIES_TABLE} WHERE group_key = "
            f"(SELECT group_key FROM {DELIVERIES_TABLE} WHERE id = %s) ORDER BY id",
            (target_id,),
        )
        return [row["id"] for row in rows]

    def push_status(
        self,
        target_id: str,
        status: DeliveryStatus,
        affected_group_refs: Optional[Sequence[str]] = None,
        status_date: Optional[str] = None
    ) -> int:
        """
        Write a status to the target (and its group members).

        Args:
            target_id: Record the change was made on
            status: New status
            affected_group_refs: Other ids to update in the same transaction
            status_date: Date to store (now, if None)

        Returns:
            Number of rows updated

        Raises:
            MutationRejected: no row matched
            SourceUnavailable: driver / connection failure
        """
        ids = [target_id] + [i for i in (affected_group_refs or []) if i != target_id]
        date_value = status_date or datetime.now(timezone.utc).strftime("%d/%m/%Y %H:%M")
        conn = self._conn()
        try:
            cursor = conn.cursor()
            updated = 0
            for chunk in _chunks(ids):
                placeholders = ", ".join(["%s"] * len(chunk))
                updated += cursor.execute(
                    f"UPDATE {DELIVERIES_TABLE} SET status = %s, status_date = %s "
                    f"WHERE id IN ({placeholders})",
                    (status.value, date_value, *chunk),
                )
            if updated == 0:
                self._rollback(conn)
                cursor.close()
                raise MutationRejected(target_id, "no matching delivery in remote store")
            cursor.executemany(
                f"INSERT INTO {HISTORY_TABLE} (delivery_id, status, status_date) VALUES (%s, %s, %s)",
                [(i, status.value, date_value) for i in ids],
            )
            conn.commit()
            cursor.close()
        except pymysql.MySQLError as e:
            self._rollback(conn)
            raise SourceUnavailable(f"MySQL status push failed: {e}") from e

        logger.info("✓ Pushed %s for %s (%d rows)", status.value, target_id, updated)
        return updated

    def fetch_all(self, query: str, params: tuple | None = None) -> list[dict]:
        # Execute SELECT and return rows as dicts
        conn = self._conn()
        try:
            cursor = conn.cursor(pymysql.cursors.DictCursor)
            cursor.execute(query, params)
            results = cast(list[dict[str, Any]], cursor.fetchall())
            cursor.close()
        except pymysql.MySQLError as e:
            raise SourceUnavailable(f"MySQL query failed: {e}") from e
        return list(results)

    def _conn(self):
        if self.connection is None:
            self.connect()
        return self.connection

    def _rollback(self, conn) -> None:
        # A dropped connection cannot roll back; forget it so the next call reconnects
        try:
            conn.rollback()
        except pymysql.MySQLError as e:
            logger.warning("⚠ Rollback failed, dropping connection: %s", e)
            self.connection = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
