# ==============================================
# DeliveryRecord
# ==============================================
#
# PURPOSE:
#   The normalized entity the rest of the system works with.
#   Every field has a fixed type; a field that had to be filled
#   with a default is listed in `defaulted` instead of being None.
#
# ENUMS:
# ------
# - DeliveryStatus(Enum): PENDING, IN_PROGRESS, DELIVERED, FAILED, RETURNED
#
# CLASS: DeliveryRecord (dataclass)
# ---------------------------------
#   Required (always non-empty after normalization):
#   - id, tracking_number, name, address, status
#   Optional (may be empty strings):
#   - phone, status_date, scan_date, assigned_to
#   Bookkeeping:
#   - row_index   → position of the raw row the record came from
#   - defaulted   → names of fields synthesized from defaults
#
#   Methods:
#   --------
#   - to_dict() / from_dict()
#
# FUNCTION:
# ---------
# - record_identifier(tracking_number, row_index) -> str
#     Deterministic id (uuid5) for a record.
#
# ==============================================

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple


class DeliveryStatus(Enum):
    """Closed set of delivery states."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    FAILED = "failed"
    RETURNED = "returned"


RECORD_NAMESPACE = uuid.UUID("5b0c7a4e-2f0e-4d55-9a3c-8f1d2c6e4b10")


def record_identifier(tracking_number: str, row_index: int) -> str:
    """Return the stable identifier for a (tracking number, row) pair."""
    return str(uuid.uuid5(RECORD_NAMESPACE, f"{tracking_number}:{row_index}"))


@dataclass
class DeliveryRecord:
    """One normalized delivery row."""

    # --- Required ---
    id: str
    tracking_number: str
    name: str
    address: str
    status: DeliveryStatus = DeliveryStatus.PENDING

    # --- Optional ---
    phone: str = ""
    status_date: str = ""
    scan_date: str = ""
    assigned_to: str = ""

    # --- Bookkeeping ---
    row_index: int = 0
    defaulted: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the snapshot cache."""
        return {
            "id": self.id,
            "tracking_number": self.tracking_number,
            "name": self.name,
            "address": self.address,
            "status": self.status.value,
            "phone": self.phone,
            "status_date": self.status_date,
            "scan_date": self.scan_date,
            "assigned_to": self.assigned_to,
            "row_index": self.row_index,
            "defaulted": list(self.defaulted),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeliveryRecord":
        """Rebuild a record from its cached dictionary form."""
        return cls(
            id=data["id"],
            tracking_number=data["tracking_number"],
            name=data.get("name", ""),
            address=data.get("address", ""),
            status=DeliveryStatus(data.get("status", DeliveryStatus.PENDING.value)),
            phone=data.get("phone", ""),
            status_date=data.get("status_date", ""),
            scan_date=data.get("scan_date", ""),
            assigned_to=data.get("assigned_to", ""),
            row_index=int(data.get("row_index", 0)),
            defaulted=tuple(data.get("defaulted", ())),
        )
