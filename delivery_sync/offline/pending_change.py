from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from delivery_sync.normalization.record import DeliveryStatus


class UpdateType(Enum):
    """How far a status change reaches."""
    SINGLE = "single"   # Only the target record
    BATCH = "batch"     # Every record in the target's customer group


@dataclass
class PendingChange:
    """
    One status change waiting to be confirmed by the remote store.

    The change always names a single target; for BATCH changes the
    group is re-resolved against the remote store at replay time.
    `group_key` is the locally-known group at enqueue and is only used
    to reconcile local state and to order retries.
    """
    seq: int
    target_id: str
    new_status: DeliveryStatus
    update_type: UpdateType
    enqueued_at: str
    retry_count: int = 0
    status_date: str = ""
    group_key: str = ""

    @property
    def is_batch(self) -> bool:
        return self.update_type is UpdateType.BATCH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "target_id": self.target_id,
            "new_status": self.new_status.value,
            "update_type": self.update_type.value,
            "enqueued_at": self.enqueued_at,
            "retry_count": self.retry_count,
            "status_date": self.status_date,
            "group_key": self.group_key,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PendingChange":
        return PendingChange(
            seq=int(data["seq"]),
            target_id=data["target_id"],
            new_status=DeliveryStatus(data["new_status"]),
            update_type=UpdateType(data.get("update_type", UpdateType.SINGLE.value)),
            enqueued_at=data.get("enqueued_at", ""),
            retry_count=int(data.get("retry_count", 0)),
            status_date=data.get("status_date", ""),
            group_key=data.get("group_key", ""),
        )
