# ==============================================
# Customer Grouping
# ==============================================
#
# PURPOSE:
#   Derive the CustomerGroupKey that clusters records for display and
#   for batch status updates, and apply a status change to a cached
#   record set (single record or whole group).
#
# KEY RULE:
#   key = name, unless the name is non-informative (a date label, a
#   tracking label, or empty). Then:
#     1. address text before the first "," or "-", if ≥ 3 chars
#     2. the full address (unless it is the "no address" sentinel)
#     3. "לקוח {tracking}"
#
# FUNCTIONS:
# ----------
# - customer_group_key(record) -> str
# - group_records(records) -> dict[str, list[DeliveryRecord]]
# - apply_status_change(records, target_id, status, update_type,
#                       status_date) -> list[str]
#
# ==============================================

import re
from typing import Dict, List, Sequence

from .field_cleaner import NON_INFORMATIVE_NAME_KINDS, FieldCleaner
from .record import DeliveryRecord, DeliveryStatus
from .vocabulary import ADDRESS_FALLBACK, CUSTOMER_LABEL_PREFIX

ADDRESS_SEPARATOR_PATTERN = re.compile(r"[,\-]")
MIN_ADDRESS_KEY_LENGTH = 3


def customer_group_key(record: DeliveryRecord) -> str:
    """
    Return the grouping key for a record.

    Example:
        name "[DATE] 5/6/2024", address "Main St 12, Springfield"
        → "Main St 12"
    """
    kind, name = FieldCleaner.classify_name(record.name, record.tracking_number)
    if kind not in NON_INFORMATIVE_NAME_KINDS:
        return name

    address = FieldCleaner.clean_text(record.address)
    if address and address != ADDRESS_FALLBACK:
        lead = ADDRESS_SEPARATOR_PATTERN.split(address, maxsplit=1)[0].strip()
        if len(lead) >= MIN_ADDRESS_KEY_LENGTH:
            return lead
        return address

    return f"{CUSTOMER_LABEL_PREFIX}{record.tracking_number}"


def group_records(records: Sequence[DeliveryRecord]) -> Dict[str, List[DeliveryRecord]]:
    """Group records by key, keeping first-seen order of groups and members."""
    groups: Dict[str, List[DeliveryRecord]] = {}
    for record in records:
        groups.setdefault(customer_group_key(record), []).append(record)
    return groups


def apply_status_change(
    records: Sequence[DeliveryRecord],
    target_id: str,
    status: DeliveryStatus,
    update_type: str = "single",
    status_date: str = ""
) -> List[str]:
    """
    Mutate records in place for one status change.

    Args:
        records: The cached record set
        target_id: Record the change was requested for
        status: New status
        update_type: "single" (target only) or "batch" (target's whole group)
        status_date: Date written to every affected record

    Returns:
        Ids of the records that were changed, in record order

    Raises:
        ValueError: target_id is not in records
    """
    target = next((r for r in records if r.id == target_id), None)
    if target is None:
        raise ValueError(f"Unknown record id: {target_id}")

    if update_type == "batch":
        key = customer_group_key(target)
        affected = [r for r in records if customer_group_key(r) == key]
    else:
        affected = [target]

    for record in affected:
        record.status = status
        record.status_date = status_date
    return [r.id for r in affected]
