# ==============================================
# TOPIC 1: NORMALIZATION
# ==============================================
#
# This package turns raw sheet cells into DeliveryRecords:
# cleaning, canonicalizing and grouping, BEFORE anything is cached
# or pushed to the remote store.
#
# Modules:
# --------
# - vocabulary.py        → Bilingual keyword tables and sentinels
# - record.py            → DeliveryRecord / DeliveryStatus
# - value_detector.py    → Value pattern detection (phone, tracking, date…)
# - field_cleaner.py     → Per-field cleaning rules
# - grouping.py          → CustomerGroupKey and status fan-out
# - record_normalizer.py → Normalize a full batch of rows
#
# ==============================================

from .record import DeliveryRecord, DeliveryStatus, record_identifier
from .value_detector import ValueDetector
from .field_cleaner import FieldCleaner, NameKind
from .grouping import apply_status_change, customer_group_key, group_records
from .record_normalizer import RecordNormalizer

__all__ = [
    "DeliveryRecord",
    "DeliveryStatus",
    "record_identifier",
    "ValueDetector",
    "FieldCleaner",
    "NameKind",
    "customer_group_key",
    "group_records",
    "apply_status_change",
    "RecordNormalizer",
]
