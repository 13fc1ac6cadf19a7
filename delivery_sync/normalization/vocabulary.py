# ==============================================
# Vocabulary Tables
# ==============================================
#
# Fixed bilingual (Hebrew / English) tables shared by the column
# classifier's status detector and the record normalizer.
#
# STATUS_KEYWORDS is evaluated top to bottom; the first status whose
# keyword is contained in the lower-cased value wins.
#
# ==============================================

from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from .record import DeliveryStatus


STATUS_KEYWORDS: Tuple[Tuple[DeliveryStatus, Tuple[str, ...]], ...] = (
    (DeliveryStatus.DELIVERED, (
        "delivered", "נמסר", "completed", "הושלם", "נמסרה", "נמסרו", "complete", "done",
    )),
    (DeliveryStatus.PENDING, (
        "pending", "ממתין", "waiting", "new", "חדש", "open", "created",
    )),
    (DeliveryStatus.IN_PROGRESS, (
        "in_progress", "progress", "בדרך", "out for delivery", "בדרך למסירה",
        "delivery in progress", "בתהליך", "בדרכו", "נשלח",
    )),
    (DeliveryStatus.FAILED, (
        "failed", "נכשל", "customer not answer", "לקוח לא ענה", "problem", "בעיה",
        "error", "cancelled", "מבוטל",
    )),
    (DeliveryStatus.RETURNED, (
        "return", "חבילה חזרה", "החזרה", "הוחזר", "sent back", "חזר",
    )),
)

ALL_STATUS_KEYWORDS: Tuple[str, ...] = tuple(
    keyword for _, keywords in STATUS_KEYWORDS for keyword in keywords
)

# Hebrew display labels
STATUS_LABELS: Dict[DeliveryStatus, str] = {
    DeliveryStatus.PENDING: "ממתין",
    DeliveryStatus.IN_PROGRESS: "בדרך",
    DeliveryStatus.DELIVERED: "נמסר",
    DeliveryStatus.FAILED: "נכשל",
    DeliveryStatus.RETURNED: "הוחזר",
}


def status_options(statuses: Optional[Iterable[DeliveryStatus]] = None) -> List[Dict[str, str]]:
    """
    {value, label} choices for a status picker, in DeliveryStatus order.

    Only the given statuses are offered; with none, all five are.
    """
    present = set(statuses or ())
    chosen = [s for s in DeliveryStatus if s in present] or list(DeliveryStatus)
    return [{"value": s.value, "label": STATUS_LABELS[s]} for s in chosen]

# A phone cell containing any of these is a mis-copied status, not a number
PHONE_STATUS_MARKERS: Tuple[str, ...] = ("status", "סטטוס") + ALL_STATUS_KEYWORDS

NULL_VARIANTS: FrozenSet[str] = frozenset({"", "null", "undefined", "none", "nan"})

UNKNOWN_NAME_VALUES: FrozenSet[str] = frozenset({"לא ידוע", "ללא שם", "unknown", "n/a"})

ADDRESS_FALLBACK = "כתובת לא זמינה"
CUSTOMER_LABEL_PREFIX = "לקוח "
LOCATION_LABEL_PREFIX = "לקוח ב"
DATE_NAME_PREFIX = "[DATE]"
HEBREW_DATE_PREFIX = "תאריך:"
AUTO_TRACKING_PREFIX = "AUTO-"
DUPLICATE_MARKER = "-DUP-"

COUNTRY_CODE = "972"

KNOWN_LOCATIONS: Tuple[str, ...] = (
    "קרני שומרון",
    "מעלה שומרון",
    "גינות שומרון",
    "שומרון",
    "קדומים",
    "אריאל",
    "עמנואל",
    "karnei shomron",
    "karney shomron",
    "karni shomron",
    "maale shomron",
    "ginot shomron",
    "kedumim",
    "ariel",
    "emanuel",
)
