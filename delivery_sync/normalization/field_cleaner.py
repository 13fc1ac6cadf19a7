# ==============================================
# FieldCleaner
# ==============================================
#
# PURPOSE:
#   Per-field cleaning and canonicalization rules applied by the
#   RecordNormalizer to a single cell value.
#
# WHY THIS CLASS EXISTS:
#   Sheet cells arrive as free text typed by people in two languages.
#   The same status is written "נמסר", "Delivered" or "done"; phone
#   numbers come with dashes, country codes or not at all; the name
#   column often holds a date, a tracking code or just a town.
#   Each rule lives here so it can be tested without a full sheet.
#
# CLASS: FieldCleaner
# -------------------
#   Stateless utility class (classmethods only).
#
#   Methods:
#   --------
#   - clean_text(value) -> str
#       str(), trim, collapse whitespace, null variants → "".
#
#   - normalize_status(value) -> DeliveryStatus
#       Keyword containment in fixed priority order, default PENDING.
#
#   - normalize_phone(value) -> str
#       Canonical "+972…" or "" when invalid / mis-copied status.
#
#   - clean_tracking(value) -> str
#   - find_tracking(cells) -> str
#       Scan a row for a tracking-code-shaped cell.
#
#   - clean_address(value) -> str
#   - normalize_date(value) -> str
#
#   - classify_name(value, tracking_number, known_locations)
#         -> (NameKind, str)
#       Detect dates, tracking placeholders and bare locations that
#       leak into the name column and replace them with labels.
#
# ==============================================

import re
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Tuple

from .record import DeliveryStatus
from .value_detector import ValueDetector
from .vocabulary import (
    COUNTRY_CODE,
    CUSTOMER_LABEL_PREFIX,
    DATE_NAME_PREFIX,
    HEBREW_DATE_PREFIX,
    KNOWN_LOCATIONS,
    LOCATION_LABEL_PREFIX,
    NULL_VARIANTS,
    PHONE_STATUS_MARKERS,
    STATUS_KEYWORDS,
    UNKNOWN_NAME_VALUES,
)


class NameKind(Enum):
    """What a name cell turned out to contain."""
    GIVEN = "given"
    DATE = "date"
    TRACKING = "tracking"
    LOCATION = "location"
    EMPTY = "empty"


# Names of these kinds carry no information about the customer
NON_INFORMATIVE_NAME_KINDS = frozenset({NameKind.DATE, NameKind.TRACKING, NameKind.EMPTY})


class FieldCleaner:
    WHITESPACE_PATTERN = re.compile(r"\s+")
    NON_DIGIT_PATTERN = re.compile(r"\D")
    ADDRESS_EDGE_PATTERN = re.compile(r"^[\-,.\s]+|[\-,.\s]+$")
    AUTO_TRACKING_PATTERN = re.compile(r"^AUTO-\d+$", re.IGNORECASE)

    @classmethod
    def clean_text(cls, value: Any) -> str:
        if value is None:
            return ""
        text = cls.WHITESPACE_PATTERN.sub(" ", str(value)).strip()
        if text.lower() in NULL_VARIANTS:
            return ""
        return text

    @classmethod
    def normalize_status(cls, value: Any) -> DeliveryStatus:
        """
        Map a free-text status to the closed enumeration.

        Canonical values map to themselves; anything unrecognized
        (including empty) is PENDING.
        """
        if isinstance(value, DeliveryStatus):
            return value
        text = cls.clean_text(value).lower()
        if not text:
            return DeliveryStatus.PENDING
        for status, keywords in STATUS_KEYWORDS:
            if any(keyword in text for keyword in keywords):
                return status
        return DeliveryStatus.PENDING

    @classmethod
    def normalize_phone(cls, value: Any) -> str:
        """
        Canonicalize an Israeli phone number to "+972XXXXXXXXX".

        Examples:
            "050-123-4567"   → "+972501234567"
            "+972501234567"  → "+972501234567"
            "501234567"      → "+972501234567"
            "12"             → ""
            "נמסר"           → ""

        Returns:
            The canonical number, or "" when the value is not a phone
        """
        text = cls.clean_text(value)
        if not text:
            return ""

        # A status copied into the phone column must not become digits
        lowered = text.lower()
        if any(marker in lowered for marker in PHONE_STATUS_MARKERS):
            return ""

        digits = cls.NON_DIGIT_PATTERN.sub("", text)
        if digits.startswith("00" + COUNTRY_CODE):
            digits = digits[2:]

        if digits.startswith("0"):
            if len(digits) in (9, 10):
                return f"+{COUNTRY_CODE}{digits[1:]}"
            return ""
        if digits.startswith(COUNTRY_CODE):
            if len(digits) in (11, 12):
                return f"+{digits}"
            return ""
        if len(digits) in (9, 10):
            return f"+{COUNTRY_CODE}{digits}"
        return ""

    @classmethod
    def clean_tracking(cls, value: Any) -> str:
        text = cls.clean_text(value)
        return cls.WHITESPACE_PATTERN.sub("", text).upper()

    @classmethod
    def find_tracking(cls, cells: Iterable[Any]) -> str:
        """Return the first cell that looks like a tracking code, or ""."""
        for cell in cells:
            text = cls.clean_text(cell)
            if text and ValueDetector.is_tracking(text):
                return cls.clean_tracking(text)
        return ""

    @classmethod
    def clean_address(cls, value: Any) -> str:
        text = cls.clean_text(value)
        return cls.ADDRESS_EDGE_PATTERN.sub("", text).strip()

    @classmethod
    def normalize_date(cls, value: Any) -> str:
        """Rewrite gviz Date(...) cells as d/m/yyyy; keep other text as-is."""
        text = cls.clean_text(value)
        if text.startswith("Date("):
            parsed = ValueDetector.parse_date(text)
            if parsed:
                return cls.format_date(parsed)
        return text

    @staticmethod
    def format_date(parsed: Tuple[int, int, int]) -> str:
        day, month, year = parsed
        return f"{day}/{month}/{year}"

    @classmethod
    def classify_name(
        cls,
        value: Any,
        tracking_number: str,
        known_locations: Sequence[str] = KNOWN_LOCATIONS
    ) -> Tuple[NameKind, str]:
        """
        Classify a name cell and return the name to store.

        Rules (first match wins):
        1. Empty / "unknown"           → EMPTY,    "לקוח {tracking}"
        2. Date or date-tagged value   → DATE,     "[DATE] d/m/yyyy"
        3. AUTO-n, the tracking number,
           or an existing tracking label → TRACKING, "לקוח {tracking}"
        4. A bare known location       → LOCATION, "לקוח ב{location}"
        5. Anything else               → GIVEN,    unchanged

        Applying this to its own output returns the same name.

        Args:
            value: Raw name cell
            tracking_number: The record's final tracking number
            known_locations: Location names that are not customer names

        Returns:
            (kind, name)
        """
        text = cls.clean_text(value)
        tracking_label = f"{CUSTOMER_LABEL_PREFIX}{tracking_number}"

        if not text or text.lower() in UNKNOWN_NAME_VALUES:
            return NameKind.EMPTY, tracking_label

        date_text = cls._extract_date(text)
        if date_text is not None:
            return NameKind.DATE, f"{DATE_NAME_PREFIX} {date_text}".rstrip()

        if (
            cls.AUTO_TRACKING_PATTERN.match(text)
            or text.upper() == tracking_number.upper()
            or text == tracking_label
        ):
            return NameKind.TRACKING, tracking_label

        lowered = text.lower()
        for location in known_locations:
            location_lower = location.lower()
            if lowered == location_lower:
                return NameKind.LOCATION, f"{LOCATION_LABEL_PREFIX}{location}"
            if lowered == f"{LOCATION_LABEL_PREFIX}{location_lower}":
                return NameKind.LOCATION, text

        return NameKind.GIVEN, text

    @classmethod
    def _extract_date(cls, text: str) -> Optional[str]:
        # Returns the date part to show after the [DATE] tag, or None
        for prefix in (DATE_NAME_PREFIX, HEBREW_DATE_PREFIX):
            if text.startswith(prefix):
                rest = text[len(prefix):].strip()
                parsed = ValueDetector.parse_date(rest)
                return cls.format_date(parsed) if parsed else rest
        parsed = ValueDetector.parse_date(text)
        if parsed:
            return cls.format_date(parsed)
        return None
