# ==============================================
# ValueDetector
# ==============================================
#
# PURPOSE:
#   Independent pattern detectors for a single raw cell value.
#   The column analyzer runs every sampled cell through all of them
#   and counts hits per column; the normalizer reuses the tracking
#   and date detectors when cleaning rows.
#
# CLASS: ValueDetector
# --------------------
#   Stateless. All detectors are classmethods taking a string and
#   returning bool, so each one can be tested on its own.
#
#   Detectors:
#   ----------
#   - is_phone(value)     → local or +972 phone number shape
#   - is_tracking(value)  → courier / postal tracking code
#   - is_date(value)      → d/m/y, ISO, or gviz Date(...) cell
#   - is_address(value)   → street + house number, long enough
#   - is_status(value)    → contains a status vocabulary keyword
#   - is_name(value)      → 1-4 alphabetic words, no digits
#   - is_email(value)
#   - is_url(value)
#
#   Helpers:
#   --------
#   - script_class(value) -> "hebrew" | "latin" | "mixed" | None
#   - parse_date(value) -> (day, month, year) | None
#
# ==============================================

import re
from typing import Optional, Tuple

from .vocabulary import ALL_STATUS_KEYWORDS


class ValueDetector:
    PHONE_STRIP_PATTERN = re.compile(r"[\s\-().+]")
    PHONE_DIGITS_PATTERN = re.compile(r"^(?:0\d{8,9}|972\d{8,9}|00972\d{8,9})$")

    TRACKING_PATTERNS = (
        re.compile(r"^[A-Z]{2}\d{9}[A-Z]{2}$"),          # UPU S10, e.g. RR123456789IL
        re.compile(r"^IL\d{10,12}$"),
        re.compile(r"^(?:GWD|TMU|TM|LY|CX|EE|LP|ZA)\d{6,13}$"),
        re.compile(r"^(?=.*[A-Z])(?=(?:.*\d){6})[A-Z0-9\-]{8,20}$"),
    )
    ISRAEL_POST_PATTERNS = (
        re.compile(r"^[A-Z]{2}\d{9}IL$"),
        re.compile(r"^IL\d{10,12}$"),
    )

    DMY_PATTERN = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2,4})$")
    ISO_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ][\d:.]+Z?)?$")
    GVIZ_DATE_PATTERN = re.compile(r"^Date\((\d{4}),\s*(\d{1,2}),\s*(\d{1,2})(?:,[\d,\s]*)?\)$")

    ADDRESS_PATTERN = re.compile(r"\d+\s*[^\W\d_]{2,}|[^\W\d_]{2,}\.?\s+\d+")
    ADDRESS_MIN_LENGTH = 10

    NAME_PATTERN = re.compile(
        r"^[\u0590-\u05FFA-Za-z][\u0590-\u05FFA-Za-z'\"`.\-]*"
        r"(?:\s+[\u0590-\u05FFA-Za-z'\"`.\-]+){0,3}$"
    )
    NAME_MAX_LENGTH = 40
    STATUS_MAX_LENGTH = 30

    EMAIL_PATTERN = re.compile(r"^[A-Z0-9._%+\-]+@[A-Z0-9.\-]+\.[A-Z]{2,}$", re.IGNORECASE)
    URL_PATTERN = re.compile(r"^(?:https?://|www\.)\S+$", re.IGNORECASE)

    HEBREW_PATTERN = re.compile(r"[\u0590-\u05FF]")
    LATIN_PATTERN = re.compile(r"[A-Za-z]")

    @classmethod
    def is_phone(cls, value: str) -> bool:
        if cls.LATIN_PATTERN.search(value) or cls.HEBREW_PATTERN.search(value):
            return False
        digits = cls.PHONE_STRIP_PATTERN.sub("", value.strip())
        return bool(cls.PHONE_DIGITS_PATTERN.match(digits))

    @classmethod
    def is_tracking(cls, value: str) -> bool:
        candidate = re.sub(r"\s+", "", value).upper()
        return any(pattern.match(candidate) for pattern in cls.TRACKING_PATTERNS)

    @classmethod
    def is_israel_post_tracking(cls, value: str) -> bool:
        candidate = re.sub(r"\s+", "", value).upper()
        return any(pattern.match(candidate) for pattern in cls.ISRAEL_POST_PATTERNS)

    @classmethod
    def is_date(cls, value: str) -> bool:
        return cls.parse_date(value) is not None

    @classmethod
    def is_address(cls, value: str) -> bool:
        text = value.strip()
        if len(text) <= cls.ADDRESS_MIN_LENGTH:
            return False
        if cls.is_date(text) or cls.is_phone(text):
            return False
        return bool(cls.ADDRESS_PATTERN.search(text))

    @classmethod
    def is_status(cls, value: str) -> bool:
        text = value.strip().lower()
        if not text or len(text) > cls.STATUS_MAX_LENGTH:
            return False
        return any(keyword in text for keyword in ALL_STATUS_KEYWORDS)

    @classmethod
    def is_name(cls, value: str) -> bool:
        text = value.strip()
        if len(text) < 2 or len(text) > cls.NAME_MAX_LENGTH:
            return False
        if not cls.NAME_PATTERN.match(text):
            return False
        return not cls.is_status(text)

    @classmethod
    def is_email(cls, value: str) -> bool:
        return bool(cls.EMAIL_PATTERN.match(value.strip()))

    @classmethod
    def is_url(cls, value: str) -> bool:
        return bool(cls.URL_PATTERN.match(value.strip()))

    @classmethod
    def script_class(cls, value: str) -> Optional[str]:
        """Return which alphabet the value is written in, or None if neither."""
        has_hebrew = bool(cls.HEBREW_PATTERN.search(value))
        has_latin = bool(cls.LATIN_PATTERN.search(value))
        if has_hebrew and has_latin:
            return "mixed"
        if has_hebrew:
            return "hebrew"
        if has_latin:
            return "latin"
        return None

    @classmethod
    def parse_date(cls, value: str) -> Optional[Tuple[int, int, int]]:
        """
        Parse a date-like cell into (day, month, year).

        gviz cells use a 0-based month: Date(2024,5,5) is 5 June 2024.
        Two-digit years are read as 20xx.

        Returns:
            (day, month, year) or None when the value is not a date
        """
        text = value.strip()
        match = cls.DMY_PATTERN.match(text)
        if match:
            day, month, year = (int(part) for part in match.groups())
            if year < 100:
                year += 2000
            return cls._valid(day, month, year)

        match = cls.ISO_PATTERN.match(text)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return cls._valid(day, month, year)

        match = cls.GVIZ_DATE_PATTERN.match(text)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return cls._valid(day, month + 1, year)

        return None

    @staticmethod
    def _valid(day: int, month: int, year: int) -> Optional[Tuple[int, int, int]]:
        if 1 <= day <= 31 and 1 <= month <= 12 and year >= 1900:
            return day, month, year
        return None
