# ==============================================
# Header Keywords
# ==============================================
#
# Curated bilingual keyword lists used to match a header label to a
# semantic field, plus exclusion lists that veto a match when the
# header clearly names something else ("תאריך משלוח" mentions a
# shipment but is a date; "שם שליח" is a courier, not a customer).
#
# Both tables are read-only mappings and are passed to the classifier
# explicitly; tests can hand in their own.
#
# ==============================================

import re
from types import MappingProxyType
from typing import Mapping, Sequence, Tuple

from .mapping import SemanticField

_TRACKING = ("tracking", "track", "shipment", "order", "barcode", "id", "tm", "gwd",
             "מעקב", "משלוח", "מספר הזמנה", "ברקוד", "מזהה")
_NAME = ("name", "customer", "recipient", "full name",
         "שם", "לקוח", "מקבל", "נמען")
_PHONE = ("phone", "mobile", "cell", "tel",
          "טלפון", "נייד", "פלאפון")
_ADDRESS = ("address", "street", "city", "location",
            "כתובת", "רחוב", "עיר", "יישוב", "מיקום", "מען")
_STATUS = ("status", "state", "condition",
           "סטטוס", "מצב")
_STATUS_DATE = ("status date", "update date", "updated", "last update",
                "תאריך סטטוס", "תאריך עדכון", "עודכן")
_SCAN_DATE = ("scan date", "scanned", "created", "received", "date",
              "תאריך סריקה", "תאריך קליטה", "תאריך")
_ASSIGNED_TO = ("courier", "driver", "assigned",
                "שליח", "נהג", "מחלק", "מוביל", "שיוך")

_DATE_WORDS = ("date", "תאריך", "updated", "עודכן")

HEADER_KEYWORDS: Mapping[SemanticField, Tuple[str, ...]] = MappingProxyType({
    SemanticField.TRACKING_NUMBER: _TRACKING,
    SemanticField.NAME: _NAME,
    SemanticField.PHONE: _PHONE,
    SemanticField.ADDRESS: _ADDRESS,
    SemanticField.STATUS: _STATUS,
    SemanticField.STATUS_DATE: _STATUS_DATE,
    SemanticField.SCAN_DATE: _SCAN_DATE,
    SemanticField.ASSIGNED_TO: _ASSIGNED_TO,
})

HEADER_EXCLUSIONS: Mapping[SemanticField, Tuple[str, ...]] = MappingProxyType({
    SemanticField.TRACKING_NUMBER: _PHONE + _STATUS + _DATE_WORDS,
    SemanticField.NAME: _ASSIGNED_TO + _PHONE + _ADDRESS + ("id", "מזהה", "מספר"),
    SemanticField.STATUS: _DATE_WORDS,
    SemanticField.SCAN_DATE: _STATUS_DATE + ("status", "סטטוס"),
    SemanticField.ASSIGNED_TO: _PHONE,
})

_TOKEN_SPLIT = re.compile(r"[^0-9a-z\u0590-\u05FF]+")


def keyword_in_header(keyword: str, header: str) -> bool:
    """
    Case-insensitive keyword test.

    Short latin keywords (3 chars or fewer, e.g. "id", "tel") must be a
    whole token so "paid" or "hotel" do not match.
    """
    header_lower = header.lower()
    keyword_lower = keyword.lower()
    if keyword_lower.isascii() and len(keyword_lower) <= 3:
        return keyword_lower in _TOKEN_SPLIT.split(header_lower)
    return keyword_lower in header_lower


def header_matches(
    header: str,
    keywords: Sequence[str],
    exclusions: Sequence[str] = ()
) -> bool:
    """True when the header names a keyword and no exclusion."""
    if not header:
        return False
    if not any(keyword_in_header(k, header) for k in keywords):
        return False
    return not any(keyword_in_header(x, header) for x in exclusions)
