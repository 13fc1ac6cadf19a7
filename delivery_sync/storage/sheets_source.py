# ==============================================
# GoogleSheetsSource
# ==============================================
#
# PURPOSE:
#   Remote row source. Downloads a published Google Sheet as CSV and
#   returns (headers, rows) exactly as typed, with no interpretation.
#
# ACCEPTED SOURCE REFERENCES:
#   - https://docs.google.com/spreadsheets/d/{id}/edit#gid=123
#   - https://docs.google.com/spreadsheets/d/{id}/edit?gid=123
#   - ...?key={id}
#   - a bare spreadsheet id (25-45 chars of [A-Za-z0-9_-])
#
# FAILURE MAPPING:
#   - network error / timeout / 5xx / 429   → SourceUnavailable
#   - other 4xx, HTML body, empty body,
#     unparsable reference                  → SourceMalformed
#
# CLASS: GoogleSheetsSource
# -------------------------
#   - fetch_raw_rows(source_ref=None) -> (headers, rows)
#   - export_url(source_ref) -> str
#   - clean_sheet_id(source_ref) -> str        (staticmethod)
#   - extract_gid(source_ref) -> str | None    (staticmethod)
#
# ==============================================

import csv
import io
import logging
import re
from typing import List, Optional, Tuple

import requests

from delivery_sync.errors import SourceMalformed, SourceUnavailable

logger = logging.getLogger(__name__)

EXPORT_URL_TEMPLATE = "https://docs.google.com/spreadsheets/d/{sheet_id}/export?format=csv&gid={gid}"

BARE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{25,45}$")
PATH_ID_PATTERN = re.compile(r"/d/([A-Za-z0-9_-]+)")
KEY_ID_PATTERN = re.compile(r"[?&]key=([A-Za-z0-9_-]+)")
GID_PATTERN = re.compile(r"[#?&]gid=(\d+)")


class GoogleSheetsSource:
    """
    Fetches raw rows from a Google Sheet CSV export.
    """

    def __init__(
        self,
        sheet_url: str = "",
        default_gid: str = "0",
        timeout: float = 15.0,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            sheet_url: Default source reference
            default_gid: Sheet tab used when the reference has no gid
            timeout: Request timeout in seconds
            session: HTTP session (a new one if None)
        """
        self.sheet_url = sheet_url
        self.default_gid = default_gid
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.sheet_url)

    @staticmethod
    def clean_sheet_id(source_ref: str) -> str:
        """
        Extract the spreadsheet id from a URL or bare id.

        Raises:
            SourceMalformed: no id can be found
        """
        ref = (source_ref or "").strip()
        if BARE_ID_PATTERN.match(ref):
            return ref
        for pattern in (PATH_ID_PATTERN, KEY_ID_PATTERN):
            match = pattern.search(ref)
            if match:
                return match.group(1)
        raise SourceMalformed(f"Not a Google Sheets reference: {source_ref!r}")

    @staticmethod
    def extract_gid(source_ref: str) -> Optional[str]:
        match = GID_PATTERN.search(source_ref or "")
        return match.group(1) if match else None

    def export_url(self, source_ref: str) -> str:
        sheet_id = self.clean_sheet_id(source_ref)
        gid = self.extract_gid(source_ref) or self.default_gid
        return EXPORT_URL_TEMPLATE.format(sheet_id=sheet_id, gid=gid)

    def fetch_raw_rows(self, source_ref: Optional[str] = None) -> Tuple[List[str], List[List[str]]]:
        """
        Download and split the sheet.

        Args:
            source_ref: Sheet URL or id (defaults to the configured one)

        Returns:
            (headers, rows) with rows as lists of cell strings

        Raises:
            SourceUnavailable: the sheet could not be reached
            SourceMalformed: the sheet answered with something unusable
        """
        ref = source_ref or self.sheet_url
        if not ref:
            raise SourceMalformed("No sheet configured")
        url = self.export_url(ref)

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise SourceUnavailable(f"Could not reach sheet: {e}") from e

        status = response.status_code
        if status >= 500 or status == 429:
            raise SourceUnavailable(f"Sheet server returned HTTP {status}")
        if status >= 400:
            raise SourceMalformed(f"Sheet request rejected with HTTP {status} (is it shared?)")

        content_type = response.headers.get("Content-Type", "")
        text = response.content.decode("utf-8-sig", errors="replace")
        if "text/html" in content_type or text.lstrip().lower().startswith(("<!doctype", "<html")):
            raise SourceMalformed("Sheet returned an HTML page instead of CSV (not published?)")

        headers, rows = self.parse_csv(text)
        logger.info("✓ Fetched %d rows × %d columns from sheet", len(rows), len(headers))
        return headers, rows

    @staticmethod
    def parse_csv(text: str) -> Tuple[List[str], List[List[str]]]:
        """
        Split CSV text into a header row and data rows.

        The first non-blank line is the header row.

        Raises:
            SourceMalformed: no header row
        """
        all_rows = list(csv.reader(io.StringIO(text)))
        start = next(
            (i for i, row in enumerate(all_rows) if any(cell.strip() for cell in row)),
            None,
        )
        if start is None:
            raise SourceMalformed("Sheet is empty")

        headers = [cell.strip() for cell in all_rows[start]]
        return headers, all_rows[start + 1:]
