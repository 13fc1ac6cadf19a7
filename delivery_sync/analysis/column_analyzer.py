# ==============================================
# ColumnAnalyzer
# ==============================================
#
# PURPOSE:
#   Run a bounded sample of raw rows through every ValueDetector and
#   accumulate one ColumnProfile per header column.
#
# CLASS: ColumnAnalyzer
# ---------------------
#   Methods:
#   --------
#   - build_profiles(headers, sample_rows) -> list[ColumnProfile]
#       At most `sample_size` rows are read. Short rows count as empty
#       cells; cells beyond the header width are ignored.
#
#   - detect(value) -> list[str]
#       Names of the detectors that matched a single value.
#
# ==============================================

from typing import Any, Callable, Dict, List, Sequence

from .column_profile import ColumnProfile
from delivery_sync.normalization.field_cleaner import FieldCleaner
from delivery_sync.normalization.value_detector import ValueDetector


class ColumnAnalyzer:
    """
    Builds per-column evidence from sampled rows.

    Detectors are independent: a value can count as both "name" and
    "status" if it matches both.
    """

    DETECTORS: Dict[str, Callable[[str], bool]] = {
        "phone": ValueDetector.is_phone,
        "tracking": ValueDetector.is_tracking,
        "date": ValueDetector.is_date,
        "address": ValueDetector.is_address,
        "status": ValueDetector.is_status,
        "name": ValueDetector.is_name,
        "email": ValueDetector.is_email,
        "url": ValueDetector.is_url,
    }

    def __init__(self, sample_size: int = 50):
        """
        Args:
            sample_size: Maximum number of rows to inspect
        """
        self.sample_size = sample_size

    def build_profiles(
        self,
        headers: Sequence[Any],
        sample_rows: Sequence[Sequence[Any]]
    ) -> List[ColumnProfile]:
        """
        Build one profile per header column.

        Args:
            headers: Header labels (blanks and duplicates allowed)
            sample_rows: Raw rows; only the first `sample_size` are used

        Returns:
            Profiles in column order
        """
        profiles = [
            ColumnProfile(index=i, header=FieldCleaner.clean_text(h))
            for i, h in enumerate(headers)
        ]

        for row in list(sample_rows)[:self.sample_size]:
            for profile in profiles:
                raw = row[profile.index] if profile.index < len(row) else ""
                value = FieldCleaner.clean_text(raw)
                if not value:
                    profile.update("", ())
                    continue
                profile.update(value, self.detect(value), ValueDetector.script_class(value))

        return profiles

    def detect(self, value: str) -> List[str]:
        return [name for name, detector in self.DETECTORS.items() if detector(value)]
