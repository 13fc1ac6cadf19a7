# ==============================================
# ColumnProfile
# ==============================================
#
# PURPOSE:
#   Data class that holds all observed statistics for a single sheet
#   column. This is the "evidence" the classifier scores.
#
# WHY THIS CLASS EXISTS:
#   A header label alone is unreliable (blank, duplicated, or just
#   "עמודה 3"). For each column we count how many sampled cells look
#   like a phone, a tracking code, a date, etc., and keep enough shape
#   information (cardinality, length, words) for the shape bonuses.
#   Profiles are built per classification call and never persisted.
#
# CLASS: ColumnProfile (dataclass)
# --------------------------------
#   Attributes:
#   -----------
#   - index: int                    → Column position
#   - header: str                   → Header label ("" when blank)
#   - sample_count: int             → Sampled rows seen
#   - non_empty_count: int          → Sampled cells with content
#   - pattern_hits: dict[str, int]  → {"phone": 12, "date": 0, ...}
#   - script_counts: dict[str, int] → {"hebrew": 30, "latin": 2, "mixed": 1}
#   - unique_values: set[str]
#   - total_length / total_words    → Running sums for averages
#
#   Computed Properties:
#   --------------------
#   - unique_count, avg_length, avg_word_count
#   - hit_rate(pattern) -> float    → hits / non-empty cells
#
#   Methods:
#   --------
#   - update(value: str, hits: list[str]) -> None
#   - to_dict() -> dict             → For debugging / logging only
#
# ==============================================

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Set

PATTERN_NAMES = ("phone", "tracking", "date", "address", "status", "name", "email", "url")


@dataclass
class ColumnProfile:
    """Observed statistics for one column over a bounded row sample."""

    # --- Core identity ---
    index: int
    header: str = ""

    # --- Counters ---
    sample_count: int = 0
    non_empty_count: int = 0
    pattern_hits: Dict[str, int] = field(
        default_factory=lambda: {name: 0 for name in PATTERN_NAMES}
    )
    script_counts: Dict[str, int] = field(
        default_factory=lambda: {"hebrew": 0, "latin": 0, "mixed": 0}
    )

    # --- Shape ---
    unique_values: Set[str] = field(default_factory=set)
    total_length: int = 0
    total_words: int = 0

    # ======================================
    # Update logic
    # ======================================
    def update(self, value: str, hits: Iterable[str], script: Optional[str] = None) -> None:
        """
        Record one sampled cell.

        Args:
            value: Cleaned cell text ("" for an empty cell)
            hits: Names of the detectors that matched this value
            script: "hebrew", "latin", "mixed" or None
        """
        self.sample_count += 1
        if not value:
            return

        self.non_empty_count += 1
        for name in hits:
            self.pattern_hits[name] = self.pattern_hits.get(name, 0) + 1
        if script:
            self.script_counts[script] = self.script_counts.get(script, 0) + 1

        self.unique_values.add(value)
        self.total_length += len(value)
        self.total_words += len(value.split())

    # ======================================
    # Computed properties
    # ======================================
    @property
    def unique_count(self) -> int:
        return len(self.unique_values)

    @property
    def unique_ratio(self) -> float:
        if self.non_empty_count == 0:
            return 0.0
        return self.unique_count / self.non_empty_count

    @property
    def avg_length(self) -> float:
        if self.non_empty_count == 0:
            return 0.0
        return self.total_length / self.non_empty_count

    @property
    def avg_word_count(self) -> float:
        if self.non_empty_count == 0:
            return 0.0
        return self.total_words / self.non_empty_count

    def hit_rate(self, pattern: str) -> float:
        """
        Fraction of non-empty sampled cells that matched `pattern`.

        Returns:
            0.0 for an empty column, otherwise a value in [0.0, 1.0]
        """
        if self.non_empty_count == 0:
            return 0.0
        return self.pattern_hits.get(pattern, 0) / self.non_empty_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "header": self.header,
            "sample_count": self.sample_count,
            "non_empty_count": self.non_empty_count,
            "pattern_hits": dict(self.pattern_hits),
            "script_counts": dict(self.script_counts),
            "unique_count": self.unique_count,
            "avg_length": round(self.avg_length, 2),
            "avg_word_count": round(self.avg_word_count, 2),
        }
