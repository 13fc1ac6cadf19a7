# ==============================================
# Mapping (Data Classes)
# ==============================================
#
# PURPOSE:
#   Data classes that represent the OUTPUT of column classification
#   and the configuration that controls it.
#
# WHY THIS FILE EXISTS:
#   The classifier, the normalizer, the snapshot cache and the manual
#   override path all pass the same FieldMapping around. Keeping it
#   apart from the scoring logic lets persistence load a mapping
#   without importing the classifier.
#
# ENUMS:
# ------
# - SemanticField(Enum): the 8 target attributes a column can map to
# - AssignmentSource(Enum): CLASSIFIED, FALLBACK, PRIOR, MANUAL
#
# CLASSES:
# --------
# - FieldAssignment (dataclass)
#     One field → one column, with confidence in [0, 100].
#
# - FieldMapping (dataclass)
#     All assignments for one header set.
#
#     Attributes:
#     -----------
#     - headers: list[str]              → Header labels the mapping was built for
#     - assignments: dict[SemanticField, FieldAssignment]
#     - unresolved: list[SemanticField] → Required fields needing manual mapping
#     - detected_format: str            → "israel_post" | "generic_delivery" | "unknown"
#     - header_hash: str                → SHA-256 of the header set
#
#     Methods:
#     --------
#     - column_for(field) / confidence(field)
#     - matches_headers(headers) -> bool
#     - with_override(field, column_ref) -> FieldMapping
#     - to_dict() / from_dict()
#
# - ClassificationThresholds (dataclass)
#     Every tunable number the classifier uses, in one place.
#
# - MappingHistory (dataclass)
#     Last N accepted mappings as {field: header label}; tie-break only.
#
# ==============================================

import hashlib
import json
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union


class SemanticField(Enum):
    """Target attributes a source column may be mapped to."""
    TRACKING_NUMBER = "trackingNumber"
    NAME = "name"
    PHONE = "phone"
    ADDRESS = "address"
    STATUS = "status"
    STATUS_DATE = "statusDate"
    SCAN_DATE = "scanDate"
    ASSIGNED_TO = "assignedTo"


# Greedy assignment order; the first five are required
FIELD_PRIORITY: Tuple[SemanticField, ...] = (
    SemanticField.TRACKING_NUMBER,
    SemanticField.NAME,
    SemanticField.PHONE,
    SemanticField.ADDRESS,
    SemanticField.STATUS,
    SemanticField.STATUS_DATE,
    SemanticField.SCAN_DATE,
    SemanticField.ASSIGNED_TO,
)
REQUIRED_FIELDS: Tuple[SemanticField, ...] = FIELD_PRIORITY[:5]

ColumnRef = Union[int, str]


class AssignmentSource(Enum):
    """How a field got its column."""
    CLASSIFIED = "classified"
    FALLBACK = "fallback"
    PRIOR = "prior"
    MANUAL = "manual"


_WHITESPACE = re.compile(r"\s+")
_NULL_LABELS = frozenset({"", "null", "undefined", "none", "nan"})


def normalize_header(label: Any) -> str:
    """Trim and collapse whitespace; null-like labels become "". Same rule as cell text."""
    if label is None:
        return ""
    text = _WHITESPACE.sub(" ", str(label)).strip()
    return "" if text.lower() in _NULL_LABELS else text


def header_set_hash(headers: Sequence[Any]) -> str:
    """SHA-256 over the ordered, normalized header labels."""
    payload = json.dumps([normalize_header(h) for h in headers], ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def resolve_column(headers: Sequence[str], column_ref: ColumnRef) -> int:
    """
    Turn a column reference (index or header label) into an index.

    Raises:
        ValueError: if the index is out of range or the label is unknown
    """
    if isinstance(column_ref, int):
        if 0 <= column_ref < len(headers):
            return column_ref
        raise ValueError(f"Column index {column_ref} out of range (0..{len(headers) - 1})")
    label = normalize_header(column_ref)
    for index, header in enumerate(headers):
        if label and normalize_header(header) == label:
            return index
    raise ValueError(f"No column labelled '{column_ref}'")


@dataclass
class FieldAssignment:
    """A single semantic field bound to a single source column."""
    field: SemanticField
    column_index: int
    column_label: str
    confidence: float  # 0..100
    source: AssignmentSource = AssignmentSource.CLASSIFIED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field.value,
            "column_index": self.column_index,
            "column_label": self.column_label,
            "confidence": self.confidence,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldAssignment":
        return cls(
            field=SemanticField(data["field"]),
            column_index=int(data["column_index"]),
            column_label=data.get("column_label", ""),
            confidence=float(data.get("confidence", 0.0)),
            source=AssignmentSource(data.get("source", AssignmentSource.CLASSIFIED.value)),
        )


@dataclass
class FieldMapping:
    """
    Column assignments for one header set.

    Invariant: no column index appears in more than one assignment.
    """

    headers: List[str]
    assignments: Dict[SemanticField, FieldAssignment] = field(default_factory=dict)
    unresolved: List[SemanticField] = field(default_factory=list)
    detected_format: str = "unknown"
    header_hash: str = ""

    def __post_init__(self):
        """Derive the header hash when it was not supplied."""
        self.headers = [str(h) for h in self.headers]
        if not self.header_hash:
            self.header_hash = header_set_hash(self.headers)

    def column_for(self, semantic_field: SemanticField) -> Optional[int]:
        assignment = self.assignments.get(semantic_field)
        return assignment.column_index if assignment else None

    def confidence(self, semantic_field: SemanticField) -> float:
        assignment = self.assignments.get(semantic_field)
        return assignment.confidence if assignment else 0.0

    def claimed_columns(self) -> Dict[int, SemanticField]:
        return {a.column_index: f for f, a in self.assignments.items()}

    def matches_headers(self, headers: Sequence[str]) -> bool:
        """True when this mapping was built for exactly this header set."""
        return self.header_hash == header_set_hash(headers)

    def with_override(self, semantic_field: SemanticField, column_ref: ColumnRef) -> "FieldMapping":
        """
        Return a copy with one field manually bound to a column.

        Other fields keep their confidence. A field that previously
        claimed the column loses it (and becomes unresolved if required).

        Args:
            semantic_field: Field to override
            column_ref: Column index or header label

        Returns:
            A new FieldMapping
        """
        column_index = resolve_column(self.headers, column_ref)
        assignments = {
            f: replace(a) for f, a in self.assignments.items()
            if not (a.column_index == column_index and f is not semantic_field)
        }
        assignments[semantic_field] = FieldAssignment(
            field=semantic_field,
            column_index=column_index,
            column_label=self.headers[column_index],
            confidence=100.0,
            source=AssignmentSource.MANUAL,
        )

        unresolved = [f for f in self.unresolved if f is not semantic_field]
        for required in REQUIRED_FIELDS:
            if required not in assignments and required not in unresolved:
                unresolved.append(required)
        unresolved.sort(key=FIELD_PRIORITY.index)

        return FieldMapping(
            headers=list(self.headers),
            assignments=_ordered(assignments),
            unresolved=unresolved,
            detected_format=self.detected_format,
            header_hash=self.header_hash,
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize the mapping for persistence.

        Assignments are written in priority order so two equal
        mappings always serialize identically.
        """
        return {
            "headers": list(self.headers),
            "header_hash": self.header_hash,
            "assignments": [
                self.assignments[f].to_dict() for f in FIELD_PRIORITY if f in self.assignments
            ],
            "unresolved": [f.value for f in self.unresolved],
            "detected_format": self.detected_format,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMapping":
        assignments = {}
        for item in data.get("assignments", []):
            assignment = FieldAssignment.from_dict(item)
            assignments[assignment.field] = assignment
        return cls(
            headers=list(data.get("headers", [])),
            assignments=_ordered(assignments),
            unresolved=[SemanticField(v) for v in data.get("unresolved", [])],
            detected_format=data.get("detected_format", "unknown"),
            header_hash=data.get("header_hash", ""),
        )


def _ordered(assignments: Dict[SemanticField, FieldAssignment]) -> Dict[SemanticField, FieldAssignment]:
    return {f: assignments[f] for f in FIELD_PRIORITY if f in assignments}


@dataclass(frozen=True)
class ClassificationThresholds:
    """
    Configurable thresholds that control column scoring and confidence.

    score(column, field) = header_match * header_weight
                         + pattern_hit_rate * pattern_weight
                         + shape bonus
    """

    # --- Scoring weights ---
    header_weight: float = 60.0
    """
    Points for a header keyword match. Larger than any content score can
    reach so an explicit header wins over content sniffing.
    """

    pattern_weight: float = 30.0
    """Points at a 100% pattern hit rate (scaled linearly)."""

    min_assign_score: float = 15.0
    """
    Greedy pass skips a field whose best remaining score is below this.
    Higher than every shape bonus so shape alone never claims a column.
    """

    # --- Shape bonuses ---
    status_max_cardinality: int = 10
    """Status column bonus applies when it has fewer unique values than this."""

    status_shape_bonus: float = 10.0

    address_min_avg_length: float = 15.0
    """Address column bonus applies when the average value is longer than this."""

    address_shape_bonus: float = 10.0

    name_min_avg_length: float = 3.0
    name_max_avg_length: float = 30.0
    name_shape_bonus: float = 5.0

    tracking_min_unique_ratio: float = 0.9
    """Tracking column bonus applies when values are (almost) all distinct."""

    tracking_shape_bonus: float = 5.0

    # --- Confidence ---
    confidence_pattern_weight: float = 50.0
    confidence_header_weight: float = 50.0

    fallback_confidence_factor: float = 0.5
    fallback_max_confidence: float = 30.0
    """Fields filled by the best-effort pass are scaled and capped."""

    manual_resolution_confidence: float = 50.0
    """Required fields below this confidence are listed as unresolved."""

    # --- Prior / history ---
    prior_overlap_ratio: float = 0.5
    """A prior mapping is reused when more than this share of its headers still exist."""

    history_min_fields: int = 3
    """Mappings with fewer assigned fields are not recorded in history."""


@dataclass(frozen=True)
class MappingHistory:
    """
    Bounded, immutable list of recently accepted mappings.

    Each entry is {semantic field value: header label}. Used only to
    break score ties; record() returns a new history.
    """

    entries: Tuple[Tuple[Tuple[str, str], ...], ...] = ()
    max_entries: int = 5

    def record(self, mapping: FieldMapping, min_fields: int = 3) -> "MappingHistory":
        """Return a history with `mapping` appended (oldest dropped)."""
        if len(mapping.assignments) < min_fields:
            return self
        entry = tuple(
            (f.value, a.column_label.strip()) for f, a in mapping.assignments.items()
        )
        entries = (self.entries + (entry,))[-self.max_entries:]
        return MappingHistory(entries=entries, max_entries=self.max_entries)

    def votes(self, semantic_field: SemanticField, label: str) -> int:
        """How many entries mapped `label` to `semantic_field`."""
        wanted = (semantic_field.value, label.strip())
        return sum(1 for entry in self.entries if wanted in entry)

    def to_list(self) -> List[Dict[str, str]]:
        return [dict(entry) for entry in self.entries]

    @classmethod
    def from_list(cls, data: List[Dict[str, str]], max_entries: int = 5) -> "MappingHistory":
        entries = tuple(tuple(sorted(item.items())) for item in data)
        return cls(entries=entries[-max_entries:], max_entries=max_entries)
