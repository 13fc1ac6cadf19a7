# ==============================================
# ColumnClassifier
# ==============================================
#
# PURPOSE:
#   Decide which sheet column holds which semantic field, with a
#   confidence score per field, without any fixed schema.
#
# WHY THIS CLASS EXISTS:
#   Every sheet we sync was laid out by a different person. Headers
#   may be Hebrew, English, blank, or duplicated, and columns come in
#   any order. The classifier scores every column against every field
#   and hands the normalizer a best-effort FieldMapping.
#
# CLASS: ColumnClassifier
# -----------------------
#   Constructor:
#   ------------
#   - __init__(thresholds=None, header_keywords=None, header_exclusions=None,
#              sample_size=50)
#
#   Public Methods:
#   ---------------
#   - classify(headers, sample_rows, prior=None, history=None) -> FieldMapping
#       1. Build a ColumnProfile per column (ColumnAnalyzer).
#       2. Score every (column, field) pair:
#            header_match * W1 + pattern_hit_rate * W2 + shape_bonus
#       3. Reuse the prior mapping's columns when more than half of
#          its headers still exist.
#       4. Greedy pass in FIELD_PRIORITY order, never reusing a
#          column, skipping scores below min_assign_score.
#       5. Best-effort pass for required fields still unmapped.
#       6. Confidence per field; fallback fields are capped low.
#       7. Required fields under manual_resolution_confidence are
#          listed in FieldMapping.unresolved.
#
#   - score(profile, field) -> float
#
# DETERMINISM:
#   Same headers + rows + prior + history → identical mapping.
#   Ties: higher score, then more history votes, then lower index.
#
# ==============================================

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .mapping import (
    FIELD_PRIORITY,
    REQUIRED_FIELDS,
    AssignmentSource,
    ClassificationThresholds,
    FieldAssignment,
    FieldMapping,
    MappingHistory,
    SemanticField,
    normalize_header,
)
from .column_profile import ColumnProfile
from .column_analyzer import ColumnAnalyzer
from .header_keywords import HEADER_EXCLUSIONS, HEADER_KEYWORDS, header_matches
from delivery_sync.normalization.field_cleaner import FieldCleaner
from delivery_sync.normalization.value_detector import ValueDetector

logger = logging.getLogger(__name__)

# Which content detector supports which field. None = header evidence only.
PATTERN_FOR_FIELD: Dict[SemanticField, Optional[str]] = {
    SemanticField.TRACKING_NUMBER: "tracking",
    SemanticField.NAME: "name",
    SemanticField.PHONE: "phone",
    SemanticField.ADDRESS: "address",
    SemanticField.STATUS: "status",
    SemanticField.STATUS_DATE: "date",
    SemanticField.SCAN_DATE: "date",
    SemanticField.ASSIGNED_TO: None,
}


class ColumnClassifier:
    """
    Scores sheet columns against semantic fields and assigns them.

    All configuration (thresholds, keyword tables) is passed in; the
    classifier keeps no state between calls.
    """

    def __init__(
        self,
        thresholds: ClassificationThresholds = None,
        header_keywords: Mapping[SemanticField, Sequence[str]] = None,
        header_exclusions: Mapping[SemanticField, Sequence[str]] = None,
        sample_size: int = 50
    ):
        """
        Args:
            thresholds: Scoring and confidence constants (defaults if None)
            header_keywords: Keyword list per field (bilingual defaults if None)
            header_exclusions: Veto keywords per field
            sample_size: Maximum rows profiled per call
        """
        self.thresholds = thresholds or ClassificationThresholds()
        self.header_keywords = header_keywords if header_keywords is not None else HEADER_KEYWORDS
        self.header_exclusions = header_exclusions if header_exclusions is not None else HEADER_EXCLUSIONS
        self.analyzer = ColumnAnalyzer(sample_size=sample_size)

    def classify(
        self,
        headers: Sequence[Any],
        sample_rows: Sequence[Sequence[Any]],
        prior: Optional[FieldMapping] = None,
        history: Optional[MappingHistory] = None
    ) -> FieldMapping:
        """
        Build a FieldMapping for one header set.

        Args:
            headers: Header labels
            sample_rows: Raw rows (only the first sample_size are read)
            prior: Previously accepted mapping for the same source
            history: Recently accepted mappings, used to break ties

        Returns:
            FieldMapping with confidences and unresolved required fields
        """
        header_list = [normalize_header(h) for h in headers]
        history = history or MappingHistory()
        sample = list(sample_rows)[:self.analyzer.sample_size]
        profiles = self.analyzer.build_profiles(header_list, sample)
        scores = {
            (p.index, f): self.score(p, f) for p in profiles for f in FIELD_PRIORITY
        }

        assignments: Dict[SemanticField, FieldAssignment] = {}
        claimed: Dict[int, SemanticField] = {}

        def assign(semantic_field: SemanticField, profile: ColumnProfile, source: AssignmentSource,
                   confidence: Optional[float] = None) -> None:
            if confidence is None:
                confidence = self.confidence(profile, semantic_field, source)
            assignments[semantic_field] = FieldAssignment(
                field=semantic_field,
                column_index=profile.index,
                column_label=profile.header,
                confidence=confidence,
                source=source,
            )
            claimed[profile.index] = semantic_field

        # Prior mapping: keep its columns while the sheet still looks the same
        if prior is not None and self._prior_applies(prior, header_list):
            # History only breaks ties when there is no direct prior
            history = MappingHistory()
            for semantic_field in FIELD_PRIORITY:
                previous = prior.assignments.get(semantic_field)
                if previous is None:
                    continue
                index = self._locate(previous, header_list, claimed)
                if index is None:
                    continue
                if previous.source is AssignmentSource.MANUAL:
                    assign(semantic_field, profiles[index], AssignmentSource.MANUAL, 100.0)
                elif previous.source is AssignmentSource.FALLBACK:
                    continue
                else:
                    assign(semantic_field, profiles[index], AssignmentSource.PRIOR)

        # Greedy pass
        for semantic_field in FIELD_PRIORITY:
            if semantic_field in assignments:
                continue
            best = self._best_column(semantic_field, profiles, claimed, scores, history)
            if best is None:
                continue
            best_score = scores[(best.index, semantic_field)]
            if best_score < self.thresholds.min_assign_score:
                logger.debug("Skipping %s: best score %.2f below threshold",
                             semantic_field.value, best_score)
                continue
            assign(semantic_field, best, AssignmentSource.CLASSIFIED)

        # Best-effort pass for required fields
        for semantic_field in REQUIRED_FIELDS:
            if semantic_field in assignments:
                continue
            best = self._best_column(semantic_field, profiles, claimed, scores, history)
            if best is None:
                continue
            assign(semantic_field, best, AssignmentSource.FALLBACK)
            logger.debug("Fallback %s → column %d", semantic_field.value, best.index)

        ordered = {f: assignments[f] for f in FIELD_PRIORITY if f in assignments}
        unresolved = [
            f for f in REQUIRED_FIELDS
            if f not in ordered
            or ordered[f].confidence < self.thresholds.manual_resolution_confidence
        ]

        mapping = FieldMapping(
            headers=header_list,
            assignments=ordered,
            unresolved=unresolved,
            detected_format=self._detect_format(ordered, sample),
        )

        logger.info("✓ Classified %d columns: %d fields mapped (%s)",
                    len(profiles), len(ordered), mapping.detected_format)
        if unresolved:
            logger.warning("⚠ Fields need manual mapping: %s",
                           ", ".join(f.value for f in unresolved))
        return mapping

    # ======================================
    # Scoring
    # ======================================
    def score(self, profile: ColumnProfile, semantic_field: SemanticField) -> float:
        """
        Score one column for one field.

        Returns:
            header_match * header_weight + hit_rate * pattern_weight + shape bonus
        """
        t = self.thresholds
        total = 0.0
        if self._header_match(profile.header, semantic_field):
            total += t.header_weight
        pattern = PATTERN_FOR_FIELD[semantic_field]
        if pattern:
            total += profile.hit_rate(pattern) * t.pattern_weight
        total += self._shape_bonus(profile, semantic_field)
        return round(total, 6)

    def confidence(
        self,
        profile: ColumnProfile,
        semantic_field: SemanticField,
        source: AssignmentSource = AssignmentSource.CLASSIFIED
    ) -> float:
        """
        Confidence in [0, 100] for a chosen column.

        Header-only fields (no content detector) count a header match
        as full evidence.
        """
        t = self.thresholds
        header = self._header_match(profile.header, semantic_field)
        pattern = PATTERN_FOR_FIELD[semantic_field]
        if pattern is None:
            value = 100.0 if header else 0.0
        else:
            value = profile.hit_rate(pattern) * t.confidence_pattern_weight
            if header:
                value += t.confidence_header_weight
        value = min(100.0, value)
        if source is AssignmentSource.FALLBACK:
            value = min(value * t.fallback_confidence_factor, t.fallback_max_confidence)
        return round(value, 1)

    def _header_match(self, header: str, semantic_field: SemanticField) -> bool:
        return header_matches(
            header,
            self.header_keywords.get(semantic_field, ()),
            self.header_exclusions.get(semantic_field, ()),
        )

    def _shape_bonus(self, profile: ColumnProfile, semantic_field: SemanticField) -> float:
        t = self.thresholds
        if profile.non_empty_count == 0:
            return 0.0

        if semantic_field is SemanticField.STATUS:
            if profile.unique_count < t.status_max_cardinality:
                return t.status_shape_bonus
        elif semantic_field is SemanticField.ADDRESS:
            if profile.avg_length > t.address_min_avg_length:
                return t.address_shape_bonus
        elif semantic_field is SemanticField.NAME:
            if t.name_min_avg_length <= profile.avg_length <= t.name_max_avg_length:
                return t.name_shape_bonus
        elif semantic_field is SemanticField.TRACKING_NUMBER:
            if profile.unique_ratio >= t.tracking_min_unique_ratio and profile.avg_word_count <= 1.0:
                return t.tracking_shape_bonus
        return 0.0

    # ======================================
    # Assignment helpers
    # ======================================
    def _best_column(
        self,
        semantic_field: SemanticField,
        profiles: List[ColumnProfile],
        claimed: Dict[int, SemanticField],
        scores: Dict[Tuple[int, SemanticField], float],
        history: MappingHistory
    ) -> Optional[ColumnProfile]:
        candidates = [p for p in profiles if p.index not in claimed]
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda p: (
                -scores[(p.index, semantic_field)],
                -history.votes(semantic_field, p.header),
                p.index,
            ),
        )

    def _prior_applies(self, prior: FieldMapping, headers: List[str]) -> bool:
        if not prior.assignments:
            return False
        present = set(h for h in headers if h)
        surviving = sum(
            1 for a in prior.assignments.values()
            if a.column_label.strip() and a.column_label.strip() in present
        )
        return surviving / len(prior.assignments) > self.thresholds.prior_overlap_ratio

    @staticmethod
    def _locate(
        previous: FieldAssignment,
        headers: List[str],
        claimed: Dict[int, SemanticField]
    ) -> Optional[int]:
        # Same position first (handles duplicate labels), then first free match
        label = previous.column_label.strip()
        if not label:
            return None
        index = previous.column_index
        if index < len(headers) and headers[index] == label and index not in claimed:
            return index
        for i, header in enumerate(headers):
            if header == label and i not in claimed:
                return i
        return None

    @staticmethod
    def _detect_format(
        assignments: Dict[SemanticField, FieldAssignment],
        sample_rows: Sequence[Sequence[Any]]
    ) -> str:
        tracking = assignments.get(SemanticField.TRACKING_NUMBER)
        if tracking is not None:
            values = [
                FieldCleaner.clean_text(row[tracking.column_index])
                for row in sample_rows
                if tracking.column_index < len(row)
            ]
            values = [v for v in values if v]
            if values:
                israel_post = sum(1 for v in values if ValueDetector.is_israel_post_tracking(v))
                if israel_post / len(values) > 0.5:
                    return "israel_post"

        core = (SemanticField.TRACKING_NUMBER, SemanticField.NAME, SemanticField.ADDRESS)
        if all(
            f in assignments and assignments[f].source is not AssignmentSource.FALLBACK
            for f in core
        ):
            return "generic_delivery"
        return "unknown"
