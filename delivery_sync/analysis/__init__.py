# ==============================================
# TOPIC 2: ANALYSIS & CLASSIFICATION
# ==============================================
#
# This package handles profiling sheet columns and deciding which
# column holds which semantic field (tracking number, name, phone...).
#
# Two-step process:
#   Step 1 (Analysis):       Sample rows → ColumnProfile per column
#   Step 2 (Classification): Score profiles + headers → FieldMapping
#
# Modules:
# --------
# - mapping.py          → FieldMapping, thresholds, history (output data classes)
# - column_profile.py   → Statistics for one column
# - column_analyzer.py  → Run sample rows through the value detectors
# - header_keywords.py  → Bilingual header keyword / exclusion tables
# - classifier.py       → Score columns and assign them to fields
#
# ==============================================

from .mapping import (
    AssignmentSource,
    ClassificationThresholds,
    FieldAssignment,
    FieldMapping,
    MappingHistory,
    SemanticField,
    FIELD_PRIORITY,
    REQUIRED_FIELDS,
)
from .column_profile import ColumnProfile
from .column_analyzer import ColumnAnalyzer
from .classifier import ColumnClassifier

__all__ = [
    "AssignmentSource",
    "ClassificationThresholds",
    "FieldAssignment",
    "FieldMapping",
    "MappingHistory",
    "SemanticField",
    "FIELD_PRIORITY",
    "REQUIRED_FIELDS",
    "ColumnProfile",
    "ColumnAnalyzer",
    "ColumnClassifier",
]
