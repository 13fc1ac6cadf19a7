import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Set

from .field_cleaner import FieldCleaner
from .record import DeliveryRecord, record_identifier
from .vocabulary import (
    ADDRESS_FALLBACK,
    AUTO_TRACKING_PREFIX,
    DUPLICATE_MARKER,
    KNOWN_LOCATIONS,
)
from delivery_sync.analysis.mapping import FieldMapping, SemanticField
from delivery_sync.errors import RowShapeError

logger = logging.getLogger(__name__)


class RecordNormalizer:
    """
    Turns raw sheet rows into DeliveryRecords using a FieldMapping.

    Rows are processed independently except for duplicate tracking
    numbers, which are disambiguated in row order.
    """

    def __init__(self, known_locations: Sequence[str] = KNOWN_LOCATIONS):
        self.known_locations = tuple(known_locations)

    def normalize(
        self,
        raw_rows: Sequence[Sequence[Any]],
        mapping: FieldMapping,
        fetched_at: Optional[str] = None
    ) -> List[DeliveryRecord]:
        """
        Normalize a batch of raw rows.

        Args:
            raw_rows: Rows of cells aligned to mapping.headers
            mapping: Column assignments from the classifier
            fetched_at: Default for empty status/scan dates

        Returns:
            One record per non-blank row, in row order

        Raises:
            RowShapeError: a row has non-blank cells beyond the header width
        """
        width = len(mapping.headers)
        seen: Set[str] = set()
        records: List[DeliveryRecord] = []

        for row_index, raw_row in enumerate(raw_rows):
            cells = self._fit_row(raw_row, width, row_index)
            if not any(FieldCleaner.clean_text(c) for c in cells):
                continue
            records.append(self.normalize_row(cells, row_index, mapping, seen, fetched_at))

        return records

    def normalize_row(
        self,
        cells: List[Any],
        row_index: int,
        mapping: FieldMapping,
        seen: Set[str],
        fetched_at: Optional[str] = None
    ) -> DeliveryRecord:
        values = self._extract(cells, mapping)
        defaulted = []

        tracking = FieldCleaner.clean_tracking(values.get(SemanticField.TRACKING_NUMBER))
        if not tracking:
            claimed = set(mapping.claimed_columns())
            unclaimed = [c for i, c in enumerate(cells) if i not in claimed]
            tracking = FieldCleaner.find_tracking(unclaimed)
        if not tracking:
            tracking = f"{AUTO_TRACKING_PREFIX}{row_index}"
            defaulted.append("tracking_number")

        if tracking in seen:
            logger.debug("Duplicate tracking number %s at row %d", tracking, row_index)
            tracking = f"{tracking}{DUPLICATE_MARKER}{row_index}"
        seen.add(tracking)

        raw_name = values.get(SemanticField.NAME)
        _, name = FieldCleaner.classify_name(raw_name, tracking, self.known_locations)
        if name != FieldCleaner.clean_text(raw_name):
            defaulted.append("name")

        address = FieldCleaner.clean_address(values.get(SemanticField.ADDRESS))
        if not address:
            address = ADDRESS_FALLBACK
            defaulted.append("address")

        raw_status = values.get(SemanticField.STATUS)
        status = FieldCleaner.normalize_status(raw_status)
        if not FieldCleaner.clean_text(raw_status):
            defaulted.append("status")

        status_date = FieldCleaner.normalize_date(values.get(SemanticField.STATUS_DATE))
        scan_date = FieldCleaner.normalize_date(values.get(SemanticField.SCAN_DATE))
        if fetched_at:
            status_date = status_date or fetched_at
            scan_date = scan_date or fetched_at

        return DeliveryRecord(
            id=record_identifier(tracking, row_index),
            tracking_number=tracking,
            name=name,
            address=address,
            status=status,
            phone=FieldCleaner.normalize_phone(values.get(SemanticField.PHONE)),
            status_date=status_date,
            scan_date=scan_date,
            assigned_to=FieldCleaner.clean_text(values.get(SemanticField.ASSIGNED_TO)),
            row_index=row_index,
            defaulted=tuple(defaulted),
        )

    def _extract(self, cells: List[Any], mapping: FieldMapping) -> Dict[SemanticField, Any]:
        values = {}
        for semantic_field, assignment in mapping.assignments.items():
            if assignment.column_index < len(cells):
                values[semantic_field] = cells[assignment.column_index]
        return values

    @staticmethod
    def _fit_row(raw_row: Sequence[Any], width: int, row_index: int) -> List[Any]:
        # Pad short rows; drop blank overflow; reject real overflow
        cells = list(raw_row)
        if len(cells) < width:
            return cells + [""] * (width - len(cells))
        if len(cells) > width:
            overflow = cells[width:]
            if any(FieldCleaner.clean_text(c) for c in overflow):
                raise RowShapeError(row_index, len(cells), width)
            return cells[:width]
        return cells

    def renormalize(self, record: DeliveryRecord) -> DeliveryRecord:
        """
        Re-apply the name and status rules to an already-normalized record.

        Synthetic names and canonical statuses come back unchanged.
        """
        _, name = FieldCleaner.classify_name(record.name, record.tracking_number, self.known_locations)
        status = FieldCleaner.normalize_status(record.status.value)
        if name == record.name and status is record.status:
            return record
        return replace(record, name=name, status=status)
