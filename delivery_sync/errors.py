# ==============================================
# Error Taxonomy
# ==============================================
#
# PURPOSE:
#   One exception hierarchy shared by every topic so callers can
#   catch DeliverySyncError (or a specific subclass) without knowing
#   which collaborator failed underneath.
#
# CLASSES:
# --------
# - DeliverySyncError       → Base class
# - SourceUnavailable       → Network/remote failure (recoverable via cache or retry)
# - SourceMalformed         → Remote answered but the data is unusable
#     - RowShapeError       → Row wider than the header set with non-blank overflow
# - MappingIncomplete       → Required fields without a confident column (non-fatal)
# - MutationRejected        → Remote refused a status push (change stays queued)
#
# Duplicate tracking numbers are resolved inside the normalizer and
# never raised.
#
# ==============================================

from typing import Iterable, List


class DeliverySyncError(Exception):
    """Base class for all delivery sync errors."""


class SourceUnavailable(DeliverySyncError):
    """The remote source or store could not be reached."""


class SourceMalformed(DeliverySyncError):
    """The remote source responded but its data cannot be used."""


class RowShapeError(SourceMalformed):
    """A raw row cannot be reconciled with the header set."""

    def __init__(self, row_index: int, row_width: int, header_width: int):
        self.row_index = row_index
        self.row_width = row_width
        self.header_width = header_width
        super().__init__(
            f"Row {row_index} has {row_width} cells with non-blank overflow "
            f"beyond {header_width} headers"
        )


class MappingIncomplete(DeliverySyncError):
    """
    Required fields the classifier could not fill with confidence.

    Never raised by the classifier itself; the orchestrator attaches it
    to a sync result so a manual-mapping UI can pick it up.
    """

    def __init__(self, fields: Iterable[str]):
        self.fields: List[str] = list(fields)
        super().__init__(
            "Fields need manual mapping: " + ", ".join(self.fields)
        )


class MutationRejected(DeliverySyncError):
    """The remote store rejected a status mutation."""

    def __init__(self, target_id: str, reason: str = ""):
        self.target_id = target_id
        self.reason = reason
        message = f"Status push for '{target_id}' rejected"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
