"""
Custom exceptions for the venue deduplication domain

Merge failures carry the step that failed and the underlying cause so callers
can retry or investigate. Detection failures are wrapped separately.
"""
from typing import List, Optional

from core.exceptions import VenueCatalogError


class DeduplicationException(VenueCatalogError):
    """Duplicate detection errors that are not provider outages"""

    def __init__(self, message: str, venue_ids: Optional[List[int]] = None):
        super().__init__(
            message=message,
            error_code="DEDUPLICATION_ERROR",
            details={"venue_ids": list(venue_ids or [])},
            status_code=500,
        )
        self.venue_ids = list(venue_ids or [])


class MergeException(VenueCatalogError):
    """A merge step failed; the whole merge transaction was rolled back"""

    error_code_name = "MERGE_ERROR"
    http_status = 500

    def __init__(
        self,
        step: str,
        source_venue_id: int,
        target_venue_id: int,
        original_error: Optional[Exception] = None,
    ):
        message = f"Merge of venue {source_venue_id} into {target_venue_id} failed at step '{step}'"
        if original_error is not None:
            message += f": {original_error}"

        super().__init__(
            message=message,
            error_code=self.error_code_name,
            details={
                "step": step,
                "source_venue_id": source_venue_id,
                "target_venue_id": target_venue_id,
                "cause": repr(original_error) if original_error is not None else None,
            },
            status_code=self.http_status,
        )
        self.step = step
        self.source_venue_id = source_venue_id
        self.target_venue_id = target_venue_id
        self.original_error = original_error


class ConstraintViolationException(MergeException):
    """A merge step violated a foreign-key, uniqueness or check constraint"""

    error_code_name = "CONSTRAINT_VIOLATION"
    http_status = 409
