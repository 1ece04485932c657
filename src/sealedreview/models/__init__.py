"""Core data models for SealedReview."""

from sealedreview.models.review import (
    ReviewInput,
    ReviewRecord,
    ReviewState,
    ReviewStats,
    new_record_id,
)
from sealedreview.models.session import SessionStatus, VerificationSession
from sealedreview.models.status import StatusEvent, StatusKind

__all__ = [
    "ReviewInput",
    "ReviewRecord",
    "ReviewState",
    "ReviewStats",
    "SessionStatus",
    "StatusEvent",
    "StatusKind",
    "VerificationSession",
    "new_record_id",
]
