"""Review models — the records, inputs and statistics of the review lifecycle.

A ReviewRecord is a read-only projection of one ledger row. The encrypted
score itself never appears here: only its opaque ciphertext handle and,
once a decryption proof has been accepted by the ledger, the clear value.

Invariants enforced by these models:
- clear_value is set if and only if is_verified is true.
- record_id, creator_address, ciphertext_handle and created_at are
  immutable (records are frozen; the registry replaces, never mutates).
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


RECORD_ID_PREFIX = "review-"


def new_record_id(now_ms: Optional[int] = None) -> str:
    """Generate a timestamp-derived record id (``review-<epoch-ms>``)."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    return f"{RECORD_ID_PREFIX}{now_ms}"


class ReviewState(str, enum.Enum):
    """Display state of a record, derived from is_verified."""
    PENDING = "pending"
    VERIFIED = "verified"


@dataclass(frozen=True)
class ReviewRecord:
    """One submitted review as observed on the ledger."""
    record_id: str
    title: str
    author: str
    category: str
    creator_address: str
    ciphertext_handle: str
    public_score: int
    is_verified: bool
    created_at: int
    clear_value: Optional[int] = None

    def __post_init__(self) -> None:
        if self.is_verified and self.clear_value is None:
            raise ValueError(f"{self.record_id}: verified record has no clear value")
        if not self.is_verified and self.clear_value is not None:
            raise ValueError(f"{self.record_id}: unverified record exposes a clear value")

    @property
    def state(self) -> ReviewState:
        return ReviewState.VERIFIED if self.is_verified else ReviewState.PENDING

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match over the public text fields."""
        needle = term.lower()
        return (
            needle in self.title.lower()
            or needle in self.author.lower()
            or needle in self.category.lower()
        )


@dataclass(frozen=True)
class ReviewInput:
    """User-authored review metadata plus the plaintext score to encrypt.

    ``public_score`` is the non-confidential auxiliary value published
    alongside the ciphertext. It is never derived from ``score``.
    """
    title: str
    score: int
    author: str = ""
    category: str = ""
    comments: str = ""
    public_score: int = 0


@dataclass(frozen=True)
class ReviewStats:
    """Aggregate view over a registry snapshot.

    average_public_score is computed from public_score only; clear
    values of verified records never contribute.
    """
    total_count: int
    verified_count: int
    pending_count: int
    average_public_score: float
    recent_count: int
    computed_at: datetime
