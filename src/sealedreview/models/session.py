"""Verification session model — transient, never persisted."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


class SessionStatus(str, enum.Enum):
    """Lifecycle state of a verification session.

    State machine:
        IDLE → FETCHING_HANDLE → PROVING_DECRYPTION → SUBMITTING_PROOF → CONFIRMED
        IDLE → CONFIRMED          (record already verified on the ledger)
        PROVING_DECRYPTION → CONFIRMED   (concurrent verifier won the race)
        any non-terminal → FAILED
    """
    IDLE = "idle"
    FETCHING_HANDLE = "fetching_handle"
    PROVING_DECRYPTION = "proving_decryption"
    SUBMITTING_PROOF = "submitting_proof"
    CONFIRMED = "confirmed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({SessionStatus.CONFIRMED, SessionStatus.FAILED})


@dataclass
class VerificationSession:
    """Tracks one run of the verification protocol for one record."""
    record_id: str
    handle: Optional[str] = None
    status: SessionStatus = SessionStatus.IDLE
    clear_value: Optional[int] = None
    error: Optional[str] = None
    history: list[SessionStatus] = field(default_factory=lambda: [SessionStatus.IDLE])
    started_utc: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
