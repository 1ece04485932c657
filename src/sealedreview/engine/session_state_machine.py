"""Verification session state machine — enforces valid session transitions.

Session lifecycle:
    IDLE → FETCHING_HANDLE → PROVING_DECRYPTION → SUBMITTING_PROOF → CONFIRMED
    IDLE → CONFIRMED                 (already verified, short-circuit)
    PROVING_DECRYPTION → CONFIRMED   (AlreadyVerified race during submission)
    SUBMITTING_PROOF → CONFIRMED
    Any non-terminal state → FAILED

Fail-closed: a transition not listed here raises IllegalTransition.
There are no implicit transitions.
"""

from __future__ import annotations

import logging
from typing import Optional

from sealedreview.errors import IllegalTransition, VerificationInProgress
from sealedreview.models.session import SessionStatus, VerificationSession

logger = logging.getLogger(__name__)


_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.IDLE: {
        SessionStatus.FETCHING_HANDLE,
        SessionStatus.CONFIRMED,
        SessionStatus.FAILED,
    },
    SessionStatus.FETCHING_HANDLE: {
        SessionStatus.PROVING_DECRYPTION,
        SessionStatus.FAILED,
    },
    SessionStatus.PROVING_DECRYPTION: {
        SessionStatus.SUBMITTING_PROOF,
        SessionStatus.CONFIRMED,
        SessionStatus.FAILED,
    },
    SessionStatus.SUBMITTING_PROOF: {
        SessionStatus.CONFIRMED,
        SessionStatus.FAILED,
    },
    # Terminal states — no outgoing transitions
    SessionStatus.CONFIRMED: set(),
    SessionStatus.FAILED: set(),
}


def advance(session: VerificationSession, target: SessionStatus) -> VerificationSession:
    """Validate and apply a session transition. Raises IllegalTransition."""
    allowed = _TRANSITIONS.get(session.status, set())
    if target not in allowed:
        allowed_str = ", ".join(s.value for s in sorted(allowed, key=lambda x: x.value))
        raise IllegalTransition(
            f"{session.record_id}: invalid session transition "
            f"{session.status.value} → {target.value}. "
            f"Allowed: [{allowed_str}]"
        )
    logger.debug("%s: %s → %s", session.record_id, session.status.value, target.value)
    session.status = target
    session.history.append(target)
    return session


def fail(session: VerificationSession, reason: str) -> VerificationSession:
    """Move a non-terminal session to FAILED, recording the reason."""
    session.error = reason
    return advance(session, SessionStatus.FAILED)


class SessionTracker:
    """The single-flight map of active verification sessions.

    Holds at most one session per record id. A session stops counting
    as active once it reaches a terminal state.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, VerificationSession] = {}

    def open(self, record_id: str) -> VerificationSession:
        """Start a new session. Raises VerificationInProgress if one is active."""
        current = self._sessions.get(record_id)
        if current is not None and not current.is_terminal:
            raise VerificationInProgress(record_id)
        session = VerificationSession(record_id=record_id)
        self._sessions[record_id] = session
        return session

    def get(self, record_id: str) -> Optional[VerificationSession]:
        return self._sessions.get(record_id)

    def release(self, session: VerificationSession) -> None:
        """Drop a finished session, unless a newer one replaced it."""
        if self._sessions.get(session.record_id) is session and session.is_terminal:
            del self._sessions[session.record_id]

    def active(self) -> list[VerificationSession]:
        return [s for s in self._sessions.values() if not s.is_terminal]

    def clear(self) -> None:
        self._sessions.clear()
