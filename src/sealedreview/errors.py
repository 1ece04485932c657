"""Error taxonomy for the review lifecycle.

Every failure a caller can observe is one of these classes. The
coordinator catches them at its boundary, emits exactly one terminal
status event, and re-raises so the caller can branch on the type:

- UserRejected: the signer declined a ledger write. Never retried.
- LedgerFault: network or contract failure. Safe to retry.
- AlreadyVerified: a concurrent verifier won the race. Success path.
- NotFound: stale or unknown record id. Surfaced, not retried.
- EncryptionUnavailable / DecryptionUnavailable: crypto dependency down.
- RegistryUnavailable: refresh failed, stale snapshot retained.
- SubmissionNotObserved: the write was confirmed but the local view
  could not observe it. The caller should refresh rather than resubmit.
"""

from __future__ import annotations

from typing import Optional


class LifecycleError(Exception):
    """Base class for all review lifecycle failures."""

    retryable: bool = False


class InvalidReview(LifecycleError):
    """Raised when review input fails validation before any external call."""


class IllegalTransition(LifecycleError):
    """Raised when a verification session transition is not allowed."""


class UserRejected(LifecycleError):
    """The identity principal declined to authorize a ledger write."""


class LedgerFault(LifecycleError):
    """Network or contract-level failure talking to the ledger."""

    retryable = True


class ConfirmationTimeout(LedgerFault):
    """Waiting for a transaction receipt was abandoned.

    The transaction may still be mined. Only a later refresh can tell.
    """

    def __init__(self, tx_hash: str, timeout: float) -> None:
        super().__init__(
            f"No confirmation for {tx_hash} after {timeout:g}s; "
            f"the transaction may still land, refresh to reconcile"
        )
        self.tx_hash = tx_hash
        self.timeout = timeout


class AlreadyVerified(LifecycleError):
    """The ledger already holds a verified clear value for this record."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Data already verified: {record_id}")
        self.record_id = record_id


class NotFound(LifecycleError):
    """The ledger has no record with this id."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


class EncryptionUnavailable(LifecycleError):
    """The encryption service could not produce a ciphertext."""


class DecryptionUnavailable(LifecycleError):
    """The decryption service could not produce a decryption proof."""


class RegistryUnavailable(LifecycleError):
    """The registry could not be refreshed from the ledger."""

    retryable = True


class SubmissionNotObserved(LifecycleError):
    """A confirmed ledger write that the local registry has not observed."""

    def __init__(
        self,
        record_id: str,
        tx_hash: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"Review {record_id} was written in {tx_hash} but the local "
            f"registry could not observe it; refresh manually"
        )
        self.record_id = record_id
        self.tx_hash = tx_hash
        self.cause = cause


class VerificationInProgress(LifecycleError):
    """Another verification session for this record is already active."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Verification already in progress: {record_id}")
        self.record_id = record_id
