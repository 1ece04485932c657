"""Lifecycle coordinator — the single entry point of the review lifecycle.

The coordinator owns the registry, the status stream and the single-flight
session map for one client. It sequences protocol runs, guards
concurrency and translates every outcome into exactly one terminal
status event:

- submit_review: authentication guard, then the submission protocol.
- verify_review: authentication guard, single-flight join, then the
  verification protocol.
- refresh: coalesced; concurrent callers share one in-flight refresh.
- compute_stats / search: read-only views over the registry snapshot.

Typed errors are re-raised after their status event so callers can
tell UserRejected (do not retry) from LedgerFault (retry is safe).
The authentication guard is the one path that returns None instead.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from sealedreview.crypto.interfaces import DecryptionService, EncryptionService
from sealedreview.engine.session_state_machine import SessionTracker
from sealedreview.errors import (
    ConfirmationTimeout,
    LifecycleError,
    RegistryUnavailable,
    SubmissionNotObserved,
    UserRejected,
)
from sealedreview.ledger.interfaces import LedgerService
from sealedreview.models.review import ReviewInput, ReviewRecord, ReviewStats
from sealedreview.models.session import VerificationSession
from sealedreview.persistence.event_log import EventKind, EventLog, EventRecord
from sealedreview.policy.resolver import PolicyResolver
from sealedreview.review.registry import ReviewRegistry
from sealedreview.status import StatusStream
from sealedreview.workflow.submission import SubmissionProtocol
from sealedreview.workflow.verification import VerificationOutcome, VerificationProtocol

logger = logging.getLogger(__name__)

NOT_CONNECTED = "Please connect wallet first"


class LifecycleCoordinator:
    """Drives confidential review submission and verification.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        coordinator = LifecycleCoordinator(ledger, encryption, decryption, resolver)
        coordinator.connect("0xReviewer")
        coordinator.status.subscribe(print)

        record = await coordinator.submit_review(ReviewInput(title="Paper X", score=7))
        value = await coordinator.verify_review(record.record_id)
        stats = coordinator.compute_stats()

        await coordinator.close()
    """

    def __init__(
        self,
        ledger: LedgerService,
        encryption: EncryptionService,
        decryption: DecryptionService,
        resolver: PolicyResolver,
        identity: Optional[str] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._ledger = ledger
        self._resolver = resolver
        self._identity = identity
        self._event_log = event_log

        self._registry = ReviewRegistry(ledger, resolver)
        self._status = StatusStream(resolver)
        self._submission = SubmissionProtocol(ledger, encryption, self._registry, resolver)
        self._verification = VerificationProtocol(ledger, decryption, self._registry, resolver)

        self._sessions = SessionTracker()
        self._verify_tasks: dict[str, asyncio.Task[VerificationOutcome]] = {}
        self._refresh_task: Optional[asyncio.Task[list[ReviewRecord]]] = None
        self._closed = False

    async def __aenter__(self) -> LifecycleCoordinator:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    def connect(self, identity: str) -> None:
        if not identity:
            raise ValueError("identity must not be empty")
        self._identity = identity

    def disconnect(self) -> None:
        self._identity = None

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def registry(self) -> ReviewRegistry:
        return self._registry

    @property
    def status(self) -> StatusStream:
        return self._status

    def session(self, record_id: str) -> Optional[VerificationSession]:
        """The active verification session for a record, if any."""
        return self._sessions.get(record_id)

    def compute_stats(
        self,
        now: Optional[datetime] = None,
        window: Optional[timedelta] = None,
    ) -> ReviewStats:
        return self._registry.compute_stats(now=now, window=window)

    def search(self, term: str) -> list[ReviewRecord]:
        return self._registry.search(term)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_review(self, review: ReviewInput) -> Optional[ReviewRecord]:
        """Encrypt and submit a review. Returns the record the ledger holds.

        Returns None only when no identity is connected.
        """
        self._ensure_open()
        identity = self._identity
        if not identity:
            self._status.error(NOT_CONNECTED)
            return None

        self._status.pending("Creating review with FHE encryption...")
        try:
            outcome = await self._submission.run(review, identity, on_progress=self._status.pending)
        except SubmissionNotObserved as exc:
            self._status.error(str(exc))
            self._record(EventKind.SUBMISSION_NOT_OBSERVED, identity, {
                "record_id": exc.record_id,
                "tx_hash": exc.tx_hash,
            })
            raise
        except Exception as exc:
            self._status.error(_describe(exc, "Submission failed"))
            self._record(EventKind.OPERATION_FAILED, identity, {
                "operation": "submit_review",
                "error": type(exc).__name__,
                "message": str(exc),
            })
            raise

        self._status.success("Review created successfully!")
        self._record(EventKind.REVIEW_SUBMITTED, identity, {
            "record_id": outcome.record.record_id,
            "tx_hash": outcome.receipt.tx_hash,
            "block_number": outcome.receipt.block_number,
        })
        return outcome.record

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify_review(self, record_id: str) -> Optional[int]:
        """Reveal a record's clear score through a ledger-checked proof.

        Concurrent calls for the same record join the in-flight run and
        share its outcome. Returns None only when no identity is connected.
        """
        self._ensure_open()
        if not self._identity:
            self._status.error(NOT_CONNECTED)
            return None

        task = self._verify_tasks.get(record_id)
        if task is None:
            session = self._sessions.open(record_id)
            task = asyncio.ensure_future(self._run_verification(session, self._identity))
            self._verify_tasks[record_id] = task
            task.add_done_callback(lambda t, rid=record_id: self._verification_done(rid, t))
        else:
            logger.info("%s: joining in-flight verification", record_id)

        outcome = await asyncio.shield(task)
        return outcome.clear_value

    async def _run_verification(
        self,
        session: VerificationSession,
        identity: str,
    ) -> VerificationOutcome:
        self._status.pending("Requesting decryption proof...")
        try:
            outcome = await self._verification.run(session, on_progress=self._status.pending)
        except Exception as exc:
            self._status.error(_describe(exc, "Decryption failed"))
            self._record(EventKind.OPERATION_FAILED, identity, {
                "operation": "verify_review",
                "record_id": session.record_id,
                "error": type(exc).__name__,
                "message": str(exc),
            })
            raise
        except asyncio.CancelledError:
            self._status.error("Verification cancelled")
            self._record(EventKind.OPERATION_FAILED, identity, {
                "operation": "verify_review",
                "record_id": session.record_id,
                "error": "CancelledError",
                "message": "cancelled at teardown",
            })
            raise
        finally:
            self._sessions.release(session)

        if outcome.already_verified:
            message, kind = "Score already verified on-chain", EventKind.VERIFICATION_ALREADY_CONFIRMED
        elif outcome.lost_race:
            message, kind = "Score is already verified on-chain", EventKind.VERIFICATION_RACE_LOST
        else:
            message, kind = "Score decrypted and verified successfully!", EventKind.VERIFICATION_CONFIRMED
        if not outcome.registry_synced:
            message += " Local view is stale; refresh to sync."
        self._status.success(message)

        payload: dict[str, Any] = {"record_id": outcome.record_id}
        if outcome.receipt is not None:
            payload["tx_hash"] = outcome.receipt.tx_hash
        self._record(kind, identity, payload)
        return outcome

    def _verification_done(self, record_id: str, task: asyncio.Task[VerificationOutcome]) -> None:
        if self._verify_tasks.get(record_id) is task:
            del self._verify_tasks[record_id]
        if not task.cancelled():
            task.exception()  # retrieved here; awaiting callers still receive it

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> list[ReviewRecord]:
        """Refresh the registry. Concurrent calls share one in-flight run."""
        self._ensure_open()
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._run_refresh())
            self._refresh_task = task
            task.add_done_callback(self._refresh_done)
        return await asyncio.shield(task)

    async def _run_refresh(self) -> list[ReviewRecord]:
        try:
            return await self._registry.refresh()
        except Exception as exc:
            cause = exc.__cause__ if isinstance(exc, RegistryUnavailable) and exc.__cause__ is not None else exc
            self._status.error(_describe(cause, "Failed to load data"))
            raise

    def _refresh_done(self, task: asyncio.Task[list[ReviewRecord]]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            task.exception()

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def check_availability(self) -> bool:
        """Probe the ledger and report the result on the status stream."""
        self._ensure_open()
        try:
            available = await self._ledger.is_available()
        except LifecycleError as exc:
            self._status.error(_describe(exc, "Availability check failed"))
            return False
        if available:
            self._status.success("Contract is available and ready")
        else:
            self._status.error("Contract is not available")
        return available

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Stop waiting on in-flight work and release coordinator state.

        Transactions already handed to the ledger are not cancelled; only
        the local wait is abandoned. Each cancelled verification publishes
        one ERROR event before the stream is cleared.
        """
        if self._closed:
            return
        self._closed = True
        pending = [t for t in self._verify_tasks.values() if not t.done()]
        if self._refresh_task is not None and not self._refresh_task.done():
            pending.append(self._refresh_task)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._verify_tasks.clear()
        self._refresh_task = None
        self._sessions.clear()
        self._status.clear()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("LifecycleCoordinator is closed")

    def _record(self, kind: EventKind, actor_id: str, payload: dict[str, Any]) -> None:
        if self._event_log is None:
            return
        self._event_log.append(EventRecord.create(
            event_id=f"evt_{uuid.uuid4().hex[:12]}",
            event_kind=kind,
            actor_id=actor_id,
            payload=payload,
        ))


def _describe(exc: BaseException, prefix: str) -> str:
    """Status message for a failed operation."""
    if isinstance(exc, UserRejected):
        return "Transaction rejected by user"
    if isinstance(exc, ConfirmationTimeout):
        return str(exc)
    return f"{prefix}: {str(exc) or type(exc).__name__}"
