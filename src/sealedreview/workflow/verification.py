"""Verification protocol — reveals one record's clear score through a
decryption proof the ledger checks.

Session lifecycle (see engine.session_state_machine):
    IDLE → FETCHING_HANDLE → PROVING_DECRYPTION → SUBMITTING_PROOF → CONFIRMED
    with FAILED reachable from every non-terminal state.

Rules:
- Already verified on the ledger: return the stored value, go straight
  to CONFIRMED, never touch the decryption service. Re-running is a no-op.
- The ciphertext handle is always re-read from the ledger, never taken
  from the registry snapshot.
- The decryption service receives a submit callback that performs the
  ledger write. The proof is bound to that write.
- AlreadyVerified during submission means another principal won the
  race. That is CONFIRMED, not FAILED. A write that reverts at mining
  time is treated the same way when the ledger then shows the record
  verified.
- The returned value is the one the ledger holds after confirmation,
  not the one the decryption service reported locally.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sealedreview.crypto.interfaces import DecryptionService
from sealedreview.engine.session_state_machine import advance, fail
from sealedreview.errors import (
    AlreadyVerified,
    ConfirmationTimeout,
    LedgerFault,
    LifecycleError,
    RegistryUnavailable,
)
from sealedreview.ledger.interfaces import LedgerService, TransactionReceipt
from sealedreview.models.session import SessionStatus, VerificationSession
from sealedreview.policy.resolver import PolicyResolver
from sealedreview.review.registry import ReviewRegistry
from sealedreview.workflow.confirmation import await_confirmation

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of one verification run."""
    record_id: str
    clear_value: int
    already_verified: bool = False
    lost_race: bool = False
    registry_synced: bool = True
    receipt: Optional[TransactionReceipt] = None


class VerificationProtocol:
    """Drives one VerificationSession to a terminal state.

    Usage:
        protocol = VerificationProtocol(ledger, decryption, registry, resolver)
        session = VerificationSession(record_id="review-1700000000000")
        outcome = await protocol.run(session)
    """

    def __init__(
        self,
        ledger: LedgerService,
        decryption: DecryptionService,
        registry: ReviewRegistry,
        resolver: PolicyResolver,
    ) -> None:
        self._ledger = ledger
        self._decryption = decryption
        self._registry = registry
        self._resolver = resolver

    async def run(
        self,
        session: VerificationSession,
        on_progress: Optional[ProgressCallback] = None,
    ) -> VerificationOutcome:
        """Run the session to CONFIRMED, or mark it FAILED and re-raise."""
        try:
            return await self._run(session, on_progress or (lambda _msg: None))
        except (Exception, asyncio.CancelledError) as exc:
            if not session.is_terminal:
                fail(session, str(exc) or type(exc).__name__)
            logger.warning("%s: verification failed: %s", session.record_id, exc)
            raise

    async def _run(
        self,
        session: VerificationSession,
        progress: ProgressCallback,
    ) -> VerificationOutcome:
        record_id = session.record_id

        current = await self._ledger.get_record(record_id)
        if current.is_verified:
            if current.clear_value is None:
                raise LedgerFault(f"{record_id}: verified on ledger without a clear value")
            advance(session, SessionStatus.CONFIRMED)
            session.clear_value = current.clear_value
            logger.info("%s: already verified, no proof needed", record_id)
            synced = await self._sync_if_stale(record_id)
            return VerificationOutcome(
                record_id=record_id,
                clear_value=current.clear_value,
                already_verified=True,
                registry_synced=synced,
            )

        advance(session, SessionStatus.FETCHING_HANDLE)
        session.handle = await self._ledger.get_encrypted_handle(record_id)

        advance(session, SessionStatus.PROVING_DECRYPTION)
        receipts: list[TransactionReceipt] = []

        async def submit_proof(clear_values_blob: bytes, proof: bytes) -> TransactionReceipt:
            advance(session, SessionStatus.SUBMITTING_PROOF)
            progress("Verifying decryption on-chain...")
            try:
                tx = await self._ledger.submit_verification(record_id, clear_values_blob, proof)
                receipt = await await_confirmation(tx, self._resolver.confirmation_timeout())
            except ConfirmationTimeout:
                raise
            except LedgerFault as exc:
                # A reverted write may still mean a competing verifier was mined first.
                if await self._verified_elsewhere(record_id):
                    raise AlreadyVerified(record_id) from exc
                raise
            receipts.append(receipt)
            return receipt

        lost_race = False
        local_value: Optional[int] = None
        try:
            result = await self._decryption.verify(
                [session.handle], self._ledger.context_address, submit_proof,
            )
            local_value = result.clear_values.get(session.handle)
        except AlreadyVerified:
            logger.info("%s: another verifier confirmed first", record_id)
            lost_race = True

        confirmed = await self._ledger.get_record(record_id)
        if not confirmed.is_verified or confirmed.clear_value is None:
            raise LedgerFault(f"{record_id}: ledger accepted the proof but shows no clear value")
        if local_value is not None and int(local_value) != confirmed.clear_value:
            logger.warning(
                "%s: decrypted value %s differs from ledger value %s; using ledger",
                record_id, local_value, confirmed.clear_value,
            )

        advance(session, SessionStatus.CONFIRMED)
        session.clear_value = confirmed.clear_value
        synced = await self._sync()
        return VerificationOutcome(
            record_id=record_id,
            clear_value=confirmed.clear_value,
            lost_race=lost_race,
            registry_synced=synced,
            receipt=receipts[-1] if receipts else None,
        )

    async def _verified_elsewhere(self, record_id: str) -> bool:
        try:
            current = await self._ledger.get_record(record_id)
        except LifecycleError as exc:
            logger.warning("%s: could not re-read record after failed write: %s", record_id, exc)
            return False
        return current.is_verified and current.clear_value is not None

    async def _sync_if_stale(self, record_id: str) -> bool:
        known = self._registry.get(record_id)
        if known is not None and known.is_verified:
            return True
        return await self._sync()

    async def _sync(self) -> bool:
        try:
            await self._registry.refresh()
        except RegistryUnavailable as exc:
            logger.warning("Verification confirmed but registry refresh failed: %s", exc)
            return False
        return True
