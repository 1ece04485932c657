"""Submission protocol — turns a plaintext score into a confidential record.

Steps, strictly ordered, each one a suspension point:
    0. Generate the record id (before anything external happens, so the
       ledger write is keyed by an id the caller already knows).
    1. Encrypt the score against the ledger's confidential context.
    2. create_record on the ledger.
    3. Await confirmation.
    4. Refresh the registry and read the record back.

The protocol never fabricates a record locally. What it returns is what
the registry observed on the ledger after step 4.

Failure semantics:
- Validation and encryption failures happen before any ledger write.
- UserRejected and LedgerFault from step 2/3 propagate unchanged.
- A step 4 failure does not unwind anything: the write is confirmed.
  It is reported as SubmissionNotObserved so the caller refreshes
  instead of resubmitting.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sealedreview.crypto.interfaces import EncryptionService
from sealedreview.errors import InvalidReview, RegistryUnavailable, SubmissionNotObserved
from sealedreview.ledger.interfaces import LedgerService, TransactionReceipt
from sealedreview.models.review import ReviewInput, ReviewRecord, new_record_id
from sealedreview.policy.resolver import PolicyResolver
from sealedreview.review.registry import ReviewRegistry
from sealedreview.workflow.confirmation import await_confirmation

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


@dataclass(frozen=True)
class SubmissionOutcome:
    """A confirmed submission and the record the registry observed for it."""
    record: ReviewRecord
    receipt: TransactionReceipt


class SubmissionProtocol:
    """Orchestrates encrypt → create_record → confirm → refresh.

    Usage:
        protocol = SubmissionProtocol(ledger, encryption, registry, resolver)
        outcome = await protocol.run(ReviewInput(title="Paper X", score=7), "0xabc")
    """

    def __init__(
        self,
        ledger: LedgerService,
        encryption: EncryptionService,
        registry: ReviewRegistry,
        resolver: PolicyResolver,
    ) -> None:
        self._ledger = ledger
        self._encryption = encryption
        self._registry = registry
        self._resolver = resolver
        self._last_id_ms = 0

    def validate(self, review: ReviewInput) -> ReviewInput:
        """Check input and fill display defaults. Raises InvalidReview."""
        errors: list[str] = []
        if not review.title or not review.title.strip():
            errors.append("title must not be empty")

        score_range = self._resolver.score_range()
        if isinstance(review.score, bool) or not isinstance(review.score, int):
            errors.append(f"score must be an integer, got {review.score!r}")
        elif not score_range.contains(review.score):
            errors.append(
                f"score {review.score} outside supported range "
                f"[{score_range.minimum}, {score_range.maximum}]"
            )

        if isinstance(review.public_score, bool) or not isinstance(review.public_score, int):
            errors.append(f"public_score must be an integer, got {review.public_score!r}")

        category = review.category.strip() or self._resolver.default_category()
        if review.category.strip() and category not in self._resolver.categories():
            errors.append(f"unknown category: {category}")

        if errors:
            raise InvalidReview("; ".join(errors))

        return ReviewInput(
            title=review.title.strip(),
            score=review.score,
            author=review.author.strip() or self._resolver.anonymous_author(),
            category=category,
            comments=review.comments,
            public_score=review.public_score,
        )

    def next_record_id(self) -> str:
        """A fresh record id, strictly increasing within this process."""
        now_ms = max(time.time_ns() // 1_000_000, self._last_id_ms + 1)
        self._last_id_ms = now_ms
        return new_record_id(now_ms)

    async def run(
        self,
        review: ReviewInput,
        identity: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SubmissionOutcome:
        review = self.validate(review)
        record_id = self.next_record_id()
        context = self._ledger.context_address
        progress = on_progress or (lambda _msg: None)

        logger.info("%s: encrypting score for %s", record_id, identity)
        encrypted = await self._encryption.encrypt(context, identity, review.score)

        logger.info("%s: creating ledger record", record_id)
        tx = await self._ledger.create_record(
            record_id,
            review.title,
            encrypted.ciphertext,
            encrypted.proof,
            review.public_score,
            review.comments,
        )

        progress("Waiting for transaction confirmation...")
        receipt = await await_confirmation(tx, self._resolver.confirmation_timeout())
        logger.info("%s: confirmed in block %d (%s)", record_id, receipt.block_number, receipt.tx_hash)

        self._registry.annotate(record_id, review.author, review.category)
        try:
            await self._registry.refresh()
        except RegistryUnavailable as exc:
            raise SubmissionNotObserved(record_id, receipt.tx_hash, exc) from exc

        record = self._registry.get(record_id)
        if record is None:
            raise SubmissionNotObserved(record_id, receipt.tx_hash)
        return SubmissionOutcome(record=record, receipt=receipt)
