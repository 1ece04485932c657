"""Review registry — the in-memory projection of all review records.

The registry is a cache over the ledger, not the source of truth. It is
rebuilt by polling: list every id, then read each record and its
ciphertext handle. A record that cannot be read is skipped and logged;
a failure to list ids fails the whole refresh and leaves the previous
snapshot in place (stale but available).

Refreshes may interleave. Each one takes a sequence number when it
starts, and a completed refresh only replaces the snapshot if no later
refresh has already been applied.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from sealedreview.errors import LifecycleError, RegistryUnavailable
from sealedreview.ledger.interfaces import LedgerService
from sealedreview.models.review import ReviewRecord, ReviewStats
from sealedreview.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)


class ReviewRegistry:
    """Queryable snapshot of every review record known to the ledger.

    Only refresh() and annotate() write the snapshot. Everything else reads.

    Usage:
        registry = ReviewRegistry(ledger, resolver)
        await registry.refresh()
        records = registry.get_all()
        stats = registry.compute_stats()
    """

    def __init__(self, ledger: LedgerService, resolver: PolicyResolver) -> None:
        self._ledger = ledger
        self._resolver = resolver
        self._snapshot: dict[str, ReviewRecord] = {}
        # Author and category are not stored on the ledger; submissions
        # made through this client annotate them locally.
        self._annotations: dict[str, tuple[str, str]] = {}
        self._issued_seq = 0
        self._applied_seq = 0
        self._last_refreshed: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> list[ReviewRecord]:
        """Rebuild the snapshot from the ledger.

        Returns the snapshot current after this call, which is a newer
        one than this call produced if a later refresh finished first.
        Raises RegistryUnavailable if the id listing fails.
        """
        self._issued_seq += 1
        seq = self._issued_seq

        try:
            ids = list(await self._ledger.get_all_ids())
        except LifecycleError as exc:
            logger.error("Refresh #%d failed listing ids: %s", seq, exc)
            raise RegistryUnavailable(f"Failed to load records: {exc}") from exc

        fetched = await asyncio.gather(*(self._fetch(record_id) for record_id in ids))
        records = {r.record_id: r for r in fetched if r is not None}

        if seq < self._applied_seq:
            logger.info(
                "Discarding stale refresh #%d (snapshot already at #%d)",
                seq, self._applied_seq,
            )
            return self.get_all()

        self._snapshot = records
        self._applied_seq = seq
        self._last_refreshed = datetime.now(timezone.utc)
        logger.debug(
            "Refresh #%d applied: %d of %d records", seq, len(records), len(ids)
        )
        return self.get_all()

    async def _fetch(self, record_id: str) -> Optional[ReviewRecord]:
        try:
            data = await self._ledger.get_record(record_id)
            handle = await self._ledger.get_encrypted_handle(record_id)
        except LifecycleError as exc:
            logger.warning("Skipping record %s: %s", record_id, exc)
            return None

        if data.is_verified and data.clear_value is None:
            logger.warning("Skipping record %s: verified without a clear value", record_id)
            return None

        author, category = self._annotations.get(
            record_id,
            (self._resolver.anonymous_author(), self._resolver.default_category()),
        )
        return ReviewRecord(
            record_id=record_id,
            title=data.title,
            author=author,
            category=category,
            creator_address=data.creator,
            ciphertext_handle=handle,
            public_score=data.public_score,
            is_verified=data.is_verified,
            clear_value=data.clear_value if data.is_verified else None,
            created_at=data.timestamp,
        )

    def annotate(self, record_id: str, author: str, category: str) -> None:
        """Attach off-ledger display metadata to a record id."""
        self._annotations[record_id] = (author, category)
        current = self._snapshot.get(record_id)
        if current is not None:
            self._snapshot[record_id] = replace(current, author=author, category=category)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all(self) -> list[ReviewRecord]:
        return list(self._snapshot.values())

    def get(self, record_id: str) -> Optional[ReviewRecord]:
        return self._snapshot.get(record_id)

    def search(self, term: str) -> list[ReviewRecord]:
        """Records whose title, author or category contain ``term``."""
        if not term:
            return self.get_all()
        return [r for r in self._snapshot.values() if r.matches(term)]

    @property
    def last_refreshed(self) -> Optional[datetime]:
        return self._last_refreshed

    @property
    def count(self) -> int:
        return len(self._snapshot)

    def compute_stats(
        self,
        now: Optional[datetime] = None,
        window: Optional[timedelta] = None,
    ) -> ReviewStats:
        """Aggregate the current snapshot.

        The average covers public_score across all records. Clear values
        never enter it, verified or not.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        if window is None:
            window = self._resolver.recent_window()

        records = self.get_all()
        total = len(records)
        verified = sum(1 for r in records if r.is_verified)
        average = sum(r.public_score for r in records) / total if total else 0.0
        cutoff = now.timestamp() - window.total_seconds()
        recent = sum(1 for r in records if r.created_at > cutoff)

        return ReviewStats(
            total_count=total,
            verified_count=verified,
            pending_count=total - verified,
            average_public_score=average,
            recent_count=recent,
            computed_at=now,
        )
