"""Ledger service contract — what the lifecycle needs from the review ledger.

The coordinator, protocols and registry never talk to a chain client
directly. They talk to this Protocol. Swapping the backing ledger (a
contract on a public chain, a local test double) requires zero changes
to the lifecycle code.

Every method is a suspension point. Write methods return a
PendingTransaction; awaiting its confirmation is a separate step so
the caller can bound the wait without assuming the write did not happen.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, runtime_checkable


@dataclass(frozen=True)
class LedgerRecord:
    """Public fields of one review row as returned by the ledger.

    ``clear_value`` is whatever the ledger stores; it is only meaningful
    when ``is_verified`` is true. The registry normalizes it.
    """
    title: str
    creator: str
    timestamp: int
    public_score: int
    is_verified: bool
    clear_value: Optional[int] = None


@dataclass(frozen=True)
class TransactionReceipt:
    """A confirmed ledger write."""
    tx_hash: str
    block_number: int
    status: int = 1


@runtime_checkable
class PendingTransaction(Protocol):
    """A submitted write that may or may not have been confirmed yet."""

    @property
    def tx_hash(self) -> str:
        ...

    async def wait(self) -> TransactionReceipt:
        """Block until the write is confirmed. Raises LedgerFault on revert."""
        ...


@runtime_checkable
class LedgerService(Protocol):
    """Read/write access to the on-chain review registry."""

    @property
    def context_address(self) -> str:
        """Address of the confidential context ciphertexts are bound to."""
        ...

    async def get_all_ids(self) -> Sequence[str]:
        ...

    async def get_record(self, record_id: str) -> LedgerRecord:
        """Raises NotFound if the id is unknown."""
        ...

    async def get_encrypted_handle(self, record_id: str) -> str:
        """Raises NotFound if the id is unknown."""
        ...

    async def create_record(
        self,
        record_id: str,
        title: str,
        ciphertext: bytes,
        proof: bytes,
        public_score: int,
        comments: str,
    ) -> PendingTransaction:
        """Raises UserRejected or LedgerFault."""
        ...

    async def submit_verification(
        self,
        record_id: str,
        clear_values_blob: bytes,
        proof: bytes,
    ) -> PendingTransaction:
        """Raises AlreadyVerified or LedgerFault."""
        ...

    async def is_available(self) -> bool:
        """Liveness probe."""
        ...
