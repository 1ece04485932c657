"""Ledger access — the on-chain review registry as seen by the client."""

from sealedreview.ledger.interfaces import (
    LedgerRecord,
    LedgerService,
    PendingTransaction,
    TransactionReceipt,
)

__all__ = [
    "LedgerRecord",
    "LedgerService",
    "PendingTransaction",
    "TransactionReceipt",
]
