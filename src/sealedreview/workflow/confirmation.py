"""Bounded waiting on ledger confirmations."""

from __future__ import annotations

import asyncio

from sealedreview.errors import ConfirmationTimeout
from sealedreview.ledger.interfaces import PendingTransaction, TransactionReceipt


async def await_confirmation(tx: PendingTransaction, timeout: float) -> TransactionReceipt:
    """Wait up to ``timeout`` seconds for ``tx`` to be confirmed.

    Giving up on the wait does not cancel the transaction. Callers must
    treat ConfirmationTimeout as "outcome unknown" and reconcile by refresh.
    """
    try:
        return await asyncio.wait_for(tx.wait(), timeout)
    except asyncio.TimeoutError:
        raise ConfirmationTimeout(tx.tx_hash, timeout) from None
