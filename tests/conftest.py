"""Shared fixtures: in-memory stand-ins for the ledger and FHE services.

The fakes keep the ciphertext handle equal to the 32-byte big-endian
encoding of the score, so the fake decryption service can "decrypt" a
handle without any key material. Nothing here is cryptographic.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional, Sequence

import pytest

from sealedreview.crypto.interfaces import DecryptionResult, EncryptedInput, SubmitCallback
from sealedreview.errors import (
    AlreadyVerified,
    DecryptionUnavailable,
    EncryptionUnavailable,
    LedgerFault,
    NotFound,
)
from sealedreview.ledger.interfaces import LedgerRecord, TransactionReceipt
from sealedreview.policy.resolver import PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
CONTEXT = "0x00000000000000000000000000000000000C0DE5"
REVIEWER = "0x1111111111111111111111111111111111111111"
OTHER_VERIFIER = "0x2222222222222222222222222222222222222222"


def encode_uint(value: int) -> bytes:
    return value.to_bytes(32, "big")


@dataclass
class StoredRecord:
    data: LedgerRecord
    ciphertext: bytes
    comments: str = ""


class FakeTransaction:
    """PendingTransaction whose confirmation can be held open."""

    def __init__(self, tx_hash: str, block_number: int, confirm: Optional[asyncio.Event] = None) -> None:
        self._tx_hash = tx_hash
        self._block_number = block_number
        self._confirm = confirm

    @property
    def tx_hash(self) -> str:
        return self._tx_hash

    async def wait(self) -> TransactionReceipt:
        if self._confirm is not None:
            await self._confirm.wait()
        return TransactionReceipt(tx_hash=self._tx_hash, block_number=self._block_number)


class FakeLedger:
    """In-memory LedgerService with failure injection."""

    def __init__(self, now: Optional[int] = None) -> None:
        self.records: dict[str, StoredRecord] = {}
        self.now = now if now is not None else int(time.time())
        self.create_calls = 0
        self.verify_calls = 0
        self.list_calls = 0
        self.available = True
        # Failure injection
        self.reject_create: Optional[Exception] = None
        self.list_ids_error: Optional[Exception] = None
        self.broken_ids: set[str] = set()
        self.hold_confirmations = False
        self.race_winner_value: Optional[int] = None
        self.list_gates: list[asyncio.Event] = []
        self._blocks = itertools.count(100)

    @property
    def context_address(self) -> str:
        return CONTEXT

    # -- seeding -------------------------------------------------------

    def seed(
        self,
        record_id: str,
        title: str = "Seeded paper",
        score: int = 5,
        public_score: int = 0,
        verified: bool = False,
        created_at: Optional[int] = None,
        creator: str = REVIEWER,
    ) -> None:
        self.records[record_id] = StoredRecord(
            data=LedgerRecord(
                title=title,
                creator=creator,
                timestamp=created_at if created_at is not None else self.now,
                public_score=public_score,
                is_verified=verified,
                clear_value=score if verified else 0,
            ),
            ciphertext=encode_uint(score),
        )

    # -- reads ---------------------------------------------------------

    async def get_all_ids(self) -> Sequence[str]:
        self.list_calls += 1
        ids = list(self.records)
        if self.list_gates:
            await self.list_gates.pop(0).wait()
        if self.list_ids_error is not None:
            raise self.list_ids_error
        return ids

    async def get_record(self, record_id: str) -> LedgerRecord:
        await asyncio.sleep(0)
        if record_id in self.broken_ids:
            raise LedgerFault(f"rpc timeout reading {record_id}")
        stored = self.records.get(record_id)
        if stored is None:
            raise NotFound(record_id)
        return stored.data

    async def get_encrypted_handle(self, record_id: str) -> str:
        await asyncio.sleep(0)
        stored = self.records.get(record_id)
        if stored is None:
            raise NotFound(record_id)
        return "0x" + stored.ciphertext.hex()

    async def is_available(self) -> bool:
        return self.available

    # -- writes --------------------------------------------------------

    async def create_record(
        self,
        record_id: str,
        title: str,
        ciphertext: bytes,
        proof: bytes,
        public_score: int,
        comments: str,
    ) -> FakeTransaction:
        self.create_calls += 1
        await asyncio.sleep(0)
        if self.reject_create is not None:
            raise self.reject_create
        if record_id in self.records:
            raise LedgerFault(f"execution reverted: duplicate id {record_id}")
        self.records[record_id] = StoredRecord(
            data=LedgerRecord(
                title=title,
                creator=REVIEWER,
                timestamp=self.now,
                public_score=public_score,
                is_verified=False,
                clear_value=0,
            ),
            ciphertext=ciphertext,
            comments=comments,
        )
        return self._tx()

    async def submit_verification(
        self,
        record_id: str,
        clear_values_blob: bytes,
        proof: bytes,
    ) -> FakeTransaction:
        self.verify_calls += 1
        await asyncio.sleep(0)
        stored = self.records.get(record_id)
        if stored is None:
            raise NotFound(record_id)
        if self.race_winner_value is not None and not stored.data.is_verified:
            stored.data = replace(stored.data, is_verified=True, clear_value=self.race_winner_value)
        if stored.data.is_verified:
            raise AlreadyVerified(record_id)
        value = int.from_bytes(clear_values_blob[:32], "big")
        stored.data = replace(stored.data, is_verified=True, clear_value=value)
        return self._tx()

    def _tx(self) -> FakeTransaction:
        block = next(self._blocks)
        confirm = asyncio.Event() if self.hold_confirmations else None
        return FakeTransaction(f"0x{block:064x}", block, confirm)


class FakeEncryption:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, int]] = []
        self.unavailable = False

    async def encrypt(self, context: str, identity: str, plaintext: int) -> EncryptedInput:
        self.calls.append((context, identity, plaintext))
        await asyncio.sleep(0)
        if self.unavailable:
            raise EncryptionUnavailable("relayer unreachable")
        return EncryptedInput(ciphertext=encode_uint(plaintext), proof=b"input-proof")


class FakeDecryption:
    """Decrypts by reading the handle back as an integer."""

    def __init__(self) -> None:
        self.calls = 0
        self.unavailable = False
        self.gate: Optional[asyncio.Event] = None
        self.report_value: Optional[int] = None

    async def verify(
        self,
        handles: Sequence[str],
        context: str,
        submit_callback: SubmitCallback,
    ) -> DecryptionResult:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if self.unavailable:
            raise DecryptionUnavailable("gateway down")
        values = {h: int(h, 16) for h in handles}
        blob = b"".join(encode_uint(values[h]) for h in handles)
        receipt = await submit_callback(blob, b"decryption-proof")
        if self.report_value is not None:
            values = {h: self.report_value for h in handles}
        return DecryptionResult(clear_values=values, callback_result=receipt)


def run(coro: Any) -> Any:
    return asyncio.run(coro)


def make_resolver(**overrides: Any) -> PolicyResolver:
    """Resolver from the shipped config with top-level keys overridden."""
    policy = json.loads((CONFIG_DIR / "lifecycle_policy.json").read_text(encoding="utf-8"))
    policy.update(overrides)
    return PolicyResolver(policy)


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def encryption() -> FakeEncryption:
    return FakeEncryption()


@pytest.fixture
def decryption() -> FakeDecryption:
    return FakeDecryption()
