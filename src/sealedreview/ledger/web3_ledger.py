"""Web3 ledger — LedgerService backed by the review contract on an EVM chain.

The contract stores one row per review, keyed by the record id string:

    createBusinessData(id, name, encValue, inputProof, publicValue1, publicValue2, description)
    getBusinessData(id) -> (name, description, publicValue1, publicValue2,
                            creator, timestamp, isVerified, decryptedValue)
    getEncryptedValue(id) -> bytes32 ciphertext handle
    verifyDecryption(id, abiEncodedClearValues, decryptionProof)
    getAllBusinessIds() -> string[]
    isAvailable() -> bool

web3 is blocking, so every call runs in a worker thread. Writes are
signed locally with eth_account when a private key is configured, and
otherwise sent through the node's wallet, where the user can decline.

Revert reasons and RPC errors are mapped onto the lifecycle error taxonomy
by classify_error().
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional, Sequence

from eth_account import Account
from web3 import HTTPProvider, Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from sealedreview.errors import (
    AlreadyVerified,
    ConfirmationTimeout,
    LedgerFault,
    LifecycleError,
    NotFound,
    UserRejected,
)
from sealedreview.ledger.interfaces import LedgerRecord, TransactionReceipt
from sealedreview.settings import LedgerSettings

logger = logging.getLogger(__name__)

DEFAULT_RECEIPT_TIMEOUT = 300
# EIP-1193 "User Rejected Request"
USER_REJECTED_CODE = 4001

REVIEW_CONTRACT_ABI: list[dict[str, Any]] = [
    {
        "type": "function", "name": "createBusinessData", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "businessId", "type": "string"},
            {"name": "name", "type": "string"},
            {"name": "encryptedValue", "type": "bytes32"},
            {"name": "inputProof", "type": "bytes"},
            {"name": "publicValue1", "type": "uint256"},
            {"name": "publicValue2", "type": "uint256"},
            {"name": "description", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "type": "function", "name": "getBusinessData", "stateMutability": "view",
        "inputs": [{"name": "businessId", "type": "string"}],
        "outputs": [
            {"name": "name", "type": "string"},
            {"name": "description", "type": "string"},
            {"name": "publicValue1", "type": "uint256"},
            {"name": "publicValue2", "type": "uint256"},
            {"name": "creator", "type": "address"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "isVerified", "type": "bool"},
            {"name": "decryptedValue", "type": "uint32"},
        ],
    },
    {
        "type": "function", "name": "getEncryptedValue", "stateMutability": "view",
        "inputs": [{"name": "businessId", "type": "string"}],
        "outputs": [{"name": "", "type": "bytes32"}],
    },
    {
        "type": "function", "name": "verifyDecryption", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "businessId", "type": "string"},
            {"name": "abiEncodedClearValue", "type": "bytes"},
            {"name": "decryptionProof", "type": "bytes"},
        ],
        "outputs": [],
    },
    {
        "type": "function", "name": "getAllBusinessIds", "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string[]"}],
    },
    {
        "type": "function", "name": "isAvailable", "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


def classify_error(exc: BaseException, record_id: Optional[str] = None) -> LifecycleError:
    """Map a web3 / RPC failure onto the lifecycle error taxonomy."""
    if isinstance(exc, LifecycleError):
        return exc

    message = str(exc)
    lowered = message.lower()
    code = _rpc_error_code(exc)

    if code == USER_REJECTED_CODE or "user rejected" in lowered or "user denied" in lowered:
        return UserRejected(f"Transaction rejected by user: {message}")
    if isinstance(exc, ContractLogicError) or "execution reverted" in lowered:
        if "already verified" in lowered:
            return AlreadyVerified(record_id or "")
        if record_id is not None and ("does not exist" in lowered or "not found" in lowered):
            return NotFound(record_id)
    return LedgerFault(message or type(exc).__name__)


def _rpc_error_code(exc: BaseException) -> Optional[int]:
    for arg in exc.args:
        if isinstance(arg, dict) and isinstance(arg.get("code"), int):
            return arg["code"]
    return None


class Web3PendingTransaction:
    """A sent transaction whose receipt has not been awaited yet."""

    def __init__(self, w3: Web3, tx_hash: str, receipt_timeout: float, record_id: str) -> None:
        self._w3 = w3
        self._tx_hash = tx_hash
        self._receipt_timeout = receipt_timeout
        self._record_id = record_id

    @property
    def tx_hash(self) -> str:
        return self._tx_hash

    async def wait(self) -> TransactionReceipt:
        try:
            receipt = await asyncio.to_thread(
                self._w3.eth.wait_for_transaction_receipt,
                self._tx_hash,
                timeout=self._receipt_timeout,
            )
        except TimeExhausted:
            raise ConfirmationTimeout(self._tx_hash, self._receipt_timeout) from None
        except Exception as exc:
            raise classify_error(exc, self._record_id) from exc

        if receipt["status"] != 1:
            raise LedgerFault(f"Transaction {self._tx_hash} reverted for {self._record_id}")
        return TransactionReceipt(
            tx_hash=self._tx_hash,
            block_number=receipt["blockNumber"],
            status=receipt["status"],
        )


class Web3LedgerService:
    """LedgerService over the review contract.

    Usage:
        settings = LedgerSettings.from_env()
        ledger = Web3LedgerService.from_settings(settings, sender="0xReviewer")
        ids = await ledger.get_all_ids()
    """

    def __init__(
        self,
        w3: Web3,
        contract: Any,
        sender: Optional[str] = None,
        private_key: Optional[str] = None,
        chain_id: Optional[int] = None,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ) -> None:
        self._w3 = w3
        self._contract = contract
        self._account = Account.from_key(private_key) if private_key else None
        self._sender = self._account.address if self._account is not None else sender
        self._chain_id = chain_id
        self._receipt_timeout = receipt_timeout
        self._send_lock = asyncio.Lock()
        self._next_nonce = 0

    @classmethod
    def from_settings(
        cls,
        settings: LedgerSettings,
        sender: Optional[str] = None,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ) -> Web3LedgerService:
        w3 = Web3(HTTPProvider(settings.rpc_url))
        abi = REVIEW_CONTRACT_ABI
        if settings.abi_path is not None:
            abi = json.loads(settings.abi_path.read_text(encoding="utf-8"))
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(settings.contract_address),
            abi=abi,
        )
        return cls(
            w3,
            contract,
            sender=sender,
            private_key=settings.private_key,
            chain_id=settings.chain_id,
            receipt_timeout=receipt_timeout,
        )

    @property
    def context_address(self) -> str:
        return self._contract.address

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all_ids(self) -> Sequence[str]:
        return list(await self._call(self._contract.functions.getAllBusinessIds().call))

    async def get_record(self, record_id: str) -> LedgerRecord:
        row = await self._call(
            self._contract.functions.getBusinessData(record_id).call, record_id,
        )
        name, _description, public_value1, _public_value2, creator, timestamp, verified, decrypted = row
        if not creator or int(creator, 16) == 0:
            raise NotFound(record_id)
        return LedgerRecord(
            title=name,
            creator=creator,
            timestamp=int(timestamp),
            public_score=int(public_value1),
            is_verified=bool(verified),
            clear_value=int(decrypted) if verified else None,
        )

    async def get_encrypted_handle(self, record_id: str) -> str:
        handle = await self._call(
            self._contract.functions.getEncryptedValue(record_id).call, record_id,
        )
        return Web3.to_hex(handle)

    async def is_available(self) -> bool:
        return bool(await self._call(self._contract.functions.isAvailable().call))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_record(
        self,
        record_id: str,
        title: str,
        ciphertext: bytes,
        proof: bytes,
        public_score: int,
        comments: str,
    ) -> Web3PendingTransaction:
        fn = self._contract.functions.createBusinessData(
            record_id, title, ciphertext, proof, public_score, 0, comments,
        )
        return await self._send(fn, record_id)

    async def submit_verification(
        self,
        record_id: str,
        clear_values_blob: bytes,
        proof: bytes,
    ) -> Web3PendingTransaction:
        fn = self._contract.functions.verifyDecryption(record_id, clear_values_blob, proof)
        return await self._send(fn, record_id)

    async def _send(self, fn: Any, record_id: str) -> Web3PendingTransaction:
        if self._sender is None:
            raise LedgerFault("No sender configured for ledger writes")
        try:
            # one nonce allocation and send at a time per sender
            async with self._send_lock:
                tx_hash = await asyncio.to_thread(self._transact, fn)
        except Exception as exc:
            raise classify_error(exc, record_id) from exc
        logger.info("%s: sent %s", record_id, tx_hash)
        return Web3PendingTransaction(self._w3, tx_hash, self._receipt_timeout, record_id)

    def _transact(self, fn: Any) -> str:
        if self._account is None:
            return Web3.to_hex(fn.transact({"from": self._sender}))

        nonce = max(
            self._w3.eth.get_transaction_count(self._account.address, "pending"),
            self._next_nonce,
        )
        params: dict[str, Any] = {"from": self._account.address, "nonce": nonce}
        if self._chain_id is not None:
            params["chainId"] = self._chain_id
        tx = fn.build_transaction(params)
        signed = self._account.sign_transaction(tx)
        tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        self._next_nonce = nonce + 1
        return Web3.to_hex(tx_hash)

    async def _call(self, fn: Callable[[], Any], record_id: Optional[str] = None) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except Exception as exc:
            raise classify_error(exc, record_id) from exc
