"""FHE service contracts — encryption of scores and checked decryption.

The cryptographic scheme is opaque to the lifecycle. These Protocols are
the only surface the protocols see.

Decryption uses inversion of control: the caller hands the decryption
service a submit callback. The service builds the decryption proof for
exactly the transaction the callback will send, then invokes it with the
ABI-encoded clear values and the proof. The callback owns the ledger
write; the service owns the proof. Neither needs the other's internals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence, runtime_checkable


@dataclass(frozen=True)
class EncryptedInput:
    """Ciphertext of one plaintext value plus its input validity proof."""
    ciphertext: bytes
    proof: bytes


@dataclass(frozen=True)
class DecryptionResult:
    """Clear values keyed by ciphertext handle, as proven to the ledger."""
    clear_values: Mapping[str, int] = field(default_factory=dict)
    callback_result: Any = None


# submit_callback(clear_values_blob, proof) -> awaitable receipt
SubmitCallback = Callable[[bytes, bytes], Awaitable[Any]]


@runtime_checkable
class EncryptionService(Protocol):

    async def encrypt(self, context: str, identity: str, plaintext: int) -> EncryptedInput:
        """Raises EncryptionUnavailable."""
        ...


@runtime_checkable
class DecryptionService(Protocol):

    async def verify(
        self,
        handles: Sequence[str],
        context: str,
        submit_callback: SubmitCallback,
    ) -> DecryptionResult:
        """Run the decryption-proof protocol and submit through the callback.

        Raises DecryptionUnavailable, or propagates whatever the callback
        raised (AlreadyVerified, LedgerFault, UserRejected).
        """
        ...
