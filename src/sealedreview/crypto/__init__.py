"""Confidential-computation collaborators (encryption and decryption proofs)."""

from sealedreview.crypto.interfaces import (
    DecryptionResult,
    DecryptionService,
    EncryptedInput,
    EncryptionService,
    SubmitCallback,
)

__all__ = [
    "DecryptionResult",
    "DecryptionService",
    "EncryptedInput",
    "EncryptionService",
    "SubmitCallback",
]
