"""Ledger connection settings, read from the environment.

A ``.env`` file at the project root (or the path given) is loaded first.
Values already present in the environment win.

Variables:
    SEALEDREVIEW_RPC_URL           JSON-RPC endpoint of the chain.
    SEALEDREVIEW_CONTRACT_ADDRESS  Address of the review contract.
    SEALEDREVIEW_PRIVATE_KEY       Optional. Hex key for local signing.
                                   Without it, writes go through the node's
                                   wallet (eth_sendTransaction).
    SEALEDREVIEW_CHAIN_ID          Optional. Defaults to 11155111 (Sepolia).
    SEALEDREVIEW_ABI_PATH          Optional. JSON ABI overriding the built-in one.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

SEPOLIA_CHAIN_ID = 11155111


@dataclass(frozen=True)
class LedgerSettings:
    rpc_url: str
    contract_address: str
    private_key: Optional[str] = None
    chain_id: int = SEPOLIA_CHAIN_ID
    abi_path: Optional[Path] = None

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> LedgerSettings:
        """Load settings. Raises ValueError if a required variable is missing."""
        load_dotenv(env_file)

        rpc_url = os.getenv("SEALEDREVIEW_RPC_URL")
        contract_address = os.getenv("SEALEDREVIEW_CONTRACT_ADDRESS")
        missing = [
            name for name, value in (
                ("SEALEDREVIEW_RPC_URL", rpc_url),
                ("SEALEDREVIEW_CONTRACT_ADDRESS", contract_address),
            ) if not value
        ]
        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")

        abi_path = os.getenv("SEALEDREVIEW_ABI_PATH")
        return cls(
            rpc_url=rpc_url,
            contract_address=contract_address,
            private_key=os.getenv("SEALEDREVIEW_PRIVATE_KEY") or None,
            chain_id=int(os.getenv("SEALEDREVIEW_CHAIN_ID", str(SEPOLIA_CHAIN_ID))),
            abi_path=Path(abi_path) if abi_path else None,
        )
