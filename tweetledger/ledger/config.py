"""
Ledger Configuration

Connection settings for the external ledger service.

Environment Variables:
    TWEETLEDGER_LEDGER_DRIVER: Which client to use
        - "memory" (default, in-process ledger for development and tests)
        - "rpc" (JSON-RPC ledger node over HTTP)
    TWEETLEDGER_RPC_URL: Ledger node URL (default http://127.0.0.1:8899)
    TWEETLEDGER_PROGRAM_ID: Tweet program address (URL-safe base64)
    TWEETLEDGER_COMMITMENT: processed | confirmed | finalized (default finalized)
    TWEETLEDGER_CONFIRM_TIMEOUT: Seconds to wait for confirmation (default 30)
    TWEETLEDGER_POLL_INTERVAL: Seconds between status polls (default 0.5)
    TWEETLEDGER_REQUEST_TIMEOUT: HTTP timeout per RPC call (default 10)
    TWEETLEDGER_AIRDROP_LAMPORTS: Amount requested by airdrop (default 1 SOL)
    TWEETLEDGER_PRODUCTION: Enable production mode
"""

import os
from dataclasses import dataclass, field
from enum import Enum

from ..core.signer import Signer
from ..core.transaction import DEFAULT_PROGRAM_ID


LAMPORTS_PER_SOL = 1_000_000_000


class LedgerDriver(str, Enum):
    """Supported ledger clients."""
    MEMORY = "memory"
    RPC = "rpc"


class Commitment(str, Enum):
    """How settled a submission must be before we consider it done."""
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @property
    def rank(self) -> int:
        return _COMMITMENT_RANK[self]

    def satisfies(self, required: "Commitment") -> bool:
        return self.rank >= required.rank


_COMMITMENT_RANK = {
    Commitment.PROCESSED: 0,
    Commitment.CONFIRMED: 1,
    Commitment.FINALIZED: 2,
}


def is_production() -> bool:
    return os.environ.get("TWEETLEDGER_PRODUCTION", "").lower() in ("1", "true", "yes")


@dataclass
class LedgerConfig:
    """Ledger connection configuration."""
    driver: LedgerDriver = LedgerDriver.MEMORY
    rpc_url: str = "http://127.0.0.1:8899"
    program_id: bytes = DEFAULT_PROGRAM_ID
    commitment: Commitment = Commitment.FINALIZED

    confirm_timeout: float = 30.0  # seconds
    poll_interval: float = 0.5     # seconds
    request_timeout: float = 10.0  # seconds

    airdrop_lamports: int = LAMPORTS_PER_SOL
    production: bool = field(default_factory=is_production)

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Load configuration from environment variables."""
        program_id = os.getenv("TWEETLEDGER_PROGRAM_ID")
        return cls(
            driver=get_ledger_driver(),
            rpc_url=os.getenv("TWEETLEDGER_RPC_URL", "http://127.0.0.1:8899"),
            program_id=Signer.decode_key(program_id) if program_id else DEFAULT_PROGRAM_ID,
            commitment=Commitment(os.getenv("TWEETLEDGER_COMMITMENT", "finalized").lower()),
            confirm_timeout=float(os.getenv("TWEETLEDGER_CONFIRM_TIMEOUT", "30.0")),
            poll_interval=float(os.getenv("TWEETLEDGER_POLL_INTERVAL", "0.5")),
            request_timeout=float(os.getenv("TWEETLEDGER_REQUEST_TIMEOUT", "10.0")),
            airdrop_lamports=int(os.getenv("TWEETLEDGER_AIRDROP_LAMPORTS", str(LAMPORTS_PER_SOL))),
            production=is_production(),
        )


def get_ledger_driver() -> LedgerDriver:
    """
    Get the ledger driver to use.

    Checks TWEETLEDGER_LEDGER_DRIVER, then falls back to:
    - rpc if TWEETLEDGER_RPC_URL is set
    - memory otherwise
    """
    explicit = os.getenv("TWEETLEDGER_LEDGER_DRIVER", "").lower()

    if explicit:
        try:
            return LedgerDriver(explicit)
        except ValueError:
            raise ValueError(
                f"Unknown TWEETLEDGER_LEDGER_DRIVER: {explicit}. "
                f"Valid values: memory, rpc"
            )

    if os.getenv("TWEETLEDGER_RPC_URL"):
        return LedgerDriver.RPC

    return LedgerDriver.MEMORY
