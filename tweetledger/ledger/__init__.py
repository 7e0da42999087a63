"""
Ledger Access for the Tweet Client

Provides:
- LedgerClient abstraction (InMemory for dev, JSON-RPC for a real node)
- Ledger configuration from the environment
- A local JSON-RPC ledger node for development
"""

from typing import Optional

from .base import AccountInfo, KeyedAccount, LedgerClient, SignatureStatus
from .config import (
    Commitment,
    LedgerConfig,
    LedgerDriver,
    LAMPORTS_PER_SOL,
    get_ledger_driver,
)
from .memory import InMemoryLedger, rent_exempt_minimum
from .rpc import HttpLedgerClient


def create_ledger_client(config: Optional[LedgerConfig] = None) -> LedgerClient:
    """Build the ledger client selected by `config.driver`."""
    config = config or LedgerConfig.from_env()
    if config.driver == LedgerDriver.RPC:
        return HttpLedgerClient(config)
    return InMemoryLedger(program_id=config.program_id)


__all__ = [
    "AccountInfo",
    "KeyedAccount",
    "LedgerClient",
    "SignatureStatus",
    "Commitment",
    "LedgerConfig",
    "LedgerDriver",
    "LAMPORTS_PER_SOL",
    "get_ledger_driver",
    "InMemoryLedger",
    "rent_exempt_minimum",
    "HttpLedgerClient",
    "create_ledger_client",
]
