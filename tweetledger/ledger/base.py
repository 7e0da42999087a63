"""
Ledger Client Abstraction

The ledger is an external, append-only service. This module defines
what the tweet client needs from it and nothing more:

- submit a signed transaction and get a handle back
- ask how settled a submission is
- read the raw bytes stored at an address
- list a program's accounts that pass server-side byte filters
- fund a wallet (development clusters only)

Two implementations:
- InMemoryLedger: in-process ledger for development and testing
- HttpLedgerClient: JSON-RPC ledger node over HTTP

All calls are coroutines. None of them hold client-side locks; the
ledger is the only serialization point.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from ..core.filters import MemcmpFilter
from .config import Commitment


@dataclass(frozen=True)
class AccountInfo:
    """Raw account state as stored on the ledger."""
    owner: bytes
    lamports: int
    data: bytes


@dataclass(frozen=True)
class KeyedAccount:
    """An account together with its address."""
    public_key: bytes
    account: AccountInfo


@dataclass(frozen=True)
class SignatureStatus:
    """
    Where a submission stands.

    `confirmation` is None while the ledger has not processed the
    submission yet (or has never heard of it). `err` carries the
    ledger's machine-readable reason when it refused the submission,
    and `message` its human-readable text when there is one.
    """
    confirmation: Optional[Commitment] = None
    err: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.confirmation is None and self.err is None

    @property
    def is_rejected(self) -> bool:
        return self.err is not None

    def reached(self, required: Commitment) -> bool:
        return self.err is None and self.confirmation is not None and self.confirmation.satisfies(required)


class LedgerClient(ABC):
    """Abstract base class for ledger access."""

    @abstractmethod
    async def get_latest_blockhash(self) -> bytes:
        """A recent blockhash to bind a new transaction to."""
        pass

    @abstractmethod
    async def send_transaction(self, raw_transaction: bytes) -> str:
        """
        Submit a signed transaction.

        Returns an acknowledgement handle (the fee payer signature).
        This is NOT durability; poll get_signature_status for that.

        Raises:
            SubmissionRejected: the ledger refused it at submission time
        """
        pass

    @abstractmethod
    async def get_signature_status(self, signature: str) -> SignatureStatus:
        """Current status of a submission."""
        pass

    @abstractmethod
    async def get_account_info(self, public_key: bytes) -> Optional[AccountInfo]:
        """Raw account at `public_key`, or None if nothing lives there."""
        pass

    @abstractmethod
    async def get_program_accounts(
        self,
        program_id: bytes,
        filters: Sequence[MemcmpFilter] = (),
    ) -> list[KeyedAccount]:
        """
        All accounts owned by `program_id` whose data passes every filter.

        Order is whatever the ledger returns. Treat it as unordered.
        """
        pass

    @abstractmethod
    async def get_balance(self, public_key: bytes) -> int:
        """Lamports held by `public_key`."""
        pass

    @abstractmethod
    async def request_airdrop(self, public_key: bytes, lamports: int) -> str:
        """Ask the ledger to fund `public_key`. Returns a submission handle."""
        pass

    async def close(self) -> None:
        """Release any resources held by the client."""
        pass
