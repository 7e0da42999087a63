"""
In-Memory Ledger

An in-process stand-in for the external ledger service, running the
tweet program itself.

Suitable for:
- Development
- Testing
- Backing a local ledger node (see node.py)

NOT suitable for:
- Anything that needs durability (state dies with the process)

Submission-time checks (rejected immediately, nothing is queued):
- transaction parses
- every required signature is present and valid
- blockhash is recent
- the same signature was not submitted before

Execution-time checks (run when the submission reaches finality,
reported through the signature status):
- account layout of the instruction
- topic <= 50 and content <= 280 characters (authoritative)
- the tweet address is not already in use
- the author can pay rent and fees
"""

import logging
import secrets
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional, Sequence, Union

from ..core.codec import TweetCodec
from ..core.errors import SubmissionRejected, ValidationError
from ..core.filters import MemcmpFilter, matches_all
from ..core.signer import Signer
from ..core.transaction import (
    DEFAULT_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    Transaction,
    decode_send_tweet_data,
)
from .base import AccountInfo, KeyedAccount, LedgerClient, SignatureStatus
from .config import Commitment

logger = logging.getLogger(__name__)


# Rent-exempt minimum is two years of rent on (128 + data) bytes.
ACCOUNT_STORAGE_OVERHEAD = 128
LAMPORTS_PER_BYTE = 6960
LAMPORTS_PER_SIGNATURE = 5000
MAX_RECENT_BLOCKHASHES = 150


@dataclass
class _Airdrop:
    public_key: bytes
    lamports: int


@dataclass
class _Queued:
    signature: str
    ready_at: float
    work: Union[Transaction, _Airdrop]


class ProgramError(Exception):
    """Raised inside program execution; becomes the signature's err."""

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        self.message = message or reason
        super().__init__(self.message)


def rent_exempt_minimum(space: int) -> int:
    return (ACCOUNT_STORAGE_OVERHEAD + space) * LAMPORTS_PER_BYTE


class InMemoryLedger(LedgerClient):
    """
    In-memory implementation of the ledger service.

    Finality is reached `finality_delay` seconds after submission, the
    next time anyone talks to the ledger. Submissions execute in the
    order they were accepted.
    """

    def __init__(
        self,
        program_id: bytes = DEFAULT_PROGRAM_ID,
        finality_delay: float = 0.0,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.program_id = program_id
        self.finality_delay = finality_delay
        self._clock = clock or (lambda: int(time.time()))

        self._accounts: dict[bytes, AccountInfo] = {}
        self._statuses: dict[str, SignatureStatus] = {}
        self._queue: deque[_Queued] = deque()
        self._blockhashes: deque[bytes] = deque(maxlen=MAX_RECENT_BLOCKHASHES)
        self._slot = 0
        self._lock = Lock()

        self._new_blockhash()

    @property
    def slot(self) -> int:
        return self._slot

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    # ================================================================
    # LEDGER CLIENT API
    # ================================================================

    async def get_latest_blockhash(self) -> bytes:
        with self._lock:
            self._advance()
            return self._blockhashes[-1]

    async def send_transaction(self, raw_transaction: bytes) -> str:
        with self._lock:
            self._advance()
            tx = self._preflight(raw_transaction)
            signature = tx.signature_id
            self._statuses[signature] = SignatureStatus()
            self._queue.append(_Queued(
                signature=signature,
                ready_at=time.monotonic() + self.finality_delay,
                work=tx,
            ))
            logger.debug(f"Accepted transaction {signature[:16]}... ({len(self._queue)} queued)")
            return signature

    async def get_signature_status(self, signature: str) -> SignatureStatus:
        with self._lock:
            self._advance()
            return self._statuses.get(signature, SignatureStatus())

    async def get_account_info(self, public_key: bytes) -> Optional[AccountInfo]:
        with self._lock:
            self._advance()
            return self._accounts.get(bytes(public_key))

    async def get_program_accounts(
        self,
        program_id: bytes,
        filters: Sequence[MemcmpFilter] = (),
    ) -> list[KeyedAccount]:
        with self._lock:
            self._advance()
            return [
                KeyedAccount(public_key=key, account=account)
                for key, account in self._accounts.items()
                if account.owner == program_id and matches_all(filters, account.data)
            ]

    async def get_balance(self, public_key: bytes) -> int:
        with self._lock:
            self._advance()
            account = self._accounts.get(bytes(public_key))
            return account.lamports if account else 0

    async def request_airdrop(self, public_key: bytes, lamports: int) -> str:
        if lamports <= 0:
            raise ValueError(f"Airdrop amount must be positive, got {lamports}")
        with self._lock:
            self._advance()
            signature = Signer.encode_key(secrets.token_bytes(64))
            self._statuses[signature] = SignatureStatus()
            self._queue.append(_Queued(
                signature=signature,
                ready_at=time.monotonic() + self.finality_delay,
                work=_Airdrop(public_key=bytes(public_key), lamports=lamports),
            ))
            return signature

    def clear(self) -> None:
        """Drop all state (for testing only)."""
        with self._lock:
            self._accounts.clear()
            self._statuses.clear()
            self._queue.clear()

    # ================================================================
    # SUBMISSION
    # ================================================================

    def _preflight(self, raw_transaction: bytes) -> Transaction:
        try:
            tx = Transaction.deserialize(raw_transaction)
        except ValueError as e:
            raise SubmissionRejected("MalformedTransaction", str(e))

        if not tx.verify_signatures():
            raise SubmissionRejected(
                "SignatureVerificationFailed",
                "Transaction signature verification failure",
            )

        if tx.recent_blockhash not in self._blockhashes:
            raise SubmissionRejected("BlockhashNotFound", "Blockhash not found")

        if tx.signature_id in self._statuses:
            raise SubmissionRejected(
                "AlreadyProcessed",
                "This transaction has already been processed",
            )

        return tx

    # ================================================================
    # EXECUTION
    # ================================================================

    def _advance(self) -> None:
        """Execute every queued submission that has reached finality. Caller holds the lock."""
        now = time.monotonic()
        while self._queue and self._queue[0].ready_at <= now:
            queued = self._queue.popleft()
            try:
                if isinstance(queued.work, _Airdrop):
                    self._credit(queued.work.public_key, queued.work.lamports)
                else:
                    self._execute(queued.work)
            except ProgramError as e:
                self._statuses[queued.signature] = SignatureStatus(err=e.reason, message=e.message)
                logger.info(f"Transaction {queued.signature[:16]}... failed: {e.reason}")
            else:
                self._statuses[queued.signature] = SignatureStatus(confirmation=Commitment.FINALIZED)
            self._slot += 1
            self._new_blockhash()

    def _execute(self, tx: Transaction) -> None:
        if tx.instruction.program_id != self.program_id:
            raise ProgramError("InvalidProgramId", "Program is not deployed on this ledger")

        accounts = tx.instruction.accounts
        if len(accounts) != 3:
            raise ProgramError("AccountNotEnoughKeys", "send_tweet expects 3 accounts")
        tweet, author, system_program = accounts
        if not (tweet.is_signer and tweet.is_writable):
            raise ProgramError("AccountNotSigner", "The tweet account must sign")
        if not (author.is_signer and author.is_writable):
            raise ProgramError("AccountNotSigner", "The author account must sign")
        if system_program.public_key != SYSTEM_PROGRAM_ID:
            raise ProgramError("ConstraintAddress", "Expected the system program")

        try:
            topic, content = decode_send_tweet_data(tx.instruction.data)
        except (ValueError, UnicodeDecodeError) as e:
            raise ProgramError("InstructionDidNotDeserialize", str(e))

        try:
            TweetCodec.validate_fields(topic, content)
        except ValidationError as e:
            reason = "TopicTooLong" if e.field == "topic" else "ContentTooLong"
            raise ProgramError(reason, e.message)

        if tweet.public_key in self._accounts:
            raise ProgramError(
                "AccountAlreadyInUse",
                f"Account {Signer.encode_key(tweet.public_key)} already in use",
            )

        rent = rent_exempt_minimum(TweetCodec.ACCOUNT_SPACE)
        fee = LAMPORTS_PER_SIGNATURE * len(tx.signatures)
        payer = self._accounts.get(author.public_key)
        balance = payer.lamports if payer else 0
        if balance < rent + fee:
            raise ProgramError(
                "InsufficientFunds",
                f"Author holds {balance} lamports, needs {rent + fee}",
            )

        record = TweetCodec.encode(author.public_key, topic, content)
        record = TweetCodec.stamp_timestamp(record, self._clock())
        data = record.ljust(TweetCodec.ACCOUNT_SPACE, b"\x00")

        self._accounts[author.public_key] = AccountInfo(
            owner=payer.owner,
            lamports=balance - rent - fee,
            data=payer.data,
        )
        self._accounts[tweet.public_key] = AccountInfo(
            owner=self.program_id,
            lamports=rent,
            data=data,
        )

    def _credit(self, public_key: bytes, lamports: int) -> None:
        existing = self._accounts.get(public_key)
        if existing:
            self._accounts[public_key] = AccountInfo(
                owner=existing.owner,
                lamports=existing.lamports + lamports,
                data=existing.data,
            )
        else:
            self._accounts[public_key] = AccountInfo(
                owner=SYSTEM_PROGRAM_ID, lamports=lamports, data=b""
            )

    def _new_blockhash(self) -> None:
        self._blockhashes.append(secrets.token_bytes(32))
