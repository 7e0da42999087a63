"""
Tweet Creation Lifecycle

Creating a tweet is a two-phase commit from the client's side: the
ledger acknowledges a submission long before it makes it durable.
Every step is explicit:

    BUILT -> VALIDATED -> SIGNED -> SUBMITTED -> PENDING -> FINALIZED
                                        |            |
                                        +-> REJECTED <+

- BUILT: fresh identity keypair generated, arguments assembled
- VALIDATED: length rules checked, before any network call
- SIGNED: author and tweet identity have both signed
- SUBMITTED: sent to the ledger; the answer is only an acknowledgement
- PENDING: waiting for the configured commitment
- FINALIZED: durable; the record can be fetched and decoded
- REJECTED: the ledger refused it, with a reason

A confirmation timeout leaves the submission PENDING. Its fate is
unknown and must be resolved by re-querying the identity, never by
resubmitting (a retry needs a new identity anyway).
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..ledger.base import LedgerClient, SignatureStatus
from ..ledger.config import Commitment, LedgerConfig
from ..observability import MetricsCollector, get_logger
from ..schemas import Tweet, TweetRecord
from .codec import TweetCodec
from .errors import (
    ConfirmationTimeout,
    LedgerRpcError,
    LifecycleError,
    MissingSignerError,
    NotFoundError,
    SubmissionRejected,
    ValidationError,
)
from .signer import Keypair, Signer, WalletSigner
from .transaction import Transaction, send_tweet_instruction

logger = get_logger(__name__)


class TxState(str, Enum):
    BUILT = "built"
    VALIDATED = "validated"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    PENDING = "pending"
    FINALIZED = "finalized"
    REJECTED = "rejected"


_TRANSITIONS: dict[TxState, frozenset] = {
    TxState.BUILT: frozenset({TxState.VALIDATED}),
    TxState.VALIDATED: frozenset({TxState.SIGNED}),
    TxState.SIGNED: frozenset({TxState.SUBMITTED}),
    TxState.SUBMITTED: frozenset({TxState.PENDING, TxState.REJECTED}),
    TxState.PENDING: frozenset({TxState.FINALIZED, TxState.REJECTED}),
    TxState.FINALIZED: frozenset(),
    TxState.REJECTED: frozenset(),
}


@dataclass
class TweetSubmission:
    """
    One tweet on its way to the ledger.

    Owns its identity keypair; nothing is shared between submissions.
    """
    identity: Keypair
    author: bytes
    topic: str
    content: str
    state: TxState = TxState.BUILT
    history: list[TxState] = field(default_factory=lambda: [TxState.BUILT])

    expected_record: Optional[bytes] = None
    transaction: Optional[Transaction] = None
    signature: Optional[str] = None
    rejection: Optional[SubmissionRejected] = None

    @property
    def identity_key(self) -> bytes:
        return self.identity.public_key

    @property
    def identity_b64(self) -> str:
        return Signer.encode_key(self.identity.public_key)

    def transition(self, new_state: TxState) -> None:
        """Move to `new_state`, refusing any edge the state machine lacks."""
        if new_state not in _TRANSITIONS[self.state]:
            raise LifecycleError(
                f"Tweet {self.identity_b64} cannot go from {self.state.value} "
                f"to {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)

    def require(self, state: TxState) -> None:
        if self.state != state:
            raise LifecycleError(
                f"Tweet {self.identity_b64} is {self.state.value}, expected {state.value}"
            )


async def wait_for_signature(
    ledger: LedgerClient,
    signature: str,
    commitment: Commitment,
    timeout: float,
    poll_interval: float,
) -> SignatureStatus:
    """
    Poll until a submission is rejected or reaches `commitment`.

    Cancelling the awaiting task only abandons the local wait; the
    ledger keeps whatever it already accepted. A failed status call
    counts as still pending.

    Raises:
        ConfirmationTimeout: neither happened within `timeout` seconds
    """
    async def poll() -> SignatureStatus:
        while True:
            try:
                status = await ledger.get_signature_status(signature)
            except LedgerRpcError as e:
                logger.warning(
                    "Signature status unavailable, still waiting",
                    signature=signature,
                    error=str(e),
                )
            else:
                if status.is_rejected or status.reached(commitment):
                    return status
            await asyncio.sleep(poll_interval)

    try:
        return await asyncio.wait_for(poll(), timeout=timeout)
    except asyncio.TimeoutError:
        raise ConfirmationTimeout(signature, timeout)


class TweetLifecycle:
    """
    Drives a TweetSubmission through the state machine.

    Each step can be called on its own (to inspect or test a state),
    or all of them in order through `run`.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        config: Optional[LedgerConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._ledger = ledger
        self._config = config or LedgerConfig()
        self._metrics = metrics or MetricsCollector()

    # ================================================================
    # STEPS
    # ================================================================

    def build(self, author: bytes, topic: str, content: str) -> TweetSubmission:
        """Assemble a submission with a freshly generated identity."""
        submission = TweetSubmission(
            identity=Keypair.generate(),
            author=bytes(author),
            topic=topic,
            content=content,
        )
        logger.debug(
            "Tweet built",
            identity=submission.identity_b64,
            author=Signer.encode_key(submission.author),
        )
        return submission

    def validate(self, submission: TweetSubmission) -> None:
        """
        Client-side length checks. The ledger repeats them authoritatively.

        Raises:
            ValidationError: empty content, topic > 50 or content > 280 characters
        """
        submission.require(TxState.BUILT)
        try:
            if not submission.content:
                raise ValidationError(
                    "content", 1, 0, "The provided content should not be empty"
                )
            submission.expected_record = TweetCodec.encode(
                submission.author, submission.topic, submission.content
            )
        except ValidationError as e:
            self._metrics.validation_failures += 1
            logger.info(
                "Tweet failed validation",
                identity=submission.identity_b64,
                field=e.field,
                limit=e.limit,
                actual=e.actual,
            )
            raise
        submission.transition(TxState.VALIDATED)

    async def sign(self, submission: TweetSubmission, author_signer: WalletSigner) -> None:
        """
        Bind to a recent blockhash and collect both required signatures.

        Raises:
            MissingSignerError: the signer is not the author, or a required
                signature is still absent afterwards
        """
        submission.require(TxState.VALIDATED)
        if author_signer.public_key != submission.author:
            raise MissingSignerError(
                f"Author {Signer.encode_key(submission.author)} must sign; got a signer for "
                f"{Signer.encode_key(author_signer.public_key)}"
            )

        blockhash = await self._ledger.get_latest_blockhash()
        tx = Transaction(
            instruction=send_tweet_instruction(
                tweet=submission.identity_key,
                author=submission.author,
                topic=submission.topic,
                content=submission.content,
                program_id=self._config.program_id,
            ),
            fee_payer=submission.author,
            recent_blockhash=blockhash,
        )
        tx.sign(submission.identity, author_signer)

        missing = tx.missing_signers()
        if missing:
            raise MissingSignerError(
                "Missing signatures from: " + ", ".join(Signer.encode_key(k) for k in missing)
            )

        submission.transaction = tx
        submission.transition(TxState.SIGNED)

    async def submit(self, submission: TweetSubmission) -> str:
        """
        Send the signed transaction. Returns the acknowledgement handle.

        A transport failure does not tell whether the ledger received the
        transaction, so the submission still moves to PENDING under the
        locally known handle and `await_finality` settles the outcome.

        Raises:
            SubmissionRejected: the ledger refused it outright
        """
        submission.require(TxState.SIGNED)
        raw = submission.transaction.serialize()
        submission.transition(TxState.SUBMITTED)

        try:
            signature = await self._ledger.send_transaction(raw)
        except SubmissionRejected as e:
            self._reject(submission, e)
            raise
        except LedgerRpcError as e:
            signature = submission.transaction.signature_id
            logger.warning(
                "Tweet acknowledgement lost",
                identity=submission.identity_b64,
                signature=signature,
                error=str(e),
            )

        submission.signature = signature
        submission.transition(TxState.PENDING)
        logger.info(
            "Tweet submitted",
            identity=submission.identity_b64,
            signature=signature,
        )
        return signature

    async def await_finality(
        self,
        submission: TweetSubmission,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Wait for the configured commitment.

        Raises:
            SubmissionRejected: the ledger refused the submission
            ConfirmationTimeout: still pending after `timeout` seconds
        """
        submission.require(TxState.PENDING)
        timeout = self._config.confirm_timeout if timeout is None else timeout
        started = time.perf_counter()

        try:
            status = await wait_for_signature(
                self._ledger,
                submission.signature,
                self._config.commitment,
                timeout,
                self._config.poll_interval,
            )
        except ConfirmationTimeout as e:
            e.identity = submission.identity_b64
            self._metrics.confirmation_timeouts += 1
            logger.warning(
                "Tweet confirmation timed out",
                identity=submission.identity_b64,
                signature=submission.signature,
                timeout=timeout,
            )
            raise

        if status.is_rejected:
            error = SubmissionRejected(status.err, status.message)
            self._reject(submission, error)
            raise error

        self._metrics.record_confirmation((time.perf_counter() - started) * 1000)
        submission.transition(TxState.FINALIZED)
        logger.info(
            "Tweet finalized",
            identity=submission.identity_b64,
            signature=submission.signature,
            commitment=status.confirmation.value,
        )

    async def fetch(self, submission: TweetSubmission) -> Tweet:
        """Read back and decode the committed record."""
        submission.require(TxState.FINALIZED)
        account = await self._ledger.get_account_info(submission.identity_key)
        if account is None:
            raise NotFoundError(submission.identity_b64)
        record: TweetRecord = TweetCodec.decode(account.data)
        return Tweet(identity=submission.identity_key, record=record)

    # ================================================================
    # WHOLE RUN
    # ================================================================

    async def run(
        self,
        author_signer: WalletSigner,
        topic: str,
        content: str,
        timeout: Optional[float] = None,
    ) -> tuple[TweetSubmission, Tweet]:
        """Build, validate, sign, submit, await finality and fetch."""
        submission = self.build(author_signer.public_key, topic, content)
        self.validate(submission)
        await self.sign(submission, author_signer)
        await self.submit(submission)
        await self.await_finality(submission, timeout=timeout)
        tweet = await self.fetch(submission)
        return submission, tweet

    def _reject(self, submission: TweetSubmission, error: SubmissionRejected) -> None:
        submission.rejection = error
        submission.transition(TxState.REJECTED)
        self._metrics.submissions_rejected += 1
        logger.warning(
            "Tweet rejected by ledger",
            identity=submission.identity_b64,
            signature=submission.signature,
            reason=error.reason,
            detail=error.message,
        )
