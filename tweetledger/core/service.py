"""
Tweet Service - the client-facing facade

    create(topic, content)   -> Tweet           (full lifecycle)
    fetch_one(identity)      -> Tweet | NotFound
    fetch_all(filters)       -> list[Tweet]     (server-side filtered)

The service holds an explicit context: a ledger client, the wallet
that signs as author, and configuration. There is no process-wide
connection; pass a service (or build one per request) wherever one is
needed.

Reads are stateless and idempotent. Creates share nothing but the
ledger, each owning a fresh identity.
"""

from typing import Optional, Sequence

from ..ledger.base import LedgerClient
from ..ledger.config import LedgerConfig
from ..observability import MetricsCollector, get_logger
from ..schemas import Tweet, TweetRecord
from .codec import TweetCodec
from .errors import DecodeError, NotFoundError, SubmissionRejected
from .filters import MemcmpFilter, by_discriminator
from .lifecycle import TweetLifecycle, wait_for_signature
from .signer import Signer, WalletSigner

logger = get_logger(__name__)


class TweetService:
    """Create and query tweets on a ledger."""

    def __init__(
        self,
        ledger: LedgerClient,
        wallet: WalletSigner,
        config: Optional[LedgerConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._ledger = ledger
        self._wallet = wallet
        self._config = config or LedgerConfig()
        self._metrics = metrics or MetricsCollector()
        self._lifecycle = TweetLifecycle(ledger, self._config, self._metrics)

    @property
    def ledger(self) -> LedgerClient:
        return self._ledger

    @property
    def wallet(self) -> WalletSigner:
        return self._wallet

    @property
    def config(self) -> LedgerConfig:
        return self._config

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def lifecycle(self) -> TweetLifecycle:
        return self._lifecycle

    # ================================================================
    # COMMANDS
    # ================================================================

    async def create(
        self,
        topic: str,
        content: str,
        timeout: Optional[float] = None,
        author: Optional[WalletSigner] = None,
    ) -> Tweet:
        """
        Create a tweet and return it once finalized and decoded.

        Signs as the service wallet unless another `author` is given.

        Raises:
            ValidationError: length rules broken (nothing was sent)
            MissingSignerError: a required signature could not be produced
            SubmissionRejected: the ledger refused the tweet
            ConfirmationTimeout: outcome unknown; re-query the identity
        """
        signer = author or self._wallet
        _, tweet = await self._lifecycle.run(signer, topic, content, timeout=timeout)
        self._metrics.tweets_created += 1
        return tweet

    async def airdrop(
        self,
        lamports: Optional[int] = None,
        public_key: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Fund a wallet and wait until the funds are usable.

        Defaults to the service wallet and the configured amount.
        """
        public_key = public_key or self._wallet.public_key
        if lamports is None:
            lamports = self._config.airdrop_lamports
        signature = await self._ledger.request_airdrop(public_key, lamports)
        status = await wait_for_signature(
            self._ledger,
            signature,
            self._config.commitment,
            self._config.confirm_timeout if timeout is None else timeout,
            self._config.poll_interval,
        )
        if status.is_rejected:
            raise SubmissionRejected(status.err, status.message)
        logger.info(
            "Airdrop confirmed",
            recipient=Signer.encode_key(public_key),
            lamports=lamports,
        )
        return signature

    # ================================================================
    # QUERIES
    # ================================================================

    async def fetch_one(self, identity: bytes) -> Tweet:
        """
        Fetch the tweet stored at `identity`.

        Raises:
            NotFoundError: nothing lives at that address
            DecodeError: something lives there, but it is not a tweet
        """
        self._metrics.fetches += 1
        account = await self._ledger.get_account_info(identity)
        if account is None:
            raise NotFoundError(Signer.encode_key(identity))
        if account.owner != self._config.program_id:
            raise NotFoundError(Signer.encode_key(identity))
        return Tweet(identity=bytes(identity), record=self._decode(account.data))

    async def fetch_all(self, filters: Sequence[MemcmpFilter] = ()) -> list[Tweet]:
        """
        All tweets whose raw bytes satisfy every filter.

        The discriminator constraint is always added, so only tweet
        records come back. Order is not defined; sort by timestamp if it
        matters.
        """
        self._metrics.fetches += 1
        constraints = [by_discriminator(), *filters]
        accounts = await self._ledger.get_program_accounts(self._config.program_id, constraints)
        tweets = [
            Tweet(identity=keyed.public_key, record=self._decode(keyed.account.data))
            for keyed in accounts
        ]
        logger.debug("Fetched tweets", count=len(tweets), filter_count=len(constraints))
        return tweets

    def _decode(self, data: bytes) -> TweetRecord:
        try:
            record = TweetCodec.decode(data)
        except DecodeError:
            self._metrics.decode_failures += 1
            raise
        self._metrics.records_decoded += 1
        return record


def newest_first(tweets: Sequence[Tweet]) -> list[Tweet]:
    """Sort by ledger timestamp, most recent first."""
    return sorted(tweets, key=lambda t: t.record.timestamp, reverse=True)
