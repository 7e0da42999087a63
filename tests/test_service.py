"""
Tests for the query facade: create, fetch_one and fetch_all.

Scenario mirrors real use: one author posts twice, a second author
funded by airdrop posts once, and readers filter by author and topic.
"""

from typing import Optional, Sequence

import pytest

from tweetledger.core.codec import TweetCodec
from tweetledger.core.errors import (
    BadDiscriminatorError,
    NotFoundError,
    SubmissionRejected,
    ValidationError,
)
from tweetledger.core.filters import MemcmpFilter, by_author, by_discriminator, by_topic, by_topic_exact
from tweetledger.core.service import TweetService, newest_first
from tweetledger.core.signer import Keypair
from tweetledger.core.transaction import DEFAULT_PROGRAM_ID
from tweetledger.ledger import AccountInfo, KeyedAccount, LedgerClient, SignatureStatus


class StaticLedger(LedgerClient):
    """Read-only ledger holding fixed program accounts; records the filters it is asked for."""

    def __init__(self, accounts: dict[bytes, AccountInfo]):
        self.accounts = accounts
        self.requested_filters: list[MemcmpFilter] = []

    async def get_latest_blockhash(self) -> bytes:
        return bytes(32)

    async def send_transaction(self, raw_transaction: bytes) -> str:
        raise SubmissionRejected("ReadOnly")

    async def get_signature_status(self, signature: str) -> SignatureStatus:
        return SignatureStatus()

    async def get_account_info(self, public_key: bytes) -> Optional[AccountInfo]:
        return self.accounts.get(public_key)

    async def get_program_accounts(
        self,
        program_id: bytes,
        filters: Sequence[MemcmpFilter] = (),
    ) -> list[KeyedAccount]:
        self.requested_filters = list(filters)
        return [
            KeyedAccount(public_key=key, account=account)
            for key, account in self.accounts.items()
            if account.owner == program_id
        ]

    async def get_balance(self, public_key: bytes) -> int:
        return 0

    async def request_airdrop(self, public_key: bytes, lamports: int) -> str:
        raise SubmissionRejected("ReadOnly")


@pytest.fixture
async def populated(service, ledger, config):
    """Two tweets by the service wallet, one by a second funded author."""
    other = Keypair.generate()
    await service.airdrop(public_key=other.public_key)

    first = await service.create("veganism", "Plants are great")
    second = await service.create("non_vegetarian", "Steak is great")
    third = await service.create("vegan", "Tofu", author=other)
    return service, other, (first, second, third)


class TestCreate:

    async def test_create_returns_decoded_tweet(self, service, wallet, metrics):
        tweet = await service.create("solana", "gm")

        assert tweet.record.author == wallet.public_key
        assert tweet.record.topic == "solana"
        assert tweet.record.content == "gm"
        assert tweet.record.timestamp == 1_700_000_000
        assert metrics.tweets_created == 1

    async def test_empty_topic_is_allowed(self, service):
        tweet = await service.create("", "no topic")
        assert tweet.record.topic == ""

    async def test_validation_error(self, service, metrics):
        with pytest.raises(ValidationError):
            await service.create("t" * 51, "content")
        assert metrics.validation_failures == 1
        assert metrics.tweets_created == 0

    async def test_unfunded_author_is_rejected(self, service):
        with pytest.raises(SubmissionRejected) as exc:
            await service.create("t", "c", author=Keypair.generate())
        assert exc.value.reason == "InsufficientFunds"

    async def test_airdrop_funds_other_wallets(self, service, ledger, config):
        other = Keypair.generate()
        await service.airdrop(lamports=12345, public_key=other.public_key)
        assert await ledger.get_balance(other.public_key) == 12345

    async def test_zero_airdrop_is_refused(self, service, ledger):
        other = Keypair.generate()
        with pytest.raises(ValueError):
            await service.airdrop(lamports=0, public_key=other.public_key)
        assert await ledger.get_balance(other.public_key) == 0


class TestFetchOne:

    async def test_fetch_created_tweet(self, service):
        created = await service.create("solana", "gm")
        fetched = await service.fetch_one(created.identity)
        assert fetched == created

    async def test_unknown_identity(self, service):
        with pytest.raises(NotFoundError):
            await service.fetch_one(Keypair.generate().public_key)

    async def test_wallet_address_is_not_a_tweet(self, service, wallet):
        with pytest.raises(NotFoundError):
            await service.fetch_one(wallet.public_key)

    async def test_foreign_record_fails_to_decode(self, wallet, config, metrics):
        identity = Keypair.generate().public_key
        ledger = StaticLedger({
            identity: AccountInfo(owner=DEFAULT_PROGRAM_ID, lamports=1, data=bytes(64)),
        })
        service = TweetService(ledger, wallet, config, metrics)

        with pytest.raises(BadDiscriminatorError):
            await service.fetch_one(identity)
        assert metrics.decode_failures == 1


class TestFetchAll:

    async def test_all_tweets(self, populated):
        service, _, created = populated
        tweets = await service.fetch_all()
        assert {t.identity for t in tweets} == {t.identity for t in created}

    async def test_by_author(self, populated, wallet):
        service, other, (first, second, third) = populated

        mine = await service.fetch_all([by_author(wallet.public_key)])
        theirs = await service.fetch_all([by_author(other.public_key)])

        assert {t.identity for t in mine} == {first.identity, second.identity}
        assert [t.identity for t in theirs] == [third.identity]

    async def test_by_topic(self, populated):
        service, _, (_, second, _) = populated

        tweets = await service.fetch_all([by_topic("non_vegetarian")])
        assert [t.identity for t in tweets] == [second.identity]

    async def test_topic_prefix_and_exact(self, populated):
        service, _, (first, _, third) = populated

        prefix = await service.fetch_all([by_topic("vegan")])
        exact = await service.fetch_all([by_topic_exact("vegan")])

        assert {t.identity for t in prefix} == {first.identity, third.identity}
        assert [t.identity for t in exact] == [third.identity]

    async def test_filters_combine(self, populated, wallet):
        service, _, (first, _, _) = populated

        tweets = await service.fetch_all([by_author(wallet.public_key), by_topic("vegan")])
        assert [t.identity for t in tweets] == [first.identity]

    async def test_no_match(self, populated):
        service, _, _ = populated
        assert await service.fetch_all([by_topic("solana")]) == []

    async def test_newest_first(self, populated):
        service, _, (first, second, third) = populated

        ordered = newest_first(await service.fetch_all())
        assert [t.identity for t in ordered] == [third.identity, second.identity, first.identity]

    async def test_discriminator_always_applied(self, wallet, config):
        identity = Keypair.generate().public_key
        data = TweetCodec.encode(bytes(32), "t", "c")
        ledger = StaticLedger({
            identity: AccountInfo(owner=DEFAULT_PROGRAM_ID, lamports=1, data=data),
        })
        service = TweetService(ledger, wallet, config)

        tweets = await service.fetch_all([by_topic("t")])

        assert ledger.requested_filters == [by_discriminator(), by_topic("t")]
        assert [t.identity for t in tweets] == [identity]


class TestExactTopic:
    """Topics sharing a prefix stay apart under the exact filter."""

    @pytest.fixture
    async def overlapping(self, service):
        return {
            topic: await service.create(topic, f"about {topic}")
            for topic in ("non_vegetarian", "non_vegetarian_snacks", "non_veg", "solana")
        }

    async def test_exact_returns_only_equal_topics(self, service, overlapping):
        tweets = await service.fetch_all([by_topic_exact("non_vegetarian")])
        assert [t.record.topic for t in tweets] == ["non_vegetarian"]

    async def test_prefix_returns_every_extension(self, service, overlapping):
        tweets = await service.fetch_all([by_topic("non_vegetarian")])
        assert sorted(t.record.topic for t in tweets) == ["non_vegetarian", "non_vegetarian_snacks"]

    async def test_exact_for_each_topic(self, service, overlapping):
        for topic, created in overlapping.items():
            tweets = await service.fetch_all([by_topic_exact(topic)])
            assert [t.identity for t in tweets] == [created.identity]
