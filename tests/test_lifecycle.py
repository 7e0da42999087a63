"""
Tests for the tweet creation lifecycle.

    BUILT -> VALIDATED -> SIGNED -> SUBMITTED -> PENDING -> FINALIZED
                                        |            |
                                        +-> REJECTED <+
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from tweetledger.core.errors import (
    ConfirmationTimeout,
    LedgerRpcError,
    LifecycleError,
    MissingSignerError,
    NotFoundError,
    SubmissionRejected,
    ValidationError,
)
from tweetledger.core.lifecycle import TweetLifecycle, TxState, wait_for_signature
from tweetledger.core.service import TweetService
from tweetledger.core.signer import Keypair, Signer
from tweetledger.ledger import Commitment, InMemoryLedger, LedgerClient


@pytest.fixture
def lifecycle(ledger, config, metrics) -> TweetLifecycle:
    return TweetLifecycle(ledger, config, metrics)


@pytest.fixture
async def author(ledger, config) -> Keypair:
    wallet = Keypair.generate()
    await TweetService(ledger, wallet, config).airdrop()
    return wallet


class TestStateMachine:

    async def test_build(self, lifecycle, author):
        submission = lifecycle.build(author.public_key, "veganism", "Plants")

        assert submission.state == TxState.BUILT
        assert submission.history == [TxState.BUILT]
        assert submission.author == author.public_key
        assert len(submission.identity_key) == 32

    async def test_every_build_gets_a_fresh_identity(self, lifecycle, author):
        first = lifecycle.build(author.public_key, "t", "c")
        second = lifecycle.build(author.public_key, "t", "c")
        assert first.identity_key != second.identity_key

    async def test_illegal_transition(self, lifecycle, author):
        submission = lifecycle.build(author.public_key, "t", "c")
        with pytest.raises(LifecycleError):
            submission.transition(TxState.FINALIZED)
        assert submission.state == TxState.BUILT

    async def test_steps_must_run_in_order(self, lifecycle, author):
        submission = lifecycle.build(author.public_key, "t", "c")
        with pytest.raises(LifecycleError):
            await lifecycle.submit(submission)

    async def test_full_run(self, lifecycle, author):
        submission, tweet = await lifecycle.run(author, "veganism", "Plants")

        assert submission.history == [
            TxState.BUILT,
            TxState.VALIDATED,
            TxState.SIGNED,
            TxState.SUBMITTED,
            TxState.PENDING,
            TxState.FINALIZED,
        ]
        assert tweet.identity == submission.identity_key
        assert tweet.record.author == author.public_key
        assert tweet.record.topic == "veganism"
        assert tweet.record.content == "Plants"
        assert tweet.record.timestamp > 0

    async def test_finalized_cannot_move(self, lifecycle, author):
        submission, _ = await lifecycle.run(author, "t", "c")
        with pytest.raises(LifecycleError):
            submission.transition(TxState.REJECTED)


class TestValidation:
    """Validation fails fast and never reaches the network."""

    @pytest.fixture
    def offline(self, config, metrics):
        ledger = AsyncMock(spec=LedgerClient)
        return ledger, TweetLifecycle(ledger, config, metrics)

    async def test_topic_too_long(self, offline, metrics):
        ledger, lifecycle = offline
        with pytest.raises(ValidationError) as exc:
            await lifecycle.run(Keypair.generate(), "a" * 51, "content")

        assert exc.value.message == "The provided topic should be 50 characters long maximum"
        assert ledger.mock_calls == []
        assert metrics.validation_failures == 1

    async def test_content_too_long(self, offline):
        ledger, lifecycle = offline
        with pytest.raises(ValidationError) as exc:
            await lifecycle.run(Keypair.generate(), "", "b" * 281)

        assert exc.value.message == "The provided content should be 280 characters long maximum"
        assert ledger.mock_calls == []

    async def test_empty_content(self, offline):
        ledger, lifecycle = offline
        with pytest.raises(ValidationError) as exc:
            await lifecycle.run(Keypair.generate(), "topic", "")

        assert exc.value.field == "content"
        assert ledger.mock_calls == []

    def test_failed_validation_stays_built(self, offline):
        _, lifecycle = offline
        submission = lifecycle.build(Keypair.generate().public_key, "a" * 51, "c")

        with pytest.raises(ValidationError):
            lifecycle.validate(submission)
        assert submission.state == TxState.BUILT

    def test_limits_are_inclusive(self, offline):
        _, lifecycle = offline
        submission = lifecycle.build(Keypair.generate().public_key, "a" * 50, "b" * 280)

        lifecycle.validate(submission)
        assert submission.state == TxState.VALIDATED
        assert submission.expected_record is not None


class TestSigning:

    async def test_author_must_sign(self, lifecycle, author):
        submission = lifecycle.build(author.public_key, "t", "c")
        lifecycle.validate(submission)

        with pytest.raises(MissingSignerError):
            await lifecycle.sign(submission, Keypair.generate())
        assert submission.state == TxState.VALIDATED

    async def test_both_parties_sign(self, lifecycle, author):
        submission = lifecycle.build(author.public_key, "t", "c")
        lifecycle.validate(submission)
        await lifecycle.sign(submission, author)

        tx = submission.transaction
        assert set(tx.signatures) == {author.public_key, submission.identity_key}
        assert tx.verify_signatures()


class TestRejection:

    async def test_rejected_at_submission(self, lifecycle, ledger, author, metrics, monkeypatch):
        monkeypatch.setattr(ledger, "get_latest_blockhash", AsyncMock(return_value=bytes(32)))

        submission = lifecycle.build(author.public_key, "t", "c")
        lifecycle.validate(submission)
        await lifecycle.sign(submission, author)

        with pytest.raises(SubmissionRejected) as exc:
            await lifecycle.submit(submission)

        assert exc.value.reason == "BlockhashNotFound"
        assert submission.state == TxState.REJECTED
        assert submission.history[-2:] == [TxState.SUBMITTED, TxState.REJECTED]
        assert metrics.submissions_rejected == 1

    async def test_rejected_at_execution(self, lifecycle, metrics):
        unfunded = Keypair.generate()

        with pytest.raises(SubmissionRejected) as exc:
            await lifecycle.run(unfunded, "t", "c")

        assert exc.value.reason == "InsufficientFunds"
        assert metrics.submissions_rejected == 1

    async def test_rejection_history(self, lifecycle):
        unfunded = Keypair.generate()
        submission = lifecycle.build(unfunded.public_key, "t", "c")
        lifecycle.validate(submission)
        await lifecycle.sign(submission, unfunded)
        await lifecycle.submit(submission)

        with pytest.raises(SubmissionRejected):
            await lifecycle.await_finality(submission)

        assert submission.history[-2:] == [TxState.PENDING, TxState.REJECTED]
        assert submission.rejection.reason == "InsufficientFunds"


class TestConfirmationTimeout:
    """A timeout leaves the outcome unknown; it is not a rejection."""

    @pytest.fixture
    def slow_ledger(self, clock):
        return InMemoryLedger(clock=clock)

    async def test_timeout_stays_pending(self, slow_ledger, config, metrics):
        wallet = Keypair.generate()
        await TweetService(slow_ledger, wallet, config).airdrop()
        slow_ledger.finality_delay = 60.0

        lifecycle = TweetLifecycle(slow_ledger, config, metrics)
        submission = lifecycle.build(wallet.public_key, "t", "c")
        lifecycle.validate(submission)
        await lifecycle.sign(submission, wallet)
        await lifecycle.submit(submission)

        with pytest.raises(ConfirmationTimeout) as exc:
            await lifecycle.await_finality(submission, timeout=0.05)

        assert exc.value.identity == submission.identity_b64
        assert exc.value.signature == submission.signature
        assert submission.state == TxState.PENDING
        assert metrics.confirmation_timeouts == 1

        # Re-query by identity rather than resubmitting
        service = TweetService(slow_ledger, wallet, config)
        with pytest.raises(NotFoundError):
            await service.fetch_one(submission.identity_key)

    async def test_wait_for_unknown_signature(self, ledger):
        with pytest.raises(ConfirmationTimeout):
            await wait_for_signature(ledger, "never-sent", Commitment.FINALIZED, 0.05, 0.01)


class TestConcurrency:

    async def test_parallel_creates_do_not_interfere(self, service):
        tweets = await asyncio.gather(*(
            service.create("parallel", f"tweet {i}") for i in range(5)
        ))

        assert len({t.identity for t in tweets}) == 5
        assert sorted(t.record.content for t in tweets) == [f"tweet {i}" for i in range(5)]
        for tweet in tweets:
            assert (await service.fetch_one(tweet.identity)) == tweet


class TestUnreliableTransport:
    """Transport failures after the ledger has the transaction never lose the identity."""

    async def test_status_call_fails_once(self, service, ledger, monkeypatch):
        real_status = ledger.get_signature_status
        calls = []

        async def flaky_status(signature):
            calls.append(signature)
            if len(calls) == 1:
                raise LedgerRpcError("connection reset")
            return await real_status(signature)

        monkeypatch.setattr(ledger, "get_signature_status", flaky_status)

        tweet = await service.create("t", "hello")

        assert len(calls) > 1
        assert (await service.fetch_one(tweet.identity)) == tweet

    async def test_status_never_available(self, lifecycle, ledger, author, monkeypatch):
        monkeypatch.setattr(
            ledger,
            "get_signature_status",
            AsyncMock(side_effect=LedgerRpcError("ledger unreachable")),
        )

        with pytest.raises(ConfirmationTimeout) as exc:
            await lifecycle.run(author, "t", "hello", timeout=0.05)

        assert exc.value.identity is not None
        assert len(Signer.decode_key(exc.value.identity)) == 32

    async def test_acknowledgement_lost(self, service, ledger, monkeypatch):
        real_send = ledger.send_transaction

        async def send_then_drop(raw_transaction):
            await real_send(raw_transaction)
            raise LedgerRpcError("read timeout")

        monkeypatch.setattr(ledger, "send_transaction", send_then_drop)

        tweet = await service.create("t", "hello")

        assert tweet.record.content == "hello"
        assert len(await service.fetch_all()) == 1

    async def test_submission_pending_after_lost_acknowledgement(
        self, lifecycle, ledger, author, monkeypatch
    ):
        monkeypatch.setattr(
            ledger, "send_transaction", AsyncMock(side_effect=LedgerRpcError("refused"))
        )
        submission = lifecycle.build(author.public_key, "t", "c")
        lifecycle.validate(submission)
        await lifecycle.sign(submission, author)

        signature = await lifecycle.submit(submission)

        assert submission.state == TxState.PENDING
        assert signature == submission.transaction.signature_id
        with pytest.raises(ConfirmationTimeout) as exc:
            await lifecycle.await_finality(submission, timeout=0.05)
        assert exc.value.identity == submission.identity_b64
