"""Shared fixtures: an in-process ledger, a funded wallet and a service."""

import itertools

import pytest

from tweetledger.core.service import TweetService
from tweetledger.core.signer import Keypair
from tweetledger.ledger import InMemoryLedger, LedgerConfig
from tweetledger.observability import MetricsCollector


GENESIS_TIMESTAMP = 1_700_000_000


@pytest.fixture
def clock():
    """Ledger clock that ticks one second per committed tweet."""
    ticks = itertools.count(GENESIS_TIMESTAMP)
    return lambda: next(ticks)


@pytest.fixture
def ledger(clock) -> InMemoryLedger:
    return InMemoryLedger(clock=clock)


@pytest.fixture
def config() -> LedgerConfig:
    return LedgerConfig(confirm_timeout=2.0, poll_interval=0.01, production=False)


@pytest.fixture
def wallet() -> Keypair:
    return Keypair.generate()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
async def service(ledger, wallet, config, metrics) -> TweetService:
    """A service whose wallet already holds enough to pay for tweets."""
    service = TweetService(ledger, wallet, config, metrics)
    await service.airdrop()
    return service
