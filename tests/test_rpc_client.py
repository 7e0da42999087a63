"""
Tests for the JSON-RPC ledger client.

The client talks to the bundled ledger node in-process through
httpx.ASGITransport, so both sides of the wire are exercised.
"""

from collections.abc import AsyncGenerator

import httpx
import pytest

from tweetledger.core.errors import LedgerRpcError, SubmissionRejected
from tweetledger.core.filters import by_author, by_topic
from tweetledger.core.service import TweetService
from tweetledger.core.signer import Keypair
from tweetledger.ledger import LedgerConfig, LedgerDriver, create_ledger_client
from tweetledger.ledger.node import create_node_app
from tweetledger.ledger.rpc import METHOD_NOT_FOUND, HttpLedgerClient

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def rpc_config() -> LedgerConfig:
    return LedgerConfig(
        driver=LedgerDriver.RPC,
        rpc_url="http://ledger.test",
        confirm_timeout=2.0,
        poll_interval=0.01,
        production=False,
    )


@pytest.fixture
async def client(ledger, rpc_config) -> AsyncGenerator[HttpLedgerClient, None]:
    transport = httpx.ASGITransport(app=create_node_app(ledger))
    async with HttpLedgerClient(rpc_config, transport=transport) as client:
        yield client


@pytest.fixture
async def rpc_service(client, rpc_config) -> TweetService:
    service = TweetService(client, Keypair.generate(), rpc_config)
    await service.airdrop()
    return service


# =============================================================================
# LEDGER CALLS
# =============================================================================


class TestLedgerCalls:

    async def test_latest_blockhash(self, client, ledger):
        assert await client.get_latest_blockhash() == await ledger.get_latest_blockhash()

    async def test_airdrop_and_balance(self, client):
        wallet = Keypair.generate()
        signature = await client.request_airdrop(wallet.public_key, 5000)

        status = await client.get_signature_status(signature)
        assert not status.is_pending
        assert not status.is_rejected
        assert await client.get_balance(wallet.public_key) == 5000

    async def test_unknown_account(self, client):
        assert await client.get_account_info(Keypair.generate().public_key) is None

    async def test_unknown_signature_is_pending(self, client):
        assert (await client.get_signature_status("unknown")).is_pending

    async def test_malformed_transaction_is_rejected(self, client):
        with pytest.raises(SubmissionRejected) as exc:
            await client.send_transaction(b"\x01garbage")
        assert exc.value.reason == "MalformedTransaction"

    async def test_bad_params(self, client):
        with pytest.raises(LedgerRpcError):
            await client.request_airdrop(Keypair.generate().public_key, 0)

    async def test_unknown_method(self, client):
        with pytest.raises(LedgerRpcError) as exc:
            await client._call("getEverything")
        assert exc.value.code == METHOD_NOT_FOUND


# =============================================================================
# END TO END
# =============================================================================


class TestOverTheWire:
    """The facade behaves the same over JSON-RPC as in-process."""

    async def test_create_and_fetch(self, rpc_service):
        created = await rpc_service.create("veganism", "Plants")
        fetched = await rpc_service.fetch_one(created.identity)

        assert fetched == created
        assert fetched.record.author == rpc_service.wallet.public_key

    async def test_filters_travel_to_the_node(self, rpc_service, client):
        other = Keypair.generate()
        await rpc_service.airdrop(public_key=other.public_key)

        mine = await rpc_service.create("veganism", "Plants")
        await rpc_service.create("solana", "gm", author=other)

        by_me = await rpc_service.fetch_all([by_author(rpc_service.wallet.public_key)])
        vegan = await rpc_service.fetch_all([by_topic("veg")])

        assert [t.identity for t in by_me] == [mine.identity]
        assert [t.identity for t in vegan] == [mine.identity]

    async def test_execution_rejection(self, rpc_service):
        with pytest.raises(SubmissionRejected) as exc:
            await rpc_service.create("t", "c", author=Keypair.generate())
        assert exc.value.reason == "InsufficientFunds"


# =============================================================================
# TRANSPORT FAILURES
# =============================================================================


class TestTransportFailures:

    async def test_connection_error(self, rpc_config):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with HttpLedgerClient(rpc_config, transport=httpx.MockTransport(refuse)) as client:
            with pytest.raises(LedgerRpcError):
                await client.get_latest_blockhash()

    async def test_http_error_status(self, rpc_config):
        def fail(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        async with HttpLedgerClient(rpc_config, transport=httpx.MockTransport(fail)) as client:
            with pytest.raises(LedgerRpcError):
                await client.get_latest_blockhash()

    async def test_non_json_body(self, rpc_config):
        def garbage(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        async with HttpLedgerClient(rpc_config, transport=httpx.MockTransport(garbage)) as client:
            with pytest.raises(LedgerRpcError):
                await client.get_latest_blockhash()


class TestClientFactory:

    async def test_driver_selects_client(self, rpc_config):
        client = create_ledger_client(rpc_config)
        try:
            assert isinstance(client, HttpLedgerClient)
        finally:
            await client.close()
