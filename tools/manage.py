#!/usr/bin/env python3
"""
Tweet Ledger Management CLI

Commands for working with a tweet ledger:
- keygen: Generate a wallet keypair
- airdrop: Fund the wallet (development ledgers only)
- send: Create a tweet and wait for finality
- get: Fetch one tweet by identity
- list: List tweets, optionally by author and topic
- serve-node: Run a local JSON-RPC ledger node
- health-check: Check configuration and ledger connectivity

The wallet is read from TWEETLEDGER_WALLET_PRIVATE_KEY and the ledger
from TWEETLEDGER_RPC_URL (or --url). Without a ledger URL the commands
run against a throwaway in-process ledger.

Usage:
    python -m tools.manage <command> [options]

Examples:
    python -m tools.manage keygen
    python -m tools.manage serve-node --port 8899
    python -m tools.manage --url http://127.0.0.1:8899 airdrop
    python -m tools.manage --url http://127.0.0.1:8899 send --topic veganism --content "Hello"
    python -m tools.manage --url http://127.0.0.1:8899 list --topic veg --prefix
"""

import argparse
import asyncio
import inspect
import json
import os
import sys
from dataclasses import replace
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


def _config(args):
    from tweetledger.ledger import LedgerConfig, LedgerDriver

    config = LedgerConfig.from_env()
    if args.url:
        config = replace(config, driver=LedgerDriver.RPC, rpc_url=args.url)
    return config


def _service(config):
    from tweetledger.core.service import TweetService
    from tweetledger.core.wallet import load_wallet
    from tweetledger.ledger import create_ledger_client

    return TweetService(create_ledger_client(config), load_wallet(config), config)


async def _fund_if_local(service):
    """A throwaway in-process ledger starts empty; fund the wallet first."""
    from tweetledger.ledger import InMemoryLedger

    if isinstance(service.ledger, InMemoryLedger):
        await service.airdrop()


def _print_tweet(tweet, as_json=False):
    from tweetledger.schemas import TweetResponse

    response = TweetResponse.from_tweet(tweet)
    if as_json:
        print(json.dumps(response.model_dump()))
        return
    print(f"  Identity:  {response.identity}")
    print(f"  Author:    {response.author}")
    print(f"  Timestamp: {response.timestamp}")
    print(f"  Topic:     {response.topic or '(none)'}")
    print(f"  Content:   {response.content}")


def cmd_keygen(args):
    """Generate a new wallet keypair."""
    from tweetledger.core.signer import Signer

    private_key, public_key = Signer.generate_keypair()

    print("[OK] Wallet keypair generated")
    print(f"\n  Public key (your author address):")
    print(f"  {public_key}")
    print(f"\n  Private key (KEEP SECRET!):")
    print(f"  {private_key}")
    print("\n  Set these environment variables:")
    print(f"  TWEETLEDGER_WALLET_PRIVATE_KEY={private_key}")
    print(f"  TWEETLEDGER_WALLET_PUBLIC_KEY={public_key}")


async def cmd_airdrop(args):
    """Request funds for the wallet."""
    from tweetledger.core.errors import TweetLedgerError
    from tweetledger.core.signer import Signer

    try:
        recipient = Signer.decode_key(args.to) if args.to else None
    except ValueError as e:
        print(f"[FAIL] Invalid recipient - {e}")
        return 1

    service = _service(_config(args))
    recipient = recipient or service.wallet.public_key
    try:
        signature = await service.airdrop(lamports=args.lamports, public_key=recipient)
        balance = await service.ledger.get_balance(recipient)
    except (TweetLedgerError, ValueError) as e:
        print(f"[FAIL] Airdrop failed - {e}")
        return 1
    finally:
        await service.ledger.close()

    print(f"[OK] Airdrop confirmed: {signature[:16]}...")
    print(f"  Recipient: {Signer.encode_key(recipient)}")
    print(f"  Balance:   {balance} lamports")
    return 0


async def cmd_send(args):
    """Create a tweet and wait for it to be finalized."""
    from tweetledger.core.errors import ConfirmationTimeout, TweetLedgerError

    service = _service(_config(args))
    try:
        await _fund_if_local(service)
        tweet = await service.create(args.topic, args.content, timeout=args.timeout)
    except ConfirmationTimeout as e:
        print(f"[WARN] {e}")
        print(f"  Look it up later: python -m tools.manage get {e.identity}")
        return 2
    except TweetLedgerError as e:
        print(f"[FAIL] {e}")
        return 1
    finally:
        await service.ledger.close()

    if not args.json:
        print("[OK] Tweet finalized")
    _print_tweet(tweet, args.json)
    return 0


async def cmd_get(args):
    """Fetch one tweet by identity."""
    from tweetledger.core.errors import TweetLedgerError
    from tweetledger.core.signer import Signer

    try:
        identity = Signer.decode_key(args.identity)
    except ValueError as e:
        print(f"[FAIL] {e}")
        return 1

    service = _service(_config(args))
    try:
        tweet = await service.fetch_one(identity)
    except TweetLedgerError as e:
        print(f"[FAIL] {e}")
        return 1
    finally:
        await service.ledger.close()

    _print_tweet(tweet, args.json)
    return 0


async def cmd_list(args):
    """List tweets matching the given filters."""
    from tweetledger.core.errors import TweetLedgerError
    from tweetledger.core.filters import by_author, by_topic, by_topic_exact
    from tweetledger.core.service import newest_first
    from tweetledger.core.signer import Signer

    filters = []
    if args.author:
        try:
            filters.append(by_author(Signer.decode_key(args.author)))
        except ValueError as e:
            print(f"[FAIL] Invalid author - {e}")
            return 1
    if args.topic is not None:
        filters.append(by_topic(args.topic) if args.prefix else by_topic_exact(args.topic))

    service = _service(_config(args))
    try:
        tweets = await service.fetch_all(filters)
    except TweetLedgerError as e:
        print(f"[FAIL] {e}")
        return 1
    finally:
        await service.ledger.close()

    if args.sort == "newest":
        tweets = newest_first(tweets)

    if not args.json:
        print(f"Found {len(tweets)} tweets")
    for tweet in tweets:
        if not args.json:
            print()
        _print_tweet(tweet, args.json)
    return 0


def cmd_serve_node(args):
    """Run a local JSON-RPC ledger node."""
    import uvicorn

    from tweetledger.ledger import InMemoryLedger, LedgerConfig
    from tweetledger.ledger.node import create_node_app
    from tweetledger.observability import setup_logging

    setup_logging()
    config = LedgerConfig.from_env()
    ledger = InMemoryLedger(program_id=config.program_id, finality_delay=args.finality_delay)

    print(f"Serving ledger node on http://{args.host}:{args.port}")
    uvicorn.run(create_node_app(ledger), host=args.host, port=args.port)


async def cmd_health_check(args):
    """Run comprehensive health checks."""
    from tweetledger.core.signer import Signer
    from tweetledger.ledger import LedgerDriver, create_ledger_client
    from tweetledger.observability import check_health

    config = _config(args)

    print("=== Tweet Ledger Health Check ===\n")

    print("Ledger:")
    if config.driver == LedgerDriver.RPC:
        print(f"  Type: JSON-RPC ({config.rpc_url})")
    else:
        print("  Type: In-Memory")
    print(f"  Program: {Signer.encode_key(config.program_id)}")
    print(f"  Commitment: {config.commitment.value}")

    ledger = create_ledger_client(config)
    try:
        status = await check_health(ledger=ledger)
    finally:
        await ledger.close()

    ledger_check = status.checks.get("ledger", {})
    if status.healthy:
        print(f"  Status: [OK] Reachable ({status.duration_ms} ms)")
    else:
        print(f"  Status: [FAIL] Failed - {ledger_check.get('error')}")
        return 1

    print("\nEnvironment:")
    if os.environ.get("TWEETLEDGER_WALLET_PRIVATE_KEY", ""):
        print("  Wallet key: [OK] Set")
    else:
        print("  Wallet key: [WARN] Using ephemeral (development)")

    print("\n=== Health Check Complete ===")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Tweet Ledger Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("--url", help="Ledger node URL (overrides TWEETLEDGER_RPC_URL)")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # keygen
    subparsers.add_parser(
        "keygen",
        help="Generate a wallet keypair"
    )

    # airdrop
    p_airdrop = subparsers.add_parser(
        "airdrop",
        help="Fund the wallet (development ledgers only)"
    )
    p_airdrop.add_argument("--lamports", type=int, help="Amount (default: TWEETLEDGER_AIRDROP_LAMPORTS)")
    p_airdrop.add_argument("--to", help="Recipient public key (default: the wallet)")

    # send
    p_send = subparsers.add_parser(
        "send",
        help="Create a tweet and wait for finality"
    )
    p_send.add_argument("--topic", default="", help="Topic (at most 50 characters)")
    p_send.add_argument("--content", required=True, help="Content (at most 280 characters)")
    p_send.add_argument("--timeout", type=float, help="Seconds to wait for finality")
    p_send.add_argument("--json", action="store_true", help="Print JSON")

    # get
    p_get = subparsers.add_parser(
        "get",
        help="Fetch one tweet by identity"
    )
    p_get.add_argument("identity", help="Tweet identity (URL-safe base64)")
    p_get.add_argument("--json", action="store_true", help="Print JSON")

    # list
    p_list = subparsers.add_parser(
        "list",
        help="List tweets"
    )
    p_list.add_argument("--author", help="Author public key (URL-safe base64)")
    p_list.add_argument("--topic", help="Topic (exact match unless --prefix)")
    p_list.add_argument("--prefix", action="store_true", help="Match every topic starting with --topic")
    p_list.add_argument("--sort", choices=["newest", "none"], default="newest", help="Ordering")
    p_list.add_argument("--json", action="store_true", help="Print one JSON object per line")

    # serve-node
    p_node = subparsers.add_parser(
        "serve-node",
        help="Run a local JSON-RPC ledger node"
    )
    p_node.add_argument("--host", default="127.0.0.1", help="Bind address")
    p_node.add_argument("--port", type=int, default=8899, help="Port")
    p_node.add_argument(
        "--finality-delay", type=float, default=0.0,
        help="Seconds before a submission is finalized"
    )

    # health-check
    subparsers.add_parser(
        "health-check",
        help="Check configuration and ledger connectivity"
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "keygen": cmd_keygen,
        "airdrop": cmd_airdrop,
        "send": cmd_send,
        "get": cmd_get,
        "list": cmd_list,
        "serve-node": cmd_serve_node,
        "health-check": cmd_health_check,
    }

    command = commands[args.command]
    if inspect.iscoroutinefunction(command):
        return asyncio.run(command(args)) or 0
    return command(args) or 0


if __name__ == "__main__":
    sys.exit(main())
