"""Tests for the management CLI against a throwaway in-process ledger."""

import json

import pytest

from tools.manage import main
from tweetledger.core.signer import Keypair, Signer


@pytest.fixture(autouse=True)
def local_env(monkeypatch):
    for name in ("TWEETLEDGER_RPC_URL", "TWEETLEDGER_LEDGER_DRIVER", "TWEETLEDGER_PRODUCTION"):
        monkeypatch.delenv(name, raising=False)
    private_key, public_key = Signer.generate_keypair()
    monkeypatch.setenv("TWEETLEDGER_WALLET_PRIVATE_KEY", private_key)
    monkeypatch.setenv("TWEETLEDGER_POLL_INTERVAL", "0.01")
    return public_key


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_keygen(capsys):
    assert main(["keygen"]) == 0

    out = capsys.readouterr().out
    line = next(l for l in out.splitlines() if l.strip().startswith("TWEETLEDGER_WALLET_PRIVATE_KEY="))
    private_key = line.strip().split("=", 1)[1]
    assert Keypair.from_base64(private_key)


def test_send(capsys, local_env):
    assert main(["send", "--topic", "solana", "--content", "gm", "--json"]) == 0

    lines = [l for l in capsys.readouterr().out.splitlines() if l.startswith("{")]
    tweet = json.loads(lines[-1])
    assert tweet["author"] == local_env
    assert tweet["topic"] == "solana"
    assert tweet["content"] == "gm"


def test_send_invalid(capsys):
    assert main(["send", "--topic", "t" * 51, "--content", "gm"]) == 1
    assert "50 characters" in capsys.readouterr().out


def test_get_unknown(capsys):
    identity = Signer.encode_key(Keypair.generate().public_key)
    assert main(["get", identity]) == 1
    assert "[FAIL]" in capsys.readouterr().out


def test_list_empty_ledger(capsys):
    assert main(["list", "--topic", "solana"]) == 0
    assert "Found 0 tweets" in capsys.readouterr().out


def test_health_check(capsys):
    assert main(["health-check"]) == 0
    assert "[OK]" in capsys.readouterr().out


def test_list_prefix(capsys):
    assert main(["list", "--topic", "sol", "--prefix"]) == 0
    assert "Found 0 tweets" in capsys.readouterr().out


def test_list_invalid_author(capsys):
    assert main(["list", "--author", "not-a-key"]) == 1
    assert "[FAIL] Invalid author" in capsys.readouterr().out


def test_airdrop_invalid_recipient(capsys):
    assert main(["airdrop", "--to", "not-a-key"]) == 1
    assert "[FAIL] Invalid recipient" in capsys.readouterr().out
