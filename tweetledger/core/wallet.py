"""
Wallet Loading

The author wallet is held outside this package; this module only finds
the key the process should sign with.

- Set TWEETLEDGER_WALLET_PRIVATE_KEY to the URL-safe base64 Ed25519 seed
- Optionally set TWEETLEDGER_WALLET_PUBLIC_KEY to have it cross-checked
- Generate with: python -m tools.manage keygen

DEVELOPMENT MODE:
- If no key is set, an ephemeral keypair is generated (warning issued)
- It changes on each restart, so anything it authored is orphaned

PRODUCTION (TWEETLEDGER_PRODUCTION=1) refuses to start without a key.
"""

import os
import warnings
from typing import Optional

from ..ledger.config import LedgerConfig
from ..observability import get_logger
from .signer import Keypair, Signer

logger = get_logger(__name__)


def load_wallet(config: Optional[LedgerConfig] = None) -> Keypair:
    """
    Load the author wallet from the environment.

    Raises:
        RuntimeError: key pair mismatch, or no key in production mode
    """
    config = config or LedgerConfig.from_env()
    private_key = os.environ.get("TWEETLEDGER_WALLET_PRIVATE_KEY", "")
    public_key = os.environ.get("TWEETLEDGER_WALLET_PUBLIC_KEY", "")

    if private_key:
        try:
            wallet = Keypair.from_base64(private_key)
        except ValueError as e:
            raise RuntimeError(f"TWEETLEDGER_WALLET_PRIVATE_KEY is not a valid key: {e}")

        if public_key and not _keypair_matches(wallet, public_key):
            raise RuntimeError(
                "Wallet keypair validation failed. "
                "Private and public keys do not match."
            )
        logger.info("Wallet loaded from environment", public_key=Signer.encode_key(wallet.public_key))
        return wallet

    if config.production:
        raise RuntimeError(
            "TWEETLEDGER_WALLET_PRIVATE_KEY must be set in production. "
            "Generate one with: python -m tools.manage keygen"
        )

    warnings.warn(
        "Wallet key not configured. Generating ephemeral key for development. "
        "This key changes on each restart - NOT suitable for production!",
        stacklevel=2,
    )
    wallet = Keypair.generate()
    logger.info("Generated ephemeral wallet", public_key=Signer.encode_key(wallet.public_key))
    return wallet


def _keypair_matches(wallet: Keypair, public_key_b64: str) -> bool:
    """Sign a test message and verify it against the claimed public key."""
    try:
        claimed = Signer.decode_key(public_key_b64)
    except ValueError:
        return False
    message = b"tweetledger-keypair-validation"
    return Signer.verify(message, wallet.sign(message), claimed)
