"""
Cryptographic Signing

Uses Ed25519 for every key in the system:
- Wallets (tweet authors, who pay for and sign their tweets)
- Tweet identities (a fresh keypair per tweet; its public key is the
  account address and it co-signs its own creation)

Keys travel as URL-safe base64 text.
"""

import base64
import binascii
from typing import Protocol, runtime_checkable

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey, VerifyKey


PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


@runtime_checkable
class WalletSigner(Protocol):
    """
    Anything that can sign on behalf of a public key.

    Key custody lives outside this package; a hardware or browser wallet
    only needs to expose these two members.
    """
    public_key: bytes

    def sign(self, message: bytes) -> bytes:
        ...


class Keypair:
    """
    An Ed25519 keypair.

    Generated keys come from the operating system CSPRNG, so tweet
    identities are unpredictable and never reused.
    """

    def __init__(self, signing_key: SigningKey):
        self._signing_key = signing_key
        self.public_key: bytes = bytes(signing_key.verify_key)

    @classmethod
    def generate(cls) -> "Keypair":
        return cls(SigningKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        """Rebuild a keypair from its 32-byte private seed."""
        return cls(SigningKey(seed))

    @classmethod
    def from_base64(cls, private_key_b64: str) -> "Keypair":
        return cls.from_seed(Signer.decode_key(private_key_b64))

    @property
    def secret_seed(self) -> bytes:
        return bytes(self._signing_key)

    def sign(self, message: bytes) -> bytes:
        """Detached 64-byte signature over `message`."""
        return self._signing_key.sign(message).signature

    def __repr__(self) -> str:
        return f"Keypair(public_key={Signer.encode_key(self.public_key)})"


class Signer:
    """Ed25519 helpers shared by the client and the ledger."""

    @staticmethod
    def generate_keypair() -> tuple[str, str]:
        """
        Generate a new Ed25519 keypair.

        Returns:
            Tuple of (private_key_b64, public_key_b64)
        """
        keypair = Keypair.generate()
        return Signer.encode_key(keypair.secret_seed), Signer.encode_key(keypair.public_key)

    @staticmethod
    def encode_key(raw: bytes) -> str:
        """URL-safe base64 text form of a key or signature."""
        return base64.urlsafe_b64encode(raw).decode("ascii")

    @staticmethod
    def decode_key(text: str, length: int = PUBLIC_KEY_LENGTH) -> bytes:
        """
        Parse URL-safe base64 key text.

        Raises:
            ValueError: text is not base64 or has the wrong length
        """
        try:
            raw = base64.urlsafe_b64decode(text.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError) as e:
            raise ValueError(f"Invalid base64 key: {text!r}") from e
        if len(raw) != length:
            raise ValueError(f"Key must decode to {length} bytes, got {len(raw)}")
        return raw

    @staticmethod
    def verify(message: bytes, signature: bytes, public_key: bytes) -> bool:
        """
        Verify an Ed25519 signature.

        Returns:
            True if signature is valid, False otherwise (never raises)
        """
        if len(signature) != SIGNATURE_LENGTH or len(public_key) != PUBLIC_KEY_LENGTH:
            return False
        try:
            VerifyKey(public_key).verify(message, signature)
            return True
        except (BadSignatureError, CryptoError, ValueError):
            return False
