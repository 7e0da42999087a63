"""
Ledger Transactions

A transaction carries one instruction for a program, the accounts it
touches, a recent blockhash (so stale submissions expire) and one
Ed25519 signature per signing account.

Message layout (little-endian):

    32      fee payer
    1       account count
    33*n    account key + flags (bit 0 signer, bit 1 writable)
    32      recent blockhash
    32      program id
    4+k     instruction data, u32 length prefixed

Serialized transaction: signature count (u8), signatures in signer
order (64 bytes each), message.
"""

import hashlib
import struct
from dataclasses import dataclass, field

from .codec import TweetCodec, anchor_discriminator
from .errors import MissingSignerError
from .signer import PUBLIC_KEY_LENGTH, SIGNATURE_LENGTH, Signer, WalletSigner


# Well-known addresses. The system program is all zeros.
SYSTEM_PROGRAM_ID = bytes(32)
DEFAULT_PROGRAM_ID = hashlib.sha256(b"solana_twitter").digest()

SEND_TWEET_DISCRIMINATOR = anchor_discriminator("global", "send_tweet")

_FLAG_SIGNER = 0b01
_FLAG_WRITABLE = 0b10

_U8 = struct.Struct("<B")
_U32 = struct.Struct("<I")


@dataclass(frozen=True)
class AccountMeta:
    """An account referenced by an instruction."""
    public_key: bytes
    is_signer: bool
    is_writable: bool

    @property
    def flags(self) -> int:
        return (_FLAG_SIGNER if self.is_signer else 0) | (_FLAG_WRITABLE if self.is_writable else 0)


@dataclass(frozen=True)
class Instruction:
    """A program call: which program, which accounts, what data."""
    program_id: bytes
    accounts: tuple[AccountMeta, ...]
    data: bytes


def send_tweet_instruction(
    tweet: bytes,
    author: bytes,
    topic: str,
    content: str,
    program_id: bytes = DEFAULT_PROGRAM_ID,
) -> Instruction:
    """
    Build the instruction that creates a tweet account.

    Both the author and the new tweet identity must sign: the author to
    prove authorship and pay, the identity to prove it is a fresh key
    the author controls.
    """
    data = (
        SEND_TWEET_DISCRIMINATOR
        + TweetCodec.length_prefixed(topic)
        + TweetCodec.length_prefixed(content)
    )
    return Instruction(
        program_id=program_id,
        accounts=(
            AccountMeta(tweet, is_signer=True, is_writable=True),
            AccountMeta(author, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ),
        data=data,
    )


def decode_send_tweet_data(data: bytes) -> tuple[str, str]:
    """
    Parse send_tweet instruction data into (topic, content).

    Raises:
        ValueError: wrong discriminator, truncated data, or bad UTF-8
    """
    if data[:8] != SEND_TWEET_DISCRIMINATOR:
        raise ValueError("Instruction is not send_tweet")
    reader = _Reader(data, 8)
    topic = reader.read_prefixed().decode("utf-8")
    content = reader.read_prefixed().decode("utf-8")
    return topic, content


class _Reader:
    """Sequential reader over a byte buffer."""

    def __init__(self, data: bytes, offset: int = 0):
        self._data = data
        self.offset = offset

    def read(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self._data):
            raise ValueError(
                f"Unexpected end of data: wanted {size} bytes at offset {self.offset}"
            )
        chunk = self._data[self.offset:end]
        self.offset = end
        return chunk

    def read_u8(self) -> int:
        return _U8.unpack(self.read(1))[0]

    def read_u32(self) -> int:
        return _U32.unpack(self.read(4))[0]

    def read_prefixed(self) -> bytes:
        return self.read(self.read_u32())

    @property
    def exhausted(self) -> bool:
        return self.offset == len(self._data)


@dataclass
class Transaction:
    """
    A single-instruction transaction and its signatures.

    The message bytes are deterministic, so every signer signs the same
    payload and the ledger can re-derive it to verify.
    """
    instruction: Instruction
    fee_payer: bytes
    recent_blockhash: bytes
    signatures: dict[bytes, bytes] = field(default_factory=dict)

    def __post_init__(self):
        if self.fee_payer not in self.required_signers():
            raise ValueError("Fee payer must be a signer of the instruction")

    # ================================================================
    # MESSAGE
    # ================================================================

    def message(self) -> bytes:
        parts = [self.fee_payer, _U8.pack(len(self.instruction.accounts))]
        for meta in self.instruction.accounts:
            parts.append(meta.public_key)
            parts.append(_U8.pack(meta.flags))
        parts.append(self.recent_blockhash)
        parts.append(self.instruction.program_id)
        parts.append(_U32.pack(len(self.instruction.data)))
        parts.append(self.instruction.data)
        return b"".join(parts)

    def required_signers(self) -> list[bytes]:
        """Public keys that must sign, in account order."""
        return [m.public_key for m in self.instruction.accounts if m.is_signer]

    # ================================================================
    # SIGNING
    # ================================================================

    def sign(self, *signers: WalletSigner) -> None:
        """Add signatures from the given signers."""
        required = self.required_signers()
        message = self.message()
        for signer in signers:
            if signer.public_key not in required:
                raise ValueError(
                    f"{Signer.encode_key(signer.public_key)} is not a signer of this transaction"
                )
            self.signatures[signer.public_key] = signer.sign(message)

    def missing_signers(self) -> list[bytes]:
        return [k for k in self.required_signers() if k not in self.signatures]

    def is_fully_signed(self) -> bool:
        return not self.missing_signers()

    def verify_signatures(self) -> bool:
        """True only if every required signer has a valid signature."""
        if not self.is_fully_signed():
            return False
        message = self.message()
        return all(
            Signer.verify(message, self.signatures[key], key)
            for key in self.required_signers()
        )

    @property
    def signature_id(self) -> str:
        """
        The fee payer's signature, used as the submission handle.

        Raises:
            MissingSignerError: the fee payer has not signed yet
        """
        signature = self.signatures.get(self.fee_payer)
        if signature is None:
            raise MissingSignerError(
                f"Fee payer {Signer.encode_key(self.fee_payer)} has not signed"
            )
        return Signer.encode_key(signature)

    # ================================================================
    # WIRE FORMAT
    # ================================================================

    def serialize(self) -> bytes:
        """
        Wire bytes for submission.

        Raises:
            MissingSignerError: any required signer has not signed
        """
        missing = self.missing_signers()
        if missing:
            raise MissingSignerError(
                "Transaction is missing required signatures from: "
                + ", ".join(Signer.encode_key(k) for k in missing)
            )
        signers = self.required_signers()
        parts = [_U8.pack(len(signers))]
        parts.extend(self.signatures[k] for k in signers)
        parts.append(self.message())
        return b"".join(parts)

    @classmethod
    def deserialize(cls, raw: bytes) -> "Transaction":
        """
        Parse wire bytes.

        Raises:
            ValueError: malformed or truncated transaction
        """
        reader = _Reader(raw)
        signature_count = reader.read_u8()
        raw_signatures = [reader.read(SIGNATURE_LENGTH) for _ in range(signature_count)]

        fee_payer = reader.read(PUBLIC_KEY_LENGTH)
        account_count = reader.read_u8()
        accounts = []
        for _ in range(account_count):
            key = reader.read(PUBLIC_KEY_LENGTH)
            flags = reader.read_u8()
            accounts.append(AccountMeta(
                public_key=key,
                is_signer=bool(flags & _FLAG_SIGNER),
                is_writable=bool(flags & _FLAG_WRITABLE),
            ))
        recent_blockhash = reader.read(32)
        program_id = reader.read(PUBLIC_KEY_LENGTH)
        data = reader.read_prefixed()
        if not reader.exhausted:
            raise ValueError("Trailing bytes after transaction message")

        tx = cls(
            instruction=Instruction(program_id=program_id, accounts=tuple(accounts), data=data),
            fee_payer=fee_payer,
            recent_blockhash=recent_blockhash,
        )
        signers = tx.required_signers()
        if len(signers) != signature_count:
            raise ValueError(
                f"Transaction carries {signature_count} signatures for {len(signers)} signers"
            )
        tx.signatures = dict(zip(signers, raw_signatures))
        return tx
