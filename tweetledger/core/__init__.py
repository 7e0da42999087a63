# Core tweet services: record layout, filters, keys and transactions.
# The lifecycle and service modules sit on top of the ledger package and
# are imported from their own modules.
from .errors import (
    TweetLedgerError,
    ValidationError,
    DecodeError,
    DecodeErrorKind,
    BadDiscriminatorError,
    TruncatedRecordError,
    SubmissionRejected,
    NotFoundError,
    ConfirmationTimeout,
    MissingSignerError,
    LifecycleError,
    LedgerRpcError,
)
from .codec import TweetCodec, RecordField, InvalidTextError, anchor_discriminator
from .filters import (
    MemcmpFilter,
    matches_all,
    by_discriminator,
    by_author,
    by_topic,
    by_topic_exact,
)
from .signer import Keypair, Signer, WalletSigner
from .transaction import (
    Transaction,
    Instruction,
    AccountMeta,
    send_tweet_instruction,
    SYSTEM_PROGRAM_ID,
    DEFAULT_PROGRAM_ID,
)

__all__ = [
    # Errors
    "TweetLedgerError",
    "ValidationError",
    "DecodeError",
    "DecodeErrorKind",
    "BadDiscriminatorError",
    "TruncatedRecordError",
    "InvalidTextError",
    "SubmissionRejected",
    "NotFoundError",
    "ConfirmationTimeout",
    "MissingSignerError",
    "LifecycleError",
    "LedgerRpcError",
    # Codec
    "TweetCodec",
    "RecordField",
    "anchor_discriminator",
    # Filters
    "MemcmpFilter",
    "matches_all",
    "by_discriminator",
    "by_author",
    "by_topic",
    "by_topic_exact",
    # Keys
    "Keypair",
    "Signer",
    "WalletSigner",
    # Transactions
    "Transaction",
    "Instruction",
    "AccountMeta",
    "send_tweet_instruction",
    "SYSTEM_PROGRAM_ID",
    "DEFAULT_PROGRAM_ID",
]
