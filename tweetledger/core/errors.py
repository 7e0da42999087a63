"""
Error taxonomy for the tweet ledger client.

Every failure surfaced to a caller derives from TweetLedgerError.
Nothing in this package retries automatically: validation and decode
errors are final, and a confirmation timeout must be resolved by
re-querying the record identity, never by resubmitting.
"""

from enum import Enum
from typing import Optional


class TweetLedgerError(Exception):
    """Base exception for tweet ledger errors."""
    pass


class ValidationError(TweetLedgerError):
    """
    Raised when a topic or content string breaks a length rule.

    The same check runs client-side (early, optimistic) and inside the
    ledger program (authoritative). The message matches the program's.
    """

    def __init__(self, field: str, limit: int, actual: int, message: Optional[str] = None):
        self.field = field
        self.limit = limit
        self.actual = actual
        if message is None:
            message = f"The provided {field} should be {limit} characters long maximum"
        self.message = message
        super().__init__(message)


class DecodeErrorKind(str, Enum):
    BAD_DISCRIMINATOR = "BadDiscriminator"
    TRUNCATED = "Truncated"
    INVALID_UTF8 = "InvalidUtf8"


class DecodeError(TweetLedgerError):
    """Raised when raw account bytes are not a valid tweet record."""
    kind: DecodeErrorKind


class BadDiscriminatorError(DecodeError):
    """The first 8 bytes do not carry the tweet record tag."""
    kind = DecodeErrorKind.BAD_DISCRIMINATOR


class TruncatedRecordError(DecodeError):
    """A fixed field or length prefix claims more bytes than remain."""
    kind = DecodeErrorKind.TRUNCATED


class SubmissionRejected(TweetLedgerError):
    """
    The ledger refused a submission.

    `reason` is the machine-readable reason string when the ledger gave one
    (e.g. "TopicTooLong", "InsufficientFunds", "AccountAlreadyInUse").
    """

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        self.message = message or reason
        super().__init__(f"Submission rejected: {self.message}")


class NotFoundError(TweetLedgerError):
    """No record exists at the requested identity."""

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"No tweet found at {identity}")


class ConfirmationTimeout(TweetLedgerError):
    """
    The confirmation wait exceeded its deadline.

    The submission may still land. Re-query by `identity`; do not resubmit.
    """

    def __init__(self, signature: str, timeout: float, identity: Optional[str] = None):
        self.signature = signature
        self.identity = identity
        self.timeout = timeout
        super().__init__(
            f"Transaction {signature[:16]}... not confirmed within {timeout}s. "
            "Its outcome is unknown: re-query the tweet identity instead of resubmitting."
        )


class MissingSignerError(TweetLedgerError):
    """A required signer has not signed the transaction."""
    pass


class LifecycleError(TweetLedgerError):
    """Raised on an illegal transaction state transition."""
    pass


class LedgerRpcError(TweetLedgerError):
    """Transport or protocol failure talking to the ledger service."""

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(message if code is None else f"[{code}] {message}")
