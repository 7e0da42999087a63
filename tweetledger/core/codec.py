"""
Tweet Record Codec

Binary layout of a tweet account, and nothing else.

    offset  size  field
    0       8     discriminator  sha256("account:Tweet")[:8]
    8       32    author         Ed25519 public key
    40      8     timestamp      i64 little-endian, unix seconds
    48      4     topic length   u32 little-endian
    52      n     topic          UTF-8
    52+n    4     content length u32 little-endian
    56+n    m     content        UTF-8

Fixed-size fields sit at fixed offsets. Everything after the topic
length prefix is sequential, so the content offset can only be known
once the topic length is known. The filter builder takes its offsets
from here so the two never drift apart.

Length rules are counted in characters (code points), the same way the
ledger program counts them. Account space reserves 4 bytes per
character, so every valid string fits.
"""

import hashlib
import struct
from enum import Enum
from typing import Optional

from ..schemas import TweetRecord
from .errors import (
    BadDiscriminatorError,
    DecodeError,
    DecodeErrorKind,
    TruncatedRecordError,
    ValidationError,
)


class InvalidTextError(DecodeError):
    """A string field is not valid UTF-8."""
    kind = DecodeErrorKind.INVALID_UTF8


class RecordField(str, Enum):
    DISCRIMINATOR = "discriminator"
    AUTHOR = "author"
    TIMESTAMP = "timestamp"
    TOPIC_PREFIX = "topic_prefix"
    TOPIC = "topic"
    CONTENT_PREFIX = "content_prefix"
    CONTENT = "content"


def anchor_discriminator(namespace: str, name: str) -> bytes:
    """First 8 bytes of sha256("<namespace>:<name>")."""
    return hashlib.sha256(f"{namespace}:{name}".encode("utf-8")).digest()[:8]


class TweetCodec:
    """
    Encode, decode and locate the fields of a tweet record.

    Decoding is pure: it never touches the network and never mutates
    its input. A failed decode affects only that one buffer.
    """

    DISCRIMINATOR = anchor_discriminator("account", "Tweet")

    DISCRIMINATOR_LENGTH = 8
    PUBLIC_KEY_LENGTH = 32
    TIMESTAMP_LENGTH = 8
    STRING_LENGTH_PREFIX = 4

    MAX_TOPIC_CHARS = 50
    MAX_CONTENT_CHARS = 280
    MAX_BYTES_PER_CHAR = 4

    AUTHOR_OFFSET = DISCRIMINATOR_LENGTH                        # 8
    TIMESTAMP_OFFSET = AUTHOR_OFFSET + PUBLIC_KEY_LENGTH        # 40
    TOPIC_PREFIX_OFFSET = TIMESTAMP_OFFSET + TIMESTAMP_LENGTH   # 48
    TOPIC_OFFSET = TOPIC_PREFIX_OFFSET + STRING_LENGTH_PREFIX   # 52

    # Bytes the ledger allocates for one tweet account
    ACCOUNT_SPACE = (
        DISCRIMINATOR_LENGTH
        + PUBLIC_KEY_LENGTH
        + TIMESTAMP_LENGTH
        + STRING_LENGTH_PREFIX + MAX_TOPIC_CHARS * MAX_BYTES_PER_CHAR
        + STRING_LENGTH_PREFIX + MAX_CONTENT_CHARS * MAX_BYTES_PER_CHAR
    )

    _U32 = struct.Struct("<I")
    _I64 = struct.Struct("<q")

    # ================================================================
    # VALIDATION
    # ================================================================

    @classmethod
    def validate_fields(cls, topic: str, content: str) -> None:
        """
        Check the length rules.

        Raises:
            ValidationError: topic over 50 or content over 280 characters
        """
        if len(topic) > cls.MAX_TOPIC_CHARS:
            raise ValidationError("topic", cls.MAX_TOPIC_CHARS, len(topic))
        if len(content) > cls.MAX_CONTENT_CHARS:
            raise ValidationError("content", cls.MAX_CONTENT_CHARS, len(content))

    # ================================================================
    # ENCODE
    # ================================================================

    @classmethod
    def encode(
        cls,
        author: bytes,
        topic: str,
        content: str,
        timestamp: int = 0,
    ) -> bytes:
        """
        Encode a tweet record.

        The timestamp defaults to a zero placeholder; the ledger stamps
        the real value at commit time.
        """
        if len(author) != cls.PUBLIC_KEY_LENGTH:
            raise ValueError(f"author must be {cls.PUBLIC_KEY_LENGTH} bytes, got {len(author)}")
        cls.validate_fields(topic, content)

        return b"".join((
            cls.DISCRIMINATOR,
            author,
            cls._I64.pack(timestamp),
            cls.length_prefixed(topic),
            cls.length_prefixed(content),
        ))

    @classmethod
    def length_prefixed(cls, text: str) -> bytes:
        """u32 little-endian byte length followed by the UTF-8 bytes."""
        encoded = text.encode("utf-8")
        return cls._U32.pack(len(encoded)) + encoded

    @classmethod
    def stamp_timestamp(cls, data: bytes, timestamp: int) -> bytes:
        """Return a copy of `data` with the timestamp field overwritten."""
        if len(data) < cls.TOPIC_PREFIX_OFFSET:
            raise TruncatedRecordError(
                f"Record too short to hold a timestamp: {len(data)} bytes"
            )
        buf = bytearray(data)
        cls._I64.pack_into(buf, cls.TIMESTAMP_OFFSET, timestamp)
        return bytes(buf)

    # ================================================================
    # DECODE
    # ================================================================

    @classmethod
    def decode(cls, data: bytes) -> TweetRecord:
        """
        Decode raw account bytes into a TweetRecord.

        Trailing bytes past the content (account padding) are ignored.

        Raises:
            BadDiscriminatorError: first 8 bytes are not the tweet tag
            TruncatedRecordError: a field runs past the end of the buffer
            InvalidTextError: topic or content is not UTF-8
        """
        data = bytes(data)
        if len(data) < cls.DISCRIMINATOR_LENGTH:
            raise TruncatedRecordError(
                f"Record is {len(data)} bytes, shorter than the discriminator"
            )
        discriminator = data[:cls.DISCRIMINATOR_LENGTH]
        if discriminator != cls.DISCRIMINATOR:
            raise BadDiscriminatorError(
                f"Unexpected discriminator {discriminator.hex()}, "
                f"expected {cls.DISCRIMINATOR.hex()}"
            )

        if len(data) < cls.TOPIC_OFFSET:
            raise TruncatedRecordError(
                f"Record is {len(data)} bytes, fixed header needs {cls.TOPIC_OFFSET}"
            )
        author = data[cls.AUTHOR_OFFSET:cls.TIMESTAMP_OFFSET]
        (timestamp,) = cls._I64.unpack_from(data, cls.TIMESTAMP_OFFSET)

        topic, offset = cls._read_string(data, cls.TOPIC_PREFIX_OFFSET, "topic")
        content, _ = cls._read_string(data, offset, "content")

        return TweetRecord(
            discriminator=discriminator,
            author=author,
            timestamp=timestamp,
            topic=topic,
            content=content,
        )

    @classmethod
    def _read_string(cls, data: bytes, offset: int, name: str) -> tuple[str, int]:
        """Read a u32-prefixed UTF-8 string; return it and the next offset."""
        if len(data) < offset + cls.STRING_LENGTH_PREFIX:
            raise TruncatedRecordError(f"Missing {name} length prefix at offset {offset}")
        (length,) = cls._U32.unpack_from(data, offset)
        start = offset + cls.STRING_LENGTH_PREFIX
        end = start + length
        if end > len(data):
            raise TruncatedRecordError(
                f"{name} claims {length} bytes at offset {start}, "
                f"only {len(data) - start} remain"
            )
        try:
            return data[start:end].decode("utf-8"), end
        except UnicodeDecodeError as e:
            raise InvalidTextError(f"{name} is not valid UTF-8: {e}") from e

    # ================================================================
    # OFFSETS
    # ================================================================

    @classmethod
    def field_offset(cls, field: RecordField, topic_length: Optional[int] = None) -> int:
        """
        Byte offset of a record field.

        Offsets up to and including the topic body are fixed. The content
        prefix and body depend on the topic's UTF-8 byte length, which
        must be passed in for those two fields.
        """
        field = RecordField(field)
        fixed = {
            RecordField.DISCRIMINATOR: 0,
            RecordField.AUTHOR: cls.AUTHOR_OFFSET,
            RecordField.TIMESTAMP: cls.TIMESTAMP_OFFSET,
            RecordField.TOPIC_PREFIX: cls.TOPIC_PREFIX_OFFSET,
            RecordField.TOPIC: cls.TOPIC_OFFSET,
        }
        if field in fixed:
            return fixed[field]

        if topic_length is None:
            raise ValueError(
                f"Offset of {field.value} depends on the topic length; pass topic_length"
            )
        if topic_length < 0:
            raise ValueError(f"topic_length must be non-negative, got {topic_length}")

        content_prefix = cls.TOPIC_OFFSET + topic_length
        if field == RecordField.CONTENT_PREFIX:
            return content_prefix
        return content_prefix + cls.STRING_LENGTH_PREFIX
