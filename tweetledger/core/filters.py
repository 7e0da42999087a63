"""
Server-side Record Filters

A filter is an equality test on raw, undecoded account bytes:
"the bytes at `offset` equal `expected`". The ledger evaluates a list
of them as a conjunction before returning any account, so the client
never downloads records it would throw away.

There is no OR, no negation and no range. Anything richer is done by
fetching the superset and filtering after decode.

The builder does not check that an offset/length pair makes sense for
the field it targets. Putting author bytes at the wrong offset is a
caller error that silently matches nothing.
"""

import base64
from dataclasses import dataclass
from typing import Iterable

from .codec import RecordField, TweetCodec


@dataclass(frozen=True)
class MemcmpFilter:
    """Equality constraint over a byte range of an account's data."""
    offset: int
    expected: bytes

    def __post_init__(self):
        if self.offset < 0:
            raise ValueError(f"Filter offset must be non-negative, got {self.offset}")

    def matches(self, data: bytes) -> bool:
        end = self.offset + len(self.expected)
        if end > len(data):
            return False
        return data[self.offset:end] == self.expected

    def to_dict(self) -> dict:
        """Wire form used by the JSON-RPC dialect."""
        return {
            "memcmp": {
                "offset": self.offset,
                "bytes": base64.b64encode(self.expected).decode("ascii"),
                "encoding": "base64",
            }
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MemcmpFilter":
        memcmp = data["memcmp"]
        encoding = memcmp.get("encoding", "base64")
        if encoding != "base64":
            raise ValueError(f"Unsupported memcmp encoding: {encoding}")
        return cls(offset=int(memcmp["offset"]), expected=base64.b64decode(memcmp["bytes"]))


def matches_all(filters: Iterable[MemcmpFilter], data: bytes) -> bool:
    """AND-composition of filters. An empty list matches everything."""
    return all(f.matches(data) for f in filters)


def by_discriminator() -> MemcmpFilter:
    """Only accounts tagged as tweet records."""
    return MemcmpFilter(
        offset=TweetCodec.field_offset(RecordField.DISCRIMINATOR),
        expected=TweetCodec.DISCRIMINATOR,
    )


def by_author(public_key: bytes) -> MemcmpFilter:
    """Tweets written by `public_key`."""
    if len(public_key) != TweetCodec.PUBLIC_KEY_LENGTH:
        raise ValueError(
            f"Author key must be {TweetCodec.PUBLIC_KEY_LENGTH} bytes, got {len(public_key)}"
        )
    return MemcmpFilter(
        offset=TweetCodec.field_offset(RecordField.AUTHOR),
        expected=bytes(public_key),
    )


def by_topic(topic: str) -> MemcmpFilter:
    """
    Tweets whose topic starts with `topic`.

    The topic body always begins at the same offset whatever its length,
    which is what makes this work. The comparison covers only the bytes
    given, so "veg" also matches "vegan". Use by_topic_exact for equality.
    """
    return MemcmpFilter(
        offset=TweetCodec.field_offset(RecordField.TOPIC),
        expected=topic.encode("utf-8"),
    )


def by_topic_exact(topic: str) -> MemcmpFilter:
    """Tweets whose topic equals `topic`, length prefix included."""
    return MemcmpFilter(
        offset=TweetCodec.field_offset(RecordField.TOPIC_PREFIX),
        expected=TweetCodec.length_prefixed(topic),
    )
