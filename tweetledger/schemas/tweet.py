"""
Canonical Tweet Schema

A tweet is an immutable, author-signed record on the ledger.
There is no update and no delete. Only create and read.
"""

import base64
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii")


class TweetRecord(BaseModel):
    """
    A decoded tweet account.

    Layout on the ledger (little-endian):
        [8 discriminator][32 author][8 timestamp i64]
        [4 topic len u32][topic][4 content len u32][content]
    """
    model_config = ConfigDict(frozen=True)

    discriminator: bytes = Field(..., min_length=8, max_length=8)
    author: bytes = Field(..., description="Ed25519 public key of the author")
    timestamp: int = Field(..., description="Unix seconds, assigned by the ledger")
    topic: str = ""
    content: str

    @field_validator("author")
    @classmethod
    def author_is_public_key(cls, v: bytes) -> bytes:
        if len(v) != 32:
            raise ValueError(f"author must be 32 bytes, got {len(v)}")
        return v


class Tweet(BaseModel):
    """A tweet record together with the identity it lives at."""
    model_config = ConfigDict(frozen=True)

    identity: bytes
    record: TweetRecord

    @property
    def identity_b64(self) -> str:
        return _b64(self.identity)


# ============================================================
# API models
# ============================================================

class SendTweetRequest(BaseModel):
    """Request to create a tweet. Lengths are enforced by the validator, not here."""
    topic: str = ""
    content: str


class TweetResponse(BaseModel):
    """A tweet as exposed over HTTP. Keys are URL-safe base64."""
    identity: str
    author: str
    timestamp: int
    topic: str
    content: str
    signature: Optional[str] = None

    @classmethod
    def from_tweet(cls, tweet: Tweet, signature: Optional[str] = None) -> "TweetResponse":
        return cls(
            identity=tweet.identity_b64,
            author=_b64(tweet.record.author),
            timestamp=tweet.record.timestamp,
            topic=tweet.record.topic,
            content=tweet.record.content,
            signature=signature,
        )
