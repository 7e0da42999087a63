# Canonical Schemas for the Tweet Ledger
# A tweet, once committed, is never edited.

from .tweet import (
    TweetRecord,
    Tweet,
    SendTweetRequest,
    TweetResponse,
)

__all__ = [
    "TweetRecord",
    "Tweet",
    "SendTweetRequest",
    "TweetResponse",
]
