"""
API Routes for the Tweet Ledger

Command endpoint (append-only, no PATCH, no PUT, no DELETE):
- POST /tweets                  - Create a tweet and wait for finality

Query endpoints (read straight from the ledger):
- GET /tweets/{identity}        - Fetch one tweet by its identity
- GET /tweets                   - List tweets, optionally by author/topic
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ..core.errors import (
    ConfirmationTimeout,
    DecodeError,
    LedgerRpcError,
    NotFoundError,
    SubmissionRejected,
    TweetLedgerError,
    ValidationError,
)
from ..core.filters import by_author, by_topic, by_topic_exact
from ..core.service import TweetService, newest_first
from ..core.signer import Signer
from ..schemas import SendTweetRequest, TweetResponse


router = APIRouter()

# ============================================================
# Dependency Injection
# ============================================================

def get_tweet_service(request: Request) -> TweetService:
    """The service built by the application lifespan."""
    return request.app.state.tweet_service


def to_http_error(error: TweetLedgerError) -> HTTPException:
    """Map a client error onto the HTTP status callers should see."""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, SubmissionRejected):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"reason": error.reason, "message": error.message},
        )
    if isinstance(error, ConfirmationTimeout):
        return HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail={"message": str(error), "identity": error.identity},
        )
    if isinstance(error, (DecodeError, LedgerRpcError)):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def _parse_key(value: str, name: str) -> bytes:
    try:
        return Signer.decode_key(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name}: expected URL-safe base64 of 32 bytes",
        )


# ============================================================
# Command Endpoints
# ============================================================

@router.post(
    "/tweets",
    response_model=TweetResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Tweets"],
    summary="Send a tweet",
)
async def send_tweet(
    request: SendTweetRequest,
    service: TweetService = Depends(get_tweet_service),
):
    """
    Create a tweet signed by the service wallet.

    Returns only once the ledger has finalized it. A 504 means the
    outcome is unknown: look the identity up instead of resending.
    """
    try:
        tweet = await service.create(request.topic, request.content)
    except TweetLedgerError as e:
        raise to_http_error(e)
    return TweetResponse.from_tweet(tweet)


# ============================================================
# Query Endpoints
# ============================================================

@router.get(
    "/tweets/{identity}",
    response_model=TweetResponse,
    tags=["Tweets"],
    summary="Get one tweet",
)
async def get_tweet(
    identity: str,
    service: TweetService = Depends(get_tweet_service),
):
    key = _parse_key(identity, "identity")
    try:
        tweet = await service.fetch_one(key)
    except TweetLedgerError as e:
        raise to_http_error(e)
    return TweetResponse.from_tweet(tweet)


@router.get(
    "/tweets",
    response_model=list[TweetResponse],
    tags=["Tweets"],
    summary="List tweets",
)
async def list_tweets(
    author: Optional[str] = Query(None, description="Author public key (URL-safe base64)"),
    topic: Optional[str] = Query(None, description="Topic to filter on"),
    exact_topic: bool = Query(True, description="Match the topic exactly; false for a prefix match"),
    service: TweetService = Depends(get_tweet_service),
):
    """
    List tweets, newest first.

    Filters are evaluated by the ledger on raw record bytes. A plain
    topic filter matches exactly; pass exact_topic=false for a prefix match.
    """
    filters = []
    if author is not None:
        filters.append(by_author(_parse_key(author, "author")))
    if topic is not None:
        filters.append(by_topic_exact(topic) if exact_topic else by_topic(topic))

    try:
        tweets = await service.fetch_all(filters)
    except TweetLedgerError as e:
        raise to_http_error(e)
    return [TweetResponse.from_tweet(t) for t in newest_first(tweets)]
