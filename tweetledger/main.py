"""
Tweet Ledger - Client API

Main application entry point.

Tweets are immutable, author-signed records on an external ledger.
This service creates them on behalf of one wallet and reads them back.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tweetledger.core.service import TweetService
from tweetledger.core.signer import Signer, WalletSigner
from tweetledger.core.wallet import load_wallet
from tweetledger.ledger import InMemoryLedger, LedgerClient, LedgerConfig, create_ledger_client
from tweetledger.observability import (
    MetricsCollector,
    RequestContextMiddleware,
    check_health,
    get_logger,
    setup_logging,
)

# Setup logging at import time
setup_logging()
logger = get_logger(__name__)


def create_app(
    config: Optional[LedgerConfig] = None,
    ledger: Optional[LedgerClient] = None,
    wallet: Optional[WalletSigner] = None,
) -> FastAPI:
    """
    Build the API with an explicit service context.

    Anything not passed in is built from the environment at startup.
    A ledger passed in is left open on shutdown; one built here is closed.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_config = config or LedgerConfig.from_env()
        app_ledger = ledger or create_ledger_client(app_config)
        app_wallet = wallet or load_wallet(app_config)

        service = TweetService(app_ledger, app_wallet, app_config, MetricsCollector())
        app.state.tweet_service = service

        # A fresh in-process ledger has no funds; give the wallet some
        if isinstance(app_ledger, InMemoryLedger):
            if await app_ledger.get_balance(app_wallet.public_key) == 0:
                await service.airdrop()

        logger.info(
            "Application startup complete",
            ledger_client=type(app_ledger).__name__,
            wallet=Signer.encode_key(app_wallet.public_key),
            commitment=app_config.commitment.value,
        )

        yield

        if ledger is None:
            await app_ledger.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Tweet Ledger",
        description="""
## Tweet Ledger Client

Append immutable, author-signed tweets to a shared ledger and query them
back with server-side byte filters.

### Tweet Lifecycle

```
Built → Validated → Signed → Submitted → Pending → Finalized | Rejected
```

### API Design

**Commands**: `POST /tweets` returns once the tweet is finalized.
No PATCH, no PUT, no DELETE.

**Queries**: read straight from the ledger. Author and topic filters
are evaluated by the ledger on raw record bytes.

### Ledger Backends

- **InMemoryLedger**: Development/testing (default)
- **HttpLedgerClient**: JSON-RPC ledger node

Set `TWEETLEDGER_RPC_URL` to use a ledger node.
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add request context middleware for logging
    app.add_middleware(RequestContextMiddleware)

    from tweetledger.api.routes import router
    app.include_router(router)

    @app.get("/health", tags=["System"])
    async def health():
        """
        Basic health check endpoint.

        Returns 200 if the service is running.
        For ledger connectivity, use /health/detailed
        """
        return {"status": "healthy", "service": "tweetledger"}

    @app.get("/health/detailed", tags=["System"])
    async def health_detailed(request: Request):
        """
        Detailed health check with a ledger probe.

        Returns 200 if healthy, 503 if unhealthy.
        """
        service: TweetService = request.app.state.tweet_service
        health_status = await check_health(ledger=service.ledger)

        return JSONResponse(
            status_code=200 if health_status.healthy else 503,
            content={
                "status": "healthy" if health_status.healthy else "unhealthy",
                "checks": health_status.checks,
                "duration_ms": health_status.duration_ms,
            },
        )

    @app.get("/metrics", tags=["System"])
    async def metrics(request: Request):
        """
        Get application metrics.

        Returns counters and confirmation latency percentiles.
        """
        return request.app.state.tweet_service.metrics.get_summary()

    return app


app = create_app()
