"""
Local Ledger Node

Serves an InMemoryLedger over the JSON-RPC dialect HttpLedgerClient
speaks. Useful for running the API and the CLI as separate processes
against one shared ledger:

    python -m tools.manage serve-node --port 8899

Supported methods:
- getLatestBlockhash
- sendTransaction
- getSignatureStatuses
- getAccountInfo
- getProgramAccounts (memcmp filters only)
- getBalance
- requestAirdrop
"""

import base64
from typing import Any, Awaitable, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.errors import SubmissionRejected
from ..core.filters import MemcmpFilter
from ..core.signer import Signer
from ..observability import RequestContextMiddleware, get_logger
from .memory import InMemoryLedger
from .rpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    SUBMISSION_REJECTED,
    account_to_json,
    status_to_json,
)

logger = get_logger(__name__)


class InvalidParams(Exception):
    pass


def _key(value: Any) -> bytes:
    try:
        return Signer.decode_key(value)
    except (ValueError, AttributeError) as e:
        raise InvalidParams(f"Invalid public key: {value!r}") from e


def _param(params: list, index: int, default: Any = None) -> Any:
    return params[index] if index < len(params) else default


class LedgerNode:
    """Maps JSON-RPC methods onto an InMemoryLedger."""

    def __init__(self, ledger: InMemoryLedger):
        self.ledger = ledger
        self._methods: dict[str, Callable[[list], Awaitable[Any]]] = {
            "getLatestBlockhash": self.get_latest_blockhash,
            "sendTransaction": self.send_transaction,
            "getSignatureStatuses": self.get_signature_statuses,
            "getAccountInfo": self.get_account_info,
            "getProgramAccounts": self.get_program_accounts,
            "getBalance": self.get_balance,
            "requestAirdrop": self.request_airdrop,
        }

    async def dispatch(self, body: Any) -> dict[str, Any]:
        """Handle one JSON-RPC request object."""
        request_id = body.get("id") if isinstance(body, dict) else None
        if not isinstance(body, dict) or not isinstance(body.get("method"), str):
            return _error(request_id, INVALID_PARAMS, "Invalid request")

        method = body["method"]
        params = body.get("params") or []
        handler = self._methods.get(method)
        if handler is None:
            return _error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")
        if not isinstance(params, list):
            return _error(request_id, INVALID_PARAMS, "params must be an array")

        try:
            result = await handler(params)
        except SubmissionRejected as e:
            return _error(request_id, SUBMISSION_REJECTED, e.message, {"reason": e.reason})
        except (InvalidParams, ValueError, KeyError, TypeError) as e:
            return _error(request_id, INVALID_PARAMS, str(e))
        except Exception as e:
            logger.exception("Ledger node method failed", method=method, error=str(e))
            return _error(request_id, INTERNAL_ERROR, "Internal error")

        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    # ================================================================
    # METHODS
    # ================================================================

    async def get_latest_blockhash(self, params: list) -> dict[str, Any]:
        blockhash = await self.ledger.get_latest_blockhash()
        return {"blockhash": Signer.encode_key(blockhash), "slot": self.ledger.slot}

    async def send_transaction(self, params: list) -> str:
        payload = _param(params, 0)
        if not isinstance(payload, str):
            raise InvalidParams("Expected a base64 transaction")
        try:
            raw = base64.b64decode(payload, validate=True)
        except ValueError as e:
            raise InvalidParams("Transaction is not valid base64") from e
        return await self.ledger.send_transaction(raw)

    async def get_signature_statuses(self, params: list) -> dict[str, Any]:
        signatures = _param(params, 0, [])
        if not isinstance(signatures, list):
            raise InvalidParams("Expected a list of signatures")
        statuses = [await self.ledger.get_signature_status(s) for s in signatures]
        return {"value": [status_to_json(s) for s in statuses]}

    async def get_account_info(self, params: list) -> dict[str, Any]:
        account = await self.ledger.get_account_info(_key(_param(params, 0)))
        return {"value": account_to_json(account) if account else None}

    async def get_program_accounts(self, params: list) -> list[dict[str, Any]]:
        program_id = _key(_param(params, 0))
        options = _param(params, 1, {}) or {}
        filters = [MemcmpFilter.from_dict(f) for f in options.get("filters", [])]
        accounts = await self.ledger.get_program_accounts(program_id, filters)
        return [
            {"pubkey": Signer.encode_key(keyed.public_key), "account": account_to_json(keyed.account)}
            for keyed in accounts
        ]

    async def get_balance(self, params: list) -> dict[str, Any]:
        balance = await self.ledger.get_balance(_key(_param(params, 0)))
        return {"value": balance}

    async def request_airdrop(self, params: list) -> str:
        public_key = _key(_param(params, 0))
        lamports = _param(params, 1)
        if not isinstance(lamports, int):
            raise InvalidParams("Expected lamports as an integer")
        return await self.ledger.request_airdrop(public_key, lamports)


def _error(
    request_id: Any,
    code: int,
    message: str,
    data: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def create_node_app(ledger: Optional[InMemoryLedger] = None) -> FastAPI:
    """Build a FastAPI app serving `ledger` (a fresh one if omitted)."""
    node = LedgerNode(ledger or InMemoryLedger())

    app = FastAPI(
        title="Tweet Ledger Node",
        description="Local JSON-RPC ledger for development.",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
    )
    app.state.node = node
    app.add_middleware(RequestContextMiddleware)

    @app.post("/")
    async def rpc(request: Request):
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(_error(None, -32700, "Parse error"))
        return JSONResponse(await node.dispatch(body))

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "tweetledger-node", "slot": node.ledger.slot}

    return app
