"""
JSON-RPC Ledger Client

Talks to a ledger node over HTTP. The node may be the bundled one
(see node.py) or anything that speaks the same dialect.

Wire conventions:
- Keys and signatures are URL-safe base64 text
- Account data, transactions and filter bytes are standard base64
- Failures come back as JSON-RPC errors; code -32002 means the node
  refused a submission and carries {"reason": ...} in `data`

Usage:
    async with HttpLedgerClient(config) as ledger:
        blockhash = await ledger.get_latest_blockhash()
"""

from __future__ import annotations

import base64
import itertools
from typing import Any, Optional, Sequence

import httpx

from ..core.errors import LedgerRpcError, SubmissionRejected
from ..core.filters import MemcmpFilter
from ..core.signer import Signer
from ..observability import get_logger
from .base import AccountInfo, KeyedAccount, LedgerClient, SignatureStatus
from .config import Commitment, LedgerConfig

logger = get_logger(__name__)


# Error codes shared with the node
SUBMISSION_REJECTED = -32002
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def encode_data(raw: bytes) -> list[str]:
    return [base64.b64encode(raw).decode("ascii"), "base64"]


def decode_data(value: Any) -> bytes:
    """Account data arrives as [payload, encoding]."""
    if not isinstance(value, list) or len(value) != 2 or value[1] != "base64":
        raise LedgerRpcError(f"Unsupported account data encoding: {value!r}")
    return base64.b64decode(value[0])


def account_to_json(account: AccountInfo) -> dict[str, Any]:
    return {
        "owner": Signer.encode_key(account.owner),
        "lamports": account.lamports,
        "data": encode_data(account.data),
    }


def account_from_json(value: dict[str, Any]) -> AccountInfo:
    return AccountInfo(
        owner=Signer.decode_key(value["owner"]),
        lamports=int(value["lamports"]),
        data=decode_data(value["data"]),
    )


def status_to_json(status: SignatureStatus) -> Optional[dict[str, Any]]:
    """Null while pending, like an unknown signature."""
    if status.is_pending:
        return None
    return {
        "confirmationStatus": status.confirmation.value if status.confirmation else None,
        "err": {"reason": status.err, "message": status.message} if status.err else None,
    }


def status_from_json(value: Optional[dict[str, Any]]) -> SignatureStatus:
    if value is None:
        return SignatureStatus()
    err = value.get("err")
    confirmation = value.get("confirmationStatus")
    return SignatureStatus(
        confirmation=Commitment(confirmation) if confirmation else None,
        err=err["reason"] if err else None,
        message=err.get("message") if err else None,
    )


class HttpLedgerClient(LedgerClient):
    """
    Ledger client over JSON-RPC/HTTP.

    Holds one httpx.AsyncClient for its lifetime. Use it as an async
    context manager, or call close() when done.
    """

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or LedgerConfig.from_env()
        self._ids = itertools.count(1)
        self._http_client = httpx.AsyncClient(
            base_url=self.config.rpc_url,
            timeout=self.config.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> HttpLedgerClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http_client.aclose()

    # ================================================================
    # TRANSPORT
    # ================================================================

    async def _call(self, method: str, *params: Any) -> Any:
        """
        Make one JSON-RPC call and return its result.

        Raises:
            SubmissionRejected: the node refused a submission
            LedgerRpcError: transport failure or any other RPC error
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        try:
            response = await self._http_client.post("/", json=payload)
        except httpx.HTTPError as e:
            raise LedgerRpcError(
                f"Cannot reach ledger at {self.config.rpc_url}: {e}"
            ) from e

        if response.status_code != 200:
            raise LedgerRpcError(
                f"Ledger returned HTTP {response.status_code} for {method}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise LedgerRpcError(f"Ledger returned invalid JSON for {method}") from e

        error = body.get("error")
        if error:
            code = error.get("code")
            message = error.get("message", "Unknown error")
            if code == SUBMISSION_REJECTED:
                data = error.get("data") or {}
                raise SubmissionRejected(data.get("reason", "Rejected"), message)
            logger.warning("Ledger RPC error", method=method, code=code, error=message)
            raise LedgerRpcError(message, code=code)

        return body.get("result")

    # ================================================================
    # LEDGER CLIENT API
    # ================================================================

    async def get_latest_blockhash(self) -> bytes:
        result = await self._call("getLatestBlockhash")
        return Signer.decode_key(result["blockhash"])

    async def send_transaction(self, raw_transaction: bytes) -> str:
        payload = base64.b64encode(raw_transaction).decode("ascii")
        return await self._call("sendTransaction", payload, {"encoding": "base64"})

    async def get_signature_status(self, signature: str) -> SignatureStatus:
        result = await self._call("getSignatureStatuses", [signature])
        return status_from_json(result["value"][0])

    async def get_account_info(self, public_key: bytes) -> Optional[AccountInfo]:
        result = await self._call(
            "getAccountInfo",
            Signer.encode_key(public_key),
            {"encoding": "base64"},
        )
        value = result["value"]
        return account_from_json(value) if value is not None else None

    async def get_program_accounts(
        self,
        program_id: bytes,
        filters: Sequence[MemcmpFilter] = (),
    ) -> list[KeyedAccount]:
        result = await self._call(
            "getProgramAccounts",
            Signer.encode_key(program_id),
            {"encoding": "base64", "filters": [f.to_dict() for f in filters]},
        )
        return [
            KeyedAccount(
                public_key=Signer.decode_key(item["pubkey"]),
                account=account_from_json(item["account"]),
            )
            for item in result
        ]

    async def get_balance(self, public_key: bytes) -> int:
        result = await self._call("getBalance", Signer.encode_key(public_key))
        return int(result["value"])

    async def request_airdrop(self, public_key: bytes, lamports: int) -> str:
        return await self._call("requestAirdrop", Signer.encode_key(public_key), lamports)
