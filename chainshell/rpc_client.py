"""JSON-RPC client for smart-contract chain nodes.

Contract commands talk to the node through the small :class:`RemoteInvoker`
surface so that tests and alternative transports can stand in for the
network. :class:`ChainRPCClient` is the production implementation.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import uuid
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol

import requests
from requests import RequestException, Response

from . import encoding
from .config import DEFAULT_RC_LIMIT, DEFAULT_RPC_TIMEOUT

if TYPE_CHECKING:  # pragma: no cover
    from .keys import WalletKey

logger = logging.getLogger(__name__)

READ_CONTRACT_CALL = "chain.read_contract"
GET_CHAIN_ID_CALL = "chain.get_chain_id"
GET_ACCOUNT_NONCE_CALL = "chain.get_account_nonce"
SUBMIT_TRANSACTION_CALL = "chain.submit_transaction"

# Multihash prefix for a 32-byte SHA-256 digest.
_SHA256_MULTIHASH_PREFIX = b"\x12\x20"


class RPCError(RuntimeError):
    """Raised when the node responds with a JSON-RPC error."""

    def __init__(self, code: int, message: str, logs: list[str] | None = None) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.logs = list(logs or [])


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteInvoker(Protocol):
    """What contract commands need from a node connection."""

    def read_contract(self, args: bytes, contract_id: bytes, entry_point: int) -> bytes:
        ...

    def write_contract(
        self, args: bytes, contract_id: bytes, entry_point: int, key: "WalletKey"
    ) -> Dict[str, Any]:
        ...

    def upload_contract(
        self,
        bytecode: bytes,
        key: "WalletKey",
        *,
        abi: str = "",
        authorizes: Optional[Dict[str, bool]] = None,
    ) -> Dict[str, Any]:
        ...


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii")


def b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def canonical_json(payload: Any) -> bytes:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")


class ChainRPCClient:
    """Thin JSON-RPC 2.0 client for a chain node.

    Byte fields travel as unpadded-tolerant base64url strings and contract ids
    and addresses as Base58, matching the node's JSON encoding.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        rc_limit: int = DEFAULT_RC_LIMIT,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.rc_limit = rc_limit
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params or {},
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self.url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                timeout=self.timeout,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                f"RPC connection to {self.url} failed. Ensure the node is reachable."
            ) from exc
        try:
            self._raise_for_status(response)
        except requests.HTTPError as exc:
            raise RPCTransportError(
                "RPC server returned an HTTP error; check the endpoint URL.",
                status_code=response.status_code,
            ) from exc
        try:
            result = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if not isinstance(result, dict):
            raise RPCTransportError("RPC server returned a non-object response")
        if result.get("error"):
            error = result["error"]
            data = error.get("data")
            logs = data.get("logs") if isinstance(data, dict) else None
            raise RPCError(error.get("code", -1), error.get("message", "unknown"), logs)
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        # JSON-RPC errors may arrive with an HTTP error status and still carry
        # a structured body.
        if not response.ok:
            try:
                err_body = response.json()
            except ValueError:
                err_body = response.text
            logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
            logger.debug("RPC error body: %s", err_body)
            if isinstance(err_body, dict) and err_body.get("error"):
                return
        response.raise_for_status()

    # Chain wrappers -------------------------------------------------------

    def read_contract(self, args: bytes, contract_id: bytes, entry_point: int) -> bytes:
        result = self.call(
            READ_CONTRACT_CALL,
            {
                "contract_id": encoding.b58encode(contract_id),
                "entry_point": entry_point,
                "args": b64url_encode(args),
            },
        )
        if not isinstance(result, dict):
            raise RPCTransportError("read_contract returned no result object")
        return b64url_decode(result.get("result", ""))

    def get_chain_id(self) -> bytes:
        result = self.call(GET_CHAIN_ID_CALL)
        return b64url_decode(result["chain_id"])

    def get_account_nonce(self, address: bytes) -> int:
        result = self.call(GET_ACCOUNT_NONCE_CALL, {"account": encoding.b58encode(address)})
        return int(result.get("nonce") or 0)

    def write_contract(
        self, args: bytes, contract_id: bytes, entry_point: int, key: "WalletKey"
    ) -> Dict[str, Any]:
        """Sign and submit a transaction holding one contract call."""

        operation = {
            "call_contract": {
                "contract_id": encoding.b58encode(contract_id),
                "entry_point": entry_point,
                "args": b64url_encode(args),
            }
        }
        return self.submit_operation(operation, key)

    def upload_contract(
        self,
        bytecode: bytes,
        key: "WalletKey",
        *,
        abi: str = "",
        authorizes: Optional[Dict[str, bool]] = None,
    ) -> Dict[str, Any]:
        """Upload ``bytecode`` as the contract living at the key's address."""

        upload: Dict[str, Any] = {
            "contract_id": key.address(),
            "bytecode": b64url_encode(bytecode),
        }
        if abi:
            upload["abi"] = abi
        for name, value in (authorizes or {}).items():
            upload[f"authorizes_{name}"] = value
        return self.submit_operation({"upload_contract": upload}, key)

    def submit_operation(self, operation: Dict[str, Any], key: "WalletKey") -> Dict[str, Any]:
        address = key.address_bytes()
        transaction = build_transaction(
            operations=[operation],
            chain_id=self.get_chain_id(),
            nonce=self.get_account_nonce(address) + 1,
            rc_limit=self.rc_limit,
            payer=address,
        )
        sign_transaction(transaction, key)
        logger.debug("submitting transaction %s", transaction["id"])
        result = self.call(SUBMIT_TRANSACTION_CALL, {"transaction": transaction, "broadcast": True})
        receipt = result.get("receipt") if isinstance(result, dict) else None
        return receipt or {"id": transaction["id"]}


def build_transaction(
    *,
    operations: list[Dict[str, Any]],
    chain_id: bytes,
    nonce: int,
    rc_limit: int,
    payer: bytes,
) -> Dict[str, Any]:
    """Assemble an unsigned transaction and derive its id from the header."""

    header = {
        "chain_id": b64url_encode(chain_id),
        "rc_limit": str(rc_limit),
        "nonce": str(nonce),
        "operation_merkle_root": b64url_encode(
            _SHA256_MULTIHASH_PREFIX + hashlib.sha256(canonical_json(operations)).digest()
        ),
        "payer": encoding.b58encode(payer),
    }
    digest = hashlib.sha256(canonical_json(header)).digest()
    return {
        "id": "0x" + (_SHA256_MULTIHASH_PREFIX + digest).hex(),
        "header": header,
        "operations": operations,
        "signatures": [],
    }


def transaction_digest(transaction: Dict[str, Any]) -> bytes:
    return hashlib.sha256(canonical_json(transaction["header"])).digest()


def sign_transaction(transaction: Dict[str, Any], key: "WalletKey") -> None:
    signature = key.sign(transaction_digest(transaction))
    transaction["signatures"].append(b64url_encode(signature))
