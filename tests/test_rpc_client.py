import json
from typing import Any

import pytest
import requests

from chainshell import encoding
from chainshell.keys import WalletKey
from chainshell.rpc_client import (
    ChainRPCClient,
    RPCError,
    RPCTransportError,
    b64url_decode,
    b64url_encode,
    build_transaction,
    transaction_digest,
)


class FakeResponse:
    def __init__(self, body: Any, status_code: int = 200) -> None:
        self._body = body
        self.status_code = status_code
        self.url = "http://node.test"
        self.text = json.dumps(body)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        return self._body

    def raise_for_status(self) -> None:
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.requests: list[dict] = []
        self.closed = False

    def post(self, url, data=None, headers=None, timeout=None):
        payload = json.loads(data)
        self.requests.append(payload)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        if isinstance(result, FakeResponse):
            return result
        return FakeResponse({"jsonrpc": "2.0", "id": payload["id"], "result": result})

    def close(self) -> None:
        self.closed = True


def test_b64url_tolerates_missing_padding() -> None:
    assert b64url_decode("AQI") == b"\x01\x02"
    assert b64url_decode(b64url_encode(b"\xfb\xff")) == b"\xfb\xff"


def test_read_contract_encodes_params() -> None:
    session = FakeSession({"result": b64url_encode(b"\x08\x05")})
    client = ChainRPCClient("http://node.test", session=session)
    contract_id = encoding.b58decode("1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH")

    assert client.read_contract(b"\x01", contract_id, 0x10) == b"\x08\x05"

    request = session.requests[0]
    assert request["method"] == "chain.read_contract"
    assert request["params"] == {
        "contract_id": "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH",
        "entry_point": 16,
        "args": "AQ==",
    }


def test_empty_read_result_is_empty_bytes() -> None:
    client = ChainRPCClient("http://node.test", session=FakeSession({}))
    assert client.read_contract(b"", b"\x01", 1) == b""


def test_node_errors_carry_logs() -> None:
    body = {"jsonrpc": "2.0", "id": "1", "error": {"code": -32603, "message": "reverted", "data": {"logs": ["nope"]}}}
    client = ChainRPCClient("http://node.test", session=FakeSession(FakeResponse(body, status_code=500)))

    with pytest.raises(RPCError) as excinfo:
        client.call("chain.get_chain_id")

    assert excinfo.value.code == -32603
    assert excinfo.value.logs == ["nope"]


def test_transport_failures() -> None:
    client = ChainRPCClient("http://node.test", session=FakeSession(requests.ConnectionError("down")))
    with pytest.raises(RPCTransportError):
        client.call("chain.get_chain_id")

    client = ChainRPCClient("http://node.test", session=FakeSession(FakeResponse("oops", status_code=502)))
    with pytest.raises(RPCTransportError) as excinfo:
        client.call("chain.get_chain_id")
    assert excinfo.value.status_code == 502


def test_write_contract_signs_and_submits() -> None:
    key = WalletKey.generate()
    session = FakeSession(
        {"chain_id": b64url_encode(b"\x00" * 32)},
        {"nonce": "4"},
        {"receipt": {"id": "0x1220ff"}},
    )
    client = ChainRPCClient("http://node.test", rc_limit=1234, session=session)

    receipt = client.write_contract(b"\x02", b"\x03", 7, key)

    assert receipt == {"id": "0x1220ff"}
    assert [request["method"] for request in session.requests] == [
        "chain.get_chain_id",
        "chain.get_account_nonce",
        "chain.submit_transaction",
    ]
    assert session.requests[1]["params"] == {"account": key.address()}

    transaction = session.requests[2]["params"]["transaction"]
    assert session.requests[2]["params"]["broadcast"] is True
    assert transaction["header"]["nonce"] == "5"
    assert transaction["header"]["rc_limit"] == "1234"
    assert transaction["header"]["payer"] == key.address()
    signature = b64url_decode(transaction["signatures"][0])
    assert key.verify(signature, transaction_digest(transaction))


def test_transaction_id_commits_to_header() -> None:
    common = dict(operations=[], chain_id=b"\x01", rc_limit=1, payer=b"\x00\x01")
    first = build_transaction(nonce=1, **common)
    second = build_transaction(nonce=2, **common)

    assert first["id"].startswith("0x1220")
    assert first["id"] != second["id"]
    assert first["id"] == "0x1220" + transaction_digest(first).hex()


def test_close_closes_session() -> None:
    session = FakeSession()
    ChainRPCClient("http://node.test", session=session).close()
    assert session.closed


def test_upload_contract_submits_upload_operation() -> None:
    key = WalletKey.generate()
    session = FakeSession({"chain_id": b64url_encode(b"\x00" * 32)}, {"nonce": "0"}, {})
    client = ChainRPCClient("http://node.test", session=session)

    receipt = client.upload_contract(b"\x00asm", key, abi='{"methods": {}}', authorizes={"call_contract": True})

    transaction = session.requests[2]["params"]["transaction"]
    assert receipt == {"id": transaction["id"]}
    assert transaction["header"]["nonce"] == "1"
    assert transaction["operations"] == [
        {
            "upload_contract": {
                "contract_id": key.address(),
                "bytecode": b64url_encode(b"\x00asm"),
                "abi": '{"methods": {}}',
                "authorizes_call_contract": True,
            }
        }
    ]
