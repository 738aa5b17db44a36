import json
from pathlib import Path

import pytest
from conftest import StubInvoker, calc_abi

from chainshell import encoding
from chainshell.abi import ABI, load_abi, parse_entry_point, register_contract
from chainshell.binder import encode_message
from chainshell.errors import ContractError, InvalidABIError, UnknownTypeError, UnsupportedFieldTypeError
from chainshell.interpreter import ExecutionContext, parse_and_interpret
from chainshell.keys import WalletKey
from chainshell.rpc_client import RPCError

CONTRACT_ADDRESS = "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"


def test_abi_accepts_method_mapping_and_list() -> None:
    mapped = ABI.from_dict(calc_abi())
    listed = ABI.from_dict(
        {
            "methods": [{"name": "add", "argument": "calc.add_arguments", "entry-point": 1}],
            "types": mapped.types,
        }
    )

    assert mapped.methods["add"].entry_point == 0x1234ABCD
    assert mapped.methods["add"].read_only is True
    assert mapped.methods["move"].result == ""
    assert listed.methods["add"].entry_point == 1


@pytest.mark.parametrize(
    "raw, expected",
    [("0x10", 16), ("42", 42), (7, 7), ("0xFFFFFFFF", 0xFFFFFFFF)],
)
def test_parse_entry_point(raw, expected) -> None:
    assert parse_entry_point(raw, "m") == expected


@pytest.mark.parametrize("raw", [None, "zz", -1, 0x100000000, True])
def test_parse_entry_point_rejects_bad_values(raw) -> None:
    with pytest.raises(InvalidABIError):
        parse_entry_point(raw, "m")


@pytest.mark.parametrize("flag", ["false", "true", 0, None])
def test_read_only_flag_must_be_a_json_boolean(flag) -> None:
    add = dict(calc_abi()["methods"]["add"], **{"read-only": flag})

    with pytest.raises(InvalidABIError, match="read-only"):
        ABI.from_dict(calc_abi(add=add))


def test_load_abi_rejects_malformed_json(tmp_path: Path) -> None:
    path = tmp_path / "broken.abi"
    path.write_text("{not json")

    with pytest.raises(InvalidABIError):
        load_abi(path)
    with pytest.raises(InvalidABIError):
        load_abi(tmp_path / "missing.abi")


def test_register_adds_contract_and_commands(ctx: ExecutionContext) -> None:
    before = len(ctx.commands)
    contract = register_contract(ctx, "calc", CONTRACT_ADDRESS, ABI.from_dict(calc_abi()))

    assert "calc" in ctx.contracts
    assert contract.address == encoding.b58decode(CONTRACT_ADDRESS)
    assert len(ctx.commands) == before + 2
    assert ctx.commands.get("calc.add").usage() == "calc.add <x:uint> <y:uint>"
    assert ctx.commands.get("calc.move").description == "Move a point"
    assert ctx.contracts.lookup("calc.move")[1].entry_point == 7


def test_register_is_all_or_nothing(ctx: ExecutionContext) -> None:
    before = len(ctx.commands)
    abi = ABI.from_dict(calc_abi(broken={"argument": "calc.nope", "entry_point": 3}))

    with pytest.raises(UnknownTypeError):
        register_contract(ctx, "calc", CONTRACT_ADDRESS, abi)

    assert len(ctx.contracts) == 0
    assert len(ctx.commands) == before
    assert ctx.commands.get("calc.add") is None


def test_register_rejects_unsupported_arguments(ctx: ExecutionContext) -> None:
    abi = ABI.from_dict(calc_abi(many={"argument": "calc.list_arguments", "entry_point": 3}))

    with pytest.raises(UnsupportedFieldTypeError):
        register_contract(ctx, "calc", CONTRACT_ADDRESS, abi)
    assert "calc" not in ctx.contracts


def test_register_rejects_duplicates_and_bad_names(ctx: ExecutionContext) -> None:
    abi = ABI.from_dict(calc_abi())
    register_contract(ctx, "calc", CONTRACT_ADDRESS, abi)

    with pytest.raises(ContractError):
        register_contract(ctx, "calc", CONTRACT_ADDRESS, abi)
    with pytest.raises(ContractError):
        register_contract(ctx, "bad-name", CONTRACT_ADDRESS, abi)
    with pytest.raises(ContractError):
        register_contract(ctx, "other", "0OIl", abi)


def test_read_only_method_reads_and_formats(ctx: ExecutionContext, invoker: StubInvoker) -> None:
    contract = register_contract(ctx, "calc", CONTRACT_ADDRESS, ABI.from_dict(calc_abi()))
    library = contract.library
    invoker.read_response = encode_message(library, library.schema("calc.add_result"), {"value": 3})
    ctx.connect("http://node.test")

    output = parse_and_interpret(ctx.parser, ctx, "calc.add 1 2")

    assert output.lines() == ["value: 3"]
    args, contract_id, entry_point = invoker.reads[0]
    assert contract_id == contract.address
    assert entry_point == 0x1234ABCD
    assert args == encode_message(library, library.schema("calc.add_arguments"), {"x": 1, "y": 2})


def test_contract_method_requires_connection(ctx: ExecutionContext) -> None:
    register_contract(ctx, "calc", CONTRACT_ADDRESS, ABI.from_dict(calc_abi()))

    output = parse_and_interpret(ctx.parser, ctx, "calc.add 1 2")

    assert output.lines() == ["wallet is offline: cannot execute method"]


def test_write_method_submits_transaction(ctx: ExecutionContext, invoker: StubInvoker) -> None:
    register_contract(ctx, "calc", CONTRACT_ADDRESS, ABI.from_dict(calc_abi()))
    ctx.connect("http://node.test")
    key = WalletKey.generate()
    ctx.open_wallet(key)

    lines = parse_and_interpret(ctx.parser, ctx, f"calc.move 1 -2 'a label' {key.address()}").lines()

    assert lines[0].startswith("Calling calc.move with arguments '")
    assert lines[-1] == "Transaction submitted: 0x1220" + "ab" * 32
    assert invoker.writes[0][2] == 7
    assert invoker.writes[0][3] is key


def test_write_method_reports_node_errors(ctx: ExecutionContext, invoker: StubInvoker) -> None:
    register_contract(ctx, "calc", CONTRACT_ADDRESS, ABI.from_dict(calc_abi()))
    ctx.connect("http://node.test")
    ctx.open_wallet(WalletKey.generate())
    invoker.write_error = RPCError(-32000, "insufficient rc")

    lines = parse_and_interpret(ctx.parser, ctx, f"calc.move 1 2 x {CONTRACT_ADDRESS}").lines()

    assert lines[-1] == "cannot make call, RPC error -32000: insufficient rc"


def test_register_command_reads_abi_file(ctx: ExecutionContext, calc_abi_path: Path) -> None:
    lines = parse_and_interpret(
        ctx.parser, ctx, f"register calc {CONTRACT_ADDRESS} {json.dumps(str(calc_abi_path))}"
    ).lines()

    assert lines == [f"Contract 'calc' at address {CONTRACT_ADDRESS} registered"]
    assert "calc.add" in ctx.commands
