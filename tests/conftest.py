from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any

import pytest
from google.protobuf import descriptor_pb2

from chainshell.commands import default_commands
from chainshell.interpreter import ExecutionContext
from chainshell.schema import BytesType
from chainshell.token_contract import btype_options

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto


class StubInvoker:
    """Records contract calls instead of talking to a node."""

    def __init__(self, read_response: bytes = b"") -> None:
        self.read_response = read_response
        self.reads: list[tuple[bytes, bytes, int]] = []
        self.writes: list[tuple[bytes, bytes, int, Any]] = []
        self.uploads: list[dict[str, Any]] = []
        self.write_error: Exception | None = None
        self.closed = False

    def read_contract(self, args: bytes, contract_id: bytes, entry_point: int) -> bytes:
        self.reads.append((args, contract_id, entry_point))
        return self.read_response

    def write_contract(self, args: bytes, contract_id: bytes, entry_point: int, key: Any) -> dict:
        self.writes.append((args, contract_id, entry_point, key))
        if self.write_error is not None:
            raise self.write_error
        return {"id": "0x1220" + "ab" * 32}

    def upload_contract(self, bytecode: bytes, key: Any, *, abi: str = "", authorizes: Any = None) -> dict:
        self.uploads.append({"bytecode": bytecode, "key": key, "abi": abi, "authorizes": authorizes or {}})
        if self.write_error is not None:
            raise self.write_error
        return {"id": "0x1220" + "cd" * 32}

    def close(self) -> None:
        self.closed = True


def _add_field(message, name, number, field_type, *, type_name=None, btype=None, repeated=False):
    entry = message.field.add(
        name=name,
        number=number,
        label=FieldDescriptorProto.LABEL_REPEATED if repeated else FieldDescriptorProto.LABEL_OPTIONAL,
        type=field_type,
        json_name=name,
    )
    if type_name:
        entry.type_name = type_name
    if btype is not None:
        entry.options.CopyFrom(btype_options(btype))
    return entry


def calc_file_proto() -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto(
        name="calc/calc.proto", package="calc", syntax="proto3"
    )

    add_arguments = proto.message_type.add(name="add_arguments")
    _add_field(add_arguments, "x", 1, FieldDescriptorProto.TYPE_UINT64)
    _add_field(add_arguments, "y", 2, FieldDescriptorProto.TYPE_UINT64)

    add_result = proto.message_type.add(name="add_result")
    _add_field(add_result, "value", 1, FieldDescriptorProto.TYPE_UINT64)

    point = proto.message_type.add(name="point")
    _add_field(point, "x", 1, FieldDescriptorProto.TYPE_INT32)
    _add_field(point, "y", 2, FieldDescriptorProto.TYPE_INT32)

    move_arguments = proto.message_type.add(name="move_arguments")
    _add_field(move_arguments, "p", 1, FieldDescriptorProto.TYPE_MESSAGE, type_name=".calc.point")
    _add_field(move_arguments, "label", 2, FieldDescriptorProto.TYPE_STRING)
    _add_field(move_arguments, "owner", 3, FieldDescriptorProto.TYPE_BYTES, btype=BytesType.ADDRESS)

    flag_arguments = proto.message_type.add(name="flag_arguments")
    _add_field(flag_arguments, "enabled", 1, FieldDescriptorProto.TYPE_BOOL)
    _add_field(flag_arguments, "data", 2, FieldDescriptorProto.TYPE_BYTES, btype=BytesType.HEX)
    _add_field(flag_arguments, "raw", 3, FieldDescriptorProto.TYPE_BYTES)

    pair_arguments = proto.message_type.add(name="pair_arguments")
    _add_field(pair_arguments, "a", 1, FieldDescriptorProto.TYPE_MESSAGE, type_name=".calc.point")
    _add_field(pair_arguments, "b", 2, FieldDescriptorProto.TYPE_MESSAGE, type_name=".calc.point")

    list_arguments = proto.message_type.add(name="list_arguments")
    _add_field(list_arguments, "values", 1, FieldDescriptorProto.TYPE_UINT64, repeated=True)

    node = proto.message_type.add(name="node")
    _add_field(node, "next", 1, FieldDescriptorProto.TYPE_MESSAGE, type_name=".calc.node")

    return proto


def calc_types_base64() -> str:
    file_set = descriptor_pb2.FileDescriptorSet()
    file_set.file.append(calc_file_proto())
    return base64.b64encode(file_set.SerializeToString()).decode("ascii")


def calc_abi(**overrides: Any) -> dict:
    methods = {
        "add": {
            "argument": "calc.add_arguments",
            "return": "calc.add_result",
            "entry_point": "0x1234abcd",
            "description": "Add two numbers",
            "read-only": True,
        },
        "move": {
            "argument": "calc.move_arguments",
            "return": "",
            "entry_point": 7,
            "description": "Move a point",
            "read-only": False,
        },
    }
    methods.update(overrides)
    return {"methods": methods, "types": calc_types_base64()}


@pytest.fixture
def calc_abi_path(tmp_path: Path) -> Path:
    path = tmp_path / "calc.abi"
    path.write_text(json.dumps(calc_abi()))
    return path


@pytest.fixture
def invoker() -> StubInvoker:
    return StubInvoker()


@pytest.fixture
def ctx(invoker: StubInvoker) -> ExecutionContext:
    return ExecutionContext(
        default_commands(),
        env={},
        invoker_factory=lambda url, config: invoker,
    )
