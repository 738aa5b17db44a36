"""Contract ABI loading, registration, and the generated contract commands.

Registering a contract reads its ABI document, resolves every method's
argument and result types into message schemas, and only once every method
resolved adds the contract and one ``<contract>.<method>`` command per method.
A failure at any step leaves the contract table and the command registry as
they were.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from . import encoding
from .binder import bind_message, decode_message, encode_message, format_message
from .contracts import ContractInfo, ContractMethod
from .errors import ContractError, InvalidABIError, SchemaError
from .interpreter import Command, ExecutionContext, ExecutionResult
from .parser import ParseResult
from .registry import CommandDeclaration
from .rpc_client import RPCError, RPCTransportError
from .schema import TypeLibrary, flatten_schema

logger = logging.getLogger(__name__)

CONTRACT_NAME_RE = re.compile(r"[A-Za-z0-9_]+")


@dataclass
class ABIMethod:
    """One method entry of an ABI document."""

    name: str
    argument: str = ""
    result: str = ""
    entry_point: int = 0
    description: str = ""
    read_only: bool = False

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "ABIMethod":
        if not isinstance(data, Mapping):
            raise InvalidABIError(f"method {name} must be an object")
        return cls(
            name=name,
            argument=str(data.get("argument") or ""),
            result=str(data.get("return") or ""),
            entry_point=parse_entry_point(data.get("entry_point", data.get("entry-point")), name),
            description=str(data.get("description") or ""),
            read_only=_read_only_flag(data, name),
        )


def _read_only_flag(data: Mapping[str, Any], method: str) -> bool:
    flag = data.get("read-only", data.get("read_only", False))
    if not isinstance(flag, bool):
        raise InvalidABIError(f"method {method} read-only flag must be true or false")
    return flag


@dataclass
class ABI:
    methods: Dict[str, ABIMethod]
    types: str

    @classmethod
    def from_dict(cls, data: Any) -> "ABI":
        if not isinstance(data, Mapping):
            raise InvalidABIError("document must be a JSON object")
        raw_methods = data.get("methods")
        methods: Dict[str, ABIMethod] = {}
        if isinstance(raw_methods, Mapping):
            for name, entry in raw_methods.items():
                methods[str(name)] = ABIMethod.from_dict(str(name), entry)
        elif isinstance(raw_methods, list):
            for entry in raw_methods:
                name = entry.get("name") if isinstance(entry, Mapping) else None
                if not name:
                    raise InvalidABIError("method entries must carry a name")
                if name in methods:
                    raise InvalidABIError(f"duplicate method {name}")
                methods[str(name)] = ABIMethod.from_dict(str(name), entry)
        else:
            raise InvalidABIError("missing methods")
        types = data.get("types")
        if not isinstance(types, str):
            raise InvalidABIError("missing types")
        return cls(methods=methods, types=types)

    @classmethod
    def from_json(cls, text: str) -> "ABI":
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise InvalidABIError(f"malformed JSON ({exc})") from exc
        return cls.from_dict(data)


def parse_entry_point(raw: Any, method: str) -> int:
    """Accept ``0x``-prefixed hex strings as well as plain integers."""

    if isinstance(raw, bool) or raw is None:
        raise InvalidABIError(f"method {method} is missing an entry point")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        try:
            value = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            raise InvalidABIError(f"method {method} has invalid entry point {raw}") from None
    if not 0 <= value <= 0xFFFFFFFF:
        raise InvalidABIError(f"method {method} entry point {raw} is out of range")
    return value


def load_abi(path: Union[str, Path]) -> ABI:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InvalidABIError(f"cannot read {path} ({exc.strerror})") from exc
    return ABI.from_json(text)


# Generated commands ------------------------------------------------------


@dataclass(frozen=True)
class ContractMethodBinding:
    """Factory stored on generated declarations.

    Captures which registered contract and method a command name stands for,
    so the command does not need to re-split its own name.
    """

    contract: str
    method: ContractMethod

    def __call__(self, result: ParseResult) -> Command:
        if self.method.read_only:
            return ReadContractCommand(self, result)
        return WriteContractCommand(self, result)


class ReadContractCommand(Command):
    def __init__(self, binding: ContractMethodBinding, result: ParseResult) -> None:
        self.binding = binding
        self.result = result

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        invoker = ctx.require_online("cannot execute method")
        contract = ctx.contracts.get(self.binding.contract)
        method = self.binding.method

        value = bind_message(method.arguments, self.result.args)
        args = encode_message(contract.library, method.arguments, value)
        data = invoker.read_contract(args, contract.address, method.entry_point)
        response = decode_message(contract.library, method.result, data)

        result = ExecutionResult()
        result.extend(format_message(method.result, response))
        return result


class WriteContractCommand(Command):
    def __init__(self, binding: ContractMethodBinding, result: ParseResult) -> None:
        self.binding = binding
        self.result = result

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        key = ctx.require_wallet("cannot execute method")
        invoker = ctx.require_online("cannot execute method")
        contract = ctx.contracts.get(self.binding.contract)
        method = self.binding.method

        value = bind_message(method.arguments, self.result.args)
        args = encode_message(contract.library, method.arguments, value)

        result = ExecutionResult()
        rendered = ", ".join(format_message(method.arguments, value, indent=""))
        result.add(f"Calling {self.result.command_name} with arguments '{rendered}'")
        try:
            receipt = invoker.write_contract(args, contract.address, method.entry_point, key)
        except (RPCError, RPCTransportError) as exc:
            result.error = f"cannot make call, {exc}"
            return result
        result.add(f"Transaction submitted: {receipt.get('id', 'unknown id')}")
        return result


# Registration ------------------------------------------------------------


def _resolve_methods(abi: ABI, library: TypeLibrary) -> List[ContractMethod]:
    methods = []
    for name, entry in sorted(abi.methods.items()):
        arguments = library.schema(entry.argument)
        result = library.schema(entry.result)
        methods.append(
            ContractMethod(
                name=name,
                arguments=arguments,
                result=result,
                entry_point=entry.entry_point,
                read_only=entry.read_only,
                description=entry.description,
            )
        )
    return methods


def register_contract(ctx: ExecutionContext, name: str, address: str, abi: ABI) -> ContractInfo:
    """Add a contract and its generated commands, or nothing at all."""

    if CONTRACT_NAME_RE.fullmatch(name) is None:
        raise ContractError(f"invalid characters in contract name {name}")
    if name in ctx.contracts:
        raise ContractError(f"contract {name} already exists")
    try:
        address_bytes = encoding.b58decode(address)
    except ValueError as exc:
        raise ContractError(f"invalid contract address {address}") from exc

    library = TypeLibrary.from_base64(abi.types)
    methods = _resolve_methods(abi, library)

    contract = ContractInfo(
        name=name,
        address=address_bytes,
        methods={method.name: method for method in methods},
        library=library,
    )

    declarations = []
    for method in methods:
        command_name = contract.command_name(method.name)
        if command_name in ctx.commands:
            raise ContractError(f"command {command_name} already exists")
        try:
            params = flatten_schema(method.arguments)
        except SchemaError as exc:
            raise InvalidABIError(f"{command_name}: {exc}") from exc
        declarations.append(
            CommandDeclaration(
                command_name,
                method.description,
                factory=ContractMethodBinding(name, method),
                args=params,
            )
        )

    ctx.contracts.add(contract)
    for declaration in declarations:
        ctx.commands.add(declaration)
    logger.debug("registered contract %s with %d methods", name, len(declarations))
    return contract
