"""Registered contracts and the methods they expose."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, Tuple

from .errors import ContractError
from .schema import MessageSchema, TypeLibrary

METHOD_SEPARATOR = "."


@dataclass(frozen=True)
class ContractMethod:
    name: str
    arguments: MessageSchema
    result: MessageSchema
    entry_point: int
    read_only: bool = False
    description: str = ""


@dataclass(frozen=True)
class ContractInfo:
    """A contract registered under a shell-local name."""

    name: str
    address: bytes
    methods: Dict[str, ContractMethod]
    library: TypeLibrary = field(compare=False)

    def command_name(self, method: str) -> str:
        return f"{self.name}{METHOD_SEPARATOR}{method}"


def split_method_name(command_name: str) -> Tuple[str, str]:
    parts = command_name.split(METHOD_SEPARATOR)
    if len(parts) != 2 or not all(parts):
        raise ContractError(f"invalid method name {command_name}")
    return parts[0], parts[1]


class Contracts:
    """Contracts known to the shell, keyed by their registered name."""

    def __init__(self) -> None:
        self._contracts: Dict[str, ContractInfo] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._contracts

    def __iter__(self) -> Iterator[ContractInfo]:
        return iter(self._contracts.values())

    def __len__(self) -> int:
        return len(self._contracts)

    def get(self, name: str) -> ContractInfo:
        try:
            return self._contracts[name]
        except KeyError:
            raise ContractError(f"contract {name} does not exist") from None

    def add(self, contract: ContractInfo) -> None:
        if contract.name in self._contracts:
            raise ContractError(f"contract {contract.name} already exists")
        self._contracts[contract.name] = contract

    def lookup(self, command_name: str) -> Tuple[ContractInfo, ContractMethod]:
        """Resolve ``<contract>.<method>`` to the contract and its method."""

        contract_name, method_name = split_method_name(command_name)
        contract = self.get(contract_name)
        try:
            method = contract.methods[method_name]
        except KeyError:
            raise ContractError(f"contract {contract_name} has no method {method_name}") from None
        return contract, method
