"""Built-in token contract: type library, constants and amount conversion."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from google.protobuf import descriptor_pb2

from . import encoding
from .errors import InvalidAmountError
from .schema import (
    BTYPE_OPTION_NUMBER,
    OPTIONS_FILE_NAME,
    BytesType,
    TypeLibrary,
)

TOKEN_SYMBOL = "KOIN"
TOKEN_PRECISION = 8
TOKEN_CONTRACT_ID = "15DJN4a8SgrbGhhGksSBASiSYjGnMU8dGL"
BALANCE_OF_ENTRY_POINT = 0x5C721497
TRANSFER_ENTRY_POINT = 0x27F576CA

BALANCE_OF_ARGUMENTS = "koinos.contracts.token.balance_of_arguments"
BALANCE_OF_RESULT = "koinos.contracts.token.balance_of_result"
TRANSFER_ARGUMENTS = "koinos.contracts.token.transfer_arguments"
TRANSFER_RESULT = "koinos.contracts.token.transfer_result"

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto


def _varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def btype_options(btype: BytesType) -> descriptor_pb2.FieldOptions:
    """Field options carrying a ``btype`` hint as an unknown extension field."""

    options = descriptor_pb2.FieldOptions()
    options.MergeFromString(_varint(BTYPE_OPTION_NUMBER << 3) + _varint(btype.value))
    return options


def token_file_proto() -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto(
        name="koinos/contracts/token/token.proto",
        package="koinos.contracts.token",
        syntax="proto3",
        dependency=[OPTIONS_FILE_NAME],
    )

    def add_message(name: str, *fields: tuple[str, int, BytesType | None]) -> None:
        message = proto.message_type.add(name=name)
        for number, (field_name, field_type, btype) in enumerate(fields, start=1):
            entry = message.field.add(
                name=field_name,
                number=number,
                label=FieldDescriptorProto.LABEL_OPTIONAL,
                type=field_type,
                json_name=field_name,
            )
            if btype is not None:
                entry.options.CopyFrom(btype_options(btype))

    add_message("balance_of_arguments", ("owner", FieldDescriptorProto.TYPE_BYTES, BytesType.ADDRESS))
    add_message("balance_of_result", ("value", FieldDescriptorProto.TYPE_UINT64, None))
    add_message(
        "transfer_arguments",
        ("from", FieldDescriptorProto.TYPE_BYTES, BytesType.ADDRESS),
        ("to", FieldDescriptorProto.TYPE_BYTES, BytesType.ADDRESS),
        ("value", FieldDescriptorProto.TYPE_UINT64, None),
    )
    add_message("transfer_result")
    return proto


_LIBRARY: TypeLibrary | None = None


def token_library() -> TypeLibrary:
    global _LIBRARY
    if _LIBRARY is None:
        _LIBRARY = TypeLibrary([token_file_proto()])
    return _LIBRARY


def token_contract_id() -> bytes:
    return encoding.b58decode(TOKEN_CONTRACT_ID)


def decimal_to_satoshi(amount: str | Decimal, precision: int = TOKEN_PRECISION) -> int:
    """Convert a decimal token amount into integer base units.

    Amounts with more fractional digits than ``precision`` are rejected rather
    than rounded.
    """

    try:
        value = Decimal(amount)
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmountError(str(amount)) from exc
    if not value.is_finite() or value < 0:
        raise InvalidAmountError(str(amount))
    scaled = value.scaleb(precision)
    if scaled != scaled.to_integral_value():
        raise InvalidAmountError(f"{amount} has more than {precision} decimal places")
    return int(scaled)


def satoshi_to_decimal(value: int, precision: int = TOKEN_PRECISION) -> Decimal:
    return Decimal(value).scaleb(-precision)


def format_amount(value: int, precision: int = TOKEN_PRECISION) -> str:
    return f"{satoshi_to_decimal(value, precision):.{precision}f} {TOKEN_SYMBOL}"
