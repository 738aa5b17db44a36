"""Message schemas derived from contract type definitions.

Contract ABIs ship their argument and result types as serialized protobuf
descriptors. :class:`TypeLibrary` loads those descriptors once, converts the
message types a contract uses into :class:`MessageSchema` trees, and keeps a
descriptor pool around so that values can later be marshalled to and from the
wire format. Everything after registration walks the schema tree; the
descriptors are only consulted again by the wire codec.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError
from google.protobuf.unknown_fields import UnknownFieldSet

from .errors import InvalidABIError, UnknownTypeError, UnsupportedFieldTypeError
from .grammar import ArgKind
from .registry import CommandArg

logger = logging.getLogger(__name__)

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto

BTYPE_OPTION_NUMBER = 50000
OPTIONS_FILE_NAME = "koinos/options.proto"
DESCRIPTOR_FILE_NAME = "google/protobuf/descriptor.proto"


class FieldKind(Enum):
    BOOL = "bool"
    INT = "int"
    UINT = "uint"
    STRING = "string"
    BYTES = "bytes"
    BYTES_HEX = "bytes-hex"
    BYTES_ADDRESS = "bytes-address"
    MESSAGE = "message"

    def __str__(self) -> str:
        return self.value


class BytesType(Enum):
    """Display hints carried by the ``btype`` field option."""

    BASE64 = 0
    BASE58 = 1
    HEX = 2
    BLOCK_ID = 3
    TRANSACTION_ID = 4
    CONTRACT_ID = 5
    ADDRESS = 6


HEX_BYTES_TYPES = {BytesType.HEX, BytesType.BLOCK_ID, BytesType.TRANSACTION_ID}
ADDRESS_BYTES_TYPES = {BytesType.BASE58, BytesType.CONTRACT_ID, BytesType.ADDRESS}


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: FieldKind
    nested: MessageSchema | None = None


@dataclass(frozen=True)
class MessageSchema:
    """Ordered fields of one message type.

    ``name`` is the fully qualified protobuf name, or an empty string for the
    placeholder schema of a method that takes or returns nothing.
    """

    name: str
    fields: tuple[FieldSpec, ...] = field(default_factory=tuple)

    def field_names(self) -> list[str]:
        return [spec.name for spec in self.fields]


EMPTY_SCHEMA = MessageSchema(name="")

ARG_KIND_BY_FIELD_KIND = {
    FieldKind.BOOL: ArgKind.BOOL,
    FieldKind.INT: ArgKind.INT,
    FieldKind.UINT: ArgKind.UINT,
    FieldKind.STRING: ArgKind.STRING,
    FieldKind.BYTES: ArgKind.HEX_BYTES,
    FieldKind.BYTES_HEX: ArgKind.HEX_BYTES,
    FieldKind.BYTES_ADDRESS: ArgKind.BASE58_BYTES,
}


def flatten_schema(schema: MessageSchema) -> list[CommandArg]:
    """Turn a message schema into positional command arguments.

    Nested messages are spliced in place. Names are not qualified by their
    path, so a field name reused in two branches yields two arguments with
    the same name.
    """

    params: list[CommandArg] = []
    for spec in schema.fields:
        if spec.kind is FieldKind.MESSAGE:
            if spec.nested is None:
                raise UnsupportedFieldTypeError(f"{spec.name} has no message schema")
            params.extend(flatten_schema(spec.nested))
            continue
        try:
            kind = ARG_KIND_BY_FIELD_KIND[spec.kind]
        except KeyError:
            raise UnsupportedFieldTypeError(str(spec.kind)) from None
        params.append(CommandArg(spec.name, kind))
    return params


# Descriptor handling -----------------------------------------------------

_PRIMITIVE_TYPES = {
    FieldDescriptorProto.TYPE_BOOL: FieldKind.BOOL,
    FieldDescriptorProto.TYPE_INT32: FieldKind.INT,
    FieldDescriptorProto.TYPE_INT64: FieldKind.INT,
    FieldDescriptorProto.TYPE_UINT32: FieldKind.UINT,
    FieldDescriptorProto.TYPE_UINT64: FieldKind.UINT,
    FieldDescriptorProto.TYPE_STRING: FieldKind.STRING,
}


def _type_label(field_type: int) -> str:
    name = FieldDescriptorProto.Type.Name(field_type)
    return name.removeprefix("TYPE_").lower()


def read_bytes_type(options: descriptor_pb2.FieldOptions) -> BytesType | None:
    """Return the ``btype`` hint stored in a field's options, if any.

    The option is an extension unknown to the descriptor classes, so it is
    read back from the unknown field set.
    """

    for item in UnknownFieldSet(options):
        if item.field_number != BTYPE_OPTION_NUMBER:
            continue
        try:
            return BytesType(item.data)
        except ValueError:
            logger.debug("ignoring unknown btype value %r", item.data)
            return None
    return None


def bytes_field_kind(options: descriptor_pb2.FieldOptions) -> FieldKind:
    btype = read_bytes_type(options)
    if btype in HEX_BYTES_TYPES:
        return FieldKind.BYTES_HEX
    if btype in ADDRESS_BYTES_TYPES:
        return FieldKind.BYTES_ADDRESS
    return FieldKind.BYTES


def options_file_proto() -> descriptor_pb2.FileDescriptorProto:
    """Descriptor for the option file that declares the ``btype`` extension."""

    proto = descriptor_pb2.FileDescriptorProto(
        name=OPTIONS_FILE_NAME,
        package="koinos",
        syntax="proto3",
        dependency=[DESCRIPTOR_FILE_NAME],
    )
    enum = proto.enum_type.add(name="bytes_type")
    for member in BytesType:
        enum.value.add(name=member.name, number=member.value)
    proto.extension.add(
        name="btype",
        number=BTYPE_OPTION_NUMBER,
        label=FieldDescriptorProto.LABEL_OPTIONAL,
        type=FieldDescriptorProto.TYPE_ENUM,
        type_name=".koinos.bytes_type",
        extendee=".google.protobuf.FieldOptions",
    )
    return proto


def parse_type_blob(blob: bytes) -> list[descriptor_pb2.FileDescriptorProto]:
    """Decode a serialized ``FileDescriptorSet`` or a single ``FileDescriptorProto``."""

    file_set = descriptor_pb2.FileDescriptorSet()
    try:
        file_set.ParseFromString(blob)
    except DecodeError:
        file_set.Clear()
    if file_set.file and all(proto.name for proto in file_set.file):
        return list(file_set.file)

    single = descriptor_pb2.FileDescriptorProto()
    try:
        single.ParseFromString(blob)
    except DecodeError as exc:
        raise InvalidABIError(f"cannot decode type definitions ({exc})") from exc
    if not single.name:
        raise InvalidABIError("type definitions contain no named file")
    return [single]


class TypeLibrary:
    """Message types available to one contract."""

    def __init__(self, files: Iterable[descriptor_pb2.FileDescriptorProto]) -> None:
        self._files = {proto.name: proto for proto in files}
        self._messages: dict[str, tuple[descriptor_pb2.DescriptorProto, str]] = {}
        self._schemas: dict[str, MessageSchema] = {}
        self._classes: dict[str, type] = {}
        for proto in self._files.values():
            for message in proto.message_type:
                self._index_message(message, proto.package, proto.package)
        self._pool = self._build_pool()

    @classmethod
    def from_bytes(cls, blob: bytes) -> "TypeLibrary":
        return cls(parse_type_blob(blob))

    @classmethod
    def from_base64(cls, text: str) -> "TypeLibrary":
        try:
            blob = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError):
            try:
                blob = base64.urlsafe_b64decode(text)
            except (binascii.Error, ValueError) as exc:
                raise InvalidABIError(f"types are not valid base64 ({exc})") from exc
        return cls.from_bytes(blob)

    def _index_message(self, message: descriptor_pb2.DescriptorProto, scope: str, package: str) -> None:
        full_name = f"{scope}.{message.name}" if scope else message.name
        self._messages[full_name] = (message, package)
        for nested in message.nested_type:
            self._index_message(nested, full_name, package)

    def _build_pool(self) -> descriptor_pool.DescriptorPool:
        pool = descriptor_pool.DescriptorPool()
        pool.AddSerializedFile(descriptor_pb2.DESCRIPTOR.serialized_pb)
        added = {DESCRIPTOR_FILE_NAME}
        available = dict(self._files)
        available.setdefault(OPTIONS_FILE_NAME, options_file_proto())

        def add(name: str, trail: tuple[str, ...]) -> None:
            if name in added:
                return
            if name in trail:
                raise InvalidABIError(f"circular import of {name}")
            proto = available.get(name)
            if proto is None:
                raise InvalidABIError(f"missing type dependency {name}")
            for dependency in proto.dependency:
                add(dependency, trail + (name,))
            try:
                pool.AddSerializedFile(proto.SerializeToString())
            except (TypeError, ValueError) as exc:
                raise InvalidABIError(f"cannot load {name} ({exc})") from exc
            added.add(name)

        for name in self._files:
            add(name, ())
        return pool

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lstrip(".") in self._messages

    def schema(self, name: str) -> MessageSchema:
        """Return the schema for the fully qualified message ``name``."""

        if not name:
            return EMPTY_SCHEMA
        return self._schema(name.lstrip("."), ())

    def _schema(self, name: str, trail: tuple[str, ...]) -> MessageSchema:
        if name in self._schemas:
            return self._schemas[name]
        if name not in self._messages:
            raise UnknownTypeError(name)
        if name in trail:
            raise UnsupportedFieldTypeError(f"recursive message {name}")

        message, package = self._messages[name]
        fields = []
        for proto_field in message.field:
            fields.append(self._field_spec(proto_field, name, package, trail + (name,)))
        schema = MessageSchema(name=name, fields=tuple(fields))
        self._schemas[name] = schema
        return schema

    def _field_spec(
        self, proto_field: FieldDescriptorProto, scope: str, package: str, trail: tuple[str, ...]
    ) -> FieldSpec:
        if proto_field.label == FieldDescriptorProto.LABEL_REPEATED:
            raise UnsupportedFieldTypeError(f"repeated {_type_label(proto_field.type)}")

        if proto_field.type in _PRIMITIVE_TYPES:
            return FieldSpec(proto_field.name, _PRIMITIVE_TYPES[proto_field.type])
        if proto_field.type == FieldDescriptorProto.TYPE_BYTES:
            return FieldSpec(proto_field.name, bytes_field_kind(proto_field.options))
        if proto_field.type == FieldDescriptorProto.TYPE_MESSAGE:
            target = self._resolve(proto_field.type_name, scope, package)
            nested = self._schema(target, trail)
            return FieldSpec(proto_field.name, FieldKind.MESSAGE, nested)
        raise UnsupportedFieldTypeError(_type_label(proto_field.type))

    def _resolve(self, type_name: str, scope: str, package: str) -> str:
        if type_name.startswith("."):
            return type_name[1:]
        # Relative names resolve from the innermost scope outwards.
        parts = scope.split(".")
        while parts:
            candidate = ".".join(parts + [type_name])
            if candidate in self._messages:
                return candidate
            parts.pop()
        if package and f"{package}.{type_name}" in self._messages:
            return f"{package}.{type_name}"
        return type_name

    def message_class(self, name: str) -> type:
        """Return a generated protobuf class for ``name``."""

        name = name.lstrip(".")
        cls = self._classes.get(name)
        if cls is None:
            try:
                descriptor = self._pool.FindMessageTypeByName(name)
            except KeyError:
                raise UnknownTypeError(name) from None
            cls = message_factory.GetMessageClass(descriptor)
            self._classes[name] = cls
        return cls
