"""Convert between flat parsed arguments and structured message values.

Structured values are plain dictionaries keyed by field name, nested the same
way as their :class:`~chainshell.schema.MessageSchema`. The wire helpers at the
bottom marshal them through the protobuf classes of a type library.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from google.protobuf.message import DecodeError, EncodeError

from . import encoding
from .errors import BindingError, MissingFieldValueError
from .grammar import HEX_BYTES_RE, INT_RE, UINT_RE
from .schema import FieldKind, FieldSpec, MessageSchema, TypeLibrary

logger = logging.getLogger(__name__)

StructuredValue = dict[str, Any]


def _invalid(spec: FieldSpec, detail: str) -> BindingError:
    return BindingError(f"{spec.name} ({detail})")


def decode_hex(text: str) -> bytes:
    if text == "":
        return b""
    if HEX_BYTES_RE.fullmatch(text) is None:
        raise ValueError("not a hex string")
    digits = text[2:] if text.startswith("0x") else text
    return bytes.fromhex(digits)


def _bind_field(spec: FieldSpec, text: str) -> Any:
    kind = spec.kind
    if kind is FieldKind.BOOL:
        return text == "true"
    if kind is FieldKind.INT:
        if INT_RE.fullmatch(text) is None:
            raise _invalid(spec, "expected an integer")
        return int(text)
    if kind is FieldKind.UINT:
        if UINT_RE.fullmatch(text) is None:
            raise _invalid(spec, "expected an unsigned integer")
        return int(text)
    if kind is FieldKind.STRING:
        return text
    if kind in (FieldKind.BYTES, FieldKind.BYTES_HEX):
        try:
            return decode_hex(text)
        except ValueError as exc:
            raise _invalid(spec, str(exc)) from exc
    if kind is FieldKind.BYTES_ADDRESS:
        try:
            return encoding.b58decode(text)
        except ValueError as exc:
            raise _invalid(spec, "expected base58") from exc
    raise _invalid(spec, f"unsupported kind {kind}")


def bind_message(schema: MessageSchema, values: Mapping[str, str]) -> StructuredValue:
    """Build a structured value for ``schema`` from a flat name to string map."""

    message: StructuredValue = {}
    for spec in schema.fields:
        if spec.kind is FieldKind.MESSAGE:
            message[spec.name] = bind_message(spec.nested, values)
            continue
        if spec.name not in values:
            raise MissingFieldValueError(spec.name)
        message[spec.name] = _bind_field(spec, values[spec.name])
    return message


def _unbind_field(spec: FieldSpec, value: Any) -> str:
    kind = spec.kind
    if kind is FieldKind.BOOL:
        return "true" if value else "false"
    if kind in (FieldKind.INT, FieldKind.UINT):
        return str(int(value))
    if kind is FieldKind.BYTES_ADDRESS:
        return encoding.b58encode(bytes(value))
    if kind in (FieldKind.BYTES, FieldKind.BYTES_HEX):
        return "0x" + bytes(value).hex()
    return str(value)


def unbind_message(schema: MessageSchema, value: Mapping[str, Any]) -> dict[str, str]:
    """Flatten a structured value back into the strings the parser would produce."""

    flat: dict[str, str] = {}
    for spec in schema.fields:
        if spec.name not in value:
            raise MissingFieldValueError(spec.name)
        if spec.kind is FieldKind.MESSAGE:
            flat.update(unbind_message(spec.nested, value[spec.name]))
        else:
            flat[spec.name] = _unbind_field(spec, value[spec.name])
    return flat


def format_message(schema: MessageSchema, value: Mapping[str, Any], indent: str = "  ") -> list[str]:
    """Render a structured value as text lines, one per primitive field."""

    lines: list[str] = []
    for spec in schema.fields:
        if spec.name not in value:
            continue
        item = value[spec.name]
        if spec.kind is FieldKind.MESSAGE:
            lines.append(f"{spec.name} {{")
            lines.extend(indent + line for line in format_message(spec.nested, item, indent))
            lines.append("}")
        elif spec.kind is FieldKind.STRING:
            lines.append(f"{spec.name}: {json.dumps(item)}")
        else:
            lines.append(f"{spec.name}: {_unbind_field(spec, item)}")
    return lines


# Wire codec --------------------------------------------------------------


def _fill(message: Any, schema: MessageSchema, value: Mapping[str, Any]) -> None:
    for spec in schema.fields:
        item = value[spec.name]
        if spec.kind is FieldKind.MESSAGE:
            child = getattr(message, spec.name)
            child.SetInParent()
            _fill(child, spec.nested, item)
            continue
        try:
            setattr(message, spec.name, item)
        except (TypeError, ValueError) as exc:
            raise _invalid(spec, str(exc)) from exc


def _read(message: Any, schema: MessageSchema) -> StructuredValue:
    value: StructuredValue = {}
    for spec in schema.fields:
        item = getattr(message, spec.name)
        if spec.kind is FieldKind.MESSAGE:
            value[spec.name] = _read(item, spec.nested)
        else:
            value[spec.name] = item
    return value


def encode_message(library: TypeLibrary, schema: MessageSchema, value: Mapping[str, Any]) -> bytes:
    """Serialize ``value`` with the protobuf class for ``schema``."""

    if not schema.name:
        return b""
    message = library.message_class(schema.name)()
    _fill(message, schema, value)
    try:
        return message.SerializeToString()
    except EncodeError as exc:
        raise BindingError(f"{schema.name} ({exc})") from exc


def decode_message(library: TypeLibrary, schema: MessageSchema, data: bytes) -> StructuredValue:
    """Parse ``data`` as the protobuf message for ``schema``."""

    if not schema.name:
        return {}
    message = library.message_class(schema.name)()
    try:
        message.ParseFromString(data)
    except DecodeError as exc:
        logger.debug("cannot decode %s from %d bytes", schema.name, len(data))
        raise BindingError(f"{schema.name} (malformed response: {exc})") from exc
    return _read(message, schema)
