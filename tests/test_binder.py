import pytest
from conftest import calc_types_base64

from chainshell import encoding
from chainshell.binder import (
    bind_message,
    decode_hex,
    decode_message,
    encode_message,
    format_message,
    unbind_message,
)
from chainshell.errors import BindingError, MissingFieldValueError
from chainshell.schema import EMPTY_SCHEMA, TypeLibrary, flatten_schema
from chainshell.token_contract import BALANCE_OF_RESULT, TRANSFER_ARGUMENTS, token_library

OWNER = "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"


@pytest.fixture
def library() -> TypeLibrary:
    return TypeLibrary.from_base64(calc_types_base64())


def test_bind_primitive_fields(library: TypeLibrary) -> None:
    schema = library.schema("calc.add_arguments")
    assert bind_message(schema, {"x": "1", "y": "+20"}) == {"x": 1, "y": 20}


def test_bind_nested_fields_from_flat_map(library: TypeLibrary) -> None:
    schema = library.schema("calc.move_arguments")
    value = bind_message(schema, {"x": "-3", "y": "4", "label": "home", "owner": OWNER})

    assert value == {
        "p": {"x": -3, "y": 4},
        "label": "home",
        "owner": encoding.b58decode(OWNER),
    }


def test_bind_bool_and_hex_fields(library: TypeLibrary) -> None:
    schema = library.schema("calc.flag_arguments")
    value = bind_message(schema, {"enabled": "true", "data": "0xCAFE", "raw": "00ff"})

    assert value == {"enabled": True, "data": b"\xca\xfe", "raw": b"\x00\xff"}


def test_bind_reports_missing_field(library: TypeLibrary) -> None:
    with pytest.raises(MissingFieldValueError) as excinfo:
        bind_message(library.schema("calc.add_arguments"), {"x": "1"})
    assert str(excinfo.value) == "missing value for field: y"


def test_bind_rejects_malformed_values(library: TypeLibrary) -> None:
    with pytest.raises(BindingError):
        bind_message(library.schema("calc.add_arguments"), {"x": "one", "y": "2"})
    with pytest.raises(BindingError):
        bind_message(library.schema("calc.flag_arguments"), {"enabled": "true", "data": "abc", "raw": ""})


def test_decode_hex_accepts_optional_prefix() -> None:
    assert decode_hex("0x0102") == b"\x01\x02"
    assert decode_hex("0102") == b"\x01\x02"
    assert decode_hex("") == b""


def test_unbind_restores_parser_strings(library: TypeLibrary) -> None:
    schema = library.schema("calc.move_arguments")
    names = [arg.name for arg in flatten_schema(schema)]
    flat = dict(zip(names, ["-3", "4", "home", OWNER]))

    assert names == ["x", "y", "label", "owner"]

    assert unbind_message(schema, bind_message(schema, flat)) == flat


def test_format_message_renders_nested_blocks(library: TypeLibrary) -> None:
    schema = library.schema("calc.move_arguments")
    value = {"p": {"x": 1, "y": 2}, "label": "a \"b\"", "owner": encoding.b58decode(OWNER)}

    assert format_message(schema, value) == [
        "p {",
        "  x: 1",
        "  y: 2",
        "}",
        'label: "a \\"b\\""',
        f"owner: {OWNER}",
    ]


def test_encode_and_decode_through_protobuf(library: TypeLibrary) -> None:
    schema = library.schema("calc.move_arguments")
    value = {"p": {"x": -1, "y": 9}, "label": "x", "owner": encoding.b58decode(OWNER)}

    data = encode_message(library, schema, value)

    assert data
    assert decode_message(library, schema, data) == value


def test_token_messages_use_keyword_field_names() -> None:
    library = token_library()
    schema = library.schema(TRANSFER_ARGUMENTS)
    sender = encoding.b58decode(OWNER)
    value = {"from": sender, "to": sender, "value": 100}

    assert decode_message(library, schema, encode_message(library, schema, value)) == value


def test_empty_schema_encodes_to_nothing() -> None:
    library = token_library()

    assert encode_message(library, EMPTY_SCHEMA, {}) == b""
    assert decode_message(library, EMPTY_SCHEMA, b"\x08\x01") == {}


def test_malformed_response_is_a_binding_error() -> None:
    library = token_library()
    with pytest.raises(BindingError):
        decode_message(library, library.schema(BALANCE_OF_RESULT), b"\x08")
