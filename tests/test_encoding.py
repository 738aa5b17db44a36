import pytest

from chainshell.encoding import b58decode, b58decode_check, b58encode, b58encode_check


def test_leading_zero_bytes_become_ones() -> None:
    assert b58encode(b"\x00\x00\x01") == "112"
    assert b58decode("112") == b"\x00\x00\x01"
    assert b58encode(b"") == ""


def test_known_base58_value() -> None:
    assert b58encode(b"hello world") == "StV1DL6CwTryKyV"
    assert b58decode("StV1DL6CwTryKyV") == b"hello world"


@pytest.mark.parametrize("bad", ["0abc", "OOPS", "Il", "a b"])
def test_invalid_characters_are_rejected(bad: str) -> None:
    with pytest.raises(ValueError):
        b58decode(bad)


def test_check_encoding_keeps_version_prefix() -> None:
    encoded = b58encode_check(b"\x11" * 20, b"\x00")

    assert encoded.startswith("1")
    assert b58decode_check(encoded) == b"\x00" + b"\x11" * 20


def test_check_encoding_detects_corruption() -> None:
    encoded = b58encode_check(b"payload")
    corrupted = encoded[:-1] + ("2" if encoded[-1] != "2" else "3")

    with pytest.raises(ValueError):
        b58decode_check(corrupted)
    with pytest.raises(ValueError):
        b58decode_check("1")
