"""Base58 and Base58Check helpers for addresses, contract ids and keys."""

from __future__ import annotations

import hashlib
from typing import List

b58_digits = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

CHECKSUM_SIZE = 4


def _double_sha256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def b58encode(data: bytes) -> str:
    """Encode raw bytes as Base58, keeping leading zero bytes as ``1``."""

    value = int.from_bytes(data, "big")

    output: List[str] = []
    while value > 0:
        value, remainder = divmod(value, 58)
        output.append(b58_digits[remainder])
    encoded = "".join(output[::-1])

    leading_zero_count = 0
    for byte in data:
        if byte == 0:
            leading_zero_count += 1
        else:
            break

    return b58_digits[0] * leading_zero_count + encoded


def b58decode(value: str) -> bytes:
    """Decode a Base58 string into raw bytes."""

    number = 0
    for character in value:
        index = b58_digits.find(character)
        if index < 0:
            raise ValueError(f"Invalid Base58 character: {character}")
        number = number * 58 + index

    padding = 0
    for character in value:
        if character == b58_digits[0]:
            padding += 1
        else:
            break

    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * padding + body


def b58encode_check(payload: bytes, version: bytes = b"") -> str:
    """Encode ``version + payload`` followed by a double SHA-256 checksum."""

    data = version + payload
    return b58encode(data + _double_sha256(data)[:CHECKSUM_SIZE])


def b58decode_check(value: str) -> bytes:
    """Decode a Base58Check string, verify its checksum and return the data.

    The version prefix, if any, is left on the returned bytes.
    """

    raw = b58decode(value)
    if len(raw) < CHECKSUM_SIZE:
        raise ValueError("Base58Check value is too short")
    data, checksum = raw[:-CHECKSUM_SIZE], raw[-CHECKSUM_SIZE:]
    if _double_sha256(data)[:CHECKSUM_SIZE] != checksum:
        raise ValueError("Base58Check checksum mismatch")
    return data
