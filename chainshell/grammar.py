"""Token recognizers for the chainshell command language.

Every recognizer works on ``(text, pos)`` and returns the matched value along
with the position just past the match. Recognizers never mutate state; the
line parser threads positions through them.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Callable, Dict, Tuple

from .errors import InvalidParameterError, UnterminatedStringError

COMMAND_SEPARATOR = ";"
QUOTE_CHARS = ("'", '"')
ESCAPABLE_CHARS = ("\\", '"', "'")


class Termination(Enum):
    """What immediately followed a parsed command."""

    NONE = "none"
    END_OF_INPUT = "end-of-input"
    SEPARATOR = "separator"


class ArgKind(Enum):
    """Kinds of positional command arguments."""

    ADDRESS = "address"
    STRING = "string"
    COMMAND_NAME = "command"
    AMOUNT = "amount"
    INT = "int"
    UINT = "uint"
    BOOL = "bool"
    HEX_BYTES = "hex"
    BASE58_BYTES = "base58"
    FILE = "file"

    def __str__(self) -> str:
        return self.value


COMMAND_NAME_RE = re.compile(r"([a-zA-Z0-9_]+\.)?[a-zA-Z0-9_]+")
SKIP_RE = re.compile(r"\s*")
ADDRESS_RE = re.compile(r"[1-9A-HJ-NP-Za-km-z]+")
SIMPLE_STRING_RE = re.compile(r"[^\s\"';]+")
AMOUNT_RE = re.compile(r"(\d+(\.\d*)?)|(\.\d+)")
UINT_RE = re.compile(r"\+?[0-9]+")
INT_RE = re.compile(r"[+-]?[0-9]+")
HEX_BYTES_RE = re.compile(r"(0x)?[0-9A-Fa-f]+")
BOOL_RE = re.compile(r"(?P<false>false|0)|(?P<true>true|1)", re.IGNORECASE)


def skip_whitespace(text: str, pos: int) -> int:
    """Return the position after any whitespace starting at ``pos``."""

    return SKIP_RE.match(text, pos).end()


def match_terminator(text: str, pos: int) -> Tuple[Termination, int]:
    """Classify what sits at ``pos``: a separator, end of input, or neither."""

    if pos >= len(text):
        return Termination.END_OF_INPUT, pos
    if text[pos] == COMMAND_SEPARATOR:
        return Termination.SEPARATOR, pos + 1
    return Termination.NONE, pos


def match_command_name(text: str, pos: int) -> str:
    """Return the command name at ``pos`` or an empty string."""

    match = COMMAND_NAME_RE.match(text, pos)
    return match.group(0) if match else ""


def _match_pattern(pattern: re.Pattern[str], text: str, pos: int, name: str, kind: ArgKind) -> Tuple[str, int]:
    match = pattern.match(text, pos)
    if match is None or match.end() == pos:
        raise InvalidParameterError(name, str(kind))
    return match.group(0), match.end()


def match_address(text: str, pos: int, name: str, kind: ArgKind = ArgKind.ADDRESS) -> Tuple[str, int]:
    return _match_pattern(ADDRESS_RE, text, pos, name, kind)


def match_amount(text: str, pos: int, name: str, kind: ArgKind = ArgKind.AMOUNT) -> Tuple[str, int]:
    return _match_pattern(AMOUNT_RE, text, pos, name, kind)


def match_int(text: str, pos: int, name: str, kind: ArgKind = ArgKind.INT) -> Tuple[str, int]:
    return _match_pattern(INT_RE, text, pos, name, kind)


def match_uint(text: str, pos: int, name: str, kind: ArgKind = ArgKind.UINT) -> Tuple[str, int]:
    return _match_pattern(UINT_RE, text, pos, name, kind)


def match_hex_bytes(text: str, pos: int, name: str, kind: ArgKind = ArgKind.HEX_BYTES) -> Tuple[str, int]:
    return _match_pattern(HEX_BYTES_RE, text, pos, name, kind)


def match_bool(text: str, pos: int, name: str, kind: ArgKind = ArgKind.BOOL) -> Tuple[str, int]:
    """Match a boolean literal, normalizing it to ``true`` or ``false``."""

    match = BOOL_RE.match(text, pos)
    if match is None:
        raise InvalidParameterError(name, str(kind))
    value = "false" if match.group("false") is not None else "true"
    return value, match.end()


def match_quoted_string(text: str, pos: int, name: str) -> Tuple[str, int]:
    """Match a quoted string starting at ``pos`` and return its unescaped value.

    Backslash escapes of backslash and of either quote character produce the
    escaped character. Any other escape is passed through with the backslash
    kept in front of it.
    """

    quote = text[pos]
    output: list[str] = []
    escape = False
    index = pos + 1
    while index < len(text):
        char = text[index]
        index += 1
        if escape:
            escape = False
            if char in ESCAPABLE_CHARS:
                output.append(char)
                continue
            output.append("\\")
        if char == "\\":
            escape = True
            continue
        if char == quote:
            return "".join(output), index
        output.append(char)
    raise UnterminatedStringError(name)


def match_simple_string(text: str, pos: int, name: str, kind: ArgKind = ArgKind.STRING) -> Tuple[str, int]:
    return _match_pattern(SIMPLE_STRING_RE, text, pos, name, kind)


def match_string(text: str, pos: int, name: str, kind: ArgKind = ArgKind.STRING) -> Tuple[str, int]:
    """Match a quoted or a simple (unquoted) string."""

    if pos < len(text) and text[pos] in QUOTE_CHARS:
        return match_quoted_string(text, pos, name)
    return match_simple_string(text, pos, name, kind)


Recognizer = Callable[..., Tuple[str, int]]

RECOGNIZERS: Dict[ArgKind, Recognizer] = {
    ArgKind.ADDRESS: match_address,
    ArgKind.BASE58_BYTES: match_address,
    ArgKind.STRING: match_string,
    ArgKind.COMMAND_NAME: match_string,
    ArgKind.FILE: match_string,
    ArgKind.AMOUNT: match_amount,
    ArgKind.INT: match_int,
    ArgKind.UINT: match_uint,
    ArgKind.BOOL: match_bool,
    ArgKind.HEX_BYTES: match_hex_bytes,
}


def match_argument(kind: ArgKind, text: str, pos: int, name: str) -> Tuple[str, int]:
    """Dispatch to the recognizer registered for ``kind``."""

    return RECOGNIZERS[kind](text, pos, name, kind)
