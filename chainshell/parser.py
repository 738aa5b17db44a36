"""Line parser turning shell input into per-command parse results.

A single line may hold several commands separated by ``;``. Parsing never
throws away work: when a command fails to parse, every result collected
before it (and the partial result for the failing command, when a name was
read) is returned together with the error, so interactive callers can still
run the commands that were complete and explain what the failing one expects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from . import grammar
from .errors import (
    EmptyCommandNameError,
    InvalidParameterError,
    MissingParameterError,
    ParseError,
    UnknownCommandError,
)
from .grammar import ArgKind, Termination
from .registry import CommandDeclaration, CommandRegistry

logger = logging.getLogger(__name__)


@dataclass
class ParseResult:
    """The parsed form of one command invocation.

    ``current_arg`` starts at -1 and moves forward each time whitespace is
    actually skipped while reading arguments. Typing a command name with no
    trailing space therefore leaves it at -1.
    """

    command_name: str
    args: Dict[str, str] = field(default_factory=dict)
    declaration: Optional[CommandDeclaration] = None
    current_arg: int = -1
    termination: Termination = Termination.NONE
    complete: bool = False

    def instantiate(self):
        """Build the executable command object from the declaration factory."""

        if self.declaration is None or self.declaration.factory is None:
            raise UnknownCommandError(self.command_name)
        return self.declaration.factory(self)


@dataclass
class ParseMetrics:
    """Where the cursor sits after parsing, for interactive suggestions."""

    result_index: int
    current_arg: int
    expected_kind: Optional[ArgKind]


@dataclass
class ParseResults:
    """All command results parsed from one line plus the error that stopped parsing."""

    results: List[ParseResult] = field(default_factory=list)
    error: Optional[ParseError] = None

    def add(self, result: ParseResult) -> None:
        self.results.append(result)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[ParseResult]:
        return iter(self.results)

    def __getitem__(self, index: int) -> ParseResult:
        return self.results[index]

    @property
    def ok(self) -> bool:
        return self.error is None

    def completed(self) -> List[ParseResult]:
        """Results that parsed completely and can be executed."""

        return [result for result in self.results if result.complete]

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def metrics(self) -> ParseMetrics:
        if not self.results:
            return ParseMetrics(result_index=0, current_arg=-1, expected_kind=ArgKind.COMMAND_NAME)

        index = len(self.results) - 1
        last = self.results[index]
        if last.termination is Termination.SEPARATOR:
            return ParseMetrics(result_index=index + 1, current_arg=-1, expected_kind=ArgKind.COMMAND_NAME)

        arg = last.current_arg
        if arg < 0:
            return ParseMetrics(result_index=index, current_arg=arg, expected_kind=ArgKind.COMMAND_NAME)
        if last.declaration is None:
            return ParseMetrics(result_index=index, current_arg=arg, expected_kind=None)
        args = last.declaration.args
        kind = args[arg].kind if arg < len(args) else None
        return ParseMetrics(result_index=index, current_arg=arg, expected_kind=kind)


class CommandParser:
    """Parse command lines against a :class:`CommandRegistry`."""

    def __init__(self, commands: CommandRegistry) -> None:
        self.commands = commands

    def parse(self, line: str) -> ParseResults:
        results = ParseResults()
        pos, _, _ = self._skip(line, 0)

        while pos < len(line):
            result, pos, error = self._parse_next_command(line, pos)
            if result is not None:
                results.add(result)
            if error is not None:
                logger.debug("parse stopped at offset %d: %s", pos, error)
                results.error = error
                return results
            if result.termination is not Termination.SEPARATOR:
                break

        return results

    def _parse_next_command(
        self, text: str, pos: int
    ) -> Tuple[Optional[ParseResult], int, Optional[ParseError]]:
        name = grammar.match_command_name(text, pos)
        if not name:
            return None, pos, EmptyCommandNameError()
        pos += len(name)

        result = ParseResult(command_name=name)
        declaration = self.commands.get(name)
        if declaration is None:
            self._skip(text, pos, result)
            return result, pos, UnknownCommandError(name)
        result.declaration = declaration

        try:
            pos, termination = self._parse_args(text, pos, result)
        except ParseError as exc:
            return result, pos, exc

        if termination is None:
            pos, termination, _ = self._skip(text, pos)
        result.termination = termination
        result.complete = True
        return result, pos, None

    def _parse_args(self, text: str, pos: int, result: ParseResult) -> Tuple[int, Optional[Termination]]:
        """Read the declared arguments in order.

        Returns the new position and, when input ended early on an optional
        argument, the termination that ended it.
        """

        args = result.declaration.args
        for index, arg in enumerate(args):
            pos, termination, skipped = self._skip(text, pos, result)
            if termination is not Termination.NONE:
                if not arg.optional:
                    raise MissingParameterError(arg.name)
                for remaining in args[index:]:
                    result.args[remaining.name] = ""
                return pos, termination

            if not skipped:
                previous = args[index - 1].name if index > 0 else arg.name
                raise InvalidParameterError(previous)

            value, pos = grammar.match_argument(arg.kind, text, pos, arg.name)
            result.args[arg.name] = value

        return pos, None

    @staticmethod
    def _skip(
        text: str, pos: int, result: Optional[ParseResult] = None
    ) -> Tuple[int, Termination, bool]:
        """Skip whitespace, consume a terminator if present, skip again.

        When ``result`` is given its ``current_arg`` is advanced if any
        whitespace was skipped.
        """

        start = pos
        pos = grammar.skip_whitespace(text, pos)
        skipped = pos > start

        termination, pos = grammar.match_terminator(text, pos)

        after = grammar.skip_whitespace(text, pos)
        skipped = skipped or after > pos
        pos = after

        if skipped and result is not None:
            result.current_arg += 1
        return pos, termination, skipped
