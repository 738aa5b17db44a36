"""Command execution against an explicit shell context.

Commands never reach for global state. Everything a command may read or
change (the command registry, contracts, the node connection, the open wallet)
lives on the :class:`ExecutionContext` handed to :meth:`Command.execute`.
Failures are contained per command: :func:`execute` turns any exception into
one output line so that the remaining commands of a line still run.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, List, Mapping, Optional

from .config import ConfigurationError, ShellConfig
from .contracts import Contracts
from .errors import OfflineError, ShellError, UnknownCommandError, WalletClosedError
from .parser import CommandParser, ParseResult
from .registry import CommandRegistry
from .rpc_client import ChainRPCClient, RemoteInvoker, RPCError, RPCTransportError

if TYPE_CHECKING:  # pragma: no cover
    from .keys import WalletKey

logger = logging.getLogger(__name__)

LIST_HINT = 'Type "list" for a list of commands.'

EXPECTED_ERRORS = (ShellError, RPCError, RPCTransportError, ConfigurationError)


@dataclass
class ExecutionResult:
    """Output lines produced by one command."""

    messages: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def add(self, message: str) -> None:
        self.messages.append(message)

    def extend(self, messages: Iterable[str]) -> None:
        self.messages.extend(messages)

    @property
    def ok(self) -> bool:
        return self.error is None

    def lines(self) -> List[str]:
        if self.error is None:
            return list(self.messages)
        return [*self.messages, self.error]


class Command:
    """Base class for executable commands."""

    def execute(self, ctx: "ExecutionContext") -> ExecutionResult:
        raise NotImplementedError


InvokerFactory = Callable[[str, ShellConfig], RemoteInvoker]


def default_invoker_factory(url: str, config: ShellConfig) -> RemoteInvoker:
    return ChainRPCClient(url, timeout=config.rpc_timeout, rc_limit=config.rc_limit)


class ExecutionContext:
    """Environment shared by every command executed in one shell session."""

    def __init__(
        self,
        commands: CommandRegistry,
        *,
        config: ShellConfig | None = None,
        env: Mapping[str, str] | None = None,
        invoker_factory: InvokerFactory = default_invoker_factory,
    ) -> None:
        self.commands = commands
        self.parser = CommandParser(commands)
        self.contracts = Contracts()
        self.config = config or ShellConfig()
        self.env = os.environ if env is None else env
        self.invoker_factory = invoker_factory
        self.invoker: RemoteInvoker | None = None
        self.rpc_url: str | None = None
        self.key: WalletKey | None = None
        self.wallet_path: Path | None = None
        self.exit_requested = False
        self._cleanup: List[Callable[[], None]] = []

    # Node connection ------------------------------------------------------

    @property
    def is_online(self) -> bool:
        return self.invoker is not None

    def require_online(self, action: str) -> RemoteInvoker:
        if self.invoker is None:
            raise OfflineError(action)
        return self.invoker

    def connect(self, url: str, invoker: RemoteInvoker | None = None) -> RemoteInvoker:
        self.disconnect()
        self.invoker = invoker if invoker is not None else self.invoker_factory(url, self.config)
        self.rpc_url = url
        logger.debug("connected to %s", url)
        return self.invoker

    def disconnect(self) -> None:
        if self.invoker is None:
            return
        close = getattr(self.invoker, "close", None)
        if callable(close):
            close()
        logger.debug("disconnected from %s", self.rpc_url)
        self.invoker = None
        self.rpc_url = None

    # Wallet ---------------------------------------------------------------

    @property
    def is_wallet_open(self) -> bool:
        return self.key is not None

    def require_wallet(self, action: str) -> "WalletKey":
        if self.key is None:
            raise WalletClosedError(action)
        return self.key

    def open_wallet(self, key: "WalletKey", path: Path | None = None) -> None:
        self.key = key
        self.wallet_path = path

    def close_wallet(self) -> None:
        self.key = None
        self.wallet_path = None

    # Lifecycle ------------------------------------------------------------

    def request_exit(self) -> None:
        self.exit_requested = True

    def add_cleanup(self, callback: Callable[[], None]) -> None:
        self._cleanup.append(callback)

    def run_cleanup(self) -> None:
        """Run cleanup callbacks in reverse registration order, then disconnect."""

        while self._cleanup:
            callback = self._cleanup.pop()
            try:
                callback()
            except Exception:
                logger.exception("cleanup callback failed")
        self.disconnect()


def execute(result: ParseResult, ctx: ExecutionContext) -> ExecutionResult:
    """Instantiate and run the command for one parse result."""

    if result.declaration is None:
        return ExecutionResult(error=str(UnknownCommandError(result.command_name)))
    try:
        command = result.instantiate()
        return command.execute(ctx)
    except EXPECTED_ERRORS as exc:
        logger.debug("command %s failed: %s", result.command_name, exc)
        return ExecutionResult(error=str(exc))
    except OSError as exc:
        if exc.filename is not None:
            return ExecutionResult(error=f"{exc.strerror}: {exc.filename}")
        return ExecutionResult(error=str(exc))
    except Exception as exc:
        logger.exception("unexpected failure in command %s", result.command_name)
        return ExecutionResult(error=f"unexpected error: {exc}")


@dataclass
class InterpretResults:
    """Results of all commands executed from one line, in order."""

    results: List[ExecutionResult] = field(default_factory=list)

    def add(self, result: ExecutionResult) -> None:
        self.results.append(result)

    def add_error(self, message: str) -> None:
        self.results.append(ExecutionResult(error=message))

    def add_message(self, message: str) -> None:
        self.results.append(ExecutionResult(messages=[message]))

    def lines(self) -> List[str]:
        output: List[str] = []
        for result in self.results:
            output.extend(result.lines())
        return output

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)


def interpret(results: Iterable[ParseResult], ctx: ExecutionContext) -> InterpretResults:
    """Execute each parse result in order; one failure does not stop the rest."""

    output = InterpretResults()
    for result in results:
        output.add(execute(result, ctx))
    return output


def parse_and_interpret(parser: CommandParser, ctx: ExecutionContext, line: str) -> InterpretResults:
    """Parse ``line`` and run every command that parsed completely.

    When parsing stopped on an error the error line is appended, followed by
    the usage of the failing command or a hint to run ``list``.
    """

    parsed = parser.parse(line)
    output = interpret(parsed.completed(), ctx)
    if parsed.error is None:
        return output

    output.add_error(str(parsed.error))
    failing = parsed.results[-1] if parsed.results and not parsed.results[-1].complete else None
    if failing is not None and failing.declaration is not None:
        output.add_message(f"Usage: {failing.declaration.usage()}")
    else:
        output.add_message(LIST_HINT)
    return output
