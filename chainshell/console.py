"""Interactive prompt_toolkit console for chainshell."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import CompleteEvent, Completer, Completion, PathCompleter
from prompt_toolkit.document import Document
from prompt_toolkit.history import InMemoryHistory

from .grammar import ArgKind, QUOTE_CHARS
from .interpreter import ExecutionContext, parse_and_interpret

logger = logging.getLogger(__name__)

_TOKEN_BREAKS = (" ", "\t", ";")


def execute_line(ctx: ExecutionContext, line: str) -> List[str]:
    """Run one input line and return its output lines."""

    if not line.strip():
        return []
    return parse_and_interpret(ctx.parser, ctx, line).lines()


def prompt_prefix(ctx: ExecutionContext) -> str:
    online = "online" if ctx.is_online else "offline"
    locked = "unlocked" if ctx.is_wallet_open else "locked"
    return f"({online}) ({locked}) > "


class HistoryStore:
    """File-backed history list with a size limit."""

    def __init__(self, path: Optional[Path], *, limit: int = 256) -> None:
        self.limit = max(1, int(limit))
        self.path = Path(path).expanduser() if path else None
        self.entries: List[str] = []
        if self.path:
            self._load()

    def _load(self) -> None:
        try:
            data = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Cannot read history file %s: %s", self.path, exc)
            return
        lines = [line.strip() for line in data.splitlines() if line.strip()]
        self.entries = lines[-self.limit :]

    def append(self, line: str) -> None:
        text = line.strip()
        if not text:
            return
        if self.entries and self.entries[-1] == text:
            return
        self.entries.append(text)
        if len(self.entries) > self.limit:
            self.entries = self.entries[-self.limit :]
        self._persist()

    def _persist(self) -> None:
        if not self.path:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text("\n".join(self.entries) + "\n", encoding="utf-8")
        except OSError as exc:
            logger.warning("Cannot write history file %s: %s", self.path, exc)

    def snapshot(self) -> List[str]:
        return list(self.entries)


def _current_token(text: str) -> str:
    index = len(text)
    while index > 0 and text[index - 1] not in _TOKEN_BREAKS:
        index -= 1
    return text[index:]


class ShellCompleter(Completer):
    """Suggest command names or file paths depending on where the cursor is."""

    def __init__(self, ctx: ExecutionContext) -> None:
        self.ctx = ctx
        self._path = PathCompleter(expanduser=True)
        self._revision = -1
        self._names: List[str] = []

    def _command_names(self) -> List[str]:
        if self._revision != self.ctx.commands.revision:
            self._names = self.ctx.commands.list()
            self._revision = self.ctx.commands.revision
        return self._names

    def get_completions(self, document: Document, complete_event: CompleteEvent) -> Iterable[Completion]:
        text = document.text_before_cursor
        metrics = self.ctx.parser.parse(text).metrics()
        prefix = _current_token(text)

        if metrics.expected_kind is ArgKind.COMMAND_NAME:
            for name in self._command_names():
                if name.startswith(prefix):
                    declaration = self.ctx.commands.get(name)
                    yield Completion(
                        name,
                        start_position=-len(prefix),
                        display_meta=declaration.description if declaration else "",
                    )
        elif metrics.expected_kind is ArgKind.FILE:
            path_text = prefix[1:] if prefix[:1] in QUOTE_CHARS else prefix
            yield from self._path.get_completions(Document(path_text, len(path_text)), complete_event)


def run_console(
    ctx: ExecutionContext,
    *,
    history: HistoryStore | None = None,
    output: Callable[[str], None] = print,
) -> int:
    """Read, execute, print until ``exit`` or end of input."""

    prompt_history = InMemoryHistory()
    if history is not None:
        for entry in history.snapshot():
            prompt_history.append_string(entry)

    session: PromptSession[str] = PromptSession(
        history=prompt_history,
        completer=ShellCompleter(ctx),
        complete_while_typing=True,
    )

    while not ctx.exit_requested:
        try:
            line = session.prompt(lambda: prompt_prefix(ctx))
        except KeyboardInterrupt:
            continue
        except EOFError:
            break
        if history is not None:
            history.append(line)
        for message in execute_line(ctx, line):
            output(message)
    return 0
