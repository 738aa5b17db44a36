"""Command declarations and the registry the parser resolves names against."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .grammar import ArgKind

if TYPE_CHECKING:  # pragma: no cover
    from .interpreter import Command
    from .parser import ParseResult

CommandFactory = Callable[["ParseResult"], "Command"]


@dataclass(frozen=True)
class CommandArg:
    """One positional argument of a command."""

    name: str
    kind: ArgKind
    optional: bool = False

    def __str__(self) -> str:
        filling = f"{self.name}:{self.kind}"
        return f"[{filling}]" if self.optional else f"<{filling}>"


def optional_arg(name: str, kind: ArgKind) -> CommandArg:
    return CommandArg(name, kind, optional=True)


@dataclass
class CommandDeclaration:
    """A named, typed command template.

    Optional arguments may only trail the required ones; a required argument
    after an optional one is rejected when the declaration is built.
    """

    name: str
    description: str
    factory: Optional[CommandFactory] = None
    args: Tuple[CommandArg, ...] = field(default_factory=tuple)
    hidden: bool = False

    def __post_init__(self) -> None:
        self.args = tuple(self.args)
        seen_optional = False
        for arg in self.args:
            if arg.optional:
                seen_optional = True
            elif seen_optional:
                raise ValueError(
                    f"command {self.name}: required argument {arg.name} follows an optional one"
                )

    def usage(self) -> str:
        return " ".join([self.name, *(str(arg) for arg in self.args)])

    def __str__(self) -> str:
        return self.usage()


class CommandRegistry:
    """Name-indexed table of command declarations with stable ordering."""

    def __init__(self, declarations: Sequence[CommandDeclaration] = ()) -> None:
        self._by_name: Dict[str, CommandDeclaration] = {}
        self._ordered: List[CommandDeclaration] = []
        self.revision = 0
        for declaration in declarations:
            self.add(declaration)

    def add(self, declaration: CommandDeclaration) -> None:
        """Insert ``declaration``; callers are responsible for unique names."""

        self._ordered.append(declaration)
        self._by_name[declaration.name] = declaration
        self.revision += 1

    def get(self, name: str) -> Optional[CommandDeclaration]:
        return self._by_name.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[CommandDeclaration]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)

    def list(self, pretty: bool = False) -> List[str]:
        """Return visible command names in alphabetical order.

        With ``pretty`` each entry is the name padded to the longest visible
        name, followed by ``-`` and the command description.
        """

        visible = [decl for decl in self._ordered if not decl.hidden]
        names = sorted(decl.name for decl in visible)
        if not pretty:
            return names
        longest = max((len(name) for name in names), default=0)
        return [f"{name:<{longest}} - {self._by_name[name].description}" for name in names]
