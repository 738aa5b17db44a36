"""Interactive command shell for wallets and smart contracts."""

__version__ = "0.4.0"

from .commands import builtin_declarations, default_commands
from .errors import ParseError, SchemaError, ShellError
from .grammar import ArgKind, Termination
from .interpreter import ExecutionContext, ExecutionResult, InterpretResults, parse_and_interpret
from .parser import CommandParser, ParseResult, ParseResults
from .registry import CommandArg, CommandDeclaration, CommandRegistry, optional_arg
from .schema import MessageSchema, TypeLibrary, flatten_schema

__all__ = [
    "__version__",
    "ArgKind",
    "CommandArg",
    "CommandDeclaration",
    "CommandParser",
    "CommandRegistry",
    "ExecutionContext",
    "ExecutionResult",
    "InterpretResults",
    "MessageSchema",
    "ParseError",
    "ParseResult",
    "ParseResults",
    "SchemaError",
    "ShellError",
    "Termination",
    "TypeLibrary",
    "builtin_declarations",
    "default_commands",
    "flatten_schema",
    "optional_arg",
    "parse_and_interpret",
]
