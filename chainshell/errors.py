"""Error types surfaced by the chainshell interpreter.

Every user-facing failure renders as a single line of the form
``<cause>: <context>``. The interpreter converts these exceptions into output
lines at the command boundary; nothing here is fatal to the process.
"""

from __future__ import annotations


class ShellError(RuntimeError):
    """Base class for errors reported to the shell user."""

    cause = "error"

    def __init__(self, context: str | None = None) -> None:
        self.context = context
        super().__init__(self._render())

    def _render(self) -> str:
        if self.context:
            return f"{self.cause}: {self.context}"
        return self.cause


# Parsing -----------------------------------------------------------------


class ParseError(ShellError):
    """Raised (or recorded) when a command line cannot be parsed."""

    cause = "parse error"


class EmptyCommandNameError(ParseError):
    cause = "empty command name"


class UnknownCommandError(ParseError):
    cause = "unknown command"


class MissingParameterError(ParseError):
    cause = "missing parameter"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(name)


class InvalidParameterError(ParseError):
    cause = "invalid value given for parameter"

    def __init__(self, name: str, kind: str | None = None) -> None:
        self.name = name
        self.kind = kind
        context = f"{name} (expected {kind})" if kind else name
        super().__init__(context)


class UnterminatedStringError(InvalidParameterError):
    cause = "unterminated quoted string"

    def __init__(self, name: str) -> None:
        super().__init__(name)


# Schemas and contracts ---------------------------------------------------


class SchemaError(ShellError):
    cause = "schema error"


class UnsupportedFieldTypeError(SchemaError):
    cause = "unsupported field type"


class UnknownTypeError(SchemaError):
    cause = "could not find type"


class InvalidABIError(SchemaError):
    cause = "invalid ABI"


class BindingError(SchemaError):
    cause = "invalid value for field"


class MissingFieldValueError(BindingError):
    cause = "missing value for field"


class ContractError(ShellError):
    cause = "contract error"


# Execution environment ---------------------------------------------------


class OfflineError(ShellError):
    cause = "wallet is offline"


class WalletClosedError(ShellError):
    cause = "no open wallet"


class WalletError(ShellError):
    cause = "wallet error"


class WalletExistsError(WalletError):
    cause = "wallet already exists"


class WalletDecryptError(WalletError):
    cause = "wallet decryption failed"


class EmptyPassphraseError(WalletError):
    cause = "passphrase cannot be empty"


class InvalidPrivateKeyError(WalletError):
    cause = "invalid private key"


class InvalidAmountError(ShellError):
    cause = "invalid amount"
