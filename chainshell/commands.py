"""Built-in shell commands and the default command registry."""

from __future__ import annotations

import binascii
import logging
from pathlib import Path

from . import encoding
from .abi import ABI, load_abi, parse_entry_point, register_contract
from .binder import decode_message, encode_message
from .config import validate_rpc_url
from .errors import (
    ContractError,
    EmptyPassphraseError,
    InvalidABIError,
    OfflineError,
    UnknownCommandError,
    WalletExistsError,
)
from .grammar import ArgKind
from .interpreter import Command, ExecutionContext, ExecutionResult
from .keys import WalletKey
from .parser import ParseResult
from .registry import CommandArg, CommandDeclaration, CommandRegistry, optional_arg
from .rpc_client import RPCError, RPCTransportError, b64url_decode, b64url_encode
from .token_contract import (
    BALANCE_OF_ARGUMENTS,
    BALANCE_OF_ENTRY_POINT,
    BALANCE_OF_RESULT,
    TOKEN_SYMBOL,
    TRANSFER_ARGUMENTS,
    TRANSFER_ENTRY_POINT,
    decimal_to_satoshi,
    format_amount,
    token_contract_id,
    token_library,
)
from .wallet import create_wallet_file, read_wallet_file

logger = logging.getLogger(__name__)

PASSWORD_ENV_VAR = "WALLET_PASS"


def resolve_password(ctx: ExecutionContext, given: str) -> str:
    """Return the given password, falling back to ``WALLET_PASS``."""

    password = given or ctx.env.get(PASSWORD_ENV_VAR, "")
    if not password.strip():
        raise EmptyPassphraseError(f"give a password or set {PASSWORD_ENV_VAR}")
    return password


def decode_address(text: str) -> bytes:
    try:
        data = encoding.b58decode(text)
    except ValueError as exc:
        raise ContractError(f"invalid address {text}") from exc
    if not data:
        raise ContractError(f"invalid address {text}")
    return data


def _raw_entry_point(text: str) -> int:
    try:
        return parse_entry_point(text, "raw call")
    except InvalidABIError as exc:
        raise ContractError(f"invalid entry point {text}") from exc


def _raw_arguments(text: str) -> bytes:
    try:
        return b64url_decode(text)
    except (binascii.Error, ValueError) as exc:
        raise ContractError("arguments must be base64 encoded") from exc


class AddressCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        pass

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        key = ctx.require_wallet("cannot show address")
        return ExecutionResult([f"Wallet address: {key.address()}"])


class BalanceCommand(Command):
    """Token balance of an address, or of the open wallet when none is given."""

    def __init__(self, result: ParseResult) -> None:
        self.address = result.args.get("address", "")

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        invoker = ctx.require_online("cannot check balance")
        if self.address:
            address = self.address
            owner = decode_address(address)
        else:
            key = ctx.require_wallet("must give an address")
            address = key.address()
            owner = key.address_bytes()

        library = token_library()
        arguments = library.schema(BALANCE_OF_ARGUMENTS)
        args = encode_message(library, arguments, {"owner": owner})
        data = invoker.read_contract(args, token_contract_id(), BALANCE_OF_ENTRY_POINT)
        value = decode_message(library, library.schema(BALANCE_OF_RESULT), data)["value"]
        return ExecutionResult([f"{address}: {format_amount(value)}"])


class CallCommand(Command):
    """Raw contract call, the write counterpart of ``read``."""

    def __init__(self, result: ParseResult) -> None:
        self.contract_id = result.args["contract-id"]
        self.entry_point = result.args["entry-point"]
        self.arguments = result.args["arguments"]

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        key = ctx.require_wallet("cannot call contract")
        invoker = ctx.require_online("cannot call contract")
        contract_id = decode_address(self.contract_id)
        entry_point = _raw_entry_point(self.entry_point)
        args = _raw_arguments(self.arguments)

        result = ExecutionResult(
            [f"Calling contract {self.contract_id} at entry point {self.entry_point} with arguments {self.arguments}"]
        )
        try:
            receipt = invoker.write_contract(args, contract_id, entry_point, key)
        except (RPCError, RPCTransportError) as exc:
            result.error = f"cannot call contract, {exc}"
            return result
        result.add(f"Transaction submitted: {receipt.get('id', 'unknown id')}")
        return result


class CloseCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        pass

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        ctx.require_wallet("cannot close")
        ctx.close_wallet()
        return ExecutionResult(["Wallet closed"])


class ConnectCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        self.url = result.args["url"]

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        ctx.connect(validate_rpc_url(self.url))
        return ExecutionResult([f"Connected to endpoint {self.url}"])


class DisconnectCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        pass

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        if not ctx.is_online:
            raise OfflineError("cannot disconnect")
        ctx.disconnect()
        return ExecutionResult(["Disconnected"])


class CreateCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        self.filename = result.args["filename"]
        self.password = result.args.get("password", "")

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        path = Path(self.filename).expanduser()
        if path.exists():
            raise WalletExistsError(self.filename)
        password = resolve_password(ctx, self.password)
        key = WalletKey.generate()
        create_wallet_file(path, password, key.private_bytes())
        ctx.open_wallet(key, path)
        return ExecutionResult(
            [f"Created and opened new wallet: {self.filename}", f"Address: {key.address()}"]
        )


class ImportCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        self.private_key = result.args["private-key"]
        self.filename = result.args["filename"]
        self.password = result.args.get("password", "")

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        path = Path(self.filename).expanduser()
        if path.exists():
            raise WalletExistsError(self.filename)
        password = resolve_password(ctx, self.password)
        key = WalletKey.from_wif(self.private_key)
        create_wallet_file(path, password, key.private_bytes())
        ctx.open_wallet(key, path)
        return ExecutionResult(
            [f"Created and opened new wallet: {self.filename}", f"Address: {key.address()}"]
        )


class OpenCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        self.filename = result.args["filename"]
        self.password = result.args.get("password", "")

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        path = Path(self.filename).expanduser()
        password = resolve_password(ctx, self.password)
        key = WalletKey.from_bytes(read_wallet_file(path, password))
        ctx.open_wallet(key, path)
        return ExecutionResult([f"Opened wallet: {self.filename}"])


class ExitCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        pass

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        ctx.request_exit()
        return ExecutionResult()


class GenerateCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        pass

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        key = WalletKey.generate()
        return ExecutionResult(
            [
                "New key generated",
                "This is only shown once, make sure to record this information",
                "---",
                f"Address: {key.address()}",
                f"Public : {key.public()}",
                f"Private: {key.wif()}",
            ]
        )


class HelpCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        self.command = result.args["command"]

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        declaration = ctx.commands.get(self.command)
        if declaration is None:
            raise UnknownCommandError(self.command)
        return ExecutionResult([declaration.description, f"Usage: {declaration}"])


class ListCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        pass

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        return ExecutionResult(ctx.commands.list(pretty=True))


class PrivateCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        pass

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        key = ctx.require_wallet("cannot show private key")
        return ExecutionResult([f"Private key: {key.wif()}"])


class PublicCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        pass

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        key = ctx.require_wallet("cannot show public key")
        return ExecutionResult([f"Public key: {key.public()}"])


class ReadCommand(Command):
    """Raw contract read with base64 encoded arguments."""

    def __init__(self, result: ParseResult) -> None:
        self.contract_id = result.args["contract-id"]
        self.entry_point = result.args["entry-point"]
        self.arguments = result.args["arguments"]

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        invoker = ctx.require_online("cannot read contract")
        contract_id = decode_address(self.contract_id)
        entry_point = _raw_entry_point(self.entry_point)
        args = _raw_arguments(self.arguments)

        data = invoker.read_contract(args, contract_id, entry_point)
        return ExecutionResult([f"Result: {b64url_encode(data)}"])


class RegisterCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        self.name = result.args["name"]
        self.address = result.args["address"]
        self.abi_filename = result.args["abi-filename"]

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        abi = load_abi(Path(self.abi_filename).expanduser())
        register_contract(ctx, self.name, self.address, abi)
        return ExecutionResult([f"Contract '{self.name}' at address {self.address} registered"])


class TransferCommand(Command):
    def __init__(self, result: ParseResult) -> None:
        self.amount = result.args["amount"]
        self.address = result.args["address"]

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        key = ctx.require_wallet("cannot transfer")
        invoker = ctx.require_online("cannot transfer")
        value = decimal_to_satoshi(self.amount)
        recipient = decode_address(self.address)

        library = token_library()
        arguments = library.schema(TRANSFER_ARGUMENTS)
        args = encode_message(
            library, arguments, {"from": key.address_bytes(), "to": recipient, "value": value}
        )

        result = ExecutionResult([f"Transferring {format_amount(value)} to {self.address}"])
        try:
            receipt = invoker.write_contract(args, token_contract_id(), TRANSFER_ENTRY_POINT, key)
        except (RPCError, RPCTransportError) as exc:
            result.error = f"cannot transfer {TOKEN_SYMBOL}, {exc}"
            return result
        result.add(f"Transaction submitted: {receipt.get('id', 'unknown id')}")
        return result


class UploadCommand(Command):
    """Upload contract bytecode to the open wallet's address."""

    AUTHORIZE_ARGS = {
        "override-authorize-call-contract": "call_contract",
        "override-authorize-transaction-application": "transaction_application",
        "override-authorize-upload-contract": "upload_contract",
    }

    def __init__(self, result: ParseResult) -> None:
        self.filename = result.args["filename"]
        self.abi_filename = result.args.get("abi-filename", "")
        self.authorizes = {
            field: result.args[arg] == "true"
            for arg, field in self.AUTHORIZE_ARGS.items()
            if result.args.get(arg)
        }

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        key = ctx.require_wallet("cannot upload contract")
        invoker = ctx.require_online("cannot upload contract")
        bytecode = Path(self.filename).expanduser().read_bytes()
        abi_text = ""
        if self.abi_filename:
            abi_path = Path(self.abi_filename).expanduser()
            try:
                abi_text = abi_path.read_text(encoding="utf-8")
            except OSError as exc:
                raise InvalidABIError(f"cannot read {abi_path} ({exc.strerror})") from exc
            ABI.from_json(abi_text)

        result = ExecutionResult([f"Uploading contract to address {key.address()}"])
        try:
            receipt = invoker.upload_contract(bytecode, key, abi=abi_text, authorizes=self.authorizes)
        except (RPCError, RPCTransportError) as exc:
            result.error = f"cannot upload contract, {exc}"
            return result
        result.add(f"Transaction submitted: {receipt.get('id', 'unknown id')}")
        return result


def builtin_declarations() -> list[CommandDeclaration]:
    password = optional_arg("password", ArgKind.STRING)
    filename = CommandArg("filename", ArgKind.FILE)
    return [
        CommandDeclaration("address", "Show the currently opened wallet's address", AddressCommand),
        CommandDeclaration(
            "balance",
            "Check the balance at an address (the open wallet if blank)",
            BalanceCommand,
            [optional_arg("address", ArgKind.ADDRESS)],
        ),
        CommandDeclaration(
            "call",
            "Call a smart contract with base64 encoded arguments",
            CallCommand,
            [
                CommandArg("contract-id", ArgKind.ADDRESS),
                CommandArg("entry-point", ArgKind.STRING),
                CommandArg("arguments", ArgKind.STRING),
            ],
        ),
        CommandDeclaration("close", "Close the currently open wallet (lock also works)", CloseCommand),
        CommandDeclaration("lock", "Synonym for close", CloseCommand, hidden=True),
        CommandDeclaration(
            "connect", "Connect to an RPC endpoint", ConnectCommand, [CommandArg("url", ArgKind.STRING)]
        ),
        CommandDeclaration("create", "Create and open a new wallet file", CreateCommand, [filename, password]),
        CommandDeclaration("disconnect", "Disconnect from RPC endpoint", DisconnectCommand),
        CommandDeclaration("exit", "Exit the wallet (quit also works)", ExitCommand),
        CommandDeclaration("quit", "Synonym for exit", ExitCommand, hidden=True),
        CommandDeclaration("generate", "Generate and display a new private key", GenerateCommand),
        CommandDeclaration(
            "help", "Show help on a given command", HelpCommand, [CommandArg("command", ArgKind.COMMAND_NAME)]
        ),
        CommandDeclaration(
            "import",
            "Import a WIF private key to a new wallet file",
            ImportCommand,
            [CommandArg("private-key", ArgKind.STRING), filename, password],
        ),
        CommandDeclaration("list", "List available commands", ListCommand),
        CommandDeclaration("open", "Open a wallet file (unlock also works)", OpenCommand, [filename, password]),
        CommandDeclaration("unlock", "Synonym for open", OpenCommand, [filename, password], hidden=True),
        CommandDeclaration("private", "Show the currently opened wallet's private key", PrivateCommand),
        CommandDeclaration("public", "Show the currently opened wallet's public key", PublicCommand),
        CommandDeclaration(
            "read",
            "Read from a smart contract",
            ReadCommand,
            [
                CommandArg("contract-id", ArgKind.ADDRESS),
                CommandArg("entry-point", ArgKind.STRING),
                CommandArg("arguments", ArgKind.STRING),
            ],
        ),
        CommandDeclaration(
            "register",
            "Register a smart contract's commands",
            RegisterCommand,
            [
                CommandArg("name", ArgKind.STRING),
                CommandArg("address", ArgKind.ADDRESS),
                CommandArg("abi-filename", ArgKind.FILE),
            ],
        ),
        CommandDeclaration(
            "transfer",
            f"Transfer {TOKEN_SYMBOL} from the open wallet",
            TransferCommand,
            [CommandArg("amount", ArgKind.AMOUNT), CommandArg("address", ArgKind.ADDRESS)],
        ),
        CommandDeclaration(
            "upload",
            "Upload a smart contract to the open wallet's address",
            UploadCommand,
            [
                filename,
                optional_arg("abi-filename", ArgKind.FILE),
                *(optional_arg(name, ArgKind.BOOL) for name in UploadCommand.AUTHORIZE_ARGS),
            ],
        ),
    ]


def default_commands() -> CommandRegistry:
    return CommandRegistry(builtin_declarations())
