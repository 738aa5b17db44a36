"""Command line entry point for chainshell."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Iterable, Sequence

from . import __version__
from .commands import default_commands
from .config import ConfigurationError, ShellConfig, load_shell_config, set_default_config_path
from .console import HistoryStore, execute_line, run_console
from .interpreter import ExecutionContext

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV_VAR = "CHAINSHELL_LOG"


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chainshell", description="Interactive wallet and contract shell"
    )
    parser.add_argument("-r", "--rpc", help="RPC server URL")
    parser.add_argument(
        "-x",
        "--execute",
        action="append",
        default=[],
        metavar="COMMANDS",
        help="Command line to execute (repeatable)",
    )
    parser.add_argument(
        "-f",
        "--file",
        action="append",
        default=[],
        metavar="PATH",
        help="File of command lines to execute (repeatable)",
    )
    parser.add_argument(
        "-i",
        "--force-interactive",
        action="store_true",
        help="Start the prompt even when --execute or --file is given",
    )
    parser.add_argument("-v", "--version", action="store_true", help="Display the version")
    parser.add_argument("--config", help="Path to a YAML settings file")
    parser.add_argument(
        "--log-level",
        default=os.environ.get(LOG_LEVEL_ENV_VAR, "WARNING"),
        help=f"Logging level (default from {LOG_LEVEL_ENV_VAR}, else WARNING)",
    )
    return parser


def run_lines(
    ctx: ExecutionContext, lines: Iterable[str], output: Callable[[str], None] = print
) -> None:
    for line in lines:
        if ctx.exit_requested:
            return
        for message in execute_line(ctx, line):
            output(message)


def run_file(
    ctx: ExecutionContext,
    path: Path,
    *,
    required: bool,
    output: Callable[[str], None] = print,
) -> None:
    """Execute every line of ``path``; missing optional files are skipped."""

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        if required:
            raise CLIError(f"file not found: {path}") from None
        return
    except OSError as exc:
        raise CLIError(f"cannot read {path}: {exc.strerror}") from exc
    logger.debug("executing %s", path)
    run_lines(ctx, text.splitlines(), output)


def build_context(config: ShellConfig) -> ExecutionContext:
    ctx = ExecutionContext(default_commands(), config=config)
    if config.rpc_url:
        ctx.connect(config.rpc_url)
    return ctx


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    level = getattr(logging, str(args.log_level).upper(), None)
    if not isinstance(level, int):
        parser.exit(2, f"error: unknown log level {args.log_level}\n")
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    ctx: ExecutionContext | None = None
    try:
        overrides = {"rpc_url": args.rpc} if args.rpc else None
        set_default_config_path(args.config)
        config = load_shell_config(overrides=overrides)
        ctx = build_context(config)

        for rc_file in config.rc_files:
            run_file(ctx, Path(rc_file), required=False)
        run_lines(ctx, args.execute)
        for filename in args.file:
            run_file(ctx, Path(filename).expanduser(), required=True)

        batch = bool(args.execute or args.file)
        if not ctx.exit_requested and (args.force_interactive or not batch):
            history = HistoryStore(config.history_path, limit=config.history_size)
            run_console(ctx, history=history)
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (CLIError, ConfigurationError) as exc:
        parser.exit(1, f"error: {exc}\n")
    finally:
        if ctx is not None:
            ctx.run_cleanup()


if __name__ == "__main__":
    main(sys.argv[1:])
