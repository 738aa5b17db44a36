"""Shared configuration loader for chainshell."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".chainshell.yaml"
DEFAULT_HISTORY_PATH = Path.home() / ".chainshell_history"
DEFAULT_RC_FILES = (Path.home() / ".chainshellrc", Path(".chainshellrc"))
DEFAULT_HISTORY_SIZE = 256
DEFAULT_RC_LIMIT = 10_000_000
DEFAULT_RPC_TIMEOUT = 30.0

_CONFIG_PATH_OVERRIDE: Path | None = None


@dataclass
class ShellConfig:
    """Settings for one shell process."""

    rpc_url: str | None = None
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    rc_limit: int = DEFAULT_RC_LIMIT
    history_path: Path = DEFAULT_HISTORY_PATH
    history_size: int = DEFAULT_HISTORY_SIZE
    rc_files: list[Path] = field(default_factory=lambda: list(DEFAULT_RC_FILES))


def set_default_config_path(path: str | Path | None) -> None:
    """Remember a user-supplied config path for future loads."""

    global _CONFIG_PATH_OVERRIDE
    _CONFIG_PATH_OVERRIDE = Path(path).expanduser() if path else None


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML mapping")
    return loaded


def _section(config: dict[str, Any], name: str, path: Path) -> dict[str, Any]:
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected '{name}' to be a mapping in {path}")
    return section


def _coerce_int(raw: Any, *, source: str, minimum: int = 0) -> int | None:
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid integer in {source}: {raw}") from exc
    if value < minimum:
        raise ConfigurationError(f"Value in {source} must be at least {minimum}: {raw}")
    return value


def _coerce_float(raw: Any, *, source: str) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid number in {source}: {raw}") from exc
    if value <= 0:
        raise ConfigurationError(f"Value in {source} must be positive: {raw}")
    return value


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def validate_rpc_url(raw: str) -> str:
    parsed = urlparse(raw)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ConfigurationError(f"Invalid RPC endpoint URL: {raw}")
    return raw


def load_shell_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> ShellConfig:
    """Load shell settings from overrides, environment variables and optional YAML.

    Precedence is overrides, then ``CHAINSHELL_*`` environment variables, then
    the ``rpc`` and ``shell`` sections of the YAML file, then defaults.
    """

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )

    file_config = _load_config_file(path, required=explicit_path)
    rpc_section = _section(file_config, "rpc", path)
    shell_section = _section(file_config, "shell", path)
    override_map = dict(overrides or {})

    rpc_url = _first_value(
        override_map.get("rpc_url"),
        env_map.get("CHAINSHELL_RPC_URL") or None,
        rpc_section.get("url"),
    )
    if rpc_url is not None:
        rpc_url = validate_rpc_url(str(rpc_url))

    rpc_timeout = _first_value(
        _coerce_float(override_map.get("rpc_timeout"), source="overrides"),
        _coerce_float(rpc_section.get("timeout"), source=f"{path} rpc.timeout"),
        default=DEFAULT_RPC_TIMEOUT,
    )
    rc_limit = _first_value(
        _coerce_int(override_map.get("rc_limit"), source="overrides"),
        _coerce_int(rpc_section.get("rc_limit"), source=f"{path} rpc.rc_limit"),
        default=DEFAULT_RC_LIMIT,
    )

    history = _first_value(
        override_map.get("history_path"),
        env_map.get("CHAINSHELL_HISTORY") or None,
        shell_section.get("history"),
        default=DEFAULT_HISTORY_PATH,
    )
    history_size = _first_value(
        _coerce_int(override_map.get("history_size"), source="overrides", minimum=1),
        _coerce_int(env_map.get("CHAINSHELL_HISTORY_SIZE") or None, source="environment", minimum=1),
        _coerce_int(shell_section.get("history_size"), source=f"{path} shell.history_size", minimum=1),
        default=DEFAULT_HISTORY_SIZE,
    )

    rc_files = _first_value(override_map.get("rc_files"), shell_section.get("rc_files"))
    if rc_files is None:
        rc_paths = list(DEFAULT_RC_FILES)
    elif isinstance(rc_files, (list, tuple)):
        rc_paths = [Path(str(item)).expanduser() for item in rc_files]
    else:
        raise ConfigurationError(f"Expected 'shell.rc_files' to be a list in {path}")

    return ShellConfig(
        rpc_url=rpc_url,
        rpc_timeout=rpc_timeout,
        rc_limit=rc_limit,
        history_path=Path(str(history)).expanduser(),
        history_size=history_size,
        rc_files=rc_paths,
    )
