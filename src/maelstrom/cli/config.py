"""Configuration helpers for the maelstrom CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from web3 import Web3

from maelstrom.contracts import DEFAULT_ID_GATEWAY, DEFAULT_KEY_GATEWAY, DEFAULT_RPC_URL
from maelstrom.errors import ConfigError
from maelstrom.store import default_secrets_dir

# Used when neither --name, MAELSTROM_AGENT_NAME nor `agent_name` is set.
DEFAULT_AGENT_NAME = "default"

AGENT_NAME_ENV_VAR = "MAELSTROM_AGENT_NAME"
RPC_URL_ENV_VAR = "OP_RPC_URL"
ID_GATEWAY_ENV_VAR = "FC_ID_GATEWAY"
KEY_GATEWAY_ENV_VAR = "FC_KEY_GATEWAY"


def default_config_path() -> Path:
    return Path.home() / ".config" / "maelstrom" / "config.toml"


@dataclass(frozen=True)
class CLIConfig:
    agent_name: str = DEFAULT_AGENT_NAME
    secrets_dir: str = ""
    rpc_url: str = DEFAULT_RPC_URL
    id_gateway: str = DEFAULT_ID_GATEWAY
    key_gateway: str = DEFAULT_KEY_GATEWAY

    @property
    def secrets_root(self) -> Path:
        return Path(self.secrets_dir).expanduser() if self.secrets_dir else default_secrets_dir()


def _load_toml(path: Path) -> dict[str, Any]:
    raw = path.read_text(encoding="utf-8")

    try:  # Python 3.11+
        import tomllib  # type: ignore[attr-defined]
        try:
            return tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {path}: {exc}") from exc
    except ModuleNotFoundError:
        try:
            import tomli
        except ModuleNotFoundError as exc:
            raise ConfigError("toml parser unavailable; install tomli for Python < 3.11") from exc
        try:
            return tomli.loads(raw)
        except tomli.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {path}: {exc}") from exc


def _string_setting(source: dict[str, Any], key: str, default: str) -> str:
    value = source.get(key, default)
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string")
    value = value.strip()
    if not value:
        raise ConfigError(f"{key} must not be empty")
    return value


def normalize_address(value: str, field_name: str) -> str:
    candidate = (value or "").strip()
    if not Web3.is_address(candidate):
        raise ConfigError(f"{field_name} is not a valid address: {candidate!r}")
    return Web3.to_checksum_address(candidate)


def load_cli_config(path: str | Path | None = None) -> CLIConfig:
    config_path = Path(path) if path else default_config_path()
    if not config_path.exists():
        return CLIConfig()

    parsed = _load_toml(config_path)
    section = parsed.get("cli")
    if isinstance(section, dict):
        source = section
    elif section is None:
        source = parsed
    else:
        raise ConfigError("[cli] must be a table")

    secrets_dir = source.get("secrets_dir", "")
    if not isinstance(secrets_dir, str):
        raise ConfigError("secrets_dir must be a string")

    return CLIConfig(
        agent_name=_string_setting(source, "agent_name", DEFAULT_AGENT_NAME),
        secrets_dir=secrets_dir.strip(),
        rpc_url=_string_setting(source, "rpc_url", DEFAULT_RPC_URL),
        id_gateway=normalize_address(
            _string_setting(source, "id_gateway", DEFAULT_ID_GATEWAY), "id_gateway"
        ),
        key_gateway=normalize_address(
            _string_setting(source, "key_gateway", DEFAULT_KEY_GATEWAY), "key_gateway"
        ),
    )


def _first_set(flag: str | None, env_var: str) -> str | None:
    if flag and flag.strip():
        return flag.strip()
    env_value = os.getenv(env_var)
    if env_value and env_value.strip():
        return env_value.strip()
    return None


def resolve_agent_name(flag: str | None, config: CLIConfig) -> str:
    return _first_set(flag, AGENT_NAME_ENV_VAR) or config.agent_name


def resolve_rpc_url(flag: str | None, config: CLIConfig) -> str:
    return _first_set(flag, RPC_URL_ENV_VAR) or config.rpc_url


def resolve_id_gateway(flag: str | None, config: CLIConfig) -> str:
    return normalize_address(_first_set(flag, ID_GATEWAY_ENV_VAR) or config.id_gateway, "id gateway")


def resolve_key_gateway(flag: str | None, config: CLIConfig) -> str:
    return normalize_address(
        _first_set(flag, KEY_GATEWAY_ENV_VAR) or config.key_gateway, "key gateway"
    )
