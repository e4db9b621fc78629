"""Command-line interface for maelstrom."""

from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from pathlib import Path
from typing import Sequence

from maelstrom.cli.config import (
    CLIConfig,
    load_cli_config,
    resolve_agent_name,
    resolve_id_gateway,
    resolve_key_gateway,
    resolve_rpc_url,
)
from maelstrom.crypto.keys import generate_custody_recovery_pair
from maelstrom.errors import (
    AlreadyExistsError,
    ChainUnavailableError,
    ConfigError,
    ExpiredRequestError,
    InsufficientFundsError,
    MaelstromError,
    RegistrationInconsistencyError,
    SecretsAccessError,
    SecretsNotFoundError,
    SecretsParseError,
    SecretsValidationError,
    UsageError,
    ValidatorNotFoundError,
    WrongChainError,
)
from maelstrom.gateway import Web3ChainGateway
from maelstrom.orchestrator import (
    ContractAddresses,
    RegistrationOrchestrator,
    StepOutcome,
    StepStatus,
)
from maelstrom.records.schemas import IdentitySecrets
from maelstrom.store import SecretStore

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

_SENSITIVE_FIELDS = (
    "private_key",
    "privateKey",
    "private_key_b64url",
    "secret",
    "mnemonic",
)

_ERROR_PREFIXES: tuple[tuple[type[BaseException], str], ...] = (
    (ConfigError, "config error"),
    (UsageError, "usage error"),
    (AlreadyExistsError, "secrets error"),
    (SecretsNotFoundError, "secrets error"),
    (SecretsParseError, "secrets error"),
    (SecretsValidationError, "secrets error"),
    (SecretsAccessError, "secrets error"),
    (WrongChainError, "chain error"),
    (InsufficientFundsError, "funds error"),
    (ValidatorNotFoundError, "signer error"),
    (ExpiredRequestError, "signer error"),
    (RegistrationInconsistencyError, "inconsistency error"),
    (ChainUnavailableError, "rpc error"),
)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        raise UsageError(f"{self.prog}: {message}")


def _sdk_version() -> str:
    try:
        return pkg_version("maelstrom-agent")
    except PackageNotFoundError:
        return "0.0.0+local"


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", default=None, help="Identity name (default from config)")
    parser.add_argument(
        "--secrets",
        default=None,
        help="Explicit secrets file path (overrides --name lookup)",
    )
    parser.add_argument("--rpc", default=None, help="OP Mainnet RPC URL (default: $OP_RPC_URL)")
    parser.add_argument("--id-gateway", default=None, help="IdGateway address override")
    parser.add_argument("--key-gateway", default=None, help="KeyGateway address override")


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog="maelstrom")
    parser.add_argument(
        "--version",
        action="version",
        version=f"maelstrom {_sdk_version()}",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to CLI config TOML (default: ~/.config/maelstrom/config.toml)",
    )
    parser.add_argument("--verbose", action="store_true", help="Log progress to stderr")

    sub = parser.add_subparsers(dest="command", required=True, parser_class=_ArgumentParser)

    init = sub.add_parser("init", help="Generate custody + recovery keys and store them locally")
    init.add_argument("--name", default=None, help="Identity name (default from config)")
    init.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing secrets file (destroys the previous keys)",
    )
    init.add_argument("--json", action="store_true", help="Print public fields as JSON")

    register = sub.add_parser(
        "register", help="Register an FID and add an ed25519 signer on OP Mainnet"
    )
    _add_target_arguments(register)
    register.add_argument(
        "--no-signer",
        action="store_true",
        help="Register the FID only; skip signer generation and registration",
    )
    register.add_argument(
        "--regenerate-signer",
        action="store_true",
        help="Replace the stored signer keypair before adding it",
    )
    register.add_argument(
        "--extra-storage",
        type=int,
        default=0,
        help="Extra storage units to rent with the FID (default: 0)",
    )

    status = sub.add_parser("status", help="Show on-chain registration state (read-only)")
    _add_target_arguments(status)
    status.add_argument("--json", action="store_true")

    return parser


def _configure_logging(verbose: bool, stderr) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=stderr,
        force=True,
    )


def _sanitize_error_text(value: str) -> str:
    redacted = value
    for field in _SENSITIVE_FIELDS:
        redacted = re.sub(
            rf"(?i)({field}['\"]?\s*[=:]\s*['\"]?)([^,\s'\"]+)",
            r"\1[REDACTED]",
            redacted,
        )
    return redacted


def _print_error(stderr, prefix: str, message: str, *, code: int = EXIT_FAILURE) -> int:
    print(f"{prefix}: {_sanitize_error_text(message)}", file=stderr)
    return code


def _error_prefix(exc: BaseException) -> str:
    for exc_type, prefix in _ERROR_PREFIXES:
        if isinstance(exc, exc_type):
            return prefix
    return "error"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _resolve_secrets_path(args, config: CLIConfig, store: SecretStore) -> Path:
    if getattr(args, "secrets", None):
        return Path(args.secrets).expanduser().resolve()
    return store.path_for(resolve_agent_name(args.name, config))


def _run_init(*, args, config: CLIConfig, stdout) -> int:
    store = SecretStore(root=config.secrets_root)
    name = resolve_agent_name(args.name, config)
    secrets_path = store.path_for(name)

    custody, recovery = generate_custody_recovery_pair()
    secrets = IdentitySecrets(
        name=name,
        created_at=_utc_now_iso(),
        custody=custody,
        recovery=recovery,
    )
    store.create(secrets_path, secrets, overwrite=args.force)

    payload = {
        "name": name,
        "secrets_file": str(secrets_path),
        "custody_address": custody.address,
        "recovery_address": recovery.address,
    }
    if args.json:
        print(json.dumps(payload, sort_keys=True), file=stdout)
        return EXIT_SUCCESS

    print(f"Created Farcaster keys for {name}", file=stdout)
    print("", file=stdout)
    print(f"secrets_file: {payload['secrets_file']}", file=stdout)
    print(f"custody_address: {payload['custody_address']}", file=stdout)
    print(f"recovery_address: {payload['recovery_address']}", file=stdout)
    print("", file=stdout)
    print(
        "Next: fund the custody address on OP Mainnet with a small amount of ETH "
        "to pay for registration, then run `maelstrom register`.",
        file=stdout,
    )
    print("Private keys are stored only in the secrets file and are never printed.", file=stdout)
    return EXIT_SUCCESS


def _build_orchestrator(args, config: CLIConfig, *, on_outcome=None, **options) -> RegistrationOrchestrator:
    store = SecretStore(root=config.secrets_root)
    return RegistrationOrchestrator(
        gateway=Web3ChainGateway(),
        store=store,
        secrets_path=_resolve_secrets_path(args, config, store),
        endpoint=resolve_rpc_url(args.rpc, config),
        contracts=ContractAddresses(
            id_gateway=resolve_id_gateway(args.id_gateway, config),
            key_gateway=resolve_key_gateway(args.key_gateway, config),
        ),
        on_outcome=on_outcome,
        **options,
    )


def _print_outcome(stdout, outcome: StepOutcome) -> None:
    if outcome.status == StepStatus.SUBMITTED:
        print(f"[{outcome.step.value}] tx: {outcome.tx_hash}", file=stdout)
        return
    suffix = f" (tx: {outcome.tx_hash})" if outcome.tx_hash else ""
    print(f"[{outcome.step.value}] {outcome.status.value}: {outcome.detail}{suffix}", file=stdout)


def _run_register(*, args, config: CLIConfig, stdout) -> int:
    if args.no_signer and args.regenerate_signer:
        raise UsageError("cannot use --no-signer together with --regenerate-signer")
    if args.extra_storage < 0:
        raise UsageError("--extra-storage must be >= 0")

    orchestrator = _build_orchestrator(
        args,
        config,
        on_outcome=lambda outcome: _print_outcome(stdout, outcome),
        skip_signer=args.no_signer,
        regenerate_signer=args.regenerate_signer,
        extra_storage=args.extra_storage,
    )
    print("Farcaster onchain registration", file=stdout)
    report = orchestrator.run()

    print("", file=stdout)
    print(f"secrets_file: {report.secrets_path}", file=stdout)
    print(f"custody_address: {report.custody_address}", file=stdout)
    print(f"recovery_address: {report.recovery_address}", file=stdout)
    print(f"fid: {report.fid}", file=stdout)
    print(f"state: {report.state.value}", file=stdout)
    for tx_hash in report.transactions:
        print(f"tx: {tx_hash}", file=stdout)
    return EXIT_SUCCESS


def _run_status(*, args, config: CLIConfig, stdout) -> int:
    report = _build_orchestrator(args, config).inspect()
    payload = {
        "secrets_file": str(report.secrets_path),
        "rpc": report.network.endpoint,
        "chain_id": report.network.chain_id,
        "custody_address": report.custody_address,
        "recovery_address": report.recovery_address,
        "fid": report.fid,
        "state": report.state.value,
    }
    if args.json:
        print(json.dumps(payload, sort_keys=True), file=stdout)
        return EXIT_SUCCESS
    for key in ("secrets_file", "rpc", "chain_id", "custody_address", "recovery_address", "fid", "state"):
        print(f"{key}: {payload[key]}", file=stdout)
    return EXIT_SUCCESS


def main(argv: Sequence[str] | None = None, *, stdout=sys.stdout, stderr=sys.stderr) -> int:
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except UsageError as exc:
        parser.print_usage(stderr)
        return _print_error(stderr, "usage error", str(exc))

    _configure_logging(args.verbose, stderr)

    try:
        config = load_cli_config(args.config)
        if args.command == "init":
            return _run_init(args=args, config=config, stdout=stdout)
        if args.command == "register":
            return _run_register(args=args, config=config, stdout=stdout)
        if args.command == "status":
            return _run_status(args=args, config=config, stdout=stdout)
    except MaelstromError as exc:
        return _print_error(stderr, _error_prefix(exc), str(exc))

    return _print_error(stderr, "usage error", f"unknown command: {args.command}")


if __name__ == "__main__":
    raise SystemExit(main())
