"""Atomic, owner-only persistence of identity secrets.

One JSON file per identity. Writes go to a temp file in the target
directory and are renamed over the target, so readers never see a partial
file. There is no locking: at most one process may write a given path at a
time.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from maelstrom.errors import (
    AlreadyExistsError,
    SecretsAccessError,
    SecretsNotFoundError,
    SecretsParseError,
    SecretsValidationError,
    UsageError,
)
from maelstrom.records.schemas import SECRETS_KIND, IdentitySecrets

logger = logging.getLogger("maelstrom.store")

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")


def default_secrets_dir() -> Path:
    return Path.home() / ".config" / "maelstrom" / "farcaster"


def validate_identity_name(name: str) -> str:
    normalized = (name or "").strip()
    if not normalized:
        raise UsageError("identity name must not be empty")
    if not _NAME_PATTERN.match(normalized):
        raise UsageError(
            "identity name may only contain letters, digits, '.', '_' and '-' "
            "(max 64 characters)"
        )
    return normalized


def _chmod_owner_only(path: Path, mode: int = 0o600) -> None:
    if os.name != "posix":
        return
    path.chmod(mode)


def _ensure_private_dir(path: Path) -> None:
    created = not path.exists()
    path.mkdir(parents=True, exist_ok=True, mode=0o700)
    if created:
        _chmod_owner_only(path, 0o700)
    elif os.name == "posix" and path.stat().st_mode & 0o077:
        logger.warning(
            "secrets directory %s is accessible by other users; run `chmod 700 %s`", path, path
        )


def _serialize(secrets: IdentitySecrets) -> str:
    payload = secrets.model_dump(mode="json", exclude_none=True)
    return json.dumps(payload, indent=2) + "\n"


def _atomic_write(path: Path, data: str) -> None:
    _ensure_private_dir(path.parent)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        _chmod_owner_only(tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    _chmod_owner_only(path)


@dataclass(frozen=True)
class SecretStore:
    """Reads and writes identity secrets files under ``root``."""

    root: Path

    def path_for(self, name: str) -> Path:
        return Path(self.root) / f"{validate_identity_name(name)}.json"

    def create(self, path: str | Path, secrets: IdentitySecrets, *, overwrite: bool = False) -> Path:
        target = Path(path)
        if target.exists() and not overwrite:
            raise AlreadyExistsError(
                f"refusing to overwrite existing secrets file: {target} (use --force)"
            )
        try:
            _atomic_write(target, _serialize(secrets))
        except OSError as exc:
            raise SecretsAccessError(f"failed to write secrets file {target}: {exc}") from exc
        logger.info("wrote secrets file %s", target)
        return target

    def load(self, path: str | Path) -> IdentitySecrets:
        source = Path(path)
        try:
            raw = source.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise SecretsNotFoundError(f"secrets file not found: {source}") from exc
        except UnicodeDecodeError as exc:
            raise SecretsParseError(f"secrets file is not UTF-8 text: {source}") from exc
        except OSError as exc:
            raise SecretsAccessError(f"failed to read secrets file {source}: {exc}") from exc

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SecretsParseError(f"failed to parse JSON at {source}") from exc
        if not isinstance(payload, dict):
            raise SecretsValidationError(f"secrets file is not an object: {source}")

        kind = payload.get("kind")
        if kind != SECRETS_KIND:
            raise SecretsValidationError(f"unsupported secrets kind in {source}: {kind!r}")

        try:
            return IdentitySecrets.model_validate(payload)
        except ValidationError as exc:
            # Field locations only; pydantic's input echo could carry key material.
            fields = sorted({".".join(str(p) for p in err["loc"]) or "<root>" for err in exc.errors()})
            raise SecretsValidationError(
                f"invalid secrets file {source}: bad or missing fields: {', '.join(fields)}"
            ) from None

    def update(
        self,
        path: str | Path,
        mutation: Callable[[IdentitySecrets], IdentitySecrets],
    ) -> IdentitySecrets:
        target = Path(path)
        current = self.load(target)
        updated = mutation(current)
        try:
            _atomic_write(target, _serialize(updated))
        except OSError as exc:
            raise SecretsAccessError(f"failed to write secrets file {target}: {exc}") from exc
        logger.debug("updated secrets file %s", target)
        return updated
