from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional
from uuid import uuid4

from pydantic import ValidationError

from .models import ProvisioningState


logger = logging.getLogger(__name__)

HEADER = "# Agent provisioning state. Delete this file to provision again."

# field name -> file key
FIELD_KEYS: Dict[str, str] = {
    "wallet_seed": "WALLET_SEED",
    "public_did": "PUBLIC_DID",
    "verification_key": "VERIFICATION_KEY",
    "registered": "REGISTERED",
    "provisioned": "PROVISIONED",
    "admin_port": "ADMIN_PORT",
    "wallet_name": "WALLET_NAME",
    "network": "LEDGER_NETWORK",
}
_KEY_FIELDS = {v: k for k, v in FIELD_KEYS.items()}


class StateFileError(ValueError):
    """The state file exists but could not be parsed."""


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_state(text: str) -> ProvisioningState:
    """
    Parse the flat KEY=VALUE format.

    Blank lines and lines starting with `#` are ignored, values may be quoted,
    and unknown keys are skipped so files shared with other tooling still load.
    """
    raw: Dict[str, str] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("export "):
            stripped = stripped[len("export "):].lstrip()
        key, sep, value = stripped.partition("=")
        if not sep:
            raise StateFileError(f"line {lineno}: expected KEY=VALUE")
        key = key.strip()
        field = _KEY_FIELDS.get(key)
        if field is None:
            logger.debug("Ignoring unknown state key %s", key)
            continue
        value = _unquote(value.strip())
        if value == "":
            continue
        raw[field] = value
    try:
        return ProvisioningState.model_validate(raw)
    except ValidationError as exc:
        raise StateFileError(f"invalid state values: {exc}") from exc


def dump_state(state: ProvisioningState) -> str:
    # Deterministic: fixed key order, unset optional settings omitted
    lines = [HEADER]
    for field, key in FIELD_KEYS.items():
        value = getattr(state, field)
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        lines.append(f"{key}={value}")
    return "\n".join(lines) + "\n"


class FileStateStore:
    """
    Local-file persistence for `ProvisioningState`.

    - `read()` returns None when the file does not exist.
    - `write()` replaces the file atomically (temp file + rename) and restricts
      it to the owner, since it holds the wallet seed.
    - The file's presence doubles as the "provisioning attempted" marker; it is
      not a lock.
    """

    def __init__(self, path: os.PathLike[str] | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def read(self) -> Optional[ProvisioningState]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return parse_state(text)
        except StateFileError as exc:
            raise StateFileError(f"{self._path}: {exc}") from exc

    def write(self, state: ProvisioningState) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(f"{self._path.name}.tmp-{uuid4().hex}")
        try:
            tmp.write_text(dump_state(state), encoding="utf-8")
            tmp.chmod(0o600)
            os.replace(tmp, self._path)
        finally:
            tmp.unlink(missing_ok=True)

    def delete(self) -> bool:
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        return True


__all__ = ["FileStateStore", "StateFileError", "parse_state", "dump_state"]
