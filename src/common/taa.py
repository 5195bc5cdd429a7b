from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from .agent_admin import AgentAdminClient, AgentAdminError
from .errors import ProvisioningError


logger = logging.getLogger(__name__)

TAA_PATH = "/ledger/taa"
TAA_ACCEPT_PATH = "/ledger/taa/accept"
TAA_MECHANISM = "at_submission"
ARTIFACT_NAME = "taa_accept.json"


class TaaError(ProvisioningError):
    """Fetching or accepting the ledger's terms of agreement failed."""

    step = "taa"


class TaaPayload(BaseModel):
    mechanism: str = TAA_MECHANISM
    version: str
    text: str


class TaaAcceptor:
    """
    Two-phase acceptance of the ledger's Terms of Agreement through the agent.

    1. `fetch_taa()` reads the current TAA record from the agent and writes the
       acceptance payload to a transient artifact under `artifact_dir`.
    2. `accept_taa(payload)` submits it. The agent answers an accepted TAA with
       an empty JSON object; any other body is a failure. The artifact is removed
       on success and kept on failure for diagnosis.
    """

    def __init__(self, admin: AgentAdminClient, artifact_dir: os.PathLike[str] | str = ".provision") -> None:
        self._admin = admin
        self._artifact_path = Path(artifact_dir) / ARTIFACT_NAME

    @property
    def artifact_path(self) -> Path:
        return self._artifact_path

    def fetch_taa(self) -> TaaPayload:
        try:
            resp = self._admin.get_json(TAA_PATH)
        except AgentAdminError as exc:
            raise TaaError(f"Could not fetch TAA: {exc}") from exc
        if not resp.ok or not isinstance(resp.payload, dict):
            raise TaaError(f"HTTP {resp.status_code} from {TAA_PATH}", body=resp.text)

        result = resp.payload.get("result")
        record = result.get("taa_record") if isinstance(result, dict) else None
        if not isinstance(record, dict):
            raise TaaError("Ledger has no TAA record", body=resp.text)
        version = record.get("version")
        text = record.get("text")
        if not isinstance(version, str) or not isinstance(text, str):
            raise TaaError("TAA record is missing version or text", body=resp.text)

        payload = TaaPayload(version=version, text=text)
        self._write_artifact(payload)
        logger.info("Fetched TAA version %s", version)
        return payload

    def accept_taa(self, payload: TaaPayload) -> None:
        try:
            resp = self._admin.post_json(TAA_ACCEPT_PATH, payload.model_dump())
        except AgentAdminError as exc:
            raise TaaError(f"Could not submit TAA acceptance: {exc}") from exc

        if resp.payload != {}:
            raise TaaError(
                f"TAA acceptance rejected (HTTP {resp.status_code}); artifact kept at {self._artifact_path}",
                body=resp.text,
            )
        self._artifact_path.unlink(missing_ok=True)
        logger.info("Accepted TAA version %s", payload.version)

    def _write_artifact(self, payload: TaaPayload) -> None:
        self._artifact_path.parent.mkdir(parents=True, exist_ok=True)
        with self._artifact_path.open("w", encoding="utf-8") as f:
            json.dump(payload.model_dump(), f, indent=2, sort_keys=True)


def load_artifact(path: Optional[os.PathLike[str] | str]) -> Optional[TaaPayload]:
    """Read a TAA artifact left behind by a failed acceptance, if any."""
    if path is None:
        return None
    p = Path(path)
    if not p.exists():
        return None
    with p.open("r", encoding="utf-8") as f:
        return TaaPayload.model_validate(json.load(f))


__all__ = ["TaaAcceptor", "TaaError", "TaaPayload", "TAA_MECHANISM", "load_artifact"]
