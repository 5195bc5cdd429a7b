from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from common.ledger import DEFAULT_NETWORK, DEFAULT_REGISTRATION_URL
from state.models import ProvisioningState


logger = logging.getLogger(__name__)


# Environment variable names accepted as overrides
ENV_ADMIN_HOST = "AGENT_ADMIN_HOST"
ENV_ADMIN_PORT = "AGENT_ADMIN_PORT"
ENV_ADMIN_API_KEY = "AGENT_ADMIN_API_KEY"
ENV_READINESS_TIMEOUT = "AGENT_READINESS_TIMEOUT"
ENV_READ_ONLY_LEDGER = "AGENT_READ_ONLY_LEDGER"
ENV_WALLET_NAME = "AGENT_WALLET_NAME"
ENV_STATE_FILE = "AGENT_STATE_FILE"
ENV_COMPOSE_FILE = "AGENT_COMPOSE_FILE"
ENV_NETWORK = "LEDGER_NETWORK"
ENV_REGISTRATION_URL = "LEDGER_REGISTRATION_URL"

ENV_FIELDS: Dict[str, str] = {
    ENV_ADMIN_HOST: "admin_host",
    ENV_ADMIN_PORT: "admin_port",
    ENV_ADMIN_API_KEY: "admin_api_key",
    ENV_READINESS_TIMEOUT: "readiness_timeout",
    ENV_READ_ONLY_LEDGER: "read_only_ledger",
    ENV_WALLET_NAME: "wallet_name",
    ENV_STATE_FILE: "state_file",
    ENV_COMPOSE_FILE: "compose_file",
    ENV_NETWORK: "network",
    ENV_REGISTRATION_URL: "registration_url",
}


class AgentConfig(BaseModel):
    """
    Resolved settings for one provisioning run. Immutable once built.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    admin_host: str = "localhost"
    admin_port: int = Field(default=8024, ge=1, le=65535)
    admin_api_key: str = ""
    readiness_timeout: float = Field(default=30.0, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)
    read_only_ledger: bool = False
    wallet_name: str = "agent_wallet"
    network: str = DEFAULT_NETWORK
    registration_url: str = DEFAULT_REGISTRATION_URL
    state_file: str = ".agent_state"
    artifact_dir: str = ".provision"
    compose_file: str = "docker-compose.yml"
    dependency_services: Tuple[str, ...] = ("wallet-db", "agent")
    stack_services: Tuple[str, ...] = ("api", "frontend")

    @field_validator("dependency_services", "stack_services", mode="before")
    @classmethod
    def _split_services(cls, v: Any) -> Any:
        if isinstance(v, str):
            return tuple(s for s in v.replace(",", " ").split() if s)
        return v

    @property
    def admin_url(self) -> str:
        return f"http://{self.admin_host}:{self.admin_port}"

    def agent_environment(self, wallet_seed: str) -> Dict[str, str]:
        """Environment handed to the container collaborator when starting the agent."""
        return {
            "AGENT_WALLET_SEED": wallet_seed,
            "AGENT_WALLET_NAME": self.wallet_name,
            "AGENT_ADMIN_PORT": str(self.admin_port),
            "AGENT_ADMIN_API_KEY": self.admin_api_key,
            "AGENT_READ_ONLY_LEDGER": "true" if self.read_only_ledger else "false",
            "LEDGER_NETWORK": self.network,
        }


def _persisted_layer(persisted: Optional[ProvisioningState]) -> Dict[str, Any]:
    if persisted is None:
        return {}
    layer: Dict[str, Any] = {}
    if persisted.admin_port is not None:
        layer["admin_port"] = persisted.admin_port
    if persisted.wallet_name:
        layer["wallet_name"] = persisted.wallet_name
    if persisted.network:
        layer["network"] = persisted.network
    return layer


def _validated(layers: List[Dict[str, Any]]) -> AgentConfig:
    """
    Merge layers lowest-priority first. A value that fails validation is dropped
    and the key falls back to the next lower layer.
    """
    layers = [dict(layer) for layer in layers]
    while True:
        merged: Dict[str, Any] = {}
        for layer in layers:
            merged.update(layer)
        try:
            return AgentConfig.model_validate(merged)
        except ValidationError as exc:
            bad = {err["loc"][0] for err in exc.errors() if err.get("loc")}
            dropped = False
            # drop the offending value from the highest layer that set it
            for key in bad:
                for layer in reversed(layers):
                    if key in layer:
                        logger.warning("Ignoring invalid %s=%r", key, layer.pop(key))
                        dropped = True
                        break
            if not dropped:
                return AgentConfig()


def resolve(
    persisted: Optional[ProvisioningState] = None,
    overrides: Optional[Mapping[str, str]] = None,
) -> AgentConfig:
    """
    Build the run configuration: built-in defaults < persisted state < overrides.

    Pure over its inputs and never raises; missing or invalid values take the
    next lower layer's value.
    """
    override_layer = {k: v for k, v in (overrides or {}).items() if v not in (None, "")}
    unknown = set(override_layer) - set(AgentConfig.model_fields)
    for key in sorted(unknown):
        logger.debug("Ignoring unknown override %s", key)
        override_layer.pop(key)
    return _validated([_persisted_layer(persisted), override_layer])


def _getenv(environ: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    val = environ.get(name)
    return val if val not in (None, "") else default


def overrides_from_env(environ: Mapping[str, str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for env_name, field in ENV_FIELDS.items():
        val = _getenv(environ, env_name)
        if val is not None:
            out[field] = val
    return out


__all__ = ["AgentConfig", "resolve", "overrides_from_env", "ENV_FIELDS"]
