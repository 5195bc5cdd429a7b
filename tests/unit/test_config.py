from __future__ import annotations

import pytest
from pydantic import ValidationError

from provision.config import AgentConfig, _getenv, overrides_from_env, resolve
from state.models import ProvisioningState


def test_defaults_when_nothing_supplied():
    cfg = resolve(None, {})
    assert cfg.admin_port == 8024
    assert cfg.readiness_timeout == 30.0
    assert cfg.read_only_ledger is False
    assert cfg.network == "stagingnet"
    assert cfg.admin_url == "http://localhost:8024"


def test_override_beats_persisted_beats_default():
    persisted = ProvisioningState(admin_port=9000)

    assert resolve(persisted, {}).admin_port == 9000
    assert resolve(persisted, {"admin_port": "7777"}).admin_port == 7777
    assert resolve(None, {"admin_port": "7777"}).admin_port == 7777


def test_persisted_wallet_and_network_are_used():
    persisted = ProvisioningState(wallet_name="issuer", network="buildernet")
    cfg = resolve(persisted, {"network": "mainnet"})
    assert cfg.wallet_name == "issuer"
    assert cfg.network == "mainnet"


def test_invalid_override_falls_back_to_lower_layer():
    persisted = ProvisioningState(admin_port=9000)
    cfg = resolve(persisted, {"admin_port": "not-a-port", "readiness_timeout": "-3"})
    assert cfg.admin_port == 9000
    assert cfg.readiness_timeout == 30.0


def test_unknown_and_empty_overrides_ignored():
    cfg = resolve(None, {"bogus": "1", "admin_api_key": ""})
    assert cfg.admin_api_key == ""


def test_boolean_and_service_list_coercion():
    cfg = resolve(None, {"read_only_ledger": "true", "stack_services": "api, frontend proxy"})
    assert cfg.read_only_ledger is True
    assert cfg.stack_services == ("api", "frontend", "proxy")


def test_overrides_from_env_maps_names_and_skips_empty():
    env = {
        "AGENT_ADMIN_PORT": "8100",
        "AGENT_ADMIN_API_KEY": "secret",
        "LEDGER_NETWORK": "",
        "UNRELATED": "x",
    }
    assert overrides_from_env(env) == {"admin_port": "8100", "admin_api_key": "secret"}


def test_config_is_immutable():
    cfg = AgentConfig()
    with pytest.raises(ValidationError):
        cfg.admin_port = 1  # type: ignore[misc]


def test_agent_environment_carries_seed_and_settings():
    cfg = resolve(None, {"admin_api_key": "k", "read_only_ledger": "1"})
    env = cfg.agent_environment("S" * 32)
    assert env["AGENT_WALLET_SEED"] == "S" * 32
    assert env["AGENT_ADMIN_API_KEY"] == "k"
    assert env["AGENT_ADMIN_PORT"] == "8024"
    assert env["AGENT_READ_ONLY_LEDGER"] == "true"
    assert env["LEDGER_NETWORK"] == "stagingnet"


def test_getenv_treats_empty_as_unset():
    env = {"AGENT_ADMIN_HOST": "", "AGENT_WALLET_NAME": "issuer"}
    assert _getenv(env, "AGENT_ADMIN_HOST", "localhost") == "localhost"
    assert _getenv(env, "AGENT_WALLET_NAME") == "issuer"
    assert _getenv(env, "MISSING") is None
