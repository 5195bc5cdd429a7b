from __future__ import annotations

from typing import Any, Dict, List

import pytest

from common.ledger import RegistrationError
from common.identity import Identity
from provision import cli
from provision.handler import Phase, ProvisioningOutcome
from state.file_store import FileStateStore
from state.models import ProvisioningState


class _FakeCompose:
    instances: List["_FakeCompose"] = []

    def __init__(self, *_a, **_k) -> None:
        self.started: List[Any] = []
        self.stopped: List[Any] = []
        _FakeCompose.instances.append(self)

    def start(self, services, env) -> None:
        self.started.append((tuple(services), dict(env)))

    def stop(self, services) -> None:
        self.stopped.append(tuple(services))


@pytest.fixture(autouse=True)
def _quiet(monkeypatch: pytest.MonkeyPatch):
    _FakeCompose.instances = []
    monkeypatch.setattr(cli, "configure_logging", lambda **_k: None)
    monkeypatch.setattr(cli, "_install_signal_handlers", lambda _cancel: None)
    monkeypatch.setattr(cli, "ComposeDependencies", _FakeCompose)


def _patch_provision(monkeypatch: pytest.MonkeyPatch, outcome: ProvisioningOutcome) -> Dict[str, Any]:
    seen: Dict[str, Any] = {}

    def fake_provision(config, store, persisted, *, cancel=None):
        seen["config"] = config
        seen["store"] = store
        seen["cancel"] = cancel
        return outcome

    monkeypatch.setattr(cli.handler, "provision", fake_provision)
    return seen


def test_aborted_run_prints_step_and_body_and_exits_non_zero(monkeypatch, tmp_path, capsys):
    err = RegistrationError("Ledger returned statusCode=500", body='{"statusCode": 500}')
    _patch_provision(monkeypatch, ProvisioningOutcome(Phase.ABORTED, failed_phase=Phase.IDENTITY_KNOWN, error=err))

    code = cli.main(["--state-file", str(tmp_path / "st"), "provision"], environ={})

    assert code == 1
    out = capsys.readouterr().err
    assert "ledger-registration" in out
    assert '{"statusCode": 500}' in out
    # stack is not started on failure
    assert all(not c.started for c in _FakeCompose.instances)


def test_success_starts_stack_with_persisted_seed(monkeypatch, tmp_path, capsys):
    store = FileStateStore(tmp_path / "st")
    store.write(ProvisioningState(wallet_seed="z" * 32, public_did="D", verification_key="V",
                                  registered=True, provisioned=True))
    _patch_provision(monkeypatch, ProvisioningOutcome(Phase.SKIPPED, identity=Identity(did="D", verkey="V")))

    code = cli.main(["--state-file", str(store.path)], environ={"AGENT_ADMIN_PORT": "9100"})

    assert code == 0
    assert "already provisioned" in capsys.readouterr().out
    (compose,) = _FakeCompose.instances
    (services, env), = compose.started
    assert services == ("api", "frontend")
    assert env["AGENT_WALLET_SEED"] == "z" * 32
    assert env["AGENT_ADMIN_PORT"] == "9100"


def test_no_stack_flag_and_cli_overrides(monkeypatch, tmp_path):
    seen = _patch_provision(
        monkeypatch, ProvisioningOutcome(Phase.TAA_ACCEPTED, identity=Identity(did="D", verkey="V"))
    )

    code = cli.main(
        ["--state-file", str(tmp_path / "st"), "provision", "--no-stack", "--admin-port", "7777",
         "--timeout", "12", "--network", "buildernet"],
        environ={"AGENT_ADMIN_PORT": "9000"},
    )

    assert code == 0
    assert seen["config"].admin_port == 7777
    assert seen["config"].readiness_timeout == 12.0
    assert seen["config"].network == "buildernet"
    assert seen["cancel"] is not None
    assert _FakeCompose.instances == []


def test_status_masks_seed(tmp_path, capsys):
    store = FileStateStore(tmp_path / "st")
    store.write(ProvisioningState(wallet_seed="abcd" + "x" * 28, public_did="D", verification_key="V",
                                  registered=True))

    assert cli.main(["--state-file", str(store.path), "status"], environ={}) == 0

    out = capsys.readouterr().out
    assert "abcd" + "*" * 28 in out
    assert "x" * 28 not in out
    assert "Registered:       yes" in out
    assert "Provisioned:      no" in out


def test_status_without_state(tmp_path, capsys):
    assert cli.main(["--state-file", str(tmp_path / "none"), "status"], environ={}) == 0
    assert "not provisioned" in capsys.readouterr().out


def test_reset_stops_dependencies_and_deletes_state(tmp_path):
    store = FileStateStore(tmp_path / "st")
    store.write(ProvisioningState(wallet_seed="s" * 32))

    assert cli.main(["--state-file", str(store.path), "reset"], environ={}) == 0

    assert not store.exists()
    (compose,) = _FakeCompose.instances
    assert compose.stopped == [("wallet-db", "agent")]


def test_corrupt_state_file_exits_non_zero(tmp_path, capsys):
    path = tmp_path / "st"
    path.write_text("garbage\n", encoding="utf-8")

    assert cli.main(["--state-file", str(path), "status"], environ={}) == 1
    assert "state-file" in capsys.readouterr().err
