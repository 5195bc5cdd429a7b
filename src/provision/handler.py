from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Tuple

from common.agent_admin import AgentAdminClient
from common.dependencies import ComposeDependencies, Dependencies
from common.errors import ProvisioningCancelled, ProvisioningError
from common.identity import Identity, get_public_identity
from common.ledger import LedgerRegistrar
from common.readiness import ReadinessProber
from common.taa import TaaAcceptor
from state.file_store import FileStateStore
from state.models import ProvisioningState, new_wallet_seed

from .config import AgentConfig, overrides_from_env, resolve


logger = logging.getLogger(__name__)


class Phase(str, Enum):
    UNPROVISIONED = "unprovisioned"
    DEPENDENCIES_STARTING = "dependencies-starting"
    WAITING_FOR_READINESS = "waiting-for-readiness"
    IDENTITY_KNOWN = "identity-known"
    REGISTERED = "registered"
    TAA_ACCEPTED = "taa-accepted"
    SKIPPED = "skipped"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ProvisioningOutcome:
    """
    Result of one workflow run.

    `phase` is the terminal phase. On ABORTED, `failed_phase` is the phase that
    was being left when the failure happened and `error` is the typed failure.
    """

    phase: Phase
    identity: Optional[Identity] = None
    failed_phase: Optional[Phase] = None
    error: Optional[ProvisioningError] = None

    @property
    def ok(self) -> bool:
        return self.phase in (Phase.TAA_ACCEPTED, Phase.SKIPPED)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    @property
    def failed_step(self) -> Optional[str]:
        return self.error.step if self.error is not None else None


class ProvisioningOrchestrator:
    """
    Drives an agent from unprovisioned to ledger-registered with TAA accepted.

    Phases, strictly sequential:

        UNPROVISIONED -> DEPENDENCIES_STARTING -> WAITING_FOR_READINESS
          -> IDENTITY_KNOWN -> REGISTERED -> TAA_ACCEPTED

    Any failure ends in ABORTED. This class is the only place that decides side
    effects on failure:
    - readiness / identity failure: nothing has been persisted; nothing to undo.
    - registration failure: dependency services are stopped and a state file
      created during this run is deleted, so the next run starts clean.
    - TAA failure: services keep running (the agent is healthy and registered);
      the state records `registered` so a re-run goes straight to the TAA step.
    - cancellation (`cancel`, set by the CLI signal handlers) is checked between
      steps. Before registration nothing has been persisted and nothing is undone;
      after it the state keeps `registered` and the run stops in REGISTERED.

    `provisioned` is written only after both registration and TAA acceptance.
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        store: FileStateStore,
        dependencies: Dependencies,
        prober: ReadinessProber,
        admin: AgentAdminClient,
        registrar: LedgerRegistrar,
        taa: TaaAcceptor,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._deps = dependencies
        self._prober = prober
        self._admin = admin
        self._registrar = registrar
        self._taa = taa
        self._cancel = cancel or threading.Event()
        self.phase = Phase.UNPROVISIONED

    def _check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise ProvisioningCancelled(f"Interrupted during {self.phase.value}")

    def _enter(self, phase: Phase) -> None:
        logger.debug("%s -> %s", self.phase.value, phase.value)
        self.phase = phase

    def _abort(self, error: ProvisioningError, identity: Optional[Identity] = None) -> ProvisioningOutcome:
        failed = self.phase
        self.phase = Phase.ABORTED
        logger.error("Aborted during %s: %s", failed.value, error)
        return ProvisioningOutcome(Phase.ABORTED, identity=identity, failed_phase=failed, error=error)

    def run(self, persisted: Optional[ProvisioningState] = None) -> ProvisioningOutcome:
        if persisted is None:
            persisted = self._store.read()
        if persisted is not None and persisted.is_provisioned():
            logger.info("Agent already provisioned with DID %s; nothing to do", persisted.public_did)
            self.phase = Phase.SKIPPED
            identity = Identity(did=persisted.public_did, verkey=persisted.verification_key)
            return ProvisioningOutcome(Phase.SKIPPED, identity=identity)

        state = persisted.model_copy() if persisted is not None else ProvisioningState.empty()
        created_this_run = persisted is None
        if not state.wallet_seed:
            state.wallet_seed = new_wallet_seed()

        self._enter(Phase.DEPENDENCIES_STARTING)
        self._deps.start(self._config.dependency_services, self._config.agent_environment(state.wallet_seed))

        self._enter(Phase.WAITING_FOR_READINESS)
        try:
            self._prober.wait_until_ready(self._config.admin_url, self._config.readiness_timeout)
            identity = get_public_identity(self._admin)
            self._check_cancelled()
        except ProvisioningError as exc:
            return self._abort(exc)

        self._enter(Phase.IDENTITY_KNOWN)
        already_registered = state.is_registered(identity.did)
        state.public_did = identity.did
        state.verification_key = identity.verkey
        state.registered = already_registered
        state.provisioned = False
        self._remember_settings(state)
        self._store.write(state)

        if already_registered:
            logger.info("DID %s was registered by an earlier run; skipping registration", identity.did)
        else:
            try:
                self._registrar.register(identity.did, identity.verkey, self._config.network)
            except ProvisioningError as exc:
                self._rollback_registration(created_this_run)
                return self._abort(exc, identity)
            state.registered = True
            self._store.write(state)

        self._enter(Phase.REGISTERED)
        try:
            self._check_cancelled()
            payload = self._taa.fetch_taa()
            self._check_cancelled()
            self._taa.accept_taa(payload)
        except ProvisioningError as exc:
            return self._abort(exc, identity)

        self._enter(Phase.TAA_ACCEPTED)
        state.provisioned = True
        self._store.write(state)
        logger.info("Agent provisioned with DID %s", identity.did)
        return ProvisioningOutcome(Phase.TAA_ACCEPTED, identity=identity)

    def _remember_settings(self, state: ProvisioningState) -> None:
        state.admin_port = self._config.admin_port
        state.wallet_name = self._config.wallet_name
        state.network = self._config.network

    def _rollback_registration(self, created_this_run: bool) -> None:
        self._deps.stop(self._config.dependency_services)
        if created_this_run and self._store.delete():
            logger.info("Removed state file %s", self._store.path)


def load_config(
    overrides: Optional[Mapping[str, str]] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Tuple[AgentConfig, FileStateStore, Optional[ProvisioningState]]:
    """
    Read the state file and resolve settings for this run.

    Precedence: defaults < state file < environment < `overrides`.
    """
    env = os.environ if environ is None else environ
    layered = {**overrides_from_env(env), **(overrides or {})}
    store = FileStateStore(layered.get("state_file") or AgentConfig().state_file)
    persisted = store.read()
    return resolve(persisted, layered), store, persisted


def provision(
    config: AgentConfig,
    store: FileStateStore,
    persisted: Optional[ProvisioningState] = None,
    *,
    cancel: Optional[threading.Event] = None,
) -> ProvisioningOutcome:
    with ReadinessProber(poll_interval=config.poll_interval, cancel=cancel) as prober, \
            AgentAdminClient(config.admin_url, config.admin_api_key) as admin, \
            LedgerRegistrar(config.registration_url) as registrar:
        orchestrator = ProvisioningOrchestrator(
            config,
            store=store,
            dependencies=ComposeDependencies(config.compose_file),
            prober=prober,
            cancel=prober.cancel,
            admin=admin,
            registrar=registrar,
            taa=TaaAcceptor(admin, config.artifact_dir),
        )
        return orchestrator.run(persisted)


def run_once(
    overrides: Optional[Mapping[str, str]] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    cancel: Optional[threading.Event] = None,
) -> ProvisioningOutcome:
    config, store, persisted = load_config(overrides, environ=environ)
    return provision(config, store, persisted, cancel=cancel)
