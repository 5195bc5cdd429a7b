from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Dict, List, Mapping, Optional

from common.console import configure_logging, print_failure, print_success
from common.dependencies import ComposeDependencies
from common.taa import ARTIFACT_NAME, load_artifact
from state.file_store import StateFileError

from . import handler


logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-provision",
        description="Provision the agent (ledger registration + TAA) and start the stack.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--state-file", help="Path of the KEY=VALUE provisioning state file")
    # defaults for a bare invocation, which behaves like `provision`
    parser.set_defaults(command="provision", admin_port=None, api_key=None, timeout=None, network=None, no_stack=False)
    sub = parser.add_subparsers(dest="command")

    prov = sub.add_parser("provision", help="Run the provisioning workflow (default)")
    prov.add_argument("--admin-port", help="Agent admin API port")
    prov.add_argument("--api-key", help="Agent admin API key")
    prov.add_argument("--timeout", help="Seconds to wait for the agent to become ready")
    prov.add_argument("--network", help="Ledger network name (default: stagingnet)")
    prov.add_argument("--no-stack", action="store_true", help="Do not start the remaining stack services")

    sub.add_parser("status", help="Show the persisted provisioning state")
    sub.add_parser("reset", help="Stop the agent dependencies and delete the state file")
    return parser


def _cli_overrides(args: argparse.Namespace) -> Dict[str, str]:
    pairs = {
        "admin_port": args.admin_port,
        "admin_api_key": args.api_key,
        "readiness_timeout": args.timeout,
        "network": args.network,
        "state_file": args.state_file,
    }
    return {k: v for k, v in pairs.items() if v not in (None, "")}


def _install_signal_handlers(cancel: threading.Event) -> None:
    def _on_signal(signum, _frame) -> None:
        logger.warning("Received signal %s; cancelling", signum)
        cancel.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)


def cmd_provision(args: argparse.Namespace, environ: Mapping[str, str]) -> int:
    config, store, persisted = handler.load_config(_cli_overrides(args), environ=environ)
    cancel = threading.Event()
    _install_signal_handlers(cancel)

    outcome = handler.provision(config, store, persisted, cancel=cancel)
    if not outcome.ok:
        err = outcome.error
        print_failure(outcome.failed_step or "unknown", str(err), err.body if err is not None else None)
        return outcome.exit_code

    did = outcome.identity.did if outcome.identity is not None else "?"
    if outcome.phase is handler.Phase.SKIPPED:
        print_success(f"Agent already provisioned (DID {did})")
    else:
        print_success(f"Agent provisioned (DID {did})")

    if not args.no_stack and not cancel.is_set():
        state = store.read()
        seed = state.wallet_seed if state is not None else ""
        ComposeDependencies(config.compose_file).start(config.stack_services, config.agent_environment(seed))
    return outcome.exit_code


def cmd_status(args: argparse.Namespace, environ: Mapping[str, str]) -> int:
    config, store, state = handler.load_config(_cli_overrides(args), environ=environ)
    if state is None:
        print(f"No state file at {store.path}; agent not provisioned")
        return 0
    seed = state.wallet_seed
    masked = f"{seed[:4]}{'*' * (len(seed) - 4)}" if len(seed) > 4 else "(hidden)"
    print(f"State file:       {store.path}")
    print(f"Wallet seed:      {masked}")
    print(f"Public DID:       {state.public_did or '(none)'}")
    print(f"Verification key: {state.verification_key or '(none)'}")
    print(f"Registered:       {'yes' if state.registered else 'no'}")
    print(f"Provisioned:      {'yes' if state.is_provisioned() else 'no'}")
    artifact = os.path.join(config.artifact_dir, ARTIFACT_NAME)
    pending = load_artifact(artifact)
    if pending is not None:
        print(f"Pending TAA:      version {pending.version} ({artifact})")
    return 0


def cmd_reset(args: argparse.Namespace, environ: Mapping[str, str]) -> int:
    config, store, _ = handler.load_config(_cli_overrides(args), environ=environ)
    ComposeDependencies(config.compose_file).stop(config.dependency_services)
    if store.delete():
        print(f"Removed {store.path}")
    else:
        print(f"No state file at {store.path}")
    return 0


COMMANDS = {
    "provision": cmd_provision,
    "status": cmd_status,
    "reset": cmd_reset,
}


def main(argv: Optional[List[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)
    env = os.environ if environ is None else environ
    try:
        return COMMANDS[args.command](args, env)
    except (StateFileError, OSError) as exc:
        print_failure("state-file", str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
