"""
Common building blocks for agent provisioning.

Modules:
- agent_admin: authenticated client for the agent admin API
- readiness: fixed-interval health polling
- identity: public DID/verkey extraction
- ledger: self-serve ledger DID registration
- taa: ledger Terms of Agreement fetch and acceptance
- dependencies: docker compose lifecycle collaborator
- console: colored logging and diagnostics
"""

__all__ = [
    "agent_admin",
    "console",
    "dependencies",
    "errors",
    "identity",
    "ledger",
    "readiness",
    "taa",
]
