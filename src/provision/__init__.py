"""
Agent provisioning workflow.

- config: layered configuration (defaults < state file < environment < CLI)
- handler: the provisioning state machine and its entry points
- cli: `agent-provision` command line
"""

__all__ = ["cli", "config", "handler"]
