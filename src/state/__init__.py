"""
Provisioning state and its flat-file persistence.

The record is serialized as `KEY=VALUE` lines so it stays readable (and
sourceable) by the shell tooling that starts the rest of the stack.
"""

from .models import ProvisioningState

__all__ = ["ProvisioningState"]
