from __future__ import annotations

from typing import Optional


class ProvisioningError(RuntimeError):
    """
    Base error for every fatal provisioning step.

    - `step`: short name of the workflow step that failed (used in diagnostics).
    - `body`: raw response body from the remote service, when one was received.
    """

    step = "provisioning"

    def __init__(self, message: str, *, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.body = body


class ProvisioningCancelled(ProvisioningError):
    """A termination signal interrupted the workflow."""

    step = "cancelled"


__all__ = ["ProvisioningError", "ProvisioningCancelled"]
