from __future__ import annotations

import secrets
from typing import Optional

from pydantic import BaseModel, Field


WALLET_SEED_LENGTH = 32


def new_wallet_seed() -> str:
    """Random 32-character wallet seed (hex), the length the agent wallet expects."""
    return secrets.token_hex(WALLET_SEED_LENGTH // 2)


class ProvisioningState(BaseModel):
    """
    Durable provisioning record, persisted as a flat KEY=VALUE file.

    Fields
    - wallet_seed: seed the agent wallet derives its DID from.
    - public_did / verification_key: identity read back from the agent.
    - registered: the ledger accepted `public_did` at least once.
    - provisioned: registration AND TAA acceptance both succeeded. This marker is
      explicit; it is never inferred from the presence of a DID.
    - admin_port / wallet_name / network: settings persisted from the run that
      created the record. They sit between built-in defaults and caller overrides
      when configuration is resolved.

    Only the orchestrator mutates this record; components return values that the
    orchestrator copies in.
    """

    wallet_seed: str = ""
    public_did: str = ""
    verification_key: str = ""
    registered: bool = False
    provisioned: bool = False
    admin_port: Optional[int] = Field(default=None, ge=1, le=65535)
    wallet_name: Optional[str] = None
    network: Optional[str] = None

    @classmethod
    def empty(cls) -> "ProvisioningState":
        return cls()

    def is_provisioned(self) -> bool:
        return self.provisioned and bool(self.public_did) and bool(self.verification_key)

    def is_registered(self, did: str) -> bool:
        return self.registered and bool(did) and self.public_did == did
