from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from .agent_admin import AgentAdminClient, AgentAdminError


PUBLIC_DID_PATH = "/wallet/did/public"


class IdentityError(AgentAdminError):
    """The agent's public identity could not be read."""

    step = "identity"


class MissingIdentityError(IdentityError):
    """The agent is healthy but its wallet has no public DID assigned."""


class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    did: str
    verkey: str


def get_public_identity(admin: AgentAdminClient) -> Identity:
    """
    Query the agent for its public DID and verkey.

    A single authenticated request; no retries. A missing or incomplete public
    DID is fatal because assigning one is outside this workflow's control.
    """
    try:
        resp = admin.get_json(PUBLIC_DID_PATH)
    except AgentAdminError as exc:
        raise IdentityError(str(exc)) from exc

    if not resp.ok:
        raise IdentityError(f"HTTP {resp.status_code} from {PUBLIC_DID_PATH}", body=resp.text)
    if not isinstance(resp.payload, dict):
        raise IdentityError(f"Malformed response from {PUBLIC_DID_PATH}", body=resp.text)

    result = resp.payload.get("result")
    if not isinstance(result, dict):
        raise MissingIdentityError("Agent reports no public DID", body=resp.text)
    did = result.get("did")
    verkey = result.get("verkey")
    if not isinstance(did, str) or not did or not isinstance(verkey, str) or not verkey:
        raise MissingIdentityError("Agent public DID or verkey is empty", body=resp.text)
    return Identity(did=did, verkey=verkey)


__all__ = ["Identity", "IdentityError", "MissingIdentityError", "get_public_identity"]
