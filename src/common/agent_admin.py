from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .errors import ProvisioningError


API_KEY_HEADER = "X-API-Key"


class AgentAdminError(ProvisioningError):
    """The agent's admin API could not be reached."""

    step = "agent-admin"


@dataclass(frozen=True)
class AdminResponse:
    status_code: int
    text: str
    payload: Optional[Any]

    @property
    def ok(self) -> bool:
        return self.status_code == 200


def _parse_json(text: str) -> Optional[Any]:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


class AgentAdminClient:
    """
    Thin client for the agent's admin HTTP API.

    Notes
    - Every request carries the admin API key in the `X-API-Key` header when one
      is configured.
    - Calls are single-shot; nothing is retried here. Callers decide how a
      failed call affects the workflow.
    - Responses are returned raw (status, text, parsed JSON) so callers can apply
      their own success criteria and report the raw body on failure.
    """

    def __init__(
        self,
        admin_url: str,
        api_key: str = "",
        *,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not admin_url:
            raise ValueError("admin_url is required")
        self._admin_url = admin_url.rstrip("/")
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)
        self._headers: Dict[str, str] = {API_KEY_HEADER: api_key} if api_key else {}

    @property
    def admin_url(self) -> str:
        return self._admin_url

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "AgentAdminClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def get_json(self, path: str) -> AdminResponse:
        return self._send("GET", path)

    def post_json(self, path: str, body: Dict[str, Any]) -> AdminResponse:
        return self._send("POST", path, body)

    # --------------- Internal ---------------
    def _send(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> AdminResponse:
        url = f"{self._admin_url}/{path.lstrip('/')}"
        try:
            resp = self._client.request(method, url, json=body, headers=self._headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise AgentAdminError(f"{method} {url} failed: {exc}") from exc
        return AdminResponse(status_code=resp.status_code, text=resp.text, payload=_parse_json(resp.text))


__all__ = ["AgentAdminClient", "AgentAdminError", "AdminResponse", "API_KEY_HEADER"]
