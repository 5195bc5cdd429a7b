from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .errors import ProvisioningError


logger = logging.getLogger(__name__)

DEFAULT_REGISTRATION_URL = "https://selfserve.sovrin.org/nym"
DEFAULT_NETWORK = "stagingnet"


class RegistrationError(ProvisioningError):
    """The ledger rejected the registration or could not be reached."""

    step = "ledger-registration"


class LedgerRegistrar:
    """
    Client for the ledger's self-serve DID registration endpoint.

    Notes
    - Success is signalled by `statusCode == 200` embedded in the response JSON.
      The HTTP status alone is not trusted: a transport-level 200 carrying any
      other embedded code is a failure.
    - Single-shot; registering the same DID twice is left to the ledger.
    """

    def __init__(
        self,
        registration_url: str = DEFAULT_REGISTRATION_URL,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not registration_url:
            raise ValueError("registration_url is required")
        self._url = registration_url
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "LedgerRegistrar":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @staticmethod
    def build_request(did: str, verkey: str, network: str) -> Dict[str, Any]:
        return {"network": network, "did": did, "verkey": verkey, "paymentaddr": ""}

    def register(self, did: str, verkey: str, network: str = DEFAULT_NETWORK) -> None:
        body = self.build_request(did, verkey, network)
        logger.info("Registering DID %s on %s", did, network)
        try:
            resp = self._client.post(self._url, json=body)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise RegistrationError(f"Ledger registration endpoint unreachable: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            raise RegistrationError(
                f"Non-JSON response from ledger (HTTP {resp.status_code})", body=resp.text
            ) from exc

        code = payload.get("statusCode") if isinstance(payload, dict) else None
        if not _is_success_code(code):
            raise RegistrationError(
                f"Ledger returned statusCode={code!r} (HTTP {resp.status_code})", body=resp.text
            )
        logger.info("DID %s registered on %s", did, network)


def _is_success_code(code: Any) -> bool:
    if isinstance(code, bool):
        return False
    if isinstance(code, int):
        return code == 200
    if isinstance(code, str):
        return code.strip() == "200"
    return False


__all__ = ["LedgerRegistrar", "RegistrationError", "DEFAULT_REGISTRATION_URL", "DEFAULT_NETWORK"]
