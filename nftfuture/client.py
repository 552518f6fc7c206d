"""
Sending client for the capsule service.

The client seals the message locally, so the service only ever sees
ciphertext, then hands the envelope to ``POST /request``. The wallet
session is kept between sends and renewed when the network rejects it.
"""

import logging
from typing import Any, Dict, Optional

import requests

from .conditions import DEFAULT_CHAIN, build_time_lock
from .envelope import Envelope, encode
from .keys import Signer
from .network import Ability, KeyNetwork, ResourceAbility, Session
from .session import SessionManager

logger = logging.getLogger(__name__)


class RequestFailed(Exception):
    """Non-2xx answer from the service."""

    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self.body = body
        detail = body.get("error") or body.get("description") if isinstance(body, dict) else body
        super().__init__(f"{status_code}: {detail}")


class TimeCapsuleClient:
    def __init__(
        self,
        base_url: str,
        network: KeyNetwork,
        signer: Signer,
        http: Optional[requests.Session] = None,
        chain: str = DEFAULT_CHAIN,
        timeout: float = 120.0,
        session_ttl_seconds: int = 600
    ):
        self._base_url = base_url.rstrip("/")
        self._network = network
        self._signer = signer
        self._http = http or requests.Session()
        self._chain = chain
        self._timeout = timeout
        self._sessions = SessionManager(
            network,
            signer,
            [ResourceAbility("*", Ability.DECRYPTION)],
            ttl_seconds=session_ttl_seconds,
        )
        self._server_address: Optional[str] = None

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def _json(self, r: requests.Response) -> Dict[str, Any]:
        try:
            body = r.json()
        except ValueError:
            body = r.text
        if r.status_code >= 400:
            raise RequestFailed(r.status_code, body)
        return body

    def server_address(self) -> str:
        """The service wallet, cached after the first call."""
        if self._server_address is None:
            r = self._http.get(f"{self._base_url}/request", timeout=self._timeout)
            self._server_address = self._json(r)["address"]
        return self._server_address

    def seal(self, message: str, unlock_at_ms: int) -> Envelope:
        """Encrypt ``message`` for the service until ``unlock_at_ms``, for everyone after."""
        predicate = build_time_lock(self.server_address(), unlock_at_ms, self._chain)
        return self._network.encrypt(message.encode("utf-8"), predicate)

    def send(self, message: str, unlock_at_ms: int) -> Dict[str, Any]:
        """
        Seal a message and request its capsule.

        Returns:
            The service's ``result`` document

        Raises:
            RequestFailed: If the service answers with an error
            SessionError: If the session is rejected on both attempts
        """
        def attempt(session: Session) -> Dict[str, Any]:
            envelope = self.seal(message, unlock_at_ms)
            r = self._http.post(
                f"{self._base_url}/request",
                json={"message": encode(envelope), "address": session.address, "date": unlock_at_ms},
                timeout=self._timeout,
            )
            return self._json(r)["result"]

        with self._network:
            return self._sessions.run(attempt)

    def read(self, cid: str, token: str) -> Dict[str, Any]:
        r = self._http.get(f"{self._base_url}/read/{cid}/{token}", timeout=self._timeout)
        return self._json(r)
