"""
Session acquisition for the key network.

States:

    NO_SESSION --acquire--> AUTHENTICATING --ok--> READY
         ^                        |                  |
         +-------- failure -------+---- invalidate --+

``run`` wraps one unit of work: a rejected session (expired or not
authentic) is dropped and the work retried with a fresh one, up to a
bounded number of attempts. Any other error propagates unchanged.
"""

import logging
from enum import Enum
from typing import Callable, Optional, Sequence, TypeVar

from .keys import Signer
from .logging_config import events
from .network import KeyNetwork, ResourceAbility, Session, SessionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 2


class SessionState(str, Enum):
    NO_SESSION = "NO_SESSION"
    AUTHENTICATING = "AUTHENTICATING"
    READY = "READY"


class SessionManager:
    def __init__(
        self,
        network: KeyNetwork,
        signer: Signer,
        resources: Sequence[ResourceAbility],
        ttl_seconds: int = 600,
        max_attempts: int = MAX_ATTEMPTS
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._network = network
        self._signer = signer
        self._resources = tuple(resources)
        self._ttl_seconds = ttl_seconds
        self._max_attempts = max_attempts
        self._state = SessionState.NO_SESSION
        self._session: Optional[Session] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def acquire(self) -> Session:
        """Return the current session, authenticating a new one if needed."""
        if self._state == SessionState.READY and self._session is not None:
            return self._session

        self._state = SessionState.AUTHENTICATING
        try:
            session = self._network.create_session(self._signer, self._resources, self._ttl_seconds)
        except Exception:
            self._state = SessionState.NO_SESSION
            self._session = None
            raise

        self._session = session
        self._state = SessionState.READY
        logger.debug("Session ready for %s (%d capabilities)", session.address, len(self._resources))
        return session

    def invalidate(self) -> None:
        self._session = None
        self._state = SessionState.NO_SESSION

    def run(self, fn: Callable[[Session], T], attempts: Optional[int] = None) -> T:
        """
        Call ``fn(session)``, re-authenticating on a rejected session.

        Args:
            fn: Work to perform with a session
            attempts: Overrides the manager's attempt bound

        Raises:
            SessionError: If the last attempt is also rejected
        """
        limit = attempts or self._max_attempts
        attempt = 1
        while True:
            session = self.acquire()
            try:
                return fn(session)
            except SessionError as exc:
                self.invalidate()
                if attempt >= limit:
                    raise
                events.session_retry(attempt, str(exc))
                attempt += 1
