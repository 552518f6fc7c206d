"""
Key network module for NFT to the Future.

The key network holds the keys for time-locked envelopes, evaluates their
access conditions, and runs the remote generation step. Two backends:

- LocalKeyNetwork: self-contained network for development and tests.
  Envelopes are sealed with a key bound to their own access conditions,
  and conditions are evaluated against an injectable chain clock.
- LitKeyNetwork: Lit Protocol nodes through lit-python-sdk.

Network objects are request-scoped: construct, ``with network:`` to
connect, and let the context manager disconnect.
"""

import base64
import binascii
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence, Tuple, Union

import nacl.hash
from nacl.encoding import RawEncoder
from nacl.exceptions import CryptoError
from nacl.secret import SecretBox

from .action import ActionRequest, ActionResponse, lit_action_code, run_time_capsule_action
from .conditions import Condition, ConditionError, from_unified, to_unified
from .config import Settings
from .envelope import Envelope, access_resource
from .keys import Signer, verify_message
from .util import b64e, canonicalize, generate_nonce, now_epoch, sha256_hex


Clock = Callable[[], int]
Conditions = Union[Condition, Sequence[Any]]


class NetworkError(Exception):
    """Base class for key network failures."""


class SessionError(NetworkError):
    """The session credential was rejected; a fresh session may succeed."""


class SessionExpired(SessionError):
    pass


class SessionInvalid(SessionError):
    pass


class AccessDenied(NetworkError):
    """Access conditions not satisfied, or capability not granted."""


class DecryptionError(NetworkError):
    """Ciphertext could not be opened under its stated conditions."""


class Ability(str, Enum):
    DECRYPTION = "access-control-condition-decryption"
    EXECUTION = "lit-action-execution"


_LIT_RESOURCE_PREFIX = {
    Ability.DECRYPTION: "lit-accesscontrolcondition",
    Ability.EXECUTION: "lit-litaction",
}


@dataclass(frozen=True)
class ResourceAbility:
    """Capability requested for a session; ``*`` matches any resource."""
    resource: str
    ability: Ability

    def covers(self, resource: str, ability: Ability) -> bool:
        return self.ability == ability and self.resource in ("*", resource)

    def to_lit(self) -> dict:
        return {
            "resource": {"resource": self.resource, "resourcePrefix": _LIT_RESOURCE_PREFIX[self.ability]},
            "ability": self.ability.value,
        }


@dataclass(frozen=True)
class Session:
    """
    Signed, time-limited capability grant for one wallet.

    ``raw`` carries a backend's own session object (e.g. Lit session
    signatures) when the backend signs sessions itself.
    """
    address: str
    resources: Tuple[ResourceAbility, ...]
    issued_at: int
    expires_at: int
    nonce: str = ""
    signature: str = ""
    raw: Any = None

    def payload_text(self) -> str:
        lines = [
            "NFT to the Future key network session",
            f"Address: {self.address}",
            f"Issued At: {self.issued_at}",
            f"Expiration Time: {self.expires_at}",
            f"Nonce: {self.nonce}",
            "Resources:",
        ]
        lines.extend(f"- {r.ability.value}: {r.resource}" for r in self.resources)
        return "\n".join(lines)

    def allows(self, resource: str, ability: Ability) -> bool:
        return any(r.covers(resource, ability) for r in self.resources)


def _conditions_list(conditions: Conditions) -> list:
    if isinstance(conditions, Condition):
        return to_unified(conditions)
    return list(conditions)


class KeyNetwork(ABC):
    """Abstract interface for the decentralized key network."""

    def __enter__(self) -> "KeyNetwork":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    @abstractmethod
    def connect(self) -> None:
        pass

    @abstractmethod
    def disconnect(self) -> None:
        pass

    @abstractmethod
    def encrypt(self, data: bytes, conditions: Conditions) -> Envelope:
        """Encrypt ``data`` so that only requesters satisfying ``conditions`` can read it."""

    @abstractmethod
    def decrypt(self, envelope: Envelope, session: Session) -> bytes:
        """
        Decrypt an envelope as the session's wallet.

        Raises:
            SessionError: If the session is expired or not authentic
            AccessDenied: If conditions or capabilities do not allow it
            DecryptionError: If the ciphertext does not open
        """

    @abstractmethod
    def create_session(self, signer: Signer, resources: Sequence[ResourceAbility],
                       ttl_seconds: int = 600) -> Session:
        pass

    @abstractmethod
    def execute_action(self, request: ActionRequest, session: Session) -> ActionResponse:
        """Run the generation step once inside the network."""

    def decryption_resource(self, envelope: Envelope) -> str:
        """Resource a session must be granted to decrypt ``envelope``."""
        return access_resource(envelope)


class LocalKeyNetwork(KeyNetwork):
    """
    In-process key network.

    Each envelope's key is ``blake2b(conditions | content_hash, key=secret)``,
    so a ciphertext cannot be opened under conditions other than the ones it
    was sealed with.
    """

    def __init__(
        self,
        secret: bytes,
        clock: Optional[Clock] = None,
        action_runner: Optional[Callable[..., ActionResponse]] = None
    ):
        if len(secret) < 16:
            raise ValueError("local network secret must be at least 16 bytes")
        self._secret = secret
        self._clock = clock or now_epoch
        self._action_runner = action_runner or run_time_capsule_action
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        self._connected = True

    def disconnect(self) -> None:
        self._connected = False

    def _require_connected(self) -> None:
        if not self._connected:
            raise NetworkError("key network is not connected")

    def _envelope_key(self, conditions: list, content_hash: str) -> bytes:
        return nacl.hash.blake2b(
            canonicalize(conditions) + b"|" + content_hash.encode("utf-8"),
            key=self._secret,
            digest_size=SecretBox.KEY_SIZE,
            encoder=RawEncoder,
        )

    def encrypt(self, data: bytes, conditions: Conditions) -> Envelope:
        self._require_connected()
        acc = _conditions_list(conditions)
        if from_unified(acc) is None:
            raise ConditionError("refusing to encrypt without access conditions")

        content_hash = sha256_hex(data)
        sealed = SecretBox(self._envelope_key(acc, content_hash)).encrypt(data)
        return Envelope(b64e(bytes(sealed)), content_hash, tuple(acc))

    def create_session(self, signer: Signer, resources: Sequence[ResourceAbility],
                       ttl_seconds: int = 600) -> Session:
        self._require_connected()
        now = self._clock()
        session = Session(
            address=signer.address,
            resources=tuple(resources),
            issued_at=now,
            expires_at=now + int(ttl_seconds),
            nonce=generate_nonce(),
        )
        return replace(session, signature=signer.sign_message(session.payload_text()))

    def _authenticate(self, session: Optional[Session]) -> None:
        if session is None or not session.signature:
            raise SessionInvalid("missing session signature")
        if not verify_message(session.payload_text(), session.signature, session.address):
            raise SessionInvalid("session signature does not match its address")
        if session.expires_at <= self._clock():
            raise SessionExpired("session expired")

    def decrypt(self, envelope: Envelope, session: Session) -> bytes:
        self._require_connected()
        self._authenticate(session)

        if not session.allows(self.decryption_resource(envelope), Ability.DECRYPTION):
            raise AccessDenied("session is not granted decryption of this envelope")

        acc = envelope.conditions_list()
        try:
            predicate = from_unified(acc)
        except ConditionError as exc:
            raise DecryptionError(f"malformed access conditions: {exc}") from exc
        if predicate is None or not predicate.evaluate(session.address, self._clock()):
            raise AccessDenied("access conditions not satisfied")

        box = SecretBox(self._envelope_key(acc, envelope.content_hash))
        try:
            data = box.decrypt(base64.b64decode(envelope.ciphertext, validate=True))
        except (CryptoError, binascii.Error, ValueError) as exc:
            raise DecryptionError("ciphertext does not open under its conditions") from exc

        if sha256_hex(data) != envelope.content_hash:
            raise DecryptionError("content hash mismatch")
        return data

    def execute_action(self, request: ActionRequest, session: Session) -> ActionResponse:
        self._require_connected()
        self._authenticate(session)
        if not session.allows("*", Ability.EXECUTION):
            raise AccessDenied("session is not granted action execution")
        return self._action_runner(request, self, session)


class LitKeyNetwork(KeyNetwork):
    """
    Lit Protocol key network via lit-python-sdk.

    The SDK signs session requests with the service wallet's key.
    """

    def __init__(self, signer: Signer, lit_network: str = "datil-dev",
                 chain: str = "base", debug: bool = False):
        self._signer = signer
        self._lit_network = lit_network
        self._chain = chain
        self._debug = debug
        self._client = None

    def _get_client(self):
        """Lazy-load the SDK client."""
        if self._client is None:
            try:
                from lit_python_sdk import connect
            except ImportError as e:
                raise RuntimeError(
                    "lit-python-sdk required for the Lit key network. "
                    "Install with: pip install 'nft-to-the-future[lit]'"
                ) from e
            client = connect()
            client.set_auth_token(self._signer.private_key)
            client.new(lit_network=self._lit_network, debug=self._debug)
            self._client = client
        return self._client

    def _call(self, operation: str, fn: Callable[..., Any], **kwargs) -> Any:
        try:
            result = fn(**kwargs)
        except Exception as exc:
            raise self._map_error(operation, str(exc)) from exc
        if isinstance(result, dict) and result.get("error"):
            raise self._map_error(operation, str(result["error"]))
        return result

    @staticmethod
    def _map_error(operation: str, message: str) -> NetworkError:
        lowered = message.lower()
        if "expired" in lowered or "session" in lowered:
            return SessionExpired(f"{operation}: {message}")
        if "access control" in lowered or "not authorized" in lowered:
            return AccessDenied(f"{operation}: {message}")
        return NetworkError(f"{operation}: {message}")

    def connect(self) -> None:
        client = self._get_client()
        self._call("connect", client.connect)

    def disconnect(self) -> None:
        if self._client is not None:
            self._call("disconnect", self._client.disconnect)

    def encrypt(self, data: bytes, conditions: Conditions) -> Envelope:
        acc = _conditions_list(conditions)
        result = self._call(
            "encrypt",
            self._get_client().encrypt_string,
            data_to_encrypt=data.decode("utf-8"),
            access_control_conditions=acc,
        )
        return Envelope(result["ciphertext"], result["dataToEncryptHash"], tuple(acc))

    def create_session(self, signer: Signer, resources: Sequence[ResourceAbility],
                       ttl_seconds: int = 600) -> Session:
        now = now_epoch()
        expiration = datetime.now(timezone.utc) + timedelta(seconds=int(ttl_seconds))
        result = self._call(
            "session",
            self._get_client().get_session_sigs,
            chain=self._chain,
            expiration=expiration.isoformat().replace("+00:00", "Z"),
            resource_ability_requests=[r.to_lit() for r in resources],
        )
        return Session(
            address=signer.address,
            resources=tuple(resources),
            issued_at=now,
            expires_at=now + int(ttl_seconds),
            raw=result.get("sessionSigs", result),
        )

    def decrypt(self, envelope: Envelope, session: Session) -> bytes:
        result = self._call(
            "decrypt",
            self._get_client().decrypt_string,
            ciphertext=envelope.ciphertext,
            data_to_encrypt_hash=envelope.content_hash,
            chain=self._chain,
            access_control_conditions=envelope.conditions_list(),
            session_sigs=session.raw,
        )
        data = result["decryptedData"]
        return data.encode("utf-8") if isinstance(data, str) else bytes(data)

    def execute_action(self, request: ActionRequest, session: Session) -> ActionResponse:
        result = self._call(
            "execute",
            self._get_client().execute_js,
            code=lit_action_code(),
            js_params=request.to_js_params(),
            session_sigs=session.raw,
        )
        return ActionResponse.from_lit_response(result.get("response"))

    def decryption_resource(self, envelope: Envelope) -> str:
        # Lit hashes conditions with its own canonical form
        return "*"


def build_network(
    settings: Settings,
    signer: Signer,
    clock: Optional[Clock] = None,
    action_runner: Optional[Callable[..., ActionResponse]] = None
) -> KeyNetwork:
    """
    Factory function for the configured key network backend.

    Raises:
        ValueError: For an unknown backend name
    """
    if settings.key_network == "lit":
        return LitKeyNetwork(signer, lit_network=settings.lit_network,
                             chain=settings.chain, debug=settings.debug)
    if settings.key_network == "local":
        return LocalKeyNetwork(settings.network_secret(), clock=clock, action_runner=action_runner)
    raise ValueError(f"unknown KEY_NETWORK: {settings.key_network!r}")


def session_resources(network: KeyNetwork, envelopes: Iterable[Envelope],
                      execute: bool = False) -> Tuple[ResourceAbility, ...]:
    """Capabilities to decrypt ``envelopes`` and, optionally, run the action."""
    out = []
    if execute:
        out.append(ResourceAbility("*", Ability.EXECUTION))
    for env in envelopes:
        ra = ResourceAbility(network.decryption_resource(env), Ability.DECRYPTION)
        if ra not in out:
            out.append(ra)
    return tuple(out)
