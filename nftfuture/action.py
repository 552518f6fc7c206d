"""
Remote execution contract.

The generation step runs inside the key network, where the sender's
message can be decrypted without ever reaching the service in clear text.
Its inputs and outputs are a typed, versioned pair:

    ActionRequest(data, config, public_key)  ->  ActionResponse(message, url, error)

``data`` is the sender's envelope, ``config`` the model credentials
encrypted under the same conditions. The response carries the message
re-encrypted under the time condition alone, as ``[ciphertext, hash]``;
readers rebuild the predicate from the unlock date.

The step runs exactly once. Any failure is caught and reported in
``error``; nothing is retried.
"""

import json
import logging
from dataclasses import dataclass
from importlib import resources
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Sequence, Tuple

from .conditions import narrow_to_time_lock, to_unified
from .envelope import Envelope, decode, encode
from .openai_api import IMAGE_TEMPLATE, PROMPT_TEMPLATE, OpenAICredentials, OpenAIGenerator

if TYPE_CHECKING:
    from .network import KeyNetwork, Session

logger = logging.getLogger(__name__)

ACTION_SCHEMA_VERSION = "1"


@dataclass(frozen=True)
class ActionRequest:
    data: Envelope
    config: Envelope
    public_key: str
    version: str = ACTION_SCHEMA_VERSION

    def output_conditions(self) -> list:
        """Conditions the output message is re-wrapped under."""
        return to_unified(narrow_to_time_lock(self.data.predicate()))

    def to_js_params(self) -> Dict[str, Any]:
        """Parameters for the sandbox script."""
        return {
            "schemaVersion": self.version,
            "chain": narrow_to_time_lock(self.data.predicate()).chain,
            "accessControlConditions": self.data.conditions_list(),
            "outputConditions": self.output_conditions(),
            "data": encode(self.data),
            "config": encode(self.config),
            "publicKey": self.public_key,
            "promptTemplate": PROMPT_TEMPLATE,
            "imageTemplate": IMAGE_TEMPLATE,
        }


@dataclass(frozen=True)
class ActionResponse:
    message: Optional[Tuple[str, str]] = None
    url: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.message is not None

    def envelope(self, conditions: Sequence[Any]) -> Envelope:
        """Output message as an envelope under the reader's predicate."""
        return decode(list(self.message or ()), conditions=conditions)

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {"message": list(self.message or ()), "url": self.url}

    @classmethod
    def from_lit_response(cls, raw: Any) -> "ActionResponse":
        """
        Parse the sandbox response.

        The script returns a JSON document; a bare string is its error text.
        """
        if raw is None or raw == "":
            return cls(error="empty response from remote action")
        payload = raw
        if isinstance(raw, str):
            try:
                payload = json.loads(raw)
            except ValueError:
                return cls(error=raw)
        if not isinstance(payload, dict):
            return cls(error=f"unexpected remote action response: {raw!r}")
        if payload.get("error"):
            return cls(error=str(payload["error"]))

        message = payload.get("message")
        if (not isinstance(message, (list, tuple)) or len(message) != 2
                or not all(isinstance(m, str) and m for m in message)):
            return cls(error="remote action response has no message envelope")
        return cls(message=(message[0], message[1]), url=payload.get("url"))


def lit_action_code() -> str:
    """The sandbox script shipped to the Lit network."""
    return resources.files(__package__).joinpath("lit_action.js").read_text(encoding="utf-8")


def run_time_capsule_action(
    request: ActionRequest,
    network: "KeyNetwork",
    session: "Session",
    generator_factory: Optional[Callable[[OpenAICredentials], Any]] = None
) -> ActionResponse:
    """
    In-process rendition of the sandbox script.

    Decrypt message -> decrypt credentials -> prompt -> image ->
    re-encrypt message under the time condition.
    """
    factory = generator_factory or OpenAIGenerator.from_credentials
    try:
        message = network.decrypt(request.data, session).decode("utf-8")
        credentials = OpenAICredentials.from_config(json.loads(network.decrypt(request.config, session)))

        generator = factory(credentials)
        prompt = generator.create_prompt(message)
        url = generator.generate_image(prompt)

        sealed = network.encrypt(message.encode("utf-8"), request.output_conditions())
    except Exception as exc:
        logger.error("Error during execution: %s", exc, exc_info=True)
        return ActionResponse(error=str(exc) or type(exc).__name__)

    return ActionResponse(message=(sealed.ciphertext, sealed.content_hash), url=url)
