"""
Envelope codec.

An envelope is the (ciphertext, content hash, access conditions) triple
that represents one time-locked message. On the wire it is an ordered
list, used the same way for requests and responses:

    [ciphertext, contentHash, conditions]

Responses from the execution step carry only ``[ciphertext, contentHash]``;
the reader supplies the predicate when decoding.
"""

import copy
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from .conditions import Condition, from_unified
from .util import canonicalize, sha256_hex


class EnvelopeError(ValueError):
    """Raised when a wire value is not a well-formed envelope."""


@dataclass(frozen=True)
class Envelope:
    ciphertext: str
    content_hash: str
    access_control_conditions: Tuple[Any, ...] = ()

    def __post_init__(self):
        if not isinstance(self.access_control_conditions, tuple):
            object.__setattr__(self, "access_control_conditions", tuple(self.access_control_conditions))

    def conditions_list(self) -> List[Any]:
        """Conditions as a fresh list, safe to hand to other code."""
        return copy.deepcopy(list(self.access_control_conditions))

    def predicate(self) -> Optional[Condition]:
        """Parse the conditions into a predicate tree."""
        return from_unified(self.conditions_list())

    def with_conditions(self, conditions: Sequence[Any]) -> "Envelope":
        return Envelope(self.ciphertext, self.content_hash, tuple(copy.deepcopy(list(conditions))))


def encode(envelope: Envelope) -> List[Any]:
    """Envelope to its 3-element wire list."""
    return [envelope.ciphertext, envelope.content_hash, envelope.conditions_list()]


def encode_pair(envelope: Envelope) -> List[str]:
    """Envelope to the 2-element response form (predicate left implicit)."""
    return [envelope.ciphertext, envelope.content_hash]


def decode(raw: Any, conditions: Optional[Sequence[Any]] = None) -> Envelope:
    """
    Decode a wire list into an Envelope.

    Args:
        raw: ``[ciphertext, contentHash, conditions]``, or
            ``[ciphertext, contentHash]`` when ``conditions`` is given
        conditions: Predicate to attach to a 2-element value

    Raises:
        EnvelopeError: If the value is not a well-formed envelope
    """
    if not isinstance(raw, (list, tuple)):
        raise EnvelopeError("envelope must be a list")

    if len(raw) == 3:
        ciphertext, content_hash, acc = raw
    elif len(raw) == 2 and conditions is not None:
        ciphertext, content_hash = raw
        acc = conditions
    else:
        raise EnvelopeError(f"envelope must have 3 elements, got {len(raw)}")

    if not isinstance(ciphertext, str) or not ciphertext:
        raise EnvelopeError("ciphertext must be a non-empty string")
    if not isinstance(content_hash, str) or not content_hash:
        raise EnvelopeError("content hash must be a non-empty string")
    if not isinstance(acc, (list, tuple)):
        raise EnvelopeError("access control conditions must be a list")

    return Envelope(ciphertext, content_hash, tuple(copy.deepcopy(list(acc))))


def access_resource(envelope: Envelope) -> str:
    """
    Resource string that decryption capabilities are scoped to.

    Format: ``{sha256(canonical conditions)}/{contentHash}``
    """
    return f"{sha256_hex(canonicalize(envelope.conditions_list()))}/{envelope.content_hash}"
