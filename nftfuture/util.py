"""
Shared helpers: canonical JSON, digests, clocks and encodings.

Capsule timestamps travel as Unix milliseconds (the wire ``date`` fields);
access conditions and the key network work in whole Unix seconds.
"""

import base64
import hashlib
import json
import math
import secrets
import time
from email.utils import formatdate
from typing import Any, Union

BytesLike = Union[bytes, str]


def _as_bytes(data: BytesLike) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


def canonicalize(obj: Any) -> bytes:
    """
    Serialize to the canonical JSON form used for hashing and key derivation.

    Keys are sorted, separators carry no whitespace and non-ASCII text is
    kept as UTF-8, so equal condition lists always hash the same.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sha256_hex(data: BytesLike) -> str:
    return hashlib.sha256(_as_bytes(data)).hexdigest()


def sha256_bytes(data: BytesLike) -> bytes:
    return hashlib.sha256(_as_bytes(data)).digest()


def now_epoch() -> int:
    """Wall clock in whole Unix seconds."""
    return int(time.time())


def now_ms() -> int:
    """Wall clock in Unix milliseconds, the unit of capsule dates."""
    return int(time.time() * 1000)


def ms_to_epoch(value_ms: Union[int, float]) -> int:
    """Capsule date to condition time; always rounds down."""
    return int(math.floor(value_ms / 1000))


def b64e(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def b64url_encode(raw: bytes) -> str:
    """URL-safe alphabet with the ``=`` padding stripped."""
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def http_date(value_ms: Union[int, float]) -> str:
    """RFC 1123 form, e.g. 'Tue, 20 Oct 2026 10:00:00 GMT'."""
    return formatdate(value_ms / 1000, usegmt=True)


def generate_nonce(nbytes: int = 16) -> str:
    return secrets.token_hex(nbytes)


def mask_sensitive(value: str, keep: int = 4) -> str:
    """Hide all but the tail of a key or token before it reaches a log line."""
    hidden = max(len(value) - keep, 0)
    if hidden == 0:
        return "*" * len(value)
    return "*" * hidden + value[hidden:]
