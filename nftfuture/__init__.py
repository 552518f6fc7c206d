"""
NFT to the Future

Send a message to the future: the message is encrypted under a time lock,
illustrated by a generated image, and minted as an NFT whose public link
reveals the message once the unlock date has passed.

Flow:
    client seals message  ->  POST /request  ->  remote action (prompt, image,
    re-encrypt under the time condition)  ->  pin image, document, metadata
    ->  mint (wallet side)  ->  GET /read/{cid}/{token} after unlock

Usage:
    from nftfuture import TimeCapsuleClient, build_network, get_signer

    signer = get_signer(sender_key)
    client = TimeCapsuleClient("http://localhost:8000", build_network(settings, signer), signer)
    result = client.send("Hello future", unlock_at_ms)
"""

__version__ = "0.1.0"

from .client import RequestFailed, TimeCapsuleClient
from .conditions import (
    AllOf,
    AnyOf,
    ConditionError,
    TimeCondition,
    WalletCondition,
    build_time_lock,
    from_unified,
    narrow_to_time_lock,
    to_unified,
)
from .envelope import Envelope, EnvelopeError, decode, encode
from .keys import PrivateKeySigner, Signer, get_signer
from .network import KeyNetwork, LitKeyNetwork, LocalKeyNetwork, build_network
from .obfuscation import protected_token, protected_url, verify_reference

__all__ = [
    "__version__",
    "RequestFailed",
    "TimeCapsuleClient",
    "AllOf",
    "AnyOf",
    "ConditionError",
    "TimeCondition",
    "WalletCondition",
    "build_time_lock",
    "from_unified",
    "narrow_to_time_lock",
    "to_unified",
    "Envelope",
    "EnvelopeError",
    "decode",
    "encode",
    "PrivateKeySigner",
    "Signer",
    "get_signer",
    "KeyNetwork",
    "LitKeyNetwork",
    "LocalKeyNetwork",
    "build_network",
    "protected_token",
    "protected_url",
    "verify_reference",
]
