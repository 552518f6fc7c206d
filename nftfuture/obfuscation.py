"""
Protected reference module for NFT to the Future.

Public links never expose the raw IPFS URL of a message document. Instead
they carry the document CID together with a token derived from the
canonical gateway URL, so links cannot be enumerated from CIDs alone:

    token = urlsafe_b64(SHA256(url + salt))   (no padding)

This is an obfuscation, not an authorization boundary. A mismatch is
reported to callers as plain "not found".
"""

import re
from typing import Optional

from .util import b64url_encode, sha256_bytes

DEFAULT_URL_SALT = "-haha"
DEFAULT_GATEWAY = "https://ipfs.io/ipfs/"

CID_PATTERN = re.compile(r'/ipfs/(.*?)($|\?)')


def protected_token(url: str, salt: str = DEFAULT_URL_SALT) -> str:
    """Derive the URL-safe verification token for a content URL."""
    return b64url_encode(sha256_bytes(f"{url}{salt}"))


def extract_cid(url: str) -> Optional[str]:
    """Return the CID following ``/ipfs/`` in a gateway URL, if any."""
    match = CID_PATTERN.search(url)
    if not match or not match.group(1):
        return None
    return match.group(1)


def content_url(cid: str, gateway: str = DEFAULT_GATEWAY) -> str:
    """Canonical resolvable URL for a CID."""
    if not gateway.endswith("/"):
        gateway += "/"
    return f"{gateway}{cid}"


def protected_url(url: str, base_url: str, salt: str = DEFAULT_URL_SALT) -> str:
    """
    Build the public read link for a pinned document.

    Args:
        url: Gateway URL of the pinned document
        base_url: Public base URL of this service
        salt: Obfuscation salt

    Returns:
        ``{base_url}/read/{cid}/{token}``

    Raises:
        ValueError: If the URL does not contain an IPFS CID
    """
    cid = extract_cid(url)
    if cid is None:
        raise ValueError(f"not an IPFS URL: {url}")
    return f"{base_url.rstrip('/')}/read/{cid}/{protected_token(url, salt)}"


def verify_reference(
    cid: str,
    token: str,
    gateway: str = DEFAULT_GATEWAY,
    salt: str = DEFAULT_URL_SALT
) -> bool:
    """
    Check a (cid, token) pair taken from a public link.

    The canonical URL is rebuilt from the CID and the token recomputed;
    nothing is stored.
    """
    if not cid or not token:
        return False
    return protected_token(content_url(cid, gateway), salt) == token
