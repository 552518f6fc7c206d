"""
Key management module for NFT to the Future.

The service holds one EVM wallet. It is the identity the key network sees
when the service decrypts or executes on a sender's behalf, and it signs
token metadata URLs so the NFT contract can verify who assembled them.
"""

import re
import secrets
from abc import ABC, abstractmethod
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys as eth_keys

from .util import mask_sensitive

PRIVATE_KEY_PATTERN = re.compile(r'^(0x)?[a-fA-F0-9]{64}$')


class Signer(ABC):
    """Abstract interface for the service wallet."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed EVM address."""

    @property
    @abstractmethod
    def public_key(self) -> str:
        """Uncompressed secp256k1 public key, ``0x04``-prefixed hex."""

    @property
    @abstractmethod
    def private_key(self) -> str:
        """``0x``-prefixed private key hex, for SDKs that sign themselves."""

    @abstractmethod
    def sign_message(self, text: str) -> str:
        """
        Sign a text message (EIP-191 personal_sign).

        Returns:
            ``0x``-prefixed 65-byte signature hex
        """


class PrivateKeySigner(Signer):
    """Signer backed by a raw private key held in process memory."""

    def __init__(self, private_key: str):
        if not private_key or not PRIVATE_KEY_PATTERN.match(private_key):
            raise ValueError("private key must be 32 bytes of hex")
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        self._key = private_key
        self._account = Account.from_key(private_key)

    def __repr__(self) -> str:
        return f"PrivateKeySigner(address={self.address}, key={mask_sensitive(self._key)})"

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def public_key(self) -> str:
        pk = eth_keys.PrivateKey(bytes.fromhex(self._key[2:]))
        return "0x04" + pk.public_key.to_bytes().hex()

    @property
    def private_key(self) -> str:
        return self._key

    def sign_message(self, text: str) -> str:
        signed = self._account.sign_message(encode_defunct(text=text))
        return "0x" + bytes(signed.signature).hex()


def recover_address(text: str, signature: str) -> str:
    """Recover the signing address of an EIP-191 text signature."""
    return Account.recover_message(encode_defunct(text=text), signature=signature)


def verify_message(text: str, signature: str, address: str) -> bool:
    """
    Verify an EIP-191 signature.

    Args:
        text: The signed text
        signature: Hex signature
        address: Expected signer address

    Returns:
        True if the signature recovers to ``address``, False otherwise
    """
    try:
        return recover_address(text, signature).lower() == address.lower()
    except Exception:
        # malformed hex, bad recovery id, wrong length
        return False


def generate_private_key() -> str:
    """Fresh random private key, ``0x``-prefixed hex."""
    return "0x" + secrets.token_hex(32)


def get_signer(private_key: Optional[str]) -> Signer:
    """
    Factory function for the service signer.

    Raises:
        ValueError: If no key is configured
    """
    if not private_key:
        raise ValueError("API_KEY is required to sign as the service wallet")
    return PrivateKeySigner(private_key)
