"""
Configuration module for NFT to the Future.

Centralizes all configuration with environment variable support,
validation, and caching.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Mapping, Optional

from .util import sha256_hex

# ============================================================
# Defaults
# ============================================================

APP_NAME = "NFT to the Future"
DEFAULT_PUBLIC_BASE_URL = "https://nft-to-the-future.shipstone.com"
DEFAULT_IPFS_GATEWAY = "https://ipfs.io/ipfs/"
DEFAULT_URL_SALT = "-haha"
DEFAULT_CHAIN = "base"
DEFAULT_LIT_NETWORK = "datil-dev"


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the process environment."""

    env: str = "dev"  # dev|stage|prod
    debug: bool = False

    # Service wallet
    api_key: str = field(default="", repr=False)

    # OpenAI
    openai_api_key: str = field(default="", repr=False)
    openai_organization_id: str = ""
    openai_project_id: str = ""

    # Pinata
    pinata_jwt: str = field(default="", repr=False)
    pinata_gateway: str = ""
    pinata_token: str = field(default="", repr=False)

    # Public client configuration
    nft_contract_address: str = ""
    wallet_connect_project_id: str = ""

    # Key network
    key_network: str = "local"  # local|lit
    lit_network: str = DEFAULT_LIT_NETWORK
    local_network_secret: str = field(default="", repr=False)
    chain: str = DEFAULT_CHAIN
    session_ttl_seconds: int = 600

    # Links
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    ipfs_gateway_url: str = DEFAULT_IPFS_GATEWAY
    url_salt: str = DEFAULT_URL_SALT

    # Analytics (empty disables)
    plausible_domain: str = ""

    http_timeout: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        e = os.environ if environ is None else environ
        return cls(
            env=e.get("NFTFUTURE_ENV", "dev"),
            debug=_flag(e.get("NFTFUTURE_DEBUG")),
            api_key=e.get("API_KEY", ""),
            openai_api_key=e.get("OPENAI_API_KEY", ""),
            openai_organization_id=e.get("OPENAI_ORGANIZATION_ID", ""),
            openai_project_id=e.get("OPENAI_PROJECT_ID", ""),
            pinata_jwt=e.get("PINATA_JWT", ""),
            pinata_gateway=e.get("PINATA_GATEWAY", "").rstrip("/"),
            pinata_token=e.get("PINATA_TOKEN", ""),
            nft_contract_address=e.get("NFT_CONTRACT_ADDRESS", ""),
            wallet_connect_project_id=e.get("WALLET_CONNECT_PROJECT_ID", ""),
            key_network=e.get("KEY_NETWORK", "local").lower(),
            lit_network=e.get("LIT_NETWORK", DEFAULT_LIT_NETWORK),
            local_network_secret=e.get("LOCAL_NETWORK_SECRET", ""),
            chain=e.get("CHAIN", DEFAULT_CHAIN),
            session_ttl_seconds=int(e.get("SESSION_TTL_SECONDS", "600")),
            public_base_url=e.get("PUBLIC_BASE_URL", DEFAULT_PUBLIC_BASE_URL).rstrip("/"),
            ipfs_gateway_url=e.get("IPFS_GATEWAY_URL", DEFAULT_IPFS_GATEWAY),
            url_salt=e.get("URL_SALT", DEFAULT_URL_SALT),
            plausible_domain=e.get("PLAUSIBLE_DOMAIN", ""),
            http_timeout=float(e.get("HTTP_TIMEOUT", "30")),
            log_level=e.get("LOG_LEVEL", "INFO"),
            log_json=_flag(e.get("LOG_JSON"), default=True),
        )

    def network_secret(self) -> bytes:
        """
        32-byte master secret for the local key network.

        Falls back to a hash of the service key so a single-key dev setup
        still round-trips across restarts.
        """
        if self.local_network_secret:
            return bytes.fromhex(self.local_network_secret)
        if not self.api_key:
            raise ValueError("LOCAL_NETWORK_SECRET or API_KEY is required for the local key network")
        return bytes.fromhex(sha256_hex(f"nftfuture-local-network:{self.api_key}"))

    def openai_config(self) -> Dict[str, str]:
        """Credentials document handed, encrypted, to the execution step."""
        return {
            "apiKey": self.openai_api_key,
            "orgId": self.openai_organization_id,
            "projectId": self.openai_project_id,
        }

    def public_config(self) -> Dict[str, str]:
        return {
            "appName": APP_NAME,
            "chain": self.chain,
            "contractAddress": self.nft_contract_address,
            "walletConnectProjectId": self.wallet_connect_project_id,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings from the process environment, read once."""
    return Settings.from_env()


# ============================================================
# Validation
# ============================================================

def validate_config(settings: Settings) -> Dict[str, bool]:
    """
    Report which integrations are configured.
    Returns dict of integration -> configured.
    """
    checks = {
        "signer": bool(settings.api_key),
        "openai": bool(settings.openai_api_key),
        "pinata": bool(settings.pinata_jwt),
        "pinata_gateway": bool(settings.pinata_gateway and settings.pinata_token),
        "contract": bool(settings.nft_contract_address),
        "analytics": bool(settings.plausible_domain),
    }
    if settings.key_network == "local":
        checks["local_network_secret"] = bool(settings.local_network_secret or settings.api_key)
    return checks

