"""
Token documents: the pinned message document and the token metadata.
"""

from typing import Any, Dict, List, Optional, Sequence

from .util import http_date

TOKEN_NAME = "NFT to Future!"
CREATOR = {"name": "Shipstone Labs", "profile_url": "https://shipstone.com"}
BACKGROUND_COLOR = "FFFFFF"


def describe(date_ms: int) -> str:
    return ("Shipstone Lab's NTF to Future: NFT containing a message readable in the future on "
            f"{http_date(date_ms)}")


def _seconds(value_ms: int) -> int:
    return int(round(value_ms / 1000))


def build_message_document(
    message: Sequence[str],
    date_ms: int,
    send_date_ms: int,
    image_url: Optional[str]
) -> Dict[str, Any]:
    """Document readers fetch through the protected URL."""
    doc: Dict[str, Any] = {
        "description": describe(date_ms),
        "message": list(message),
        "date": date_ms,
        "sendDate": send_date_ms,
    }
    if image_url:
        doc["image"] = image_url
    return doc


def build_token_metadata(
    message: Sequence[str],
    date_ms: int,
    send_date_ms: int,
    image_url: Optional[str],
    external_url: Optional[str]
) -> Dict[str, Any]:
    """ERC-1155 style metadata for the minted token."""
    attributes: List[Dict[str, Any]] = [
        {"trait_type": "Date Received", "display_type": "date", "value": _seconds(date_ms)},
        {"trait_type": "Date Sent", "display_type": "date", "value": _seconds(send_date_ms)},
    ]
    return {
        "name": TOKEN_NAME,
        "description": describe(date_ms),
        "image": image_url,
        "decimals": 0,
        "attributes": attributes,
        "properties": {
            "creator": dict(CREATOR),
            "message": list(message),
            "date": date_ms,
        },
        "creator": dict(CREATOR),
        "external_url": external_url,
        "background_color": BACKGROUND_COLOR,
    }


def encode_token_data(json_url: str) -> str:
    """Mint argument: ``0x`` + hex of the UTF-8 metadata URL."""
    return "0x" + json_url.encode("utf-8").hex()
