"""
Farcaster frame and Open Graph preview page for a capsule.
"""

import html
from typing import Any, Dict, Optional
from urllib.parse import quote

from .config import APP_NAME

DEFAULT_DESCRIPTION = (
    "Shipstone Lab's NFT to the Future: a message sealed today, minted as an NFT, "
    "and readable by anyone once its unlock date arrives."
)
BUTTON_LABEL = "Open Capsule"


def _e(value: Any) -> str:
    return html.escape(str(value), quote=True)


def cast_action(base_url: str) -> Dict[str, Any]:
    """Descriptor returned by GET /cast."""
    return {
        "name": APP_NAME,
        "icon": "clock",
        "description": "Send a message to the future.",
        "aboutUrl": base_url,
        "action": {"type": "post"},
    }


def cast_form(base_url: str) -> Dict[str, Any]:
    """Response to a cast action (POST /cast)."""
    return {
        "type": "form",
        "title": APP_NAME,
        "url": f"{base_url}?compose",
    }


def render_frame(
    cid: str,
    token: str,
    base_url: str,
    document: Optional[Dict[str, Any]] = None,
    fallback_image: str = ""
) -> str:
    """
    Render the preview page.

    Image and description come from the pinned document when it
    resolved; every interpolated value is HTML-escaped.
    """
    image = fallback_image
    description = DEFAULT_DESCRIPTION
    if document:
        image = document.get("image") or image
        description = document.get("description") or description

    read_url = f"{base_url}/read/{cid}/{token}"
    post_url = f"{base_url}/frame/{cid}/{token}?initialPath={quote(base_url + '/frame', safe=':/')}"
    domain = base_url.split("://", 1)[-1].split("/", 1)[0]

    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta property="fc:frame" content="vNext" />
    <meta property="fc:frame:image" content="{_e(image)}" />
    <meta property="fc:frame:button:1" content="{_e(BUTTON_LABEL)}" />
    <meta property="fc:frame:post_url" content="{_e(post_url)}" />
    <meta property="fc:frame:button:1:action" content="link" />
    <meta property="fc:frame:button:1:target" content="{_e(read_url)}" />
    <meta property="fc:frame:image:aspect_ratio" content="1:1" />

    <meta property="og:url" content="{_e(read_url)}" />
    <meta property="og:type" content="website" />
    <meta property="og:title" content="{_e(APP_NAME)}" />
    <meta property="og:image" content="{_e(image)}" />
    <meta property="og:description" content="{_e(description)}" />

    <meta name="twitter:card" content="summary_large_image" />
    <meta property="twitter:domain" content="{_e(domain)}" />
    <meta property="twitter:url" content="{_e(read_url)}" />
    <meta name="twitter:title" content="{_e(APP_NAME)}" />
    <meta name="twitter:description" content="{_e(description)}" />
    <meta name="twitter:image" content="{_e(image)}" />
  </head>
</html>"""
