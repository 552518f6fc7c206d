"""
Optional Plausible event recording. Disabled when no domain is configured.
"""

import logging
from typing import Mapping, Optional

import requests

logger = logging.getLogger(__name__)

PLAUSIBLE_EVENT_URL = "https://plausible.io/api/event"

# Client headers Plausible uses to attribute the event
_FORWARDED = ("user-agent", "x-forwarded-for", "referer")


def record_event(
    name: str,
    event: str,
    headers: Mapping[str, str],
    domain: str,
    url: str = "",
    http: Optional[requests.Session] = None,
    timeout: float = 5.0
) -> bool:
    """
    Record one event. Failures are logged and reported as False.
    """
    if not domain:
        return False
    forwarded = {k: v for k, v in headers.items() if k.lower() in _FORWARDED}
    forwarded["Content-Type"] = "application/json"
    body = {"name": name, "event": event, "domain": domain, "url": url or f"app://{domain}/{name.lower()}"}
    try:
        r = (http or requests).post(PLAUSIBLE_EVENT_URL, json=body, headers=forwarded, timeout=timeout)
        r.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Analytics event %s/%s not recorded: %s", name, event, exc)
        return False
    return True
