"""
Pinata pinning and IPFS gateway access.
"""

import io
import logging
from typing import Any, Dict, Optional

import requests
from PIL import Image

from .obfuscation import DEFAULT_GATEWAY, content_url

logger = logging.getLogger(__name__)

PINATA_API_URL = "https://api.pinata.cloud"


class PinningError(Exception):
    """Raised when a pin or gateway request fails."""


def webp_to_png(data: bytes) -> bytes:
    """Re-encode a WebP image as PNG at full resolution."""
    with Image.open(io.BytesIO(data)) as img:
        out = io.BytesIO()
        img.save(out, format="PNG")
        return out.getvalue()


class PinataClient:
    def __init__(
        self,
        jwt: str,
        http: Optional[requests.Session] = None,
        api_url: str = PINATA_API_URL,
        timeout: float = 30.0
    ):
        self._jwt = jwt
        self._http = http or requests.Session()
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout

    def _auth(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._jwt}"}

    def _check(self, r: requests.Response, what: str) -> Dict[str, Any]:
        if not r.ok:
            raise PinningError(f"Failed to pin {what} to IPFS: {r.status_code} {r.text[:200]}")
        body = r.json()
        if not body.get("IpfsHash"):
            raise PinningError(f"Pinata returned no IpfsHash for {what}")
        return body

    def pin_file(self, data: bytes, filename: str = "file", content_type: str = "application/octet-stream") -> Dict[str, Any]:
        try:
            r = self._http.post(
                f"{self._api_url}/pinning/pinFileToIPFS",
                files={"file": (filename, data, content_type)},
                headers=self._auth(),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise PinningError(f"Failed to pin file to IPFS: {exc}") from exc
        return self._check(r, "file")

    def pin_json(self, content: Dict[str, Any]) -> Dict[str, Any]:
        try:
            r = self._http.post(
                f"{self._api_url}/pinning/pinJSONToIPFS",
                json={"pinataContent": content},
                headers=self._auth(),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise PinningError(f"Failed to pin JSON to IPFS: {exc}") from exc
        return self._check(r, "JSON")

    def pin_url(self, url: str) -> Dict[str, Any]:
        """Download ``url`` and pin it; WebP images are pinned as PNG."""
        try:
            r = self._http.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            raise PinningError(f"Failed to fetch image: {exc}") from exc
        if not r.ok:
            raise PinningError(f"Failed to fetch image: {r.status_code} {r.reason}")

        content_type = r.headers.get("Content-Type", "application/octet-stream")
        data = r.content
        if content_type == "image/webp":
            data = webp_to_png(data)
            content_type = "image/png"
        ext = content_type.split("/")[-1] if content_type.startswith("image/") else "bin"
        return self.pin_file(data, filename=f"image.{ext}", content_type=content_type)


class GatewayClient:
    """Reads pinned content through the public and dedicated gateways."""

    def __init__(
        self,
        http: Optional[requests.Session] = None,
        public_gateway: str = DEFAULT_GATEWAY,
        pinata_gateway: str = "",
        pinata_token: str = "",
        timeout: float = 30.0
    ):
        self._http = http or requests.Session()
        self._public_gateway = public_gateway
        self._pinata_gateway = pinata_gateway.rstrip("/")
        self._pinata_token = pinata_token
        self._timeout = timeout

    def ipfs_url(self, cid: str) -> str:
        return content_url(cid, self._public_gateway)

    def fetch_json(self, url: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a JSON document.

        Returns None unless the response is 2xx with an
        ``application/json`` content type and a JSON object body.
        """
        try:
            r = self._http.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.warning("Gateway fetch failed for %s: %s", url, exc)
            return None
        try:
            content_type = r.headers.get("Content-Type", "").split(";")[0].strip()
            if not r.ok or content_type != "application/json":
                return None
            body = r.json()
        except ValueError:
            logger.warning("Gateway returned malformed JSON for %s", url)
            return None
        finally:
            r.close()
        return body if isinstance(body, dict) else None

    def open_stream(self, path: str) -> requests.Response:
        """
        Open a streaming GET on the dedicated gateway. Caller closes it.

        Raises:
            PinningError: On a transport failure or non-2xx status
        """
        if not self._pinata_gateway:
            raise PinningError("PINATA_GATEWAY is not configured")
        try:
            r = self._http.get(
                f"{self._pinata_gateway}/ipfs/{path}",
                params={"pinataGatewayToken": self._pinata_token},
                stream=True,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise PinningError(f"gateway request failed: {exc}") from exc
        if not r.ok:
            r.close()
            raise PinningError(f"gateway returned {r.status_code}")
        return r
