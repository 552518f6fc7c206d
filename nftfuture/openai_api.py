"""
Text and image generation through the OpenAI REST API.

Two calls, both made once per capsule: a chat completion that turns the
message into an image prompt, and an image generation from that prompt.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

OPENAI_API_URL = "https://api.openai.com/v1"
TEXT_MODEL = "gpt-4o-mini"
IMAGE_MODEL = "dall-e-3"

PROMPT_TEMPLATE = (
    "Create a good looking picture by taking ideas of the following message `{message}`. "
    "Summarize and simplify the text such that it would become a good prompt for image generation. "
    "Generate a good looking dark fantasy image. Please return only the prompt text for the image "
    "generation. Please describe any well-known characters with your own words for dall-e-3 to use "
    "and make sure it doesn't get rejected by the dall-e-safety system."
)

IMAGE_TEMPLATE = (
    "Generate an image with the following description: `{prompt}` and make sure it looks like the "
    "scene set in the future. Make sure the image is not too obvious to keep normal humans guessing "
    "as what to the image means."
)


class GenerationError(Exception):
    """Raised when a generation call fails or returns an unexpected body."""


@dataclass(frozen=True)
class OpenAICredentials:
    api_key: str
    org_id: str = ""
    project_id: str = ""

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "OpenAICredentials":
        """Read the ``{apiKey, orgId, projectId}`` document."""
        api_key = config.get("apiKey")
        if not api_key:
            raise GenerationError("credentials document has no apiKey")
        return cls(api_key=api_key, org_id=config.get("orgId") or "", project_id=config.get("projectId") or "")

    def to_config(self) -> Dict[str, str]:
        return {"apiKey": self.api_key, "orgId": self.org_id, "projectId": self.project_id}


class OpenAIGenerator:
    """Prompt and image generation for one set of credentials."""

    def __init__(
        self,
        credentials: OpenAICredentials,
        http: Optional[requests.Session] = None,
        base_url: str = OPENAI_API_URL,
        timeout: float = 120.0
    ):
        self._credentials = credentials
        self._http = http or requests.Session()
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @classmethod
    def from_credentials(cls, credentials: OpenAICredentials) -> "OpenAIGenerator":
        return cls(credentials)

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._credentials.api_key}",
            "Content-Type": "application/json",
        }
        if self._credentials.org_id:
            headers["OpenAI-Organization"] = self._credentials.org_id
        if self._credentials.project_id:
            headers["OpenAI-Project"] = self._credentials.project_id
        return headers

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            r = self._http.post(f"{self._base_url}{path}", json=body, headers=self._headers(),
                                timeout=self._timeout)
        except requests.RequestException as exc:
            raise GenerationError(f"{path}: {exc}") from exc
        if not r.ok:
            raise GenerationError(f"{path}: {r.status_code} {r.text[:200]}")
        try:
            return r.json()
        except ValueError as exc:
            raise GenerationError(f"{path}: response is not JSON") from exc

    def create_prompt(self, message: str) -> str:
        """Turn the message into an image prompt."""
        data = self._post("/chat/completions", {
            "model": TEXT_MODEL,
            "messages": [{"role": "user", "content": PROMPT_TEMPLATE.format(message=message)}],
            "temperature": 0.7,
        })
        try:
            return data["choices"][0]["message"]["content"].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise GenerationError("completion response has no content") from exc

    def generate_image(self, prompt: str) -> str:
        """Generate one image; returns its temporary URL."""
        data = self._post("/images/generations", {
            "model": IMAGE_MODEL,
            "prompt": IMAGE_TEMPLATE.format(prompt=prompt),
            "response_format": "url",
            "size": "1024x1024",
            "quality": "standard",
            "n": 1,
        })
        try:
            url = data["data"][0]["url"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("image response has no url") from exc
        if not url:
            raise GenerationError("image response has no url")
        return url
