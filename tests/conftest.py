import copy
import functools
import itertools

import pytest
from fastapi.testclient import TestClient

from nftfuture.action import run_time_capsule_action
from nftfuture.config import Settings, get_settings
from nftfuture.keys import PrivateKeySigner
from nftfuture.main import (
    app,
    provide_gateway,
    provide_network_factory,
    provide_pinata,
    provide_signer,
)
from nftfuture.network import LocalKeyNetwork
from nftfuture.obfuscation import DEFAULT_GATEWAY, content_url, extract_cid
from nftfuture.pinning import PinningError

SERVER_KEY = "0x" + "11" * 32
SENDER_KEY = "0x" + "22" * 32
NETWORK_SECRET = bytes.fromhex("ab" * 32)
T0 = 1_900_000_000
IMAGE_URL = "https://images.example/generated.webp"


class FakeClock:
    """Chain clock the tests move by hand."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now


class FakeGenerator:
    def __init__(self):
        self.prompts = []
        self.images = []
        self.fail_with = None

    def create_prompt(self, message):
        if self.fail_with:
            raise self.fail_with
        self.prompts.append(message)
        return f"a dark fantasy scene about {message}"

    def generate_image(self, prompt):
        self.images.append(prompt)
        return IMAGE_URL


class FakePinata:
    """Pins into an in-memory store shared with FakeGateway."""

    def __init__(self, store):
        self.store = store
        self._ids = itertools.count(1)
        self.fail_image = False
        self.fail_json_after = None
        self.json_pins = 0

    def _pin(self, content):
        cid = f"bafyfake{next(self._ids)}"
        self.store[cid] = copy.deepcopy(content)
        return {"IpfsHash": cid}

    def pin_url(self, url):
        if self.fail_image:
            raise PinningError("Failed to fetch image: 500 Server Error")
        return self._pin({"imageFrom": url})

    def pin_json(self, content):
        if self.fail_json_after is not None and self.json_pins >= self.fail_json_after:
            raise PinningError("Failed to pin JSON to IPFS: 401")
        self.json_pins += 1
        return self._pin(content)


class FakeStream:
    def __init__(self, chunks, headers):
        self.chunks = chunks
        self.headers = headers
        self.closed = False

    def iter_content(self, chunk_size=1):
        return iter(self.chunks)

    def close(self):
        self.closed = True


class FakeGateway:
    def __init__(self, store, gateway=DEFAULT_GATEWAY):
        self.store = store
        self.gateway = gateway
        self.streams = {}

    def ipfs_url(self, cid):
        return content_url(cid, self.gateway)

    def fetch_json(self, url):
        doc = self.store.get(extract_cid(url))
        return copy.deepcopy(doc) if isinstance(doc, dict) else None

    def open_stream(self, path):
        if path not in self.streams:
            raise PinningError("gateway returned 404")
        return self.streams[path]


@pytest.fixture
def settings():
    return Settings(
        api_key=SERVER_KEY,
        openai_api_key="sk-test",
        openai_organization_id="org-test",
        openai_project_id="proj-test",
        pinata_jwt="jwt-test",
        local_network_secret=NETWORK_SECRET.hex(),
        log_json=False,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def server_signer():
    return PrivateKeySigner(SERVER_KEY)


@pytest.fixture
def sender_signer():
    return PrivateKeySigner(SENDER_KEY)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def store():
    return {}


@pytest.fixture
def pinata(store):
    return FakePinata(store)


@pytest.fixture
def gateway(store):
    return FakeGateway(store)


@pytest.fixture
def make_network(clock, generator):
    """Networks built this way all share one secret and one clock."""
    runner = functools.partial(run_time_capsule_action, generator_factory=lambda credentials: generator)

    def factory(signer=None):
        return LocalKeyNetwork(NETWORK_SECRET, clock=clock, action_runner=runner)
    return factory


@pytest.fixture
def client(settings, server_signer, make_network, pinata, gateway):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[provide_signer] = lambda: server_signer
    app.dependency_overrides[provide_network_factory] = lambda: make_network
    app.dependency_overrides[provide_pinata] = lambda: pinata
    app.dependency_overrides[provide_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


