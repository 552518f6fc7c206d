import functools
import json
import re

import pytest

from nftfuture.action import ActionRequest, ActionResponse, lit_action_code, run_time_capsule_action
from nftfuture.conditions import build_time_lock, time_lock, to_unified
from nftfuture.network import LocalKeyNetwork, session_resources
from nftfuture.openai_api import GenerationError
from nftfuture.util import canonicalize

from conftest import IMAGE_URL, NETWORK_SECRET, T0

UNLOCK_MS = (T0 + 3600) * 1000


@pytest.fixture
def network(clock, generator):
    runner = functools.partial(run_time_capsule_action, generator_factory=lambda credentials: generator)
    with LocalKeyNetwork(NETWORK_SECRET, clock=clock, action_runner=runner) as net:
        yield net


@pytest.fixture
def request_and_session(network, server_signer, settings):
    predicate = build_time_lock(server_signer.address, UNLOCK_MS)
    data = network.encrypt(b"Hello future", predicate)
    config = network.encrypt(canonicalize(settings.openai_config()), predicate)
    session = network.create_session(server_signer, session_resources(network, [data, config], execute=True))
    return ActionRequest(data=data, config=config, public_key=server_signer.public_key), session

# TV-40: Output message is sealed under the time condition only
def test_tv40_output_rewrapped_under_time_lock(network, clock, request_and_session, sender_signer, generator):
    request, session = request_and_session
    response = network.execute_action(request, session)

    assert response.ok
    assert response.url == IMAGE_URL
    assert generator.prompts == ["Hello future"]

    out = response.envelope(to_unified(time_lock(UNLOCK_MS)))
    clock.now = T0 + 3600
    reader = network.create_session(sender_signer, session_resources(network, [out]))
    assert network.decrypt(out, reader) == b"Hello future"

# TV-41: A generation failure is reported once, not retried
def test_tv41_failure_becomes_error(network, request_and_session, generator):
    generator.fail_with = GenerationError("/images/generations: 400 content_policy_violation")
    request, session = request_and_session
    response = network.execute_action(request, session)
    assert not response.ok
    assert "content_policy_violation" in response.error
    assert response.to_dict() == {"error": response.error}

# TV-42: Undecryptable credentials abort the action
def test_tv42_bad_config(network, request_and_session, server_signer):
    request, session = request_and_session
    wrong = network.encrypt(b"not json", time_lock(UNLOCK_MS))
    response = network.execute_action(ActionRequest(request.data, wrong, request.public_key), session)
    assert response.error

def test_js_params(request_and_session, server_signer):
    request, _ = request_and_session
    params = request.to_js_params()
    assert params["data"][2] == params["accessControlConditions"]
    assert params["outputConditions"] == params["accessControlConditions"][2:]
    assert params["chain"] == "base"
    assert params["publicKey"].startswith("0x04")
    assert "{message}" in params["promptTemplate"]

def test_from_lit_response():
    ok = ActionResponse.from_lit_response(json.dumps({"message": ["ct", "hash"], "url": IMAGE_URL}))
    assert ok.ok and ok.message == ("ct", "hash") and ok.url == IMAGE_URL
    assert ActionResponse.from_lit_response("Decryption failed").error == "Decryption failed"
    assert ActionResponse.from_lit_response(json.dumps({"error": "boom"})).error == "boom"
    assert ActionResponse.from_lit_response(json.dumps({"message": ["ct"]})).error
    assert ActionResponse.from_lit_response(None).error

def test_bundled_script():
    code = lit_action_code()
    assert "Lit.Actions.decryptAndCombine" in code
    assert "outputConditions" in code

def test_bundled_script_substitutes_text_literally():
    # a plain string replacement would expand "$&" and friends in user text
    code = lit_action_code()
    assert 'promptTemplate.replace("{message}", () => input)' in code
    assert 'imageTemplate.replace("{prompt}", () => prompt)' in code
    assert re.search(r'\.replace\("\{(message|prompt)\}",\s*(input|prompt)\s*\)', code) is None
