import dataclasses

import pytest

from nftfuture.conditions import ConditionError, build_time_lock, time_lock, to_unified
from nftfuture.network import (
    Ability,
    AccessDenied,
    DecryptionError,
    LocalKeyNetwork,
    NetworkError,
    ResourceAbility,
    SessionExpired,
    SessionInvalid,
    build_network,
    session_resources,
)

from conftest import NETWORK_SECRET, T0

UNLOCK_MS = (T0 + 3600) * 1000


@pytest.fixture
def network(clock):
    with LocalKeyNetwork(NETWORK_SECRET, clock=clock) as net:
        yield net


def _session(network, signer, envelopes, ttl=600):
    return network.create_session(signer, session_resources(network, envelopes), ttl)

# TV-20: Recipient wallet reads before unlock, anyone reads after
def test_tv20_time_lock_decryption(network, clock, server_signer, sender_signer):
    env = network.encrypt(b"Hello future", build_time_lock(server_signer.address, UNLOCK_MS))

    assert network.decrypt(env, _session(network, server_signer, [env])) == b"Hello future"
    with pytest.raises(AccessDenied):
        network.decrypt(env, _session(network, sender_signer, [env]))

    clock.now = T0 + 3600
    assert network.decrypt(env, _session(network, sender_signer, [env])) == b"Hello future"

# TV-21: Ciphertext does not open under edited conditions
def test_tv21_tampered_conditions(network, clock, sender_signer):
    env = network.encrypt(b"Hello future", time_lock(UNLOCK_MS))
    earlier = env.with_conditions(to_unified(time_lock(1_000)))
    with pytest.raises(DecryptionError):
        network.decrypt(earlier, _session(network, sender_signer, [earlier]))

# TV-22: Content hash is checked after decryption
def test_tv22_tampered_hash(network, clock, sender_signer):
    clock.now = T0 + 3600
    env = network.encrypt(b"Hello future", time_lock(UNLOCK_MS))
    forged = dataclasses.replace(env, content_hash="00" * 32)
    with pytest.raises(DecryptionError):
        network.decrypt(forged, _session(network, sender_signer, [forged]))

# TV-23: Expired and forged sessions are rejected as session errors
def test_tv23_session_rejections(network, clock, server_signer, sender_signer):
    env = network.encrypt(b"x", build_time_lock(server_signer.address, UNLOCK_MS))

    session = _session(network, server_signer, [env], ttl=10)
    clock.now += 10
    with pytest.raises(SessionExpired):
        network.decrypt(env, session)

    forged = dataclasses.replace(_session(network, sender_signer, [env]), address=server_signer.address)
    with pytest.raises(SessionInvalid):
        network.decrypt(env, forged)

    unsigned = dataclasses.replace(_session(network, server_signer, [env]), signature="")
    with pytest.raises(SessionInvalid):
        network.decrypt(env, unsigned)

# TV-24: Decryption needs a capability for the envelope
def test_tv24_capability_scoping(network, server_signer):
    a = network.encrypt(b"a", build_time_lock(server_signer.address, UNLOCK_MS))
    b = network.encrypt(b"b", build_time_lock(server_signer.address, UNLOCK_MS))
    session = _session(network, server_signer, [a])
    assert network.decrypt(a, session) == b"a"
    with pytest.raises(AccessDenied):
        network.decrypt(b, session)

    wildcard = network.create_session(server_signer, [ResourceAbility("*", Ability.DECRYPTION)])
    assert network.decrypt(b, wildcard) == b"b"

def test_execution_needs_capability(network, server_signer):
    session = _session(network, server_signer, [])
    with pytest.raises(AccessDenied):
        network.execute_action(None, session)

def test_encrypt_requires_conditions(network):
    with pytest.raises(ConditionError):
        network.encrypt(b"x", [])

def test_operations_require_connection(clock, server_signer):
    net = LocalKeyNetwork(NETWORK_SECRET, clock=clock)
    with pytest.raises(NetworkError):
        net.encrypt(b"x", time_lock(UNLOCK_MS))
    with net:
        assert net.connected
    assert not net.connected

def test_session_resources_deduplicates(network, server_signer):
    env = network.encrypt(b"x", time_lock(UNLOCK_MS))
    resources = session_resources(network, [env, env], execute=True)
    assert resources[0] == ResourceAbility("*", Ability.EXECUTION)
    assert len(resources) == 2

def test_build_network_selects_backend(settings, server_signer):
    assert isinstance(build_network(settings, server_signer), LocalKeyNetwork)
    with pytest.raises(ValueError):
        build_network(dataclasses.replace(settings, key_network="ipfs"), server_signer)
