import pytest

from nftfuture.conditions import build_time_lock
from nftfuture.network import LocalKeyNetwork, NetworkError, SessionInvalid, session_resources
from nftfuture.session import SessionManager, SessionState

from conftest import NETWORK_SECRET, T0


@pytest.fixture
def network(clock):
    with LocalKeyNetwork(NETWORK_SECRET, clock=clock) as net:
        yield net


@pytest.fixture
def envelope(network, server_signer):
    return network.encrypt(b"Hello future", build_time_lock(server_signer.address, (T0 + 3600) * 1000))


def _manager(network, signer, envelope, ttl=600):
    return SessionManager(network, signer, session_resources(network, [envelope]), ttl_seconds=ttl)

# TV-30: NO_SESSION -> READY, cached while valid
def test_tv30_acquire_caches(network, server_signer, envelope):
    manager = _manager(network, server_signer, envelope)
    assert manager.state == SessionState.NO_SESSION
    session = manager.acquire()
    assert manager.state == SessionState.READY
    assert manager.acquire() is session
    manager.invalidate()
    assert manager.state == SessionState.NO_SESSION
    assert manager.session is None

# TV-31: An expired session is replaced once and the work succeeds
def test_tv31_retry_after_expiry(network, clock, server_signer, envelope):
    manager = _manager(network, server_signer, envelope, ttl=10)
    stale = manager.acquire()
    clock.now += 60

    assert manager.run(lambda s: network.decrypt(envelope, s)) == b"Hello future"
    assert manager.state == SessionState.READY
    assert manager.session is not stale

# TV-32: Two rejected attempts surface the error
def test_tv32_retry_bounded(network, server_signer, envelope):
    manager = _manager(network, server_signer, envelope)
    calls = []

    def always_rejected(session):
        calls.append(session)
        raise SessionInvalid("rejected")

    with pytest.raises(SessionInvalid):
        manager.run(always_rejected)
    assert len(calls) == 2
    assert calls[0] is not calls[1]
    assert manager.state == SessionState.NO_SESSION

# TV-33: Non-session errors are not retried
def test_tv33_other_errors_propagate(network, server_signer, envelope):
    manager = _manager(network, server_signer, envelope)
    calls = []

    def broken(session):
        calls.append(session)
        raise NetworkError("node unreachable")

    with pytest.raises(NetworkError):
        manager.run(broken)
    assert len(calls) == 1
    assert manager.state == SessionState.READY

# TV-34: Failed authentication returns to NO_SESSION
def test_tv34_authentication_failure(clock, server_signer, envelope, network):
    disconnected = LocalKeyNetwork(NETWORK_SECRET, clock=clock)
    manager = SessionManager(disconnected, server_signer, session_resources(network, [envelope]))
    with pytest.raises(NetworkError):
        manager.acquire()
    assert manager.state == SessionState.NO_SESSION

def test_max_attempts_validated(network, server_signer):
    with pytest.raises(ValueError):
        SessionManager(network, server_signer, [], max_attempts=0)
