import threading

import pytest

from chain.nonce_manager import NonceManager
from core.base_types import Address

ALICE = Address("0x000000000000000000000000000000000000a11c")
BOB = Address("0x0000000000000000000000000000000000000b0b")


class _FakeClient:
    def __init__(self, nonce=5):
        self.nonce = nonce
        self.reads = 0

    def get_nonce(self, address):
        self.reads += 1
        return self.nonce


def test_first_nonce_read_from_chain_then_incremented():
    client = _FakeClient(nonce=5)
    manager = NonceManager(client)
    with manager.hold(ALICE) as lease:
        assert [lease.next(), lease.next(), lease.next()] == [5, 6, 7]
    assert client.reads == 1


def test_nonce_survives_between_holds():
    client = _FakeClient(nonce=5)
    manager = NonceManager(client)
    with manager.hold(ALICE) as lease:
        lease.next()
    with manager.hold(ALICE) as lease:
        assert lease.next() == 6
    assert client.reads == 1


def test_invalidate_forces_chain_read():
    client = _FakeClient(nonce=5)
    manager = NonceManager(client)
    with manager.hold(ALICE) as lease:
        lease.next()
        lease.invalidate()
        client.nonce = 9
        assert lease.next() == 9
    assert client.reads == 2


def test_addresses_are_independent():
    manager = NonceManager(_FakeClient(nonce=3))
    with manager.hold(ALICE) as alice:
        alice.next()
        with manager.hold(BOB) as bob:
            assert bob.next() == 3
            assert manager.is_busy(ALICE)
    assert not manager.is_busy(ALICE)


def test_hold_is_exclusive_per_address():
    manager = NonceManager(_FakeClient())
    acquired = threading.Event()
    release = threading.Event()

    def holder():
        with manager.hold(ALICE):
            acquired.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    acquired.wait(5)
    try:
        with pytest.raises(TimeoutError):
            with manager.hold(ALICE, timeout=0.05):
                pass
    finally:
        release.set()
        thread.join()


def test_reset_forgets_cached_nonces():
    client = _FakeClient(nonce=5)
    manager = NonceManager(client)
    with manager.hold(ALICE) as lease:
        lease.next()
    manager.reset()
    with manager.hold(ALICE) as lease:
        lease.next()
    assert client.reads == 2
