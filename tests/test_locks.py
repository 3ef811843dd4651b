# File: tests/test_locks.py

import threading

import pytest

from duet.core.errors import ConcurrencyError
from duet.services.locks import KeyedLock


def test_hold_releases_and_forgets_keys():
    locks = KeyedLock()
    with locks.hold("invite:ABC", "user:1", timeout=1):
        assert len(locks) == 2
    assert len(locks) == 0


def test_busy_key_times_out():
    locks = KeyedLock()
    with locks.hold("invite:ABC", timeout=1):
        with pytest.raises(ConcurrencyError):
            with locks.hold("invite:ABC", timeout=0.05):
                pass
        assert len(locks) == 1
    assert len(locks) == 0


def test_partial_acquire_is_rolled_back():
    locks = KeyedLock()
    with locks.hold("user:2", timeout=1):
        with pytest.raises(ConcurrencyError):
            with locks.hold("user:1", "user:2", timeout=0.05):
                pass
        # user:1 was acquired first and must have been released.
        with locks.hold("user:1", timeout=0.05):
            pass


def test_different_keys_do_not_block():
    locks = KeyedLock()
    entered = threading.Event()

    def worker():
        with locks.hold("user:b", timeout=1):
            entered.set()

    with locks.hold("user:a", timeout=1):
        thread = threading.Thread(target=worker)
        thread.start()
        assert entered.wait(timeout=2)
        thread.join()


def test_waiter_gets_lock_after_release():
    locks = KeyedLock()
    order = []
    acquired = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold("k", timeout=1):
            order.append("holder")
            acquired.set()
            release.wait(timeout=2)

    thread = threading.Thread(target=holder)
    thread.start()
    assert acquired.wait(timeout=2)
    release.set()
    with locks.hold("k", timeout=2):
        order.append("waiter")
    thread.join()

    assert order == ["holder", "waiter"]
    assert len(locks) == 0
