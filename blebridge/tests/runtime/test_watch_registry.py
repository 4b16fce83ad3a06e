from __future__ import annotations

import logging
import threading
import time

import pytest

from blebridge.runtime.watch_registry import DeviceWatchRegistry

ADDR = "A4:C1:38:0A:0B:0C"


class FakeWatch:
    def __init__(self, name: str = "w"):
        self.name = name
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1


class CountingSubscriber:
    """subscribe_fn stub that records every subscription it hands out."""
    def __init__(self, delay_s: float = 0.0):
        self.delay_s = delay_s
        self.created: list[FakeWatch] = []
        self._lock = threading.Lock()

    def __call__(self) -> FakeWatch:
        if self.delay_s:
            time.sleep(self.delay_s)
        w = FakeWatch()
        with self._lock:
            self.created.append(w)
        return w


def test_register_once_then_duplicate_is_noop(caplog):
    reg = DeviceWatchRegistry()
    sub = CountingSubscriber()

    assert reg.try_register(ADDR, sub) is True
    with caplog.at_level(logging.WARNING):
        assert reg.try_register(ADDR.lower(), sub) is False

    assert len(sub.created) == 1
    assert len(reg) == 1
    assert ADDR in reg
    assert ADDR.lower() in reg
    assert any("WATCH_ALREADY_REGISTERED" in r.getMessage() for r in caplog.records)


def test_concurrent_registration_subscribes_once():
    reg = DeviceWatchRegistry()
    sub = CountingSubscriber(delay_s=0.01)
    start = threading.Barrier(8)
    results: list[bool] = []
    lock = threading.Lock()

    def worker():
        start.wait()
        ok = reg.try_register(ADDR, sub)
        with lock:
            results.append(ok)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=2.0)

    assert results.count(True) == 1
    assert results.count(False) == 7
    assert len(sub.created) == 1
    assert reg.addresses() == [ADDR]


def test_subscribe_failure_leaves_address_free():
    reg = DeviceWatchRegistry()

    def boom():
        raise RuntimeError("bus went away")

    with pytest.raises(RuntimeError):
        reg.try_register(ADDR, boom)

    assert ADDR not in reg
    assert reg.try_register(ADDR, CountingSubscriber()) is True


def test_release_all_closes_each_handle_once_and_is_idempotent():
    reg = DeviceWatchRegistry()
    subs = CountingSubscriber()
    reg.try_register("A4:C1:38:00:00:01", subs)
    reg.try_register("A4:C1:38:00:00:02", subs)

    assert reg.release_all() == 2
    assert reg.release_all() == 0

    assert [w.close_calls for w in subs.created] == [1, 1]
    assert len(reg) == 0
    assert reg.closed is True


def test_register_after_release_all_is_refused():
    reg = DeviceWatchRegistry()
    reg.release_all()
    sub = CountingSubscriber()

    assert reg.try_register(ADDR, sub) is False
    assert sub.created == []


def test_release_all_during_subscribe_closes_late_handle():
    reg = DeviceWatchRegistry()
    entered = threading.Event()
    proceed = threading.Event()
    watch = FakeWatch()

    def slow_subscribe():
        entered.set()
        proceed.wait(timeout=2.0)
        return watch

    result: list[bool] = []
    t = threading.Thread(target=lambda: result.append(reg.try_register(ADDR, slow_subscribe)))
    t.start()
    assert entered.wait(timeout=2.0)

    reg.release_all()
    proceed.set()
    t.join(timeout=2.0)

    assert result == [False]
    assert watch.close_calls == 1
    assert len(reg) == 0


def test_release_single_device():
    reg = DeviceWatchRegistry()
    sub = CountingSubscriber()
    reg.try_register(ADDR, sub)

    assert reg.release(ADDR.lower()) is True
    assert reg.release(ADDR) is False
    assert sub.created[0].close_calls == 1
    # deliberately deregistered devices may be watched again
    assert reg.try_register(ADDR, sub) is True


def test_failing_close_is_logged_not_raised(caplog):
    class BadWatch:
        def close(self):
            raise OSError("already gone")

    reg = DeviceWatchRegistry()
    reg.try_register(ADDR, BadWatch)

    with caplog.at_level(logging.ERROR):
        assert reg.release_all() == 1
    assert any("WATCH_RELEASE_FAILED" in r.getMessage() for r in caplog.records)
