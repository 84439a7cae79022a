import threading
import time
import traceback
from types import SimpleNamespace

import pytest

from modreq.modreq_cache import ModuleCache
from modreq.modreq_datatypes import CacheEntry, CyclicRequireError, EntryState


def counting(value):
    calls = []

    def load():
        calls.append(1)
        return value
    return load, calls


def test_single_evaluation_returns_identical_value():
    cache = ModuleCache()
    obj = SimpleNamespace(x=1)
    load, calls = counting(obj)
    assert cache.get_or_load("a", load) is obj
    assert cache.get_or_load("a", load) is obj
    assert len(calls) == 1
    assert cache.state("a") is EntryState.RESOLVED
    assert cache.peek("a") is obj


def test_failure_is_cached_and_reraised():
    cache = ModuleCache()
    calls = []

    def load():
        calls.append(1)
        raise OSError("disk on fire")

    with pytest.raises(OSError) as first:
        cache.get_or_load("bad", load)
    with pytest.raises(OSError) as second:
        cache.get_or_load("bad", load)
    assert first.value is second.value
    assert len(calls) == 1
    assert cache.state("bad") is EntryState.FAILED
    with pytest.raises(KeyError):
        cache.peek("bad")


def test_cached_failure_traceback_does_not_grow():
    cache = ModuleCache()

    def load():
        raise OSError("disk on fire")

    depths = []
    for _ in range(20):
        with pytest.raises(OSError) as exc:
            cache.get_or_load("bad", load)
        depths.append(len(traceback.extract_tb(exc.value.__traceback__)))
    assert len(set(depths[1:])) == 1
    assert depths[-1] <= depths[0] + 1


def test_reentrant_request_returns_partial_value():
    cache = ModuleCache()
    exports = SimpleNamespace(started=True)
    seen = {}

    def load():
        assert cache.state("a") is EntryState.PENDING
        seen["inner"] = cache.get_or_load("a", lambda: pytest.fail("must not reload"))
        exports.finished = True
        return exports

    assert cache.get_or_load("a", load, partial=lambda: exports) is exports
    assert seen["inner"] is exports


def test_reentrant_request_without_partial_raises():
    cache = ModuleCache()

    def load():
        return cache.get_or_load("a", load)

    with pytest.raises(CyclicRequireError) as ei:
        cache.get_or_load("a", load)
    assert ei.value.id == "a"
    # The cycle error settles the outer load as failed
    assert cache.state("a") is EntryState.FAILED


def test_interrupted_load_returns_entry_to_absent():
    cache = ModuleCache()

    def load():
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        cache.get_or_load("a", load)
    assert cache.state("a") is None
    assert "a" not in cache
    assert cache.get_or_load("a", lambda: 5) == 5


def test_concurrent_requests_load_once():
    cache = ModuleCache()
    obj = object()
    calls = []
    started = threading.Event()
    release = threading.Event()
    results = []

    def load():
        calls.append(1)
        started.set()
        release.wait(5)
        return obj

    def worker():
        results.append(cache.get_or_load("x", load))

    t1 = threading.Thread(target=worker)
    t1.start()
    assert started.wait(5)
    t2 = threading.Thread(target=worker)
    t2.start()
    time.sleep(0.05)
    # Second requester is waiting on the first load, not loading itself
    assert cache.state("x") is EntryState.PENDING
    assert len(calls) == 1
    release.set()
    t1.join(5)
    t2.join(5)
    assert len(calls) == 1
    assert len(results) == 2
    assert results[0] is obj and results[1] is obj


def test_concurrent_requests_share_failure():
    cache = ModuleCache()
    started = threading.Event()
    release = threading.Event()
    errors = []

    def load():
        started.set()
        release.wait(5)
        raise ValueError("nope")

    def worker():
        try:
            cache.get_or_load("x", load)
        except ValueError as e:
            errors.append(e)

    t1 = threading.Thread(target=worker)
    t1.start()
    assert started.wait(5)
    t2 = threading.Thread(target=worker)
    t2.start()
    release.set()
    t1.join(5)
    t2.join(5)
    assert len(errors) == 2
    assert errors[0] is errors[1]


def test_lock_free_reader_never_sees_unset_value(monkeypatch):
    cache = ModuleCache()
    obj = SimpleNamespace(x=1)
    settling = threading.Event()
    original = CacheEntry.__setattr__

    def slow_setattr(self, name, value):
        # Stretch the gap between storing the value and publishing the state
        if name == "value" and value is not None:
            settling.set()
            time.sleep(0.2)
        original(self, name, value)

    monkeypatch.setattr(CacheEntry, "__setattr__", slow_setattr)
    t = threading.Thread(target=cache.get_or_load, args=("x", lambda: obj))
    t.start()
    assert settling.wait(5)
    got = cache.get_or_load("x", lambda: None)
    t.join(5)
    assert got is obj


def test_introspection():
    cache = ModuleCache()
    assert len(cache) == 0
    assert cache.state("a") is None
    cache.get_or_load("a", lambda: 1)
    cache.get_or_load("b", lambda: 2)
    assert cache.ids() == ["a", "b"]
    assert len(cache) == 2
    assert "a" in cache
