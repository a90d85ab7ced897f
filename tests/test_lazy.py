"""Tests for the compute-once holder."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from storekit.lazy import Lazy


class TestLazy:
    def test_value_is_created_on_first_access(self) -> None:
        calls: list[int] = []
        lazy = Lazy(lambda: calls.append(1) or "handle")

        assert lazy.is_value_created is False
        assert lazy.value == "handle"
        assert lazy.value == "handle"
        assert lazy.is_value_created is True
        assert len(calls) == 1

    def test_concurrent_first_access_runs_factory_once(self) -> None:
        calls: list[int] = []
        lock = threading.Lock()

        def factory() -> object:
            with lock:
                calls.append(1)
            time.sleep(0.01)
            return object()

        lazy = Lazy(factory)
        with ThreadPoolExecutor(max_workers=8) as pool:
            values = list(pool.map(lambda _: lazy.value, range(32)))

        assert len(calls) == 1
        assert all(value is values[0] for value in values)

    def test_failed_factory_is_retried(self) -> None:
        attempts: list[int] = []

        def factory() -> str:
            attempts.append(1)
            if len(attempts) == 1:
                msg = "store unreachable"
                raise ConnectionError(msg)
            return "connected"

        lazy = Lazy(factory)

        with pytest.raises(ConnectionError):
            _ = lazy.value
        assert lazy.is_value_created is False
        assert lazy.value == "connected"

    def test_reset(self) -> None:
        counter = iter(range(10))
        lazy = Lazy(lambda: next(counter))

        assert lazy.value == 0
        lazy.reset()
        assert lazy.value == 1
