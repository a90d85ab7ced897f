"""Compute-once holder for store handles."""

import threading

import typing as t

_UNSET: t.Any = object()


class Lazy[T]:
    """Thread-safe lazily initialized value.

    The factory runs at most once, even under concurrent first access; every
    caller observes the same published value. A factory that raises leaves
    the holder unset so the next access retries.
    """

    def __init__(self, factory: t.Callable[[], T]) -> None:
        self._factory = factory
        self._value: T = _UNSET
        self._lock = threading.Lock()

    @property
    def is_value_created(self) -> bool:
        return self._value is not _UNSET

    @property
    def value(self) -> T:
        if self._value is _UNSET:
            with self._lock:
                if self._value is _UNSET:
                    self._value = self._factory()
        return self._value

    def reset(self) -> None:
        with self._lock:
            self._value = _UNSET
