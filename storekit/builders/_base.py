"""Shared builder plumbing: timeout override, constraint switch, consume-once."""

from abc import ABC, abstractmethod

import typing as t
from datetime import timedelta

from storekit.errors import ConfigurationError

DEFAULT_SKIP = 0
DEFAULT_TAKE = 100
MAX_TAKE = 1000
MIN_TIMEOUT = 5.0
MAX_TIMEOUT = 30.0


def require[V](value: V | None, name: str) -> V:
    if value is None:
        msg = f"{name} cannot be None"
        raise ConfigurationError(msg)
    return value


class BaseBuilder[ConfigT](ABC):
    """Fluent accumulator producing one immutable configuration.

    ``with_*`` setters validate eagerly and return the builder. ``build`` may
    be called once; builders are not reusable across operations.
    """

    def __init__(self) -> None:
        self._timeout = 0.0
        self._constraints_ignored = False
        self._consumed = False

    @classmethod
    def create(cls) -> t.Self:
        return cls()

    @property
    def consumed(self) -> bool:
        return self._consumed

    def with_timeout(self, timeout: float | timedelta) -> t.Self:
        """Override the operation's default timeout.

        Args:
            timeout: Seconds (or a ``timedelta``). Must be positive; unless
                constraints are disabled it must lie in ``[5, 30)`` seconds.
        """
        seconds = (
            timeout.total_seconds() if isinstance(timeout, timedelta) else timeout
        )
        if seconds <= 0:
            msg = "Timeout must be greater than zero"
            raise ConfigurationError(msg)
        if not self._constraints_ignored and not MIN_TIMEOUT <= seconds < MAX_TIMEOUT:
            msg = (
                f"Timeout must be at least {MIN_TIMEOUT:g}s and less than "
                f"{MAX_TIMEOUT:g}s unless constraints are disabled"
            )
            raise ConfigurationError(msg)
        self._timeout = float(seconds)
        return self

    def with_disable_constraints(self) -> t.Self:
        self._constraints_ignored = True
        return self

    def build(self) -> ConfigT:
        if self._consumed:
            msg = f"{type(self).__name__} has already been used; create a new builder"
            raise ConfigurationError(msg)
        config = self._finalize()
        self._consumed = True
        return config

    @abstractmethod
    def _finalize(self) -> ConfigT: ...


class BaseStateBuilder[ConfigT](BaseBuilder[ConfigT]):
    """Base for commands that change store state."""

    def __init__(self) -> None:
        super().__init__()
        self._save_changes = False

    def with_save_changes(self, save: bool = True) -> t.Self:
        """Persist right away instead of leaving the change staged."""
        self._save_changes = save
        return self
