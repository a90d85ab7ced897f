"""Relationship include paths collected by ``with_joiner``."""

import typing as t

from storekit.errors import ConfigurationError


class Includer:
    """Collects dotted relationship paths.

    ``include("team").then_include("members")`` yields ``team`` and
    ``team.members``; ``then_include`` always extends the most recent chain.
    """

    def __init__(self) -> None:
        self._paths: list[str] = []
        self._current: str | None = None

    @staticmethod
    def _check(path: str) -> str:
        if not path or not path.strip():
            msg = "Include path cannot be empty"
            raise ConfigurationError(msg)
        return path.strip()

    def include(self, path: str) -> t.Self:
        path = self._check(path)
        self._current = path
        self._add(path)
        return self

    def then_include(self, path: str) -> t.Self:
        if self._current is None:
            msg = "then_include requires a preceding include"
            raise ConfigurationError(msg)
        self._current = f"{self._current}.{self._check(path)}"
        self._add(self._current)
        return self

    def _add(self, path: str) -> None:
        if path not in self._paths:
            self._paths.append(path)

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(self._paths)
