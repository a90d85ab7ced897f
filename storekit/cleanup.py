"""Resource cleanup for store adapters.

Adapters register the clients, sessions and engines they open; ``cleanup``
closes each of them once using whichever close-style method it exposes.
"""

import inspect

import anyio
import typing as t

from .logger import get_logger

logger = get_logger(__name__)

_CLOSE_METHODS = ("aclose", "close", "dispose", "disconnect", "shutdown")


class CleanupMixin:
    def __init__(self) -> None:
        self._resources: list[t.Any] = []
        self._cleaned_up = False
        self._cleanup_lock: anyio.Lock | None = None

    @property
    def cleaned_up(self) -> bool:
        return self._cleaned_up

    def register_resource(self, resource: t.Any) -> None:
        if resource is not None and resource not in self._resources:
            self._resources.append(resource)

    async def cleanup_resource(self, resource: t.Any) -> None:
        for method_name in _CLOSE_METHODS:
            method = getattr(resource, method_name, None)
            if method is None:
                continue
            result = method()
            if inspect.isawaitable(result):
                await result
            logger.debug(f"Closed {type(resource).__name__} using {method_name}()")
            return

    async def _cleanup_resources(self) -> None:
        """Hook for subclasses with resources that need custom teardown."""

    async def cleanup(self) -> None:
        if self._cleanup_lock is None:
            self._cleanup_lock = anyio.Lock()

        async with self._cleanup_lock:
            if self._cleaned_up:
                return

            errors: list[str] = []
            await self._cleanup_resources()
            for resource in reversed(self._resources):
                try:
                    await self.cleanup_resource(resource)
                except Exception as e:
                    errors.append(f"{type(resource).__name__}: {e}")
            self._resources.clear()
            self._cleaned_up = True

            if errors:
                logger.warning(f"Resource cleanup errors: {'; '.join(errors)}")

    async def __aenter__(self) -> t.Self:
        return self

    async def __aexit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        await self.cleanup()
