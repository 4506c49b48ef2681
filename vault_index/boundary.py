"""Exception translation at third-party library call boundaries.

qdrant-client, httpx, circuitbreaker and GitPython each raise their own
exception types. Callers of this package only ever see the domain errors in
``vault_index.errors``. LibraryBoundary does the translation at the call site,
preserving the original error via exception chaining.

Two forms::

    storage_call = LibraryBoundary(StorageError, context='qdrant upsert')

    async with storage_call:
        await client.upsert(...)

    @LibraryBoundary(ChangeDetectionError, context='git')
    def current_revision(self) -> str:
        ...

System exceptions (``KeyboardInterrupt``, ``asyncio.CancelledError``) and
iteration control flow always pass through. An exception that is already the
target type is re-raised unchanged, so boundaries can nest.
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable
from types import TracebackType
from typing import Any, Self, TypeVar, cast

__all__ = ['LibraryBoundary']

_F = TypeVar('_F', bound=Callable[..., object])

# Exception subclasses that drive iteration; translating them breaks generators.
_PASSTHROUGH = (StopIteration, StopAsyncIteration, GeneratorExit)


class LibraryBoundary:
    """Translate exceptions from library calls into one domain type.

    Args:
        target: Exception type to raise. Must accept a single message argument.
        context: Optional prefix for the translated message (e.g. 'qdrant delete').
        passthrough: Extra exception types that must propagate untranslated.
    """

    def __init__(
        self,
        target: type[Exception],
        *,
        context: str | None = None,
        passthrough: tuple[type[BaseException], ...] = (),
    ) -> None:
        self._target = target
        self._context = context
        self._passthrough = _PASSTHROUGH + passthrough

    def __call__(self, func: _F) -> _F:
        """Decorate a sync or async function."""
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                async with self:
                    return await func(*args, **kwargs)

            return cast(_F, async_wrapper)

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with self:
                return func(*args, **kwargs)

        return cast(_F, sync_wrapper)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_val is None or isinstance(exc_val, self._target):
            return
        if not isinstance(exc_val, Exception) or isinstance(exc_val, self._passthrough):
            return
        raise self._target(self._message(exc_val)).with_traceback(exc_tb) from exc_val

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)

    def _message(self, exc: BaseException) -> str:
        detail = str(exc) or type(exc).__name__
        if self._context:
            return f'{self._context}: {type(exc).__name__}: {detail}'
        return detail
