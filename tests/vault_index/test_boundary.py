"""Tests for LibraryBoundary -- exception translation at library call boundaries."""

from __future__ import annotations

import asyncio

import pytest

from vault_index.boundary import LibraryBoundary
from vault_index.errors import StorageError


class AppError(Exception):
    """Target exception for all tests."""


class AppErrorSubclass(AppError):
    """Subclass of target -- should also pass through the double-wrap guard."""


class TestContextManager:
    def test_no_exception_passes_through(self) -> None:
        with LibraryBoundary(AppError):
            result = 1 + 1
        assert result == 2

    @pytest.mark.parametrize(
        'exception, message',
        [
            (ValueError, 'original'),
            (RuntimeError, 'the message'),
            (OSError, 'disk gone'),
        ],
    )
    def test_translates_exception(self, exception: type[Exception], message: str) -> None:
        with pytest.raises(AppError) as exc_info, LibraryBoundary(AppError):
            raise exception(message)
        assert exc_info.value.args == (message,)
        assert isinstance(exc_info.value.__cause__, exception)

    def test_context_prefix(self) -> None:
        with pytest.raises(StorageError) as exc_info, LibraryBoundary(StorageError, context='qdrant upsert'):
            raise ConnectionError('refused')
        assert str(exc_info.value) == 'qdrant upsert: ConnectionError: refused'

    def test_empty_message_uses_type_name(self) -> None:
        with pytest.raises(AppError) as exc_info, LibraryBoundary(AppError):
            raise ValueError()
        assert str(exc_info.value) == 'ValueError'

    def test_double_wrap_guard(self) -> None:
        """Exception already the target type passes through unchanged."""
        original = AppErrorSubclass('already wrapped')
        with pytest.raises(AppErrorSubclass) as exc_info, LibraryBoundary(AppError):
            raise original
        assert exc_info.value is original

    @pytest.mark.parametrize('exception', [KeyboardInterrupt, SystemExit, GeneratorExit, asyncio.CancelledError])
    def test_system_exception_passes_through(self, exception: type[BaseException]) -> None:
        with pytest.raises(exception), LibraryBoundary(AppError):
            raise exception

    @pytest.mark.parametrize('exception', [StopIteration, StopAsyncIteration])
    def test_control_flow_exception_passes_through(self, exception: type[Exception]) -> None:
        with pytest.raises(exception), LibraryBoundary(AppError):
            raise exception

    def test_extra_passthrough(self) -> None:
        with pytest.raises(KeyError), LibraryBoundary(AppError, passthrough=(KeyError,)):
            raise KeyError('kept')

    def test_preserves_traceback(self) -> None:
        """Original raise location is preserved as deepest traceback frame."""

        def library_function() -> None:
            raise ValueError('deep')

        with pytest.raises(AppError) as exc_info, LibraryBoundary(AppError):
            library_function()

        tb = exc_info.value.__traceback__
        assert tb is not None
        while tb.tb_next:
            tb = tb.tb_next
        assert tb.tb_frame.f_code.co_name == 'library_function'


class TestDecorator:
    def test_sync(self) -> None:
        @LibraryBoundary(AppError, context='parse')
        def parse(text: str) -> int:
            return int(text)

        assert parse('3') == 3
        with pytest.raises(AppError, match='parse: ValueError'):
            parse('x')

    async def test_async(self) -> None:
        @LibraryBoundary(AppError, context='fetch')
        async def fetch() -> None:
            await asyncio.sleep(0)
            raise TimeoutError('slow')

        with pytest.raises(AppError, match='fetch: TimeoutError: slow'):
            await fetch()

    def test_preserves_metadata(self) -> None:
        @LibraryBoundary(AppError)
        def documented() -> None:
            """Docstring."""

        assert documented.__name__ == 'documented'
        assert documented.__doc__ == 'Docstring.'

    async def test_cancellation_not_translated(self) -> None:
        @LibraryBoundary(AppError)
        async def wait_forever() -> None:
            await asyncio.Event().wait()

        task = asyncio.create_task(wait_forever())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
