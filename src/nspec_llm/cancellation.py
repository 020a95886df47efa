"""Cooperative, single-shot cancellation shared by every call path."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from nspec_llm.errors import GenerationCancelled

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by ``on_cancellation_requested``."""

    def __init__(self, token: CancellationToken, callback: Callable[[], Any]) -> None:
        self._token = token
        self._callback = callback

    def dispose(self) -> None:
        self._token._remove(self._callback)


class CancellationToken:
    """Read side of a cancellation signal.

    Tokens are created by a ``CancellationTokenSource``; ``none()`` returns a
    token that never fires.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], Any]] = []
        self._event: asyncio.Event | None = None

    @classmethod
    def none(cls) -> CancellationToken:
        return cls()

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

    def on_cancellation_requested(self, callback: Callable[[], Any]) -> Subscription:
        """Register *callback*; it runs immediately if already cancelled."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)
        return Subscription(self, callback)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise GenerationCancelled()

    async def wait(self) -> None:
        """Block until cancellation is requested."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless cancellation wins first.

        The losing side is cancelled. Raises ``GenerationCancelled`` when the
        token fires first, and also when it had already fired.
        """
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise GenerationCancelled()
        work = asyncio.ensure_future(awaitable)
        stop = asyncio.ensure_future(self.wait())
        try:
            await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            stop.cancel()
        if work.done():
            return work.result()
        work.cancel()
        try:
            await work
        except (asyncio.CancelledError, StopAsyncIteration):
            pass
        except Exception:
            _logger.debug("Work abandoned after cancellation raised", exc_info=True)
        raise GenerationCancelled()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            try:
                cb()
            except Exception:
                _logger.exception("Cancellation callback %r raised", cb)

    def _remove(self, callback: Callable[[], Any]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass


class CancellationTokenSource:
    """Write side of a cancellation signal. ``cancel()`` is idempotent."""

    def __init__(self) -> None:
        self.token = CancellationToken()

    def cancel(self) -> None:
        self.token._fire()

    @property
    def cancelled(self) -> bool:
        return self.token.is_cancellation_requested
