"""Cancellation handles and the envelope that bounds a whole lookup.

A :class:`CancelSignal` is the caller's way to abandon a lookup from the
outside. :func:`run_cancellable` combines it with an optional overall
timeout into one effective signal, passes that signal down to every
transport call and tears the whole operation down the moment it fires.
"""
from __future__ import annotations
import asyncio
import logging
import threading
from typing import Awaitable, Callable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Callback = Callable[[BaseException], None]


class LookupAbortedError(Exception):
    def __init__(self, message: str = "This operation was aborted") -> None:
        super().__init__(message)


class LookupTimeoutError(TimeoutError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"Operation timed out after {timeout:g} ms")
        self.timeout = timeout


class CancelSignal:
    """One-shot cancellation handle.

    ``cancel`` may be called from any thread; waiters are woken on their own
    event loop.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reason: Optional[BaseException] = None
        self._callbacks: List[Callback] = []

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[BaseException]:
        return self._reason

    def cancel(self, reason: object = None) -> None:
        if reason is None:
            reason = LookupAbortedError()
        elif not isinstance(reason, BaseException):
            reason = LookupAbortedError(str(reason))
        with self._lock:
            if self._reason is not None:
                return
            self._reason = reason
            callbacks, self._callbacks = self._callbacks, []
        # callbacks run outside the lock; they may add or remove callbacks
        for callback in callbacks:
            callback(reason)

    def add_callback(self, callback: Callback) -> None:
        with self._lock:
            if self._reason is None:
                self._callbacks.append(callback)
                return
            reason = self._reason
        callback(reason)

    def remove_callback(self, callback: Callback) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def raise_if_cancelled(self) -> None:
        if self._reason is not None:
            raise self._reason

    async def wait(self) -> BaseException:
        """Suspend until the signal fires and return its reason."""
        loop = asyncio.get_running_loop()
        fired: asyncio.Future[BaseException] = loop.create_future()

        def _settle(reason: BaseException) -> None:
            if not fired.done():
                fired.set_result(reason)

        def _wake(reason: BaseException) -> None:
            loop.call_soon_threadsafe(_settle, reason)

        self.add_callback(_wake)
        try:
            return await fired
        finally:
            self.remove_callback(_wake)


async def run_cancellable(
    operation: Callable[[Optional[CancelSignal]], Awaitable[T]],
    timeout: float | None = None,
    signal: CancelSignal | None = None,
) -> T:
    """Run ``operation`` under one effective cancellation signal.

    ``timeout`` is in milliseconds. An already cancelled ``signal`` raises
    its reason before ``operation`` starts. When the effective signal fires
    first, ``operation`` is cancelled and the trigger's reason is raised
    unwrapped.
    """
    if signal is not None:
        signal.raise_if_cancelled()
    if not timeout and signal is None:
        return await operation(None)

    effective = CancelSignal()
    loop = asyncio.get_running_loop()
    timer = loop.call_later(timeout / 1000, effective.cancel, LookupTimeoutError(timeout)) if timeout else None
    if signal is not None:
        signal.add_callback(effective.cancel)

    task = asyncio.ensure_future(operation(effective))
    watcher = asyncio.ensure_future(effective.wait())
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
        # the signal may have fired before the watcher woke; it still wins
        if effective.cancelled:
            logger.debug("Lookup cancelled: %r", effective.reason)
            raise effective.reason
        return task.result()
    finally:
        if timer is not None:
            timer.cancel()
        if signal is not None:
            signal.remove_callback(effective.cancel)
        for pending in (task, watcher):
            if not pending.done():
                pending.cancel()
        await asyncio.gather(task, watcher, return_exceptions=True)
