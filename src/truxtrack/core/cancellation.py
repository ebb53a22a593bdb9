"""
Cooperative cancellation scopes.

A CancelScope is the cancellation handle threaded through every request,
race and provider attempt. Scopes form a tree: cancelling a scope cancels
all of its descendants, never its parent or siblings.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, TypeVar

from .models import TruxTrackError

logger = logging.getLogger(__name__)

T = TypeVar("T")

CancelCallback = Callable[[], Any]


class ScopeCancelled(TruxTrackError):
    """Raised from ``CancelScope.run`` when the scope is cancelled.

    Cancellation is a normal termination path, not a failure.
    """

    def __init__(self, reason: str | None = None):
        super().__init__(reason or "scope cancelled")
        self.reason = reason


class CancelScope:
    """Linked, idempotent cancellation handle.

    Features:
    - Parent/child linkage with downward cascade
    - Sync or async callbacks fired once on cancel
    - ``run()`` to race any awaitable against cancellation
    - Never reset: once cancelled, a scope stays cancelled
    """

    def __init__(self, parent: CancelScope | None = None, *, name: str | None = None) -> None:
        """Initialize the scope.

        Args:
            parent: Scope whose cancellation cascades into this one
            name: Label used in logs and reprs
        """
        self.name = name or "scope"
        self._parent = parent
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._children: list[CancelScope] = []
        self._callbacks: list[CancelCallback] = []
        self._pending: set[asyncio.Future[Any]] = set()

        if parent is not None:
            parent._adopt(self)

    def __repr__(self) -> str:
        state = f"cancelled:{self._reason}" if self.cancelled else "active"
        return f"<CancelScope {self.name} {state}>"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def parent(self) -> CancelScope | None:
        return self._parent

    def child(self, name: str | None = None) -> CancelScope:
        """Create a scope cancelled whenever this one is."""
        return CancelScope(self, name=name)

    def _adopt(self, child: CancelScope) -> None:
        if self.cancelled:
            child.cancel(self._reason)
        else:
            self._children.append(child)

    def detach(self) -> None:
        """Unlink from the parent once this scope's work has finished."""
        if self._parent is not None:
            try:
                self._parent._children.remove(self)
            except ValueError:
                pass
            self._parent = None

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    def cancel(self, reason: str | None = None) -> bool:
        """Cancel this scope and every descendant.

        Args:
            reason: Short description carried to observers

        Returns:
            True on the first call, False if already cancelled
        """
        if self._event.is_set():
            return False

        self._reason = reason
        self._event.set()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._invoke(callback)

        children, self._children = self._children, []
        for child in children:
            child.cancel(reason)

        return True

    def add_callback(self, callback: CancelCallback) -> None:
        """Run ``callback`` once on cancel, immediately if already cancelled.

        Coroutine callbacks are scheduled as tasks; see ``drain()``.
        """
        if self.cancelled:
            self._invoke(callback)
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: CancelCallback) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def _invoke(self, callback: CancelCallback) -> None:
        try:
            result = callback()
        except Exception:
            logger.exception(f"Cancel callback failed in {self.name}")
            return

        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._pending.add(future)
            future.add_done_callback(self._callback_done)

    def _callback_done(self, future: asyncio.Future[Any]) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Async cancel callback failed in {self.name}: {error!r}")

    async def drain(self) -> None:
        """Wait for async cancel callbacks scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Waiting
    # -------------------------------------------------------------------------

    async def wait(self) -> str | None:
        """Suspend until cancelled. Returns the cancel reason."""
        await self._event.wait()
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ScopeCancelled(self._reason)

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless this scope is cancelled first.

        On cancellation the inner task is cancelled without waiting for it
        to unwind, and ScopeCancelled is raised.

        Raises:
            ScopeCancelled: If the scope is or becomes cancelled
        """
        if self.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise ScopeCancelled(self._reason)

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        task.add_done_callback(_consume_result)
        raise ScopeCancelled(self._reason)


def _consume_result(future: asyncio.Future[Any]) -> None:
    # Abandoned tasks may still fail while unwinding.
    if not future.cancelled() and future.exception() is not None:
        logger.debug(f"Abandoned task finished with {future.exception()!r}")
