"""Cooperative cancellation tokens with parent/child propagation."""

from __future__ import annotations

import asyncio
import threading
import weakref
from contextlib import suppress
from functools import partial
from typing import Callable, Optional

from sigcancel.exceptions import TokenCancelledError
from sigcancel.utils.logging import get_logger

logger = get_logger(__name__)

DEADLINE_EXCEEDED = "deadline exceeded"

DoneCallback = Callable[["CancelToken"], None]


def _noop() -> None:
    return None


def _resolve(waiter: asyncio.Future[None]) -> None:
    if not waiter.done():
        waiter.set_result(None)


class CancelToken:
    """
    Cancellation scope shared between whoever may cancel it and any number of
    observers.

    Cancellation is a one-way latch: the first ``cancel()`` flips the token and
    every later call is a no-op. Cancelling a token cancels all of its live
    descendants; cancelling a child never touches the parent.

    The token is safe to cancel from any thread. Async observers are woken on
    their own loop, sync observers through ``wait_blocking``.
    """

    def __init__(self, parent: Optional[CancelToken] = None) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._reason: Optional[str] = None
        self._callbacks: list[DoneCallback] = []
        self._children: weakref.WeakSet[CancelToken] = weakref.WeakSet()
        self._timer: Optional[threading.Timer] = None
        self.parent = parent
        if parent is not None:
            parent._adopt(self)

    def __repr__(self) -> str:
        state = f"cancelled reason={self._reason!r}" if self.cancelled else "active"
        return f"<CancelToken {state}>"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        """Reason given by the cancel call that won, or None while active."""
        return self._reason

    def child(self, timeout: Optional[float] = None) -> CancelToken:
        """
        Derive a child token.

        Args:
            timeout: Seconds after which the child cancels itself with reason
                ``"deadline exceeded"``. Zero or negative cancels it at once.
        """
        token = CancelToken(parent=self)
        if timeout is not None and not token.cancelled:
            if timeout <= 0:
                token.cancel(DEADLINE_EXCEEDED)
            else:
                token._arm_deadline(timeout)
        return token

    def cancel(self, reason: Optional[str] = None) -> bool:
        """
        Cancel this token and all of its descendants.

        Returns True only for the call that performed the transition; every
        other call (concurrent or later) returns False and has no effect.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
            children = list(self._children)
            self._children.clear()
            timer, self._timer = self._timer, None

        if timer is not None:
            timer.cancel()
        logger.debug("token_cancelled", reason=reason, children=len(children))

        for child in children:
            child.cancel(reason)
        for callback in callbacks:
            self._run_callback(callback)
        return True

    def view(self) -> TokenView:
        """Return a read-only view of this token."""
        return TokenView(self)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TokenCancelledError(self._reason)

    def add_done_callback(self, fn: DoneCallback) -> Callable[[], None]:
        """
        Run ``fn(token)`` once the token is cancelled.

        Runs immediately (in the caller's thread) if the token is already
        cancelled, otherwise in the thread that cancels it. Returns a function
        that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(fn)
                return partial(self._remove_callback, fn)
        self._run_callback(fn)
        return _noop

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self._event.is_set():
            return
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake(_token: CancelToken) -> None:
            loop.call_soon_threadsafe(_resolve, waiter)

        remove = self.add_done_callback(_wake)
        try:
            await waiter
        finally:
            remove()

    def wait_blocking(self, timeout: Optional[float] = None) -> bool:
        """Block the calling thread until cancelled; returns the cancelled state."""
        return self._event.wait(timeout)

    def _adopt(self, child: CancelToken) -> None:
        with self._lock:
            if not self._event.is_set():
                self._children.add(child)
                return
            reason = self._reason
        child.cancel(reason)

    def _arm_deadline(self, timeout: float) -> None:
        timer = threading.Timer(timeout, self.cancel, kwargs={"reason": DEADLINE_EXCEEDED})
        timer.daemon = True
        with self._lock:
            if self._event.is_set():
                return
            self._timer = timer
        # A cancel racing in here has already stopped the timer; start() is then inert.
        timer.start()

    def _remove_callback(self, fn: DoneCallback) -> None:
        with self._lock:
            with suppress(ValueError):
                self._callbacks.remove(fn)

    def _run_callback(self, fn: DoneCallback) -> None:
        try:
            fn(self)
        except Exception:  # noqa: BLE001
            logger.exception("done_callback_failed", callback=repr(fn))


class TokenView:
    """
    Observer-only face of a ``CancelToken``: everything except ``cancel``.

    Handed out by adapters so that waiting on a token does not also grant the
    right to cancel it. Children derived from a view are ordinary tokens.
    """

    __slots__ = ("_token",)

    def __init__(self, token: CancelToken) -> None:
        self._token = token

    def __repr__(self) -> str:
        return f"<TokenView of {self._token!r}>"

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._token.reason

    @property
    def parent(self) -> Optional[CancelToken]:
        return self._token.parent

    def child(self, timeout: Optional[float] = None) -> CancelToken:
        return self._token.child(timeout)

    def raise_if_cancelled(self) -> None:
        self._token.raise_if_cancelled()

    def add_done_callback(self, fn: DoneCallback) -> Callable[[], None]:
        return self._token.add_done_callback(fn)

    async def wait(self) -> None:
        await self._token.wait()

    def wait_blocking(self, timeout: Optional[float] = None) -> bool:
        return self._token.wait_blocking(timeout)


def background() -> CancelToken:
    """Return a fresh root token that is never cancelled by anything else."""
    return CancelToken()


__all__ = ["CancelToken", "DEADLINE_EXCEEDED", "TokenView", "background"]
