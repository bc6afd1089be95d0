"""Process signal subscription built on ``loop.add_signal_handler``."""

from __future__ import annotations

import asyncio
import signal
from typing import Callable, ClassVar, Optional, Protocol, Union

from sigcancel.exceptions import SignalSourceClosedError, UnsupportedSignalError
from sigcancel.utils.logging import get_logger

logger = get_logger(__name__)

SignalLike = Union[signal.Signals, int, str]


def resolve_signal(sig: SignalLike) -> signal.Signals:
    """
    Normalise a signal identifier to ``signal.Signals``.

    Accepts enum members, raw numbers and names with or without the ``SIG``
    prefix (``"SIGTERM"``, ``"term"``). Anything this platform does not define
    raises ``UnsupportedSignalError``.
    """
    if isinstance(sig, signal.Signals):
        return sig
    if isinstance(sig, bool):
        raise UnsupportedSignalError(sig)
    if isinstance(sig, int):
        try:
            return signal.Signals(sig)
        except ValueError as exc:
            raise UnsupportedSignalError(sig, "unknown signal number") from exc
    if isinstance(sig, str):
        name = sig.strip().upper()
        if not name.startswith("SIG"):
            name = f"SIG{name}"
        try:
            return signal.Signals[name]
        except KeyError as exc:
            raise UnsupportedSignalError(sig, "not defined on this platform") from exc
    raise UnsupportedSignalError(sig, f"expected signal, int or str, got {type(sig).__name__}")


class Subscription:
    """
    Delivery latch for one signal and one subscriber.

    The first delivery is kept until consumed by ``wait()``; further raises of
    the same signal are absorbed.
    """

    def __init__(
        self,
        sig: signal.Signals,
        on_close: Optional[Callable[[Subscription], None]] = None,
    ) -> None:
        self.signal = sig
        self.closed = False
        self._on_close = on_close
        self._delivered = asyncio.Event()

    def __repr__(self) -> str:
        return (
            f"<Subscription {self.signal.name} delivered={self.delivered} "
            f"closed={self.closed}>"
        )

    @property
    def delivered(self) -> bool:
        return self._delivered.is_set()

    def deliver(self) -> None:
        if not self.closed:
            self._delivered.set()

    async def wait(self) -> signal.Signals:
        await self._delivered.wait()
        return self.signal

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._on_close is not None:
            self._on_close(self)


class SignalSource(Protocol):
    """Capability to subscribe to process signals."""

    def subscribe(self, sig: SignalLike) -> Subscription:
        """Register interest in ``sig``; raises UnsupportedSignalError if impossible."""
        ...


class AsyncioSignalSource:
    """
    Fan-out of process signals to any number of subscriptions on one loop.

    ``add_signal_handler`` keeps a single handler per signal number, so a loop
    needs exactly one source that owns those handlers; use ``for_loop`` to get
    it. A handler is removed when its last subscription closes, or by
    ``close()``.
    """

    _by_loop: ClassVar[dict[asyncio.AbstractEventLoop, AsyncioSignalSource]] = {}

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._subscribers: dict[signal.Signals, list[Subscription]] = {}
        self._closed = False

    @classmethod
    def for_loop(
        cls, loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> AsyncioSignalSource:
        """Return the shared source of ``loop`` (the running loop by default)."""
        loop = loop or asyncio.get_running_loop()
        for stale in [known for known in cls._by_loop if known.is_closed()]:
            del cls._by_loop[stale]
        source = cls._by_loop.get(loop)
        if source is None or source.closed:
            source = cls(loop)
            cls._by_loop[loop] = source
        return source

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def signals(self) -> tuple[signal.Signals, ...]:
        """Signals this source currently holds a loop handler for."""
        return tuple(self._subscribers)

    def subscribe(self, sig: SignalLike) -> Subscription:
        if self._closed:
            raise SignalSourceClosedError("Signal source is closed")
        resolved = resolve_signal(sig)
        subscribers = self._subscribers.get(resolved)
        if subscribers is None:
            self._install(resolved)
            subscribers = self._subscribers[resolved] = []
        subscription = Subscription(resolved, on_close=self._discard)
        subscribers.append(subscription)
        return subscription

    def close(self) -> None:
        """Remove every installed handler and close all open subscriptions."""
        if self._closed:
            return
        self._closed = True
        subscribers, self._subscribers = self._subscribers, {}
        for sig, subscriptions in subscribers.items():
            if not self._loop.is_closed():
                self._loop.remove_signal_handler(sig)
            logger.debug("signal_handler_removed", signal=sig.name)
            for subscription in subscriptions:
                subscription.closed = True
        if self._by_loop.get(self._loop) is self:
            del self._by_loop[self._loop]

    def _install(self, sig: signal.Signals) -> None:
        try:
            self._loop.add_signal_handler(sig, self._dispatch, sig)
        except (ValueError, RuntimeError, NotImplementedError) as exc:
            raise UnsupportedSignalError(sig, str(exc) or type(exc).__name__) from exc
        logger.debug("signal_handler_installed", signal=sig.name)

    def _dispatch(self, sig: signal.Signals) -> None:
        subscriptions = list(self._subscribers.get(sig, ()))
        logger.info("signal_received", signal=sig.name, subscribers=len(subscriptions))
        for subscription in subscriptions:
            subscription.deliver()

    def _discard(self, subscription: Subscription) -> None:
        sig = subscription.signal
        subscriptions = self._subscribers.get(sig)
        if subscriptions is None or subscription not in subscriptions:
            return
        subscriptions.remove(subscription)
        if not subscriptions:
            # Last subscriber gone: hand the signal back to its default action.
            del self._subscribers[sig]
            if not self._loop.is_closed():
                self._loop.remove_signal_handler(sig)
            logger.debug("signal_handler_removed", signal=sig.name)


__all__ = [
    "AsyncioSignalSource",
    "SignalLike",
    "SignalSource",
    "Subscription",
    "resolve_signal",
]
