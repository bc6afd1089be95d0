"""Signal-to-cancellation adapter."""

from __future__ import annotations

import asyncio
import signal
from typing import Callable, Optional

from sigcancel.cancel import CancelToken, TokenView, background
from sigcancel.signals import (
    AsyncioSignalSource,
    SignalLike,
    SignalSource,
    Subscription,
    resolve_signal,
)
from sigcancel.utils.logging import get_logger, log_context

logger = get_logger(__name__)

MANUAL_REASON = "manual"


class SignalCancelAdapter:
    """
    Cancel a child token the first time any of ``signals`` is delivered.

    Construction derives the child from ``parent``, subscribes to every signal
    and starts one listener task, so it must happen on a running loop. The
    listener waits once: either a signal arrives and it cancels the token, or
    the token gets cancelled some other way (``cancel_now``, parent) and it
    simply retires. It never re-arms.

    Subscriptions are kept by the source after the listener retires, so repeat
    signals keep being absorbed instead of falling back to the default action.
    """

    def __init__(
        self,
        parent: CancelToken | TokenView,
        *signals: SignalLike,
        source: Optional[SignalSource] = None,
        name: Optional[str] = None,
    ) -> None:
        if not signals:
            raise ValueError("SignalCancelAdapter needs at least one signal")
        loop = asyncio.get_running_loop()
        resolved = tuple(resolve_signal(sig) for sig in signals)
        self._source: SignalSource = (
            source if source is not None else AsyncioSignalSource.for_loop(loop)
        )

        subscriptions: list[Subscription] = []
        try:
            for sig in resolved:
                subscriptions.append(self._source.subscribe(sig))
        except BaseException:
            for subscription in subscriptions:
                subscription.close()
            raise

        self.signals = resolved
        self.name = name or "+".join(sig.name for sig in resolved)
        self._subscriptions = tuple(subscriptions)
        self._token = parent.child()
        self._view = self._token.view()
        self._listener = loop.create_task(
            self._listen(), name=f"sigcancel:{self.name}"
        )
        logger.debug(
            "adapter_listening",
            adapter=self.name,
            signals=[sig.name for sig in resolved],
        )

    def __repr__(self) -> str:
        return f"<SignalCancelAdapter {self.name} token={self._token!r}>"

    @property
    def token(self) -> TokenView:
        """Read-only view of the owned token; cancel through ``cancel_now``."""
        return self._view

    @property
    def listening(self) -> bool:
        return not self._listener.done()

    def cancel_now(self, reason: str = MANUAL_REASON) -> bool:
        """
        Cancel the token without waiting for a signal.

        Safe from any thread, any number of times. Returns True if this call
        performed the cancellation.
        """
        return self._token.cancel(reason)

    async def wait(self) -> None:
        await self._token.wait()

    def _release(self) -> None:
        """Close every subscription so the source can drop unused handlers."""
        for subscription in self._subscriptions:
            subscription.close()

    async def _listen(self) -> None:
        with log_context(adapter=self.name):
            deliveries = [
                asyncio.create_task(subscription.wait())
                for subscription in self._subscriptions
            ]
            retired = asyncio.create_task(self._token.wait())
            try:
                done, _ = await asyncio.wait(
                    [*deliveries, retired], return_when=asyncio.FIRST_COMPLETED
                )
                delivered = [task for task in deliveries if task in done]
                if delivered:
                    sig = delivered[0].result()
                    logger.info("signal_cancelling_token", signal=sig.name)
                    self._token.cancel(f"signal {sig.name}")
            finally:
                for task in (*deliveries, retired):
                    task.cancel()
                logger.debug("listener_retired", reason=self._token.reason)


def interrupt_token(
    parent: CancelToken | TokenView | None = None,
    *,
    source: Optional[SignalSource] = None,
) -> tuple[TokenView, Callable[..., bool]]:
    """
    Return a token cancelled on the first SIGINT, plus its cancel function.

    ``parent`` defaults to a fresh background token.
    """
    adapter = SignalCancelAdapter(
        parent if parent is not None else background(),
        signal.SIGINT,
        source=source,
        name="interrupt",
    )
    return adapter.token, adapter.cancel_now


__all__ = ["MANUAL_REASON", "SignalCancelAdapter", "interrupt_token"]
