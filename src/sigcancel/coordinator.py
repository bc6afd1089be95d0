"""Two-phase (graceful, then harsh) shutdown built from two adapters."""

from __future__ import annotations

import asyncio
import signal
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from sigcancel.adapter import SignalCancelAdapter
from sigcancel.cancel import CancelToken, TokenView
from sigcancel.signals import SignalLike, SignalSource, resolve_signal
from sigcancel.utils.logging import get_logger, log_context

if TYPE_CHECKING:
    from sigcancel.config import ShutdownConfig

logger = get_logger(__name__)


class DrainOutcome(str, Enum):
    """How a ``ShutdownCoordinator.drain`` call ended."""

    COMPLETED = "completed"
    FORCED_BY_SIGNAL = "forced_by_signal"
    DEADLINE_EXCEEDED = "deadline_exceeded"


class ShutdownCoordinator:
    """
    Graceful and harsh shutdown tokens derived side by side from one parent.

    The graceful adapter listens for SIGINT, the harsh one for SIGTERM. The two
    tokens are siblings: cancelling one leaves the other alone, cancelling the
    parent cancels both.
    """

    def __init__(
        self,
        parent: CancelToken | TokenView,
        *,
        source: Optional[SignalSource] = None,
        graceful_signal: SignalLike = signal.SIGINT,
        harsh_signal: SignalLike = signal.SIGTERM,
    ) -> None:
        if resolve_signal(graceful_signal) is resolve_signal(harsh_signal):
            raise ValueError("Graceful and harsh phases must use different signals")
        self._parent = parent
        self._graceful = SignalCancelAdapter(
            parent, graceful_signal, source=source, name="graceful"
        )
        try:
            self._harsh = SignalCancelAdapter(
                parent, harsh_signal, source=source, name="harsh"
            )
        except BaseException:
            # Nobody can reach the graceful adapter now.
            self._graceful.cancel_now("coordinator construction failed")
            self._graceful._release()
            raise

    @classmethod
    def from_config(
        cls,
        parent: CancelToken | TokenView,
        config: ShutdownConfig,
        *,
        source: Optional[SignalSource] = None,
    ) -> ShutdownCoordinator:
        return cls(
            parent,
            source=source,
            graceful_signal=config.graceful_signal,
            harsh_signal=config.harsh_signal,
        )

    def __repr__(self) -> str:
        return f"<ShutdownCoordinator graceful={self._graceful!r} harsh={self._harsh!r}>"

    @property
    def parent(self) -> CancelToken | TokenView:
        return self._parent

    @property
    def graceful(self) -> SignalCancelAdapter:
        return self._graceful

    @property
    def harsh(self) -> SignalCancelAdapter:
        return self._harsh

    @property
    def graceful_token(self) -> TokenView:
        """Cancelled on the interrupt signal: stop taking new work."""
        return self._graceful.token

    @property
    def harsh_token(self) -> TokenView:
        """Cancelled on the terminate signal: abort whatever is still running."""
        return self._harsh.token

    async def drain(
        self,
        graceful_work: Callable[[], Awaitable[Any]],
        *,
        grace_period: Optional[float] = None,
    ) -> DrainOutcome:
        """
        Run ``graceful_work`` once shutdown begins, bounded by the harsh phase.

        Waits for the graceful token (or the harsh one, whichever comes
        first). If the harsh token is already cancelled the work is skipped.
        Otherwise the work runs until it finishes, the harsh token is
        cancelled, or ``grace_period`` seconds pass (``None`` sets no deadline);
        in the last two cases the work task is cancelled. Exceptions raised by
        the work propagate. Events logged meanwhile carry ``phase="drain"``.
        """
        with log_context(phase="drain"):
            return await self._drain(graceful_work, grace_period)

    async def _drain(
        self,
        graceful_work: Callable[[], Awaitable[Any]],
        grace_period: Optional[float],
    ) -> DrainOutcome:
        graceful_wait = asyncio.create_task(self.graceful_token.wait())
        harsh = asyncio.create_task(self.harsh_token.wait())
        try:
            await asyncio.wait(
                [graceful_wait, harsh], return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            harsh.cancel()
            raise
        finally:
            graceful_wait.cancel()

        if self.harsh_token.cancelled:
            harsh.cancel()
            logger.warning(
                "drain_forced",
                outcome=DrainOutcome.FORCED_BY_SIGNAL.value,
                reason=self.harsh_token.reason,
                skipped=True,
            )
            return DrainOutcome.FORCED_BY_SIGNAL

        logger.info(
            "drain_started",
            reason=self.graceful_token.reason,
            grace_period=grace_period,
        )
        work = asyncio.ensure_future(graceful_work())
        try:
            done, _ = await asyncio.wait(
                [work, harsh],
                timeout=grace_period,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            harsh.cancel()

        if work in done:
            work.result()
            logger.info("drain_completed")
            return DrainOutcome.COMPLETED

        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        outcome = (
            DrainOutcome.FORCED_BY_SIGNAL
            if self.harsh_token.cancelled
            else DrainOutcome.DEADLINE_EXCEEDED
        )
        logger.warning(
            "drain_forced",
            outcome=outcome.value,
            reason=self.harsh_token.reason,
            skipped=False,
        )
        return outcome


__all__ = ["DrainOutcome", "ShutdownCoordinator"]
