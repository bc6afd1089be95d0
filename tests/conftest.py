import asyncio
from typing import AsyncIterator, Awaitable, Callable, Iterable, Iterator, List

import pytest
import pytest_asyncio
import structlog
from structlog.testing import LogCapture

from sigcancel.exceptions import UnsupportedSignalError
from sigcancel.signals import (
    AsyncioSignalSource,
    SignalLike,
    Subscription,
    resolve_signal,
)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast unit tests")
    config.addinivalue_line(
        "markers",
        "integration: tests that raise real process signals",
    )


class FakeSignalSource:
    """In-memory signal source; ``raise_signal`` delivers synchronously."""

    def __init__(self, unsupported: Iterable[SignalLike] = ()) -> None:
        self.subscriptions: List[Subscription] = []
        self.unsupported = {resolve_signal(sig) for sig in unsupported}

    def subscribe(self, sig: SignalLike) -> Subscription:
        resolved = resolve_signal(sig)
        if resolved in self.unsupported:
            raise UnsupportedSignalError(resolved, "rejected by fake source")
        subscription = Subscription(resolved, on_close=self.subscriptions.remove)
        self.subscriptions.append(subscription)
        return subscription

    def raise_signal(self, sig: SignalLike) -> int:
        resolved = resolve_signal(sig)
        targets = [s for s in self.subscriptions if s.signal == resolved]
        for subscription in targets:
            subscription.deliver()
        return len(targets)


@pytest.fixture
def fake_source() -> FakeSignalSource:
    return FakeSignalSource()


@pytest_asyncio.fixture
async def real_source() -> AsyncIterator[AsyncioSignalSource]:
    """Shared source of the test loop; handlers are removed afterwards."""
    source = AsyncioSignalSource.for_loop()
    try:
        yield source
    finally:
        source.close()


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    """Poll a predicate on the running loop until it holds or time runs out."""

    async def _eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError(f"condition not met within {timeout}s")
            await asyncio.sleep(0.005)

    return _eventually


@pytest.fixture
def fake_source_cls() -> type[FakeSignalSource]:
    return FakeSignalSource


@pytest.fixture
def context_logs() -> Iterator[LogCapture]:
    """Capture log events with contextvars merged in (``capture_logs`` skips them)."""
    capture = LogCapture()
    structlog.contextvars.clear_contextvars()
    structlog.configure(processors=[structlog.contextvars.merge_contextvars, capture])
    try:
        yield capture
    finally:
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()
