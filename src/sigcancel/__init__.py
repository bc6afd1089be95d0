"""sigcancel - turn process termination signals into cooperative cancellation."""

__version__ = "0.1.0"

from .adapter import SignalCancelAdapter, interrupt_token  # noqa: E402
from .cancel import CancelToken, TokenView, background  # noqa: E402
from .config import ShutdownConfig  # noqa: E402
from .coordinator import DrainOutcome, ShutdownCoordinator  # noqa: E402
from .exceptions import (  # noqa: E402
    SignalCancelError,
    SignalSourceClosedError,
    TokenCancelledError,
    UnsupportedSignalError,
)
from .signals import AsyncioSignalSource, Subscription, resolve_signal  # noqa: E402

__all__ = [
    "AsyncioSignalSource",
    "CancelToken",
    "DrainOutcome",
    "ShutdownConfig",
    "ShutdownCoordinator",
    "SignalCancelAdapter",
    "SignalCancelError",
    "SignalSourceClosedError",
    "Subscription",
    "TokenCancelledError",
    "TokenView",
    "UnsupportedSignalError",
    "background",
    "interrupt_token",
    "resolve_signal",
]
