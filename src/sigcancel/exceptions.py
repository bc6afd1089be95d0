"""Exception hierarchy for sigcancel."""

from __future__ import annotations

from typing import Any, Optional


class SignalCancelError(Exception):
    """Base class for every error raised by sigcancel."""


class UnsupportedSignalError(SignalCancelError, ValueError):
    """A signal identifier this platform (or event loop) cannot subscribe to."""

    def __init__(self, sig: Any, detail: Optional[str] = None) -> None:
        self.sig = sig
        self.detail = detail
        message = f"Unsupported signal: {sig!r}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SignalSourceClosedError(SignalCancelError, RuntimeError):
    """Subscribing on a signal source that has already been closed."""


class TokenCancelledError(SignalCancelError):
    """Raised by ``CancelToken.raise_if_cancelled`` once the token is cancelled."""

    def __init__(self, reason: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(f"Token cancelled: {reason}" if reason else "Token cancelled")


__all__ = [
    "SignalCancelError",
    "SignalSourceClosedError",
    "TokenCancelledError",
    "UnsupportedSignalError",
]
