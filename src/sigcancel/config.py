"""Configuration management."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from sigcancel.signals import resolve_signal
from sigcancel.utils.logging import get_logger

logger = get_logger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("invalid_env_value", name=name, value=raw, default=default)
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw: Optional[str] = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ShutdownConfig:
    graceful_signal: str = "SIGINT"
    harsh_signal: str = "SIGTERM"
    # Upper bound for the graceful drain before the work is abandoned.
    grace_period_seconds: float = 30.0
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls) -> "ShutdownConfig":
        base = cls()
        return cls(
            graceful_signal=os.getenv("SIGCANCEL_GRACEFUL_SIGNAL", base.graceful_signal),
            harsh_signal=os.getenv("SIGCANCEL_HARSH_SIGNAL", base.harsh_signal),
            grace_period_seconds=_env_float(
                "SIGCANCEL_GRACE_PERIOD_SECONDS", base.grace_period_seconds
            ),
            log_level=os.getenv("LOG_LEVEL", base.log_level),
            log_json=_env_bool("SIGCANCEL_LOG_JSON", base.log_json),
        )

    def validate(self) -> None:
        """
        Check signal names and the grace period.

        Raises:
            UnsupportedSignalError: a signal name is unknown on this platform.
            ValueError: both phases use the same signal, or the grace period
                is not positive.
        """
        graceful = resolve_signal(self.graceful_signal)
        harsh = resolve_signal(self.harsh_signal)
        if graceful == harsh:
            raise ValueError(
                f"Graceful and harsh phases must use different signals, got {graceful.name}"
            )
        if self.grace_period_seconds <= 0:
            raise ValueError("grace_period_seconds must be positive")


__all__ = ["ShutdownConfig"]
