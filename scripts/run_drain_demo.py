#!/usr/bin/env python3
"""
Two-phase shutdown demo: Ctrl-C starts a drain, SIGTERM (or the grace period)
cuts it short.
"""

import asyncio

from sigcancel import ShutdownConfig, ShutdownCoordinator, background
from sigcancel.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def _serve(stop_accepting, ticks: list[int]) -> None:
    while not stop_accepting.cancelled:
        ticks.append(len(ticks))
        logger.info("request_handled", count=len(ticks))
        await asyncio.sleep(1.0)


async def _flush(ticks: list[int]) -> None:
    for pending in range(len(ticks), 0, -1):
        logger.info("flushing", pending=pending)
        await asyncio.sleep(0.5)


async def _run(config: ShutdownConfig) -> None:
    coordinator = ShutdownCoordinator.from_config(background(), config)
    ticks: list[int] = []
    server = asyncio.create_task(_serve(coordinator.graceful_token, ticks))

    logger.info(
        "demo_started",
        graceful_signal=config.graceful_signal,
        harsh_signal=config.harsh_signal,
        grace_period=config.grace_period_seconds,
    )
    outcome = await coordinator.drain(
        lambda: _flush(ticks), grace_period=config.grace_period_seconds
    )
    await server
    logger.info("demo_stopped", outcome=outcome.value)


def main() -> None:
    config = ShutdownConfig.from_env()
    configure_logging(level=config.log_level, json_output=config.log_json)
    config.validate()
    asyncio.run(_run(config))


if __name__ == "__main__":
    main()
