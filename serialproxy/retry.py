"""Bounded polling: call a probe until it succeeds or the budget runs out."""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Union

logger = logging.getLogger("serialproxy")

Probe = Callable[[], Union[bool, Awaitable[bool]]]


async def retry(
    probe: Probe,
    interval_ms: float,
    timeout_ms: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bool:
    """Poll ``probe`` every ``interval_ms`` until it returns true.

    The budget is counted in attempts, not wall-clock time: the loop gives up
    once ``attempts * interval_ms`` exceeds ``timeout_ms``. Time spent inside
    the probe itself is not charged against the budget.

    A non-positive ``interval_ms`` would never exhaust the budget, so it is
    rejected with ValueError.

    Returns False on timeout; exceptions raised by the probe propagate.
    """
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be positive, got {interval_ms}")
    attempts = 0
    while True:
        result = probe()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return True
        await sleep(interval_ms / 1000)
        attempts += 1
        if attempts * interval_ms > timeout_ms:
            logger.debug("Gave up after %d attempts (%s ms)", attempts, timeout_ms)
            return False
