"""Dispatch of side-effecting platform calls.

Once a call has been handed to the platform it runs to completion, even
if the request that issued it is cancelled. The caller sees the
cancellation; the call's result is discarded.
"""

import asyncio
import logging
from typing import Awaitable, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InFlight:
    """Tracks platform calls that outlived the request that made them."""

    def __init__(self):
        self._orphans: Set[asyncio.Future] = set()

    def __len__(self) -> int:
        return len(self._orphans)

    async def run(self, call: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Await ``call``, shielding it from cancellation of the caller.

        Args:
            call: The platform coroutine, already created
            timeout: Optional bound in seconds (asyncio.TimeoutError when exceeded)
        """
        if timeout is not None:
            call = asyncio.wait_for(call, timeout=timeout)
        task = asyncio.ensure_future(call)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                self._orphans.add(task)
                task.add_done_callback(self._discard)
            raise

    def _discard(self, task: asyncio.Future) -> None:
        self._orphans.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Abandoned platform call failed: {task.exception()}")

    async def drain(self) -> None:
        """Wait for every abandoned call to finish."""
        if self._orphans:
            logger.debug(f"Waiting for {len(self._orphans)} abandoned platform call(s)")
            await asyncio.gather(*list(self._orphans), return_exceptions=True)
