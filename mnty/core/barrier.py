# mnty/core/barrier.py
from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence

from mnty.core.observable import Observable

__all__: Sequence[str] = ('wait_once_for', 'LifecycleBarrier')
logger = logging.getLogger(__name__)


def wait_once_for(emitter: Observable, event: str) -> asyncio.Future:
    """A future resolved the first time ``emitter`` fires ``event``."""
    future = asyncio.get_running_loop().create_future()

    def _resolve(*_args: object) -> None:
        if not future.done():
            future.set_result(None)

    emitter.on(event, _resolve, once=True)
    return future


class LifecycleBarrier:
    """
    Join over one lifecycle event of many emitters.

    ``join()`` completes once every added emitter has fired the event. With
    nothing added it completes immediately; if any emitter never fires, it
    never completes.
    """

    def __init__(self, event: str) -> None:
        self.event = event
        self._waits: List[asyncio.Future] = []

    def add(self, emitter: Observable) -> asyncio.Future:
        wait = wait_once_for(emitter, self.event)
        self._waits.append(wait)
        return wait

    def discard(self, wait: asyncio.Future) -> None:
        """Drop a wait added earlier; the join no longer depends on it."""
        if wait in self._waits:
            self._waits.remove(wait)
            wait.cancel()

    @property
    def pending(self) -> int:
        return sum(1 for wait in self._waits if not wait.done())

    def __len__(self) -> int:
        return len(self._waits)

    async def join(self) -> None:
        if not self._waits:
            return
        logger.debug('Waiting for %d "%s" notification(s)', self.pending, self.event)
        await asyncio.gather(*self._waits)
