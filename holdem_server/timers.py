from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

LOGGER = logging.getLogger("holdem_server")

TimerCallback = Callable[[int], Awaitable[None]]


class TimerSlot:
    """Holds at most one pending timer of a given kind.

    Every schedule or cancel bumps the slot's token. The callback receives the
    token it was scheduled with and must check :meth:`is_current` once it holds
    the table lock, since a cancel can land while it waits for that lock.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._token = 0

    @property
    def pending(self) -> bool:
        return self._task is not None

    def schedule(self, delay: float, callback: TimerCallback) -> int:
        self.cancel()
        token = self._token
        self._task = asyncio.get_running_loop().create_task(self._run(delay, token, callback))
        LOGGER.debug("Timer %s scheduled in %.1fs (token=%s)", self.name, delay, token)
        return token

    def cancel(self) -> None:
        self._token += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def is_current(self, token: int) -> bool:
        return token == self._token

    async def _run(self, delay: float, token: int, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        if token != self._token:
            return
        # Detach first so the callback can cancel or reschedule this slot safely.
        self._task = None
        await callback(token)
