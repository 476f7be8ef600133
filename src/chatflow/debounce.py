"""Quiet-period scheduling for recomputations triggered by edits."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_QUIET_PERIOD_S = 0.25


class Debouncer:
    """Run an async callback once edits have been quiet for ``delay`` seconds.

    Each ``trigger`` cancels the pending wait and starts a new one, so only the
    last edit of a burst reaches the callback.
    """

    def __init__(
        self,
        callback: Callable[..., Awaitable[Any]],
        delay: float = DEFAULT_QUIET_PERIOD_S,
    ) -> None:
        self._callback = callback
        self._delay = delay
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self, *args: Any) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(args))

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush(self) -> None:
        """Wait for the pending call, if any, to finish."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def _run(self, args: tuple) -> None:
        await asyncio.sleep(self._delay)
        await self._callback(*args)


class InstructionEstimator:
    """Keep a token estimate for instruction text current while it is edited."""

    def __init__(
        self,
        estimate: Callable[[str], Awaitable[int]],
        delay: float = DEFAULT_QUIET_PERIOD_S,
    ) -> None:
        self._estimate = estimate
        self._debouncer = Debouncer(self._recompute, delay)
        self.tokens: int | None = None
        self.error: str | None = None
        self.text: str | None = None  # text the current estimate belongs to

    def edit(self, text: str) -> None:
        """Record an edit; the estimate refreshes after the quiet period."""
        self._debouncer.trigger(text)

    async def flush(self) -> None:
        await self._debouncer.flush()

    def cancel(self) -> None:
        self._debouncer.cancel()

    async def _recompute(self, text: str) -> None:
        try:
            tokens = await self._estimate(text)
        except Exception as e:
            logger.warning("Failed to estimate instruction tokens: %s", e)
            self.error = str(e) or "Failed to estimate instruction tokens"
            return
        self.tokens = tokens
        self.text = text
        self.error = None
