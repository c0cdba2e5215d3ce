from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable

Sleep = Callable[[float], Awaitable[Any]]


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class Debouncer:
    """Cancel-and-reschedule timer: only the last call inside the window runs."""

    def __init__(self, delay_seconds: float, *, sleep: Sleep = asyncio.sleep) -> None:
        self._delay = delay_seconds
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, func: Callable[..., Any], *args: Any) -> asyncio.Task:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(func, args))
        return self._task

    async def _run(self, func: Callable[..., Any], args: tuple[Any, ...]) -> Any:
        await self._sleep(self._delay)
        result = func(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


class Countdown:
    """One periodic timer that ticks down to zero and then fires once."""

    def __init__(
        self,
        seconds: int,
        *,
        on_finish: Callable[[], Any],
        on_tick: Callable[[int], Any] | None = None,
        interval: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.remaining = seconds
        self._on_finish = on_finish
        self._on_tick = on_tick
        self._interval = interval
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._fired = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def fired(self) -> bool:
        return self._fired

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def _run(self) -> None:
        while self.remaining > 0:
            await self._sleep(self._interval)
            self.remaining -= 1
            if self._on_tick is not None:
                self._on_tick(self.remaining)
        self._fire()

    def _fire(self) -> None:
        if self._fired:
            return
        self._fired = True
        self._on_finish()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done() and self._task is not _current_task():
            self._task.cancel()

    def finish_now(self) -> None:
        self.cancel()
        self._fire()
