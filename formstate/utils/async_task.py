import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Set

from formstate.core import handle_error
from formstate.exceptions import SchedulingError

logger = logging.getLogger(__name__)


class ValidationScheduler:
    """
    Defers validations to later turns of the running event loop.

    Each task first yields (or sleeps for `delay_ms`) so it observes the state
    written by the handler that scheduled it. Tasks are keyed, usually by
    field name: scheduling a new task for a key cancels that key's previous
    task unless the previous task is the one doing the scheduling.
    Failures are routed to the global error handler; nothing is re-raised into
    the event loop.
    """

    def __init__(self):
        self._by_key: Dict[Hashable, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(
            self,
            key: Hashable,
            coroutine_func: Callable[..., Awaitable[Any]],
            *args,
            delay_ms: int = 0,
    ) -> asyncio.Task:
        """
        Run `coroutine_func(*args)` after the current handler returns.

        Raises:
            SchedulingError: when no event loop is running.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            raise SchedulingError(
                f"Cannot schedule validation for '{key}': no running event loop"
            ) from None

        previous = self._by_key.get(key)
        if previous is not None and not previous.done() and previous is not _current_task():
            logger.debug("Superseding pending validation for '%s'", key)
            previous.cancel()

        async def _deferred():
            await asyncio.sleep(delay_ms / 1000 if delay_ms else 0)
            return await coroutine_func(*args)

        task = asyncio.ensure_future(_deferred())
        self._by_key[key] = task
        self._tasks.add(task)
        task.add_done_callback(partial(self._on_done, key))
        return task

    def _on_done(self, key: Hashable, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if self._by_key.get(key) is task:
            del self._by_key[key]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            handle_error(error, f"Scheduled validation for '{key}' failed")

    def cancel(self, key: Hashable) -> None:
        task = self._by_key.pop(key, None)
        if task is not None and task is not _current_task():
            task.cancel()

    def cancel_all(self) -> None:
        current = _current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._by_key.clear()

    async def wait(self) -> None:
        """Waits for every scheduled task, including ones scheduled while waiting."""
        current = _current_task()
        while True:
            tasks = [task for task in self._tasks if task is not current]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
