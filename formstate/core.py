import asyncio
import logging
from typing import Any, Callable, Optional

from formstate.exceptions import global_error_handler

logger = logging.getLogger(__name__)

# Global state for reactive system
_current_effect = None
_trackable = False
_batch_updates_active = False
_batch_updates_queue = {}
_global_error_handler = global_error_handler


def set_global_error_handler(handler: Optional[Callable[[Exception], None]]):
    """Sets a global error handler for uncaught exceptions in effects and tasks."""
    global _global_error_handler
    _global_error_handler = handler or global_error_handler


def handle_error(error: Exception, description: str = None) -> None:
    if _global_error_handler:
        _global_error_handler(error, description)
    else:
        logger.error("%s: %s", description, error)


# Scheduler for batching effect re-runs
class Scheduler:
    def __init__(self):
        self.queue = []
        self.scheduled = False

    def enqueue(self, task):
        if task not in self.queue:
            self.queue.append(task)
        if self.scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: effects run synchronously
            self._run_pending()
            return
        self.scheduled = True
        loop.create_task(self.flush())

    async def flush(self):
        try:
            # Allow the current handler to finish its writes first
            await asyncio.sleep(0)
            self._run_pending()
        finally:
            self.scheduled = False

    def _run_pending(self):
        while self.queue:
            # Snapshot the current queue to avoid infinite loops if tasks re-enqueue
            tasks = list(self.queue)
            self.queue.clear()

            for task in tasks:
                try:
                    if hasattr(task, 'run'):
                        task.run()
                    elif callable(task):
                        task()
                except Exception as e:
                    handle_error(e, "Error executing scheduled task")


_scheduler = Scheduler()


async def settle() -> None:
    """Waits until every pending effect has run."""
    while _scheduler.scheduled or _scheduler.queue:
        await asyncio.sleep(0)


def batch_updates(fn):
    global _batch_updates_active, _batch_updates_queue
    prev_state = _batch_updates_active
    _batch_updates_active = True
    try:
        return fn()
    finally:
        _batch_updates_active = prev_state
        if not _batch_updates_active:
            queue_to_process = list(_batch_updates_queue.items())
            _batch_updates_queue.clear()
            for signal, new_value in queue_to_process:
                signal._set_value_internal(new_value)


class Signal:
    __slots__ = ('_subscribers', '_after_callbacks', '_value', '__weakref__')

    def __init__(self, initial_value: Any):
        self._subscribers = set()
        self._after_callbacks = []
        self._value = initial_value

    def __call__(self) -> Any:
        if _trackable and _current_effect is not None:
            self._subscribers.add(_current_effect)
            _current_effect.dependencies.add(self)
        return self.peek()

    get = __call__

    def peek(self):
        # Inside batch_updates, readers see the pending value
        return _batch_updates_queue.get(self, self._value)

    def set(self, new_value: Any) -> None:
        queue_update(self, new_value)

    def _set_value_internal(self, new_value):
        if self._value == new_value:
            return

        self._value = new_value

        for subscriber in list(self._subscribers):
            subscriber.dirty = True
            _scheduler.enqueue(subscriber)

        for callback in list(self._after_callbacks):
            try:
                callback()
            except Exception as e:
                handle_error(e, "Error in _after_callbacks")


def create_signal(initial_value: Any):
    signal = Signal(initial_value)
    return signal, signal.set


def queue_update(signal, new_value):
    if _batch_updates_active:
        _batch_updates_queue[signal] = new_value
    else:
        signal._set_value_internal(new_value)


class Effect:
    __slots__ = ('fn', 'dependencies', 'is_running', 'disposed', 'dirty', '__weakref__')

    def __init__(self, fn: Callable[[], Any]):
        self.fn = fn
        self.dependencies: set = set()
        self.is_running = False
        self.disposed = False
        self.dirty = False

    def run(self):
        if self.disposed or self.is_running:
            return

        self.is_running = True
        self.dirty = False
        global _current_effect, _trackable
        prev_effect = _current_effect
        prev_trackable = _trackable
        _current_effect = self

        self._cleanup()

        try:
            _trackable = True
            self.fn()
        except Exception as e:
            handle_error(e, "Error running effect")
        finally:
            _trackable = prev_trackable
            _current_effect = prev_effect
            self.is_running = False

    def _cleanup(self):
        for signal in list(self.dependencies):
            signal._subscribers.discard(self)
        self.dependencies.clear()

    def dispose(self):
        if self.disposed:
            return
        self.disposed = True
        self._cleanup()


def create_effect(fn: Callable[[], Any]) -> Effect:
    effect = Effect(fn)
    effect.run()
    return effect


def untrack(fn: Callable[[], Any]) -> Any:
    global _trackable
    if not callable(fn):
        raise TypeError(f"untrack: expected callable, got {type(fn).__name__}")
    prev_tracking = _trackable
    _trackable = False
    try:
        return fn()
    finally:
        _trackable = prev_tracking


def after_update(signal: Signal, callback: Callable[[], None]) -> Callable[[], None]:
    """Registers a callback that runs synchronously after every change of `signal`.

    Returns a function that removes the callback again.
    """
    signal._after_callbacks.append(callback)

    def remove():
        if callback in signal._after_callbacks:
            signal._after_callbacks.remove(callback)

    return remove
