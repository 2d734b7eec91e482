"""
Event bus for spinreel.

The worker pool and the fallback chain publish here; whoever embeds them
(a bot, a supervisor, the CLI) listens. Listeners only ever see these
events, never worker internals.
"""

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional
from enum import Enum, auto
import asyncio
import inspect
import logging
import time

logger = logging.getLogger(__name__)


class EventType(Enum):
    # Job lifecycle
    JOB_QUEUED = auto()
    JOB_STARTED = auto()
    JOB_PROGRESS = auto()
    JOB_COMPLETED = auto()
    JOB_FAILED = auto()
    JOB_TIMED_OUT = auto()

    # Pool housekeeping
    WORKER_READY = auto()
    WORKER_RETIRED = auto()
    HEALTH_SNAPSHOT = auto()
    CACHE_TRIMMED = auto()

    # Fallback chain
    TIER_FAILED = auto()
    RESULT_DELIVERED = auto()


Topic = EventType | str


@dataclass
class Event:
    """Something that happened. ``type`` may also be a plain string for ad hoc topics."""
    type: Topic
    data: dict[str, Any] = field(default_factory=dict)
    source: str = "system"
    timestamp: float = field(default_factory=time.time)


Handler = Callable[[Event], None] | Callable[[Event], Awaitable[None]]


def _remover(handlers: list[Handler], handler: Handler) -> Callable[[], None]:
    def unsubscribe() -> None:
        try:
            handlers.remove(handler)
        except ValueError:
            pass  # already gone
    return unsubscribe


class EventBus:
    """
    Publish/subscribe hub with a bounded history.

    Plain callables run inline during ``emit``. Coroutine handlers are
    scheduled as tasks on the running loop, or skipped when there is none.
    Errors raised by handlers are logged and never reach the publisher.
    """

    def __init__(self, history_limit: int = 100) -> None:
        self._by_topic: dict[Topic, list[Handler]] = defaultdict(list)
        self._wildcard: list[Handler] = []
        self._history: deque[Event] = deque(maxlen=history_limit)

    def subscribe(self, event_type: Topic, handler: Handler) -> Callable[[], None]:
        """Listen for one topic. Call the returned function to stop."""
        self._by_topic[event_type].append(handler)
        logger.debug(f"Subscribed {getattr(handler, '__name__', handler)!s} to {event_type}")
        return _remover(self._by_topic[event_type], handler)

    def subscribe_all(self, handler: Handler) -> Callable[[], None]:
        self._wildcard.append(handler)
        return _remover(self._wildcard, handler)

    def _listeners(self, event: Event) -> list[Handler]:
        # Snapshot, so handlers may unsubscribe while being called
        return [*self._by_topic.get(event.type, ()), *self._wildcard]

    def emit(self, event: Event) -> None:
        self._history.append(event)
        for handler in self._listeners(event):
            if inspect.iscoroutinefunction(handler):
                self._schedule(handler, event)
            else:
                self._call(handler, event)

    async def emit_async(self, event: Event) -> None:
        """Like ``emit`` but waits for coroutine handlers to finish."""
        self._history.append(event)
        pending = []
        for handler in self._listeners(event):
            if inspect.iscoroutinefunction(handler):
                pending.append(handler(event))
            else:
                self._call(handler, event)
        if not pending:
            return
        for outcome in await asyncio.gather(*pending, return_exceptions=True):
            if isinstance(outcome, Exception):
                logger.error(f"Async handler failed on {event.type}: {outcome}")

    def publish(self, event_type: Topic, source: str = "system", **data: Any) -> Event:
        """Shortcut: build the event from keyword data and emit it."""
        event = Event(event_type, data=data, source=source)
        self.emit(event)
        return event

    @staticmethod
    def _call(handler: Handler, event: Event) -> None:
        try:
            handler(event)
        except Exception as e:
            logger.error(f"Handler failed on {event.type}: {e}")

    @staticmethod
    def _schedule(handler: Handler, event: Event) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop, skipping async handler for {event.type}")
            return
        loop.create_task(handler(event)).add_done_callback(_report)

    def get_history(self, event_type: Optional[Topic] = None, limit: int = 10) -> list[Event]:
        """Most recent events, oldest first, optionally for a single topic."""
        events: Iterable[Event] = self._history
        if event_type is not None:
            events = (e for e in events if e.type == event_type)
        return list(events)[-limit:]

    def clear_history(self) -> None:
        self._history.clear()


def _report(task: "asyncio.Task[None]") -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Async handler failed: {task.exception()}")
