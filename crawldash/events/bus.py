"""Typed publish/subscribe hub shared by the session and channel managers."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Type, TypeVar

from .types import Event

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound=Event)
Handler = Callable[[E], Awaitable[None] | None]


class EventBus:
    """Dispatches events to handlers registered for their class or any base class."""

    def __init__(self) -> None:
        self._handlers: Dict[Type[Event], List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[E], handler: Handler[E]) -> Callable[[], None]:
        """Register ``handler`` for ``event_type`` and return a callable that removes it."""

        if not (isinstance(event_type, type) and issubclass(event_type, Event)):
            raise TypeError(f"{event_type!r} is not an Event type")
        self._handlers[event_type].append(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: Type[E], handler: Handler[E]) -> None:
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            self._handlers.pop(event_type, None)

    def once(self, event_type: Type[E], handler: Handler[E]) -> Callable[[], None]:
        """Register a handler that is removed after its first invocation."""

        def _wrapper(event: E) -> Awaitable[None] | None:
            self.unsubscribe(event_type, _wrapper)
            return handler(event)

        return self.subscribe(event_type, _wrapper)

    def clear(self) -> None:
        self._handlers.clear()

    def listener_count(self, event_type: Type[Event]) -> int:
        return len(self._handlers.get(event_type, ()))

    async def publish(self, event: Event) -> None:
        """Invoke every matching handler in registration order.

        Handler failures are logged and suppressed so a faulty consumer does
        not interrupt delivery to the others.
        """

        if not isinstance(event, Event):
            raise TypeError(f"{event!r} is not an Event")
        for event_type in type(event).__mro__:
            if event_type is object:
                break
            for handler in list(self._handlers.get(event_type, ())):
                try:
                    result = handler(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception:  # noqa: BLE001
                    LOGGER.exception("Event handler failed for %s: %s", type(event).__name__, handler)
