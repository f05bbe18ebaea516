# mnty/core/observable.py
from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence, Set

__all__: Sequence[str] = ('Observable',)
logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class _Listener:
    handler: Callable[..., Any]
    once: bool = False


class Observable:
    """
    Named events with per-instance listeners.

    Listeners run synchronously in registration order. A listener registered
    with ``once=True`` is dropped before it is called, so it runs at most once
    even if the event is fired again from inside the handler. Coroutine
    handlers are scheduled on the running loop.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[_Listener]] = defaultdict(list)
        self._events_suspended = False
        self._suspended_events: Set[str] = set()
        self._handler_tasks: Set[asyncio.Task] = set()

    def on(self, event: str, handler: Callable[..., Any], once: bool = False) -> None:
        self._listeners[event].append(_Listener(handler, once))

    def un(self, event: str, handler: Callable[..., Any]) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        for index, listener in enumerate(listeners):
            if listener.handler == handler:
                del listeners[index]
                break
        if not listeners:
            del self._listeners[event]

    def fire(self, event: str, *args: Any) -> None:
        if self._events_suspended or event in self._suspended_events:
            logger.debug('[%s] event "%s" suspended, not firing', type(self).__name__, event)
            return

        listeners = tuple(self._listeners.get(event, ()))
        if not listeners:
            return

        for listener in listeners:
            if listener.once:
                self._discard(event, listener)
            try:
                result = listener.handler(*args)
                if inspect.isawaitable(result):
                    self._track(asyncio.ensure_future(result))
            except Exception as exc:
                logger.exception('[%s] Error in handler for event "%s": %s', type(self).__name__, event, exc)

    def has_listeners(self, event: str) -> bool:
        return bool(self._listeners.get(event))

    def suspend_events(self) -> None:
        self._events_suspended = True

    def resume_events(self) -> None:
        self._events_suspended = False

    def suspend_event(self, event: str) -> None:
        self._suspended_events.add(event)

    def resume_event(self, event: str) -> None:
        self._suspended_events.discard(event)

    def _discard(self, event: str, listener: _Listener) -> None:
        listeners = self._listeners.get(event)
        if listeners is None:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event]

    def _track(self, task: asyncio.Future) -> None:
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)
