"""Signal bus for engine notifications.

Engine mutations and ticks publish signals while they hold the scheduler
lock and flush once they release it, so publishing and flushing may happen
on different threads. Handlers always run outside the bus lock.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

STATE_CHANGED = "state_changed"
RESOURCE_COLLECTED = "resource_collected"
RECIPE_DISCOVERED = "recipe_discovered"
LEVEL_UP = "level_up"
TIER_ADVANCED = "tier_advanced"
BUILDING_PLACED = "building_placed"
BUILDING_REMOVED = "building_removed"
BUILDING_ROTATED = "building_rotated"
GAME_LOADED = "game_loaded"


@dataclass(frozen=True)
class Signal:
    name: str
    data: dict[str, Any] = field(default_factory=dict)


SignalHandler = Callable[[str, dict[str, Any]], None]
SignalListener = Callable[[Signal], None]


class SignalBus:
    """Queues signals and delivers them on ``flush``.

    Names in ``coalesce`` are collapsed within one flush: publishing one
    drops any copy still queued, so the delivered copy is the last one and
    comes after every signal published before it.
    """

    def __init__(self, coalesce: Iterable[str] = ()) -> None:
        self._coalesce = frozenset(coalesce)
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[SignalHandler]] = {}
        self._listeners: list[SignalListener] = []
        self._queue: list[Signal] = []

    def subscribe(self, signal_name: str, handler: SignalHandler) -> None:
        with self._lock:
            self._subscribers.setdefault(signal_name, []).append(handler)

    def unsubscribe(self, signal_name: str, handler: SignalHandler) -> None:
        with self._lock:
            handlers = self._subscribers.get(signal_name, [])
            if handler in handlers:
                handlers.remove(handler)

    def listen(self, listener: SignalListener) -> None:
        """Receive every signal, after the handlers subscribed to its name."""
        with self._lock:
            self._listeners.append(listener)

    def unlisten(self, listener: SignalListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, signal_name: str, **data: Any) -> None:
        with self._lock:
            if signal_name in self._coalesce:
                self._queue = [s for s in self._queue if s.name != signal_name]
            self._queue.append(Signal(signal_name, data))

    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def flush(self) -> list[Signal]:
        """Deliver everything queued so far and return it.

        Signals published by handlers wait for the next flush.
        """
        with self._lock:
            batch = self._queue
            self._queue = []
            deliveries = [
                (signal, list(self._subscribers.get(signal.name, ())))
                for signal in batch
            ]
            listeners = list(self._listeners)
        for signal, handlers in deliveries:
            for handler in handlers:
                handler(signal.name, signal.data)
            for listener in listeners:
                listener(signal)
        return batch

    def clear(self) -> None:
        with self._lock:
            self._queue = []
