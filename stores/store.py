"""
Reactive values with reference-counted activation.

A store holds a current value and a list of subscribers. ``subscribe`` calls
the subscriber immediately with the current value and returns an idempotent
unsubscribe function. The optional ``start`` callback runs when the first
subscriber arrives (0 -> 1) and receives the store's setter; whatever it
returns is called when the last subscriber leaves (1 -> 0).

Values set while a notification round is in progress are queued and delivered
after the current round, so every subscriber sees updates in the order they
were made.
"""

import logging
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Subscriber = Callable[[Any], None]
Unsubscriber = Callable[[], None]
StartFunction = Callable[[Callable[[Any], None]], Optional[Callable[[], None]]]

_IMMUTABLE_TYPES = (str, bytes, int, float, bool, type(None), tuple, frozenset)

# Shared across stores; drained by whichever set() started filling it
_subscriber_queue: List[Tuple["Readable", "_Subscription", Any]] = []


def _noop():
    pass


def safe_not_equal(old: Any, new: Any) -> bool:
    """Containers and objects always count as changed; plain values compare by equality."""
    if isinstance(new, _IMMUTABLE_TYPES):
        return type(old) is not type(new) or old != new
    return True


class _Subscription:
    __slots__ = ("callback",)

    def __init__(self, callback: Subscriber):
        self.callback = callback


class Readable:
    def __init__(self, value: Any = None, start: Optional[StartFunction] = None, name: Optional[str] = None):
        self._value = value
        self._start = start
        self._stop: Optional[Callable[[], None]] = None
        self._subscribers: List[_Subscription] = []
        self.name = name or type(self).__name__

    @property
    def value(self) -> Any:
        return self._value

    @property
    def active(self) -> bool:
        return bool(self._subscribers)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Unsubscriber:
        subscription = _Subscription(callback)
        if not self._subscribers and self._stop is None:
            # Values set during activation are picked up by the call below
            self._stop = _noop
            try:
                stop = self._start(self._set) if self._start else None
            except Exception:
                self._stop = None
                raise
            self._stop = stop or _noop
        self._subscribers.append(subscription)
        callback(self._value)

        def unsubscribe():
            if subscription not in self._subscribers:
                return
            self._subscribers.remove(subscription)
            if not self._subscribers and self._stop is not None:
                stop, self._stop = self._stop, None
                stop()

        return unsubscribe

    def _set(self, new_value: Any) -> None:
        if not safe_not_equal(self._value, new_value):
            return
        self._value = new_value
        if not self._subscribers:
            return

        run_queue = not _subscriber_queue
        for subscription in list(self._subscribers):
            _subscriber_queue.append((self, subscription, new_value))
        if not run_queue:
            return

        try:
            index = 0
            while index < len(_subscriber_queue):
                store, subscription, value = _subscriber_queue[index]
                index += 1
                if subscription in store._subscribers:
                    store._notify(subscription, value)
        finally:
            _subscriber_queue.clear()

    def _notify(self, subscription: _Subscription, value: Any) -> None:
        try:
            subscription.callback(value)
        except Exception as e:
            logger.error(f"Subscriber of {self.name} failed: {e}", exc_info=True)

    def __repr__(self):
        return f"<{type(self).__name__} {self.name} subscribers={len(self._subscribers)}>"


class Writable(Readable):
    def set(self, value: Any) -> None:
        self._set(value)

    def update(self, updater: Callable[[Any], Any]) -> None:
        self._set(updater(self._value))


class Derived(Readable):
    """Maps every value of ``source`` through ``transform``.

    While inactive, ``value`` is computed from the source on demand so it is
    never stale.
    """

    def __init__(self, source: Readable, transform: Callable[[Any], Any], name: Optional[str] = None):
        self._source = source
        self._transform = transform
        super().__init__(None, self._activate, name)

    def _activate(self, set_value):
        return self._source.subscribe(lambda value: set_value(self._transform(value)))

    @property
    def value(self) -> Any:
        if self.active:
            return self._value
        return self._transform(self._source.value)


class InFlightCounter:
    """Additive counter of running operations, exposed as a boolean store.

    ``track`` increments immediately and decrements from the task's
    done-callback, which runs on success, failure and cancellation alike.
    """

    def __init__(self, name: str):
        self._count = Writable(0, name=f"{name}.count")
        self.active = Derived(self._count, lambda count: count > 0, name=name)

    @property
    def count(self) -> int:
        return self._count.value

    def track(self, task):
        self._count.update(lambda count: count + 1)
        task.add_done_callback(self._release)
        return task

    def _release(self, _task) -> None:
        self._count.update(lambda count: max(count - 1, 0))
