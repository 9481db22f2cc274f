"""
Event bus used by ledger clients to fan remote events out to registered listeners
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class Event:
    """Event data structure"""
    type: str
    data: Any


@dataclass
class Listener:
    event_type: str
    callback: Callable[[Any], None]
    predicate: Optional[Callable[[Any], bool]] = None

    def accepts(self, event: Event) -> bool:
        return self.predicate is None or self.predicate(event.data)


class EventBus:
    """
    Listener registry keyed by integer handles. Dispatch is synchronous:
    every matching listener has been called when ``emit`` returns.
    """

    def __init__(self):
        self.listeners: Dict[int, Listener] = {}
        self._handles = itertools.count(1)

    def subscribe(self, event_type: str, callback: Callable[[Any], None],
                  predicate: Optional[Callable[[Any], bool]] = None) -> int:
        """Register a listener and return its handle"""
        handle = next(self._handles)
        self.listeners[handle] = Listener(event_type, callback, predicate)
        logger.debug(f"Subscribed listener {handle} to {event_type}")
        return handle

    def unsubscribe(self, handle: int) -> bool:
        """Remove a listener; unknown handles are ignored"""
        listener = self.listeners.pop(handle, None)
        if listener is None:
            return False
        logger.debug(f"Unsubscribed listener {handle} from {listener.event_type}")
        return True

    def count(self, event_type: Optional[str] = None) -> int:
        return sum(1 for l in self.listeners.values() if event_type is None or l.event_type == event_type)

    def emit(self, event_type: str, data: Any) -> int:
        """Dispatch an event; returns how many listeners received it"""
        event = Event(type=event_type, data=data)
        delivered = 0
        for handle, listener in list(self.listeners.items()):
            if listener.event_type != event_type or handle not in self.listeners:
                continue
            if not listener.accepts(event):
                continue
            try:
                listener.callback(event.data)
                delivered += 1
            except Exception as e:
                logger.error(f"Error in listener {handle} for {event_type}: {e}", exc_info=True)

        if not delivered:
            logger.debug(f"No listeners for event type: {event_type}")
        return delivered


class EventTypes:
    """Remote event types"""
    CONSENSUS_CHANGED = "consensus_changed"
    HEAD_CHANGED = "head_changed"
    TRANSACTION_OBSERVED = "transaction_observed"
