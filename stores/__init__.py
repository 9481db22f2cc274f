from stores.listener import ListenerValue
from stores.store import Derived, InFlightCounter, Readable, Writable, safe_not_equal

__all__ = ["Derived", "InFlightCounter", "ListenerValue", "Readable", "Writable", "safe_not_equal"]
