"""
Store-backed WebSocket handlers
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Mapping

from fastapi import WebSocket
from pydantic import BaseModel

from models.address import Address
from stores.store import Readable

logger = logging.getLogger(__name__)


def to_jsonable(value: Any) -> Any:
    """Turn a store value into something ``send_json`` accepts"""
    if isinstance(value, Address):
        return value.to_user_friendly()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(item) for item in value]
    return value


def session_stores(session) -> Dict[str, Readable]:
    """Reactive values of a session by their public name"""
    return {
        "ready": session.ready,
        "consensus": session.consensus.state,
        "established": session.consensus.established,
        "head_hash": session.head.hash,
        "head": session.head.block,
        "height": session.head.height,
        "network_statistics": session.network.statistics,
        "peer_count": session.network.peer_count,
        "accounts": session.accounts,
        "accounts_refreshing": session.accounts.refreshing,
        "new_transaction": session.new_transaction,
        "transactions": session.transactions,
        "transactions_refreshing": session.transactions.refreshing,
    }


class StoreWebSocketBridge:
    """
    Per-connection store subscriptions.

    Store callbacks are synchronous, so every value goes through a queue and
    ``pump`` sends them in order.
    """

    def __init__(self, websocket: WebSocket, stores: Dict[str, Readable]):
        self.websocket = websocket
        self.stores = stores
        self.subscriptions: Dict[str, Callable[[], None]] = {}
        self.queue: asyncio.Queue = asyncio.Queue()

    def subscribe(self, name: str) -> bool:
        if name in self.subscriptions:
            return False

        def on_value(value):
            self.queue.put_nowait({"type": "update", "store": name, "value": to_jsonable(value)})

        self.subscriptions[name] = self.stores[name].subscribe(on_value)
        logger.debug(f"WebSocket subscribed to {name}")
        return True

    def unsubscribe(self, name: str) -> bool:
        unsubscribe = self.subscriptions.pop(name, None)
        if unsubscribe is None:
            return False
        unsubscribe()
        logger.debug(f"WebSocket unsubscribed from {name}")
        return True

    def send(self, message: dict) -> None:
        self.queue.put_nowait(message)

    async def pump(self) -> None:
        while True:
            message = await self.queue.get()
            await self.websocket.send_json(message)

    def close(self) -> None:
        for name in list(self.subscriptions):
            self.unsubscribe(name)
