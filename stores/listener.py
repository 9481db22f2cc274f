"""
Store fed by a remote client listener.

The listener is registered when the first subscriber arrives and removed when
the last one leaves. Registration and removal are round trips to the client,
so both run as session tasks; removal waits for the registration it undoes.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from errors.exceptions import LedgerStoreError
from stores.store import Readable

logger = logging.getLogger(__name__)

Register = Callable[[Any, Callable[[Any], None]], Awaitable[int]]
Prime = Callable[[Any], Awaitable[Any]]


class ListenerValue(Readable):
    """
    ``register(client, callback)`` adds the remote listener and returns its
    handle. ``prime(client)``, when given, runs after registration and its
    result becomes the value unless an event already arrived; returning None
    leaves the value alone.
    """

    def __init__(self, session, initial: Any, register: Register, prime: Optional[Prime] = None,
                 name: Optional[str] = None):
        super().__init__(initial, self._activate, name)
        self._session = session
        self._register = register
        self._prime = prime
        self._generation = 0

    def _activate(self, set_value):
        self._generation += 1
        generation = self._generation
        connection = self._session.spawn(self._connect(generation, set_value), name=f"{self.name}-connect")

        def stop():
            self._generation += 1
            self._session.spawn(self._disconnect(connection), name=f"{self.name}-disconnect")

        return stop

    async def _connect(self, generation: int, set_value) -> int:
        client = await self._session.wait_for_client()
        received = False

        def on_event(value):
            nonlocal received
            if generation != self._generation:
                return
            received = True
            set_value(value)

        handle = await self._register(client, on_event)
        logger.debug(f"Registered listener {handle} for {self.name}")

        if self._prime is not None and generation == self._generation:
            try:
                value = await self._prime(client)
            except LedgerStoreError as e:
                logger.warning(f"Could not prime {self.name}: {e}")
                value = None
            if value is not None and not received and generation == self._generation:
                set_value(value)
        return handle

    async def _disconnect(self, connection: asyncio.Task) -> None:
        await asyncio.wait([connection])
        if connection.cancelled() or connection.exception() is not None:
            return
        client = await self._session.wait_for_client()
        await client.remove_listener(connection.result())
        logger.debug(f"Removed listener {connection.result()} for {self.name}")
