"""
Live feed of transactions touching the tracked addresses.

While observed, exactly one remote transaction listener is kept, filtered on
the registry's current address set. When the set changes the new listener is
registered before the old one is removed, so no matching transaction can slip
through between the two.
"""

import logging
from typing import FrozenSet, Optional

from models.address import Address
from models.transaction import TransactionDetails
from stores.store import Readable

logger = logging.getLogger(__name__)


class NewTransactionFeed(Readable):

    def __init__(self, session):
        super().__init__(None, self._activate, name="new_transaction")
        self._session = session
        self._handle: Optional[int] = None
        self._filter: Optional[FrozenSet[Address]] = None
        self._generation = 0

    @property
    def handle(self) -> Optional[int]:
        return self._handle

    def _on_transaction(self, tx) -> None:
        self._set(TransactionDetails.from_plain(tx))

    def _on_accounts_changed(self, accounts) -> None:
        addresses = frozenset(account["address"] for account in accounts)
        if addresses == self._filter:
            return
        self._filter = addresses
        self._generation += 1
        self._session.spawn(self._swap_listener(self._generation, addresses), name="new-transaction-listener")

    async def _swap_listener(self, generation: int, addresses: FrozenSet[Address]) -> None:
        client = await self._session.wait_for_client()
        handle = None
        if addresses:
            try:
                handle = await client.add_transaction_listener(self._on_transaction, list(addresses))
            except Exception:
                if generation == self._generation:
                    # Next accounts snapshot retries
                    self._filter = None
                raise

        if generation != self._generation:
            # Superseded by a newer filter or torn down while registering
            if handle is not None:
                await client.remove_listener(handle)
            return

        previous, self._handle = self._handle, handle
        logger.debug(f"Transaction listener {handle} covers {len(addresses)} address(es)")
        if previous is not None:
            await client.remove_listener(previous)

    async def _remove_listener(self, handle: int) -> None:
        client = await self._session.wait_for_client()
        await client.remove_listener(handle)

    def _activate(self, _set):
        unsubscribe = self._session.accounts.subscribe(self._on_accounts_changed)

        def stop():
            unsubscribe()
            self._generation += 1
            self._filter = None
            handle, self._handle = self._handle, None
            if handle is not None:
                self._session.spawn(self._remove_listener(handle), name="new-transaction-teardown")

        return stop
