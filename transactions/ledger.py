"""
Transaction history of the tracked addresses.

Transactions are keyed by hash. A newer record under a known hash replaces
the stored one wholesale, which is how a pending transaction becomes mined.
After every change the full list is re-sorted with the active comparator and
published.
"""

import asyncio
import functools
from typing import Callable, Dict, List, Optional, Tuple

from errors.exceptions import RemoteQueryError
from log_utils import get_logger
from models.account import address_likes_to_account_ins
from models.address import Address
from models.transaction import TransactionDetails, compare_transactions
from stores.store import InFlightCounter, Readable

logger = get_logger(__name__)

Comparator = Callable[[TransactionDetails, TransactionDetails], int]


class TransactionLedger(Readable):

    def __init__(self, session):
        super().__init__([], self._activate, name="transactions")
        self._session = session
        self._items: List[Tuple[str, TransactionDetails]] = []
        self._compare: Comparator = compare_transactions
        self._tracked: Dict[str, Address] = {}
        self._counter = InFlightCounter("transactions_refreshing")
        self.refreshing = self._counter.active

    def _sort_and_publish(self, items) -> None:
        key = functools.cmp_to_key(lambda a, b: self._compare(a[1], b[1]))
        self._items = sorted(items, key=key)
        self._set([tx for _, tx in self._items])

    def add(self, transactions) -> None:
        if transactions is None:
            return
        if not isinstance(transactions, (list, tuple)):
            transactions = [transactions]
        if not transactions:
            return

        records = [TransactionDetails.from_plain(tx) for tx in transactions]
        logger.debug(f"Adding {len(records)} transaction(s)")

        by_hash = dict(self._items)
        for tx in records:
            by_hash[tx.transaction_hash] = tx
        self._sort_and_publish(by_hash.items())

    def set_sort(self, compare: Comparator) -> None:
        self._compare = compare
        self._sort_and_publish(list(self._items))

    def transactions_for_address(self, address_like) -> List[TransactionDetails]:
        address = Address.from_any(address_like)
        return [tx for _, tx in self._items if tx.involves(address)]

    def refresh(self, address_likes=None) -> Optional[asyncio.Task]:
        """Fetch history for the given addresses, or every tracked one.

        Each address is fetched independently and merged as soon as it
        arrives. If any fetch fails the task raises ``RemoteQueryError``
        listing the failures once all of them have finished.
        """
        addresses = [account_in["address"] for account_in in address_likes_to_account_ins(address_likes)]
        if not addresses:
            addresses = list(self._tracked.values())
        if not addresses:
            return None

        logger.debug("Refreshing transactions", extra={"address": [a.to_user_friendly() for a in addresses]})
        task = self._session.spawn(self._refresh(addresses), name="transactions-refresh")
        return self._counter.track(task)

    async def _refresh(self, addresses: List[Address]) -> None:
        await self._session.wait_for_established()
        if not self._session.options.fetch_transaction_history:
            logger.debug("Transaction history fetching is disabled")
            return

        client = await self._session.wait_for_client()
        results = await asyncio.gather(
            *(self._fetch_history(client, address) for address in addresses),
            return_exceptions=True,
        )
        failures = {
            address.to_user_friendly(): result
            for address, result in zip(addresses, results)
            if isinstance(result, Exception)
        }
        if failures:
            raise RemoteQueryError(
                f"Transaction history failed for {len(failures)} of {len(addresses)} address(es)",
                failures=failures,
            )

    async def _fetch_history(self, client, address: Address) -> int:
        history = await client.get_transactions_by_address(address, 0, self.transactions_for_address(address))
        self.add(history)
        return len(history)

    def _on_accounts_changed(self, accounts) -> None:
        current = {account["address"].to_hex(): account["address"] for account in accounts}
        for key in [key for key in self._tracked if key not in current]:
            del self._tracked[key]

        new_addresses = [address for key, address in current.items() if key not in self._tracked]
        if not new_addresses:
            return
        self._tracked.update((address.to_hex(), address) for address in new_addresses)
        self.refresh(new_addresses)

    def _activate(self, _set):
        unsubscribe_accounts = self._session.accounts.subscribe(self._on_accounts_changed)
        unsubscribe_feed = self._session.new_transaction.subscribe(self.add)

        def stop():
            unsubscribe_accounts()
            unsubscribe_feed()

        return stop
