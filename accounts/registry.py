"""
Tracked accounts.

The registry owns the set of addresses the session cares about. Each account
is a dict keyed by ``"address"``: input fields given to ``add`` are merged
into the stored record, and a remote refresh replaces the ledger-derived
fields it carries while keeping the address, any locally set fields and
any ledger field the remote left out.

The published value is a list of account dicts in insertion order. Each
publish hands out fresh copies so subscribers can hold on to a snapshot.
"""

import asyncio
from typing import Any, Dict, List, Optional

from log_utils import get_logger
from models.account import AccountState, address_likes_to_account_ins
from models.address import Address
from stores.store import InFlightCounter, Readable

logger = get_logger(__name__)


class AccountRegistry(Readable):

    def __init__(self, session):
        super().__init__([], self._activate, name="accounts")
        self._session = session
        self._accounts: Dict[str, Dict[str, Any]] = {}
        self._counter = InFlightCounter("accounts_refreshing")
        self.refreshing = self._counter.active

    def _publish(self) -> None:
        self._set([dict(account) for account in self._accounts.values()])

    @property
    def addresses(self) -> List[Address]:
        return [account["address"] for account in self._accounts.values()]

    def account(self, address_like) -> Optional[Dict[str, Any]]:
        address = Address.from_any(address_like)
        account = self._accounts.get(address.to_hex())
        return dict(account) if account is not None else None

    def add(self, address_likes) -> Optional[asyncio.Task]:
        """Track new addresses and merge fields into known ones.

        Only addresses that were not tracked before are refreshed; the
        returned task is that refresh, or None when nothing new was added.
        """
        account_ins = address_likes_to_account_ins(address_likes)
        if not account_ins:
            return None

        new_addresses = []
        for account_in in account_ins:
            key = account_in["address"].to_hex()
            stored = self._accounts.get(key)
            merged = {**(stored or {}), **account_in}
            if stored is not None:
                merged["address"] = stored["address"]
            else:
                new_addresses.append(account_in["address"])
            self._accounts[key] = merged

        self._publish()

        if not new_addresses:
            return None
        logger.debug(f"Tracking {len(new_addresses)} new address(es)")
        return self.refresh(new_addresses)

    def remove(self, address_likes) -> None:
        account_ins = address_likes_to_account_ins(address_likes)
        if not account_ins:
            return
        for account_in in account_ins:
            self._accounts.pop(account_in["address"].to_hex(), None)
        self._publish()

    def refresh(self, address_likes=None) -> Optional[asyncio.Task]:
        """Fetch authoritative state for the given addresses, or all tracked ones"""
        addresses = [account_in["address"] for account_in in address_likes_to_account_ins(address_likes)]
        if not addresses:
            addresses = self.addresses
        if not addresses:
            return None

        logger.debug("Refreshing accounts", extra={"address": [a.to_user_friendly() for a in addresses]})
        task = self._session.spawn(self._refresh(addresses), name="accounts-refresh")
        return self._counter.track(task)

    async def _refresh(self, addresses: List[Address]) -> None:
        await self._session.wait_for_established()
        client = await self._session.wait_for_client()
        states = await client.get_accounts(addresses)

        for address, state in zip(addresses, states):
            self._merge_remote(address, AccountState.from_plain(state))
        self._publish()

    def _merge_remote(self, address: Address, state: AccountState) -> None:
        key = address.to_hex()
        stored = self._accounts.get(key)
        if stored is None:
            logger.debug(f"Dropping refresh result for untracked {address}")
            return
        self._accounts[key] = {**stored, **state.to_plain(), "address": stored["address"]}

    def _activate(self, _set):
        return self._session.head.hash.subscribe(lambda _head_hash: self.refresh())
