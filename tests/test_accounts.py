import asyncio

import pytest

from errors.exceptions import InvalidAddressError, RemoteQueryError
from helpers import ADDRESS_A, ADDRESS_B, GatedLedgerClient, wait_until
from models.account import AccountState, address_likes_to_account_ins
from session.session import Session


def test_address_likes_are_normalized():
    account_ins = address_likes_to_account_ins([
        ADDRESS_A,
        ADDRESS_B.to_user_friendly(),
        {"address": ADDRESS_A.to_hex(), "label": "savings"},
    ])
    assert account_ins == [
        {"address": ADDRESS_A},
        {"address": ADDRESS_B},
        {"address": ADDRESS_A, "label": "savings"},
    ]
    assert address_likes_to_account_ins(None) == []


def test_mapping_without_address_is_rejected():
    with pytest.raises(InvalidAddressError):
        address_likes_to_account_ins({"label": "nowhere"})


def test_account_state_drops_unset_fields():
    state = AccountState.from_plain({"type": "vesting", "balance": 10, "vestingStart": 3})
    assert state.to_plain() == {"type": "vesting", "balance": 10, "vesting_start": 3}


class TestAccountRegistry:

    @pytest.mark.asyncio
    async def test_add_refresh_then_label_without_second_fetch(self, session, client):
        client.set_account(ADDRESS_A, balance=5)
        await session.start(options={"network": "test"})
        assert session.options.network == "test"

        session.accounts.add(ADDRESS_A)
        assert session.accounts.value == [{"address": ADDRESS_A}]

        await session.settle()
        assert session.accounts.value == [{"address": ADDRESS_A, "type": "basic", "balance": 5}]

        session.accounts.add({"address": ADDRESS_A, "label": "x"})
        await session.settle()
        assert session.accounts.value == [{"address": ADDRESS_A, "type": "basic", "balance": 5, "label": "x"}]
        assert client.calls["get_accounts"] == 1

    @pytest.mark.asyncio
    async def test_add_publishes_synchronously(self, session):
        await session.start()
        snapshots = []
        session.accounts.subscribe(snapshots.append)

        task = session.accounts.add([ADDRESS_A, ADDRESS_B])
        assert snapshots[-1] == [{"address": ADDRESS_A}, {"address": ADDRESS_B}]
        assert not task.done()
        await session.settle()

    @pytest.mark.asyncio
    async def test_merge_is_idempotent(self, session):
        await session.start()
        session.accounts.add({"address": ADDRESS_A, "label": "x"})
        await session.settle()
        once = session.accounts.value

        session.accounts.add({"address": ADDRESS_A, "label": "x"})
        await session.settle()
        assert session.accounts.value == once

    @pytest.mark.asyncio
    async def test_absent_fields_keep_their_values(self, session, client):
        client.set_account(ADDRESS_A, type="vesting", balance=100, owner=ADDRESS_B, vesting_start=7)
        await session.start()
        session.accounts.add({"address": ADDRESS_A, "label": "x"})
        await session.settle()

        session.accounts.add({"address": ADDRESS_A, "note": "y"})
        client.set_account(ADDRESS_A, balance=40)
        await session.accounts.refresh()

        account = session.accounts.account(ADDRESS_A)
        assert account["label"] == "x"
        assert account["note"] == "y"
        assert account["balance"] == 40
        assert account["type"] == "basic"
        assert account["owner"] == ADDRESS_B.to_user_friendly()
        assert account["vesting_start"] == 7
        assert account["address"] is not None

    @pytest.mark.asyncio
    async def test_existing_address_is_not_fetched_again(self, session, client):
        await session.start()
        assert session.accounts.add(ADDRESS_A) is not None
        await session.settle()

        assert session.accounts.add([ADDRESS_A, {"address": ADDRESS_A, "label": "again"}]) is None
        await session.settle()
        assert client.calls["get_accounts"] == 1

    @pytest.mark.asyncio
    async def test_remove_drops_account(self, session):
        await session.start()
        session.accounts.add([ADDRESS_A, ADDRESS_B])
        session.accounts.remove(ADDRESS_A.to_user_friendly())
        assert [account["address"] for account in session.accounts.value] == [ADDRESS_B]
        await session.settle()
        assert session.accounts.account(ADDRESS_A) is None

    @pytest.mark.asyncio
    async def test_refresh_for_removed_address_is_dropped(self):
        client = GatedLedgerClient()
        session = Session(client_factory=lambda configuration: client)
        await session.start()

        task = session.accounts.add(ADDRESS_A)
        await wait_until(lambda: client.account_gates)
        session.accounts.remove(ADDRESS_A)
        client.account_gates[0].set()
        await task
        assert session.accounts.value == []

    @pytest.mark.asyncio
    async def test_failed_refresh_leaves_records_untouched(self, session, client):
        client.set_account(ADDRESS_A, balance=5)
        await session.start()
        await session.accounts.add(ADDRESS_A)

        client.set_account(ADDRESS_A, balance=9)
        client.fail_next("get_accounts")
        with pytest.raises(RemoteQueryError):
            await session.accounts.refresh()

        assert session.accounts.account(ADDRESS_A)["balance"] == 5
        assert session.accounts.refreshing.value is False

    @pytest.mark.asyncio
    async def test_refresh_waits_for_consensus(self, session, client):
        client.set_consensus("connecting")
        await session.start()
        task = session.accounts.add(ADDRESS_A)
        await asyncio.sleep(0.01)
        assert not task.done()
        assert session.accounts.refreshing.value is True
        assert client.calls["get_accounts"] == 0

        client.set_consensus("established")
        await task
        assert session.accounts.refreshing.value is False
        assert client.calls["get_accounts"] == 1

    @pytest.mark.asyncio
    async def test_new_head_triggers_refresh(self, session, client):
        await session.start()
        session.accounts.add(ADDRESS_A)
        await session.settle()

        unsubscribe = session.accounts.subscribe(lambda _: None)
        await session.settle()
        before = client.calls["get_accounts"]

        client.set_account(ADDRESS_A, balance=12)
        client.add_block()
        await session.settle()
        assert client.calls["get_accounts"] == before + 1
        assert session.accounts.account(ADDRESS_A)["balance"] == 12

        unsubscribe()
        await session.settle()
        client.add_block()
        await session.settle()
        assert client.calls["get_accounts"] == before + 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("release_order", [(0, 1), (1, 0)])
    async def test_refreshing_flag_spans_overlapping_refreshes(self, release_order):
        client = GatedLedgerClient()
        session = Session(client_factory=lambda configuration: client)
        await session.start()
        session.accounts.add([ADDRESS_A, ADDRESS_B])
        await wait_until(lambda: len(client.account_gates) == 1)
        client.account_gates[0].set()
        await session.settle()
        client.account_gates.clear()

        history = []
        session.accounts.refreshing.subscribe(history.append)
        tasks = [session.accounts.refresh(ADDRESS_A), session.accounts.refresh([ADDRESS_A, ADDRESS_B])]
        await wait_until(lambda: len(client.account_gates) == 2)

        first, second = release_order
        client.account_gates[first].set()
        await tasks[first]
        assert session.accounts.refreshing.value is True

        client.account_gates[second].set()
        await tasks[second]
        await asyncio.sleep(0)
        assert session.accounts.refreshing.value is False
        assert history == [False, True, False]
