import asyncio

import pytest

from chain.head import HeadTracker
from client.base import ConsensusState
from client.memory import InMemoryLedgerClient
from errors.exceptions import RemoteQueryError
from helpers import wait_until
from models.network import NetworkStatistics
from network.stats import NetworkStatsPoller
from session.session import Session
from stores.store import Writable


class TestConsensusMonitor:

    @pytest.mark.asyncio
    async def test_seeded_with_loading_then_reads_client_state(self):
        client = InMemoryLedgerClient(consensus=ConsensusState.SYNCING)
        session = Session(client_factory=lambda configuration: client)
        assert session.consensus.value == ConsensusState.LOADING

        seen = []
        session.consensus.subscribe(seen.append)
        session.start()
        await session.settle()
        assert seen == [ConsensusState.LOADING, ConsensusState.SYNCING]
        assert session.consensus.established.value is False

    @pytest.mark.asyncio
    async def test_follows_remote_changes(self, session, client):
        client.set_consensus(ConsensusState.CONNECTING)
        established = []
        session.consensus.established.subscribe(established.append)
        await session.start()
        await session.settle()

        client.set_consensus(ConsensusState.SYNCING)
        client.set_consensus(ConsensusState.ESTABLISHED)
        assert session.consensus.state.value == ConsensusState.ESTABLISHED
        assert established == [False, True]

    @pytest.mark.asyncio
    async def test_listener_removed_when_unobserved(self, session, client):
        await session.start()
        unsubscribe = session.consensus.subscribe(lambda _: None)
        await session.settle()
        assert client.bus.count("consensus_changed") == 1

        unsubscribe()
        await session.settle()
        assert client.bus.count("consensus_changed") == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_before_registration_finishes(self, session, client):
        unsubscribe = session.consensus.subscribe(lambda _: None)
        unsubscribe()
        await session.start()
        await session.settle()
        assert client.bus.count("consensus_changed") == 0


class TestHeadTracker:

    @pytest.mark.asyncio
    async def test_primed_with_head_when_established(self, session, client):
        await session.start()
        heights = []
        session.head.height.subscribe(heights.append)
        await session.settle()

        assert session.head.hash.value == client.head_hash
        assert session.head.block.value.hash == client.head_hash
        assert heights == [0, 1]

    @pytest.mark.asyncio
    async def test_not_primed_before_consensus(self, session, client):
        client.set_consensus(ConsensusState.SYNCING)
        await session.start()
        session.head.height.subscribe(lambda _: None)
        await session.settle()
        assert session.head.hash.value is None
        assert session.head.height.value == 0

        block = client.add_block()
        await session.settle()
        assert session.head.hash.value == block.hash
        assert session.head.height.value == block.height

    @pytest.mark.asyncio
    async def test_new_blocks_update_height(self, session, client):
        await session.start()
        session.head.height.subscribe(lambda _: None)
        await session.settle()

        client.add_block()
        client.add_block()
        await session.settle()
        assert session.head.height.value == 3

    @pytest.mark.asyncio
    async def test_stale_block_response_is_dropped(self, session, client):
        await session.start()
        session.head.block.subscribe(lambda _: None)
        await session.settle()

        older = client.add_block()
        newer = client.add_block()
        await session.settle()
        assert session.head.block.value == newer
        assert session.head.block.value != older

    @pytest.mark.asyncio
    async def test_failed_block_fetch_keeps_previous_block(self, session, client):
        await session.start()
        session.head.block.subscribe(lambda _: None)
        await session.settle()
        genesis = session.head.block.value

        client.fail_next("get_block")
        client.add_block()
        await session.settle()
        assert session.head.block.value == genesis

    @pytest.mark.asyncio
    async def test_cleared_hash_clears_block(self, session, client):
        tracker = HeadTracker(session)
        tracker.hash = Writable(client.head_hash, name="head_hash")
        await session.start()
        heights = []
        tracker.height.subscribe(heights.append)
        await session.settle()
        assert tracker.block.value.hash == client.head_hash

        tracker.hash.set(None)
        assert tracker.block.value is None
        assert heights == [0, 1, 0]


class TestNetworkStatsPoller:

    @pytest.mark.asyncio
    async def test_polls_while_observed(self, session, client):
        client.set_statistics(total_peer_count=4, bytes_sent=10)
        session.network.interval = 0.01
        await session.start()

        peers = []
        unsubscribe = session.network.peer_count.subscribe(peers.append)
        await wait_until(lambda: peers[-1] == 4, delay=0.005)
        assert isinstance(session.network.statistics.value, NetworkStatistics)

        client.set_statistics(total_peer_count=6)
        await wait_until(lambda: peers[-1] == 6, delay=0.005)

        unsubscribe()
        await asyncio.sleep(0.03)
        calls = client.calls["get_network_statistics"]
        await asyncio.sleep(0.03)
        assert client.calls["get_network_statistics"] == calls

    @pytest.mark.asyncio
    async def test_failed_poll_keeps_running(self, session, client):
        poller = NetworkStatsPoller(session, interval=0.01)
        client.set_statistics(total_peer_count=2)
        client.fail_next("get_network_statistics", RemoteQueryError("offline"))
        await session.start()

        unsubscribe = poller.statistics.subscribe(lambda _: None)
        await wait_until(lambda: client.calls["get_network_statistics"] >= 2, delay=0.005)
        await wait_until(lambda: poller.peer_count.value == 2, delay=0.005)
        unsubscribe()
