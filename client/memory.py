"""
In-memory ledger client.

Keeps a small ledger of accounts, blocks and transactions in process and
drives the same listener events a remote node would. Used when no RPC
endpoint is configured, and as the client double in tests.
"""

import asyncio
import hashlib
import logging
import time
from collections import Counter, defaultdict, deque
from typing import Callable, Dict, Iterable, List, Optional

from client.base import ConsensusState, LedgerClient, ListenerHandle, unknown_or_changed
from config.client_config import ClientConfiguration
from errors.exceptions import RemoteQueryError
from events.event_bus import EventBus, EventTypes
from models.account import AccountState, AccountType
from models.address import Address
from models.network import Block, NetworkStatistics
from models.transaction import TransactionDetails, TransactionState

logger = logging.getLogger(__name__)

GENESIS_HASH = "00" * 32


def _block_hash(prev_hash: str, height: int, tx_hashes: Iterable[str]) -> str:
    h = hashlib.sha256()
    h.update(bytes.fromhex(prev_hash))
    h.update(height.to_bytes(8, "big"))
    for tx_hash in tx_hashes:
        h.update(bytes.fromhex(tx_hash))
    return h.hexdigest()


class InMemoryLedgerClient(LedgerClient):

    def __init__(self, configuration: Optional[ClientConfiguration] = None,
                 consensus: ConsensusState = ConsensusState.CONNECTING, latency: float = 0.0):
        self.configuration = configuration or ClientConfiguration()
        self.latency = latency
        self.bus = EventBus()
        self.calls = Counter()
        self.initialized = False
        self.closed = False

        self.accounts: Dict[Address, AccountState] = {}
        self.transactions: Dict[str, TransactionDetails] = {}
        self.blocks: Dict[str, Block] = {}
        self.statistics = NetworkStatistics()

        genesis = Block(hash=GENESIS_HASH, height=1, timestamp=int(time.time()))
        self.blocks[genesis.hash] = genesis
        self.head_hash = genesis.hash

        self._failures: Dict[str, deque] = defaultdict(deque)
        self._consensus = consensus
        self._established = asyncio.Event()
        if consensus == ConsensusState.ESTABLISHED:
            self._established.set()

    async def _round_trip(self, method: str) -> None:
        self.calls[method] += 1
        await asyncio.sleep(self.latency)
        if self._failures[method]:
            raise self._failures[method].popleft()

    def fail_next(self, method: str, error: Optional[Exception] = None) -> None:
        """Make the next call to ``method`` raise ``error``"""
        self._failures[method].append(error or RemoteQueryError(f"{method} failed"))

    # Ledger drivers

    def set_consensus(self, state: ConsensusState) -> None:
        state = ConsensusState(state)
        if state == self._consensus:
            return
        self._consensus = state
        if state == ConsensusState.ESTABLISHED:
            self._established.set()
        else:
            self._established.clear()
        logger.info(f"Consensus changed to {state.value}")
        self.bus.emit(EventTypes.CONSENSUS_CHANGED, state)

    def set_account(self, address, **fields) -> AccountState:
        address = Address.from_any(address)
        fields.setdefault("type", AccountType.BASIC)
        fields.setdefault("balance", 0)
        state = AccountState.from_plain(fields)
        self.accounts[address] = state
        return state

    def add_pending_transaction(self, tx) -> TransactionDetails:
        tx = TransactionDetails.from_plain(tx).model_copy(update={
            "state": TransactionState.PENDING,
            "block_hash": None,
            "block_height": None,
            "timestamp": None,
        })
        self.transactions[tx.transaction_hash] = tx
        self.bus.emit(EventTypes.TRANSACTION_OBSERVED, tx)
        return tx

    def add_block(self, transactions=(), height: Optional[int] = None,
                  timestamp: Optional[int] = None) -> Block:
        """Mine ``transactions`` into a new head block and announce it"""
        parent = self.blocks[self.head_hash]
        height = height if height is not None else parent.height + 1
        timestamp = timestamp if timestamp is not None else int(time.time())
        pending = [TransactionDetails.from_plain(tx) for tx in transactions]

        tx_hashes = [tx.transaction_hash for tx in pending]
        block = Block(
            hash=_block_hash(parent.hash, height, tx_hashes),
            height=height,
            timestamp=timestamp,
            prev_hash=parent.hash,
            transaction_hashes=tx_hashes,
        )
        self.blocks[block.hash] = block
        self.head_hash = block.hash

        mined = []
        for tx in pending:
            tx = tx.model_copy(update={
                "state": TransactionState.MINED,
                "block_hash": block.hash,
                "block_height": block.height,
                "timestamp": block.timestamp,
                "confirmations": 1,
            })
            self.transactions[tx.transaction_hash] = tx
            mined.append(tx)

        logger.info(f"New head {block.hash[:16]} at height {block.height} with {len(mined)} transactions")
        self.bus.emit(EventTypes.HEAD_CHANGED, block.hash)
        for tx in mined:
            self.bus.emit(EventTypes.TRANSACTION_OBSERVED, tx)
        return block

    def set_statistics(self, **fields) -> NetworkStatistics:
        self.statistics = NetworkStatistics.model_validate(fields)
        return self.statistics

    # LedgerClient

    async def initialize(self) -> None:
        await self._round_trip("initialize")
        self.initialized = True
        logger.info(f"In-memory ledger client ready on {self.configuration.network} network")

    @property
    def consensus_state(self) -> ConsensusState:
        return self._consensus

    async def add_consensus_changed_listener(self, listener: Callable[[ConsensusState], None]) -> ListenerHandle:
        await self._round_trip("add_consensus_changed_listener")
        return self.bus.subscribe(EventTypes.CONSENSUS_CHANGED, listener)

    async def add_head_changed_listener(self, listener: Callable[[str], None]) -> ListenerHandle:
        await self._round_trip("add_head_changed_listener")
        return self.bus.subscribe(EventTypes.HEAD_CHANGED, listener)

    async def add_transaction_listener(self, listener: Callable[[TransactionDetails], None],
                                       addresses: Iterable[Address]) -> ListenerHandle:
        await self._round_trip("add_transaction_listener")
        watched = frozenset(Address.from_any(a) for a in addresses)
        return self.bus.subscribe(
            EventTypes.TRANSACTION_OBSERVED,
            listener,
            lambda tx: tx.sender in watched or tx.recipient in watched,
        )

    async def remove_listener(self, handle: ListenerHandle) -> None:
        await self._round_trip("remove_listener")
        self.bus.unsubscribe(handle)

    async def get_head_hash(self) -> Optional[str]:
        await self._round_trip("get_head_hash")
        return self.head_hash

    async def get_block(self, block_hash: str) -> Block:
        await self._round_trip("get_block")
        try:
            return self.blocks[block_hash]
        except KeyError:
            raise RemoteQueryError(f"Unknown block {block_hash}")

    async def get_accounts(self, addresses: List[Address]) -> List[AccountState]:
        await self._round_trip("get_accounts")
        empty = AccountState(type=AccountType.BASIC, balance=0)
        return [self.accounts.get(Address.from_any(a), empty) for a in addresses]

    async def get_transactions_by_address(self, address: Address, since_block_height: int = 0,
                                          known_transactions: Optional[List[TransactionDetails]] = None
                                          ) -> List[TransactionDetails]:
        await self._round_trip("get_transactions_by_address")
        address = Address.from_any(address)
        history = [
            tx for tx in self.transactions.values()
            if tx.involves(address) and (tx.block_height is None or tx.block_height >= since_block_height)
        ]
        return unknown_or_changed(history, known_transactions)

    async def get_network_statistics(self) -> NetworkStatistics:
        await self._round_trip("get_network_statistics")
        return self.statistics

    async def wait_for_consensus_established(self) -> None:
        await self._established.wait()

    async def close(self) -> None:
        self.closed = True
        self.bus.listeners.clear()
