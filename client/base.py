"""
Capability surface of the remote ledger client.

Everything the stores need from the outside world goes through this
interface, so a session can run against a JSON-RPC node, the in-memory
ledger, or a test double.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Iterable, List, Optional

from models.account import AccountState
from models.address import Address
from models.network import Block, NetworkStatistics
from models.transaction import TransactionDetails

ListenerHandle = int


class ConsensusState(str, Enum):
    LOADING = "loading"
    CONNECTING = "connecting"
    SYNCING = "syncing"
    ESTABLISHED = "established"


class LedgerClient(ABC):

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the client; called once by the session before anything else"""

    @property
    @abstractmethod
    def consensus_state(self) -> ConsensusState:
        ...

    @abstractmethod
    async def add_consensus_changed_listener(self, listener: Callable[[ConsensusState], None]) -> ListenerHandle:
        ...

    @abstractmethod
    async def add_head_changed_listener(self, listener: Callable[[str], None]) -> ListenerHandle:
        ...

    @abstractmethod
    async def add_transaction_listener(self, listener: Callable[[TransactionDetails], None],
                                       addresses: Iterable[Address]) -> ListenerHandle:
        """Listen for transactions sent from or to any of ``addresses``"""

    @abstractmethod
    async def remove_listener(self, handle: ListenerHandle) -> None:
        ...

    @abstractmethod
    async def get_head_hash(self) -> Optional[str]:
        ...

    @abstractmethod
    async def get_block(self, block_hash: str) -> Block:
        ...

    @abstractmethod
    async def get_accounts(self, addresses: List[Address]) -> List[AccountState]:
        """Return one state per address, in the order given"""

    @abstractmethod
    async def get_transactions_by_address(self, address: Address, since_block_height: int = 0,
                                          known_transactions: Optional[List[TransactionDetails]] = None
                                          ) -> List[TransactionDetails]:
        """Return the address's transactions that are not already in
        ``known_transactions`` in their current form"""

    @abstractmethod
    async def get_network_statistics(self) -> NetworkStatistics:
        ...

    @abstractmethod
    async def wait_for_consensus_established(self) -> None:
        ...

    async def close(self) -> None:
        pass


def unknown_or_changed(transactions: Iterable[TransactionDetails],
                       known_transactions: Optional[Iterable[TransactionDetails]]) -> List[TransactionDetails]:
    known = {tx.transaction_hash: tx for tx in (known_transactions or [])}
    return [tx for tx in transactions if known.get(tx.transaction_hash) != tx]
