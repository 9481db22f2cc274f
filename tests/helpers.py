"""
Addresses, record builders and client doubles shared by the tests.
"""

import asyncio
import itertools

from client.base import ConsensusState
from client.memory import InMemoryLedgerClient
from models.address import Address
from models.transaction import TransactionDetails

ADDRESS_A = Address(bytes([0x0A]) * 20)
ADDRESS_B = Address(bytes([0x0B]) * 20)
ADDRESS_C = Address(bytes([0x0C]) * 20)

_hashes = itertools.count(1)


def make_tx(sender=ADDRESS_A, recipient=ADDRESS_B, timestamp=None, transaction_hash=None, **fields):
    return TransactionDetails(
        transaction_hash=transaction_hash or f"{next(_hashes):064x}",
        sender=sender,
        recipient=recipient,
        timestamp=timestamp,
        **fields,
    )


async def wait_until(predicate, attempts: int = 200, delay: float = 0) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(delay)
    raise AssertionError("condition not reached")


class GatedLedgerClient(InMemoryLedgerClient):
    """Holds every account and history query until the test releases it"""

    def __init__(self, **kwargs):
        kwargs.setdefault("consensus", ConsensusState.ESTABLISHED)
        super().__init__(**kwargs)
        self.account_gates = []
        self.history_gates = {}

    async def get_accounts(self, addresses):
        gate = asyncio.Event()
        self.account_gates.append(gate)
        await gate.wait()
        return await super().get_accounts(addresses)

    async def get_transactions_by_address(self, address, since_block_height=0, known_transactions=None):
        gate = self.history_gates.setdefault(Address.from_any(address), asyncio.Event())
        await gate.wait()
        return await super().get_transactions_by_address(address, since_block_height, known_transactions)


class RecordingLedgerClient(InMemoryLedgerClient):
    """Logs transaction listener registrations and removals in order"""

    def __init__(self, **kwargs):
        kwargs.setdefault("consensus", ConsensusState.ESTABLISHED)
        super().__init__(**kwargs)
        self.log = []
        self.transaction_handles = set()

    async def add_transaction_listener(self, listener, addresses):
        handle = await super().add_transaction_listener(listener, addresses)
        self.transaction_handles.add(handle)
        self.log.append(("add", handle, frozenset(addresses)))
        return handle

    async def remove_listener(self, handle):
        await super().remove_listener(handle)
        if handle in self.transaction_handles:
            self.log.append(("remove", handle))
