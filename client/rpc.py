"""
Ledger client backed by a node's JSON-RPC interface.

A node only answers queries, so head, consensus and transaction events are
produced by polling: every ``poll_interval`` seconds the client asks for the
consensus state and the current block number and walks any new blocks,
announcing the head and the transactions they carry.
"""

import asyncio
import itertools
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

import aiohttp

from client.base import ConsensusState, LedgerClient, ListenerHandle, unknown_or_changed
from config.client_config import ClientConfiguration
from config.config import MAX_CATCHUP_BLOCKS, RPC_HISTORY_LIMIT
from errors.exceptions import InitializationError, InvalidTransactionError, LedgerStoreError, RemoteQueryError
from events.event_bus import EventBus, EventTypes
from models.account import AccountState, AccountType
from models.address import Address
from models.network import Block, NetworkStatistics
from models.transaction import TransactionDetails, TransactionState

logger = logging.getLogger(__name__)

_ACCOUNT_TYPES = {0: AccountType.BASIC, 1: AccountType.VESTING, 2: AccountType.HTLC}

_CONSENSUS_STATES = {
    "established": ConsensusState.ESTABLISHED,
    "syncing": ConsensusState.SYNCING,
    "connecting": ConsensusState.CONNECTING,
    "lost": ConsensusState.CONNECTING,
}


def _account_from_rpc(result: Dict[str, Any]) -> AccountState:
    fields = {
        "type": _ACCOUNT_TYPES.get(result.get("type", 0), AccountType.BASIC),
        "balance": result.get("balance", 0),
    }
    for rpc_name, name in (
        ("ownerAddress", "owner"),
        ("vestingStart", "vesting_start"),
        ("vestingStepBlocks", "vesting_step_blocks"),
        ("vestingStepAmount", "vesting_step_amount"),
        ("vestingTotalAmount", "vesting_total_amount"),
        ("senderAddress", "sender"),
        ("recipientAddress", "recipient"),
        ("hashRoot", "hash_root"),
        ("hashAlgorithm", "hash_algorithm"),
        ("hashCount", "hash_count"),
        ("timeout", "timeout"),
        ("totalAmount", "total_amount"),
    ):
        if result.get(rpc_name) is not None:
            fields[name] = result[rpc_name]
    if fields.get("hash_algorithm") is not None:
        fields["hash_algorithm"] = str(fields["hash_algorithm"])
    return AccountState.from_plain(fields)


def _transaction_from_rpc(result: Dict[str, Any], confirmations_needed: int) -> TransactionDetails:
    confirmations = result.get("confirmations", 0)
    if not result.get("blockHash"):
        state = TransactionState.PENDING
    elif confirmations >= confirmations_needed:
        state = TransactionState.CONFIRMED
    else:
        state = TransactionState.MINED
    return TransactionDetails.from_plain({
        "transaction_hash": result["hash"],
        "sender": result.get("fromAddress") or result.get("from"),
        "recipient": result.get("toAddress") or result.get("to"),
        "value": result.get("value", 0),
        "fee": result.get("fee", 0),
        "data": result.get("data"),
        "validity_start_height": result.get("validityStartHeight", 0),
        "state": state,
        "block_hash": result.get("blockHash"),
        "block_height": result.get("blockNumber"),
        "timestamp": result.get("timestamp"),
        "confirmations": confirmations,
    })


def _block_from_rpc(result: Dict[str, Any]) -> Block:
    transactions = result.get("transactions") or []
    return Block(
        hash=result["hash"],
        height=result["number"],
        timestamp=result.get("timestamp", 0),
        prev_hash=result.get("parentHash"),
        miner=result.get("minerAddress"),
        transaction_hashes=[tx["hash"] if isinstance(tx, dict) else tx for tx in transactions],
    )


class JsonRpcLedgerClient(LedgerClient):

    def __init__(self, configuration: ClientConfiguration):
        if not configuration.rpc_url:
            raise InitializationError("JSON-RPC client needs an RPC URL")
        self.configuration = configuration
        self.bus = EventBus()
        self._session: Optional[aiohttp.ClientSession] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._request_ids = itertools.count(1)
        self._consensus = ConsensusState.CONNECTING
        self._established = asyncio.Event()
        self._head_hash: Optional[str] = None
        self._head_height = 0

    async def _call(self, method: str, *params) -> Any:
        if self._session is None:
            raise RemoteQueryError(f"{method}: client is not initialized")
        payload = {"jsonrpc": "2.0", "id": next(self._request_ids), "method": method, "params": list(params)}
        try:
            async with self._session.post(self.configuration.rpc_url, json=payload) as response:
                response.raise_for_status()
                body = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteQueryError(f"{method} request failed: {e}") from e
        except ValueError as e:
            raise RemoteQueryError(f"{method} returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise RemoteQueryError(f"{method} returned a malformed response")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RemoteQueryError(f"{method} returned an error: {message}")
        return body.get("result")

    async def initialize(self) -> None:
        auth = None
        if self.configuration.rpc_username:
            auth = aiohttp.BasicAuth(self.configuration.rpc_username, self.configuration.rpc_password or "")
        self._session = aiohttp.ClientSession(
            auth=auth,
            timeout=aiohttp.ClientTimeout(total=self.configuration.request_timeout),
        )
        try:
            await self._poll_once()
        except RemoteQueryError as e:
            await self.close()
            raise InitializationError(f"Cannot reach ledger node at {self.configuration.rpc_url}: {e}") from e
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop(), name="rpc-poll")
        logger.info(f"JSON-RPC ledger client connected to {self.configuration.rpc_url}")

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.configuration.poll_interval)
            try:
                await self._poll_once()
            except (LedgerStoreError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Polling ledger node failed: {e}", exc_info=not isinstance(e, RemoteQueryError))

    async def _poll_once(self) -> None:
        consensus = _CONSENSUS_STATES.get(await self._call("consensus"), ConsensusState.CONNECTING)
        self._update_consensus(consensus)

        height = await self._call("blockNumber")
        if not isinstance(height, int):
            raise RemoteQueryError(f"blockNumber returned {height!r}")
        if height <= self._head_height:
            return

        first = self._head_height + 1 if self._head_height else height
        first = max(first, height - MAX_CATCHUP_BLOCKS + 1)
        for number in range(first, height + 1):
            result = await self._call("getBlockByNumber", number, True)
            if not result:
                break
            try:
                block = _block_from_rpc(result)
            except (KeyError, TypeError, ValueError) as e:
                raise RemoteQueryError(f"Malformed block {number}: {e}") from e
            self._head_hash, self._head_height = block.hash, block.height
            self.bus.emit(EventTypes.HEAD_CHANGED, block.hash)
            for tx in result.get("transactions") or []:
                if not isinstance(tx, dict):
                    continue
                tx.setdefault("timestamp", block.timestamp)
                tx.setdefault("confirmations", 1)
                try:
                    details = _transaction_from_rpc(tx, self.configuration.block_confirmations)
                except (InvalidTransactionError, KeyError) as e:
                    logger.warning(f"Skipping unreadable transaction in block {block.height}: {e}")
                    continue
                self.bus.emit(EventTypes.TRANSACTION_OBSERVED, details)

    def _update_consensus(self, state: ConsensusState) -> None:
        if state == self._consensus:
            return
        self._consensus = state
        if state == ConsensusState.ESTABLISHED:
            self._established.set()
        else:
            self._established.clear()
        logger.info(f"Consensus changed to {state.value}")
        self.bus.emit(EventTypes.CONSENSUS_CHANGED, state)

    @property
    def consensus_state(self) -> ConsensusState:
        return self._consensus

    async def add_consensus_changed_listener(self, listener: Callable[[ConsensusState], None]) -> ListenerHandle:
        return self.bus.subscribe(EventTypes.CONSENSUS_CHANGED, listener)

    async def add_head_changed_listener(self, listener: Callable[[str], None]) -> ListenerHandle:
        return self.bus.subscribe(EventTypes.HEAD_CHANGED, listener)

    async def add_transaction_listener(self, listener: Callable[[TransactionDetails], None],
                                       addresses: Iterable[Address]) -> ListenerHandle:
        watched = frozenset(Address.from_any(a) for a in addresses)
        return self.bus.subscribe(
            EventTypes.TRANSACTION_OBSERVED,
            listener,
            lambda tx: tx.sender in watched or tx.recipient in watched,
        )

    async def remove_listener(self, handle: ListenerHandle) -> None:
        self.bus.unsubscribe(handle)

    async def get_head_hash(self) -> Optional[str]:
        return self._head_hash

    async def get_block(self, block_hash: str) -> Block:
        result = await self._call("getBlockByHash", block_hash, False)
        if not result:
            raise RemoteQueryError(f"Unknown block {block_hash}")
        return _block_from_rpc(result)

    async def get_accounts(self, addresses: List[Address]) -> List[AccountState]:
        results = await asyncio.gather(
            *(self._call("getAccount", Address.from_any(a).to_user_friendly()) for a in addresses)
        )
        return [_account_from_rpc(result or {}) for result in results]

    async def get_transactions_by_address(self, address: Address, since_block_height: int = 0,
                                          known_transactions: Optional[List[TransactionDetails]] = None
                                          ) -> List[TransactionDetails]:
        address = Address.from_any(address)
        results = await self._call("getTransactionsByAddress", address.to_user_friendly(), RPC_HISTORY_LIMIT)
        history = [
            _transaction_from_rpc(result, self.configuration.block_confirmations)
            for result in results or []
        ]
        history = [tx for tx in history if tx.block_height is None or tx.block_height >= since_block_height]
        return unknown_or_changed(history, known_transactions)

    async def get_network_statistics(self) -> NetworkStatistics:
        peers = await self._call("peerCount")
        return NetworkStatistics(total_peer_count=peers or 0)

    async def wait_for_consensus_established(self) -> None:
        await self._established.wait()

    async def close(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        if self._session is not None:
            await self._session.close()
            self._session = None
