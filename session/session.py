"""
Session: the explicit context every reactive component hangs off.

A session owns the remote ledger client, the one-time bootstrap that creates
it, and the background tasks components spawn. Components never touch the
client directly; they await ``wait_for_client`` (which raises
``InitializationError`` if bootstrap failed) and ``wait_for_established``
before any remote read, so work requested early is queued behind those
preconditions instead of failing.
"""

import asyncio
import logging
from typing import Callable, Coroutine, Optional, Set

from accounts.registry import AccountRegistry
from chain.consensus import ConsensusMonitor
from chain.head import HeadTracker
from client.base import LedgerClient
from client.factory import create_client
from config.client_config import ClientConfiguration, ClientConfigurationBuilder
from errors.exceptions import InitializationError
from models.validation import SessionOptions
from network.stats import NetworkStatsPoller
from stores.store import Derived, Writable
from transactions.feed import NewTransactionFeed
from transactions.ledger import TransactionLedger

logger = logging.getLogger(__name__)

ConfigureCallback = Callable[[ClientConfigurationBuilder], None]
ClientFactory = Callable[[ClientConfiguration], LedgerClient]


class Session:

    def __init__(self, client_factory: ClientFactory = create_client, options: Optional[SessionOptions] = None):
        self._client_factory = client_factory
        self.options = options or SessionOptions()
        self.client: Optional[LedgerClient] = None

        self._ready = Writable(False, name="ready._source")
        self.ready = Derived(self._ready, bool, name="ready")

        self._start_task: Optional[asyncio.Task] = None
        self._client_future: Optional[asyncio.Future] = None
        self._tasks: Set[asyncio.Task] = set()
        self._background: Set[asyncio.Task] = set()

        self.consensus = ConsensusMonitor(self)
        self.head = HeadTracker(self)
        self.network = NetworkStatsPoller(self)
        self.accounts = AccountRegistry(self)
        self.new_transaction = NewTransactionFeed(self)
        self.transactions = TransactionLedger(self)

    # Bootstrap

    def start(self, configure: Optional[ConfigureCallback] = None, options=None) -> asyncio.Task:
        """Begin initialization once; every call returns the same task.

        ``options`` only apply on the first call. ``configure`` receives the
        client configuration builder exactly once, before the client is
        created.
        """
        if self._start_task is not None:
            if options:
                logger.warning("Session already started, ignoring new options")
            return self._start_task

        self.options = self.options.merged(options)
        self._start_task = self.spawn(self._bootstrap(configure), name="session-bootstrap")
        return self._start_task

    async def _bootstrap(self, configure: Optional[ConfigureCallback]) -> LedgerClient:
        future = self._client_ready()
        try:
            builder = ClientConfigurationBuilder(self.options.network)
            if configure is not None:
                configure(builder)
            client = self._client_factory(builder.build())
            await client.initialize()
        except Exception as e:
            error = e if isinstance(e, InitializationError) else InitializationError(f"Session bootstrap failed: {e}")
            if not future.done():
                future.set_exception(error)
                future.exception()
            if error is e:
                raise
            raise error from e

        self.client = client
        self._ready.set(True)
        if not future.done():
            future.set_result(client)
        logger.info(f"Session ready on {self.options.network} network")
        return client

    def _client_ready(self) -> asyncio.Future:
        if self._client_future is None:
            self._client_future = asyncio.get_running_loop().create_future()
        return self._client_future

    async def wait_for_client(self) -> LedgerClient:
        return await asyncio.shield(self._client_ready())

    async def wait_for_established(self) -> None:
        client = await self.wait_for_client()
        await client.wait_for_consensus_established()

    # Tasks

    def spawn(self, coro: Coroutine, name: Optional[str] = None, track: bool = True) -> asyncio.Task:
        """Run ``coro`` as a session task.

        Tracked tasks are what ``settle`` waits for; long-running loops pass
        ``track=False``. Failures are logged when the task finishes.
        """
        task = asyncio.get_running_loop().create_task(coro, name=name)
        (self._tasks if track else self._background).add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Task {task.get_name()} failed: {error}", exc_info=error)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def settle(self, timeout: Optional[float] = None) -> None:
        """Wait until no tracked task is left, including ones spawned meanwhile"""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else max(deadline - loop.time(), 0)
            _, pending = await asyncio.wait(set(self._tasks), timeout=remaining)
            if pending and deadline is not None and loop.time() >= deadline:
                raise asyncio.TimeoutError(f"{len(pending)} session task(s) still running")

    async def close(self) -> None:
        tasks = list(self._tasks | self._background)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self.client is not None:
            await self.client.close()
        logger.info("Session closed")
