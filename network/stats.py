import asyncio
import logging

from config.config import NETWORK_STATS_INTERVAL
from errors.exceptions import LedgerStoreError
from models.network import NetworkStatistics
from stores.store import Derived, Readable

logger = logging.getLogger(__name__)


class NetworkStatsPoller:
    """Polls connection statistics while anyone is watching them.

    Each poll replaces the previous snapshot. A failed poll is logged and the
    next one runs on schedule.
    """

    def __init__(self, session, interval: float = NETWORK_STATS_INTERVAL):
        self._session = session
        self.interval = interval
        self.statistics = Readable(NetworkStatistics(), self._start_polling, name="network_statistics")
        self.peer_count = Derived(self.statistics, lambda stats: stats.total_peer_count, name="peer_count")

    def _start_polling(self, set_value):
        task = self._session.spawn(self._poll(set_value), name="network-stats", track=False)
        return task.cancel

    async def _poll(self, set_value) -> None:
        client = await self._session.wait_for_client()
        while True:
            try:
                set_value(await client.get_network_statistics())
            except LedgerStoreError as e:
                logger.warning(f"Network statistics poll failed: {e}")
            await asyncio.sleep(self.interval)
