"""
Latest block of the remote chain.

``hash`` follows the client's head-changed events. ``block`` fetches the full
block for every new hash and keeps only the response for the newest one, so a
slow fetch for an older head never overwrites a newer block. ``height`` is 0
until a block is known.
"""

import logging
from typing import Optional

from client.base import ConsensusState
from models.network import Block
from stores.listener import ListenerValue
from stores.store import Derived, Readable

logger = logging.getLogger(__name__)


async def _established_head_hash(client) -> Optional[str]:
    if client.consensus_state == ConsensusState.ESTABLISHED:
        return await client.get_head_hash()
    return None


class HeadTracker:

    def __init__(self, session):
        self._session = session
        self._latest_hash: Optional[str] = None
        self.hash = ListenerValue(
            session,
            None,
            register=lambda client, callback: client.add_head_changed_listener(callback),
            prime=_established_head_hash,
            name="head_hash",
        )
        self.block = Readable(None, self._follow_hash, name="head")
        self.height = Derived(self.block, lambda block: block.height if block else 0, name="height")

    def _follow_hash(self, set_block):
        def on_hash(block_hash):
            self._latest_hash = block_hash
            if block_hash:
                self._session.spawn(self._fetch_block(block_hash, set_block), name="head-block")
            else:
                set_block(None)

        unsubscribe = self.hash.subscribe(on_hash)

        def stop():
            self._latest_hash = None
            unsubscribe()

        return stop

    async def _fetch_block(self, block_hash: str, set_block) -> Optional[Block]:
        client = await self._session.wait_for_client()
        block = await client.get_block(block_hash)
        if block_hash != self._latest_hash:
            logger.debug(f"Dropping block {block_hash[:16]}, head moved on")
            return None
        set_block(block)
        return block
