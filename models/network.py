from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Plain(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_plain(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Block(_Plain):
    hash: str
    height: int
    timestamp: int = 0
    prev_hash: Optional[str] = None
    miner: Optional[str] = None
    transaction_hashes: List[str] = Field(default_factory=list)


class PeerCountsByType(_Plain):
    total: int = 0
    connecting: int = 0
    dumb: int = 0
    rtc: int = 0
    ws: int = 0
    wss: int = 0


class KnownAddressesByType(_Plain):
    total: int = 0
    rtc: int = 0
    ws: int = 0
    wss: int = 0


class NetworkStatistics(_Plain):
    """Point-in-time connection statistics; each poll replaces the previous snapshot"""
    bytes_received: int = 0
    bytes_sent: int = 0
    total_peer_count: int = 0
    peer_counts_by_type: PeerCountsByType = Field(default_factory=PeerCountsByType)
    total_known_addresses: int = 0
    known_addresses_by_type: KnownAddressesByType = Field(default_factory=KnownAddressesByType)
    time_offset: int = 0
