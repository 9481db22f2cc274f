"""
Remote client configuration, assembled through a builder so a caller can
customise it before the client is created.
"""

from dataclasses import dataclass, replace
from typing import Optional

from config.config import (
    BLOCK_CONFIRMATIONS,
    DEFAULT_NETWORK,
    LEDGER_RPC_PASSWORD,
    LEDGER_RPC_URL,
    LEDGER_RPC_USERNAME,
    NETWORKS,
    RPC_POLL_INTERVAL,
    RPC_REQUEST_TIMEOUT,
)
from errors.exceptions import ValidationError


@dataclass(frozen=True)
class ClientConfiguration:
    network: str = DEFAULT_NETWORK
    block_confirmations: int = BLOCK_CONFIRMATIONS
    rpc_url: Optional[str] = LEDGER_RPC_URL
    rpc_username: Optional[str] = LEDGER_RPC_USERNAME
    rpc_password: Optional[str] = LEDGER_RPC_PASSWORD
    poll_interval: float = RPC_POLL_INTERVAL
    request_timeout: float = RPC_REQUEST_TIMEOUT


class ClientConfigurationBuilder:
    """Fluent builder; every setter returns the builder"""

    def __init__(self, network: str = DEFAULT_NETWORK):
        self._configuration = ClientConfiguration()
        self.network(network)

    def _update(self, **changes) -> "ClientConfigurationBuilder":
        self._configuration = replace(self._configuration, **changes)
        return self

    def network(self, name: str) -> "ClientConfigurationBuilder":
        if name not in NETWORKS:
            raise ValidationError(f'Network must be one of: {", ".join(NETWORKS)}')
        return self._update(network=name)

    def block_confirmations(self, confirmations: int) -> "ClientConfigurationBuilder":
        if confirmations < 1:
            raise ValidationError("Block confirmations must be at least 1")
        return self._update(block_confirmations=confirmations)

    def rpc(self, url: str, username: Optional[str] = None, password: Optional[str] = None) -> "ClientConfigurationBuilder":
        return self._update(rpc_url=url, rpc_username=username, rpc_password=password)

    def poll_interval(self, seconds: float) -> "ClientConfigurationBuilder":
        if seconds <= 0:
            raise ValidationError("Poll interval must be positive")
        return self._update(poll_interval=seconds)

    def request_timeout(self, seconds: float) -> "ClientConfigurationBuilder":
        if seconds <= 0:
            raise ValidationError("Request timeout must be positive")
        return self._update(request_timeout=seconds)

    def build(self) -> ClientConfiguration:
        return self._configuration
