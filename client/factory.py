import logging

from client.base import ConsensusState, LedgerClient
from client.memory import InMemoryLedgerClient
from client.rpc import JsonRpcLedgerClient
from config.client_config import ClientConfiguration

logger = logging.getLogger(__name__)


def create_client(configuration: ClientConfiguration) -> LedgerClient:
    """Pick the client implementation for a finished configuration"""
    if configuration.rpc_url:
        logger.info(f"Using JSON-RPC ledger client at {configuration.rpc_url}")
        return JsonRpcLedgerClient(configuration)
    logger.info(f"No RPC URL configured, using in-memory ledger for {configuration.network}")
    return InMemoryLedgerClient(configuration, consensus=ConsensusState.ESTABLISHED)
