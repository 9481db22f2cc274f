from client.base import ConsensusState, LedgerClient, ListenerHandle
from client.factory import create_client
from client.memory import InMemoryLedgerClient
from client.rpc import JsonRpcLedgerClient

__all__ = [
    "ConsensusState",
    "InMemoryLedgerClient",
    "JsonRpcLedgerClient",
    "LedgerClient",
    "ListenerHandle",
    "create_client",
]
