import os

NETWORKS = ("main", "test", "dev")
DEFAULT_NETWORK = os.environ.get("LEDGER_NETWORK", "main")
FETCH_TRANSACTION_HISTORY = os.environ.get("FETCH_TRANSACTION_HISTORY", "true").lower() == "true"

# Seconds between network statistics polls while someone is watching
NETWORK_STATS_INTERVAL = float(os.environ.get("NETWORK_STATS_INTERVAL", "1.0"))

# JSON-RPC node; unset means the in-memory client is used
LEDGER_RPC_URL = os.environ.get("LEDGER_RPC_URL")
LEDGER_RPC_USERNAME = os.environ.get("LEDGER_RPC_USERNAME")
LEDGER_RPC_PASSWORD = os.environ.get("LEDGER_RPC_PASSWORD")
RPC_POLL_INTERVAL = float(os.environ.get("RPC_POLL_INTERVAL", "1.0"))
RPC_REQUEST_TIMEOUT = float(os.environ.get("RPC_REQUEST_TIMEOUT", "10"))
RPC_HISTORY_LIMIT = int(os.environ.get("RPC_HISTORY_LIMIT", "1000"))
MAX_CATCHUP_BLOCKS = 10
BLOCK_CONFIRMATIONS = int(os.environ.get("BLOCK_CONFIRMATIONS", "10"))

API_HOST = os.environ.get("API_HOST", "127.0.0.1")
API_PORT = int(os.environ.get("API_PORT", "8080"))
