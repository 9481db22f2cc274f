"""
Health monitoring for a ledger-stores session
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from prometheus_client import CONTENT_TYPE_LATEST, Gauge, generate_latest

from client.base import ConsensusState
from log_utils import get_logger

logger = get_logger(__name__)

# Prometheus metrics
uptime_seconds = Gauge('ledger_stores_uptime_seconds', 'Session uptime in seconds')
session_ready = Gauge('ledger_stores_session_ready', 'Session bootstrap status (1=ready, 0=not ready)')
consensus_established = Gauge('ledger_stores_consensus_established', 'Consensus status (1=established, 0=not established)')
head_height = Gauge('ledger_stores_head_height', 'Height of the latest known block')
last_block_time = Gauge('ledger_stores_last_block_time_seconds', 'Timestamp of the latest known block')
peer_count = Gauge('ledger_stores_peer_count', 'Number of peers reported by the ledger client')
tracked_accounts = Gauge('ledger_stores_tracked_accounts', 'Number of tracked accounts')
known_transactions = Gauge('ledger_stores_transactions', 'Number of transactions in the ledger')
refreshing = Gauge('ledger_stores_refreshing', 'Whether a refresh is in flight', ['store'])
health_check_status = Gauge('ledger_stores_health_check_status', 'Health check status by component', ['component'])

# Blocks older than this mean the head is not moving
STALE_HEAD_SECONDS = 3600
MIN_PEERS = 3


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    status: HealthStatus
    message: str
    last_check: float
    details: Optional[Dict[str, Any]] = None


_STATUS_VALUES = {
    HealthStatus.HEALTHY: 1.0,
    HealthStatus.DEGRADED: 0.5,
    HealthStatus.UNHEALTHY: 0.0,
}


class HealthMonitor:
    """Health of one session, read from its reactive values"""

    def __init__(self, session):
        self.session = session
        self.components: Dict[str, ComponentHealth] = {}
        self.start_time = time.time()

    def _result(self, component: str, status: HealthStatus, message: str, details=None) -> ComponentHealth:
        health_check_status.labels(component=component).set(_STATUS_VALUES[status])
        return ComponentHealth(status=status, message=message, last_check=time.time(), details=details)

    async def check_session_health(self) -> ComponentHealth:
        ready = bool(self.session.ready.value)
        state = self.session.consensus.state.value
        established = state == ConsensusState.ESTABLISHED

        session_ready.set(1 if ready else 0)
        consensus_established.set(1 if established else 0)
        details = {"ready": ready, "consensus": ConsensusState(state).value}

        if not ready:
            return self._result("session", HealthStatus.UNHEALTHY, "Session not initialized", details)
        if not established:
            return self._result("session", HealthStatus.DEGRADED, f"Consensus {details['consensus']}", details)
        return self._result("session", HealthStatus.HEALTHY, "Consensus established", details)

    async def check_chain_health(self) -> ComponentHealth:
        block = self.session.head.block.value
        if block is None:
            head_height.set(0)
            return self._result("chain", HealthStatus.DEGRADED, "No block known yet", {"height": 0})

        head_height.set(block.height)
        last_block_time.set(block.timestamp)
        details = {"height": block.height, "hash": block.hash}

        time_since_block = time.time() - block.timestamp
        if time_since_block > STALE_HEAD_SECONDS:
            return self._result(
                "chain",
                HealthStatus.DEGRADED,
                f"No new blocks for {time_since_block / 60:.1f} minutes",
                details,
            )
        return self._result("chain", HealthStatus.HEALTHY, "Head is moving", details)

    async def check_network_health(self) -> ComponentHealth:
        peers = self.session.network.peer_count.value
        peer_count.set(peers)
        details = {"total_peers": peers}

        if peers == 0:
            return self._result("network", HealthStatus.UNHEALTHY, "No network peers connected", details)
        if peers < MIN_PEERS:
            return self._result("network", HealthStatus.DEGRADED, f"Low peer count: {peers}", details)
        return self._result("network", HealthStatus.HEALTHY, "Network connected", details)

    def update_store_metrics(self) -> None:
        tracked_accounts.set(len(self.session.accounts.value))
        known_transactions.set(len(self.session.transactions.value))
        refreshing.labels(store="accounts").set(1 if self.session.accounts.refreshing.value else 0)
        refreshing.labels(store="transactions").set(1 if self.session.transactions.refreshing.value else 0)

    async def run_health_checks(self) -> Dict[str, ComponentHealth]:
        """Run all health checks"""
        uptime_seconds.set(time.time() - self.start_time)
        self.update_store_metrics()

        checks = {
            "session": self.check_session_health(),
            "chain": self.check_chain_health(),
            "network": self.check_network_health(),
        }

        results = await asyncio.gather(*checks.values(), return_exceptions=True)

        health_status = {}
        for component, result in zip(checks.keys(), results):
            if isinstance(result, Exception):
                logger.error(f"{component} health check failed: {str(result)}")
                health_status[component] = self._result(
                    component, HealthStatus.UNHEALTHY, f"Health check failed: {str(result)}"
                )
            else:
                health_status[component] = result

        self.components = health_status
        return health_status

    def get_overall_health(self) -> HealthStatus:
        """Get overall session health status"""
        if not self.components:
            return HealthStatus.UNHEALTHY

        statuses = [comp.status for comp in self.components.values()]

        if any(status == HealthStatus.UNHEALTHY for status in statuses):
            return HealthStatus.UNHEALTHY
        elif any(status == HealthStatus.DEGRADED for status in statuses):
            return HealthStatus.DEGRADED
        else:
            return HealthStatus.HEALTHY

    def get_health_summary(self) -> Dict[str, Any]:
        """Get comprehensive health summary"""
        return {
            "status": self.get_overall_health().value,
            "uptime": time.time() - self.start_time,
            "timestamp": time.time(),
            "components": {
                name: {
                    "status": comp.status.value,
                    "message": comp.message,
                    "last_check": comp.last_check,
                    "details": comp.details
                }
                for name, comp in self.components.items()
            }
        }

    def generate_metrics(self) -> tuple[bytes, str]:
        """Generate Prometheus metrics"""
        self.update_store_metrics()
        return generate_latest(), CONTENT_TYPE_LATEST
