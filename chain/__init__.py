from chain.consensus import ConsensusMonitor
from chain.head import HeadTracker

__all__ = ["ConsensusMonitor", "HeadTracker"]
