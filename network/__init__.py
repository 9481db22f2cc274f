from network.stats import NetworkStatsPoller

__all__ = ["NetworkStatsPoller"]
