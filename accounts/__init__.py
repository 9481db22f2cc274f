from accounts.registry import AccountRegistry

__all__ = ["AccountRegistry"]
