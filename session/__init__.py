from session.session import Session

__all__ = ["Session"]
