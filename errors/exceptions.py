"""
Custom exception classes for ledger-stores
"""

class LedgerStoreError(Exception):
    """Base exception for ledger store operations"""
    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code or "LEDGER_STORE_ERROR"

class ValidationError(LedgerStoreError):
    """Input could not be normalized into a canonical record"""
    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")

class InvalidAddressError(ValidationError, ValueError):
    """Address could not be parsed"""
    def __init__(self, message: str = "Invalid address"):
        super().__init__(message)

class InvalidTransactionError(ValidationError):
    """Transaction record could not be parsed"""
    def __init__(self, message: str = "Invalid transaction"):
        super().__init__(message)

class InitializationError(LedgerStoreError):
    """Session bootstrap failed; the session is unusable"""
    def __init__(self, message: str):
        super().__init__(message, "INIT_ERROR")

class NetworkError(LedgerStoreError):
    """Network-related errors"""
    def __init__(self, message: str):
        super().__init__(message, "NETWORK_ERROR")

class RemoteQueryError(NetworkError):
    """A query against the remote ledger client failed"""
    def __init__(self, message: str, failures: dict = None):
        super().__init__(message)
        self.failures = failures or {}
