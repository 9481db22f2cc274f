from log_utils.structured_logger import (
    ContextualLogger,
    StructuredFormatter,
    get_logger,
    setup_logging,
)

__all__ = ["ContextualLogger", "StructuredFormatter", "get_logger", "setup_logging"]
