from transactions.feed import NewTransactionFeed
from transactions.ledger import TransactionLedger

__all__ = ["NewTransactionFeed", "TransactionLedger"]
