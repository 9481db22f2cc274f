"""
Transaction records and their default ordering
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from errors.exceptions import InvalidTransactionError
from models.address import Address


class TransactionState(str, Enum):
    NEW = "new"
    PENDING = "pending"
    MINED = "mined"
    INVALIDATED = "invalidated"
    EXPIRED = "expired"
    CONFIRMED = "confirmed"


class TransactionDetails(BaseModel):
    """
    A transaction as seen by the client. Records are immutable; a newer
    observation of the same hash replaces the stored one wholesale.
    """
    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    transaction_hash: str
    sender: Address
    recipient: Address
    value: int = 0
    fee: int = 0
    data: Optional[str] = None
    validity_start_height: int = 0
    state: TransactionState = TransactionState.NEW
    block_hash: Optional[str] = None
    block_height: Optional[int] = None
    timestamp: Optional[int] = None
    confirmations: int = 0

    @field_validator("transaction_hash", mode="before")
    @classmethod
    def _normalize_hash(cls, value):
        if not isinstance(value, str) or not value:
            raise ValueError("transaction hash must be a non-empty hex string")
        value = value.lower()
        if value.startswith("0x"):
            value = value[2:]
        bytes.fromhex(value)
        return value

    @field_validator("sender", "recipient", mode="before")
    @classmethod
    def _parse_address(cls, value):
        return Address.from_any(value)

    @field_serializer("sender", "recipient")
    def _serialize_address(self, address: Address) -> str:
        return address.to_user_friendly()

    @classmethod
    def from_plain(cls, value: Any) -> "TransactionDetails":
        if isinstance(value, cls):
            return value
        if isinstance(value, BaseModel):
            value = value.model_dump()
        if not isinstance(value, Mapping):
            raise InvalidTransactionError(f"Cannot read a transaction from {type(value).__name__}")
        try:
            return cls.model_validate(dict(value))
        except PydanticValidationError as e:
            raise InvalidTransactionError(f"Invalid transaction: {e}") from e

    @property
    def is_pending(self) -> bool:
        return not self.timestamp

    def involves(self, address: Address) -> bool:
        return self.sender == address or self.recipient == address

    def to_plain(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def compare_transactions(a: TransactionDetails, b: TransactionDetails) -> int:
    """Pending first, then newest first. Equal timestamps compare equal so a
    stable sort keeps their relative order."""
    if a.timestamp == b.timestamp:
        return 0
    if not a.timestamp:
        return -1
    if not b.timestamp:
        return 1
    return b.timestamp - a.timestamp
