"""
Pydantic models for input validation
"""

from collections.abc import Mapping
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator
from pydantic.alias_generators import to_camel

from config.config import DEFAULT_NETWORK, FETCH_TRANSACTION_HISTORY
from errors.exceptions import ValidationError
from models.address import Address

NetworkName = Literal["main", "test", "dev"]

STORE_NAMES = (
    "ready", "consensus", "established", "head_hash", "head", "height",
    "network_statistics", "peer_count", "accounts", "accounts_refreshing",
    "new_transaction", "transactions", "transactions_refreshing",
)


class SessionOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    network: NetworkName = DEFAULT_NETWORK
    fetch_transaction_history: bool = FETCH_TRANSACTION_HISTORY

    def merged(self, overrides: Union["SessionOptions", Mapping, None]) -> "SessionOptions":
        """Return a copy with only the fields ``overrides`` actually sets replaced"""
        if not overrides:
            return self
        try:
            parsed = overrides if isinstance(overrides, SessionOptions) else SessionOptions.model_validate(dict(overrides))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid session options: {e}") from e
        return self.model_copy(update=parsed.model_dump(include=parsed.model_fields_set))


class AccountRequest(BaseModel):
    """Body of POST /accounts: an address plus any local fields to keep with it"""
    model_config = ConfigDict(extra="allow")

    address: str = Field(..., min_length=1, max_length=64)
    label: Optional[str] = Field(None, max_length=100)

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        Address.from_any(v)
        return v


class RefreshRequest(BaseModel):
    addresses: List[str] = Field(default_factory=list)

    @field_validator("addresses")
    @classmethod
    def validate_addresses(cls, v):
        for address in v:
            Address.from_any(address)
        return v


class WebSocketSubscription(BaseModel):
    type: Literal["subscribe", "unsubscribe"]
    store: str = Field(..., description="Name of the reactive value to follow")

    @field_validator("store")
    @classmethod
    def validate_store(cls, v):
        if v not in STORE_NAMES:
            raise ValueError(f'Store must be one of: {", ".join(STORE_NAMES)}')
        return v
