"""
Account records.

Tracked accounts are plain dicts keyed by ``"address"`` so locally-set
fields (labels, UI state) can live next to the ledger-derived ones. The
ledger-derived part arrives from the remote client as an ``AccountState``.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError, field_validator
from pydantic.alias_generators import to_camel

from errors.exceptions import InvalidAddressError, ValidationError
from models.address import Address


class AccountType(str, Enum):
    BASIC = "basic"
    VESTING = "vesting"
    HTLC = "htlc"


class AccountState(BaseModel):
    """Authoritative ledger state of one address as reported by the remote client"""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True, extra="ignore")

    type: Optional[AccountType] = None
    balance: Optional[int] = None

    # Vesting contracts
    owner: Optional[str] = None
    vesting_start: Optional[int] = None
    vesting_step_blocks: Optional[int] = None
    vesting_step_amount: Optional[int] = None
    vesting_total_amount: Optional[int] = None

    # HTLCs
    sender: Optional[str] = None
    recipient: Optional[str] = None
    hash_root: Optional[str] = None
    hash_algorithm: Optional[str] = None
    hash_count: Optional[int] = None
    timeout: Optional[int] = None
    total_amount: Optional[int] = None

    @field_validator("owner", "sender", "recipient", mode="before")
    @classmethod
    def _parse_address(cls, value):
        if value is None:
            return None
        return Address.from_any(value).to_user_friendly()

    @classmethod
    def from_plain(cls, value: Any) -> "AccountState":
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise ValidationError(f"Cannot read account state from {type(value).__name__}")
        try:
            return cls.model_validate(dict(value))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid account state: {e}") from e

    def to_plain(self) -> Dict[str, Any]:
        """Ledger-derived fields carried by this state, without the unset ones"""
        return self.model_dump(mode="json", exclude_none=True)



def address_likes_to_account_ins(address_likes: Any) -> List[Dict[str, Any]]:
    """Normalize an address, string, mapping carrying an ``address``, or a
    list of those into account input dicts with a canonical ``Address``.
    """
    if address_likes is None:
        return []
    if not isinstance(address_likes, (list, tuple, set, frozenset)):
        address_likes = [address_likes]

    account_ins = []
    for address_like in address_likes:
        if isinstance(address_like, Mapping):
            if not address_like.get("address"):
                raise InvalidAddressError("Account input carries no address")
            account_ins.append({**address_like, "address": Address.from_any(address_like["address"])})
        else:
            account_ins.append({"address": Address.from_any(address_like)})
    return account_ins
