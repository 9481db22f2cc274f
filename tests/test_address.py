import copy

import pytest

from errors.exceptions import InvalidAddressError, ValidationError
from models.address import Address

ZERO_FRIENDLY = "NQ07 0000 0000 0000 0000 0000 0000 0000 0000"


def test_zero_address_user_friendly_form():
    address = Address(bytes(20))
    assert address.to_user_friendly() == ZERO_FRIENDLY
    assert address.to_user_friendly(with_spaces=False) == ZERO_FRIENDLY.replace(" ", "")


def test_user_friendly_round_trip():
    address = Address(bytes(range(20)))
    assert Address.from_user_friendly(address.to_user_friendly()) == address
    assert Address.from_any(address.to_user_friendly().lower()) == address


def test_from_hex_accepts_prefix():
    address = Address(bytes(range(20)))
    assert Address.from_hex("0x" + address.to_hex()) == address
    assert Address.from_any(address.to_hex()) == address


def test_bad_checksum_is_rejected():
    with pytest.raises(InvalidAddressError):
        Address.from_user_friendly("NQ08 0000 0000 0000 0000 0000 0000 0000 0000")


@pytest.mark.parametrize("value", [
    "",
    "NQ07 0000",
    "zz" * 20,
    42,
    b"short",
    "NQ07 0000 0000 0000 0000 0000 0000 0000 000!",
    "NQ07 0000 0000 0000 0000 0000 0000 0000 000\u00b2",
])
def test_invalid_inputs(value):
    with pytest.raises(ValidationError):
        Address.from_any(value)


def test_equality_and_hashing_by_raw_bytes():
    first = Address(bytes([1]) * 20)
    second = Address.from_hex("01" * 20)
    assert first == second
    assert len({first, second}) == 1
    assert first != Address(bytes([2]) * 20)


def test_address_is_immutable_and_copyable():
    address = Address(bytes([3]) * 20)
    with pytest.raises(AttributeError):
        address._raw = bytes(20)
    assert copy.deepcopy(address) == address
