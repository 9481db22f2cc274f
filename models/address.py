"""
Ledger addresses: 20 raw bytes rendered as hex or as the user-friendly
IBAN-style form ``NQ07 0000 0000 0000 0000 0000 0000 0000 0000``.
"""

from typing import Union

from errors.exceptions import InvalidAddressError

SERIALIZED_SIZE = 20
COUNTRY_CODE = "NQ"
_BASE32_ALPHABET = "0123456789ABCDEFGHJKLMNPQRSTUVXY"
_USER_FRIENDLY_LENGTH = 36


def _to_base32(data: bytes) -> str:
    value = int.from_bytes(data, "big")
    bits = len(data) * 8
    padding = (-bits) % 5
    value <<= padding
    count = (bits + padding) // 5
    return "".join(
        _BASE32_ALPHABET[(value >> (5 * (count - 1 - i))) & 0x1F] for i in range(count)
    )


def _from_base32(text: str) -> bytes:
    value = 0
    for char in text:
        index = _BASE32_ALPHABET.find(char)
        if index < 0:
            raise InvalidAddressError(f"Invalid base32 character {char!r}")
        value = (value << 5) | index
    return value.to_bytes(SERIALIZED_SIZE, "big")


def _iban_check(text: str) -> int:
    digits = "".join(c if c.isdigit() else str(ord(c) - 55) for c in text.upper())
    return int(digits) % 97


class Address:
    __slots__ = ("_raw",)

    def __init__(self, raw: bytes):
        if not isinstance(raw, (bytes, bytearray)) or len(raw) != SERIALIZED_SIZE:
            raise InvalidAddressError(f"Address must be {SERIALIZED_SIZE} bytes")
        object.__setattr__(self, "_raw", bytes(raw))

    def __setattr__(self, name, value):
        raise AttributeError("Address is immutable")

    def __reduce__(self):
        return (Address, (self._raw,))

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    @classmethod
    def from_hex(cls, text: str) -> "Address":
        text = text.strip()
        if text[:2].lower() == "0x":
            text = text[2:]
        if len(text) != SERIALIZED_SIZE * 2:
            raise InvalidAddressError(f"Hex addresses are {SERIALIZED_SIZE * 2} characters")
        try:
            return cls(bytes.fromhex(text))
        except ValueError as e:
            raise InvalidAddressError(f"Invalid hex address: {e}") from e

    @classmethod
    def from_user_friendly(cls, text: str) -> "Address":
        text = text.replace(" ", "").upper()
        if not text.startswith(COUNTRY_CODE):
            raise InvalidAddressError(f"Addresses start with {COUNTRY_CODE}")
        if len(text) != _USER_FRIENDLY_LENGTH:
            raise InvalidAddressError(f"Addresses are {_USER_FRIENDLY_LENGTH} characters (ignoring spaces)")
        if not (text.isascii() and text.isalnum()):
            raise InvalidAddressError("Addresses only contain letters and digits")
        if _iban_check(text[4:] + text[:4]) != 1:
            raise InvalidAddressError("Invalid address checksum")
        return cls(_from_base32(text[4:]))

    @classmethod
    def from_any(cls, value: Union["Address", str, bytes]) -> "Address":
        if isinstance(value, Address):
            return value
        if isinstance(value, (bytes, bytearray)):
            return cls(value)
        if isinstance(value, str):
            if value.strip()[:2].upper() == COUNTRY_CODE:
                return cls.from_user_friendly(value)
            return cls.from_hex(value)
        raise InvalidAddressError(f"Cannot parse address from {type(value).__name__}")

    def serialize(self) -> bytes:
        return self._raw

    def to_hex(self) -> str:
        return self._raw.hex()

    def to_user_friendly(self, with_spaces: bool = True) -> str:
        base32 = _to_base32(self._raw)
        check = f"{98 - _iban_check(base32 + COUNTRY_CODE + '00'):02d}"
        text = COUNTRY_CODE + check + base32
        if with_spaces:
            text = " ".join(text[i:i + 4] for i in range(0, len(text), 4))
        return text

    def to_plain(self) -> str:
        return self.to_user_friendly()

    def __eq__(self, other):
        if isinstance(other, Address):
            return self._raw == other._raw
        return NotImplemented

    def __hash__(self):
        return hash(self._raw)

    def __str__(self):
        return self.to_user_friendly()

    def __repr__(self):
        return f"Address({self.to_user_friendly()!r})"
