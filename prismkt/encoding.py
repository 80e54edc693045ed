"""Text encodings for byte strings: base64, bech32 and hex.

The ``serialize_*`` / ``deserialize_*`` helpers pick a representation for
byte fields: a text string for human-readable formats, raw bytes otherwise.
"""

from __future__ import annotations

import base64
import binascii
from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]
TextLike = Union[str, bytes, bytearray, memoryview]

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_REVERSE = {char: index for index, char in enumerate(_BECH32_CHARSET)}
_BECH32_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_BECH32_CONST = 1
_BECH32M_CONST = 0x2BC830A3
_BECH32_CHECKSUM_LENGTH = 6
_BECH32_CODE_LENGTH = 1023


# --------------------------------------------------------------------------
# base64
# --------------------------------------------------------------------------


def to_base64(data: BytesLike) -> str:
    """Encode bytes as standard, padded base64."""
    return base64.b64encode(bytes(data)).decode("ascii")


def from_base64(text: TextLike) -> bytes:
    """Decode standard, padded base64. Raises ValueError on malformed input."""
    if isinstance(text, memoryview):
        text = bytes(text)
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid base64: {exc}") from exc


def from_base64_32(text: TextLike) -> bytes:
    """Decode base64 that must hold exactly 32 bytes."""
    decoded = from_base64(text)
    if len(decoded) != 32:
        raise ValueError(f"invalid length: expected 32 bytes, got {len(decoded)}")
    return decoded


# --------------------------------------------------------------------------
# bech32
# --------------------------------------------------------------------------


def _polymod(values: list[int]) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = ((checksum & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_BECH32_GENERATOR):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _bytes_to_fives(data: bytes) -> list[int]:
    accumulator = 0
    bits = 0
    result: list[int] = []
    for byte in data:
        accumulator = (accumulator << 8) | byte
        bits += 8
        while bits >= 5:
            bits -= 5
            result.append((accumulator >> bits) & 31)
    if bits:
        result.append((accumulator << (5 - bits)) & 31)
    return result


def _fives_to_bytes(values: list[int]) -> bytes:
    accumulator = 0
    bits = 0
    result = bytearray()
    for value in values:
        accumulator = (accumulator << 5) | value
        bits += 5
        if bits >= 8:
            bits -= 8
            result.append((accumulator >> bits) & 0xFF)
    return bytes(result)


def to_bech32(data: BytesLike, hrp: str) -> str:
    """Encode bytes as a lowercase bech32 string with the given prefix."""
    hrp = hrp.lower()
    values = _bytes_to_fives(bytes(data))
    length = len(hrp) + 1 + len(values) + _BECH32_CHECKSUM_LENGTH
    if length > _BECH32_CODE_LENGTH:
        raise ValueError(
            f"encoded string too long: {length} exceeds {_BECH32_CODE_LENGTH} characters"
        )
    polymod = _polymod(_hrp_expand(hrp) + values + [0] * _BECH32_CHECKSUM_LENGTH)
    polymod ^= _BECH32_CONST
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(_BECH32_CHECKSUM_LENGTH)]
    return hrp + "1" + "".join(_BECH32_CHARSET[v] for v in values + checksum)


def from_bech32(text: str) -> bytes:
    """Decode a bech32 or bech32m string and return its data bytes."""
    if any(not 33 <= ord(c) <= 126 for c in text):
        raise ValueError("invalid character in bech32 string")
    if text.lower() != text and text.upper() != text:
        raise ValueError("mixed case in bech32 string")
    lowered = text.lower()
    separator = lowered.rfind("1")
    if separator < 0:
        raise ValueError("missing bech32 separator")
    if separator == 0:
        raise ValueError("empty human-readable part")
    hrp, data_part = lowered[:separator], lowered[separator + 1 :]
    if len(data_part) < _BECH32_CHECKSUM_LENGTH:
        raise ValueError("bech32 data part too short for a checksum")
    try:
        values = [_BECH32_REVERSE[c] for c in data_part]
    except KeyError as exc:
        raise ValueError(f"invalid bech32 data character: {exc.args[0]!r}") from None
    if _polymod(_hrp_expand(hrp) + values) not in (_BECH32_CONST, _BECH32M_CONST):
        raise ValueError("invalid bech32 checksum")
    return _fives_to_bytes(values[:-_BECH32_CHECKSUM_LENGTH])


# --------------------------------------------------------------------------
# hex
# --------------------------------------------------------------------------


def to_hex(data: BytesLike) -> str:
    """Encode bytes as lowercase hex."""
    return bytes(data).hex()


def from_hex(text: TextLike) -> bytes:
    """Decode hex (either case). Raises ValueError on odd length or bad digits."""
    if isinstance(text, memoryview):
        text = bytes(text)
    try:
        return binascii.unhexlify(text)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid hex: {exc}") from exc


# --------------------------------------------------------------------------
# field representations
# --------------------------------------------------------------------------


def serialize_hex(data: BytesLike, human_readable: bool) -> str | bytes:
    """Represent bytes as hex text for readable formats, raw bytes otherwise."""
    return to_hex(data) if human_readable else bytes(data)


def deserialize_hex(value: TextLike, human_readable: bool) -> bytes:
    """Inverse of :func:`serialize_hex`."""
    if human_readable:
        if not isinstance(value, str):
            raise TypeError(f"expected a hex string, got {type(value).__name__}")
        return from_hex(value)
    return bytes(value)


def serialize_b64(data: BytesLike, human_readable: bool) -> str | bytes:
    """Represent bytes as base64 text for readable formats, raw bytes otherwise."""
    return to_base64(data) if human_readable else bytes(data)


def deserialize_b64(value: TextLike, human_readable: bool) -> bytes:
    """Inverse of :func:`serialize_b64`."""
    if human_readable:
        if not isinstance(value, str):
            raise TypeError(f"expected a base64 string, got {type(value).__name__}")
        return from_base64(value)
    return bytes(value)