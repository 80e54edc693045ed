"""Compact binary encoding of plain Python values."""

from __future__ import annotations

from typing import Any

import msgpack
from msgpack.exceptions import UnpackException


class BinaryError(ValueError):
    """Raised when a value cannot be encoded or bytes cannot be decoded."""


def encode_to_bytes(value: Any) -> bytes:
    """Encode ``value`` (None, bool, int, float, str, bytes, lists, dicts) to bytes."""
    try:
        return msgpack.packb(value, use_bin_type=True)
    except (TypeError, ValueError, OverflowError) as exc:
        raise BinaryError(f"cannot encode value: {exc}") from exc


def decode_from_bytes(data: bytes | bytearray | memoryview) -> Any:
    """Decode bytes produced by :func:`encode_to_bytes`.

    The whole input must be consumed; trailing bytes are an error.
    """
    try:
        return msgpack.unpackb(bytes(data), raw=False, strict_map_key=False)
    except (UnpackException, ValueError, TypeError) as exc:
        raise BinaryError(f"cannot decode bytes: {exc}") from exc