"""Storage types, errors and the interface every database backend implements."""

from __future__ import annotations

import enum
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Union

from prismkt.binary import BinaryError, decode_from_bytes, encode_to_bytes

HASH_LENGTH = 32


class DatabaseError(Exception):
    """Base class for storage failures."""


class NotFoundError(DatabaseError):
    """A requested item is not stored."""

    def __init__(self, what: str) -> None:
        super().__init__(f"not found: {what}")
        self.what = what


class WriteError(DatabaseError):
    """An item could not be written."""

    def __init__(self, what: str) -> None:
        super().__init__(f"write error: {what}")
        self.what = what


class ParsingError(DatabaseError):
    """Stored bytes could not be turned back into a value, or the reverse."""

    def __init__(self, what: str) -> None:
        super().__init__(f"parsing error: {what}")
        self.what = what


class DeleteError(DatabaseError):
    """Items could not be deleted."""

    def __init__(self, what: str) -> None:
        super().__init__(f"delete error: {what}")
        self.what = what


class LockError(DatabaseError):
    """The connection lock could not be acquired."""

    def __init__(self) -> None:
        super().__init__("lock error: failed to acquire database lock")


class DatabaseConnectionError(DatabaseError):
    """The database could not be reached."""

    def __init__(self, what: str) -> None:
        super().__init__(f"connection error: {what}")
        self.what = what


class DatabaseInitializationError(DatabaseError):
    """The database could not be set up."""

    def __init__(self, what: str) -> None:
        super().__init__(f"initialization error: {what}")
        self.what = what


def _check_hash(name: str, value: object) -> bytes:
    data = bytes(value)  # type: ignore[arg-type]
    if len(data) != HASH_LENGTH:
        raise ValueError(f"{name} must be {HASH_LENGTH} bytes, got {len(data)}")
    return data


@dataclass(frozen=True, order=True)
class Digest:
    """A 32-byte hash value."""

    value: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _check_hash("digest", self.value))

    @classmethod
    def hash(cls, data: Union[str, bytes, bytearray, memoryview]) -> Digest:
        """SHA-256 of ``data`` (text is UTF-8 encoded)."""
        raw = data.encode() if isinstance(data, str) else bytes(data)
        return cls(hashlib.sha256(raw).digest())

    def __bytes__(self) -> bytes:
        return self.value

    def __str__(self) -> str:
        return self.value.hex()


@dataclass(frozen=True, order=True)
class NodeKey:
    """Position of a tree node: the version it was written at and its nibble path."""

    version: int
    nibble_path: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if self.version < 0:
            raise ValueError(f"version must not be negative, got {self.version}")
        path = tuple(self.nibble_path)
        if any(not 0 <= nibble <= 15 for nibble in path):
            raise ValueError("nibbles must lie between 0 and 15")
        object.__setattr__(self, "nibble_path", path)

    def encode(self) -> bytes:
        return encode_to_bytes([self.version, list(self.nibble_path)])

    @classmethod
    def decode(cls, data: bytes) -> NodeKey:
        try:
            version, nibbles = decode_from_bytes(data)
            return cls(int(version), tuple(int(n) for n in nibbles))
        except BinaryError:
            raise
        except (TypeError, ValueError) as exc:
            raise BinaryError(f"malformed node key: {exc}") from exc


@dataclass(frozen=True)
class LeafNode:
    """A tree leaf holding the hash of a key and the hash of its value."""

    key_hash: bytes
    value_hash: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "key_hash", _check_hash("key hash", self.key_hash))
        object.__setattr__(self, "value_hash", _check_hash("value hash", self.value_hash))

    def encode(self) -> bytes:
        return encode_to_bytes(["leaf", self.key_hash, self.value_hash])


@dataclass(frozen=True)
class InternalNode:
    """A branch node; each child is ``(nibble, version, hash)``."""

    children: tuple[tuple[int, int, bytes], ...] = ()

    def __post_init__(self) -> None:
        children = tuple(
            (int(nibble), int(version), _check_hash("child hash", child_hash))
            for nibble, version, child_hash in self.children
        )
        object.__setattr__(self, "children", children)

    def encode(self) -> bytes:
        return encode_to_bytes(["internal", [list(child) for child in self.children]])


Node = Union[LeafNode, InternalNode]


def decode_node(data: bytes) -> Node:
    """Decode bytes written by ``LeafNode.encode`` or ``InternalNode.encode``."""
    try:
        kind, *rest = decode_from_bytes(data)
        if kind == "leaf":
            key_hash, value_hash = rest
            return LeafNode(key_hash, value_hash)
        if kind == "internal":
            (children,) = rest
            return InternalNode(tuple(tuple(child) for child in children))
    except BinaryError:
        raise
    except (TypeError, ValueError) as exc:
        raise BinaryError(f"malformed node: {exc}") from exc
    raise BinaryError(f"unknown node kind: {kind!r}")


@dataclass
class NodeBatch:
    """Nodes and versioned values to be written together."""

    nodes: dict[NodeKey, Node] = field(default_factory=dict)
    values: dict[tuple[int, bytes], Optional[bytes]] = field(default_factory=dict)

    def insert_node(self, node_key: NodeKey, node: Node) -> None:
        self.nodes[node_key] = node

    def insert_value(self, version: int, key_hash: bytes, value: Optional[bytes]) -> None:
        """Record ``value`` for ``key_hash`` at ``version``; None marks a deletion."""
        key = (version, _check_hash("key hash", key_hash))
        self.values[key] = None if value is None else bytes(value)


@dataclass(frozen=True)
class FinalizedEpoch:
    """A proven state transition between two commitments."""

    height: int
    previous_commitment: Digest
    current_commitment: Digest
    proof: bytes = b""
    public_values: bytes = b""
    signature: Optional[bytes] = None

    def encode(self) -> bytes:
        return encode_to_bytes(
            {
                "height": self.height,
                "previous_commitment": bytes(self.previous_commitment),
                "current_commitment": bytes(self.current_commitment),
                "proof": self.proof,
                "public_values": self.public_values,
                "signature": self.signature,
            }
        )

    @classmethod
    def decode(cls, data: bytes) -> FinalizedEpoch:
        try:
            fields = decode_from_bytes(data)
            return cls(
                height=int(fields["height"]),
                previous_commitment=Digest(fields["previous_commitment"]),
                current_commitment=Digest(fields["current_commitment"]),
                proof=bytes(fields["proof"]),
                public_values=bytes(fields["public_values"]),
                signature=None if fields["signature"] is None else bytes(fields["signature"]),
            )
        except BinaryError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise BinaryError(f"malformed epoch: {exc}") from exc


class StorageBackend(enum.Enum):
    """Kinds of storage a node can be configured with."""

    DISK = "disk"
    IN_MEMORY = "inmemory"
    REDIS = "redis"


class Database(ABC):
    """Tree storage plus epoch, commitment and sync-height bookkeeping."""

    @abstractmethod
    def get_node_option(self, node_key: NodeKey) -> Optional[Node]:
        """The node stored at ``node_key``, or None."""

    @abstractmethod
    def get_rightmost_leaf(self) -> Optional[tuple[NodeKey, LeafNode]]:
        """The leaf with the greatest key hash, with its key, or None."""

    @abstractmethod
    def get_value_option(self, max_version: int, key_hash: bytes) -> Optional[bytes]:
        """The latest value for ``key_hash`` at a version no greater than ``max_version``."""

    @abstractmethod
    def write_node_batch(self, node_batch: NodeBatch) -> None:
        """Store every node and value of the batch."""

    @abstractmethod
    def get_commitment(self, epoch: int) -> Digest:
        """The commitment of ``epoch``; raises NotFoundError."""

    @abstractmethod
    def set_commitment(self, epoch: int, commitment: Digest) -> None:
        """Store the commitment of ``epoch``."""

    @abstractmethod
    def get_epoch(self, height: int) -> FinalizedEpoch:
        """The epoch at ``height``; raises NotFoundError."""

    @abstractmethod
    def add_epoch(self, epoch: FinalizedEpoch) -> None:
        """Append the next epoch; raises WriteError if its height is out of order."""

    @abstractmethod
    def get_latest_epoch_height(self) -> int:
        """Height of the newest epoch; raises NotFoundError when there is none."""

    def get_latest_epoch(self) -> FinalizedEpoch:
        """The newest epoch."""
        return self.get_epoch(self.get_latest_epoch_height())

    @abstractmethod
    def get_last_synced_height(self) -> int:
        """The last DA height the node synced."""

    @abstractmethod
    def set_last_synced_height(self, height: int) -> None:
        """Record the last DA height the node synced."""

    @abstractmethod
    def flush_database(self) -> None:
        """Remove stored data."""