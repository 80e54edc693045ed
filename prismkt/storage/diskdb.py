"""Database persisted on disk in an ordered key-value store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import lmdb

from prismkt.binary import BinaryError, decode_from_bytes, encode_to_bytes
from prismkt.encoding import from_hex, to_hex
from prismkt.storage.database import (
    Database,
    DatabaseInitializationError,
    Digest,
    FinalizedEpoch,
    LeafNode,
    Node,
    NodeBatch,
    NodeKey,
    NotFoundError,
    ParsingError,
    WriteError,
    decode_node,
)

KEY_PREFIX_COMMITMENTS = "commitments:epoch_"
KEY_PREFIX_NODE = "node:"
KEY_PREFIX_VALUE_HISTORY = "value_history:"
KEY_PREFIX_EPOCHS = "epochs:height_"
KEY_SYNC_HEIGHT = b"app_state:sync_height"
KEY_LATEST_EPOCH_HEIGHT = b"app_state:latest_epoch_height"


@dataclass(frozen=True)
class DiskDatabaseConfig:
    """Where the database lives and how large it may grow."""

    path: str
    map_size: int = 1 << 30


def _node_key(node_key: NodeKey) -> bytes:
    return f"{KEY_PREFIX_NODE}{to_hex(node_key.encode())}".encode()


def _value_prefix(key_hash: bytes) -> str:
    return f"{KEY_PREFIX_VALUE_HISTORY}{to_hex(key_hash)}"


def _value_key(key_hash: bytes, version: int) -> bytes:
    return f"{_value_prefix(key_hash)}:{to_hex(version.to_bytes(8, 'big'))}".encode()


def _decode_u64(raw: bytes) -> int:
    if len(raw) != 8:
        raise ParsingError(f"expected 8 big-endian bytes, got {len(raw)}")
    return int.from_bytes(raw, "big")


class DiskDatabase(Database):
    """A database in an on-disk, lexicographically ordered key-value store."""

    def __init__(self, config: DiskDatabaseConfig) -> None:
        self.path = config.path
        try:
            self._env = lmdb.open(config.path, map_size=config.map_size, subdir=True)
        except lmdb.Error as exc:
            raise DatabaseInitializationError(str(exc)) from exc
        self._db = self._env.open_db()

    def close(self) -> None:
        """Release the underlying store."""
        self._env.close()

    def __enter__(self) -> DiskDatabase:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get(self, key: bytes) -> Optional[bytes]:
        with self._env.begin() as txn:
            return txn.get(key)

    def _put(self, key: bytes, value: bytes) -> None:
        with self._env.begin(write=True) as txn:
            txn.put(key, value)

    def get_commitment(self, epoch: int) -> Digest:
        raw = self._get(f"{KEY_PREFIX_COMMITMENTS}{epoch}".encode())
        if raw is None:
            raise NotFoundError(f"commitment from epoch_{epoch}")
        try:
            return Digest(raw)
        except ValueError as exc:
            raise ParsingError(f"commitment from epoch_{epoch}: {exc}") from exc

    def set_commitment(self, epoch: int, commitment: Digest) -> None:
        self._put(f"{KEY_PREFIX_COMMITMENTS}{epoch}".encode(), bytes(commitment))

    def get_last_synced_height(self) -> int:
        raw = self._get(KEY_SYNC_HEIGHT)
        if raw is None:
            raise NotFoundError("current sync height")
        return _decode_u64(raw)

    def set_last_synced_height(self, height: int) -> None:
        self._put(KEY_SYNC_HEIGHT, height.to_bytes(8, "big"))

    def get_epoch(self, height: int) -> FinalizedEpoch:
        raw = self._get(f"{KEY_PREFIX_EPOCHS}{height}".encode())
        if raw is None:
            raise NotFoundError(f"epoch at height {height}")
        try:
            return FinalizedEpoch.decode(raw)
        except BinaryError as exc:
            raise ParsingError(f"Failed to decode epoch at height {height}: {exc}") from exc

    def add_epoch(self, epoch: FinalizedEpoch) -> None:
        try:
            latest: Optional[int] = self.get_latest_epoch_height()
        except NotFoundError:
            latest = None

        if latest is not None:
            if latest + 1 != epoch.height:
                raise WriteError(
                    f"epoch height mismatch: expected {latest + 1}, got {epoch.height}"
                )
        elif epoch.height != 0:
            raise WriteError(f"first epoch must have height 0, got {epoch.height}")

        try:
            epoch_data = epoch.encode()
        except BinaryError as exc:
            raise ParsingError(
                f"Failed to encode epoch at height {epoch.height}: {exc}"
            ) from exc

        with self._env.begin(write=True) as txn:
            txn.put(f"{KEY_PREFIX_EPOCHS}{epoch.height}".encode(), epoch_data)
            txn.put(KEY_LATEST_EPOCH_HEIGHT, epoch.height.to_bytes(8, "big"))

    def get_latest_epoch_height(self) -> int:
        raw = self._get(KEY_LATEST_EPOCH_HEIGHT)
        if raw is None:
            raise NotFoundError("latest epoch height")
        return _decode_u64(raw)

    def get_latest_epoch(self) -> FinalizedEpoch:
        return self.get_epoch(self.get_latest_epoch_height())

    def flush_database(self) -> None:
        """Delete every stored entry."""
        with self._env.begin(write=True) as txn:
            txn.drop(self._db, delete=False)

    def get_node_option(self, node_key: NodeKey) -> Optional[Node]:
        raw = self._get(_node_key(node_key))
        return None if raw is None else decode_node(raw)

    def get_value_option(self, max_version: int, key_hash: bytes) -> Optional[bytes]:
        key_hash = bytes(key_hash)
        max_key = _value_key(key_hash, max_version)
        prefix = f"{_value_prefix(key_hash)}:".encode()
        with self._env.begin() as txn:
            cursor = txn.cursor()
            if cursor.set_range(max_key):
                if cursor.key() != max_key and not cursor.prev():
                    return None
            elif not cursor.last():
                return None
            key, raw = cursor.item()
            if not key.startswith(prefix):
                return None
            if not raw:
                return None
            return bytes(decode_from_bytes(raw))

    def get_rightmost_leaf(self) -> Optional[tuple[NodeKey, LeafNode]]:
        prefix = KEY_PREFIX_NODE.encode()
        with self._env.begin() as txn:
            for key, raw in txn.cursor().iterprev(keys=True, values=True):
                if not key.startswith(prefix):
                    continue
                node = decode_node(raw)
                if isinstance(node, LeafNode):
                    node_key = NodeKey.decode(from_hex(key[len(prefix):]))
                    return node_key, node
        return None

    def write_node_batch(self, node_batch: NodeBatch) -> None:
        with self._env.begin(write=True) as txn:
            for node_key, node in node_batch.nodes.items():
                txn.put(_node_key(node_key), node.encode())
            for (version, key_hash), value in node_batch.values.items():
                encoded = b"" if value is None else encode_to_bytes(value)
                txn.put(_value_key(key_hash, version), encoded)