"""Database kept in process memory."""

from __future__ import annotations

import threading
from typing import Optional

from prismkt.storage.database import (
    Database,
    Digest,
    FinalizedEpoch,
    LeafNode,
    Node,
    NodeBatch,
    NodeKey,
    NotFoundError,
    WriteError,
)


class InMemoryDatabase(Database):
    """A thread-safe database held in dictionaries; nothing survives the process."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: dict[NodeKey, Node] = {}
        self._values: dict[tuple[int, bytes], bytes] = {}
        self._commitments: dict[int, Digest] = {}
        self._epochs: list[FinalizedEpoch] = []
        self._sync_height = 1

    def get_node_option(self, node_key: NodeKey) -> Optional[Node]:
        with self._lock:
            return self._nodes.get(node_key)

    def get_rightmost_leaf(self) -> Optional[tuple[NodeKey, LeafNode]]:
        with self._lock:
            leaves = [
                (key, node) for key, node in self._nodes.items() if isinstance(node, LeafNode)
            ]
        return max(leaves, key=lambda item: item[1].key_hash, default=None)

    def get_value_option(self, max_version: int, key_hash: bytes) -> Optional[bytes]:
        key_hash = bytes(key_hash)
        with self._lock:
            candidates = [
                (version, value)
                for (version, stored_hash), value in self._values.items()
                if version <= max_version and stored_hash == key_hash
            ]
        best = max(candidates, key=lambda item: item[0], default=None)
        return None if best is None else best[1]

    def write_node_batch(self, node_batch: NodeBatch) -> None:
        with self._lock:
            self._nodes.update(node_batch.nodes)
            for key, value in node_batch.values.items():
                self._values[key] = value if value is not None else b""

    def get_commitment(self, epoch: int) -> Digest:
        with self._lock:
            try:
                return self._commitments[epoch]
            except KeyError:
                raise NotFoundError(f"commitment from epoch_{epoch}") from None

    def set_commitment(self, epoch: int, commitment: Digest) -> None:
        with self._lock:
            self._commitments[epoch] = commitment

    def get_epoch(self, height: int) -> FinalizedEpoch:
        with self._lock:
            if 0 <= height < len(self._epochs):
                return self._epochs[height]
        raise NotFoundError(f"epoch at height {height}")

    def add_epoch(self, epoch: FinalizedEpoch) -> None:
        with self._lock:
            if len(self._epochs) != epoch.height:
                raise WriteError(
                    f"epoch height mismatch: expected {len(self._epochs)}, got {epoch.height}"
                )
            self._epochs.append(epoch)

    def get_latest_epoch_height(self) -> int:
        with self._lock:
            if not self._epochs:
                raise NotFoundError("epoch's latest height")
            return len(self._epochs) - 1

    def get_latest_epoch(self) -> FinalizedEpoch:
        with self._lock:
            return self.get_epoch(self.get_latest_epoch_height())

    def get_last_synced_height(self) -> int:
        with self._lock:
            return self._sync_height

    def set_last_synced_height(self, height: int) -> None:
        with self._lock:
            self._sync_height = height

    def flush_database(self) -> None:
        """Drop nodes, values, commitments and epochs; the sync height is kept."""
        with self._lock:
            self._nodes.clear()
            self._values.clear()
            self._commitments.clear()
            self._epochs.clear()