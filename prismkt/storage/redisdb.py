"""Database stored in a Redis server."""

from __future__ import annotations

import fnmatch
import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional

import redis

from prismkt.binary import BinaryError
from prismkt.encoding import from_hex, to_hex
from prismkt.storage.database import (
    Database,
    DatabaseConnectionError,
    DatabaseInitializationError,
    DeleteError,
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

log = logging.getLogger(__name__)

KEY_PREFIX_NODE = "node:"
KEY_PREFIX_VALUE_HISTORY = "value_history:"
KEY_PREFIX_COMMITMENTS = "commitments:epoch_"
KEY_PREFIX_EPOCHS = "epochs:height_"
KEY_SYNC_HEIGHT = "app_state:sync_height"
KEY_LATEST_EPOCH_HEIGHT = "app_state:latest_epoch_height"

SERVER_STARTUP_WAIT = 5.0

__all__ = ["RedisConfig", "RedisConnection"]


@dataclass(frozen=True)
class RedisConfig:
    """How to reach the Redis server."""

    connection_string: str = "redis://127.0.0.1/"


def _open(url: str) -> redis.Redis:
    try:
        return redis.Redis.from_url(url)
    except ValueError as exc:
        raise DatabaseConnectionError(str(exc)) from exc


def _connect(url: str) -> redis.Redis:
    """Connect to the server, starting a local one if none answers."""
    client = _open(url)
    try:
        client.ping()
        return client
    except redis.exceptions.RedisError:
        pass

    log.debug("starting redis-server...")
    try:
        subprocess.Popen(["redis-server"])
    except OSError as exc:
        raise DatabaseInitializationError(str(exc)) from exc
    time.sleep(SERVER_STARTUP_WAIT)
    log.debug("redis-server started")

    client = _open(url)
    try:
        client.ping()
    except redis.exceptions.RedisError as exc:
        raise DatabaseConnectionError(str(exc)) from exc
    return client


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, (bytes, bytearray)) else str(value)


def _int_or_none(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(_text(raw))
    except ValueError:
        return None


def _node_key(node_key: NodeKey) -> str:
    return f"{KEY_PREFIX_NODE}{to_hex(node_key.encode())}"


def _value_key(key_hash: bytes) -> str:
    return f"{KEY_PREFIX_VALUE_HISTORY}{to_hex(key_hash)}"


class RedisConnection(Database):
    """A database whose tables are key prefixes in one Redis keyspace.

    ``node:`` holds tree nodes, ``value_history:`` sorted sets of values scored
    by version, ``commitments:`` epoch commitments, ``epochs:`` finalized epochs
    and ``app_state:`` the sync and epoch counters.
    """

    def __init__(self, config: Optional[RedisConfig] = None, client: Any = None) -> None:
        self.config = config or RedisConfig()
        self._lock = threading.Lock()
        self._client = client if client is not None else _connect(self.config.connection_string)

    # ------------------------------------------------------------------ tree

    def get_node_option(self, node_key: NodeKey) -> Optional[Node]:
        with self._lock:
            raw = self._client.get(_node_key(node_key))
        return None if raw is None else decode_node(raw)

    def get_rightmost_leaf(self) -> Optional[tuple[NodeKey, LeafNode]]:
        rightmost: Optional[tuple[NodeKey, LeafNode]] = None
        with self._lock:
            for key in self._client.keys(f"{KEY_PREFIX_NODE}*"):
                raw = self._client.get(key)
                if raw is None:
                    continue
                node = decode_node(raw)
                if not isinstance(node, LeafNode):
                    continue
                encoded_key = _text(key)[len(KEY_PREFIX_NODE):]
                node_key = NodeKey.decode(from_hex(encoded_key))
                if rightmost is None or node.key_hash > rightmost[1].key_hash:
                    rightmost = (node_key, node)
        return rightmost

    def get_value_option(self, max_version: int, key_hash: bytes) -> Optional[bytes]:
        with self._lock:
            entries = self._client.zrevrangebyscore(
                _value_key(bytes(key_hash)), float(max_version), 0.0, withscores=True
            )
        if not entries:
            return None
        encoded, _score = entries[0]
        encoded = _text(encoded)
        return from_hex(encoded) if encoded else None

    def write_node_batch(self, node_batch: NodeBatch) -> None:
        with self._lock:
            pipe = self._client.pipeline(transaction=False)
            for node_key, node in node_batch.nodes.items():
                pipe.set(_node_key(node_key), node.encode())
            for (version, key_hash), value in node_batch.values.items():
                encoded = "" if value is None else to_hex(value)
                pipe.zadd(_value_key(key_hash), {encoded: float(version)})
            pipe.execute()

    # ------------------------------------------------------------ bookkeeping

    def get_commitment(self, epoch: int) -> Digest:
        with self._lock:
            try:
                raw = self._client.get(f"{KEY_PREFIX_COMMITMENTS}{epoch}")
            except redis.exceptions.RedisError:
                raw = None
        if raw is None:
            raise NotFoundError(f"commitment from epoch_{epoch}")
        try:
            return Digest(bytes(raw).strip(b'"'))
        except ValueError as exc:
            raise ParsingError(f"commitment from epoch_{epoch}: {exc}") from exc

    def set_commitment(self, epoch: int, commitment: Digest) -> None:
        with self._lock:
            try:
                self._client.set(f"{KEY_PREFIX_COMMITMENTS}{epoch}", bytes(commitment))
            except redis.exceptions.RedisError as exc:
                raise WriteError(f"commitment for epoch: {epoch}") from exc

    def get_last_synced_height(self) -> int:
        with self._lock:
            try:
                height = _int_or_none(self._client.get(KEY_SYNC_HEIGHT))
            except redis.exceptions.RedisError:
                height = None
        if height is None:
            raise NotFoundError("current sync height")
        return height

    def set_last_synced_height(self, height: int) -> None:
        with self._lock:
            try:
                self._client.set(KEY_SYNC_HEIGHT, height)
            except redis.exceptions.RedisError as exc:
                raise WriteError(f"sync_height: {height}") from exc

    def get_epoch(self, height: int) -> FinalizedEpoch:
        with self._lock:
            try:
                raw = self._client.get(f"{KEY_PREFIX_EPOCHS}{height}")
            except redis.exceptions.RedisError:
                raw = None
        if raw is None:
            raise NotFoundError(f"epoch at height {height}")
        try:
            return FinalizedEpoch.decode(raw)
        except BinaryError as exc:
            raise ParsingError(f"Failed to decode epoch at height {height}: {exc}") from exc

    def add_epoch(self, epoch: FinalizedEpoch) -> None:
        with self._lock:
            try:
                latest = _int_or_none(self._client.get(KEY_LATEST_EPOCH_HEIGHT))
            except redis.exceptions.RedisError:
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

            pipe = self._client.pipeline(transaction=False)
            pipe.set(f"{KEY_PREFIX_EPOCHS}{epoch.height}", epoch_data)
            pipe.set(KEY_LATEST_EPOCH_HEIGHT, epoch.height)
            pipe.execute()

    def get_latest_epoch_height(self) -> int:
        with self._lock:
            try:
                height = _int_or_none(self._client.get(KEY_LATEST_EPOCH_HEIGHT))
            except redis.exceptions.RedisError:
                height = None
        if height is None:
            raise NotFoundError("latest epoch height")
        return height

    def get_latest_epoch(self) -> FinalizedEpoch:
        return self.get_epoch(self.get_latest_epoch_height())

    def flush_database(self) -> None:
        """Delete every key on the server."""
        with self._lock:
            try:
                self._client.flushall()
            except redis.exceptions.RedisError as exc:
                raise DeleteError("all transactions") from exc


def _matches(key: str, pattern: str) -> bool:
    return fnmatch.fnmatchcase(key, pattern)