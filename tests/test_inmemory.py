import threading

import pytest

from prismkt.storage.database import (
    Digest,
    FinalizedEpoch,
    LeafNode,
    NodeBatch,
    NodeKey,
    NotFoundError,
    WriteError,
)
from prismkt.storage.inmemory import InMemoryDatabase


def _epoch(height):
    return FinalizedEpoch(height, Digest.hash(f"p{height}"), Digest.hash(f"c{height}"))


def test_rw_commitment():
    db = InMemoryDatabase()
    commitment = Digest(bytes([1] * 32))
    db.set_commitment(1, commitment)
    assert db.get_commitment(1) == commitment


def test_missing_commitment():
    with pytest.raises(NotFoundError):
        InMemoryDatabase().get_commitment(5)


def test_sync_height_starts_at_one_and_updates():
    db = InMemoryDatabase()
    assert db.get_last_synced_height() == 1
    db.set_last_synced_height(42)
    assert db.get_last_synced_height() == 42


def test_write_and_read_value():
    db = InMemoryDatabase()
    batch = NodeBatch()
    batch.insert_value(1, bytes([1] * 32), b"\x04\x05\x06")
    db.write_node_batch(batch)
    assert db.get_value_option(1, bytes([1] * 32)) == b"\x04\x05\x06"


def test_value_versions():
    db = InMemoryDatabase()
    key_hash = bytes([2] * 32)
    batch = NodeBatch()
    batch.insert_value(1, key_hash, b"\x01\x01\x01")
    batch.insert_value(2, key_hash, b"\x02\x02\x02")
    db.write_node_batch(batch)
    assert db.get_value_option(1, key_hash) == b"\x01\x01\x01"
    assert db.get_value_option(2, key_hash) == b"\x02\x02\x02"
    assert db.get_value_option(3, key_hash) == b"\x02\x02\x02"
    assert db.get_value_option(0, key_hash) is None
    assert db.get_value_option(3, bytes([9] * 32)) is None


def test_deleted_value_reads_as_empty():
    db = InMemoryDatabase()
    batch = NodeBatch()
    batch.insert_value(1, bytes([2] * 32), None)
    db.write_node_batch(batch)
    assert db.get_value_option(1, bytes([2] * 32)) == b""


def test_nodes_and_rightmost_leaf():
    db = InMemoryDatabase()
    assert db.get_rightmost_leaf() is None
    low_key, high_key = NodeKey(1, (1,)), NodeKey(1, (2,))
    low = LeafNode(bytes([1] * 32), bytes([7] * 32))
    high = LeafNode(bytes([9] * 32), bytes([7] * 32))
    batch = NodeBatch()
    batch.insert_node(high_key, high)
    batch.insert_node(low_key, low)
    db.write_node_batch(batch)
    assert db.get_node_option(low_key) == low
    assert db.get_node_option(NodeKey(5)) is None
    assert db.get_rightmost_leaf() == (high_key, high)


def test_epochs_in_order():
    db = InMemoryDatabase()
    with pytest.raises(NotFoundError):
        db.get_latest_epoch_height()
    db.add_epoch(_epoch(0))
    db.add_epoch(_epoch(1))
    assert db.get_latest_epoch_height() == 1
    assert db.get_latest_epoch() == _epoch(1)
    assert db.get_epoch(0) == _epoch(0)


def test_epoch_height_mismatch():
    db = InMemoryDatabase()
    with pytest.raises(WriteError):
        db.add_epoch(_epoch(1))


def test_missing_epoch():
    with pytest.raises(NotFoundError):
        InMemoryDatabase().get_epoch(0)


def test_flush_keeps_sync_height():
    db = InMemoryDatabase()
    db.set_commitment(1, Digest.hash("x"))
    db.add_epoch(_epoch(0))
    db.set_last_synced_height(10)
    db.flush_database()
    assert db.get_last_synced_height() == 10
    with pytest.raises(NotFoundError):
        db.get_commitment(1)
    with pytest.raises(NotFoundError):
        db.get_latest_epoch()


def test_concurrent_commitment_writes():
    db = InMemoryDatabase()

    def write(start):
        for epoch in range(start, start + 50):
            db.set_commitment(epoch, Digest.hash(str(epoch)))

    threads = [threading.Thread(target=write, args=(i * 50,)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert all(db.get_commitment(e) == Digest.hash(str(e)) for e in range(200))