import pytest

from prismkt.binary import BinaryError
from prismkt.storage.database import (
    Database,
    DatabaseError,
    Digest,
    FinalizedEpoch,
    InternalNode,
    LeafNode,
    NodeBatch,
    NodeKey,
    NotFoundError,
    WriteError,
    decode_node,
)


def test_digest_rejects_wrong_length():
    with pytest.raises(ValueError):
        Digest(bytes(31))


def test_digest_str_is_hex():
    assert str(Digest(bytes([1] * 32))) == "01" * 32


def test_digest_hash_is_sha256():
    assert (
        str(Digest.hash("abc"))
        == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )


def test_digest_hash_text_and_bytes_agree():
    assert Digest.hash("a") == Digest.hash(b"a")
    assert Digest.hash("a") != Digest.hash("b")


def test_node_key_round_trip():
    key = NodeKey(7, (1, 15, 0, 3))
    assert NodeKey.decode(key.encode()) == key


def test_node_key_rejects_bad_nibble():
    with pytest.raises(ValueError):
        NodeKey(1, (16,))


def test_node_key_decode_garbage():
    with pytest.raises(BinaryError):
        NodeKey.decode(b"\xc1")


def test_leaf_round_trip():
    leaf = LeafNode(bytes([3] * 32), bytes([4] * 32))
    assert decode_node(leaf.encode()) == leaf


def test_internal_round_trip():
    node = InternalNode(((0, 1, bytes([5] * 32)), (9, 2, bytes([6] * 32))))
    assert decode_node(node.encode()) == node


def test_decode_node_unknown_kind():
    from prismkt.binary import encode_to_bytes

    with pytest.raises(BinaryError):
        decode_node(encode_to_bytes(["other", 1]))


def test_node_batch_collects_entries():
    batch = NodeBatch()
    key = NodeKey(1, (2,))
    leaf = LeafNode(bytes([1] * 32), bytes([2] * 32))
    batch.insert_node(key, leaf)
    batch.insert_value(1, bytes([1] * 32), b"\x04\x05")
    batch.insert_value(2, bytes([1] * 32), None)
    assert batch.nodes == {key: leaf}
    assert batch.values == {(1, bytes([1] * 32)): b"\x04\x05", (2, bytes([1] * 32)): None}


def test_node_batch_rejects_short_key_hash():
    with pytest.raises(ValueError):
        NodeBatch().insert_value(1, b"\x01", b"x")


def test_epoch_round_trip():
    epoch = FinalizedEpoch(
        height=3,
        previous_commitment=Digest.hash("a"),
        current_commitment=Digest.hash("b"),
        proof=b"proof",
        public_values=b"values",
        signature=b"sig",
    )
    assert FinalizedEpoch.decode(epoch.encode()) == epoch


def test_epoch_decode_missing_field():
    from prismkt.binary import encode_to_bytes

    with pytest.raises(BinaryError):
        FinalizedEpoch.decode(encode_to_bytes({"height": 1}))


def test_database_is_abstract():
    with pytest.raises(TypeError):
        Database()


def test_errors_share_base_and_carry_detail():
    err = NotFoundError("epoch at height 4")
    assert isinstance(err, DatabaseError)
    assert "epoch at height 4" in str(err)
    assert issubclass(WriteError, DatabaseError)