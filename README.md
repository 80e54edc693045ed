# prismkt

Building blocks for a key-transparency node and its light client.

## Modules

- `prismkt.encoding` provides base64 helpers (`to_base64`, `from_base64`,
  `from_base64_32`), bech32 helpers (`to_bech32`, `from_bech32`) and hex helpers
  (`to_hex`, `from_hex`). It also has `serialize_hex` / `deserialize_hex` and
  `serialize_b64` / `deserialize_b64`. These give hex or base64 text when
  `human_readable` is true and raw bytes otherwise. Malformed input raises
  `ValueError`.
- `prismkt.binary` provides compact binary encoding with `encode_to_bytes` and
  `decode_from_bytes`. Bad input raises `BinaryError`.
- `prismkt.errors` holds `LightClientError`, tagged with an `ErrorKind` and
  built with `network_error`, `initialization_error`, `verification_error`,
  `event_error` or `general_error`. It also holds the `WorkerError` family:
  `WorkerCommunicationError`, `WorkerInitializationError` and
  `ChannelClosedError`.
- `prismkt.txbuffer` provides `TxBuffer`, which holds transactions by DA
  height. `take_to_range(end)` removes and returns every transaction at heights
  up to `end`, in ascending height order.
- `prismkt.storage.database` defines the `Database` interface and the stored
  types: `Digest`, `NodeKey`, `LeafNode`, `InternalNode`, `NodeBatch` and
  `FinalizedEpoch`. It also defines the `DatabaseError` hierarchy.
- There are three backends:
  - `prismkt.storage.inmemory.InMemoryDatabase`
  - `prismkt.storage.diskdb.DiskDatabase`, an on-disk ordered key-value store
    configured with `DiskDatabaseConfig`
  - `prismkt.storage.redisdb.RedisConnection`, configured with `RedisConfig`
- `prismkt.metrics` provides the `PrismMetrics` gauges. The process-wide
  registry is managed with `init_metrics_registry()` and `get_metrics()`.
  `get_metrics()` returns `None` until the registry is initialized.
- `prismkt.events` provides the `EventChannel` broadcast channel with its
  `EventPublisher` and `EventSubscriber`, and `PrismEvent` values.
  `to_client_event` converts a `PrismEvent` to the front-end
  `LightClientEvent`.
- `prismkt.commands` provides `LightClientCommand` and `WorkerResponse`.
  `WorkerResponse.to_dict` and `WorkerResponse.from_dict` convert a response to
  and from `{variant: payload}` form.
- `prismkt.lightclient` provides `LightClient`, which follows new DA heights,
  verifies finalized epochs and keeps the latest commitment.

## Installation

```
pip install prismkt
```

## Storage

```python
from prismkt.storage.inmemory import InMemoryDatabase
from prismkt.storage.database import Digest, NodeBatch

db = InMemoryDatabase()
db.set_commitment(1, Digest(bytes([1]) * 32))
assert db.get_commitment(1) == Digest(bytes([1]) * 32)

key_hash = bytes([2]) * 32
batch = NodeBatch()
batch.insert_value(1, key_hash, b"\x01\x01\x01")
batch.insert_value(2, key_hash, b"\x02\x02\x02")
db.write_node_batch(batch)

assert db.get_value_option(1, key_hash) == b"\x01\x01\x01"
assert db.get_value_option(3, key_hash) == b"\x02\x02\x02"
```

### Backend differences

- `DiskDatabase(DiskDatabaseConfig(path))` keeps the data on disk.
  - It can be used as a context manager. Otherwise, call `close()` when you
    are done with it.
  - Its `flush_database()` deletes every entry.
- In `InMemoryDatabase`, `flush_database()` keeps the last synced height. That
  height starts at 1.
- `RedisConnection` connects to `redis://127.0.0.1/` by default.
  - If no server answers, it starts `redis-server` and waits five seconds
    before connecting again.
  - Its `flush_database()` deletes every key on the server.

### Errors

- Looking up a commitment or epoch that is not stored raises `NotFoundError`.
  Asking for the latest epoch height when no epoch is stored also raises it.
- Adding an epoch out of order raises `WriteError`.
- Both derive from `DatabaseError`.

## Light client

`LightClient(da, prover_pubkey, cancellation_token=None, sp1_vkeys=None)` takes:

- `da`, an implementation of `LightDataAvailabilityLayer`;
- optionally, an `asyncio.Event` used as the cancellation token.

`await client.run()` works like this:

- It publishes a `READY` event on the channel, then reacts to
  `UPDATE_DA_HEIGHT` events.
- On the first height it starts a background search backwards, at most 1000
  heights deep, for an epoch that verifies.
- It handles each later height as it arrives. Heights below the synced height
  are skipped.
- It returns once the cancellation event is set.

Two methods report progress:

- `await client.get_latest_commitment()` returns the commitment of the newest
  verified epoch.
- `await client.get_sync_state()` returns a `SyncState` snapshot.

## What this package does not do

- It has no command-line program, server or prover.
- It ships no connection to a data-availability network. `LightDataAvailabilityLayer`
  and `VerifiableEpoch` are abstract; you supply implementations that fetch
  epochs and check their signatures and proofs.

## Running the tests

```
pip install "prismkt[test]"
pytest
```