"""Key-transparency building blocks: encodings, storage, metrics, events and a light client."""

__version__ = "0.1.0"