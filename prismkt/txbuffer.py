"""Buffer of transactions keyed by the DA height they were seen at."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class TxBuffer:
    """Holds transactions per height until an epoch takes them."""

    def __init__(self) -> None:
        self._transactions: dict[int, list[Any]] = {}

    def take_to_range(self, end: int) -> list[Any]:
        """Remove and return all transactions at heights up to ``end``, inclusive,
        in ascending height order."""
        heights = sorted(h for h in self._transactions if h <= end)
        return [tx for height in heights for tx in self._transactions.pop(height)]

    def contains_pending(self) -> bool:
        """Whether any transactions are buffered."""
        return bool(self._transactions)

    def insert_at_height(self, height: int, txs: Iterable[Any]) -> None:
        """Append transactions to those already buffered at ``height``."""
        self._transactions.setdefault(height, []).extend(txs)