"""Process-wide registry of node gauges."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Optional

log = logging.getLogger(__name__)

METER_NAME = "prism"
METRIC_PREFIX = "prism_"

Attributes = Optional[Iterable[tuple[str, str]]]

__all__ = ["Gauge", "PrismMetrics", "init_metrics_registry", "get_metrics"]


def _attribute_key(attributes: Attributes) -> tuple[tuple[str, str], ...]:
    return tuple(sorted(dict(attributes or ()).items()))


class Gauge:
    """A non-negative integer gauge keeping the last value per attribute set."""

    def __init__(self, name: str, description: str = "") -> None:
        self.name = name
        self.description = description
        self._values: dict[tuple[tuple[str, str], ...], int] = {}
        self._lock = threading.Lock()

    def record(self, value: int, attributes: Attributes = None) -> None:
        """Set the gauge for the given attributes."""
        value = int(value)
        if value < 0:
            raise ValueError(f"gauge {self.name} takes non-negative values, got {value}")
        key = _attribute_key(attributes)
        with self._lock:
            self._values[key] = value

    def value(self, attributes: Attributes = None) -> Optional[int]:
        """The last value recorded for the given attributes, or None."""
        key = _attribute_key(attributes)
        with self._lock:
            return self._values.get(key)


class PrismMetrics:
    """The gauges a node reports."""

    def __init__(self) -> None:
        log.info("Initializing Prism metrics registry")
        self.meter_name = METER_NAME
        self.node_info = Gauge(f"{METRIC_PREFIX}node_info", "Prism node info")
        self.celestia_synced_height = Gauge(
            f"{METRIC_PREFIX}celestia_synced_height", "Celestia synced height"
        )
        self.current_epoch = Gauge(f"{METRIC_PREFIX}current_epoch", "Celestia current epoch")

    def record_node_info(self, attributes: Attributes = None) -> None:
        """Mark the node as present, labelled with ``attributes``."""
        self.node_info.record(1, attributes)

    def record_celestia_synced_height(self, height: int, attributes: Attributes = None) -> None:
        """Record the DA height the node has synced to."""
        self.celestia_synced_height.record(height, attributes)

    def record_current_epoch(self, epoch: int, attributes: Attributes = None) -> None:
        """Record the current epoch height."""
        self.current_epoch.record(epoch, attributes)


_REGISTRY_LOCK = threading.Lock()
_metrics: Optional[PrismMetrics] = None


def init_metrics_registry() -> None:
    """Create the global metrics instance unless it already exists."""
    global _metrics
    with _REGISTRY_LOCK:
        if _metrics is None:
            _metrics = PrismMetrics()
            log.info("Prism metrics registry initialized")


def get_metrics() -> Optional[PrismMetrics]:
    """The global metrics, or None if uninitialized or the registry is busy."""
    if not _REGISTRY_LOCK.acquire(blocking=False):
        log.warning("Failed to acquire lock for metrics registry")
        return None
    try:
        return _metrics
    finally:
        _REGISTRY_LOCK.release()