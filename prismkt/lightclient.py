"""A light client that follows finalized epochs and verifies them."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Optional

from prismkt.events import EventChannel, EventKind, PrismEvent
from prismkt.metrics import get_metrics
from prismkt.storage.database import Digest

log = logging.getLogger(__name__)

MAX_BACKWARD_SEARCH_DEPTH = 1000

__all__ = [
    "EpochVerificationError",
    "EpochCommitments",
    "VerifiableEpoch",
    "LightDataAvailabilityLayer",
    "SyncState",
    "LightClient",
    "MAX_BACKWARD_SEARCH_DEPTH",
]


class EpochVerificationError(Exception):
    """An epoch's signature or proof did not verify."""


@dataclass(frozen=True)
class EpochCommitments:
    """The commitments an epoch moves between."""

    previous: Digest
    current: Digest


class VerifiableEpoch(ABC):
    """An epoch read from the DA layer that can prove its state transition."""

    @abstractmethod
    def height(self) -> int:
        """The epoch height."""

    @abstractmethod
    def verify(self, prover_pubkey: Any, vkeys: Any) -> EpochCommitments:
        """Check the epoch; raises EpochVerificationError on failure."""


class LightDataAvailabilityLayer(ABC):
    """The read side of a DA layer, as a light client needs it."""

    @abstractmethod
    def event_channel(self) -> EventChannel:
        """The channel on which height updates and client events travel."""

    @abstractmethod
    async def get_finalized_epochs(self, height: int) -> list[VerifiableEpoch]:
        """Epochs posted at DA ``height``."""


@dataclass
class SyncState:
    """How far the light client has synced."""

    current_height: int = 0
    latest_finalized_epoch: Optional[int] = None


class LightClient:
    """Tracks the latest verified commitment.

    On the first DA height it hears of it searches backwards for the most
    recent valid epoch; later heights are checked as they arrive.
    """

    def __init__(
        self,
        da: LightDataAvailabilityLayer,
        prover_pubkey: Any,
        cancellation_token: Optional[asyncio.Event] = None,
        sp1_vkeys: Any = None,
    ) -> None:
        self.da = da
        self.prover_pubkey = prover_pubkey
        self.sp1_vkeys = sp1_vkeys
        self._cancellation = cancellation_token if cancellation_token is not None else asyncio.Event()
        self._event_chan = da.event_channel()
        self._event_pub = self._event_chan.publisher()
        self._sync_state = SyncState()
        self._latest_commitment: Optional[Digest] = None
        self._tasks: set[asyncio.Task] = set()

    async def get_sync_state(self) -> SyncState:
        """A snapshot of the sync state."""
        return replace(self._sync_state)

    async def get_latest_commitment(self) -> Optional[Digest]:
        """The commitment of the newest verified epoch, if any."""
        return self._latest_commitment

    def _send(self, kind: EventKind, **fields: Any) -> None:
        self._event_pub.send(PrismEvent(kind, **fields))

    async def run(self) -> None:
        """Follow height updates until the cancellation token is set."""
        subscriber = self._event_chan.subscribe()
        self._send(EventKind.READY)
        backwards_sync_started = False
        cancelled = asyncio.ensure_future(self._cancellation.wait())
        received: Optional[asyncio.Future] = None
        try:
            while True:
                received = asyncio.ensure_future(subscriber.recv())
                done, _ = await asyncio.wait(
                    {received, cancelled}, return_when=asyncio.FIRST_COMPLETED
                )
                if cancelled in done:
                    log.info("Light Client: Gracefully stopping after cancellation")
                    return
                event = received.result().event
                if event.kind is not EventKind.UPDATE_DA_HEIGHT:
                    continue
                height = event.height
                log.info("new height from headersub %s", height)
                self._record_metrics(height)
                if backwards_sync_started:
                    await self._handle_new_header(height)
                else:
                    backwards_sync_started = True
                    self._start_backward_sync(height)
        finally:
            cancelled.cancel()
            if received is not None and not received.done():
                received.cancel()

    def _record_metrics(self, height: int) -> None:
        metrics = get_metrics()
        if metrics is None:
            return
        metrics.record_celestia_synced_height(height)
        latest = self._sync_state.latest_finalized_epoch
        if latest is not None:
            metrics.record_current_epoch(latest)

    async def _handle_new_header(self, height: int) -> None:
        if self._sync_state.current_height > height:
            log.warning(
                "new height from headersub %s is lower than synced height, skipping", height
            )
            return
        try:
            epochs = await self.da.get_finalized_epochs(height)
        except Exception as exc:
            log.error("failed to fetch data at height %s: %s", height, exc)
            return
        if not epochs:
            log.info("no data found at height %s", height)
        for epoch in epochs:
            epoch_height = epoch.height()
            try:
                await self._process_epoch(epoch)
            except EpochVerificationError:
                continue
            self._send(EventKind.RECURSIVE_VERIFICATION_COMPLETED, height=height)
            self._sync_state.latest_finalized_epoch = epoch_height
            self._sync_state.current_height = height

    async def _verify_epoch(self, da_height: int, epoch: VerifiableEpoch) -> None:
        epoch_height = epoch.height()
        try:
            await self._process_epoch(epoch)
        except EpochVerificationError as exc:
            log.error("Failed to process epoch at height %s: %s", da_height, exc)
            self._send(EventKind.EPOCH_VERIFICATION_FAILED, height=da_height, error=str(exc))
            self._sync_state.current_height = da_height
            raise
        log.info("found historical finalized epoch at da height %s", da_height)
        self._send(EventKind.RECURSIVE_VERIFICATION_COMPLETED, height=da_height)
        if self._sync_state.latest_finalized_epoch is None:
            self._sync_state.latest_finalized_epoch = epoch_height
            self._sync_state.current_height = da_height
        self._send(EventKind.BACKWARDS_SYNC_COMPLETED, height=da_height)

    def _start_backward_sync(self, network_height: int) -> None:
        log.info("starting historical sync")
        self._send(EventKind.BACKWARDS_SYNC_STARTED, height=network_height)
        self._send(EventKind.RECURSIVE_VERIFICATION_STARTED, height=network_height)
        task = asyncio.create_task(self._backward_sync(network_height))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _backward_sync(self, network_height: int) -> None:
        current_height = network_height
        if current_height > MAX_BACKWARD_SEARCH_DEPTH:
            min_height = current_height - MAX_BACKWARD_SEARCH_DEPTH
        else:
            min_height = 1
        while current_height >= min_height:
            search = asyncio.ensure_future(
                self._find_most_recent_epoch(current_height, min_height)
            )
            cancelled = asyncio.ensure_future(self._cancellation.wait())
            done, _ = await asyncio.wait(
                {search, cancelled}, return_when=asyncio.FIRST_COMPLETED
            )
            cancelled.cancel()
            if search not in done:
                search.cancel()
                log.info("Light Client: Gracefully stopping backward sync")
                return
            found = search.result()
            if found is None:
                # Either an incoming epoch was verified first or the search ran out.
                self._send(EventKind.BACKWARDS_SYNC_COMPLETED, height=None)
                return
            da_height, epochs = found
            for epoch in epochs:
                try:
                    await self._verify_epoch(da_height, epoch)
                except EpochVerificationError:
                    current_height = da_height - 1

    async def _find_most_recent_epoch(
        self, start_height: int, min_height: int
    ) -> Optional[tuple[int, list[VerifiableEpoch]]]:
        height = start_height
        while height >= min_height:
            if self._sync_state.latest_finalized_epoch is not None:
                log.info(
                    "abandoning historical sync after finding recursive proof at incoming height"
                )
                return None
            try:
                epochs = await self.da.get_finalized_epochs(height)
            except Exception as exc:
                log.error("failed to fetch data at height %s: %s", height, exc)
            else:
                if epochs:
                    return height, list(epochs)
                log.info("no data found at height %s", height)
            self._send(EventKind.NO_EPOCH_FOUND, height=height)
            height -= 1
            await asyncio.sleep(0)
        log.info(
            "abandoning historical sync after exhausting last %s heights",
            MAX_BACKWARD_SEARCH_DEPTH,
        )
        return None

    async def _process_epoch(self, epoch: VerifiableEpoch) -> None:
        try:
            commitments = epoch.verify(self.prover_pubkey, self.sp1_vkeys)
        except EpochVerificationError as exc:
            log.error("failed to verify epoch at height %s: %s", epoch.height(), exc)
            self._send(EventKind.EPOCH_VERIFICATION_FAILED, height=epoch.height(), error=str(exc))
            raise
        self._latest_commitment = commitments.current
        self._send(EventKind.EPOCH_VERIFIED, height=epoch.height())