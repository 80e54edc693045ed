import asyncio
import contextlib

import pytest

from prismkt.events import EventChannel, EventKind, PrismEvent
from prismkt.lightclient import (
    EpochCommitments,
    EpochVerificationError,
    LightClient,
    LightDataAvailabilityLayer,
    VerifiableEpoch,
)
from prismkt.metrics import get_metrics, init_metrics_registry
from prismkt.storage.database import Digest

TIMEOUT = 10.0
PROVER_KEY_ID = "prover-key-id"


class FakeEpoch(VerifiableEpoch):
    def __init__(self, height, spec):
        self._height = height
        self._spec = spec

    def height(self):
        return self._height

    def verify(self, prover_pubkey, vkeys):
        if isinstance(self._spec, str):
            raise EpochVerificationError(self._spec)
        previous, current = self._spec
        return EpochCommitments(Digest.hash(previous), Digest.hash(current))


class FakeDA(LightDataAvailabilityLayer):
    def __init__(self, chan, epochs):
        self._chan = chan
        self._epochs = epochs

    def event_channel(self):
        return self._chan

    async def get_finalized_epochs(self, height):
        return [FakeEpoch(height, spec) for spec in self._epochs.get(height, [])]


async def wait_for_event(sub, predicate):
    async def _loop():
        while True:
            event = (await sub.recv()).event
            if predicate(event):
                return event

    return await asyncio.wait_for(_loop(), TIMEOUT)


async def wait_for_sync(sub, target_height):
    return await wait_for_event(
        sub,
        lambda e: e.kind in (EventKind.EPOCH_VERIFIED, EventKind.EPOCH_VERIFICATION_FAILED)
        and e.height >= target_height,
    )


async def assert_commitment(lc, expected):
    assert await lc.get_latest_commitment() == Digest.hash(expected)


@contextlib.asynccontextmanager
async def running(epochs):
    chan = EventChannel()
    publisher = chan.publisher()
    token = asyncio.Event()
    lc = LightClient(FakeDA(chan, epochs), PROVER_KEY_ID, token)
    task = asyncio.create_task(lc.run())
    sub = chan.subscribe()
    await wait_for_event(sub, lambda e: e.kind is EventKind.READY)
    try:
        yield lc, sub, publisher
    finally:
        token.set()
        await asyncio.wait_for(task, TIMEOUT)


def height_event(height):
    return PrismEvent(EventKind.UPDATE_DA_HEIGHT, height=height)


@pytest.mark.asyncio
async def test_realtime_sync():
    epochs = {4: [("g", "a")], 5: [("a", "b")], 7: [("b", "c"), ("c", "d")], 8: [("d", "e")]}
    async with running(epochs) as (lc, sub, publisher):
        publisher.send(height_event(3))
        publisher.send(height_event(4))
        await wait_for_sync(sub, 4)
        await assert_commitment(lc, "a")

        publisher.send(height_event(5))
        await wait_for_sync(sub, 5)
        await assert_commitment(lc, "b")

        publisher.send(height_event(6))
        await assert_commitment(lc, "b")

        publisher.send(height_event(7))
        await wait_for_sync(sub, 7)
        await assert_commitment(lc, "d")

        publisher.send(height_event(8))
        await wait_for_sync(sub, 8)
        await assert_commitment(lc, "e")


@pytest.mark.asyncio
async def test_backwards_sync():
    async with running({8: [("a", "b")]}) as (lc, sub, publisher):
        publisher.send(height_event(20))
        event = await wait_for_event(
            sub, lambda e: e.kind is EventKind.RECURSIVE_VERIFICATION_COMPLETED
        )
        assert event.height == 8
        await assert_commitment(lc, "b")


@pytest.mark.asyncio
async def test_backwards_sync_ignores_error():
    async with running({8: [("a", "b")], 10: ["Error"]}) as (lc, sub, publisher):
        publisher.send(height_event(20))
        event = await wait_for_event(
            sub, lambda e: e.kind is EventKind.RECURSIVE_VERIFICATION_COMPLETED
        )
        assert event.height == 8
        await assert_commitment(lc, "b")


@pytest.mark.asyncio
async def test_incoming_sync_ignores_error():
    epochs = {8: [("a", "b")], 10: ["Error"], 12: [("c", "d")]}
    async with running(epochs) as (lc, sub, publisher):
        publisher.send(height_event(8))
        await wait_for_sync(sub, 8)
        await assert_commitment(lc, "b")

        publisher.send(height_event(10))
        publisher.send(height_event(12))
        await wait_for_sync(sub, 12)
        await assert_commitment(lc, "d")


@pytest.mark.asyncio
async def test_sandwiched_epoch():
    async with running({8: ["Error1", ("a", "b"), "Error2"]}) as (lc, sub, publisher):
        publisher.send(height_event(8))
        await wait_for_sync(sub, 8)
        await assert_commitment(lc, "b")


@pytest.mark.asyncio
async def test_no_backwards_sync_underflow():
    async with running({}) as (_lc, sub, publisher):
        publisher.send(height_event(50))
        event = await wait_for_event(
            sub, lambda e: e.kind is EventKind.BACKWARDS_SYNC_COMPLETED
        )
        assert event.height is None


@pytest.mark.asyncio
async def test_no_concurrent_backwards_sync():
    async with running({999: [("a", "b")]}) as (_lc, sub, publisher):
        publisher.send(height_event(500))
        publisher.send(height_event(1000))

        started = await wait_for_event(
            sub, lambda e: e.kind is EventKind.BACKWARDS_SYNC_STARTED
        )
        assert started.height == 500

        completed = await wait_for_event(
            sub, lambda e: e.kind is EventKind.BACKWARDS_SYNC_COMPLETED
        )
        assert completed.height is None


@pytest.mark.asyncio
async def test_backwards_sync_does_not_restart():
    async with running({999: [("a", "b")]}) as (lc, sub, publisher):
        publisher.send(height_event(500))
        completed = await wait_for_event(
            sub, lambda e: e.kind is EventKind.BACKWARDS_SYNC_COMPLETED
        )
        assert completed.height is None
        publisher.send(height_event(1000))
        await asyncio.sleep(0.2)
        assert (await lc.get_sync_state()).latest_finalized_epoch is None


@pytest.mark.asyncio
async def test_will_not_process_older_epoch():
    async with running({8: [("a", "b")], 9: [("c", "d")]}) as (lc, sub, publisher):
        publisher.send(height_event(10))
        await wait_for_sync(sub, 9)
        await assert_commitment(lc, "d")

        publisher.send(height_event(8))
        await asyncio.sleep(0.2)
        state = await lc.get_sync_state()
        assert state.current_height == 9
        await assert_commitment(lc, "d")


@pytest.mark.asyncio
async def test_incoming_epoch_during_backwards_sync():
    epochs = {5000: [("a", "b")], 5101: [("c", "d")]}
    async with running(epochs) as (lc, sub, publisher):
        await asyncio.sleep(0.01)
        publisher.send(height_event(5100))
        publisher.send(height_event(5101))

        recursive_completed = False
        backwards_completed = False

        async def collect():
            nonlocal recursive_completed, backwards_completed
            while not (recursive_completed and backwards_completed):
                event = (await sub.recv()).event
                if event.kind is EventKind.RECURSIVE_VERIFICATION_COMPLETED:
                    await assert_commitment(lc, "d")
                    recursive_completed = True
                elif event.kind is EventKind.BACKWARDS_SYNC_COMPLETED:
                    assert event.height is None
                    backwards_completed = True

        await asyncio.wait_for(collect(), 5)
        assert recursive_completed and backwards_completed


@pytest.mark.asyncio
async def test_incoming_epoch_after_backwards_sync():
    epochs = {5000: [("a", "b")], 5101: [("c", "d")]}
    async with running(epochs) as (lc, sub, publisher):
        publisher.send(height_event(5100))
        completed = await wait_for_event(
            sub,
            lambda e: e.kind is EventKind.BACKWARDS_SYNC_COMPLETED and e.height == 5000,
        )
        assert completed.height == 5000
        await assert_commitment(lc, "b")

        publisher.send(height_event(5101))
        await wait_for_event(
            sub, lambda e: e.kind is EventKind.RECURSIVE_VERIFICATION_COMPLETED
        )
        await assert_commitment(lc, "d")


@pytest.mark.asyncio
async def test_backwards_sync_completes():
    async with running({}) as (lc, sub, publisher):
        publisher.send(height_event(5100))
        completed = await wait_for_event(
            sub, lambda e: e.kind is EventKind.BACKWARDS_SYNC_COMPLETED
        )
        assert completed.height is None
        assert await lc.get_latest_commitment() is None


@pytest.mark.asyncio
async def test_graceful_shutdown():
    chan = EventChannel()
    sub = chan.subscribe()
    token = asyncio.Event()
    lc = LightClient(FakeDA(chan, {}), PROVER_KEY_ID, token)
    task = asyncio.create_task(lc.run())

    await wait_for_event(sub, lambda e: e.kind is EventKind.READY)
    token.set()

    assert await asyncio.wait_for(task, TIMEOUT) is None
    assert task.done() and task.exception() is None


@pytest.mark.asyncio
async def test_sync_state_is_a_snapshot():
    async with running({8: [("a", "b")]}) as (lc, sub, publisher):
        before = await lc.get_sync_state()
        publisher.send(height_event(8))
        await wait_for_sync(sub, 8)
        after = await lc.get_sync_state()
        assert before.latest_finalized_epoch is None
        assert after.latest_finalized_epoch == 8
        assert after.current_height == 8


@pytest.mark.asyncio
async def test_height_updates_are_recorded_in_metrics():
    init_metrics_registry()
    async with running({}) as (_lc, sub, publisher):
        publisher.send(height_event(42))
        await wait_for_event(sub, lambda e: e.kind is EventKind.BACKWARDS_SYNC_STARTED)
        metrics = get_metrics()
        assert metrics.celestia_synced_height.value() == 42


@pytest.mark.asyncio
async def test_failed_verification_is_reported():
    async with running({3: ["bad proof"]}) as (lc, sub, publisher):
        publisher.send(height_event(3))
        failed = await wait_for_event(
            sub, lambda e: e.kind is EventKind.EPOCH_VERIFICATION_FAILED
        )
        assert failed.height == 3
        assert failed.error == "bad proof"
        assert await lc.get_latest_commitment() is None