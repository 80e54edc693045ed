"""Events a node publishes while syncing, and the broadcast channel that carries them."""

from __future__ import annotations

import asyncio
import enum
import time
import weakref
from dataclasses import dataclass, field
from typing import Any, Optional

__all__ = [
    "EventKind",
    "PrismEvent",
    "EventInfo",
    "EventChannel",
    "EventPublisher",
    "EventSubscriber",
    "ClientEventKind",
    "LightClientEvent",
    "to_client_event",
]


class EventKind(enum.Enum):
    """What happened."""

    READY = "Ready"
    BACKWARDS_SYNC_STARTED = "BackwardsSyncStarted"
    BACKWARDS_SYNC_COMPLETED = "BackwardsSyncCompleted"
    UPDATE_DA_HEIGHT = "UpdateDAHeight"
    EPOCH_VERIFICATION_STARTED = "EpochVerificationStarted"
    EPOCH_VERIFIED = "EpochVerified"
    EPOCH_VERIFICATION_FAILED = "EpochVerificationFailed"
    NO_EPOCH_FOUND = "NoEpochFound"
    HEIGHT_CHANNEL_CLOSED = "HeightChannelClosed"
    GET_CURRENT_COMMITMENT = "GetCurrentCommitment"
    RECURSIVE_VERIFICATION_STARTED = "RecursiveVerificationStarted"
    RECURSIVE_VERIFICATION_COMPLETED = "RecursiveVerificationCompleted"
    LUMINA_EVENT = "LuminaEvent"


@dataclass(frozen=True)
class PrismEvent:
    """An event; only the fields its kind uses are set."""

    kind: EventKind
    height: Optional[int] = None
    error: Optional[str] = None
    commitment: Any = None
    event: Any = None


@dataclass(frozen=True)
class EventInfo:
    """An event together with the time it was published."""

    event: PrismEvent
    timestamp: float = field(default_factory=time.time)


class EventSubscriber:
    """Receives, in order, every event published after it subscribed."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[EventInfo] = asyncio.Queue()

    def _deliver(self, info: EventInfo) -> None:
        self._queue.put_nowait(info)

    async def recv(self) -> EventInfo:
        """Wait for the next event."""
        return await self._queue.get()


class EventPublisher:
    """Sends events to every current subscriber of a channel."""

    def __init__(self, channel: EventChannel) -> None:
        self._channel = channel

    def send(self, event: PrismEvent) -> None:
        """Publish ``event``; it is stamped with the current time."""
        self._channel._broadcast(EventInfo(event))


class EventChannel:
    """A broadcast channel; subscribers that are garbage collected drop out."""

    def __init__(self) -> None:
        self._subscribers: weakref.WeakSet[EventSubscriber] = weakref.WeakSet()

    def publisher(self) -> EventPublisher:
        return EventPublisher(self)

    def subscribe(self) -> EventSubscriber:
        subscriber = EventSubscriber()
        self._subscribers.add(subscriber)
        return subscriber

    def _broadcast(self, info: EventInfo) -> None:
        for subscriber in list(self._subscribers):
            subscriber._deliver(info)


class ClientEventKind(enum.Enum):
    """Event kinds as exposed to light client front ends."""

    READY = "Ready"
    SYNC_STARTED = "SyncStarted"
    SYNC_COMPLETED = "SyncCompleted"
    UPDATE_DA_HEIGHT = "UpdateDAHeight"
    EPOCH_VERIFICATION_STARTED = "EpochVerificationStarted"
    EPOCH_VERIFIED = "EpochVerified"
    EPOCH_VERIFICATION_FAILED = "EpochVerificationFailed"
    NO_EPOCH_FOUND = "NoEpochFound"
    HEIGHT_CHANNEL_CLOSED = "HeightChannelClosed"
    GET_CURRENT_COMMITMENT = "GetCurrentCommitment"
    RECURSIVE_VERIFICATION_STARTED = "RecursiveVerificationStarted"
    RECURSIVE_VERIFICATION_COMPLETED = "RecursiveVerificationCompleted"
    LUMINA_EVENT = "LuminaEvent"


@dataclass(frozen=True)
class LightClientEvent:
    """A front-end event; commitments and node events are carried as text."""

    kind: ClientEventKind
    height: Optional[int] = None
    error: Optional[str] = None
    commitment: Optional[str] = None
    event: Optional[str] = None


_CLIENT_KINDS = {
    EventKind.READY: ClientEventKind.READY,
    EventKind.BACKWARDS_SYNC_STARTED: ClientEventKind.SYNC_STARTED,
    EventKind.BACKWARDS_SYNC_COMPLETED: ClientEventKind.SYNC_COMPLETED,
    EventKind.UPDATE_DA_HEIGHT: ClientEventKind.UPDATE_DA_HEIGHT,
    EventKind.EPOCH_VERIFICATION_STARTED: ClientEventKind.EPOCH_VERIFICATION_STARTED,
    EventKind.EPOCH_VERIFIED: ClientEventKind.EPOCH_VERIFIED,
    EventKind.EPOCH_VERIFICATION_FAILED: ClientEventKind.EPOCH_VERIFICATION_FAILED,
    EventKind.NO_EPOCH_FOUND: ClientEventKind.NO_EPOCH_FOUND,
    EventKind.HEIGHT_CHANNEL_CLOSED: ClientEventKind.HEIGHT_CHANNEL_CLOSED,
    EventKind.GET_CURRENT_COMMITMENT: ClientEventKind.GET_CURRENT_COMMITMENT,
    EventKind.RECURSIVE_VERIFICATION_STARTED: ClientEventKind.RECURSIVE_VERIFICATION_STARTED,
    EventKind.RECURSIVE_VERIFICATION_COMPLETED: ClientEventKind.RECURSIVE_VERIFICATION_COMPLETED,
    EventKind.LUMINA_EVENT: ClientEventKind.LUMINA_EVENT,
}


def to_client_event(event: PrismEvent) -> LightClientEvent:
    """Convert a node event into its front-end form."""
    return LightClientEvent(
        kind=_CLIENT_KINDS[event.kind],
        height=event.height,
        error=event.error,
        commitment=None if event.commitment is None else str(event.commitment),
        event=None if event.event is None else str(event.event),
    )