"""Errors raised by light client front ends and their worker channels."""

from __future__ import annotations

import enum


class ErrorKind(enum.Enum):
    """Category of a :class:`LightClientError`; the value is its display label."""

    NETWORK = "Network"
    INITIALIZATION = "Initialization"
    VERIFICATION = "Verification"
    EVENT = "Event"
    GENERAL = "General"


class LightClientError(Exception):
    """An error from a light client operation, tagged with its category."""

    def __init__(self, kind: ErrorKind, msg: str) -> None:
        super().__init__(f"{kind.value} error: {msg}")
        self.kind = kind
        self.msg = msg

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind!r}, {self.msg!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LightClientError):
            return NotImplemented
        return (self.kind, self.msg) == (other.kind, other.msg)

    def __hash__(self) -> int:
        return hash((self.kind, self.msg))

    @classmethod
    def network_error(cls, msg: str) -> LightClientError:
        return cls(ErrorKind.NETWORK, str(msg))

    @classmethod
    def initialization_error(cls, msg: str) -> LightClientError:
        return cls(ErrorKind.INITIALIZATION, str(msg))

    @classmethod
    def verification_error(cls, msg: str) -> LightClientError:
        return cls(ErrorKind.VERIFICATION, str(msg))

    @classmethod
    def event_error(cls, msg: str) -> LightClientError:
        return cls(ErrorKind.EVENT, str(msg))

    @classmethod
    def general_error(cls, msg: str) -> LightClientError:
        return cls(ErrorKind.GENERAL, str(msg))


class WorkerError(Exception):
    """Base class for failures talking to a light client worker."""


class WorkerCommunicationError(WorkerError):
    """A message could not be exchanged with the worker."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"worker communication failed: {detail}")
        self.detail = detail


class WorkerInitializationError(WorkerError):
    """The worker could not be started."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"worker initialization failed: {detail}")
        self.detail = detail


class ChannelClosedError(WorkerError):
    """The message channel to or from the worker has closed."""

    def __init__(self) -> None:
        super().__init__("message channel closed")