"""Messages exchanged between a light client front end and its worker."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

__all__ = ["LightClientCommand", "ResponseKind", "WorkerResponse"]


class LightClientCommand(enum.Enum):
    """Requests the front end sends to the worker."""

    GET_CURRENT_COMMITMENT = "GetCurrentCommitment"
    GET_EVENTS_CHANNEL_NAME = "GetEventsChannelName"


class ResponseKind(enum.Enum):
    """Kinds of worker reply."""

    CURRENT_COMMITMENT = "CurrentCommitment"
    EVENTS_CHANNEL_NAME = "EventsChannelName"
    ERROR = "Error"


@dataclass(frozen=True)
class WorkerResponse:
    """A worker reply: its kind and a text payload."""

    kind: ResponseKind
    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise TypeError(f"response payload must be text, got {type(self.value).__name__}")

    def to_dict(self) -> dict[str, str]:
        """The externally tagged form: ``{variant: payload}``."""
        return {self.kind.value: self.value}

    @classmethod
    def from_dict(cls, data: Any) -> WorkerResponse:
        """Parse the form written by :meth:`to_dict`; raises ValueError if malformed."""
        if not isinstance(data, Mapping) or len(data) != 1:
            raise ValueError("a response must be a mapping with exactly one entry")
        ((tag, value),) = data.items()
        try:
            kind = ResponseKind(tag)
        except ValueError:
            raise ValueError(f"unknown response variant {tag!r}") from None
        if not isinstance(value, str):
            raise ValueError(f"payload of {tag} must be text")
        return cls(kind, value)