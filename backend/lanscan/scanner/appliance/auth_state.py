"""
Authorization state machine for the appliance API.

States and events are small frozen dataclasses; ``transition`` is the single
place that decides how an event moves the machine. The appliance's status
literals are converted to :class:`TrackStatus` by :func:`parse_track_status`
and never compared as strings anywhere else.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from ...core.exceptions import InvalidTransitionError, ApplianceTransportError


class TrackStatus(Enum):
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"
    TIMEOUT = "timeout"


def parse_track_status(literal: str) -> TrackStatus:
    """Map an appliance status literal to TrackStatus."""
    try:
        return TrackStatus(literal)
    except ValueError:
        raise ApplianceTransportError(f"Unknown authorization status: {literal!r}")


# States

@dataclass(frozen=True)
class Idle:
    name = "idle"


@dataclass(frozen=True)
class Discovering:
    name = "discovering"


@dataclass(frozen=True)
class Authorizing:
    track_id: int
    name = "authorizing"


@dataclass(frozen=True)
class Authorized:
    name = "authorized"


@dataclass(frozen=True)
class Error:
    message: str
    name = "error"


AuthState = Union[Idle, Discovering, Authorizing, Authorized, Error]


# Events

@dataclass(frozen=True)
class StartDiscovery:
    pass


@dataclass(frozen=True)
class ApplianceFound:
    base_url: str


@dataclass(frozen=True)
class AuthorizationPending:
    track_id: int


@dataclass(frozen=True)
class TrackStatusReceived:
    status: TrackStatus


@dataclass(frozen=True)
class SessionOpened:
    pass


@dataclass(frozen=True)
class Failure:
    message: str


@dataclass(frozen=True)
class Reset:
    pass


AuthEvent = Union[
    StartDiscovery, ApplianceFound, AuthorizationPending,
    TrackStatusReceived, SessionOpened, Failure, Reset,
]


def transition(state: AuthState, event: AuthEvent) -> AuthState:
    """Return the state reached by applying ``event`` to ``state``."""
    if isinstance(event, Reset):
        return Idle()
    if isinstance(event, Failure):
        return Error(event.message)

    if isinstance(event, StartDiscovery):
        if isinstance(state, (Idle, Error, Authorized)):
            return Discovering()

    elif isinstance(event, ApplianceFound):
        if isinstance(state, Discovering):
            return state

    elif isinstance(event, AuthorizationPending):
        if isinstance(state, (Discovering, Authorizing)):
            return Authorizing(event.track_id)

    elif isinstance(event, TrackStatusReceived):
        if isinstance(state, Authorizing):
            if event.status in (TrackStatus.PENDING, TrackStatus.GRANTED):
                return state
            if event.status is TrackStatus.DENIED:
                return Error("Authorization denied on the appliance")
            if event.status is TrackStatus.TIMEOUT:
                return Error("Authorization timed out; confirm on the appliance within the allowed time")

    elif isinstance(event, SessionOpened):
        if isinstance(state, (Discovering, Authorizing)):
            return Authorized()

    raise InvalidTransitionError(
        f"Cannot apply {type(event).__name__} in state {state.name}",
        {"state": state.name, "event": type(event).__name__},
    )


def describe(state: AuthState) -> dict:
    """Serializable view of a state for the API."""
    data = {"state": state.name}
    if isinstance(state, Authorizing):
        data["track_id"] = state.track_id
    elif isinstance(state, Error):
        data["message"] = state.message
    return data
