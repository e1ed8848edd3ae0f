"""
WebSocket event models and validation.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from ..errors import INVALID_EVENT, GameError


class EventType(str, Enum):
    """Inbound event types."""
    JOIN = "join"
    START = "start"
    PICK_SHOWN = "pick-shown"
    PICK_FINAL = "pick-final"


class OutboundEventType(str, Enum):
    """Outbound event types."""
    JOINED = "joined"
    STATE_UPDATE = "state-update"
    ERROR = "error"


# Inbound event models
class BaseEvent(BaseModel):
    """Base event model."""
    model_config = ConfigDict(populate_by_name=True)

    type: EventType


class JoinEvent(BaseEvent):
    """Join room event. Field presence is checked by the registry so that
    a missing name can be reported with a readable message."""
    type: EventType = EventType.JOIN
    room_id: Optional[Any] = Field(default=None, alias="roomId")
    player_name: Optional[Any] = Field(default=None, alias="playerName")


class StartEvent(BaseEvent):
    """Start game event."""
    type: EventType = EventType.START


class PickShownEvent(BaseEvent):
    """Pick one of the two shown cards."""
    type: EventType = EventType.PICK_SHOWN
    card: StrictInt


class PickFinalEvent(BaseEvent):
    """Commit the final card."""
    type: EventType = EventType.PICK_FINAL
    card: StrictInt


# Union type for all inbound events
InboundEvent = Union[
    JoinEvent,
    StartEvent,
    PickShownEvent,
    PickFinalEvent,
]


# Outbound event models
class OutboundEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PlayerListEntry(OutboundEvent):
    id: str
    name: str
    points: int = 0


class JoinedEvent(OutboundEvent):
    """Join acknowledgement, sent to the joining connection only."""
    type: OutboundEventType = OutboundEventType.JOINED
    room_id: str = Field(serialization_alias="roomId")
    player_id: str = Field(serialization_alias="playerId")
    players: List[PlayerListEntry]
    is_host: bool = Field(serialization_alias="isHost")
    timestamp: float


class PlayerState(OutboundEvent):
    id: str
    name: str
    hand: List[int]
    shown: List[int]
    final: Optional[int] = None
    points: int
    used: List[int]
    banned: List[int]
    isHost: bool


class StateUpdateEvent(OutboundEvent):
    """Full room snapshot, broadcast on every state change."""
    type: OutboundEventType = OutboundEventType.STATE_UPDATE
    roomId: str
    version: int
    phase: str
    phaseCode: int
    timer: int
    round: int
    roundsUntilReplenish: int
    players: List[PlayerState]
    winner: Optional[str] = None
    result: Optional[str] = None
    message: Optional[str] = None
    replenished: Optional[bool] = None
    timestamp: float


class ErrorEvent(OutboundEvent):
    """Error event, only used for malformed join requests."""
    type: OutboundEventType = OutboundEventType.ERROR
    text: str
    timestamp: float


def parse_inbound_event(data: Dict[str, Any]) -> InboundEvent:
    """
    Parse raw event data into appropriate event model.

    Args:
        data: Raw event data from WebSocket

    Returns:
        Parsed event model

    Raises:
        GameError: If event type is invalid or data is malformed
    """
    if not isinstance(data, dict):
        raise GameError(INVALID_EVENT, "Event must be a JSON object")

    event_type = data.get("type")
    if not event_type:
        raise GameError(INVALID_EVENT, "Missing event type")

    try:
        event_type = EventType(event_type)
    except ValueError:
        raise GameError(INVALID_EVENT, f"Invalid event type: {event_type}")

    event_map = {
        EventType.JOIN: JoinEvent,
        EventType.START: StartEvent,
        EventType.PICK_SHOWN: PickShownEvent,
        EventType.PICK_FINAL: PickFinalEvent,
    }

    event_class = event_map[event_type]
    try:
        return event_class.model_validate(data)
    except ValidationError as e:
        raise GameError(INVALID_EVENT, f"Invalid event data: {e.error_count()} error(s)")


def create_error_event(text: str) -> ErrorEvent:
    """Create an error event."""
    return ErrorEvent(text=text, timestamp=time.time())


def create_joined_event(view) -> JoinedEvent:
    """Create a join acknowledgement from a registry PlayerView."""
    return JoinedEvent(
        room_id=view.room_id,
        player_id=view.player_id,
        players=[PlayerListEntry(**p) for p in view.players],
        is_host=view.is_host,
        timestamp=time.time()
    )


def create_state_update_event(snapshot: Dict[str, Any]) -> StateUpdateEvent:
    """Create a state update event from an engine snapshot."""
    return StateUpdateEvent.model_validate({**snapshot, "timestamp": time.time()})


def dump_event(event: OutboundEvent) -> Dict[str, Any]:
    """Wire form of an outbound event: camelCase keys, one-off fields only when set."""
    body = event.model_dump(mode="json", by_alias=True, exclude_unset=True, exclude={"type"})
    return {"type": event.type.value, **body}
