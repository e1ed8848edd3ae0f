"""
Events consumed and effects produced by the phase state machine.

Transitions never touch timers or sockets themselves: they return effect
records that the room registry carries out after the state is committed.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .models import RoomState


class EventKind(str, Enum):
    """Inputs of the phase state machine."""
    ACTION_SUBMITTED = "action_submitted"
    ALL_READY = "all_ready"
    DEADLINE_EXPIRED = "deadline_expired"
    REVEAL_ELAPSED = "reveal_elapsed"
    INTERMISSION_ELAPSED = "intermission_elapsed"
    TIMER_TICK = "timer_tick"


class ActionType(str, Enum):
    """Player actions carried by ACTION_SUBMITTED."""
    START = "start"
    PICK_SHOWN = "pick_shown"
    PICK_FINAL = "pick_final"


@dataclass(frozen=True)
class GameEvent:
    kind: EventKind
    action: Optional[ActionType] = None
    player_id: Optional[str] = None
    card: Any = None
    generation: Optional[int] = None  # captured when a timer was scheduled

    @classmethod
    def submitted(cls, action: ActionType, player_id: str, card: Any = None) -> 'GameEvent':
        return cls(EventKind.ACTION_SUBMITTED, action=action, player_id=player_id, card=card)

    @classmethod
    def timer(cls, kind: EventKind, generation: int) -> 'GameEvent':
        return cls(kind, generation=generation)

    @property
    def is_timer_event(self) -> bool:
        return self.kind != EventKind.ACTION_SUBMITTED


@dataclass(frozen=True)
class Broadcast:
    """Send an immutable snapshot to every connection in the room."""
    payload: Dict[str, Any]


@dataclass(frozen=True)
class StartTimer:
    """
    Replace the room's timer.

    With ``units > 0`` the timer counts down one unit per tick and fires
    ``event`` when it reaches zero; otherwise it fires once after
    ``delay`` seconds.
    """
    event: EventKind
    generation: int
    units: int = 0
    delay: float = 0.0

    @property
    def is_countdown(self) -> bool:
        return self.units > 0


@dataclass(frozen=True)
class CancelTimer:
    """Stop the room's timer without starting another one."""
    reason: str = ""


@dataclass
class Transition:
    """Result of applying one event to a room."""
    state: RoomState
    effects: List[Any] = field(default_factory=list)
    accepted: bool = True
    outcome: Any = None
    room_empty: bool = False

    @property
    def broadcasts(self) -> List[Broadcast]:
        return [e for e in self.effects if isinstance(e, Broadcast)]

    @property
    def timer_effects(self) -> List[Any]:
        return [e for e in self.effects if isinstance(e, (StartTimer, CancelTimer))]


def rejected(state: RoomState) -> Transition:
    """A no-op transition: state unchanged, nothing to broadcast."""
    return Transition(state=state, effects=[], accepted=False)
