"""
State serialization utilities.
"""

import copy
from typing import Any, Dict, List, Optional

from .constants import phase_code
from .models import Player, RoomState
from .pool import rounds_until_replenish


def serialize_player(player: Player) -> Dict[str, Any]:
    """Serialize a player in the wire format of ``state-update``."""
    return {
        "id": player.id,
        "name": player.name,
        "hand": sorted(player.hand),
        "shown": list(player.shown),
        "final": player.final,
        "points": player.points,
        "used": list(player.played_cards),
        "banned": sorted(player.banned_this_round),
        "isHost": player.is_host,
    }


def snapshot_state(
    state: RoomState,
    extra: Optional[Dict[str, Any]] = None,
    replenish_every: int = 6
) -> Dict[str, Any]:
    """
    Build an immutable snapshot of the room for broadcasting.

    Every container is freshly built, so the transport never aliases the
    engine's internal lists and sets.

    Args:
        state: Room state to snapshot
        extra: One-off fields (result, message, replenished)
        replenish_every: Replenishment interval, for the countdown hint

    Returns:
        Plain dictionary safe for JSON transmission
    """
    snapshot = {
        "roomId": state.id,
        "version": state.version,
        "phase": state.phase,
        "phaseCode": phase_code(state.phase),
        "timer": state.timer,
        "round": state.round_number,
        "roundsUntilReplenish": rounds_until_replenish(state.round_number, replenish_every),
        "players": [serialize_player(p) for p in state.players],
    }
    if state.winner_name is not None:
        snapshot["winner"] = state.winner_name
    if extra:
        snapshot.update(copy.deepcopy(extra))
    return snapshot


def serialize_player_for_list(player: Player) -> Dict[str, Any]:
    """Serialize player for the ``joined`` acknowledgement."""
    return {
        "id": player.id,
        "name": player.name,
        "points": player.points,
    }


def player_list(state: RoomState) -> List[Dict[str, Any]]:
    return [serialize_player_for_list(p) for p in state.players]


def get_public_room_info(state: RoomState) -> Dict[str, Any]:
    """Get public information about a room for listings."""
    return {
        "id": state.id,
        "phase": state.phase,
        "round": state.round_number,
        "player_count": len(state.players),
        "players": player_list(state),
    }
