"""
Legality checks for player actions.
"""

from typing import Optional

from .constants import (
    PHASE_LOBBY, PHASE_SELECT_TWO, PHASE_SELECT_FINAL, SHOWN_PER_ROUND, is_card_value
)
from .errors import ACTION_NOT_ALLOWED, ERROR_TEXTS, NO_PLAYER_NAME, NO_ROOM_NAME
from .models import Player, RoomState
from .rules import RuleConfig


class ValidationResult:
    """Result of action validation."""

    def __init__(
        self,
        valid: bool,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        player: Optional[Player] = None
    ):
        self.valid = valid
        self.error_code = error_code
        self.error_message = error_message
        self.player = player

    @classmethod
    def success(cls, player: Optional[Player] = None) -> 'ValidationResult':
        """Create a successful validation result."""
        return cls(valid=True, player=player)

    @classmethod
    def error(cls, error_code: str, error_message: str) -> 'ValidationResult':
        """Create an error validation result."""
        return cls(valid=False, error_code=error_code, error_message=error_message)


def _clean(value) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()


def validate_join_request(room_id, player_name) -> ValidationResult:
    """
    Check the fields of a join request.

    This is the only validation whose failure is reported back to the
    client; everything else is ignored silently.
    """
    if not _clean(room_id):
        return ValidationResult.error(NO_ROOM_NAME, ERROR_TEXTS[NO_ROOM_NAME])
    if not _clean(player_name):
        return ValidationResult.error(NO_PLAYER_NAME, ERROR_TEXTS[NO_PLAYER_NAME])
    return ValidationResult.success()


def validate_join_room(state: RoomState, player_id: str) -> ValidationResult:
    if state.has_player(player_id):
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Already joined")
    if state.phase != PHASE_LOBBY:
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Game already in progress")
    return ValidationResult.success()


def validate_start(state: RoomState, player_id: str, rules: RuleConfig) -> ValidationResult:
    player = state.get_player(player_id)
    if player is None:
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Not in this room")
    if state.phase != PHASE_LOBBY:
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Game already started")
    if not player.is_host:
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Only the host can start")
    if len(state.players) < rules.min_players:
        return ValidationResult.error(
            ACTION_NOT_ALLOWED, f"Need at least {rules.min_players} players"
        )
    return ValidationResult.success(player)


def validate_pick_shown(state: RoomState, player_id: str, card) -> ValidationResult:
    """
    A shown pick must come from the hand, must not repeat an earlier pick,
    must not be banned this round, and at most two cards may be shown.
    """
    if state.phase != PHASE_SELECT_TWO:
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Not selecting shown cards")
    player = state.get_player(player_id)
    if player is None:
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Not in this room")
    if not is_card_value(card):
        return ValidationResult.error(ACTION_NOT_ALLOWED, f"Not a card: {card!r}")
    if len(player.shown) >= SHOWN_PER_ROUND:
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Already showing two cards")
    if card not in player.hand:
        return ValidationResult.error(ACTION_NOT_ALLOWED, f"Card {card} not in hand")
    if card in player.shown:
        return ValidationResult.error(ACTION_NOT_ALLOWED, f"Card {card} already shown")
    if card in player.banned_this_round:
        return ValidationResult.error(ACTION_NOT_ALLOWED, f"Card {card} is banned this round")
    return ValidationResult.success(player)


def validate_pick_final(state: RoomState, player_id: str, card) -> ValidationResult:
    if state.phase != PHASE_SELECT_FINAL:
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Not selecting final card")
    player = state.get_player(player_id)
    if player is None:
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Not in this room")
    if not is_card_value(card) or card not in player.shown:
        return ValidationResult.error(ACTION_NOT_ALLOWED, f"Card {card!r} was not shown")
    return ValidationResult.success(player)
