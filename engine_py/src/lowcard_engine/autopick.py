"""
Deterministic fallback picks for players who miss a deadline.

The strategy mirrors a greedy low-card player: always take the lowest
values still allowed. No randomness is involved, so the same state always
auto-completes the same way.
"""

import logging
from typing import Dict, List

from .constants import SHOWN_PER_ROUND
from .models import Player, RoomState
from .pool import eligible_cards

logger = logging.getLogger(__name__)


def choose_shown(player: Player) -> List[int]:
    """Cards that would complete the player's shown pair, lowest first."""
    needed = SHOWN_PER_ROUND - len(player.shown)
    if needed <= 0:
        return []
    return eligible_cards(player)[:needed]


def choose_final(player: Player):
    """The lowest shown card, or None when nothing was shown."""
    if not player.shown:
        return None
    return min(player.shown)


def complete_shown(state: RoomState) -> Dict[str, List[int]]:
    """
    Fill ``shown`` up to two cards for every straggler.

    Mutates ``state`` in place.

    Returns:
        Mapping of player id to the cards that were auto-picked
    """
    picked = {}
    for player in state.players:
        cards = choose_shown(player)
        if not cards:
            continue
        player.shown.extend(cards)
        picked[player.id] = cards
        logger.info(f"Auto-selected cards {cards} for player {player.name} in room {state.id}")
    return picked


def complete_final(state: RoomState) -> Dict[str, int]:
    """Set ``final = min(shown)`` for every player without a final card."""
    picked = {}
    for player in state.players:
        if player.has_final:
            continue
        card = choose_final(player)
        if card is None:
            continue
        player.final = card
        picked[player.id] = card
        logger.info(f"Auto-selected final card {card} for player {player.name} in room {state.id}")
    return picked
