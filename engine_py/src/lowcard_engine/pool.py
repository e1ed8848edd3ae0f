"""
Card pool utilities: the fixed 1..8 value set and its replenishment policy.
"""

from typing import Iterable, List, Set

from .constants import FULL_POOL
from .models import Player


def full_pool() -> Set[int]:
    """Return a fresh, mutable copy of the full card pool."""
    return set(FULL_POOL)


def should_replenish(round_number: int, every: int = 6) -> bool:
    """
    Check whether hands reset when ``round_number`` begins.

    With the default interval this is true for rounds 7, 13, 19, ...;
    round 1 deals a fresh pool through game start instead.
    """
    return round_number > 1 and round_number % every == 1


def rounds_until_replenish(round_number: int, every: int = 6) -> int:
    """Number of rounds left before the next replenishment round."""
    if round_number < 1:
        return every
    remaining = (1 - round_number) % every
    return remaining or every


def replenish_hands(players: Iterable[Player]) -> List[str]:
    """
    Reset every player's hand to the full pool.

    Clears play history and both ban sets, overriding the normal
    ban carry-forward for this round.

    Returns:
        Names of the replenished players
    """
    names = []
    for player in players:
        player.hand = full_pool()
        player.played_cards = []
        player.banned_this_round = set()
        player.banned_next_round = set()
        names.append(player.name)
    return names


def eligible_cards(player: Player) -> List[int]:
    """Cards the player may still add to ``shown``, lowest first."""
    return sorted(player.hand - set(player.shown) - player.banned_this_round)
