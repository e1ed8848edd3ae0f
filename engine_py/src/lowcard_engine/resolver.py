# engine_py/src/lowcard_engine/resolver.py

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .constants import NO_WINNER_TEXT, SHOWN_PER_ROUND
from .models import Player, RoomState


@dataclass
class RoundOutcome:
    round_number: int
    winner_id: Optional[str] = None
    winner_name: Optional[str] = None
    finals: Dict[str, Optional[int]] = field(default_factory=dict)
    bans: Dict[str, Set[int]] = field(default_factory=dict)

    @property
    def result_text(self) -> str:
        return self.winner_name if self.winner_name is not None else NO_WINNER_TEXT


def find_round_winner(players: List[Player]) -> Optional[Player]:
    """
    Return the player holding the unique lowest final card.

    Only values played by exactly one player are candidates; the lowest of
    those wins. If every value is shared, nobody wins the round.
    """
    counts = Counter(p.final for p in players if p.final is not None)
    winner = None
    for player in players:
        if player.final is None or counts[player.final] != 1:
            continue
        if winner is None or player.final < winner.final:
            winner = player
    return winner


def compute_ban(player: Player) -> Set[int]:
    """The shown card that was not committed becomes unusable next round."""
    if len(player.shown) != SHOWN_PER_ROUND or player.final is None:
        return set()
    return set(player.shown) - {player.final}


def resolve_round(state: RoomState) -> RoundOutcome:
    """
    Score the round and consume the final cards.

    This function mutates the state: the winner gains a point, every
    player's ``banned_next_round`` is recomputed from the shown cards
    (before anything is cleared), the final card moves from the hand to
    ``played_cards``, and ``shown``/``final`` are reset.

    Args:
        state: Room in the reveal phase with finals already auto-completed

    Returns:
        RoundOutcome describing the winner, finals and new bans
    """
    outcome = RoundOutcome(round_number=state.round_number)

    winner = find_round_winner(state.players)
    if winner is not None:
        winner.points += 1
        outcome.winner_id = winner.id
        outcome.winner_name = winner.name

    # Bans first: they depend on shown/final, which are cleared below
    for player in state.players:
        player.banned_next_round = compute_ban(player)
        outcome.bans[player.id] = set(player.banned_next_round)

    for player in state.players:
        outcome.finals[player.id] = player.final
        if player.final is not None:
            player.played_cards.append(player.final)
            player.hand.discard(player.final)
        player.shown = []
        player.final = None

    state.last_result = outcome.result_text
    return outcome


def roll_over_bans(players: List[Player]):
    """Carry next-round bans forward exactly one round."""
    for player in players:
        player.banned_this_round = player.banned_next_round
        player.banned_next_round = set()


def find_game_winner(players: List[Player], threshold: int) -> Optional[Player]:
    """First player, in join order, who reached the win threshold."""
    for player in players:
        if player.points >= threshold:
            return player
    return None
