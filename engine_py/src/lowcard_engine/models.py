"""Game models and data structures"""

from dataclasses import dataclass, field
from typing import List, Optional, Set

from .constants import FULL_POOL, PHASE_LOBBY, SHOWN_PER_ROUND


@dataclass
class Player:
    id: str  # connection id
    name: str
    is_host: bool = False
    hand: Set[int] = field(default_factory=set)
    shown: List[int] = field(default_factory=list)  # up to two picks, in pick order
    final: Optional[int] = None
    played_cards: List[int] = field(default_factory=list)
    banned_this_round: Set[int] = field(default_factory=set)
    banned_next_round: Set[int] = field(default_factory=set)
    points: int = 0

    @property
    def shown_complete(self) -> bool:
        return len(self.shown) == SHOWN_PER_ROUND

    @property
    def has_final(self) -> bool:
        return self.final is not None

    def reset_for_game(self):
        self.hand = set(FULL_POOL)
        self.shown = []
        self.final = None
        self.played_cards = []
        self.banned_this_round = set()
        self.banned_next_round = set()
        self.points = 0


@dataclass
class RoomState:
    id: str
    version: int = 0
    generation: int = 0  # bumped whenever a pending timer must become stale
    phase: str = PHASE_LOBBY  # lobby|select_two|select_final|reveal|ended
    round_number: int = 0
    timer: int = 0  # deadline remaining, in timer units
    players: List[Player] = field(default_factory=list)
    winner_name: Optional[str] = None
    resolved: bool = False  # reveal already scored, waiting out the intermission
    closing: bool = False  # everyone is ready, the phase closes when the grace timer fires
    last_result: Optional[str] = None

    def get_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def has_player(self, player_id: str) -> bool:
        return self.get_player(player_id) is not None

    @property
    def host(self) -> Optional[Player]:
        for player in self.players:
            if player.is_host:
                return player
        return None

    def increment_version(self):
        self.version += 1

    def advance_generation(self):
        self.generation += 1
