"""Game constants and utilities"""

from typing import Dict, FrozenSet

# Card pool: every player owns an independent copy of these values
CARD_VALUES = (1, 2, 3, 4, 5, 6, 7, 8)
FULL_POOL: FrozenSet[int] = frozenset(CARD_VALUES)

SHOWN_PER_ROUND = 2

# Phases
PHASE_LOBBY = 'lobby'
PHASE_SELECT_TWO = 'select_two'
PHASE_SELECT_FINAL = 'select_final'
PHASE_REVEAL = 'reveal'
PHASE_ENDED = 'ended'

SELECT_PHASES = (PHASE_SELECT_TWO, PHASE_SELECT_FINAL)

# Numeric phase codes understood by the web client
PHASE_CODES: Dict[str, int] = {
    PHASE_LOBBY: 0,
    PHASE_SELECT_TWO: 1,
    PHASE_SELECT_FINAL: 2,
    PHASE_REVEAL: 3,
    PHASE_ENDED: 99,
}

NO_WINNER_TEXT = 'No winner this round'
REPLENISH_TEXT = 'Cards replenished! All players now have cards 1-8 again.'


def phase_code(phase: str) -> int:
    return PHASE_CODES.get(phase, -1)


def is_card_value(card) -> bool:
    # bool is an int subclass; a JSON true must not count as card 1
    return isinstance(card, int) and not isinstance(card, bool) and card in FULL_POOL
