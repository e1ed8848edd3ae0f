"""Phase state machine: lobby -> select_two -> select_final -> reveal -> (select_two | ended)"""

import copy
import logging
from typing import List

from . import autopick
from .constants import (
    PHASE_ENDED, PHASE_LOBBY, PHASE_REVEAL, PHASE_SELECT_FINAL, PHASE_SELECT_TWO,
    REPLENISH_TEXT, SELECT_PHASES
)
from .effects import (
    ActionType, Broadcast, CancelTimer, EventKind, GameEvent, StartTimer, Transition, rejected
)
from .models import Player, RoomState
from .pool import replenish_hands, should_replenish
from .resolver import find_game_winner, resolve_round, roll_over_bans
from .rules import RuleConfig, default_rules
from .serialization import snapshot_state
from .validate import (
    validate_join_room, validate_pick_final, validate_pick_shown, validate_start
)

logger = logging.getLogger(__name__)


def create_room(room_id: str) -> RoomState:
    return RoomState(id=room_id)


def _broadcast(state: RoomState, rules: RuleConfig, **extra) -> Broadcast:
    return Broadcast(snapshot_state(state, extra or None, rules.replenish_every))


def _countdown(state: RoomState, event: EventKind, units: int) -> StartTimer:
    state.timer = units
    return StartTimer(event=event, generation=state.generation, units=units)


def _enter_phase(state: RoomState, phase: str):
    logger.info(f"Room {state.id}: {state.phase} -> {phase} (round {state.round_number})")
    state.phase = phase
    state.closing = False
    state.advance_generation()
    state.increment_version()


# ---------------------------------------------------------------- readiness

def is_ready(player: Player, phase: str) -> bool:
    """
    Whether a player has nothing left to do in a select phase.

    A player whose hand cannot complete a pair (no eligible cards left)
    counts as ready; auto-completion fills in what it can.
    """
    if phase == PHASE_SELECT_TWO:
        return player.shown_complete or not autopick.choose_shown(player)
    if phase == PHASE_SELECT_FINAL:
        return player.has_final or not player.shown
    return False


def all_ready(state: RoomState) -> bool:
    if state.phase not in SELECT_PHASES or not state.players:
        return False
    return all(is_ready(p, state.phase) for p in state.players)


def _on_all_ready(state: RoomState, rules: RuleConfig, effects: List):
    """Close the phase now, or after the grace window."""
    if state.closing:
        return
    if rules.ready_grace_seconds > 0:
        state.closing = True
        effects.append(StartTimer(
            event=EventKind.ALL_READY,
            generation=state.generation,
            delay=rules.ready_grace_seconds,
        ))
        return
    _close_select_phase(state, rules, effects)


def _close_select_phase(state: RoomState, rules: RuleConfig, effects: List):
    if state.phase == PHASE_SELECT_TWO:
        _close_select_two(state, rules, effects)
    elif state.phase == PHASE_SELECT_FINAL:
        _close_select_final(state, rules, effects)


# ------------------------------------------------------------- transitions

def _close_select_two(state: RoomState, rules: RuleConfig, effects: List):
    autopick.complete_shown(state)
    state.increment_version()
    effects.append(_broadcast(state, rules))

    _enter_phase(state, PHASE_SELECT_FINAL)
    timer = _countdown(state, EventKind.DEADLINE_EXPIRED, rules.select_final_seconds)
    effects.append(_broadcast(state, rules))
    effects.append(timer)


def _close_select_final(state: RoomState, rules: RuleConfig, effects: List):
    autopick.complete_final(state)
    state.increment_version()
    effects.append(_broadcast(state, rules))

    _enter_phase(state, PHASE_REVEAL)
    state.resolved = False
    timer = _countdown(state, EventKind.REVEAL_ELAPSED, rules.reveal_seconds)
    effects.append(_broadcast(state, rules))
    effects.append(timer)


def _resolve_reveal(state: RoomState, rules: RuleConfig, effects: List):
    outcome = resolve_round(state)
    logger.info(f"Room {state.id}: round {state.round_number} result: {outcome.result_text}")

    state.resolved = True
    state.advance_generation()
    state.increment_version()
    timer = _countdown(state, EventKind.INTERMISSION_ELAPSED, rules.intermission_seconds)
    effects.append(_broadcast(state, rules, result=outcome.result_text))
    effects.append(timer)
    return outcome


def _finish_intermission(state: RoomState, rules: RuleConfig, effects: List):
    winner = find_game_winner(state.players, rules.win_threshold)
    if winner is not None:
        state.winner_name = winner.name
        state.timer = 0
        _enter_phase(state, PHASE_ENDED)
        logger.info(f"Room {state.id}: game won by {winner.name}")
        effects.append(CancelTimer(reason="game ended"))
        effects.append(_broadcast(state, rules))
        return

    state.round_number += 1
    state.resolved = False
    extra = {}
    if should_replenish(state.round_number, rules.replenish_every):
        replenish_hands(state.players)
        logger.info(f"Replenishing cards for all players in room {state.id} "
                    f"at round {state.round_number}")
        extra = {"message": REPLENISH_TEXT, "replenished": True}
    else:
        roll_over_bans(state.players)
    for player in state.players:
        player.shown = []
        player.final = None

    _enter_phase(state, PHASE_SELECT_TWO)
    timer = _countdown(state, EventKind.DEADLINE_EXPIRED, rules.select_two_seconds)
    effects.append(_broadcast(state, rules, **extra))
    effects.append(timer)


def _start_game(state: RoomState, rules: RuleConfig, effects: List):
    for player in state.players:
        player.reset_for_game()
    state.round_number = 1
    state.winner_name = None
    state.last_result = None
    state.resolved = False

    _enter_phase(state, PHASE_SELECT_TWO)
    timer = _countdown(state, EventKind.DEADLINE_EXPIRED, rules.select_two_seconds)
    effects.append(_broadcast(state, rules))
    effects.append(timer)


# ------------------------------------------------------------ entry points

def join_room(state: RoomState, player_id: str, player_name: str,
              rules: RuleConfig = default_rules) -> Transition:
    """
    Add a player to the room. The first player to join becomes host.

    Duplicate joins and joins after the game started are ignored.
    """
    validation = validate_join_room(state, player_id)
    if not validation.valid:
        logger.debug(f"Join ignored in room {state.id}: {validation.error_message}")
        return rejected(state)

    new_state = copy.deepcopy(state)
    player = Player(id=player_id, name=player_name.strip(), is_host=not new_state.players)
    new_state.players.append(player)
    new_state.increment_version()
    logger.info(f"Player {player.name} ({player_id}) joined room {state.id}"
                f"{' as host' if player.is_host else ''}")
    return Transition(state=new_state, effects=[_broadcast(new_state, rules)])


def remove_player(state: RoomState, player_id: str,
                  rules: RuleConfig = default_rules) -> Transition:
    """
    Remove a disconnected player.

    An emptied room reports ``room_empty`` so the registry can drop it;
    otherwise the host seat passes to the earliest remaining joiner and a
    select phase may now be complete.
    """
    player = state.get_player(player_id)
    if player is None:
        return rejected(state)

    new_state = copy.deepcopy(state)
    new_state.players = [p for p in new_state.players if p.id != player_id]
    new_state.increment_version()
    logger.info(f"Player {player.name} ({player_id}) left room {state.id}")

    if not new_state.players:
        return Transition(state=new_state, effects=[CancelTimer(reason="room empty")],
                          room_empty=True)

    # an ended game is frozen, the host seat stays empty
    if player.is_host and new_state.phase != PHASE_ENDED:
        new_state.players[0].is_host = True
        logger.info(f"Room {state.id}: host passed to {new_state.players[0].name}")

    effects = [_broadcast(new_state, rules)]
    if all_ready(new_state):
        _on_all_ready(new_state, rules, effects)
    return Transition(state=new_state, effects=effects)


def apply_event(state: RoomState, event: GameEvent,
                rules: RuleConfig = default_rules) -> Transition:
    """
    Apply one event to a room and return the resulting transition.

    The input state is never mutated. Illegal actions and stale timer
    events (their generation no longer matches the room) yield a rejected
    transition with no effects.

    Args:
        state: Current room state
        event: Player action or timer event
        rules: Timing and scoring configuration

    Returns:
        Transition with the new state and the effects to carry out
    """
    if state.phase == PHASE_ENDED:
        return rejected(state)

    if event.is_timer_event and event.generation != state.generation:
        logger.debug(f"Stale {event.kind.value} for room {state.id} "
                     f"(generation {event.generation} != {state.generation})")
        return rejected(state)

    handler = _HANDLERS.get(event.kind)
    if handler is None:
        return rejected(state)
    return handler(state, event, rules)


def _handle_action(state: RoomState, event: GameEvent, rules: RuleConfig) -> Transition:
    if event.action == ActionType.START:
        validation = validate_start(state, event.player_id, rules)
    elif event.action == ActionType.PICK_SHOWN:
        validation = validate_pick_shown(state, event.player_id, event.card)
    elif event.action == ActionType.PICK_FINAL:
        validation = validate_pick_final(state, event.player_id, event.card)
    else:
        return rejected(state)

    if not validation.valid:
        logger.debug(f"Ignored {event.action.value} from {event.player_id} "
                     f"in room {state.id}: {validation.error_message}")
        return rejected(state)

    new_state = copy.deepcopy(state)
    effects = []
    if event.action == ActionType.START:
        _start_game(new_state, rules, effects)
        return Transition(state=new_state, effects=effects)

    player = new_state.get_player(event.player_id)
    if event.action == ActionType.PICK_SHOWN:
        player.shown.append(event.card)
    else:
        player.final = event.card
    new_state.increment_version()
    effects.append(_broadcast(new_state, rules))

    if all_ready(new_state):
        _on_all_ready(new_state, rules, effects)
    return Transition(state=new_state, effects=effects)


def _handle_phase_close(state: RoomState, event: GameEvent, rules: RuleConfig) -> Transition:
    # ALL_READY and DEADLINE_EXPIRED share one path; whichever arrives first
    # advances the generation and turns the other into a stale event
    if state.phase not in SELECT_PHASES:
        return rejected(state)
    new_state = copy.deepcopy(state)
    effects = []
    _close_select_phase(new_state, rules, effects)
    return Transition(state=new_state, effects=effects)


def _handle_reveal_elapsed(state: RoomState, event: GameEvent, rules: RuleConfig) -> Transition:
    if state.phase != PHASE_REVEAL or state.resolved:
        return rejected(state)
    new_state = copy.deepcopy(state)
    effects = []
    outcome = _resolve_reveal(new_state, rules, effects)
    return Transition(state=new_state, effects=effects, outcome=outcome)


def _handle_intermission_elapsed(state: RoomState, event: GameEvent,
                                 rules: RuleConfig) -> Transition:
    if state.phase != PHASE_REVEAL or not state.resolved:
        return rejected(state)
    new_state = copy.deepcopy(state)
    effects = []
    _finish_intermission(new_state, rules, effects)
    return Transition(state=new_state, effects=effects)


def _handle_tick(state: RoomState, event: GameEvent, rules: RuleConfig) -> Transition:
    if state.phase in (PHASE_LOBBY, PHASE_ENDED) or state.timer <= 0:
        return rejected(state)
    new_state = copy.deepcopy(state)
    new_state.timer -= 1
    new_state.increment_version()
    return Transition(state=new_state, effects=[_broadcast(new_state, rules)])


_HANDLERS = {
    EventKind.ACTION_SUBMITTED: _handle_action,
    EventKind.ALL_READY: _handle_phase_close,
    EventKind.DEADLINE_EXPIRED: _handle_phase_close,
    EventKind.REVEAL_ELAPSED: _handle_reveal_elapsed,
    EventKind.INTERMISSION_ELAPSED: _handle_intermission_elapsed,
    EventKind.TIMER_TICK: _handle_tick,
}

