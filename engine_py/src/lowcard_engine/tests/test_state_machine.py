"""
Phase state machine tests, driven by explicit events instead of real timers.
"""

import pytest

from lowcard_engine.constants import (
    FULL_POOL, PHASE_ENDED, PHASE_LOBBY, PHASE_REVEAL, PHASE_SELECT_FINAL, PHASE_SELECT_TWO,
    REPLENISH_TEXT
)
from lowcard_engine.effects import (
    ActionType, Broadcast, CancelTimer, EventKind, GameEvent, StartTimer
)
from lowcard_engine.engine import (
    all_ready, apply_event, create_room, is_ready, join_room, remove_player
)
from lowcard_engine.rules import create_rules


RULES = create_rules(ready_grace_seconds=0)


def lobby(*names, rules=RULES):
    state = create_room("R1")
    for i, name in enumerate(names, start=1):
        state = join_room(state, f"p{i}", name, rules).state
    return state


def act(state, action, player_id, card=None, rules=RULES):
    return apply_event(state, GameEvent.submitted(action, player_id, card), rules)


def fire(state, kind, rules=RULES):
    return apply_event(state, GameEvent.timer(kind, state.generation), rules)


def started(*names, rules=RULES):
    return act(lobby(*names, rules=rules), ActionType.START, "p1", rules=rules).state


def test_first_joiner_is_host():
    state = lobby("Alice", "Bob")
    assert state.phase == PHASE_LOBBY
    assert [p.is_host for p in state.players] == [True, False]
    assert state.version == 2


def test_join_broadcasts_snapshot():
    transition = join_room(create_room("R1"), "p1", "  Alice ", RULES)
    assert transition.accepted
    assert transition.state.players[0].name == "Alice"
    [broadcast] = transition.effects
    assert broadcast.payload["players"][0]["isHost"] is True


def test_duplicate_join_is_ignored():
    state = lobby("Alice")
    transition = join_room(state, "p1", "Alice again", RULES)
    assert not transition.accepted
    assert transition.effects == []
    assert transition.state is state


def test_join_after_start_is_ignored():
    state = started("Alice", "Bob")
    transition = join_room(state, "p3", "Carol", RULES)
    assert not transition.accepted
    assert len(transition.state.players) == 2


def test_start_requires_host_and_two_players():
    solo = lobby("Alice")
    assert not act(solo, ActionType.START, "p1").accepted

    pair = lobby("Alice", "Bob")
    assert not act(pair, ActionType.START, "p2").accepted
    assert not act(pair, ActionType.START, "stranger").accepted

    transition = act(pair, ActionType.START, "p1")
    assert transition.accepted
    state = transition.state
    assert state.phase == PHASE_SELECT_TWO
    assert state.round_number == 1
    assert state.timer == RULES.select_two_seconds
    for player in state.players:
        assert player.hand == set(FULL_POOL)
        assert player.points == 0
    [timer] = transition.timer_effects
    assert timer.event == EventKind.DEADLINE_EXPIRED
    assert timer.units == RULES.select_two_seconds
    assert timer.generation == state.generation


def test_second_start_is_ignored():
    state = started("Alice", "Bob")
    assert not act(state, ActionType.START, "p1").accepted


def test_apply_event_does_not_mutate_input():
    state = started("Alice", "Bob")
    before = state.version
    act(state, ActionType.PICK_SHOWN, "p1", 3)
    assert state.players[0].shown == []
    assert state.version == before


@pytest.mark.parametrize("card", [0, 9, "3", None, True, 3.0])
def test_pick_shown_rejects_non_cards(card):
    state = started("Alice", "Bob")
    transition = act(state, ActionType.PICK_SHOWN, "p1", card)
    assert not transition.accepted
    assert transition.effects == []


def test_pick_shown_rules():
    state = started("Alice", "Bob")
    state = act(state, ActionType.PICK_SHOWN, "p1", 3).state
    assert not act(state, ActionType.PICK_SHOWN, "p1", 3).accepted

    state = act(state, ActionType.PICK_SHOWN, "p1", 5).state
    assert state.players[0].shown == [3, 5]
    assert not act(state, ActionType.PICK_SHOWN, "p1", 6).accepted


def test_pick_shown_rejects_banned_and_played_cards():
    state = started("Alice", "Bob")
    alice = state.players[0]
    alice.banned_this_round = {4}
    alice.hand.discard(2)
    assert not act(state, ActionType.PICK_SHOWN, "p1", 4).accepted
    assert not act(state, ActionType.PICK_SHOWN, "p1", 2).accepted
    assert act(state, ActionType.PICK_SHOWN, "p1", 1).accepted


def test_pick_final_must_be_shown_and_in_phase():
    state = started("Alice", "Bob")
    assert not act(state, ActionType.PICK_FINAL, "p1", 3).accepted

    state = fire(state, EventKind.DEADLINE_EXPIRED).state
    assert state.phase == PHASE_SELECT_FINAL
    shown = state.players[0].shown
    assert not act(state, ActionType.PICK_FINAL, "p1", 8).accepted

    transition = act(state, ActionType.PICK_FINAL, "p1", shown[1])
    assert transition.accepted
    assert transition.state.players[0].final == shown[1]

    # the final may be changed until the phase closes
    again = act(transition.state, ActionType.PICK_FINAL, "p1", shown[0])
    assert again.state.players[0].final == shown[0]


def test_two_player_scenario():
    state = started("A", "B")
    assert state.phase == PHASE_SELECT_TWO
    assert state.round_number == 1
    a, b = state.players
    assert a.hand == b.hand == set(FULL_POOL)

    state = act(state, ActionType.PICK_SHOWN, "p1", 3).state
    state = act(state, ActionType.PICK_SHOWN, "p1", 5).state
    assert state.phase == PHASE_SELECT_TWO

    state = fire(state, EventKind.DEADLINE_EXPIRED).state
    assert state.phase == PHASE_SELECT_FINAL
    assert state.players[1].shown == [1, 2]

    state = act(state, ActionType.PICK_FINAL, "p1", 5).state
    state = fire(state, EventKind.DEADLINE_EXPIRED).state
    assert state.phase == PHASE_REVEAL
    assert state.players[1].final == 1

    transition = fire(state, EventKind.REVEAL_ELAPSED)
    state = transition.state
    assert transition.outcome.finals == {"p1": 5, "p2": 1}
    assert transition.outcome.winner_id == "p2"
    a, b = state.players
    assert (a.points, b.points) == (0, 1)
    assert a.banned_next_round == {3}
    assert b.banned_next_round == {2}
    assert 5 not in a.hand and a.played_cards == [5]
    assert 1 not in b.hand and b.played_cards == [1]
    assert transition.broadcasts[0].payload["result"] == "B"

    state = fire(state, EventKind.INTERMISSION_ELAPSED).state
    assert state.phase == PHASE_SELECT_TWO
    assert state.round_number == 2
    assert state.players[0].banned_this_round == {3}
    assert state.players[0].banned_next_round == set()
    assert state.players[0].shown == [] and state.players[0].final is None


def test_select_two_end_invariants():
    state = started("A", "B", "C")
    state.players[2].banned_this_round = {1, 2}
    state = act(state, ActionType.PICK_SHOWN, "p1", 7).state
    state = fire(state, EventKind.DEADLINE_EXPIRED).state
    for player in state.players:
        assert len(player.shown) == 2
        assert set(player.shown) <= player.hand
        assert not set(player.shown) & player.banned_this_round
    assert state.players[0].shown == [7, 1]
    assert state.players[2].shown == [3, 4]


def test_select_final_end_invariant():
    state = started("A", "B")
    state = fire(state, EventKind.DEADLINE_EXPIRED).state
    state = fire(state, EventKind.DEADLINE_EXPIRED).state
    for player in state.players:
        assert player.final in player.shown


def test_all_ready_closes_phase_immediately_without_grace():
    state = started("A", "B")
    state = act(state, ActionType.PICK_SHOWN, "p1", 1).state
    state = act(state, ActionType.PICK_SHOWN, "p1", 2).state
    state = act(state, ActionType.PICK_SHOWN, "p2", 1).state
    transition = act(state, ActionType.PICK_SHOWN, "p2", 3)
    assert transition.state.phase == PHASE_SELECT_FINAL
    [timer] = transition.timer_effects
    assert timer.units == RULES.select_final_seconds
    # exit snapshot, then entry snapshot of the new phase
    phases = [b.payload["phase"] for b in transition.broadcasts]
    assert phases == [PHASE_SELECT_TWO, PHASE_SELECT_TWO, PHASE_SELECT_FINAL]


def test_all_ready_with_grace_schedules_close():
    rules = create_rules(ready_grace_seconds=0.5)
    state = started("A", "B", rules=rules)
    for pid in ("p1", "p2"):
        for card in (1, 2):
            transition = act(state, ActionType.PICK_SHOWN, pid, card, rules=rules)
            state = transition.state
    assert state.phase == PHASE_SELECT_TWO
    assert state.closing
    [timer] = transition.timer_effects
    assert timer.event == EventKind.ALL_READY
    assert timer.delay == 0.5
    assert timer.generation == state.generation

    state = fire(state, EventKind.ALL_READY, rules=rules).state
    assert state.phase == PHASE_SELECT_FINAL
    assert not state.closing


def test_deadline_and_all_ready_only_close_once():
    rules = create_rules(ready_grace_seconds=0.5)
    state = started("A", "B", rules=rules)
    generation = state.generation
    for pid in ("p1", "p2"):
        for card in (1, 2):
            state = act(state, ActionType.PICK_SHOWN, pid, card, rules=rules).state

    closed = apply_event(state, GameEvent.timer(EventKind.ALL_READY, generation), rules).state
    assert closed.phase == PHASE_SELECT_FINAL
    late = apply_event(closed, GameEvent.timer(EventKind.DEADLINE_EXPIRED, generation), rules)
    assert not late.accepted
    assert late.state.phase == PHASE_SELECT_FINAL


def test_stale_timer_events_are_rejected():
    state = started("A", "B")
    stale = GameEvent.timer(EventKind.DEADLINE_EXPIRED, state.generation - 1)
    transition = apply_event(state, stale, RULES)
    assert not transition.accepted
    assert transition.state is state


def test_reveal_resolves_once():
    state = started("A", "B")
    state = fire(state, EventKind.DEADLINE_EXPIRED).state
    state = fire(state, EventKind.DEADLINE_EXPIRED).state
    generation = state.generation
    resolved = fire(state, EventKind.REVEAL_ELAPSED).state
    again = apply_event(resolved, GameEvent.timer(EventKind.REVEAL_ELAPSED, generation), RULES)
    assert not again.accepted
    assert not fire(resolved, EventKind.REVEAL_ELAPSED).accepted


def test_tick_counts_down_and_broadcasts():
    state = started("A", "B")
    transition = fire(state, EventKind.TIMER_TICK)
    assert transition.state.timer == state.timer - 1
    assert transition.state.version == state.version + 1
    [broadcast] = transition.effects
    assert broadcast.payload["timer"] == state.timer - 1


def test_tick_ignored_in_lobby():
    state = lobby("A", "B")
    assert not fire(state, EventKind.TIMER_TICK).accepted


def play_round(state, rules=RULES):
    state = fire(state, EventKind.DEADLINE_EXPIRED, rules).state
    state = fire(state, EventKind.DEADLINE_EXPIRED, rules).state
    state = fire(state, EventKind.REVEAL_ELAPSED, rules).state
    return fire(state, EventKind.INTERMISSION_ELAPSED, rules)


def test_game_ends_at_threshold():
    rules = create_rules(ready_grace_seconds=0, win_threshold=1)
    state = started("A", "B", rules=rules)
    # A shows 1,2 and B shows 3,4, so A wins with 1
    for pid, cards in (("p1", (1, 2)), ("p2", (3, 4))):
        for card in cards:
            state = act(state, ActionType.PICK_SHOWN, pid, card, rules=rules).state
    assert state.phase == PHASE_SELECT_FINAL

    transition = play_round_from_final(state, rules)
    state = transition.state
    assert state.phase == PHASE_ENDED
    assert state.winner_name == "A"
    assert state.timer == 0
    assert any(isinstance(e, CancelTimer) for e in transition.effects)
    assert not any(isinstance(e, StartTimer) for e in transition.effects)
    assert transition.broadcasts[-1].payload["winner"] == "A"


def play_round_from_final(state, rules):
    state = fire(state, EventKind.DEADLINE_EXPIRED, rules).state
    state = fire(state, EventKind.REVEAL_ELAPSED, rules).state
    return fire(state, EventKind.INTERMISSION_ELAPSED, rules)


def test_ended_room_is_frozen():
    rules = create_rules(ready_grace_seconds=0, win_threshold=1)
    state = started("A", "B", rules=rules)
    for pid, cards in (("p1", (1, 2)), ("p2", (3, 4))):
        for card in cards:
            state = act(state, ActionType.PICK_SHOWN, pid, card, rules=rules).state
    state = play_round_from_final(state, rules).state
    assert state.phase == PHASE_ENDED

    events = [GameEvent.submitted(ActionType.START, "p1"),
              GameEvent.submitted(ActionType.PICK_SHOWN, "p1", 5),
              GameEvent.submitted(ActionType.PICK_FINAL, "p1", 5)]
    events += [GameEvent.timer(kind, state.generation) for kind in EventKind
               if kind != EventKind.ACTION_SUBMITTED]
    for event in events:
        transition = apply_event(state, event, rules)
        assert not transition.accepted
        assert transition.state is state
    assert [p.points for p in state.players] == [1, 0]

    # the host disconnecting does not hand the seat over any more
    left = remove_player(state, "p1", rules).state
    [bob] = left.players
    assert not bob.is_host
    assert bob.points == 0
    assert left.phase == PHASE_ENDED
    assert left.winner_name == "A"


def test_no_winner_when_finals_tie():
    state = started("A", "B")
    state = fire(state, EventKind.DEADLINE_EXPIRED).state
    state = fire(state, EventKind.DEADLINE_EXPIRED).state
    # both auto-picked 1,2 and then final 1
    transition = fire(state, EventKind.REVEAL_ELAPSED)
    assert transition.outcome.winner_id is None
    assert transition.broadcasts[0].payload["result"] == "No winner this round"
    assert all(p.points == 0 for p in transition.state.players)


def test_replenishment_at_round_seven_overrides_bans():
    state = started("A", "B")
    for _ in range(5):
        state = play_round(state).state
    assert state.round_number == 6
    assert state.players[0].played_cards

    transition = play_round(state)
    state = transition.state
    assert state.round_number == 7
    for player in state.players:
        assert player.hand == set(FULL_POOL)
        assert player.played_cards == []
        assert player.banned_this_round == set()
        assert player.banned_next_round == set()
    payload = transition.broadcasts[-1].payload
    assert payload["message"] == REPLENISH_TEXT
    assert payload["replenished"] is True
    assert payload["roundsUntilReplenish"] == 6


def test_player_with_empty_eligible_set_is_ready():
    state = started("A", "B")
    state.players[1].hand = {4}
    state.players[1].banned_this_round = {4}
    assert is_ready(state.players[1], PHASE_SELECT_TWO)
    assert not all_ready(state)


def test_leave_hands_host_to_next_joiner():
    state = lobby("A", "B", "C")
    transition = remove_player(state, "p1", RULES)
    assert transition.accepted
    assert [p.id for p in transition.state.players] == ["p2", "p3"]
    assert transition.state.host.id == "p2"


def test_last_leave_empties_room():
    state = started("A", "B")
    state = remove_player(state, "p1", RULES).state
    transition = remove_player(state, "p2", RULES)
    assert transition.room_empty
    assert transition.state.players == []
    assert any(isinstance(e, CancelTimer) for e in transition.effects)


def test_leave_can_complete_select_phase():
    state = started("A", "B")
    state = act(state, ActionType.PICK_SHOWN, "p1", 1).state
    state = act(state, ActionType.PICK_SHOWN, "p1", 2).state
    transition = remove_player(state, "p2", RULES)
    assert transition.state.phase == PHASE_SELECT_FINAL


def test_unknown_player_leave_is_ignored():
    state = lobby("A")
    assert not remove_player(state, "ghost", RULES).accepted


def test_broadcast_payload_is_detached_from_state():
    transition = act(started("A", "B"), ActionType.PICK_SHOWN, "p1", 3)
    broadcast = transition.effects[0]
    assert isinstance(broadcast, Broadcast)
    broadcast.payload["players"][0]["shown"].append(8)
    assert transition.state.players[0].shown == [3]
