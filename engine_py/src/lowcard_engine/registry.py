"""
Room registry and deadline scheduler.

The registry owns every live room, the single timer task of each room and
the per-room lock that serializes player actions and timer events. It is
an ordinary object: the websocket server creates one, tests create their
own with a recording transport and millisecond timer units.
"""

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .effects import (
    ActionType, Broadcast, CancelTimer, EventKind, GameEvent, StartTimer, Transition
)
from .engine import apply_event, create_room, join_room, remove_player
from .errors import ActionResult
from .models import RoomState
from .rules import RuleConfig, default_rules
from .serialization import player_list
from .validate import validate_join_request

logger = logging.getLogger(__name__)


@dataclass
class PlayerView:
    """What a connection learns about itself when it joins."""
    room_id: str
    player_id: str
    is_host: bool
    players: List[Dict[str, Any]] = field(default_factory=list)


class Transport(ABC):
    """Outbound side of the connection layer.

    Every method must return immediately; delivery happens elsewhere so a
    slow client never stalls a room.
    """

    @abstractmethod
    def attach(self, connection_id: str, room_id: str) -> None:
        pass

    @abstractmethod
    def detach(self, connection_id: str) -> None:
        pass

    @abstractmethod
    def send_joined(self, connection_id: str, view: PlayerView) -> None:
        pass

    @abstractmethod
    def send_error(self, connection_id: str, text: str) -> None:
        pass

    @abstractmethod
    def broadcast_state(self, room_id: str, snapshot: Dict[str, Any]) -> None:
        pass


class RoomRegistry:
    def __init__(
        self,
        transport: Transport,
        rules: RuleConfig = default_rules,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.transport = transport
        self.rules = rules
        self._sleep = sleep
        self._rooms: Dict[str, RoomState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self._connections: Dict[str, str] = {}  # connection id -> room id

    # ------------------------------------------------------------ queries

    def get_room(self, room_id: str) -> Optional[RoomState]:
        return self._rooms.get(room_id)

    def room_of(self, connection_id: str) -> Optional[str]:
        return self._connections.get(connection_id)

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    @property
    def rooms(self) -> List[RoomState]:
        return list(self._rooms.values())

    def has_timer(self, room_id: str) -> bool:
        task = self._timers.get(room_id)
        return task is not None and not task.done()

    def active_timer_count(self) -> int:
        return sum(1 for task in self._timers.values() if not task.done())

    # ------------------------------------------------------------ locking

    @contextlib.asynccontextmanager
    async def _room_lock(self, room_id: str):
        """
        Hold the room's lock.

        A lock dropped together with its room may still have waiters; they
        notice on wake-up and queue on the current lock instead.
        """
        while True:
            lock = self._locks.setdefault(room_id, asyncio.Lock())
            await lock.acquire()
            if self._locks.get(room_id) is lock:
                break
            lock.release()
        try:
            yield
        finally:
            if room_id not in self._rooms and self._locks.get(room_id) is lock:
                del self._locks[room_id]
            lock.release()

    # ------------------------------------------------------------ actions

    async def join(self, room_id, player_name, connection_id: str) -> ActionResult:
        """
        Join (and if needed create) a room.

        Missing room or player names are reported to the connection; a
        second join from the same connection is ignored.
        """
        validation = validate_join_request(room_id, player_name)
        if not validation.valid:
            self.transport.send_error(connection_id, validation.error_message)
            return ActionResult.error(validation.error_code, validation.error_message)

        if connection_id in self._connections:
            logger.debug(f"Duplicate join from {connection_id} ignored")
            return ActionResult.ignored()

        room_id = room_id.strip()
        async with self._room_lock(room_id):
            if connection_id in self._connections:
                return ActionResult.ignored()
            state = self._rooms.get(room_id)
            if state is None:
                state = create_room(room_id)
                logger.info(f"Room {room_id} created")

            transition = join_room(state, connection_id, player_name, self.rules)
            if not transition.accepted:
                return ActionResult.ignored()

            self._rooms[room_id] = transition.state
            self._connections[connection_id] = room_id
            player = transition.state.get_player(connection_id)
            view = PlayerView(
                room_id=room_id,
                player_id=player.id,
                is_host=player.is_host,
                players=player_list(transition.state),
            )
            self.transport.attach(connection_id, room_id)
            self.transport.send_joined(connection_id, view)
            self._commit(room_id, transition)
            return ActionResult.ok(transition.state, data=view)

    async def start(self, connection_id: str) -> ActionResult:
        return await self._submit(connection_id, GameEvent.submitted(ActionType.START, connection_id))

    async def pick_shown(self, connection_id: str, card) -> ActionResult:
        return await self._submit(
            connection_id, GameEvent.submitted(ActionType.PICK_SHOWN, connection_id, card)
        )

    async def pick_final(self, connection_id: str, card) -> ActionResult:
        return await self._submit(
            connection_id, GameEvent.submitted(ActionType.PICK_FINAL, connection_id, card)
        )

    async def leave(self, connection_id: str) -> ActionResult:
        """Remove a disconnected player; an emptied room is destroyed."""
        room_id = self._connections.pop(connection_id, None)
        self.transport.detach(connection_id)
        if room_id is None:
            return ActionResult.ignored()

        async with self._room_lock(room_id):
            state = self._rooms.get(room_id)
            if state is None:
                return ActionResult.ignored()
            return self._commit(room_id, remove_player(state, connection_id, self.rules))

    async def _submit(self, connection_id: str, event: GameEvent) -> ActionResult:
        room_id = self._connections.get(connection_id)
        if room_id is None:
            return ActionResult.ignored()

        async with self._room_lock(room_id):
            state = self._rooms.get(room_id)
            if state is None:
                return ActionResult.ignored()
            return self._commit(room_id, apply_event(state, event, self.rules))

    async def shutdown(self):
        """Cancel every pending timer."""
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------ effects

    def _commit(self, room_id: str, transition: Transition) -> ActionResult:
        """Store the new state and carry out the transition's effects.

        Must be called with the room lock held.
        """
        if not transition.accepted:
            return ActionResult.ignored()

        self._rooms[room_id] = transition.state
        for effect in transition.effects:
            if isinstance(effect, Broadcast):
                try:
                    self.transport.broadcast_state(room_id, effect.payload)
                except Exception:
                    # the room keeps running; later snapshots resync clients
                    logger.exception(f"Broadcast failed in room {room_id}")
            elif isinstance(effect, StartTimer):
                self._start_timer(room_id, effect)
            elif isinstance(effect, CancelTimer):
                self._cancel_timer(room_id)

        if transition.room_empty:
            self._destroy(room_id)
        return ActionResult.ok(transition.state, data=transition.outcome)

    def _destroy(self, room_id: str):
        self._cancel_timer(room_id)
        self._rooms.pop(room_id, None)
        logger.info(f"Room {room_id} deleted (no players remaining)")

    def _start_timer(self, room_id: str, timer: StartTimer):
        self._cancel_timer(room_id)
        if timer.is_countdown:
            coro = self._run_countdown(room_id, timer)
        else:
            coro = self._run_delayed(room_id, timer)
        self._timers[room_id] = asyncio.create_task(coro)

    def _cancel_timer(self, room_id: str):
        task = self._timers.pop(room_id, None)
        # a timer replacing itself just stops looping after its commit
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _owns_timer(self, room_id: str) -> bool:
        return self._timers.get(room_id) is asyncio.current_task()

    def _is_current(self, room_id: str, generation: int) -> bool:
        if not self._owns_timer(room_id):
            return False
        state = self._rooms.get(room_id)
        return state is not None and state.generation == generation

    async def _run_countdown(self, room_id: str, timer: StartTimer):
        try:
            while True:
                await self._sleep(self.rules.tick_seconds)
                async with self._room_lock(room_id):
                    if not self._is_current(room_id, timer.generation):
                        return
                    tick = GameEvent.timer(EventKind.TIMER_TICK, timer.generation)
                    self._commit(room_id, apply_event(self._rooms[room_id], tick, self.rules))
                    if self._rooms[room_id].timer > 0:
                        continue
                    expiry = GameEvent.timer(timer.event, timer.generation)
                    self._commit(room_id, apply_event(self._rooms[room_id], expiry, self.rules))
                    return
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Timer failure in room {room_id}")
        finally:
            if self._owns_timer(room_id):
                del self._timers[room_id]

    async def _run_delayed(self, room_id: str, timer: StartTimer):
        try:
            await self._sleep(timer.delay)
            async with self._room_lock(room_id):
                if not self._is_current(room_id, timer.generation):
                    return
                event = GameEvent.timer(timer.event, timer.generation)
                self._commit(room_id, apply_event(self._rooms[room_id], event, self.rules))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Timer failure in room {room_id}")
        finally:
            if self._owns_timer(room_id):
                del self._timers[room_id]
