"""
FastAPI WebSocket server for the lowest-unique-card game.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Set

import orjson
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from ..errors import GameError
from ..registry import PlayerView, RoomRegistry, Transport
from ..rules import rules_from_env
from ..serialization import get_public_room_info
from .events import (
    EventType, JoinEvent, PickFinalEvent, PickShownEvent, create_error_event,
    create_joined_event, create_state_update_event, dump_event, parse_inbound_event
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ConnectionManager(Transport):
    """Manages WebSocket connections and broadcasting.

    Each connection gets an outbound queue drained by its own writer task,
    so the registry can hand off events without awaiting the socket.
    """

    def __init__(self):
        self.sockets: Dict[str, WebSocket] = {}
        self.queues: Dict[str, asyncio.Queue] = {}
        self.writers: Dict[str, asyncio.Task] = {}
        self.room_connections: Dict[str, Set[str]] = defaultdict(set)
        self.connection_rooms: Dict[str, str] = {}

    @property
    def connection_count(self) -> int:
        return len(self.sockets)

    def connect(self, connection_id: str, websocket: WebSocket):
        """Register an accepted socket and start its writer."""
        queue = asyncio.Queue()
        self.sockets[connection_id] = websocket
        self.queues[connection_id] = queue
        self.writers[connection_id] = asyncio.create_task(
            self._writer(connection_id, websocket, queue)
        )
        logger.info(f"Connection {connection_id} opened")

    async def disconnect(self, connection_id: str):
        """Stop the writer of a closed socket."""
        self.sockets.pop(connection_id, None)
        self.queues.pop(connection_id, None)
        writer = self.writers.pop(connection_id, None)
        if writer is not None:
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)
        logger.info(f"Connection {connection_id} closed")

    async def _writer(self, connection_id: str, websocket: WebSocket, queue: asyncio.Queue):
        while True:
            text = await queue.get()
            try:
                await websocket.send_text(text)
            except Exception as e:
                logger.error(f"Error sending to {connection_id}: {e}")
                return

    def _send(self, connection_id: str, event_data: Dict[str, Any]):
        queue = self.queues.get(connection_id)
        if queue is None:
            return
        queue.put_nowait(orjson.dumps(event_data).decode())

    # Transport interface

    def attach(self, connection_id: str, room_id: str):
        self.room_connections[room_id].add(connection_id)
        self.connection_rooms[connection_id] = room_id

    def detach(self, connection_id: str):
        room_id = self.connection_rooms.pop(connection_id, None)
        if room_id is None:
            return
        members = self.room_connections.get(room_id)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self.room_connections[room_id]

    def send_joined(self, connection_id: str, view: PlayerView):
        self._send(connection_id, dump_event(create_joined_event(view)))

    def send_error(self, connection_id: str, text: str):
        self._send(connection_id, dump_event(create_error_event(text)))

    def broadcast_state(self, room_id: str, snapshot: Dict[str, Any]):
        """Broadcast a snapshot to all connections in a room."""
        event_data = dump_event(create_state_update_event(snapshot))
        for connection_id in list(self.room_connections.get(room_id, ())):
            self._send(connection_id, event_data)


manager = ConnectionManager()
registry = RoomRegistry(manager, rules_from_env())


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting with rules: {registry.rules.model_dump()}")
    yield
    await registry.shutdown()


# FastAPI app
app = FastAPI(title="Lowcard Game Engine", version="1.0.0", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "rooms": registry.room_count,
        "connections": manager.connection_count,
    }


@app.get("/rooms")
async def list_rooms():
    """Public listing of live rooms."""
    return {"rooms": [get_public_room_info(state) for state in registry.rooms]}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Main WebSocket endpoint."""
    connection_id = str(uuid.uuid4())

    try:
        await websocket.accept()
        manager.connect(connection_id, websocket)

        while True:
            raw_data = await websocket.receive_text()
            await handle_message(connection_id, raw_data)

    except WebSocketDisconnect:
        logger.info(f"WebSocket {connection_id} disconnected")
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        await registry.leave(connection_id)
        await manager.disconnect(connection_id)


async def handle_message(connection_id: str, raw_data: str):
    """Decode one frame and route it to the registry."""
    try:
        data = orjson.loads(raw_data)
        event = parse_inbound_event(data)
    except (ValueError, GameError) as e:
        logger.debug(f"Ignoring frame from {connection_id}: {e}")
        return

    await handle_event(connection_id, event)


async def handle_event(connection_id: str, event) -> Optional[bool]:
    """Route event to appropriate handler."""
    if isinstance(event, JoinEvent):
        result = await registry.join(event.room_id, event.player_name, connection_id)
    elif event.type == EventType.START:
        result = await registry.start(connection_id)
    elif isinstance(event, PickShownEvent):
        result = await registry.pick_shown(connection_id, event.card)
    elif isinstance(event, PickFinalEvent):
        result = await registry.pick_final(connection_id, event.card)
    else:
        return None

    if not result.success:
        logger.debug(f"{event.type.value} from {connection_id} had no effect")
    return result.success
