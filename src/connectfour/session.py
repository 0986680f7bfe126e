"""Per-connection dispatcher for the room protocol.

Each inbound frame is validated, applied to the registry without yielding to
the event loop, and only then are replies and broadcasts sent. That keeps every
room mutation atomic with respect to other connections on the same loop.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Protocol

from pydantic import ValidationError

from .board import MoveError
from .protocol import (
    ALREADY_IN_ROOM,
    INVALID_MESSAGE,
    INVALID_MOVE,
    NOT_IN_ROOM,
    CreateRoom,
    ErrorMessage,
    JoinRoom,
    Leave,
    MakeMove,
    RoomCreated,
    RoomJoined,
    StateMessage,
    You,
    parse_client_message,
)
from .rooms import ClientHandle, Room, RoomError, RoomRegistry

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send_text(self, data: str) -> None: ...


class SessionHandler:
    """Translates protocol messages into registry operations."""

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry

    def connect(self, connection: Connection) -> ClientHandle:
        client = ClientHandle(connection=connection)
        logger.debug("Client %s connected", client.id)
        return client

    # ---- delivery ----

    async def _send(self, client: ClientHandle, payload: str) -> bool:
        try:
            await client.connection.send_text(payload)
        except Exception as exc:  # best effort per recipient
            logger.warning("Failed to deliver to client %s: %s", client.id, exc)
            return False
        return True

    async def send_error(
        self,
        client: ClientHandle,
        code: str,
        message: str,
        room_code: Optional[str] = None,
    ) -> None:
        error = ErrorMessage(room_code=room_code, code=code, message=message)
        await self._send(client, error.to_json())

    async def _deliver(self, recipients: Iterable[ClientHandle], payload: str) -> None:
        for recipient in recipients:
            await self._send(recipient, payload)

    def _state_payload(self, room: Room) -> str:
        return StateMessage(room_code=room.code, state=room.snapshot()).to_json()

    async def broadcast(self, room: Room) -> None:
        # Snapshot and recipient list are fixed before the first await.
        await self._deliver(list(room.clients), self._state_payload(room))

    # ---- dispatch ----

    async def handle(self, client: ClientHandle, raw: Any) -> None:
        try:
            message = parse_client_message(raw)
        except ValidationError as exc:
            logger.debug("Invalid message from %s: %s", client.id, exc)
            await self.send_error(client, INVALID_MESSAGE, "Invalid message")
            return

        if isinstance(message, CreateRoom):
            await self._create_room(client)
        elif isinstance(message, JoinRoom):
            await self._join_room(client, message.room_code)
        elif isinstance(message, MakeMove):
            await self._make_move(client, message.room_code, message.column)
        elif isinstance(message, Leave):
            await self._leave(client, message.room_code)

    async def _create_room(self, client: ClientHandle) -> None:
        if client.room_code is not None:
            await self.send_error(
                client, ALREADY_IN_ROOM, "Already in a room", client.room_code
            )
            return
        try:
            room = self.registry.create()
        except RoomError as exc:
            logger.error("Room allocation failed: %s", exc.message)
            await self.send_error(client, exc.code, exc.message)
            return
        seat = self.registry.join(room, client)
        reply = RoomCreated(room_code=room.code, you=You(player_id=seat)).to_json()
        state = self._state_payload(room)
        recipients = list(room.clients)

        await self._send(client, reply)
        await self._deliver(recipients, state)

    async def _join_room(self, client: ClientHandle, room_code: str) -> None:
        if client.room_code is not None:
            await self.send_error(
                client, ALREADY_IN_ROOM, "Already in a room", room_code
            )
            return
        try:
            room = self.registry.get(room_code)
            seat = self.registry.join(room, client)
        except RoomError as exc:
            await self.send_error(client, exc.code, exc.message, room_code)
            return

        snapshot = room.snapshot()
        reply = RoomJoined(
            room_code=room.code, you=You(player_id=seat), state=snapshot
        ).to_json()
        state = StateMessage(room_code=room.code, state=snapshot).to_json()
        recipients = list(room.clients)

        await self._send(client, reply)
        await self._deliver(recipients, state)

    async def _make_move(self, client: ClientHandle, room_code: str, column: int) -> None:
        try:
            room = self.registry.get(room_code)
        except RoomError as exc:
            await self.send_error(client, exc.code, exc.message, room_code)
            return
        if not room.has_member(client) or client.player_id is None:
            await self.send_error(client, NOT_IN_ROOM, "Not in this room", room_code)
            return

        self.registry.touch(room)
        try:
            row = room.game.apply_move(client.player_id, column)
        except MoveError as exc:
            await self.send_error(client, INVALID_MOVE, str(exc), room.code)
            return

        logger.debug(
            "Room %s: %s dropped in column %d (row %d)",
            room.code,
            client.player_id,
            column,
            row,
        )
        await self.broadcast(room)

    async def _leave(self, client: ClientHandle, room_code: str) -> None:
        room = self.registry.rooms.get(room_code)
        if room is None or not self.registry.leave(room, client):
            return
        await self.broadcast(room)

    async def disconnect(self, client: ClientHandle) -> None:
        """Release whatever seat ``client`` held; safe to call more than once."""
        if client.room_code is None:
            return
        room = self.registry.rooms.get(client.room_code)
        if room is None:
            client.clear()
            return
        self.registry.leave(room, client)
        logger.info("Client %s disconnected", client.id)
        await self.broadcast(room)
