"""In-memory registry of multiplayer rooms keyed by a short shareable code."""

from __future__ import annotations

import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .board import PlayerId
from .game import Game
from .protocol import (
    ALREADY_IN_ROOM,
    ROOM_CODE_ALPHABET,
    ROOM_CODE_LENGTH,
    ROOM_FULL,
    ROOM_NOT_FOUND,
    normalize_room_code,
)

logger = logging.getLogger(__name__)

SEATS = ("P1", "P2")
ROOM_TTL_SECONDS = 10 * 60
CODE_ATTEMPTS = 10


class RoomError(Exception):
    """A room operation was refused; ``code`` is the protocol error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(eq=False)
class ClientHandle:
    """One live connection and the seat it holds, if any."""

    connection: Any = field(repr=False)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    room_code: Optional[str] = None
    player_id: Optional[PlayerId] = None

    def clear(self) -> None:
        self.room_code = None
        self.player_id = None


@dataclass
class Room:
    code: str
    game: Game = field(default_factory=Game)
    clients: List[ClientHandle] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    last_active_at: float = field(default_factory=time.time)

    def taken_seats(self) -> List[PlayerId]:
        return [c.player_id for c in self.clients if c.player_id is not None]

    def free_seat(self) -> Optional[PlayerId]:
        taken = self.taken_seats()
        for seat in SEATS:
            if seat not in taken:
                return seat
        return None

    def has_member(self, client: ClientHandle) -> bool:
        return client in self.clients and client.room_code == self.code

    def update_presence(self) -> None:
        taken = self.taken_seats()
        if self.game.set_presence("P1" in taken, "P2" in taken):
            logger.info("Room %s: both players connected, game started", self.code)

    def snapshot(self) -> Dict[str, Any]:
        state = self.game.to_dict()
        state["roomCode"] = self.code
        return state


class RoomRegistry:
    """Owns every room; all mutation goes through these methods."""

    def __init__(
        self,
        ttl_seconds: float = ROOM_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.rng = rng or random.SystemRandom()
        self.rooms: Dict[str, Room] = {}

    def __contains__(self, code: object) -> bool:
        return normalize_room_code(code) in self.rooms

    def _generate_code(self) -> str:
        return "".join(
            self.rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH)
        )

    # ---- rooms ----

    def create(self) -> Room:
        for _ in range(CODE_ATTEMPTS):
            code = self._generate_code()
            if code not in self.rooms:
                break
        else:
            raise RoomError(ROOM_FULL, "Unable to allocate room")

        now = self.clock()
        room = Room(code=code, created_at=now, last_active_at=now)
        self.rooms[code] = room
        logger.info("Room %s created", code)
        return room

    def get(self, code: str) -> Room:
        room = self.rooms.get(normalize_room_code(code))
        if room is None:
            raise RoomError(ROOM_NOT_FOUND, "Room not found")
        return room

    # ---- membership ----

    def join(self, room: Room, client: ClientHandle) -> PlayerId:
        """Seat ``client`` in the first free slot of ``room``."""
        if client.room_code is not None:
            raise RoomError(ALREADY_IN_ROOM, "Already in a room")
        seat = room.free_seat()
        if seat is None:
            raise RoomError(ROOM_FULL, "Room is full")

        client.room_code = room.code
        client.player_id = seat
        room.clients.append(client)
        room.last_active_at = self.clock()
        room.update_presence()
        logger.info("Client %s joined room %s as %s", client.id, room.code, seat)
        return seat

    def leave(self, room: Room, client: ClientHandle) -> bool:
        """Detach ``client``; returns False when it was not a member."""
        if not room.has_member(client):
            return False
        room.clients.remove(client)
        client.clear()
        room.last_active_at = self.clock()
        room.update_presence()
        logger.info("Client %s left room %s", client.id, room.code)
        return True

    def touch(self, room: Room) -> None:
        room.last_active_at = self.clock()

    # ---- expiry ----

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """Remove empty rooms idle for longer than the TTL."""
        now = self.clock() if now is None else now
        expired = [
            code
            for code, room in list(self.rooms.items())
            if not room.clients and now - room.last_active_at > self.ttl_seconds
        ]
        for code in expired:
            self.rooms.pop(code, None)
        if expired:
            logger.info("Swept %d idle room(s): %s", len(expired), ", ".join(expired))
        return expired
