"""FastAPI application: local games over HTTP and online rooms over WebSocket."""

from __future__ import annotations

import asyncio
import logging
import random
import threading
import time
import uuid
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Literal, Optional

from fastapi import (
    BackgroundTasks,
    FastAPI,
    HTTPException,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from pydantic import BaseModel, ConfigDict, Field

from .ai import MEDIUM, ComputerPlayer, evaluation
from .board import MoveError, PlayerId, other_player
from .config import Settings
from .game import PLAYING, Game
from .rooms import RoomError, RoomRegistry
from .session import SessionHandler

logger = logging.getLogger(__name__)


@dataclass
class GameSession:
    """A local game, optionally against the computer."""

    game: Game
    mode: str
    computer: Optional[ComputerPlayer] = None
    ai_pending: bool = False
    # Bumped on reset so a computer move scheduled earlier is dropped.
    generation: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def computer_to_move(self) -> bool:
        return (
            self.computer is not None
            and self.game.status == PLAYING
            and self.game.next_turn == self.computer.player
        )

    def schedule_computer(self) -> Optional[int]:
        """Mark a computer move pending; returns the generation it belongs to.

        Caller holds ``lock``.
        """
        if not self.computer_to_move():
            return None
        self.ai_pending = True
        return self.generation

    def restart(self) -> None:
        # Caller holds ``lock``.
        self.game.reset()
        self.generation += 1
        self.ai_pending = False

    def run_computer_turn(self, generation: int, delay: float = 0.0) -> Optional[int]:
        """Play the computer's pending move after ``delay`` seconds.

        The move is dropped when the session was restarted since it was
        scheduled, or when the game no longer waits on the computer.
        """
        time.sleep(max(0.0, delay))

        with self.lock:
            if self.generation != generation:
                return None
            try:
                if self.computer is None or not self.computer_to_move():
                    return None
                column = self.computer.choose(self.game.board)
                if column is None:
                    return None
                self.game.apply_move(self.computer.player, column)
                return column
            finally:
                self.ai_pending = False


class NewGameRequest(BaseModel):
    """Request payload for starting a local game."""

    model_config = ConfigDict(populate_by_name=True)

    mode: Literal["local", "computer"] = "computer"
    difficulty: Literal["easy", "medium", "hard"] = MEDIUM
    human_player: Literal["P1", "P2"] = Field(default="P1", alias="humanPlayer")


class MoveRequest(BaseModel):
    """Request payload for dropping a piece in a local game."""

    column: int = Field(ge=0, le=6)


def _resolve_join_base_url(request: Request) -> str:
    """Determine the best base URL for shareable room links."""

    origin = request.headers.get("origin")
    if origin:
        return origin.rstrip("/")

    forwarded_host = request.headers.get("x-forwarded-host")
    if forwarded_host:
        scheme = request.headers.get("x-forwarded-proto") or request.url.scheme
        return f"{scheme}://{forwarded_host}".rstrip("/")

    return str(request.base_url).rstrip("/")


def run_computer_turn(
    game_id: str, session: GameSession, generation: int, delay: float
) -> None:
    column = session.run_computer_turn(generation, delay)
    if column is not None:
        logger.debug("Game %s: computer played column %d", game_id, column)


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[RoomRegistry] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    registry = registry or RoomRegistry(ttl_seconds=settings.room_ttl_seconds)
    handler = SessionHandler(registry)
    sessions: Dict[str, GameSession] = {}

    async def sweep_rooms() -> None:
        while True:
            await asyncio.sleep(settings.sweep_interval_seconds)
            registry.sweep()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        task = asyncio.create_task(sweep_rooms())
        try:
            yield
        finally:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    app = FastAPI(
        title="Connect Four",
        description="Connect Four against a friend, the computer, or online",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.sessions = sessions

    # ---- local games ----

    def get_session(game_id: str) -> GameSession:
        try:
            return sessions[game_id]
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Game not found") from exc

    def serialize(game_id: str, session: GameSession) -> Dict[str, object]:
        with session.lock:
            state = session.game.to_dict()
            state.update(
                {
                    "id": game_id,
                    "mode": session.mode,
                    "validColumns": session.game.board.valid_columns(),
                    "moveLog": [m.to_dict() for m in session.game.history],
                    "evaluation": evaluation(session.game.board),
                    "aiPending": session.ai_pending,
                }
            )
            if session.computer is not None:
                state["difficulty"] = session.computer.difficulty
                state["computerPlayer"] = session.computer.player
            return state

    def schedule_computer(
        game_id: str, session: GameSession, background_tasks: BackgroundTasks
    ) -> None:
        # Caller holds session.lock.
        generation = session.schedule_computer()
        if generation is not None:
            background_tasks.add_task(
                run_computer_turn, game_id, session, generation, settings.ai_delay_seconds
            )

    @app.get("/health")
    def health() -> Dict[str, bool]:
        return {"ok": True}

    @app.post("/api/game")
    def create_game(
        request: NewGameRequest, background_tasks: BackgroundTasks
    ) -> Dict[str, object]:
        computer: Optional[ComputerPlayer] = None
        if request.mode == "computer":
            computer = ComputerPlayer(
                player=other_player(request.human_player),
                difficulty=request.difficulty,
                rng=rng or random.Random(),
            )
        session = GameSession(game=Game.local(), mode=request.mode, computer=computer)
        game_id = uuid.uuid4().hex
        sessions[game_id] = session
        with session.lock:
            schedule_computer(game_id, session, background_tasks)
        return serialize(game_id, session)

    @app.get("/api/game/{game_id}")
    def get_game(game_id: str) -> Dict[str, object]:
        return serialize(game_id, get_session(game_id))

    @app.post("/api/game/{game_id}/move")
    def make_move(
        game_id: str, request: MoveRequest, background_tasks: BackgroundTasks
    ) -> Dict[str, object]:
        session = get_session(game_id)
        with session.lock:
            if session.ai_pending:
                raise HTTPException(
                    status_code=400, detail="Computer is completing its move"
                )
            player: PlayerId = session.game.next_turn
            if session.computer is not None and player == session.computer.player:
                raise HTTPException(status_code=400, detail="Not your turn")
            try:
                session.game.apply_move(player, request.column)
            except MoveError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            schedule_computer(game_id, session, background_tasks)
        return serialize(game_id, session)

    @app.post("/api/game/{game_id}/reset")
    def reset_game(
        game_id: str, background_tasks: BackgroundTasks
    ) -> Dict[str, object]:
        session = get_session(game_id)
        with session.lock:
            session.restart()
            schedule_computer(game_id, session, background_tasks)
        return serialize(game_id, session)

    # ---- online rooms ----

    @app.post("/api/rooms", status_code=201)
    def create_room(request: Request) -> Dict[str, str]:
        try:
            room = registry.create()
        except RoomError as exc:
            raise HTTPException(status_code=500, detail=exc.message) from exc
        base_url = _resolve_join_base_url(request)
        return {"roomCode": room.code, "joinUrl": f"{base_url}/?room={room.code}"}

    @app.get("/api/rooms/{room_code}")
    def inspect_room(room_code: str) -> Dict[str, object]:
        try:
            room = registry.get(room_code)
        except RoomError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        available_slots = [s for s in ("P1", "P2") if s not in room.taken_seats()]
        return {
            "roomCode": room.code,
            "status": room.game.status,
            "available": bool(available_slots),
            "availableSlots": available_slots,
        }

    @app.websocket("/ws")
    async def room_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        client = handler.connect(websocket)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text") or message.get("bytes") or ""
                await handler.handle(client, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await handler.disconnect(client)

    return app


app = create_app()
