"""Single authoritative Connect Four game: turn order, status and outcome."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .board import (
    COLUMNS,
    Board,
    InvalidColumn,
    MoveError,
    PlayerId,
    other_player,
)

WAITING = "waiting"
PLAYING = "playing"
WON = "won"
DRAW = "draw"

STATUSES: Tuple[str, ...] = (WAITING, PLAYING, WON, DRAW)


class NotPlaying(MoveError):
    def __init__(self, status: str) -> None:
        super().__init__("Game is not in playing state")
        self.status = status


class OutOfTurn(MoveError):
    def __init__(self, player: PlayerId) -> None:
        super().__init__("Not your turn")
        self.player = player


@dataclass(frozen=True)
class Move:
    column: int
    row: int
    player: PlayerId

    def to_dict(self) -> Dict[str, object]:
        return {"column": self.column, "row": self.row, "player": self.player}


@dataclass
class Game:
    board: Board = field(default_factory=Board)
    status: str = WAITING
    next_turn: PlayerId = "P1"
    winner: Optional[PlayerId] = None
    last_move: Optional[Move] = None
    winning_cells: List[Tuple[int, int]] = field(default_factory=list)
    history: List[Move] = field(default_factory=list)
    players: Dict[PlayerId, bool] = field(
        default_factory=lambda: {"P1": False, "P2": False}
    )

    @classmethod
    def local(cls) -> "Game":
        """A game with both seats filled on one machine; starts immediately."""
        return cls(status=PLAYING, players={"P1": True, "P2": True})

    # ---- lifecycle ----

    @property
    def finished(self) -> bool:
        return self.status in (WON, DRAW)

    def start(self) -> None:
        if self.status != WAITING:
            return
        self.status = PLAYING
        self.next_turn = "P1"

    def set_presence(self, p1: bool, p2: bool) -> bool:
        """Record which seats are connected; returns True if this started play."""
        self.players = {"P1": p1, "P2": p2}
        if p1 and p2 and self.status == WAITING:
            self.start()
            return True
        return False

    def reset(self) -> None:
        self.board = Board()
        self.status = PLAYING
        self.next_turn = "P1"
        self.winner = None
        self.last_move = None
        self.winning_cells = []
        self.history = []

    # ---- moves ----

    def apply_move(self, by_player: PlayerId, column: int) -> int:
        """Drop ``by_player``'s mark in ``column`` and return the landed row."""
        if self.status != PLAYING:
            raise NotPlaying(self.status)
        if by_player != self.next_turn:
            raise OutOfTurn(by_player)
        if (
            not isinstance(column, int)
            or isinstance(column, bool)
            or not 0 <= column < COLUMNS
        ):
            raise InvalidColumn(column)

        row = self.board.place(column, by_player)
        move = Move(column=column, row=row, player=by_player)
        self.last_move = move
        self.history.append(move)

        cells = self.board.winning_cells(row, column)
        if cells:
            self.status = WON
            self.winner = by_player
            self.winning_cells = cells
        elif self.board.detect_draw():
            self.status = DRAW
        else:
            self.next_turn = other_player(by_player)
        return row

    # ---- snapshots ----

    def to_dict(self) -> Dict[str, object]:
        state: Dict[str, object] = {
            "status": self.status,
            "board": self.board.to_rows(),
            "nextTurn": self.next_turn,
            "players": {
                seat: {"connected": connected}
                for seat, connected in self.players.items()
            },
            "moveCount": self.board.move_count(),
        }
        if self.winner is not None:
            state["winner"] = self.winner
            state["winningCells"] = [list(cell) for cell in self.winning_cells]
        if self.last_move is not None:
            state["lastMove"] = self.last_move.to_dict()
        return state

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "Game":
        status = str(data.get("status", WAITING))
        if status not in STATUSES:
            raise ValueError(f"Unknown status {status!r}")
        last = data.get("lastMove")
        last_move = Move(**last) if isinstance(last, dict) else None
        players = data.get("players") or {}
        game = cls(
            board=Board.from_rows(data["board"]),  # type: ignore[arg-type]
            status=status,
            next_turn=str(data.get("nextTurn", "P1")),
            winner=data.get("winner"),  # type: ignore[arg-type]
            last_move=last_move,
            winning_cells=[
                (int(r), int(c)) for r, c in data.get("winningCells", [])  # type: ignore[union-attr]
            ],
            players={
                seat: bool(players.get(seat, {}).get("connected"))  # type: ignore[union-attr]
                for seat in ("P1", "P2")
            },
        )
        return game
