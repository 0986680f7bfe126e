"""Computer opponent: window heuristic plus depth-limited alpha-beta minimax."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import math
import random

from .board import COLUMNS, EMPTY, ROWS, Board, PlayerId, mark_of, other_player

EASY = "easy"
MEDIUM = "medium"
HARD = "hard"
DIFFICULTIES: Tuple[str, ...] = (EASY, MEDIUM, HARD)

SEARCH_DEPTH = 4
WIN_SCORE = 100_000
CENTER_COLUMN = COLUMNS // 2
EVALUATION_SCALE = 50.0


# ---------- Heuristic ----------


def _windows(cells: Sequence[Sequence[int]]) -> List[Tuple[int, ...]]:
    windows: List[Tuple[int, ...]] = []
    for row in range(ROWS):
        for col in range(COLUMNS - 3):
            windows.append(tuple(cells[row][col + k] for k in range(4)))
    for col in range(COLUMNS):
        for row in range(ROWS - 3):
            windows.append(tuple(cells[row + k][col] for k in range(4)))
    for row in range(ROWS - 3):
        for col in range(COLUMNS - 3):
            windows.append(tuple(cells[row + k][col + k] for k in range(4)))
    for row in range(3, ROWS):
        for col in range(COLUMNS - 3):
            windows.append(tuple(cells[row - k][col + k] for k in range(4)))
    return windows


def score_position(board: Board, player: PlayerId) -> int:
    """Static score of ``board`` from ``player``'s point of view.

    Only the opponent's open threes are penalised and only the player's
    center marks earn a bonus.
    """
    me = mark_of(player)
    opp = mark_of(other_player(player))

    score = 3 * sum(1 for row in range(ROWS) if board.cells[row][CENTER_COLUMN] == me)

    for window in _windows(board.cells):
        mine = window.count(me)
        theirs = window.count(opp)
        empty = window.count(EMPTY)
        if mine == 4:
            score += 100
        elif mine == 3 and empty == 1:
            score += 5
        elif mine == 2 and empty == 2:
            score += 2
        if theirs == 3 and empty == 1:
            score -= 4
    return score


def evaluation(board: Board) -> float:
    """P1-positive advantage in [-1, 1], suitable for an evaluation bar."""
    raw = score_position(board, "P1") - score_position(board, "P2")
    return max(-1.0, min(1.0, raw / EVALUATION_SCALE))


def find_winning_move(board: Board, player: PlayerId) -> Optional[int]:
    """First column (scanning left to right) that wins on the spot for ``player``."""
    for column in board.valid_columns():
        child = board.clone()
        row = child.place(column, player)
        if child.detect_win(row, column):
            return column
    return None


# ---------- Agent ----------


@dataclass
class ComputerPlayer:
    """Chooses columns for ``player`` at the given difficulty.

    Usage:
      - ComputerPlayer(player="P2", difficulty="hard")
      - choose(board) -> column or None when the board is full
    """

    player: PlayerId
    difficulty: str = MEDIUM
    depth: int = SEARCH_DEPTH
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self) -> None:
        if self.difficulty not in DIFFICULTIES:
            raise ValueError(
                f"Unsupported difficulty {self.difficulty!r}. "
                f"Choose one of {', '.join(DIFFICULTIES)}."
            )

    @property
    def opponent(self) -> PlayerId:
        return other_player(self.player)

    # ---- public API ----

    def choose(self, board: Board) -> Optional[int]:
        valid = board.valid_columns()
        if not valid:
            return None

        if self.difficulty == EASY:
            return self.rng.choice(valid)

        winning = find_winning_move(board, self.player)
        if winning is not None:
            return winning

        block = find_winning_move(board, self.opponent)
        if block is not None:
            return block

        if self.difficulty == MEDIUM:
            return self.rng.choice(valid)

        _, column = self.minimax(board, self.depth, -math.inf, math.inf, True)
        if column is None:
            return self.rng.choice(valid)
        return column

    # ---- core search ----

    def minimax(
        self,
        board: Board,
        depth: int,
        alpha: float,
        beta: float,
        maximizing: bool,
        last: Optional[Tuple[int, int]] = None,
    ) -> Tuple[float, Optional[int]]:
        # A win can only come from the mark just dropped at ``last``.
        if last is not None and board.detect_win(*last):
            if board.cells[last[0]][last[1]] == mark_of(self.player):
                return WIN_SCORE + depth, None
            return -WIN_SCORE - depth, None

        valid = board.valid_columns()
        if depth == 0 or not valid:
            return score_position(board, self.player), None

        mover = self.player if maximizing else self.opponent
        best_column: Optional[int] = None

        if maximizing:
            value = -math.inf
            for column in valid:
                child = board.clone()
                row = child.place(column, mover)
                score, _ = self.minimax(
                    child, depth - 1, alpha, beta, False, (row, column)
                )
                if score > value:
                    value, best_column = score, column
                alpha = max(alpha, value)
                if alpha >= beta:
                    break
        else:
            value = math.inf
            for column in valid:
                child = board.clone()
                row = child.place(column, mover)
                score, _ = self.minimax(
                    child, depth - 1, alpha, beta, True, (row, column)
                )
                if score < value:
                    value, best_column = score, column
                beta = min(beta, value)
                if alpha >= beta:
                    break

        return value, best_column
