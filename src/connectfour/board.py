"""Board rules for Connect Four: gravity placement and win/draw detection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

PlayerId = str  # "P1" or "P2"

ROWS = 6
COLUMNS = 7

EMPTY = 0
MARKS = {"P1": 1, "P2": 2}

# (row delta, column delta): horizontal, vertical, both diagonals
DIRECTIONS: Tuple[Tuple[int, int], ...] = (
    (0, 1),
    (1, 0),
    (1, 1),
    (1, -1),
)


class MoveError(ValueError):
    """Base class for every rejected move."""


class InvalidColumn(MoveError):
    def __init__(self, column: int) -> None:
        super().__init__(f"Invalid column {column}")
        self.column = column


class ColumnFull(MoveError):
    def __init__(self, column: int) -> None:
        super().__init__(f"Column {column} is full")
        self.column = column


def other_player(player: PlayerId) -> PlayerId:
    return "P2" if player == "P1" else "P1"


def mark_of(player: PlayerId) -> int:
    try:
        return MARKS[player]
    except KeyError as exc:
        raise ValueError(f"Unknown player {player!r}") from exc


def _empty_cells() -> List[List[int]]:
    return [[EMPTY] * COLUMNS for _ in range(ROWS)]


@dataclass
class Board:
    # cells[row][column]; row 0 is the top
    cells: List[List[int]] = field(default_factory=_empty_cells)

    # ---- placement ----

    def check_column(self, column: int) -> None:
        if (
            not isinstance(column, int)
            or isinstance(column, bool)
            or not 0 <= column < COLUMNS
        ):
            raise InvalidColumn(column)

    def lowest_open_row(self, column: int) -> Optional[int]:
        """Row the next mark dropped in ``column`` lands on, ``None`` when full."""
        self.check_column(column)
        for row in range(ROWS - 1, -1, -1):
            if self.cells[row][column] == EMPTY:
                return row
        return None

    def place(self, column: int, player: PlayerId) -> int:
        row = self.lowest_open_row(column)
        if row is None:
            raise ColumnFull(column)
        self.cells[row][column] = mark_of(player)
        return row

    def valid_columns(self) -> List[int]:
        return [c for c in range(COLUMNS) if self.cells[0][c] == EMPTY]

    # ---- outcome ----

    def _run(self, row: int, col: int, dr: int, dc: int, mark: int) -> int:
        count = 0
        r, c = row + dr, col + dc
        while 0 <= r < ROWS and 0 <= c < COLUMNS and self.cells[r][c] == mark:
            count += 1
            r += dr
            c += dc
        return count

    def detect_win(self, row: int, col: int) -> bool:
        """True if the mark at (row, col) completes four in a row on any axis."""
        return bool(self.winning_cells(row, col))

    def winning_cells(self, row: int, col: int) -> List[Tuple[int, int]]:
        mark = self.cells[row][col]
        if mark == EMPTY:
            return []
        for dr, dc in DIRECTIONS:
            back = self._run(row, col, -dr, -dc, mark)
            forward = self._run(row, col, dr, dc, mark)
            if back + 1 + forward >= 4:
                return [
                    (row + dr * k, col + dc * k) for k in range(-back, forward + 1)
                ]
        return []

    def detect_draw(self) -> bool:
        # Top row fills last; callers check for a win first.
        return all(cell != EMPTY for cell in self.cells[0])

    # ---- helpers ----

    def move_count(self) -> int:
        return sum(1 for row in self.cells for cell in row if cell != EMPTY)

    def clone(self) -> "Board":
        return Board(cells=[row.copy() for row in self.cells])

    def to_rows(self) -> List[List[int]]:
        return [row.copy() for row in self.cells]

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[int]]) -> "Board":
        if len(rows) != ROWS or any(len(row) != COLUMNS for row in rows):
            raise ValueError(f"Board must be {ROWS}x{COLUMNS}")
        cells = [[int(v) for v in row] for row in rows]
        if any(v not in (EMPTY, 1, 2) for row in cells for v in row):
            raise ValueError("Board cells must be 0, 1 or 2")
        return cls(cells=cells)

    def render(self) -> str:
        """Plain-text grid, '.' for empty, 'X' for P1 and 'O' for P2."""
        symbols = {EMPTY: ".", 1: "X", 2: "O"}
        lines = [" ".join(symbols[v] for v in row) for row in self.cells]
        lines.append(" ".join(str(c) for c in range(COLUMNS)))
        return "\n".join(lines)
