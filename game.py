"""Tic-Tac-Toe game engine: board, win detection, keymaps, strategies and rounds."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Callable, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Coord = Tuple[int, int]


# ─── Errors ─────────────────────────────────────────────────


class GameError(Exception):
    """Base class for everything the engine raises on purpose."""


class InvalidInputError(GameError, ValueError):
    """Raw input is not a decimal digit in 1..9."""


class CellOccupiedError(GameError):
    """A move targeted a cell that already holds a mark."""


class BoardFullError(GameError):
    """A strategy was asked for a move on a board with no empty cells."""


class RoundOverError(GameError):
    """A finished round was asked to play another move."""


class InputExhaustedError(GameError):
    """The human input source gave up (retry budget spent or input closed)."""


# ─── Marks and cells ────────────────────────────────────────


class Mark(Enum):
    X = 1
    O = 2

    @property
    def other(self) -> Mark:
        return Mark.O if self is Mark.X else Mark.X

    def __str__(self) -> str:
        return self.name


class Cell(Enum):
    EMPTY = 0
    X = 1
    O = 2

    @classmethod
    def of(cls, mark: Mark) -> Cell:
        return cls(mark.value)

    @property
    def mark(self) -> Optional[Mark]:
        """The mark occupying this cell, or None when empty."""
        if self is Cell.EMPTY:
            return None
        return Mark(self.value)


# Display symbols
SYMBOLS = {
    Cell.EMPTY: "·",
    Cell.X: "X",
    Cell.O: "O",
}

_PARSE = {
    "X": Cell.X,
    "O": Cell.O,
    ".": Cell.EMPTY,
    "_": Cell.EMPTY,
    "-": Cell.EMPTY,
}

# All winning lines: rows, columns, diagonals (indices into the 3x3 board)
WIN_LINES = [
    # Rows
    [(0, 0), (0, 1), (0, 2)],
    [(1, 0), (1, 1), (1, 2)],
    [(2, 0), (2, 1), (2, 2)],
    # Columns
    [(0, 0), (1, 0), (2, 0)],
    [(0, 1), (1, 1), (2, 1)],
    [(0, 2), (1, 2), (2, 2)],
    # Diagonals
    [(0, 0), (1, 1), (2, 2)],
    [(0, 2), (1, 1), (2, 0)],
]


# ─── Board ──────────────────────────────────────────────────


@dataclass
class Board:
    """A 3x3 grid stored row-major; index = row * 3 + col."""

    cells: list[Cell] = field(default_factory=lambda: [Cell.EMPTY] * 9)

    def __post_init__(self) -> None:
        if len(self.cells) != 9:
            raise ValueError(f"a board has 9 cells, got {len(self.cells)}")

    @classmethod
    def from_string(cls, text: str) -> Board:
        """Build a board from 'X', 'O' and '.', '_' or '-' for empty cells.

        Whitespace and '|' separators are ignored, so "XXX|OO.|..." and a
        three-line layout both work.
        """
        cells = []
        for char in text.upper():
            if char.isspace() or char == "|":
                continue
            if char not in _PARSE:
                raise ValueError(f"unexpected board character {char!r}")
            cells.append(_PARSE[char])
        return cls(cells)

    @staticmethod
    def _index(key: Union[int, Coord]) -> int:
        if isinstance(key, tuple):
            row, col = key
            if not (0 <= row < 3 and 0 <= col < 3):
                raise IndexError(f"cell ({row}, {col}) is off the board")
            return row * 3 + col
        if not 0 <= key < 9:
            raise IndexError(f"cell index {key} is off the board")
        return key

    def __getitem__(self, key: Union[int, Coord]) -> Cell:
        return self.cells[self._index(key)]

    def is_empty(self, row: int, col: int) -> bool:
        return self[row, col] is Cell.EMPTY

    def empty_cells(self) -> list[Coord]:
        """Coordinates of every empty cell, row-major."""
        return [divmod(i, 3) for i, cell in enumerate(self.cells) if cell is Cell.EMPTY]

    def is_full(self) -> bool:
        return Cell.EMPTY not in self.cells

    def place(self, row: int, col: int, mark: Mark) -> None:
        """Occupy an empty cell. Occupied cells never change."""
        index = self._index((row, col))
        if self.cells[index] is not Cell.EMPTY:
            raise CellOccupiedError(f"cell ({row}, {col}) is already taken by {self.cells[index].mark}")
        self.cells[index] = Cell.of(mark)

    def rows(self) -> list[list[Cell]]:
        return [self.cells[r * 3:r * 3 + 3] for r in range(3)]

    def copy(self) -> Board:
        return Board(list(self.cells))

    def key(self) -> tuple[Cell, ...]:
        """Hashable snapshot of the cells."""
        return tuple(self.cells)

    def __str__(self) -> str:
        return "\n".join(" ".join(SYMBOLS[cell] for cell in row) for row in self.rows())


# ─── Win detection ──────────────────────────────────────────


class Status(Enum):
    ONGOING = "ongoing"
    WON = "won"
    TIE = "tie"


@dataclass(frozen=True)
class RoundState:
    status: Status
    winner: Optional[Mark] = None

    @classmethod
    def ongoing(cls) -> RoundState:
        return cls(Status.ONGOING)

    @classmethod
    def won(cls, mark: Mark) -> RoundState:
        return cls(Status.WON, mark)

    @classmethod
    def tie(cls) -> RoundState:
        return cls(Status.TIE)

    @property
    def is_terminal(self) -> bool:
        return self.status is not Status.ONGOING


def detect_winner(board: Board) -> Optional[Mark]:
    """Return the mark holding a full line, or None."""
    for line in WIN_LINES:
        first = board[line[0]]
        if first is not Cell.EMPTY and all(board[coord] is first for coord in line[1:]):
            return first.mark
    return None


def evaluate(board: Board) -> RoundState:
    """Derive the round state from the board alone."""
    winner = detect_winner(board)
    if winner is not None:
        return RoundState.won(winner)
    if board.is_full():
        return RoundState.tie()
    return RoundState.ongoing()


# ─── Keymaps ────────────────────────────────────────────────


class Keymap(Enum):
    STANDARD = "standard"  # 1 = top-left, 9 = bottom-right
    NUMPAD = "numpad"  # 1 = bottom-left, 9 = top-right, like a keypad


def map_digit(raw: Union[str, int], keymap: Keymap) -> Coord:
    """Translate a human-entered digit 1..9 into (row, col)."""
    if isinstance(raw, str):
        text = raw.strip()
        if len(text) != 1 or text not in "0123456789":
            raise InvalidInputError(f"expected a digit from 1 to 9, got {raw!r}")
        digit = int(text)
    elif isinstance(raw, int) and not isinstance(raw, bool):
        digit = raw
    else:
        raise InvalidInputError(f"expected a digit from 1 to 9, got {raw!r}")

    if not 1 <= digit <= 9:
        raise InvalidInputError(f"cell {digit} is out of range, pick 1 to 9")

    col = (digit - 1) % 3
    if keymap is Keymap.NUMPAD:
        row = (9 - digit) // 3
    else:
        row = (digit - 1) // 3
    return row, col


# ─── Strategies ─────────────────────────────────────────────


class RandomStrategy:
    """Easy: a uniformly random empty cell."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def choose(self, board: Board, mark: Optional[Mark] = None) -> Coord:
        empty = board.empty_cells()
        if not empty:
            raise BoardFullError("no empty cell to choose from")
        return empty[self.rng.randrange(len(empty))]


@lru_cache(maxsize=None)
def _minimax(cells: tuple[Cell, ...], to_move: Mark, acting: Mark) -> int:
    """
    Exhaustive minimax with memoization.
    Returns +1 if `acting` wins, -1 if it loses, 0 for a tie, under optimal play.
    """
    board = Board(list(cells))
    state = evaluate(board)
    if state.status is Status.WON:
        return 1 if state.winner is acting else -1
    if state.status is Status.TIE:
        return 0

    scores = []
    for row, col in board.empty_cells():
        child = board.copy()
        child.place(row, col, to_move)
        scores.append(_minimax(child.key(), to_move.other, acting))

    return max(scores) if to_move is acting else min(scores)


class MinimaxStrategy:
    """Hard: full-depth game-tree search.

    Among moves with the best guaranteed score the first in row-major order
    is returned, so the choice is deterministic.
    """

    def choose(self, board: Board, mark: Mark) -> Coord:
        empty = board.empty_cells()
        if not empty:
            raise BoardFullError("no empty cell to choose from")

        best_move, best_score = empty[0], -2
        for row, col in empty:
            child = board.copy()
            child.place(row, col, mark)
            score = _minimax(child.key(), mark.other, mark)
            if score > best_score:
                best_move, best_score = (row, col), score

        logger.debug("Minimax picks %s for %s (score %d)", best_move, mark, best_score)
        return best_move


Strategy = Union[RandomStrategy, MinimaxStrategy]


# ─── Configuration and score ────────────────────────────────


class Difficulty(Enum):
    EASY = "easy"  # random choice
    HARD = "hard"  # minimax


@dataclass(frozen=True)
class HumanOpponent:
    pass


@dataclass(frozen=True)
class ComputerOpponent:
    difficulty: Difficulty = Difficulty.EASY

    def strategy(self, rng: Optional[random.Random] = None) -> Strategy:
        if self.difficulty is Difficulty.HARD:
            return MinimaxStrategy()
        return RandomStrategy(rng)


Opponent = Union[HumanOpponent, ComputerOpponent]


@dataclass(frozen=True)
class Configuration:
    human_mark: Mark = Mark.X
    opponent: Opponent = field(default_factory=ComputerOpponent)
    keymap: Keymap = Keymap.STANDARD

    @property
    def vs_computer(self) -> bool:
        return isinstance(self.opponent, ComputerOpponent)


@dataclass
class Score:
    wins: dict[Mark, int] = field(default_factory=lambda: {Mark.X: 0, Mark.O: 0})
    ties: int = 0

    def record(self, state: RoundState) -> None:
        """Count a finished round."""
        if state.status is Status.WON:
            self.wins[state.winner] += 1
        elif state.status is Status.TIE:
            self.ties += 1
        else:
            raise ValueError("cannot score a round that is still ongoing")


# ─── Round ──────────────────────────────────────────────────


class Mover(Enum):
    HUMAN = "human"
    COMPUTER = "computer"


@dataclass(frozen=True)
class MoveResult:
    mark: Mark
    row: int
    col: int
    accepted: bool  # False when the target cell was already taken
    state: RoundState


HumanMove = Callable[[Mark, Board], Coord]


class Round:
    """One playthrough from an empty board to a win or a tie."""

    def __init__(
        self,
        config: Configuration,
        human_move: HumanMove,
        rng: Optional[random.Random] = None,
        first_mover: Mark = Mark.X,
    ):
        self.config = config
        self.board = Board()
        self.turn = first_mover
        self._human_move = human_move
        self._strategy: Optional[Strategy] = None
        if isinstance(config.opponent, ComputerOpponent):
            self._strategy = config.opponent.strategy(rng)

    @property
    def state(self) -> RoundState:
        return evaluate(self.board)

    def mover(self) -> Mover:
        """Who picks the next move."""
        if self._strategy is None or self.turn is self.config.human_mark:
            return Mover.HUMAN
        return Mover.COMPUTER

    def step(self) -> MoveResult:
        """Ask the current mover for a cell and apply it if the cell is empty.

        A move onto an occupied cell is discarded and the same mark moves
        again on the next step.
        """
        state = self.state
        if state.is_terminal:
            raise RoundOverError(f"round is already over ({state.status.value})")

        mark = self.turn
        if self.mover() is Mover.COMPUTER:
            row, col = self._strategy.choose(self.board, mark)
        else:
            row, col = self._human_move(mark, self.board)

        try:
            self.board.place(row, col, mark)
        except CellOccupiedError:
            logger.debug("%s chose occupied cell (%d, %d), asking again", mark, row, col)
            return MoveResult(mark, row, col, False, state)

        self.turn = mark.other
        state = self.state
        logger.debug("%s plays (%d, %d) -> %s", mark, row, col, state.status.value)
        return MoveResult(mark, row, col, True, state)

    def play(self, on_move: Optional[Callable[[MoveResult], None]] = None) -> RoundState:
        """Step until the round ends and return the final state."""
        state = self.state
        while not state.is_terminal:
            result = self.step()
            if on_move:
                on_move(result)
            state = result.state

        if state.status is Status.WON:
            logger.info("Round won by %s", state.winner)
        else:
            logger.info("Round tied")
        return state
