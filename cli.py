"""Terminal Tic-Tac-Toe."""

from __future__ import annotations

import argparse
import logging
import os
import random
import sys
from enum import Enum
from typing import Callable, Optional

from dotenv import load_dotenv

from game import (
    ComputerOpponent,
    Configuration,
    Coord,
    Difficulty,
    HumanMove,
    HumanOpponent,
    InputExhaustedError,
    InvalidInputError,
    Keymap,
    Mark,
    MoveResult,
    Round,
    RoundState,
    Score,
    Status,
    map_digit,
)

load_dotenv()

logger = logging.getLogger(__name__)

Output = Callable[[str], None]


# ─── Configuration ──────────────────────────────────────────


def _mark(value: str) -> Mark:
    try:
        return Mark[value.strip().upper()]
    except KeyError:
        raise argparse.ArgumentTypeError(f"invalid mark {value!r} (choose X or O)") from None


def _enum_type(enum_cls: type[Enum]) -> Callable[[str], Enum]:
    def convert(value: str) -> Enum:
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(member.value for member in enum_cls)
            raise argparse.ArgumentTypeError(f"invalid choice {value!r} (choose from {choices})") from None

    convert.__name__ = enum_cls.__name__.lower()
    return convert


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _log_level(value: str) -> str:
    level = value.strip().upper()
    if level not in LOG_LEVELS:
        raise argparse.ArgumentTypeError(f"invalid log level {value!r} (choose from {', '.join(LOG_LEVELS)})")
    return level


def _opponent_kind(value: str) -> str:
    kind = value.strip().lower()
    if kind not in ("computer", "human"):
        raise argparse.ArgumentTypeError(f"invalid opponent {value!r} (choose computer or human)")
    return kind


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a number >= 1, got {value}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected a number >= 0, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Flags default to TTT_* environment variables (a .env file is honoured)."""
    parser = argparse.ArgumentParser(description="Tic-Tac-Toe in the terminal")
    parser.add_argument("--opponent", type=_opponent_kind,
                        default=os.getenv("TTT_OPPONENT", "computer"),
                        help="play against the computer or another human (default: computer)")
    parser.add_argument("--difficulty", type=_enum_type(Difficulty),
                        default=os.getenv("TTT_DIFFICULTY", "easy"),
                        help="computer skill: easy or hard (default: easy)")
    parser.add_argument("--mark", type=_mark, default=os.getenv("TTT_MARK", "X"),
                        help="mark played by the human, X moves first (default: X)")
    parser.add_argument("--keymap", type=_enum_type(Keymap),
                        default=os.getenv("TTT_KEYMAP", "standard"),
                        help="standard: 1 is top-left; numpad: 1 is bottom-left (default: standard)")
    parser.add_argument("--rounds", type=_non_negative_int, default=os.getenv("TTT_ROUNDS", "0"),
                        help="rounds to play, 0 keeps going until input ends (default: 0)")
    parser.add_argument("--max-attempts", type=_positive_int,
                        default=os.getenv("TTT_MAX_ATTEMPTS", "3"),
                        help="invalid inputs tolerated per move (default: 3)")
    parser.add_argument("--seed", type=int, default=os.getenv("TTT_SEED"),
                        help="seed for the easy computer player")
    parser.add_argument("--log-level", type=_log_level,
                        default=os.getenv("TTT_LOG_LEVEL", "WARNING"),
                        help="logging threshold: debug, info, warning or error (default: warning)")
    return parser


def config_from_args(args: argparse.Namespace) -> Configuration:
    if args.opponent == "human":
        opponent = HumanOpponent()
    else:
        opponent = ComputerOpponent(args.difficulty)
    return Configuration(human_mark=args.mark, opponent=opponent, keymap=args.keymap)


# ─── Rendering ──────────────────────────────────────────────


def digit_for(coord: Coord, keymap: Keymap) -> int:
    """The digit a human would type for this cell."""
    for digit in range(1, 10):
        if map_digit(digit, keymap) == coord:
            return digit
    raise ValueError(f"{coord} is not a board cell")


def announce(state: RoundState) -> str:
    if state.status is Status.WON:
        return f"{state.winner} won this round!"
    if state.status is Status.TIE:
        return "It's a tie!"
    return "Round in progress"


def score_line(score: Score) -> str:
    return f"Score  X: {score.wins[Mark.X]}  O: {score.wins[Mark.O]}  ties: {score.ties}"


# ─── Human input ────────────────────────────────────────────


def make_human_move(
    keymap: Keymap,
    max_attempts: int = 3,
    read: Optional[Callable[[str], str]] = None,
    out: Output = print,
) -> HumanMove:
    """Build a move source that reads digits and retries a bounded number of times.

    EOFError from `read` propagates so the caller can treat it as a quit.
    """
    read = read or input

    def read_move(mark: Mark, board) -> Coord:
        for attempt in range(1, max_attempts + 1):
            raw = read(f"{mark} - select a cell from 1 to 9: ")
            try:
                return map_digit(raw, keymap)
            except InvalidInputError as e:
                logger.debug("Rejected input %r (attempt %d/%d)", raw, attempt, max_attempts)
                out(f"!! {e}")
        raise InputExhaustedError(f"no valid cell after {max_attempts} attempts")

    return read_move


# ─── Session ────────────────────────────────────────────────


class Session:
    """Plays rounds with one configuration and keeps the running score."""

    def __init__(
        self,
        config: Configuration,
        human_move: HumanMove,
        rng: Optional[random.Random] = None,
        out: Output = print,
    ):
        self.config = config
        self.human_move = human_move
        self.rng = rng
        self.out = out
        self.score = Score()

    def _on_move(self, round_: Round) -> Callable[[MoveResult], None]:
        def report(result: MoveResult) -> None:
            if not result.accepted:
                self.out("!! That cell is taken, choose again.")
                return
            if round_.config.vs_computer and result.mark is not self.config.human_mark:
                digit = digit_for((result.row, result.col), self.config.keymap)
                self.out(f"Computer ({result.mark}) plays {digit}")
            self.out(str(round_.board))
            self.out("")

        return report

    def play_round(self) -> RoundState:
        round_ = Round(self.config, self.human_move, rng=self.rng)
        self.out(str(round_.board))
        self.out("")
        state = round_.play(self._on_move(round_))
        self.score.record(state)
        self.out(announce(state))
        self.out(score_line(self.score))
        return state

    def run(self, rounds: int = 0) -> Score:
        """Play `rounds` rounds, or keep going when rounds is 0."""
        played = 0
        while rounds == 0 or played < rounds:
            if played:
                self.out("\nStarting new game...")
            self.play_round()
            played += 1
        return self.score


# ─── Main ───────────────────────────────────────────────────


def main(argv: Optional[list[str]] = None) -> int:
    """Start a terminal session."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=args.log_level,
    )

    config = config_from_args(args)
    rng = random.Random(args.seed) if args.seed is not None else None
    logger.info("Starting session: %s", config)

    print("Welcome to tic-tac-toe")
    session = Session(config, make_human_move(config.keymap, args.max_attempts), rng=rng)
    try:
        session.run(args.rounds)
    except (EOFError, KeyboardInterrupt):
        print("\nGoodbye!")
    except InputExhaustedError as e:
        logger.error("Giving up on input: %s", e)
        print(f"!! {e}")
        print(score_line(session.score))
        return 1

    print(score_line(session.score))
    return 0


if __name__ == "__main__":
    sys.exit(main())
