"""
Evidence Accumulation
=====================

Per-square, per-class running scores for one tracking session.

Update rule for each frame (α = ``decay_rate``, C = ``confidence_ceiling``):

    s[c] ← (1 − α) · s[c]                 for every class on every square
    s[a] ← s[a] + α · C · confidence      for the class assigned this frame

Scores stay within [0, C]; repeated identical observations climb towards
``C · confidence``; an occupant that is no longer seen decays towards
empty.  In single-image mode the decay is skipped and the reinforcement is
the full ``C · confidence``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Tuple

from chess_tracker.config import TrackerConfig
from chess_tracker.geometry.grid_solver import Orientation
from chess_tracker.geometry.projector import relabel_square
from chess_tracker.models.classes import SQUARE_NAMES, parse_square, square_name
from chess_tracker.tracking.assignment import SquareAssignment

log = logging.getLogger(__name__)

# Scores below this are dropped from the dict
SCORE_EPSILON: float = 1e-6


@dataclass
class SquareEvidence:
    """Accumulated belief about one square's occupant."""
    scores: Dict[str, float] = field(default_factory=dict)

    def best(self) -> Tuple[Optional[str], float]:
        """Highest-scoring class (ties broken by class name) and its score."""
        if not self.scores:
            return None, 0.0
        piece = min(self.scores, key=lambda c: (-self.scores[c], c))
        return piece, self.scores[piece]

    def copy(self) -> "SquareEvidence":
        return SquareEvidence(scores=dict(self.scores))


@dataclass
class BoardState:
    """Exactly 64 ``SquareEvidence`` entries keyed ``"a1"`` … ``"h8"``."""
    squares: Dict[str, SquareEvidence] = field(
        default_factory=lambda: {sq: SquareEvidence() for sq in SQUARE_NAMES}
    )

    def __post_init__(self) -> None:
        if set(self.squares) != set(SQUARE_NAMES):
            raise ValueError("BoardState must hold exactly the 64 squares a1..h8")

    def __getitem__(self, square: str) -> SquareEvidence:
        return self.squares[square]

    def copy(self) -> "BoardState":
        return BoardState(squares={sq: ev.copy() for sq, ev in self.squares.items()})

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            sq: {c: round(s, 4) for c, s in ev.scores.items()}
            for sq, ev in self.squares.items()
            if ev.scores
        }


class EvidenceAccumulator:
    """Owns the session's ``BoardState`` and applies per-frame updates."""

    def __init__(self, config: Optional[TrackerConfig] = None) -> None:
        self.config = config or TrackerConfig()
        self._state = BoardState()
        self.frames = 0

    @property
    def state(self) -> BoardState:
        """Read-only view: callers get a copy."""
        return self._state.copy()

    def reset(self) -> None:
        self._state = BoardState()
        self.frames = 0

    def rotate_180(self) -> None:
        """Move every square's evidence to its point reflection (a1 ↔ h8)."""
        def reflect(sq: str) -> str:
            file, rank = parse_square(sq)
            return square_name(7 - file, 9 - rank)

        self._relabel(reflect)

    def reorient(self, src: Orientation, dst: Orientation) -> None:
        """Re-key evidence gathered under *src* for the *dst* orientation.

        Each square's evidence stays with its ideal cell; only the square
        id that cell carries changes.
        """
        if src is not dst:
            self._relabel(lambda sq: relabel_square(sq, src, dst))

    def _relabel(self, new_name: Callable[[str], str]) -> None:
        squares = {new_name(sq): ev.copy() for sq, ev in self._state.squares.items()}
        self._state = BoardState(squares=squares)

    def confidence(self, square: str, piece: str) -> float:
        """Score of *piece* on *square*, normalised to [0, 1]."""
        return self._state[square].scores.get(piece, 0.0) / self.config.confidence_ceiling

    def update(
        self,
        assignments: Iterable[SquareAssignment],
        decay: bool = True,
    ) -> BoardState:
        """Apply one frame of evidence and return the new state.

        The new ``BoardState`` is built aside and swapped in at the end,
        so a failure part-way leaves the previous state intact.
        """
        ceiling = self.config.confidence_ceiling
        alpha = self.config.decay_rate if decay else 1.0
        keep = 1.0 - self.config.decay_rate if decay else 1.0

        observed: Dict[str, SquareAssignment] = {}
        for a in assignments:
            if a.square in observed:
                raise ValueError(f"Square {a.square} assigned twice in one frame")
            observed[a.square] = a

        new_squares: Dict[str, SquareEvidence] = {}
        for sq, ev in self._state.squares.items():
            scores = {c: s * keep for c, s in ev.scores.items()}
            a = observed.get(sq)
            if a is not None:
                piece = a.detection.piece
                gain = alpha * ceiling * a.detection.confidence
                scores[piece] = scores.get(piece, 0.0) + gain
            new_squares[sq] = SquareEvidence(scores={
                c: min(ceiling, max(0.0, s))
                for c, s in scores.items()
                if s >= SCORE_EPSILON
            })

        self._state = BoardState(squares=new_squares)
        self.frames += 1
        log.debug("Evidence update #%d  observed=%d  decay=%s", self.frames, len(observed), decay)
        return self._state.copy()
