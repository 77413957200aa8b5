"""
FEN Utilities – Synthesis & Sanity Checks
=========================================

Responsibilities:
  1. Collapse accumulated square evidence into one occupant per square.
  2. Build the FEN string (placement + the five trailing fields).
  3. Run structural sanity checks and report them as warnings.
  4. Decode a placement field back into 64 occupants.

Sanity checks implemented:
  • Exactly 1 white king and 1 black king.
  • No pawns on rank 1 or rank 8.
  • At most 16 pieces and 8 pawns per side.
  • Pieces above the starting complement must be covered by missing
    pawns (promotions).
  • More than 1 queen / 2 rooks / 2 bishops / 2 knights is flagged as
    *suspicious* rather than invalid.

A failed check never discards the result: the best-effort string is
always returned, with the failures listed alongside it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from chess_tracker.config import TrackerConfig
from chess_tracker.errors import INVALID_BOARD_STATE, FrameWarning
from chess_tracker.models.classes import (
    CLASS_TO_FEN,
    COLORS,
    FEN_TO_CLASS,
    SQUARES_FEN_ORDER,
    class_color,
    class_type,
)
from chess_tracker.tracking.evidence import BoardState

# Starting complement per colour
NORMAL_COUNTS: Dict[str, int] = {
    "king": 1, "queen": 1, "rook": 2, "bishop": 2, "knight": 2, "pawn": 8,
}
MAX_PIECES_PER_SIDE: int = 16


# ── Data structures ────────────────────────────────────────────────────

@dataclass
class SquareOccupant:
    """Resolved occupant for a single board square."""
    index: int                 # 0–63, FEN row-major (a8=0, h1=63)
    piece: Optional[str]       # class name, or None for empty
    confidence: float          # normalised score of the chosen class
    rank: int = 0              # 1–8 (computed)
    file: int = 0              # 0–7 → a–h (computed)

    def __post_init__(self) -> None:
        self.rank = 8 - (self.index // 8)
        self.file = self.index % 8

    @property
    def square(self) -> str:
        return SQUARES_FEN_ORDER[self.index]

    def to_dict(self) -> dict:
        return {
            "square": self.square,
            "piece": self.piece,
            "confidence": round(self.confidence, 4),
        }


@dataclass
class NotationFields:
    """Non-placement FEN fields.  ``castling=None`` derives it from placement."""
    side_to_move: str = "w"
    castling: Optional[str] = None
    en_passant: str = "-"
    halfmove_clock: int = 0
    fullmove_number: int = 1


@dataclass
class NotationResult:
    """Final output for a frame."""
    fen: str                                            # full six-field FEN
    placement: str                                      # piece-placement field only
    occupants: List[SquareOccupant] = field(default_factory=list)
    warnings: List[FrameWarning] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """True unless a sanity check proved the position impossible.

        ``suspicious`` findings (e.g. an extra queen) do not count.
        """
        return not any(
            w.kind == INVALID_BOARD_STATE and w.severity == "error" for w in self.warnings
        )

    def to_dict(self) -> dict:
        return {
            "fen": self.fen,
            "placement": self.placement,
            "is_valid": self.is_valid,
            "occupants": [o.to_dict() for o in self.occupants],
            "warnings": [w.to_dict() for w in self.warnings],
        }


# ── Occupants ──────────────────────────────────────────────────────────

def resolve_occupants(
    state: BoardState,
    config: Optional[TrackerConfig] = None,
) -> List[SquareOccupant]:
    """Pick the best class per square if it clears the confidence floor."""
    config = config or TrackerConfig()
    occupants: List[SquareOccupant] = []
    for index, square in enumerate(SQUARES_FEN_ORDER):
        piece, score = state[square].best()
        confidence = score / config.confidence_ceiling
        if piece is None or confidence < config.min_occupant_confidence:
            occupants.append(SquareOccupant(index=index, piece=None, confidence=confidence))
        else:
            occupants.append(SquareOccupant(index=index, piece=piece, confidence=confidence))
    return occupants


# ── FEN construction ───────────────────────────────────────────────────

def occupants_to_placement(occupants: List[SquareOccupant]) -> str:
    """Convert 64 occupants (FEN order) into a placement field.

    Returns
    -------
    str
        e.g. ``rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR``.
    """
    if len(occupants) != 64:
        raise ValueError(f"Expected 64 occupants, got {len(occupants)}")

    rows: List[str] = []
    for rank_start in range(0, 64, 8):
        row_chars: List[str] = []
        empty_count = 0

        for i in range(8):
            occ = occupants[rank_start + i]
            if occ.piece is None:
                empty_count += 1
                continue
            if empty_count > 0:
                row_chars.append(str(empty_count))
                empty_count = 0
            row_chars.append(CLASS_TO_FEN[occ.piece])

        if empty_count > 0:
            row_chars.append(str(empty_count))
        rows.append("".join(row_chars))

    return "/".join(rows)


def decode_placement(placement: str) -> List[Optional[str]]:
    """Inverse of ``occupants_to_placement``: 64 class names or None.

    Accepts a full FEN too; only the first field is read.
    """
    rows = placement.split()[0].split("/") if placement.strip() else []
    if len(rows) != 8:
        raise ValueError(f"Expected 8 ranks, got {len(rows)}")

    squares: List[Optional[str]] = []
    for rank_idx, row in enumerate(rows):
        rank: List[Optional[str]] = []
        for ch in row:
            if ch.isdigit():
                rank.extend([None] * int(ch))
            elif ch in FEN_TO_CLASS:
                rank.append(FEN_TO_CLASS[ch])
            else:
                raise ValueError(f"Invalid FEN character {ch!r}")
        if len(rank) != 8:
            raise ValueError(f"Rank {8 - rank_idx} has {len(rank)} squares (expected 8)")
        squares.extend(rank)
    return squares


def derive_castling(occupants: List[SquareOccupant]) -> str:
    """Castling rights consistent with king/rook home squares.

    Only claims a right when the king and the matching rook both stand on
    their original squares; placement alone cannot say whether they moved.
    """
    by_square = {o.square: o.piece for o in occupants}
    rights = ""
    for color, home, letters in (("white", "1", "KQ"), ("black", "8", "kq")):
        if by_square.get(f"e{home}") != f"{color}_king":
            continue
        if by_square.get(f"h{home}") == f"{color}_rook":
            rights += letters[0]
        if by_square.get(f"a{home}") == f"{color}_rook":
            rights += letters[1]
    return rights or "-"


def fen_to_full(placement: str, fields: Optional[NotationFields] = None,
                castling: Optional[str] = None) -> str:
    """Append side-to-move / castling / en-passant / clocks to a placement."""
    fields = fields or NotationFields()
    rights = fields.castling or castling or "-"
    return (
        f"{placement} {fields.side_to_move} {rights} {fields.en_passant} "
        f"{fields.halfmove_clock} {fields.fullmove_number}"
    )


# ── Validation ─────────────────────────────────────────────────────────

def check_occupancy(occupants: List[SquareOccupant]) -> List[FrameWarning]:
    """Structural sanity checks; returns one warning per failed rule."""
    warnings: List[FrameWarning] = []

    def _warn(message: str, squares: List[str], severity: str = "error") -> None:
        warnings.append(FrameWarning(
            kind=INVALID_BOARD_STATE, message=message, severity=severity, squares=squares,
        ))

    placed = [o for o in occupants if o.piece is not None]
    for color in COLORS:
        mine = [o for o in placed if class_color(o.piece) == color]
        by_type: Dict[str, List[str]] = {t: [] for t in NORMAL_COUNTS}
        for o in mine:
            by_type[class_type(o.piece)].append(o.square)

        kings = by_type["king"]
        if len(kings) != 1:
            _warn(f"{color.capitalize()} king count = {len(kings)} (expected 1)", kings)

        pawns = by_type["pawn"]
        if len(pawns) > NORMAL_COUNTS["pawn"]:
            _warn(f"{color.capitalize()} pawn count = {len(pawns)} (max 8)", pawns)

        if len(mine) > MAX_PIECES_PER_SIDE:
            _warn(
                f"{color.capitalize()} has {len(mine)} pieces (max {MAX_PIECES_PER_SIDE})",
                [o.square for o in mine],
            )

        extras = sum(
            max(0, len(by_type[t]) - NORMAL_COUNTS[t])
            for t in ("queen", "rook", "bishop", "knight")
        )
        missing_pawns = max(0, NORMAL_COUNTS["pawn"] - len(pawns))
        if extras > missing_pawns:
            _warn(
                f"{color.capitalize()} has {extras} promoted piece(s) but only "
                f"{missing_pawns} missing pawn(s)",
                [],
            )

        for t in ("queen", "rook", "bishop", "knight"):
            if len(by_type[t]) > NORMAL_COUNTS[t]:
                _warn(
                    f"{color.capitalize()} {t} count = {len(by_type[t])} "
                    f"(normally {NORMAL_COUNTS[t]})",
                    by_type[t],
                    severity="suspicious",
                )

    back_rank_pawns = [
        o.square for o in placed
        if class_type(o.piece) == "pawn" and o.rank in (1, 8)
    ]
    if back_rank_pawns:
        _warn("Pawn found on rank 1 or 8", back_rank_pawns)

    return warnings


# ── Synthesis ──────────────────────────────────────────────────────────

def synthesize_notation(
    state: BoardState,
    config: Optional[TrackerConfig] = None,
    fields: Optional[NotationFields] = None,
) -> NotationResult:
    """Resolve occupants, build the FEN and attach sanity warnings.

    Parameters
    ----------
    state : BoardState
        Accumulated evidence for all 64 squares.
    config : TrackerConfig, optional
        Supplies ``min_occupant_confidence`` and ``confidence_ceiling``.
    fields : NotationFields, optional
        Side to move, castling, en-passant and clocks from a collaborator;
        defaults otherwise (castling derived from placement).

    Returns
    -------
    NotationResult
    """
    occupants = resolve_occupants(state, config)
    placement = occupants_to_placement(occupants)
    fen = fen_to_full(placement, fields, castling=derive_castling(occupants))
    return NotationResult(
        fen=fen,
        placement=placement,
        occupants=occupants,
        warnings=check_occupancy(occupants),
    )
