"""
Piece Classes & Square Ids
==========================

The piece detector reports one of 12 classes (6 piece types × 2 colours).
Everything downstream – assignment, evidence, notation – keys on the
class names defined here, and on the fixed square ids ``"a1"`` … ``"h8"``.
"""

from __future__ import annotations

from typing import Tuple


# ── Canonical class list ───────────────────────────────────────────────

CLASS_NAMES: list[str] = [
    "white_pawn",
    "white_knight",
    "white_bishop",
    "white_rook",
    "white_queen",
    "white_king",
    "black_pawn",
    "black_knight",
    "black_bishop",
    "black_rook",
    "black_queen",
    "black_king",
]

NUM_CLASSES: int = len(CLASS_NAMES)

# Short detector labels (e.g. "wp") → class name
SHORT_LABEL_TO_CLASS: dict[str, str] = {
    "wp": "white_pawn",
    "wn": "white_knight",
    "wb": "white_bishop",
    "wr": "white_rook",
    "wq": "white_queen",
    "wk": "white_king",
    "bp": "black_pawn",
    "bn": "black_knight",
    "bb": "black_bishop",
    "br": "black_rook",
    "bq": "black_queen",
    "bk": "black_king",
}

# Class name → FEN character
CLASS_TO_FEN: dict[str, str] = {
    "white_pawn": "P",
    "white_knight": "N",
    "white_bishop": "B",
    "white_rook": "R",
    "white_queen": "Q",
    "white_king": "K",
    "black_pawn": "p",
    "black_knight": "n",
    "black_bishop": "b",
    "black_rook": "r",
    "black_queen": "q",
    "black_king": "k",
}

FEN_TO_CLASS: dict[str, str] = {v: k for k, v in CLASS_TO_FEN.items()}

COLORS: tuple[str, str] = ("white", "black")


def normalize_class(label: str) -> str:
    """Map a detector label onto a canonical class name.

    Accepts canonical names, short labels (``"wp"``), FEN letters
    (``"P"``) and the common ``"white-pawn"`` / ``"White Pawn"`` spellings.
    Raises ``ValueError`` for anything else.
    """
    if label in CLASS_TO_FEN:
        return label
    if label in FEN_TO_CLASS:
        return FEN_TO_CLASS[label]
    key = label.strip().lower().replace("-", "_").replace(" ", "_")
    if key in CLASS_TO_FEN:
        return key
    if key in SHORT_LABEL_TO_CLASS:
        return SHORT_LABEL_TO_CLASS[key]
    raise ValueError(f"Unknown piece class: {label!r}")


def class_color(piece: str) -> str:
    """``"white_rook"`` → ``"white"``."""
    return piece.split("_", 1)[0]


def class_type(piece: str) -> str:
    """``"white_rook"`` → ``"rook"``."""
    return piece.split("_", 1)[1]


# ── Squares ────────────────────────────────────────────────────────────

FILES: str = "abcdefgh"


def square_name(file: int, rank: int) -> str:
    """``(0, 1)`` → ``"a1"``; *file* is 0–7, *rank* is 1–8."""
    if not (0 <= file < 8 and 1 <= rank <= 8):
        raise ValueError(f"Square out of range: file={file} rank={rank}")
    return f"{FILES[file]}{rank}"


def parse_square(name: str) -> Tuple[int, int]:
    """``"e4"`` → ``(4, 4)``."""
    if len(name) != 2 or name[0] not in FILES or name[1] not in "12345678":
        raise ValueError(f"Invalid square id: {name!r}")
    return FILES.index(name[0]), int(name[1])


# All 64 ids in a1, b1, … h8 order
SQUARE_NAMES: list[str] = [
    square_name(f, r) for r in range(1, 9) for f in range(8)
]

# FEN row-major order: index 0 = a8, index 63 = h1
SQUARES_FEN_ORDER: list[str] = [
    square_name(f, r) for r in range(8, 0, -1) for f in range(8)
]
