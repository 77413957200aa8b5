"""
Orientation Resolver
====================

Decides which side of the canonical grid white plays from.  Piece box
centres are projected into ideal board space and split by colour.  The
rank axis is the ideal axis along which the two colour centroids lie
furthest apart; white then sits at the bottom (``NORMAL``), left
(``ROTATED_90``), top (``ROTATED_180``) or right (``ROTATED_270``).

No pieces on the board means the orientation is *unresolved* – it is
reported as such and never guessed here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from chess_tracker.config import TrackerConfig
from chess_tracker.errors import AmbiguousOrientation
from chess_tracker.geometry.grid_solver import BOARD_SIZE, BoardMapping, Orientation
from chess_tracker.models.classes import class_color

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrientationResult:
    orientation: Orientation
    resolved: bool
    white_centroid: Optional[Tuple[float, float]] = None   # mean ideal (u, v)
    black_centroid: Optional[Tuple[float, float]] = None
    pieces_used: int = 0


def resolve_orientation(
    detections: Sequence,
    mapping: BoardMapping,
    config: Optional[TrackerConfig] = None,
) -> OrientationResult:
    """Resolve which board edge white plays from, by piece colour distribution.

    *detections* are ``PieceDetection``-like objects exposing ``center``
    and ``piece``.  Raises ``AmbiguousOrientation`` when the colours are
    not separated by at least ``config.orientation_min_separation``
    squares, or only one colour is on the board.
    """
    config = config or TrackerConfig()
    if not detections:
        return OrientationResult(orientation=mapping.orientation, resolved=False)

    centers = np.array([d.center for d in detections], dtype=np.float64)
    ideal = mapping.to_ideal(centers)
    on_board = (
        np.isfinite(ideal).all(axis=1)
        & (ideal[:, 0] >= 0) & (ideal[:, 0] < BOARD_SIZE)
        & (ideal[:, 1] >= 0) & (ideal[:, 1] < BOARD_SIZE)
    )
    colors = np.array([class_color(d.piece) for d in detections])
    white = ideal[on_board & (colors == "white")]
    black = ideal[on_board & (colors == "black")]

    if len(white) == 0 and len(black) == 0:
        return OrientationResult(orientation=mapping.orientation, resolved=False)
    if len(white) == 0 or len(black) == 0:
        raise AmbiguousOrientation(
            f"Only {'white' if len(white) else 'black'} pieces on the board; "
            "cannot tell which side is which"
        )

    white_u, white_v = (float(x) for x in white.mean(axis=0))
    black_u, black_v = (float(x) for x in black.mean(axis=0))
    sep_u = white_u - black_u
    sep_v = white_v - black_v

    # Ranks run along whichever ideal axis splits the colours further
    if abs(sep_v) >= abs(sep_u):
        separation = sep_v
        orientation = Orientation.NORMAL if sep_v > 0 else Orientation.ROTATED_180
    else:
        separation = sep_u
        orientation = Orientation.ROTATED_90 if sep_u < 0 else Orientation.ROTATED_270
    if abs(separation) < config.orientation_min_separation:
        raise AmbiguousOrientation(
            f"Piece colours not separated (white at u={white_u:.2f} v={white_v:.2f}, "
            f"black at u={black_u:.2f} v={black_v:.2f})"
        )

    log.debug(
        "Orientation %s  white=(%.2f, %.2f)  black=(%.2f, %.2f)",
        orientation.value, white_u, white_v, black_u, black_v,
    )
    return OrientationResult(
        orientation=orientation,
        resolved=True,
        white_centroid=(white_u, white_v),
        black_centroid=(black_u, black_v),
        pieces_used=int(len(white) + len(black)),
    )
