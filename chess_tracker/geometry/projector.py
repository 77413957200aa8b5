"""
Square Projector
================

Stateless bridge between square ids and image pixels for one solved
``BoardMapping``.  Build a fresh projector whenever the mapping or the
session orientation changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np

from chess_tracker.geometry.grid_solver import (
    BOARD_SIZE,
    BoardMapping,
    Orientation,
    project_points,
)
from chess_tracker.models.classes import SQUARE_NAMES, parse_square, square_name


@dataclass(frozen=True)
class BoardPoint:
    """An image point expressed in board terms."""
    square: str          # containing square, or the nearest one when off-board
    u: float             # ideal coordinates, 0–8 across the board
    v: float
    on_board: bool


# ── Square ↔ ideal cell ────────────────────────────────────────────────

_LAST = BOARD_SIZE - 1


def cell_of(square: str, orientation: Orientation) -> Tuple[int, int]:
    """Ideal cell (column, row) holding *square*; row 0 is the image top."""
    file, rank = parse_square(square)
    r = rank - 1
    if orientation is Orientation.NORMAL:
        return file, _LAST - r
    if orientation is Orientation.ROTATED_90:
        return r, file
    if orientation is Orientation.ROTATED_180:
        return _LAST - file, r
    return _LAST - r, _LAST - file


def square_at(col: int, row: int, orientation: Orientation) -> str:
    """Inverse of ``cell_of``."""
    if orientation is Orientation.NORMAL:
        return square_name(col, BOARD_SIZE - row)
    if orientation is Orientation.ROTATED_90:
        return square_name(row, col + 1)
    if orientation is Orientation.ROTATED_180:
        return square_name(_LAST - col, row + 1)
    return square_name(_LAST - row, BOARD_SIZE - col)


def relabel_square(square: str, src: Orientation, dst: Orientation) -> str:
    """The square occupying *square*'s ideal cell once *dst* replaces *src*."""
    return square_at(*cell_of(square, src), dst)


class SquareProjector:
    """``ideal_to_image`` / ``image_to_ideal`` for a mapping + orientation."""

    def __init__(self, mapping: BoardMapping, orientation: Orientation | None = None) -> None:
        self.mapping = mapping
        self.orientation = orientation or mapping.orientation

        # Cell corners for all 64 squares, computed once: (64, 4, 2)
        cells = np.array([self.cell_of(sq) for sq in SQUARE_NAMES], dtype=np.float64)
        ideal_corners = np.stack([
            cells,
            cells + (1, 0),
            cells + (1, 1),
            cells + (0, 1),
        ], axis=1)
        self._polygons = project_points(
            mapping.forward, ideal_corners.reshape(-1, 2),
        ).reshape(64, 4, 2)
        self._centers = project_points(mapping.forward, cells + 0.5)
        self._index = {sq: i for i, sq in enumerate(SQUARE_NAMES)}

    # ── Square ↔ ideal cell ────────────────────────────────────────────

    def cell_of(self, square: str) -> Tuple[int, int]:
        return cell_of(square, self.orientation)

    def square_at(self, col: int, row: int) -> str:
        return square_at(col, row, self.orientation)

    # ── Projections ────────────────────────────────────────────────────

    def ideal_to_image(self, square: str) -> Tuple[float, float]:
        """Image position of the centre of *square*."""
        x, y = self._centers[self._index[square]]
        return float(x), float(y)

    def image_to_ideal(self, point: Tuple[float, float]) -> BoardPoint:
        """Board coordinates of an image point, clamped to the nearest square."""
        u, v = project_points(self.mapping.inverse, [point])[0]
        if not (np.isfinite(u) and np.isfinite(v)):
            raise ValueError(f"Point {point} cannot be projected onto the board plane")
        on_board = 0.0 <= u < BOARD_SIZE and 0.0 <= v < BOARD_SIZE
        col = int(np.clip(np.floor(u), 0, BOARD_SIZE - 1))
        row = int(np.clip(np.floor(v), 0, BOARD_SIZE - 1))
        return BoardPoint(square=self.square_at(col, row), u=float(u), v=float(v), on_board=on_board)

    def square_centers(self) -> Dict[str, Tuple[float, float]]:
        """All 64 square centres in image coordinates."""
        return {sq: (float(x), float(y)) for sq, (x, y) in zip(SQUARE_NAMES, self._centers)}

    def center_array(self) -> np.ndarray:
        """(64, 2) square centres in ``SQUARE_NAMES`` order."""
        return self._centers.copy()

    def square_polygon(self, square: str) -> np.ndarray:
        """4×2 image polygon of *square* (ideal corner order)."""
        return self._polygons[self._index[square]].copy()

    def square_scale(self, square: str) -> float:
        """Local on-image size of *square*: √ of its projected area."""
        return float(self.scales()[self._index[square]])

    def scales(self) -> np.ndarray:
        """(64,) local square sizes in ``SQUARE_NAMES`` order."""
        x = self._polygons[:, :, 0]
        y = self._polygons[:, :, 1]
        area = 0.5 * np.abs(
            np.sum(x * np.roll(y, -1, axis=1) - y * np.roll(x, -1, axis=1), axis=1)
        )
        return np.sqrt(area)

    def board_corners(self) -> Dict[str, Tuple[float, float]]:
        """Image positions of the outer corners nearest a1, h1, a8 and h8."""
        out: Dict[str, Tuple[float, float]] = {}
        for sq in ("a1", "h1", "a8", "h8"):
            col, row = self.cell_of(sq)
            # Corner squares: the outer corner lies on the board edge on both axes
            u = col + 1 if col == _LAST else col
            v = row + 1 if row == _LAST else row
            x, y = project_points(self.mapping.forward, [(u, v)])[0]
            out[sq] = (float(x), float(y))
        return out
