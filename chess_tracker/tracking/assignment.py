"""
Detection Assignment
====================

Binds piece detections to squares for a single frame.

Rules:
  • A detection goes to the square whose projected centre is nearest to
    its box centre, but only if that distance is below
    ``assignment_distance_fraction`` × the square's on-image size – the
    threshold follows perspective foreshortening instead of a global
    pixel value.
  • Two detections on one square: the higher confidence wins (input
    order breaks ties); the loser is dropped for this frame and logged.
  • Detections near no square are dropped.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from chess_tracker.config import TrackerConfig
from chess_tracker.errors import ASSIGNMENT_CONFLICT
from chess_tracker.geometry.projector import SquareProjector
from chess_tracker.models.classes import SQUARE_NAMES, normalize_class

log = logging.getLogger(__name__)


# ── Data structures ────────────────────────────────────────────────────

@dataclass(frozen=True)
class PieceDetection:
    """One detected piece: box in image pixels, class, confidence."""
    box: Tuple[float, float, float, float]   # x1, y1, x2, y2
    piece: str                               # canonical class name, e.g. "white_king"
    confidence: float

    def __post_init__(self) -> None:
        x1, y1, x2, y2 = (float(v) for v in self.box)
        if not all(math.isfinite(v) for v in (x1, y1, x2, y2)):
            raise ValueError(f"Non-finite box: {self.box}")
        if x2 <= x1 or y2 <= y1:
            raise ValueError(f"Degenerate box: {self.box}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Detection confidence out of [0, 1]: {self.confidence}")
        object.__setattr__(self, "box", (x1, y1, x2, y2))
        object.__setattr__(self, "piece", normalize_class(self.piece))

    @property
    def center(self) -> Tuple[float, float]:
        x1, y1, x2, y2 = self.box
        return (x1 + x2) / 2.0, (y1 + y2) / 2.0

    def to_dict(self) -> dict:
        return {"box": list(self.box), "piece": self.piece, "confidence": self.confidence}


@dataclass(frozen=True)
class SquareAssignment:
    """At most one detection bound to one square for one frame."""
    square: str
    detection: PieceDetection
    distance: float       # box centre → square centre, pixels
    threshold: float      # acceptance radius used for this square

    def to_dict(self) -> dict:
        return {
            "square": self.square,
            "piece": self.detection.piece,
            "confidence": round(self.detection.confidence, 4),
            "distance": round(self.distance, 2),
        }


@dataclass
class AssignmentResult:
    assignments: List[SquareAssignment] = field(default_factory=list)
    discarded: List[Tuple[PieceDetection, str]] = field(default_factory=list)
    conflicts: int = 0

    def by_square(self) -> Dict[str, SquareAssignment]:
        return {a.square: a for a in self.assignments}


# ── Assignment ─────────────────────────────────────────────────────────

def assign_detections(
    detections: Sequence[PieceDetection],
    projector: SquareProjector,
    config: Optional[TrackerConfig] = None,
) -> AssignmentResult:
    """Assign *detections* to squares; deterministic for identical input.

    Parameters
    ----------
    detections : sequence of PieceDetection
        This frame's piece boxes.
    projector : SquareProjector
        Square centres and local square sizes for the current mapping.
    config : TrackerConfig, optional
        Supplies ``assignment_distance_fraction``.

    Returns
    -------
    AssignmentResult
        Winning assignments sorted by square id, plus discarded
        detections with a reason (``"off_board"`` or ``"conflict"``).
    """
    config = config or TrackerConfig()
    result = AssignmentResult()
    if not detections:
        return result

    centers = projector.center_array()                # (64, 2)
    radii = projector.scales() * config.assignment_distance_fraction

    # (square index, detection index, distance) for qualifying detections
    qualified: Dict[int, List[Tuple[int, float]]] = {}
    for det_idx, det in enumerate(detections):
        d = np.linalg.norm(centers - np.asarray(det.center), axis=1)
        d = np.where(np.isfinite(d), d, np.inf)
        sq_idx = int(np.argmin(d))
        if not d[sq_idx] < radii[sq_idx]:
            result.discarded.append((det, "off_board"))
            continue
        qualified.setdefault(sq_idx, []).append((det_idx, float(d[sq_idx])))

    for sq_idx in sorted(qualified, key=lambda i: SQUARE_NAMES[i]):
        contenders = sorted(
            qualified[sq_idx], key=lambda c: (-detections[c[0]].confidence, c[0]),
        )
        winner_idx, distance = contenders[0]
        square = SQUARE_NAMES[sq_idx]
        result.assignments.append(SquareAssignment(
            square=square,
            detection=detections[winner_idx],
            distance=distance,
            threshold=float(radii[sq_idx]),
        ))
        for loser_idx, _ in contenders[1:]:
            loser = detections[loser_idx]
            result.discarded.append((loser, "conflict"))
            result.conflicts += 1
            log.debug(
                "%s on %s: kept %s (%.2f), dropped %s (%.2f)",
                ASSIGNMENT_CONFLICT, square,
                detections[winner_idx].piece, detections[winner_idx].confidence,
                loser.piece, loser.confidence,
            )

    return result
