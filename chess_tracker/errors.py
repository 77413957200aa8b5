"""
Errors & Frame Warnings
=======================

Pure components (grid solver, orientation resolver) raise the exceptions
below.  ``TrackingSession`` catches them and reports each as a structured
``FrameWarning``; nothing in the tracking core is fatal to the process.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


class ChessTrackerError(Exception):
    """Base class for recoverable per-frame failures."""

    kind: str = "ChessTrackerError"


class GeometryError(ChessTrackerError):
    """The board grid could not be solved for this frame."""


class NoCornersDetected(GeometryError):
    kind = "NoCornersDetected"


class GridReconstructionFailed(GeometryError):
    kind = "GridReconstructionFailed"


class AmbiguousOrientation(ChessTrackerError):
    kind = "AmbiguousOrientation"


# ── Warning taxonomy ───────────────────────────────────────────────────

NO_CORNERS_DETECTED = NoCornersDetected.kind
GRID_RECONSTRUCTION_FAILED = GridReconstructionFailed.kind
AMBIGUOUS_ORIENTATION = AmbiguousOrientation.kind
UNRESOLVED_ORIENTATION = "UnresolvedOrientation"
NO_BOARD_MAPPING = "NoBoardMapping"
ASSIGNMENT_CONFLICT = "AssignmentConflict"
INVALID_BOARD_STATE = "InvalidBoardState"
DETECTOR_TIMEOUT = "DetectorTimeout"
DETECTOR_FAILED = "DetectorFailed"


@dataclass(frozen=True)
class FrameWarning:
    """One structured, non-fatal problem attached to a result."""
    kind: str
    message: str
    severity: str = "warning"          # "info" | "warning" | "suspicious" | "error"
    squares: List[str] = field(default_factory=list)

    @classmethod
    def from_error(cls, exc: ChessTrackerError) -> "FrameWarning":
        return cls(kind=exc.kind, message=str(exc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "severity": self.severity,
            "squares": list(self.squares),
        }
