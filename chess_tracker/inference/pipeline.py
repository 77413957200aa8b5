"""
Inference Pipeline – Image(s) → FEN
===================================

Single-call entry point for production use.

Pipeline stages:
  1. Corner + piece detection  – two detectors, run concurrently
  2. Grid reconstruction       – Delaunay quads → lattice → homography
  3. Orientation               – piece colour distribution
  4. Assignment                – detections → squares
  5. Accumulation              – per-square evidence (video only decays)
  6. FEN synthesis             – with structural sanity warnings

Optional extras:
  • Debug visualisation overlay (lattice, square grid, assignments)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from chess_tracker.config import TrackerConfig
from chess_tracker.geometry.grid_solver import BOARD_SIZE, project_points
from chess_tracker.geometry.projector import SquareProjector
from chess_tracker.inference.fen_utils import NotationResult
from chess_tracker.models.classes import CLASS_TO_FEN, class_color
from chess_tracker.tracking.session import (
    Detector,
    FrameWorker,
    SessionSnapshot,
    TrackingSession,
)

log = logging.getLogger(__name__)


# ── Result dataclass ──────────────────────────────────────────────────

@dataclass
class RecognitionResult:
    """Notation plus the session snapshot it was produced from."""
    notation: NotationResult
    snapshot: SessionSnapshot

    @property
    def fen(self) -> str:
        return self.notation.fen

    def to_dict(self) -> dict:
        data = self.notation.to_dict()
        mapping = self.snapshot.mapping
        data["mapping"] = mapping.to_dict() if mapping is not None else None
        data["assignments"] = [a.to_dict() for a in self.snapshot.assignments]
        return data


# ── Pipeline class ─────────────────────────────────────────────────────

class ChessTrackingPipeline:
    """End-to-end detector outputs → FEN pipeline.

    Parameters
    ----------
    corner_detector, piece_detector : callable
        ``detector(image)`` returning corner candidates / piece detections.
    config : TrackerConfig, optional
        Tracking options; defaults otherwise.
    """

    def __init__(
        self,
        corner_detector: Detector,
        piece_detector: Detector,
        config: Optional[TrackerConfig] = None,
    ) -> None:
        self.config = (config or TrackerConfig()).validate()
        self.corner_detector = corner_detector
        self.piece_detector = piece_detector
        self.session = TrackingSession(self.config)
        self._worker = FrameWorker(self.session, corner_detector, piece_detector)

    @classmethod
    def from_yolo(
        cls,
        corner_model_path: str | Path,
        piece_model_path: str | Path,
        config: Optional[TrackerConfig] = None,
        device: Optional[str] = None,
        corner_conf: float = 0.1,
        piece_conf: float = 0.25,
    ) -> "ChessTrackingPipeline":
        """Build a pipeline around two YOLOv8 checkpoints."""
        from chess_tracker.models.yolo_detector import (
            YoloCornerDetector,
            YoloPieceDetector,
        )

        pipeline = cls(
            YoloCornerDetector(corner_model_path, conf=corner_conf, device=device),
            YoloPieceDetector(piece_model_path, conf=piece_conf, device=device),
            config=config,
        )
        log.info(
            "Pipeline ready  corners=%s  pieces=%s  device=%s",
            corner_model_path, piece_model_path, device or "auto",
        )
        return pipeline

    # ── Public API ─────────────────────────────────────────────────────

    def recognize(self, image: np.ndarray) -> RecognitionResult:
        """Still image: one fresh single-image session, one update."""
        session = TrackingSession(self.config, single_image=True)
        worker = FrameWorker(session, self.corner_detector, self.piece_detector)
        try:
            notation = worker.process(image)
        finally:
            worker.stop()
        return RecognitionResult(notation=notation, snapshot=session.snapshot())

    def track(self, image: np.ndarray) -> RecognitionResult:
        """Video frame: evidence accumulates in the pipeline's session."""
        notation = self._worker.process(image)
        return RecognitionResult(notation=notation, snapshot=self.session.snapshot())

    def reset(self) -> None:
        """New game: clear the tracking session."""
        self.session.reset()

    def close(self) -> None:
        """Release detector threads; a later ``track`` starts them again."""
        self._worker.stop()

    # ── Debug visualisation ────────────────────────────────────────────

    def visualize(
        self,
        image: np.ndarray,
        result: RecognitionResult,
        show: bool = True,
        save_path: Optional[str] = None,
    ) -> np.ndarray:
        """Draw lattice, square grid and resolved pieces on *image*.

        Returns
        -------
        np.ndarray
            Annotated BGR image.
        """
        vis = draw_overlay(image, result)

        if save_path:
            cv2.imwrite(save_path, vis)
            log.info("Saved debug image to %s", save_path)

        if show:
            cv2.imshow("Chess Tracking", vis)
            cv2.waitKey(0)
            cv2.destroyAllWindows()

        return vis


def draw_overlay(image: np.ndarray, result: RecognitionResult) -> np.ndarray:
    """Render the solved mapping and notation onto a copy of *image*."""
    vis = image.copy()
    h = vis.shape[0]
    mapping = result.snapshot.mapping

    if mapping is not None:
        # Board grid lines
        for k in range(BOARD_SIZE + 1):
            for a, b in (((k, 0), (k, BOARD_SIZE)), ((0, k), (BOARD_SIZE, k))):
                p, q = project_points(mapping.forward, [a, b])
                cv2.line(vis, _pt(p), _pt(q), (80, 80, 80), 1, cv2.LINE_AA)

        # Lattice nodes: green = real candidate, orange = extrapolated
        if mapping.lattice is not None:
            for node, snapped in zip(mapping.lattice.reshape(-1, 2), mapping.snapped.reshape(-1)):
                color = (0, 200, 0) if snapped else (0, 140, 255)
                cv2.circle(vis, _pt(node), 3, color, -1, cv2.LINE_AA)

        projector = SquareProjector(mapping, result.snapshot.orientation)
        for occ in result.notation.occupants:
            if occ.piece is None:
                continue
            x, y = projector.ideal_to_image(occ.square)
            label = CLASS_TO_FEN[occ.piece]
            color = (255, 255, 255) if class_color(occ.piece) == "white" else (40, 40, 40)
            cv2.putText(
                vis, label, (int(x) - 5, int(y) + 5),
                cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 255), 3,
            )
            cv2.putText(
                vis, label, (int(x) - 5, int(y) + 5),
                cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 1,
            )

        corners = projector.board_corners()
        cv2.putText(
            vis, "a1", _pt(corners["a1"]),
            cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 255, 255), 1,
        )

    # FEN annotation at the bottom
    cv2.putText(
        vis, f"FEN: {result.notation.placement}",
        (10, h - 10),
        cv2.FONT_HERSHEY_SIMPLEX, 0.45, (255, 255, 255), 1,
    )
    for i, warning in enumerate(_warning_lines(result)):
        cv2.putText(
            vis, warning, (10, 20 + 16 * i),
            cv2.FONT_HERSHEY_SIMPLEX, 0.4, (0, 0, 255), 1,
        )
    return vis


def _pt(p) -> tuple:
    return int(round(float(p[0]))), int(round(float(p[1])))


def _warning_lines(result: RecognitionResult, limit: int = 6) -> List[str]:
    return [f"{w.kind}: {w.message}"[:90] for w in result.notation.warnings[:limit]]
