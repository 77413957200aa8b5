"""
YOLO Detector Adapters
======================

The tracking core treats neural-network inference as an oracle.  These
adapters wrap ``ultralytics`` YOLOv8 models so that they return exactly
what the core consumes:

  • ``YoloCornerDetector`` – interior grid intersections as
    ``CornerCandidate`` (box centres of a corner-detection model, or the
    keypoints of a pose model).
  • ``YoloPieceDetector`` – piece boxes as ``PieceDetection`` with the
    model's class names mapped onto the 12 canonical classes.

``ultralytics`` is imported lazily so the core (and its tests) run
without it.  The conversion helpers are plain numpy and usable on their
own, e.g. for replaying recorded detector output.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import numpy as np

from chess_tracker.geometry.grid_solver import CornerCandidate
from chess_tracker.models.classes import normalize_class
from chess_tracker.tracking.assignment import PieceDetection

log = logging.getLogger(__name__)


# ── Conversion helpers ─────────────────────────────────────────────────

def corners_from_boxes(xyxy: np.ndarray, conf: np.ndarray) -> List[CornerCandidate]:
    """Box centres → corner candidates."""
    xyxy = np.asarray(xyxy, dtype=np.float64).reshape(-1, 4)
    conf = np.clip(np.asarray(conf, dtype=np.float64).reshape(-1), 0.0, 1.0)
    cx = (xyxy[:, 0] + xyxy[:, 2]) / 2.0
    cy = (xyxy[:, 1] + xyxy[:, 3]) / 2.0
    return [CornerCandidate(float(x), float(y), float(c)) for x, y, c in zip(cx, cy, conf)]


def corners_from_keypoints(xy: np.ndarray, conf: Optional[np.ndarray]) -> List[CornerCandidate]:
    """Pose-model keypoints → corner candidates; (0, 0) marks a missing point."""
    xy = np.asarray(xy, dtype=np.float64).reshape(-1, 2)
    if conf is None:
        conf = np.ones(len(xy))
    conf = np.clip(np.asarray(conf, dtype=np.float64).reshape(-1), 0.0, 1.0)
    return [
        CornerCandidate(float(x), float(y), float(c))
        for (x, y), c in zip(xy, conf)
        if not (x == 0.0 and y == 0.0)
    ]


def pieces_from_boxes(
    xyxy: np.ndarray,
    class_ids: np.ndarray,
    conf: np.ndarray,
    names: Mapping[int, str],
) -> List[PieceDetection]:
    """Raw YOLO boxes → ``PieceDetection``; unknown labels and bad boxes are dropped."""
    xyxy = np.asarray(xyxy, dtype=np.float64).reshape(-1, 4)
    class_ids = np.asarray(class_ids).reshape(-1).astype(int)
    conf = np.clip(np.asarray(conf, dtype=np.float64).reshape(-1), 0.0, 1.0)

    pieces: List[PieceDetection] = []
    for box, cls_id, c in zip(xyxy, class_ids, conf):
        label = names.get(int(cls_id), str(cls_id))
        try:
            pieces.append(PieceDetection(box=tuple(box), piece=label, confidence=float(c)))
        except ValueError as exc:
            log.warning("Dropping detection %s: %s", label, exc)
    return pieces


# ── YOLO adapters ──────────────────────────────────────────────────────

class _YoloAdapter:
    """Shared model loading / prediction for the two adapters."""

    def __init__(
        self,
        model_path: str | Path,
        conf: float = 0.25,
        device: Optional[str] = None,
    ) -> None:
        from ultralytics import YOLO  # lazy import – optional dependency

        self.model_path = str(model_path)
        self.model = YOLO(self.model_path)
        self.conf = conf
        self.device = device
        log.info("Loaded YOLO model %s  conf=%.2f", self.model_path, conf)

    def _predict(self, image: np.ndarray):
        kwargs = {"source": image, "conf": self.conf, "verbose": False}
        if self.device is not None:
            kwargs["device"] = self.device
        results = self.model.predict(**kwargs)
        return results[0] if results else None


class YoloCornerDetector(_YoloAdapter):
    """``detector(image)`` → list of ``CornerCandidate``."""

    def __call__(self, image: np.ndarray) -> List[CornerCandidate]:
        result = self._predict(image)
        if result is None:
            return []

        keypoints = getattr(result, "keypoints", None)
        if keypoints is not None and len(keypoints) > 0:
            kp_conf = keypoints.conf.cpu().numpy() if keypoints.conf is not None else None
            return corners_from_keypoints(keypoints.xy.cpu().numpy(), kp_conf)

        boxes = result.boxes
        if boxes is None or len(boxes) == 0:
            return []
        return corners_from_boxes(boxes.xyxy.cpu().numpy(), boxes.conf.cpu().numpy())


class YoloPieceDetector(_YoloAdapter):
    """``detector(image)`` → list of ``PieceDetection``.

    Parameters
    ----------
    class_map : dict, optional
        Overrides for model labels that ``normalize_class`` cannot read,
        e.g. ``{"K": "white_king"}``.
    """

    def __init__(
        self,
        model_path: str | Path,
        conf: float = 0.25,
        device: Optional[str] = None,
        class_map: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(model_path, conf=conf, device=device)
        self.names: Dict[int, str] = {}
        for idx, label in dict(self.model.names).items():
            label = (class_map or {}).get(label, label)
            try:
                self.names[int(idx)] = normalize_class(label)
            except ValueError:
                log.warning("Model class %r is not a chess piece; ignoring it", label)

    def __call__(self, image: np.ndarray) -> List[PieceDetection]:
        result = self._predict(image)
        if result is None or result.boxes is None or len(result.boxes) == 0:
            return []

        boxes = result.boxes
        class_ids = boxes.cls.cpu().numpy().astype(int)
        keep = np.array([int(c) in self.names for c in class_ids], dtype=bool)
        return pieces_from_boxes(
            boxes.xyxy.cpu().numpy()[keep],
            class_ids[keep],
            boxes.conf.cpu().numpy()[keep],
            self.names,
        )
