"""
Tracking Session & Frame Worker
===============================

``TrackingSession`` owns the only mutable state of the tracking core – the
last good ``BoardMapping``, the session orientation and the evidence
``BoardState`` – and applies frames strictly one at a time.

``FrameWorker`` sits in front of a session for live input:
  • corner and piece detectors run concurrently and are joined under a
    shared timeout; a late or failing detector counts as zero detections;
  • frames are offered into a depth-1 queue where the newest frame wins,
    so a slow pipeline never builds a backlog.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from chess_tracker.config import TrackerConfig
from chess_tracker.errors import (
    DETECTOR_FAILED,
    DETECTOR_TIMEOUT,
    NO_BOARD_MAPPING,
    UNRESOLVED_ORIENTATION,
    AmbiguousOrientation,
    FrameWarning,
    GeometryError,
)
from chess_tracker.geometry.grid_solver import (
    BoardMapping,
    CornerCandidate,
    Orientation,
    solve_grid,
)
from chess_tracker.geometry.orientation import resolve_orientation
from chess_tracker.geometry.projector import SquareProjector
from chess_tracker.inference.fen_utils import (
    NotationFields,
    NotationResult,
    synthesize_notation,
)
from chess_tracker.tracking.assignment import (
    PieceDetection,
    SquareAssignment,
    assign_detections,
)
from chess_tracker.tracking.evidence import BoardState, EvidenceAccumulator

log = logging.getLogger(__name__)

Detector = Callable[[Any], Sequence[Any]]


# ── Data structures ────────────────────────────────────────────────────

@dataclass
class FrameInput:
    """Detector outputs for one frame, already joined."""
    corners: Sequence[CornerCandidate] = ()
    pieces: Sequence[PieceDetection] = ()
    width: Optional[int] = None
    height: Optional[int] = None
    warnings: List[FrameWarning] = field(default_factory=list)   # from the detector stage

    @property
    def frame_size(self) -> Optional[Tuple[int, int]]:
        if self.width and self.height:
            return int(self.width), int(self.height)
        return None


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only debug view of a session."""
    mapping: Optional[BoardMapping]
    orientation: Orientation
    orientation_resolved: bool
    assignments: Tuple[SquareAssignment, ...]
    board_state: BoardState
    frames_processed: int


# ── Session ────────────────────────────────────────────────────────────

class TrackingSession:
    """Single-board tracking session; frames are applied in call order.

    Parameters
    ----------
    config : TrackerConfig, optional
        Validated on construction.
    single_image : bool
        Still-image mode: evidence is not decayed between updates.
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        single_image: bool = False,
    ) -> None:
        self.config = (config or TrackerConfig()).validate()
        self.single_image = single_image
        self._lock = threading.Lock()
        self._accumulator = EvidenceAccumulator(self.config)
        self._mapping: Optional[BoardMapping] = None
        self._orientation = Orientation.NORMAL
        self._orientation_resolved = False
        self._assignments: Tuple[SquareAssignment, ...] = ()
        self._frames = 0

    def reset(self) -> None:
        """Forget mapping, orientation and all accumulated evidence."""
        with self._lock:
            self._accumulator.reset()
            self._mapping = None
            self._orientation = Orientation.NORMAL
            self._orientation_resolved = False
            self._assignments = ()
            self._frames = 0
        log.info("Tracking session reset")

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                mapping=self._mapping,
                orientation=self._orientation,
                orientation_resolved=self._orientation_resolved,
                assignments=self._assignments,
                board_state=self._accumulator.state,
                frames_processed=self._frames,
            )

    @property
    def mapping(self) -> Optional[BoardMapping]:
        return self._mapping

    # ── Frame processing ───────────────────────────────────────────────

    def process_frame(
        self,
        frame: FrameInput,
        fields: Optional[NotationFields] = None,
    ) -> NotationResult:
        """Run geometry → orientation → assignment → accumulation → notation.

        Per-frame failures become warnings on the returned result; the
        session keeps its last good mapping and orientation.
        """
        with self._lock:
            warnings: List[FrameWarning] = list(frame.warnings)

            mapping = self._solve_mapping(frame, warnings)
            if mapping is None:
                warnings.append(FrameWarning(
                    kind=NO_BOARD_MAPPING,
                    message="No board mapping available yet; frame not applied",
                ))
                state = self._accumulator.state
                assignments = self._assignments
            else:
                orientation, resolved = self._resolve_orientation(frame.pieces, mapping, warnings)
                mapping = mapping.with_orientation(orientation, resolved)

                projector = SquareProjector(mapping, orientation)
                result = assign_detections(frame.pieces, projector, self.config)
                if result.conflicts:
                    log.debug("Frame %d: %d assignment conflict(s) resolved", self._frames, result.conflicts)

                if resolved and not self._orientation_resolved and orientation != self._orientation:
                    # Evidence so far was gathered under the assumed orientation
                    self._accumulator.reorient(self._orientation, orientation)
                state = self._accumulator.update(result.assignments, decay=not self.single_image)
                assignments = tuple(result.assignments)

                self._mapping = mapping
                self._orientation = orientation
                self._orientation_resolved = resolved
            self._assignments = assignments
            self._frames += 1

        notation = synthesize_notation(state, self.config, fields)
        notation.warnings = warnings + notation.warnings
        return notation

    def _solve_mapping(
        self, frame: FrameInput, warnings: List[FrameWarning],
    ) -> Optional[BoardMapping]:
        try:
            return solve_grid(frame.corners, self.config, frame.frame_size)
        except GeometryError as exc:
            warnings.append(FrameWarning.from_error(exc))
            if self._mapping is not None:
                log.info("Frame %d: %s – keeping previous mapping", self._frames, exc)
            else:
                log.info("Frame %d: %s", self._frames, exc)
            return self._mapping

    def _resolve_orientation(
        self,
        pieces: Sequence[PieceDetection],
        mapping: BoardMapping,
        warnings: List[FrameWarning],
    ) -> Tuple[Orientation, bool]:
        if self._orientation_resolved:
            return self._orientation, True

        try:
            res = resolve_orientation(pieces, mapping, self.config)
        except AmbiguousOrientation as exc:
            warnings.append(FrameWarning.from_error(exc))
        else:
            if res.resolved:
                log.info("Orientation resolved: %s", res.orientation.value)
                return res.orientation, True

        warnings.append(FrameWarning(
            kind=UNRESOLVED_ORIENTATION,
            message="Orientation unknown; assuming white at the image bottom",
            severity="info",
        ))
        return Orientation.NORMAL, False


# ── Live worker ────────────────────────────────────────────────────────

def _offer_latest(queue_obj: queue.Queue, item) -> bool:
    """Non-blocking put that evicts the oldest item; True if one was dropped."""
    try:
        queue_obj.put_nowait(item)
        return False
    except queue.Full:
        try:
            queue_obj.get_nowait()
            queue_obj.put_nowait(item)
        except (queue.Empty, queue.Full):
            pass
        return True


class FrameWorker:
    """Feeds frames from live input into a ``TrackingSession``.

    Parameters
    ----------
    session : TrackingSession
    corner_detector, piece_detector : callable
        ``detector(image)`` → sequence of ``CornerCandidate`` /
        ``PieceDetection``.
    on_result : callable, optional
        Called with each ``NotationResult`` from the worker thread.
    """

    def __init__(
        self,
        session: TrackingSession,
        corner_detector: Detector,
        piece_detector: Detector,
        on_result: Optional[Callable[[NotationResult], None]] = None,
    ) -> None:
        self.session = session
        self.corner_detector = corner_detector
        self.piece_detector = piece_detector
        self.on_result = on_result
        self.latest_result: Optional[NotationResult] = None
        self.dropped = 0
        self.processed = 0

        self._queue: queue.Queue = queue.Queue(maxsize=1)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── Detection join point ───────────────────────────────────────────

    def _detector_pool(self) -> ThreadPoolExecutor:
        # Created on demand so the worker stays usable after stop()
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="detector")
            return self._executor

    def detect(self, image, width: Optional[int] = None, height: Optional[int] = None) -> FrameInput:
        """Run both detectors concurrently and join them under the timeout."""
        if (width is None or height is None) and hasattr(image, "shape"):
            height, width = image.shape[:2]

        timeout = self.session.config.detector_timeout_s
        deadline = time.monotonic() + timeout
        pool = self._detector_pool()
        futures = {
            "corner": pool.submit(self.corner_detector, image),
            "piece": pool.submit(self.piece_detector, image),
        }

        outputs = {}
        warnings: List[FrameWarning] = []
        for name, future in futures.items():
            try:
                outputs[name] = list(future.result(timeout=max(0.0, deadline - time.monotonic())))
            except FutureTimeout:
                future.cancel()
                outputs[name] = []
                warnings.append(FrameWarning(
                    kind=DETECTOR_TIMEOUT,
                    message=f"{name} detector exceeded {timeout:.2f}s; treated as no detections",
                ))
                log.warning("%s detector timed out after %.2fs", name, timeout)
            except Exception as exc:
                outputs[name] = []
                warnings.append(FrameWarning(
                    kind=DETECTOR_FAILED,
                    message=f"{name} detector failed: {exc}",
                ))
                log.exception("%s detector failed", name)

        return FrameInput(
            corners=outputs["corner"],
            pieces=outputs["piece"],
            width=width,
            height=height,
            warnings=warnings,
        )

    def process(self, image, width: Optional[int] = None, height: Optional[int] = None) -> NotationResult:
        """Synchronously detect and apply one frame."""
        result = self.session.process_frame(self.detect(image, width, height))
        self.latest_result = result
        self.processed += 1
        if self.on_result is not None:
            self.on_result(result)
        return result

    # ── Background loop ────────────────────────────────────────────────

    def start(self) -> "FrameWorker":
        if self._thread is not None and self._thread.is_alive():
            return self
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name="frame-worker", daemon=True)
        self._thread.start()
        return self

    def submit(self, image, width: Optional[int] = None, height: Optional[int] = None) -> None:
        """Queue a frame; a frame still waiting is superseded."""
        if _offer_latest(self._queue, (image, width, height)):
            self.dropped += 1
            log.debug("Superseded a pending frame (%d dropped so far)", self.dropped)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    def _run(self) -> None:
        while not self._stopped.is_set():
            try:
                image, width, height = self._queue.get(timeout=0.05)
            except queue.Empty:
                continue
            try:
                self.process(image, width, height)
            except Exception:
                log.exception("Frame processing failed; session state unchanged")

    def __enter__(self) -> "FrameWorker":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop(timeout=1.0)
