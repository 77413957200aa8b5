"""Tests for the live frame worker: detector join, timeouts, backpressure."""
from __future__ import annotations

import queue
import threading
import time

import numpy as np

from chess_tracker.config import TrackerConfig
from chess_tracker.errors import DETECTOR_FAILED, DETECTOR_TIMEOUT, NO_BOARD_MAPPING
from chess_tracker.tracking.session import FrameWorker, TrackingSession, _offer_latest
from tests.boards import FRAME_HEIGHT, FRAME_WIDTH, START_PLACEMENT, corner_candidates, piece_detections

IMAGE = np.zeros((FRAME_HEIGHT, FRAME_WIDTH, 3), dtype=np.uint8)


def _kinds(result):
    return [w.kind for w in result.warnings]


def test_offer_latest_keeps_newest():
    q: queue.Queue = queue.Queue(maxsize=1)
    assert _offer_latest(q, 1) is False
    assert _offer_latest(q, 2) is True
    assert q.get_nowait() == 2
    assert q.empty()


def test_process_runs_both_detectors(true_h):
    session = TrackingSession(single_image=True)
    worker = FrameWorker(session, lambda img: corner_candidates(true_h), lambda img: piece_detections(true_h))
    try:
        result = worker.process(IMAGE)
    finally:
        worker.stop()
    assert result.placement == START_PLACEMENT
    assert result.warnings == []
    assert worker.latest_result is result
    assert worker.processed == 1


def test_slow_detector_times_out(true_h):
    session = TrackingSession(TrackerConfig(detector_timeout_s=0.5), single_image=True)
    release = threading.Event()

    def slow_pieces(img):
        release.wait(5.0)
        return piece_detections(true_h)

    worker = FrameWorker(session, lambda img: corner_candidates(true_h), slow_pieces)
    try:
        result = worker.process(IMAGE)
    finally:
        release.set()
        worker.stop()
    assert DETECTOR_TIMEOUT in _kinds(result)
    assert result.placement == "8/8/8/8/8/8/8/8"
    assert session.mapping is not None


def test_failing_detector_counts_as_empty(true_h):
    def broken(img):
        raise RuntimeError("model crashed")

    session = TrackingSession(single_image=True)
    worker = FrameWorker(session, broken, lambda img: piece_detections(true_h))
    try:
        result = worker.process(IMAGE)
    finally:
        worker.stop()
    kinds = _kinds(result)
    assert DETECTOR_FAILED in kinds
    assert NO_BOARD_MAPPING in kinds


def test_worker_is_reusable_after_stop(true_h):
    session = TrackingSession(single_image=True)
    worker = FrameWorker(session, lambda img: corner_candidates(true_h), lambda img: piece_detections(true_h))
    worker.process(IMAGE)
    worker.stop()
    try:
        result = worker.process(IMAGE)
    finally:
        worker.stop()
    assert result.placement == START_PLACEMENT
    assert worker.processed == 2


def test_stop_without_frames_is_harmless():
    worker = FrameWorker(TrackingSession(), lambda img: [], lambda img: [])
    worker.stop()
    worker.stop()


def test_submit_supersedes_pending_frames(true_h):
    session = TrackingSession(single_image=True)
    worker = FrameWorker(session, lambda img: corner_candidates(true_h), lambda img: piece_detections(true_h))
    worker.submit(IMAGE)
    worker.submit(IMAGE)
    worker.submit(IMAGE)
    assert worker.dropped == 2
    worker.stop()


def test_background_loop_delivers_results(true_h):
    done = threading.Event()
    results = []

    def on_result(result):
        results.append(result)
        done.set()

    session = TrackingSession(single_image=True)
    worker = FrameWorker(
        session,
        lambda img: corner_candidates(true_h),
        lambda img: piece_detections(true_h),
        on_result=on_result,
    )
    with worker:
        worker.submit(IMAGE)
        assert done.wait(5.0)
    assert results[0].placement == START_PLACEMENT


def test_busy_worker_drops_stale_frames(true_h):
    gate = threading.Event()
    started = threading.Event()

    def gated_corners(img):
        started.set()
        gate.wait(5.0)
        return corner_candidates(true_h)

    session = TrackingSession(TrackerConfig(detector_timeout_s=10.0), single_image=True)
    worker = FrameWorker(session, gated_corners, lambda img: piece_detections(true_h)).start()
    try:
        worker.submit(IMAGE)
        assert started.wait(5.0)
        # The first frame is in flight; of the next two only the newest survives
        worker.submit(IMAGE)
        worker.submit(IMAGE)
        assert worker.dropped == 1
        gate.set()
        deadline = time.monotonic() + 5.0
        while worker.processed < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        gate.set()
        worker.stop(timeout=2.0)
    assert worker.processed == 2
