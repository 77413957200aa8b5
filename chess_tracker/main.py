"""
Chess Tracking System – Main Entry Point
========================================

Commands:

  1. **Recognize** – Run corner + piece YOLO models on one image and print
                     the FEN result.
  2. **Replay**    – Feed recorded detector output (JSON) through a
                     tracking session, frame by frame.
  3. **Check**     – Ask the chess-rules collaborator about a FEN, and
                     optionally apply a move.

Usage examples
--------------

**Single image**::

    python chess_tracker.py recognize \\
        --image game.png \\
        --corner-model weights/corners.pt \\
        --piece-model weights/pieces.pt \\
        --visualize

**Replay recorded detections**::

    python chess_tracker.py replay --frames session.json --json

**Rules check**::

    python chess_tracker.py check \\
        --fen "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1" \\
        --move e2e4

Replay file format: a JSON list of frames (or ``{"frames": [...]}``)::

    {"width": 640, "height": 480,
     "corners": [[x, y, conf], ...],
     "pieces":  [[x1, y1, x2, y2, "white_king", conf], ...]}
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

import cv2

from chess_tracker.config import TrackerConfig, load_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("chess_tracker")


def _config(args: argparse.Namespace) -> TrackerConfig:
    return load_config(args.config) if args.config else TrackerConfig()


def _print_result(notation, as_json: bool, label: str = "CHESS TRACKING RESULT") -> None:
    if as_json:
        print(json.dumps(notation.to_dict()))
        return
    print("\n" + "=" * 60)
    print(f"  {label}")
    print("=" * 60)
    print(f"  FEN (placement): {notation.placement}")
    print(f"  FEN (full)     : {notation.fen}")
    print(f"  Valid position : {notation.is_valid}")
    for w in notation.warnings:
        print(f"  Warning        : [{w.kind}/{w.severity}] {w.message}")
    print("=" * 60 + "\n")


# ═══════════════════════════════════════════════════════════════════════
# Recognize
# ═══════════════════════════════════════════════════════════════════════

def cmd_recognize(args: argparse.Namespace) -> None:
    """Run the tracking pipeline on a single image."""
    from chess_tracker.inference.pipeline import ChessTrackingPipeline

    image = cv2.imread(args.image)
    if image is None:
        log.error("Could not read image: %s", args.image)
        sys.exit(1)

    pipeline = ChessTrackingPipeline.from_yolo(
        corner_model_path=args.corner_model,
        piece_model_path=args.piece_model,
        config=_config(args),
        device=args.device,
    )
    try:
        result = pipeline.recognize(image)
    finally:
        pipeline.close()

    if args.json:
        print(json.dumps(result.to_dict()))
    else:
        _print_result(result.notation, as_json=False)

    if args.visualize or args.save_debug:
        pipeline.visualize(
            image, result, show=args.visualize, save_path=args.save_debug or None,
        )


# ═══════════════════════════════════════════════════════════════════════
# Replay
# ═══════════════════════════════════════════════════════════════════════

def load_frames(path: str | Path) -> List:
    """Parse a replay file into ``FrameInput`` objects."""
    from chess_tracker.geometry.grid_solver import CornerCandidate
    from chess_tracker.tracking.assignment import PieceDetection
    from chess_tracker.tracking.session import FrameInput

    with open(path, "r", encoding="utf-8-sig") as f:
        data = json.loads(f.read())
    if isinstance(data, dict):
        data = data.get("frames", [])

    frames: List[FrameInput] = []
    for i, raw in enumerate(data):
        corners = [
            CornerCandidate(float(c[0]), float(c[1]), float(c[2]) if len(c) > 2 else 1.0)
            for c in raw.get("corners", [])
        ]
        pieces = []
        for p in raw.get("pieces", []):
            try:
                pieces.append(PieceDetection(
                    box=(p[0], p[1], p[2], p[3]), piece=str(p[4]), confidence=float(p[5]),
                ))
            except (ValueError, IndexError) as exc:
                log.warning("Frame %d: skipping piece %s (%s)", i, p, exc)
        frames.append(FrameInput(
            corners=corners,
            pieces=pieces,
            width=raw.get("width"),
            height=raw.get("height"),
        ))
    return frames


def cmd_replay(args: argparse.Namespace) -> None:
    """Replay recorded detections through one tracking session."""
    from chess_tracker.tracking.session import TrackingSession

    frames = load_frames(args.frames)
    session = TrackingSession(_config(args), single_image=args.single_image)
    log.info("Replaying %d frame(s) from %s", len(frames), args.frames)

    for i, frame in enumerate(frames):
        notation = session.process_frame(frame)
        _print_result(notation, as_json=args.json, label=f"FRAME {i}")


# ═══════════════════════════════════════════════════════════════════════
# Check
# ═══════════════════════════════════════════════════════════════════════

def cmd_check(args: argparse.Namespace) -> None:
    """Validate a FEN (and optionally a move) with the rules collaborator."""
    from chess_tracker.inference.rules import apply_move, check_notation

    verdict = apply_move(args.fen, args.move) if args.move else check_notation(args.fen)
    print(json.dumps(verdict.to_dict()))
    if not verdict.accepted:
        sys.exit(2)


# ═══════════════════════════════════════════════════════════════════════
# CLI
# ═══════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chess_tracker",
        description="Chessboard state tracking from corner and piece detections.",
    )
    sub = parser.add_subparsers(dest="command", help="Available commands")

    # ── recognize ──
    p_rec = sub.add_parser("recognize", help="Recognize a single image")
    p_rec.add_argument("--image", required=True, help="Path to image")
    p_rec.add_argument("--corner-model", required=True,
                       help="YOLOv8 .pt detecting interior grid corners")
    p_rec.add_argument("--piece-model", required=True,
                       help="YOLOv8 .pt detecting the 12 piece classes")
    p_rec.add_argument("--config", default=None, help="JSON tracker config")
    p_rec.add_argument("--device", default=None, help="Inference device, e.g. cpu or cuda")
    p_rec.add_argument("--json", action="store_true", help="Print JSON output")
    p_rec.add_argument("--visualize", action="store_true",
                       help="Show debug visualisation")
    p_rec.add_argument("--save-debug", default=None,
                       help="Save debug image to path")

    # ── replay ──
    p_rep = sub.add_parser("replay", help="Replay recorded detector output")
    p_rep.add_argument("--frames", required=True, help="JSON file of frames")
    p_rep.add_argument("--config", default=None, help="JSON tracker config")
    p_rep.add_argument("--single-image", action="store_true",
                       help="Disable evidence decay between frames")
    p_rep.add_argument("--json", action="store_true", help="Print one JSON line per frame")

    # ── check ──
    p_chk = sub.add_parser("check", help="Validate a FEN with the rules library")
    p_chk.add_argument("--fen", required=True)
    p_chk.add_argument("--move", default=None, help="UCI move to apply")

    return parser


def main(argv: List[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    dispatch = {
        "recognize": cmd_recognize,
        "replay": cmd_replay,
        "check": cmd_check,
    }

    dispatch[args.command](args)


if __name__ == "__main__":
    main()
