"""
Root entry point – delegates to the chess_tracker package.

Usage:
    python chess_tracker.py recognize --image game.png --corner-model corners.pt --piece-model pieces.pt
    python chess_tracker.py replay    --frames session.json
    python chess_tracker.py check     --fen "8/8/8/8/8/8/8/K6k w - - 0 1"
"""

from chess_tracker.main import main

if __name__ == "__main__":
    main()
