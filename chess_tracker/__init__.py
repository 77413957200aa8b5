"""
Chess Board Tracking System
===========================

Turns noisy detector output for a photographed or filmed chessboard –
corner candidates with scores and piece boxes with class scores – into a
FEN string with a structural sanity report.

Architecture:
    1. Grid Solver        – Delaunay quads → 7×7 lattice → homography
    2. Orientation        – which side white plays from, by piece colour
    3. Square Projection  – square ids ↔ image pixels
    4. Assignment         – one detection per square per frame
    5. Accumulation       – per-square evidence with EMA decay
    6. FEN Synthesis      – occupancy, notation fields, sanity warnings
"""

__version__ = "1.0.0"
