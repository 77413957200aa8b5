"""
Tracker Configuration
=====================

Every tunable heuristic of the tracking core lives here as a named field
with a documented default.  The surface is fixed: ``load_config`` rejects
keys it does not recognise so a typo in a JSON file fails loudly instead of
silently falling back to a default.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class TrackerConfig:
    """Recognised options for grid fitting, assignment and accumulation."""

    # ── Grid fit ──
    min_quad_score: float = 1.0            # weighted inlier sum a seed quad must reach
    snap_tolerance: float = 0.25           # snap radius, fraction of local cell size
    min_corner_confidence: float = 0.05    # candidates below this are ignored
    mapping_tolerance_px: float = 1.0      # forward∘inverse round-trip tolerance

    # ── Assignment ──
    assignment_distance_fraction: float = 0.6  # of the local on-image square size

    # ── Accumulation ──
    decay_rate: float = 0.35               # EMA rate per frame
    confidence_ceiling: float = 1.0
    min_occupant_confidence: float = 0.4   # normalised score needed to resolve a square

    # ── Orientation ──
    orientation_min_separation: float = 1.0  # colour centroid gap, in squares

    # ── Detectors ──
    detector_timeout_s: float = 2.0

    def validate(self) -> "TrackerConfig":
        """Raise ``ValueError`` for out-of-range values; return ``self``."""
        if self.min_quad_score < 0:
            raise ValueError("min_quad_score must be >= 0")
        if not 0 < self.snap_tolerance < 0.5:
            raise ValueError("snap_tolerance must be in (0, 0.5)")
        if not 0 <= self.min_corner_confidence <= 1:
            raise ValueError("min_corner_confidence must be in [0, 1]")
        if self.mapping_tolerance_px <= 0:
            raise ValueError("mapping_tolerance_px must be > 0")
        if self.assignment_distance_fraction <= 0:
            raise ValueError("assignment_distance_fraction must be > 0")
        if not 0 < self.decay_rate <= 1:
            raise ValueError("decay_rate must be in (0, 1]")
        if self.confidence_ceiling <= 0:
            raise ValueError("confidence_ceiling must be > 0")
        if not 0 <= self.min_occupant_confidence <= 1:
            raise ValueError("min_occupant_confidence must be in [0, 1]")
        if self.orientation_min_separation < 0:
            raise ValueError("orientation_min_separation must be >= 0")
        if self.detector_timeout_s <= 0:
            raise ValueError("detector_timeout_s must be > 0")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def config_from_dict(
    data: Dict[str, Any],
    base: Optional[TrackerConfig] = None,
) -> TrackerConfig:
    """Overlay *data* on *base* (defaults if omitted) and validate."""
    known = {f.name for f in fields(TrackerConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config option(s): {', '.join(unknown)}")
    base = base or TrackerConfig()
    values = {k: float(v) for k, v in data.items()}
    return replace(base, **values).validate()


def load_config(path: str | Path) -> TrackerConfig:
    """Read a JSON config file.  Missing keys keep their defaults."""
    with open(path, "r", encoding="utf-8-sig") as f:
        data = json.loads(f.read())
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be an object: {path}")
    return config_from_dict(data)
