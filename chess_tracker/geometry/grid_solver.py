"""
Grid Solver – Delaunay quads → 8×8 lattice → homography
========================================================

Reconstructs the chessboard grid from a noisy, possibly sparse set of
interior corner candidates (the 7×7 intersections where four squares meet).

Strategy:
  1. **Triangulate** the usable candidates (``scipy.spatial.Delaunay``).
  2. **Quads** – every pair of triangles sharing an edge is a grid-cell
     hypothesis; the shared edge is the cell diagonal.
  3. **Score** – map all *other* candidates into the quad's unit-square
     frame and count (confidence-weighted) those that land on integer
     lattice nodes inside the best-placed 7×7 window.
  4. **Grow** the full 7×7 interior lattice from the best quad by local
     extrapolation, snapping to real candidates within tolerance.
  5. **Fit** one least-squares homography over all 49 nodes
     (``cv2.findHomography``) and invert it.

Ideal board space puts the outer board corners at (0, 0)…(8, 8), so the
interior nodes are the integer points (i, j) with 1 ≤ i, j ≤ 7.  The final
labelling is canonical: ideal u points towards image-right, ideal v
towards image-down.  Which corner is a1 is decided later by the
orientation resolver.

Everything here is a pure function of the candidate set – no session
state is read or written.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import cv2
import numpy as np
from scipy.spatial import Delaunay, QhullError

from chess_tracker.config import TrackerConfig
from chess_tracker.errors import GridReconstructionFailed, NoCornersDetected

log = logging.getLogger(__name__)

Node = Tuple[int, int]

LATTICE_SIZE: int = 7          # interior intersections per side
BOARD_SIZE: int = 8            # squares per side
MIN_CANDIDATES: int = 4

MIN_QUAD_AREA_FRACTION: float = 1e-4   # of the frame area
MIN_QUAD_AREA_PX: float = 1.0          # when the frame size is unknown
MAX_QUAD_SPACE_EXTENT: float = 9.0     # farther than this cannot be on the lattice
LOCAL_FIT_NEIGHBOURS: int = 12

_UNIT_SQUARE = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=np.float32)
_UNIT_NODES: List[Node] = [(0, 0), (1, 0), (1, 1), (0, 1)]
_ALL_NODES: List[Node] = [
    (i, j) for i in range(1, LATTICE_SIZE + 1) for j in range(1, LATTICE_SIZE + 1)
]


# ── Data classes ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class CornerCandidate:
    """One detected interior-grid intersection guess (image pixels)."""
    x: float
    y: float
    confidence: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Corner confidence out of [0, 1]: {self.confidence}")


class Orientation(str, Enum):
    """Where a1 sits relative to the canonical grid labelling."""
    NORMAL = "normal"              # white at the image bottom, a1 bottom-left
    ROTATED_90 = "rotated_90"      # white at the image left, a1 top-left
    ROTATED_180 = "rotated_180"    # white at the image top, a1 top-right
    ROTATED_270 = "rotated_270"    # white at the image right, a1 bottom-right


@dataclass
class Quad:
    """Two adjacent Delaunay triangles read as one grid cell."""
    indices: Tuple[int, int, int, int]   # candidate indices, cyclic order
    points: np.ndarray                   # 4×2 image points, same order
    score: float
    residual: float                      # mean inlier distance to lattice nodes (cell units)
    window: Tuple[int, int]              # quad-space origin of the 7×7 lattice
    window_ties: int = 1                 # windows sharing the best score


@dataclass
class BoardMapping:
    """Solved correspondence between ideal board space and the image."""
    forward: np.ndarray                  # 3×3, ideal → image
    inverse: np.ndarray                  # 3×3, image → ideal
    orientation: Orientation = Orientation.NORMAL
    orientation_resolved: bool = False
    lattice: Optional[np.ndarray] = None   # (7, 7, 2); lattice[i-1, j-1] = node (i, j)
    snapped: Optional[np.ndarray] = None   # (7, 7) bool, True where a real candidate was used
    seed: Optional[Quad] = field(default=None, repr=False)

    def to_image(self, ideal_pts) -> np.ndarray:
        return project_points(self.forward, ideal_pts)

    def to_ideal(self, image_pts) -> np.ndarray:
        return project_points(self.inverse, image_pts)

    @property
    def support(self) -> int:
        """Number of lattice nodes backed by a real candidate."""
        return 0 if self.snapped is None else int(self.snapped.sum())

    @property
    def placement_guessed(self) -> bool:
        """True when the seed fit several 7×7 windows equally well.

        The board may then be shifted by whole squares along an axis the
        detected corners do not span.
        """
        return self.seed is not None and self.seed.window_ties > 1

    def with_orientation(
        self, orientation: Orientation, resolved: bool = True,
    ) -> "BoardMapping":
        return replace(self, orientation=orientation, orientation_resolved=resolved)

    def board_corners(self) -> np.ndarray:
        """Outer board corners in the image, ideal order (0,0),(8,0),(8,8),(0,8)."""
        ideal = np.array(
            [[0, 0], [BOARD_SIZE, 0], [BOARD_SIZE, BOARD_SIZE], [0, BOARD_SIZE]],
            dtype=np.float64,
        )
        return self.to_image(ideal)

    def to_dict(self) -> dict:
        return {
            "forward": self.forward.tolist(),
            "inverse": self.inverse.tolist(),
            "orientation": self.orientation.value,
            "orientation_resolved": self.orientation_resolved,
            "support": self.support,
            "placement_guessed": self.placement_guessed,
            "board_corners": self.board_corners().tolist(),
        }


# ── Projective helpers ─────────────────────────────────────────────────

def project_points(H: np.ndarray, pts) -> np.ndarray:
    """Apply homography *H* to an (N, 2) array; points at infinity become NaN."""
    arr = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    homog = np.hstack([arr, np.ones((len(arr), 1))]) @ np.asarray(H, dtype=np.float64).T
    w = homog[:, 2:3]
    with np.errstate(divide="ignore", invalid="ignore"):
        out = homog[:, :2] / w
    out[~np.isfinite(out).all(axis=1)] = np.nan
    return out


def projective_w(H: np.ndarray, pts) -> np.ndarray:
    """Homogeneous w of each projected point (sign = which side of the horizon)."""
    arr = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    return np.hstack([arr, np.ones((len(arr), 1))]) @ np.asarray(H, dtype=np.float64)[2]


def _polygon_area(pts: np.ndarray) -> float:
    x, y = pts[:, 0], pts[:, 1]
    return 0.5 * abs(float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))))


def _is_convex(pts: np.ndarray) -> bool:
    """True if the 4 cyclic points form a strictly convex quadrilateral."""
    cross = []
    for i in range(4):
        d1 = pts[(i + 1) % 4] - pts[i]
        d2 = pts[(i + 2) % 4] - pts[(i + 1) % 4]
        cross.append(d1[0] * d2[1] - d1[1] * d2[0])
    cross = np.asarray(cross)
    return bool(np.all(cross > 0) or np.all(cross < 0))


def _fit_homography(src: np.ndarray, dst: np.ndarray) -> Optional[np.ndarray]:
    """Least-squares homography src → dst, or None when degenerate."""
    if len(src) < 4:
        return None
    # Needs at least one non-collinear triple in the source set
    if np.linalg.matrix_rank(np.column_stack([src, np.ones(len(src))])) < 3:
        return None
    H, _ = cv2.findHomography(
        src.astype(np.float64).reshape(-1, 1, 2),
        dst.astype(np.float64).reshape(-1, 1, 2),
        0,
    )
    if H is None or not np.isfinite(H).all() or abs(H[2, 2]) < 1e-12:
        return None
    return H / H[2, 2]


# ── Candidate preparation ──────────────────────────────────────────────

def _usable_candidates(
    candidates: Iterable[CornerCandidate],
    config: TrackerConfig,
) -> Tuple[np.ndarray, np.ndarray]:
    """Filter, de-duplicate and canonically sort the candidates.

    Sorting makes every downstream step independent of input order.
    """
    best: Dict[Tuple[float, float], float] = {}
    for c in candidates:
        if not (math.isfinite(c.x) and math.isfinite(c.y)):
            continue
        if c.confidence < config.min_corner_confidence:
            continue
        key = (float(c.x), float(c.y))
        best[key] = max(best.get(key, 0.0), float(c.confidence))

    ordered = sorted(best.items())
    pts = np.array([k for k, _ in ordered], dtype=np.float64).reshape(-1, 2)
    conf = np.array([v for _, v in ordered], dtype=np.float64)
    return pts, conf


# ── Quad enumeration & scoring ─────────────────────────────────────────

def _enumerate_quads(tri: Delaunay) -> List[Tuple[int, int, int, int]]:
    """Pairs of triangles sharing an edge, as cyclic vertex 4-tuples."""
    quads: List[Tuple[int, int, int, int]] = []
    for s, simplex in enumerate(tri.simplices):
        for k in range(3):
            n = int(tri.neighbors[s, k])
            if n < s:          # -1 (hull edge) or pair already seen
                continue
            a = int(simplex[k])
            e1, e2 = int(simplex[(k + 1) % 3]), int(simplex[(k + 2) % 3])
            b = next(int(v) for v in tri.simplices[n] if v != e1 and v != e2)
            quads.append(_canonical_cycle((a, e1, b, e2)))
    return sorted(set(quads))


def _canonical_cycle(cycle: Tuple[int, int, int, int]) -> Tuple[int, int, int, int]:
    """Rotate/reverse a 4-cycle so equal quads get equal keys."""
    i = cycle.index(min(cycle))
    rot = cycle[i:] + cycle[:i]
    if rot[3] < rot[1]:
        rot = (rot[0], rot[3], rot[2], rot[1])
    return rot  # type: ignore[return-value]


def _score_quad(
    indices: Tuple[int, int, int, int],
    pts: np.ndarray,
    conf: np.ndarray,
    tolerance: float,
) -> Optional[Quad]:
    """Extrapolate the quad to a lattice and score the best 7×7 placement."""
    quad_pts = pts[list(indices)]
    H = cv2.getPerspectiveTransform(_UNIT_SQUARE, quad_pts.astype(np.float32))
    try:
        H_inv = np.linalg.inv(H)
    except np.linalg.LinAlgError:
        return None

    others = np.setdiff1d(np.arange(len(pts)), np.asarray(indices))
    q = project_points(H_inv, pts[others])
    nodes = np.rint(q)
    resid = np.linalg.norm(q - nodes, axis=1)
    ok = (
        np.isfinite(q).all(axis=1)
        & (np.abs(np.nan_to_num(q, nan=np.inf)) <= MAX_QUAD_SPACE_EXTENT).all(axis=1)
        & (resid < tolerance)
    )

    # One candidate per node: highest confidence, then smallest residual
    per_node: Dict[Node, Tuple[float, float]] = {}
    for k in np.flatnonzero(ok):
        node = (int(nodes[k, 0]), int(nodes[k, 1]))
        if node in _UNIT_NODES:
            continue
        cand = (float(conf[others[k]]), float(resid[k]))
        prev = per_node.get(node)
        if prev is None or (cand[0], -cand[1]) > (prev[0], -prev[1]):
            per_node[node] = cand

    if per_node:
        node_xy = np.array(list(per_node.keys()), dtype=np.int64)
        node_conf = np.array([v[0] for v in per_node.values()])
        node_res = np.array([v[1] for v in per_node.values()])
        centroid = np.vstack([node_xy, _UNIT_NODES]).mean(axis=0)
    else:
        node_xy = np.zeros((0, 2), dtype=np.int64)
        node_conf = node_res = np.zeros(0)
        centroid = np.array([0.5, 0.5])

    # Window [w, w+6] on each axis must contain the quad's own nodes 0 and 1
    best_key = None
    best = (0.0, 0.0, (0, 0))
    ties = 0
    span = LATTICE_SIZE - 1
    for wx in range(1 - span, 1):
        for wy in range(1 - span, 1):
            inside = (
                (node_xy[:, 0] >= wx) & (node_xy[:, 0] <= wx + span)
                & (node_xy[:, 1] >= wy) & (node_xy[:, 1] <= wy + span)
            )
            score = float(node_conf[inside].sum())
            residual = float(node_res[inside].mean()) if inside.any() else 0.0
            offcentre = float(np.hypot(wx + span / 2 - centroid[0], wy + span / 2 - centroid[1]))
            key = (-round(score, 9), round(offcentre, 9), wx, wy)
            # More than one window holding the best score means the nodes span
            # fewer than 7 lattice lines; the off-centre rule then only guesses
            if best_key is None or key[0] < best_key[0]:
                ties = 1
            elif key[0] == best_key[0]:
                ties += 1
            if best_key is None or key < best_key:
                best_key = key
                best = (score, residual, (wx, wy))

    score, residual, window = best
    return Quad(
        indices=indices,
        points=quad_pts,
        score=score,
        residual=residual,
        window=window,
        window_ties=ties,
    )


def find_seed_quad(
    pts: np.ndarray,
    conf: np.ndarray,
    config: TrackerConfig,
    frame_size: Optional[Tuple[int, int]] = None,
) -> Quad:
    """Return the best-scoring quad over the Delaunay triangulation.

    *pts*/*conf* must already be canonically ordered (see
    ``_usable_candidates``).  Raises ``GridReconstructionFailed`` when no
    quad reaches ``config.min_quad_score``.
    """
    try:
        tri = Delaunay(pts)
    except (QhullError, ValueError) as exc:
        raise GridReconstructionFailed(
            f"Corner candidates are degenerate (triangulation failed: {exc})"
        ) from exc

    if frame_size is not None:
        min_area = MIN_QUAD_AREA_FRACTION * frame_size[0] * frame_size[1]
    else:
        min_area = MIN_QUAD_AREA_PX

    scored: List[Quad] = []
    for indices in _enumerate_quads(tri):
        quad_pts = pts[list(indices)]
        if _polygon_area(quad_pts) < min_area or not _is_convex(quad_pts):
            continue
        quad = _score_quad(indices, pts, conf, config.snap_tolerance)
        if quad is not None:
            scored.append(quad)

    if not scored:
        raise GridReconstructionFailed("No convex quad found among corner candidates")

    scored.sort(key=lambda q: (-round(q.score, 9), round(q.residual, 9), q.indices))
    seed = scored[0]
    log.debug(
        "Seed quad %s  score=%.3f  residual=%.4f  window=%s  (%d quads)",
        seed.indices, seed.score, seed.residual, seed.window, len(scored),
    )
    if seed.score < config.min_quad_score:
        raise GridReconstructionFailed(
            f"Best quad score {seed.score:.2f} below minimum {config.min_quad_score:.2f}"
        )
    return seed


# ── Lattice growth ─────────────────────────────────────────────────────

def _neighbours(node: Node) -> List[Node]:
    i, j = node
    return [(i + 1, j), (i - 1, j), (i, j + 1), (i, j - 1)]


def _extrapolate(
    known: Dict[Node, np.ndarray], node: Node,
) -> Optional[Tuple[np.ndarray, float]]:
    """Predict *node*'s image position from the nearest known nodes.

    Returns ``(point, local_cell_size_px)`` or None.
    """
    ranked = sorted(
        known, key=lambda n: ((n[0] - node[0]) ** 2 + (n[1] - node[1]) ** 2, n),
    )
    H = None
    for subset in (ranked[:LOCAL_FIT_NEIGHBOURS], ranked):
        src = np.array(subset, dtype=np.float64)
        dst = np.array([known[n] for n in subset], dtype=np.float64)
        H = _fit_homography(src, dst)
        if H is not None:
            break
    if H is None:
        return None

    i, j = node
    p, right, down = project_points(H, [(i, j), (i + 1, j), (i, j + 1)])
    if not (np.isfinite(p).all() and np.isfinite(right).all() and np.isfinite(down).all()):
        return None
    scale = 0.5 * (np.linalg.norm(right - p) + np.linalg.norm(down - p))
    return p, float(scale)


def _snap(
    predictions: Dict[Node, Tuple[np.ndarray, float]],
    pts: np.ndarray,
    used: set,
    tolerance: float,
) -> Dict[Node, int]:
    """Greedy snap of predicted nodes to unused candidates, nearest first."""
    proposals: List[Tuple[float, Node, int]] = []
    for node, (pt, scale) in predictions.items():
        d = np.linalg.norm(pts - pt, axis=1)
        for idx in np.flatnonzero(d < tolerance * scale):
            if int(idx) not in used:
                proposals.append((float(d[idx]), node, int(idx)))
    proposals.sort()

    taken: Dict[Node, int] = {}
    claimed = set(used)
    for _, node, idx in proposals:
        if node in taken or idx in claimed:
            continue
        taken[node] = idx
        claimed.add(idx)
    return taken


def _grow_lattice(
    seed: Quad, pts: np.ndarray, tolerance: float,
) -> Tuple[Dict[Node, np.ndarray], Dict[Node, int]]:
    """Grow the 7×7 lattice ring by ring from the seed quad."""
    wx, wy = seed.window
    known: Dict[Node, np.ndarray] = {}
    snapped: Dict[Node, int] = {}
    for (qx, qy), idx in zip(_UNIT_NODES, seed.indices):
        node = (qx - wx + 1, qy - wy + 1)
        known[node] = pts[idx]
        snapped[node] = idx

    while len(known) < len(_ALL_NODES):
        frontier = sorted(
            n for n in _ALL_NODES
            if n not in known and any(nb in known for nb in _neighbours(n))
        )
        predictions: Dict[Node, Tuple[np.ndarray, float]] = {}
        for node in frontier:
            pred = _extrapolate(known, node)
            if pred is not None:
                predictions[node] = pred
        if not predictions:
            raise GridReconstructionFailed(
                f"Lattice growth stalled at {len(known)}/{len(_ALL_NODES)} nodes"
            )

        taken = _snap(predictions, pts, set(snapped.values()), tolerance)
        for node, (pt, _) in predictions.items():
            if node in taken:
                snapped[node] = taken[node]
                known[node] = pts[taken[node]]
            else:
                known[node] = pt

    return known, snapped


# ── Canonical labelling & final fit ────────────────────────────────────

def _canonical_relabel(
    known: Dict[Node, np.ndarray], snapped: Dict[Node, int],
) -> Tuple[Dict[Node, np.ndarray], Dict[Node, int]]:
    """Relabel nodes so ideal u → image right and ideal v → image down."""
    src = np.array(list(known.keys()), dtype=np.float64)
    dst = np.array(list(known.values()), dtype=np.float64)
    H = _fit_homography(src, dst)
    if H is None:
        raise GridReconstructionFailed("Lattice homography is degenerate")

    centre, along_u, along_v = project_points(H, [(4, 4), (5, 4), (4, 5)])
    du, dv = along_u - centre, along_v - centre
    transpose = abs(du[1]) / np.linalg.norm(du) > abs(dv[1]) / np.linalg.norm(dv)
    if transpose:
        du, dv = dv, du
    flip_u = du[0] < 0
    flip_v = dv[1] < 0

    def relabel(node: Node) -> Node:
        i, j = node
        if transpose:
            i, j = j, i
        if flip_u:
            i = BOARD_SIZE - i
        if flip_v:
            j = BOARD_SIZE - j
        return i, j

    return (
        {relabel(n): p for n, p in known.items()},
        {relabel(n): idx for n, idx in snapped.items()},
    )


def _fit_lattice(known: Dict[Node, np.ndarray]) -> np.ndarray:
    nodes = sorted(known)
    H = _fit_homography(
        np.array(nodes, dtype=np.float64),
        np.array([known[n] for n in nodes], dtype=np.float64),
    )
    if H is None:
        raise GridReconstructionFailed("Least-squares lattice fit failed")
    return H


def _refine(
    H: np.ndarray,
    known: Dict[Node, np.ndarray],
    snapped: Dict[Node, int],
    pts: np.ndarray,
    tolerance: float,
) -> Tuple[np.ndarray, Dict[Node, np.ndarray], Dict[Node, int]]:
    """Re-snap extrapolated nodes against the global fit, then refit."""
    open_nodes = [n for n in _ALL_NODES if n not in snapped]
    if not open_nodes:
        return H, known, snapped

    predictions: Dict[Node, Tuple[np.ndarray, float]] = {}
    for node in open_nodes:
        i, j = node
        p, right, down = project_points(H, [(i, j), (i + 1, j), (i, j + 1)])
        scale = 0.5 * (np.linalg.norm(right - p) + np.linalg.norm(down - p))
        predictions[node] = (p, float(scale))

    taken = _snap(predictions, pts, set(snapped.values()), tolerance)
    if not taken:
        return H, known, snapped

    known = dict(known)
    snapped = dict(snapped)
    for node, idx in taken.items():
        known[node] = pts[idx]
        snapped[node] = idx
    for node in open_nodes:
        if node not in taken:
            known[node] = predictions[node][0]
    log.debug("Refinement snapped %d more node(s)", len(taken))
    return _fit_lattice(known), known, snapped


def _check_mapping(forward: np.ndarray, lattice_pts: np.ndarray, tolerance_px: float) -> np.ndarray:
    """Validate *forward* and return its normalised inverse."""
    det = float(np.linalg.det(forward))
    if not math.isfinite(det) or abs(det) < 1e-12:
        raise GridReconstructionFailed("Board homography is singular")

    corners = np.array(
        [(u, v) for u in range(BOARD_SIZE + 1) for v in range(BOARD_SIZE + 1)],
        dtype=np.float64,
    )
    if not (projective_w(forward, corners) > 0).all():
        raise GridReconstructionFailed("Board extends past the image horizon")

    inverse = np.linalg.inv(forward)
    inverse /= inverse[2, 2]

    back = project_points(forward, project_points(inverse, lattice_pts))
    err = float(np.max(np.linalg.norm(back - lattice_pts, axis=1)))
    if not math.isfinite(err) or err > tolerance_px:
        raise GridReconstructionFailed(
            f"Forward/inverse mapping inconsistent (max error {err:.3f}px)"
        )
    return inverse


# ── Public API ─────────────────────────────────────────────────────────

def solve_grid(
    candidates: Sequence[CornerCandidate],
    config: Optional[TrackerConfig] = None,
    frame_size: Optional[Tuple[int, int]] = None,
) -> BoardMapping:
    """Solve the board mapping from one frame's corner candidates.

    Parameters
    ----------
    candidates : sequence of CornerCandidate
        Interior corner guesses in image pixels, any order, any length.
    config : TrackerConfig, optional
        Grid-fit options (``min_quad_score``, ``snap_tolerance``,
        ``min_corner_confidence``, ``mapping_tolerance_px``).
    frame_size : (width, height), optional
        Used to scale the minimum acceptable quad area.

    Returns
    -------
    BoardMapping
        Orientation is left at ``NORMAL`` / unresolved.

    Raises
    ------
    NoCornersDetected
        Fewer than 4 usable candidates.
    GridReconstructionFailed
        No quad reaches the minimum score, or the fit is inconsistent.
    """
    config = config or TrackerConfig()
    pts, conf = _usable_candidates(candidates, config)
    if len(pts) < MIN_CANDIDATES:
        raise NoCornersDetected(
            f"{len(pts)} usable corner candidate(s), need at least {MIN_CANDIDATES}"
        )

    seed = find_seed_quad(pts, conf, config, frame_size)
    known, snapped = _grow_lattice(seed, pts, config.snap_tolerance)
    known, snapped = _canonical_relabel(known, snapped)

    forward = _fit_lattice(known)
    forward, known, snapped = _refine(forward, known, snapped, pts, config.snap_tolerance)

    lattice = np.zeros((LATTICE_SIZE, LATTICE_SIZE, 2), dtype=np.float64)
    mask = np.zeros((LATTICE_SIZE, LATTICE_SIZE), dtype=bool)
    for (i, j), p in known.items():
        lattice[i - 1, j - 1] = p
        mask[i - 1, j - 1] = (i, j) in snapped

    inverse = _check_mapping(forward, lattice.reshape(-1, 2), config.mapping_tolerance_px)

    log.debug(
        "Grid solved  seed=%s  score=%.2f  snapped=%d/%d",
        seed.indices, seed.score, int(mask.sum()), mask.size,
    )
    if seed.window_ties > 1:
        log.info(
            "Board placement guessed: corners span fewer than %d lattice lines "
            "(%d equally good windows); squares may be offset",
            LATTICE_SIZE, seed.window_ties,
        )
    return BoardMapping(
        forward=forward,
        inverse=inverse,
        lattice=lattice,
        snapped=mask,
        seed=seed,
    )
