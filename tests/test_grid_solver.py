"""Tests for grid reconstruction: quads, lattice growth and the homography."""
from __future__ import annotations

import logging
import random

import numpy as np
import pytest

from chess_tracker.config import TrackerConfig
from chess_tracker.errors import GridReconstructionFailed, NoCornersDetected
from chess_tracker.geometry.grid_solver import (
    CornerCandidate,
    _canonical_cycle,
    project_points,
    solve_grid,
)
from tests.boards import (
    ALL_NODES,
    FRAME_HEIGHT,
    FRAME_WIDTH,
    IMAGE_CORNERS,
    corner_candidates,
    homography,
)

FRAME = (FRAME_WIDTH, FRAME_HEIGHT)
BOARD_IDEAL = np.array([[0, 0], [8, 0], [8, 8], [0, 8]], dtype=np.float64)


def _max_error(mapping, true_h, ideal=BOARD_IDEAL) -> float:
    got = mapping.to_image(ideal)
    want = project_points(true_h, ideal)
    return float(np.max(np.linalg.norm(got - want, axis=1)))


class TestPerfectLattice:
    def test_matches_ground_truth(self, true_h):
        mapping = solve_grid(corner_candidates(true_h), frame_size=FRAME)
        assert _max_error(mapping, true_h) < 0.05
        assert _max_error(mapping, true_h, np.array(ALL_NODES, dtype=float)) < 0.05

    def test_every_node_snapped(self, mapping):
        assert mapping.support == 49
        assert mapping.lattice.shape == (7, 7, 2)

    def test_round_trip_image_space(self, mapping):
        pts = mapping.lattice.reshape(-1, 2)
        back = mapping.to_image(mapping.to_ideal(pts))
        assert np.max(np.linalg.norm(back - pts, axis=1)) < 1e-6

    def test_round_trip_ideal_space(self, mapping):
        ideal = np.array([(u + 0.5, v + 0.5) for u in range(8) for v in range(8)], dtype=float)
        back = mapping.to_ideal(mapping.to_image(ideal))
        assert np.allclose(back, ideal, atol=1e-6)

    def test_orientation_left_unresolved(self, mapping):
        assert mapping.orientation_resolved is False

    def test_seed_quad_is_a_grid_cell(self, mapping):
        assert mapping.seed is not None
        assert mapping.seed.score >= 44.0 * 0.95 - 1e-6


class TestDeterminism:
    def test_permutation_gives_same_mapping(self, true_h):
        candidates = corner_candidates(true_h)
        reference = solve_grid(candidates, frame_size=FRAME)

        rng = random.Random(7)
        for _ in range(5):
            shuffled = list(candidates)
            rng.shuffle(shuffled)
            again = solve_grid(shuffled, frame_size=FRAME)
            assert again.seed.indices == reference.seed.indices
            assert np.allclose(again.forward, reference.forward, atol=1e-9)

    def test_duplicates_are_merged(self, true_h):
        candidates = corner_candidates(true_h)
        doubled = candidates + [CornerCandidate(c.x, c.y, 0.5) for c in candidates[:10]]
        a = solve_grid(candidates, frame_size=FRAME)
        b = solve_grid(doubled, frame_size=FRAME)
        assert np.allclose(a.forward, b.forward, atol=1e-9)

    def test_canonical_cycle(self):
        assert _canonical_cycle((5, 2, 9, 4)) == (2, 5, 4, 9)
        assert _canonical_cycle((5, 2, 9, 4)) == _canonical_cycle((4, 9, 2, 5))
        assert _canonical_cycle((1, 3, 2, 4)) == _canonical_cycle((2, 3, 1, 4))


class TestPartialDetection:
    def test_sparse_corners_extrapolate(self, true_h):
        nodes = [(1, 1), (2, 1), (2, 2), (1, 2), (7, 7), (5, 3)]
        mapping = solve_grid(corner_candidates(true_h, nodes), frame_size=FRAME)
        assert _max_error(mapping, true_h) < 1.0
        assert mapping.support == 6

    def test_missing_half_the_lattice(self, true_h):
        nodes = [n for n in ALL_NODES if (n[0] + n[1]) % 2 == 0 or n[0] < 3]
        mapping = solve_grid(corner_candidates(true_h, nodes), frame_size=FRAME)
        assert _max_error(mapping, true_h) < 0.5

    def test_noise_and_outliers(self, true_h):
        candidates = corner_candidates(true_h, noise_px=0.3, seed=3)
        outliers = project_points(true_h, [(3.5, 3.5), (5.5, 2.5), (1.5, 6.5), (6.5, 6.5)])
        candidates += [CornerCandidate(float(x), float(y), 0.6) for x, y in outliers]
        mapping = solve_grid(candidates, frame_size=FRAME)
        assert _max_error(mapping, true_h) < 1.5

    def test_clustered_corners_guess_the_placement(self, true_h, caplog):
        # A 3×3 patch of corners fits many 7×7 windows equally well; the
        # centred one wins, so the board comes out shifted by whole squares
        nodes = [(i, j) for i in range(1, 4) for j in range(1, 4)]
        with caplog.at_level(logging.INFO, logger="chess_tracker.geometry.grid_solver"):
            mapping = solve_grid(corner_candidates(true_h, nodes), frame_size=FRAME)
        assert mapping.support == 9
        assert mapping.placement_guessed
        assert mapping.seed.window_ties > 1
        assert mapping.to_dict()["placement_guessed"] is True
        centre = mapping.to_ideal(project_points(true_h, [(2, 2)]))[0]
        assert np.allclose(centre, (4, 4), atol=1e-3)
        assert any("placement guessed" in r.getMessage() for r in caplog.records)

    def test_full_lattice_placement_is_not_guessed(self, mapping):
        assert not mapping.placement_guessed
        assert mapping.seed.window_ties == 1


class TestCanonicalLabelling:
    def test_axes_follow_the_image(self):
        # Same board, ideal labels rotated by 90° relative to the image
        rotated = np.roll(IMAGE_CORNERS, -1, axis=0)
        H = homography(rotated)
        mapping = solve_grid(corner_candidates(H), frame_size=FRAME)
        assert np.allclose(mapping.board_corners(), IMAGE_CORNERS, atol=0.05)

    def test_mirrored_labels(self):
        mirrored = IMAGE_CORNERS[[1, 0, 3, 2]]
        H = homography(mirrored)
        mapping = solve_grid(corner_candidates(H), frame_size=FRAME)
        assert np.allclose(mapping.board_corners(), IMAGE_CORNERS, atol=0.05)


class TestFailures:
    def test_too_few_corners(self, true_h):
        with pytest.raises(NoCornersDetected):
            solve_grid(corner_candidates(true_h, [(1, 1), (2, 1), (2, 2)]), frame_size=FRAME)

    def test_empty_input(self):
        with pytest.raises(NoCornersDetected):
            solve_grid([])

    def test_low_confidence_is_unusable(self, true_h):
        candidates = corner_candidates(true_h, confidence=0.01)
        with pytest.raises(NoCornersDetected):
            solve_grid(candidates, frame_size=FRAME)

    def test_non_finite_is_unusable(self):
        candidates = [CornerCandidate(float("nan"), 1.0, 0.9)] * 10
        with pytest.raises(NoCornersDetected):
            solve_grid(candidates)

    def test_collinear_candidates(self):
        candidates = [CornerCandidate(10.0 * k, 5.0 * k, 0.9) for k in range(6)]
        with pytest.raises(GridReconstructionFailed):
            solve_grid(candidates)

    def test_single_cell_scores_too_low(self, true_h):
        candidates = corner_candidates(true_h, [(3, 3), (4, 3), (4, 4), (3, 4)])
        with pytest.raises(GridReconstructionFailed):
            solve_grid(candidates, frame_size=FRAME)

    def test_min_quad_score_is_configurable(self, true_h):
        candidates = corner_candidates(true_h, [(1, 1), (2, 1), (2, 2), (1, 2), (7, 7), (5, 3)])
        with pytest.raises(GridReconstructionFailed):
            solve_grid(candidates, TrackerConfig(min_quad_score=5.0), FRAME)

    def test_random_points_do_not_form_a_grid(self):
        rng = np.random.default_rng(11)
        pts = rng.uniform(0, 500, size=(20, 2))
        candidates = [CornerCandidate(float(x), float(y), 0.9) for x, y in pts]
        with pytest.raises(GridReconstructionFailed):
            solve_grid(candidates, TrackerConfig(min_quad_score=10.0), FRAME)

    def test_confidence_validated(self):
        with pytest.raises(ValueError):
            CornerCandidate(1.0, 2.0, 1.5)
