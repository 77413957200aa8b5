"""Tests for square ↔ image projection."""
from __future__ import annotations

import numpy as np
import pytest

from chess_tracker.geometry.grid_solver import Orientation, project_points
from chess_tracker.geometry.projector import SquareProjector, cell_of, relabel_square
from chess_tracker.models.classes import SQUARE_NAMES
from tests.boards import IMAGE_CORNERS, square_center


_WHITE_SIDE = {
    Orientation.NORMAL: "bottom",
    Orientation.ROTATED_90: "left",
    Orientation.ROTATED_180: "top",
    Orientation.ROTATED_270: "right",
}


@pytest.mark.parametrize("orientation", list(Orientation))
def test_centres_match_ground_truth(mapping, true_h, orientation):
    projector = SquareProjector(mapping, orientation)
    for square in SQUARE_NAMES:
        got = np.array(projector.ideal_to_image(square))
        want = square_center(true_h, square, _WHITE_SIDE[orientation])
        assert np.linalg.norm(got - want) < 0.05, square


@pytest.mark.parametrize("orientation", list(Orientation))
def test_cell_of_and_square_at_are_inverse(mapping, orientation):
    projector = SquareProjector(mapping, orientation)
    for square in SQUARE_NAMES:
        assert projector.square_at(*projector.cell_of(square)) == square


def test_normal_layout(projector):
    assert projector.cell_of("a8") == (0, 0)
    assert projector.cell_of("a1") == (0, 7)
    assert projector.cell_of("h1") == (7, 7)


def test_rotated_layout(mapping):
    projector = SquareProjector(mapping, Orientation.ROTATED_180)
    assert projector.cell_of("a1") == (7, 0)
    assert projector.cell_of("h8") == (0, 7)


def test_side_on_layouts(mapping):
    left = SquareProjector(mapping, Orientation.ROTATED_90)
    assert left.cell_of("a1") == (0, 0)
    assert left.cell_of("h1") == (0, 7)
    assert left.cell_of("a8") == (7, 0)
    right = SquareProjector(mapping, Orientation.ROTATED_270)
    assert right.cell_of("a1") == (7, 7)
    assert right.cell_of("h8") == (0, 0)


@pytest.mark.parametrize("src", list(Orientation))
@pytest.mark.parametrize("dst", list(Orientation))
def test_relabel_square_keeps_the_cell(src, dst):
    for square in SQUARE_NAMES:
        assert cell_of(relabel_square(square, src, dst), dst) == cell_of(square, src)


def test_image_to_ideal_inside_square(projector, true_h):
    point = square_center(true_h, "e4")
    hit = projector.image_to_ideal(tuple(point))
    assert hit.square == "e4"
    assert hit.on_board
    assert hit.u == pytest.approx(4.5, abs=1e-3)
    assert hit.v == pytest.approx(4.5, abs=1e-3)


def test_image_to_ideal_off_board_clamps(projector, true_h):
    point = project_points(true_h, [(-0.7, 8.4)])[0]
    hit = projector.image_to_ideal(tuple(point))
    assert not hit.on_board
    assert hit.square == "a1"


def test_image_to_ideal_rejects_nan(projector):
    with pytest.raises(ValueError):
        projector.image_to_ideal((float("nan"), 1.0))


def test_near_squares_look_larger(projector):
    # Camera sits behind white: rank 1 is closer than rank 8
    assert projector.square_scale("a1") > projector.square_scale("a8")
    assert projector.scales().shape == (64,)


def test_square_polygon_contains_centre(projector):
    poly = projector.square_polygon("d5")
    centre = np.array(projector.ideal_to_image("d5"))
    assert poly.shape == (4, 2)
    assert np.allclose(poly.mean(axis=0), centre, atol=2.0)


def test_square_centers_dict(projector):
    centers = projector.square_centers()
    assert len(centers) == 64
    assert np.allclose(projector.center_array()[0], centers["a1"])


def test_board_corners_normal(projector):
    corners = projector.board_corners()
    # IMAGE_CORNERS: ideal (0,0),(8,0),(8,8),(0,8) → a8, h8, h1, a1
    assert np.allclose(corners["a8"], IMAGE_CORNERS[0], atol=0.05)
    assert np.allclose(corners["h8"], IMAGE_CORNERS[1], atol=0.05)
    assert np.allclose(corners["h1"], IMAGE_CORNERS[2], atol=0.05)
    assert np.allclose(corners["a1"], IMAGE_CORNERS[3], atol=0.05)


def test_board_corners_rotated(mapping):
    corners = SquareProjector(mapping, Orientation.ROTATED_180).board_corners()
    assert np.allclose(corners["h1"], IMAGE_CORNERS[0], atol=0.05)
    assert np.allclose(corners["a1"], IMAGE_CORNERS[1], atol=0.05)
    assert np.allclose(corners["a8"], IMAGE_CORNERS[2], atol=0.05)
    assert np.allclose(corners["h8"], IMAGE_CORNERS[3], atol=0.05)


def test_board_corners_side_on(mapping):
    corners = SquareProjector(mapping, Orientation.ROTATED_90).board_corners()
    # White on the left: a1 top-left, h1 bottom-left
    assert np.allclose(corners["a1"], IMAGE_CORNERS[0], atol=0.05)
    assert np.allclose(corners["a8"], IMAGE_CORNERS[1], atol=0.05)
    assert np.allclose(corners["h8"], IMAGE_CORNERS[2], atol=0.05)
    assert np.allclose(corners["h1"], IMAGE_CORNERS[3], atol=0.05)
