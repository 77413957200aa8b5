"""Shared fixtures for the tracking tests."""
from __future__ import annotations

import numpy as np
import pytest

from chess_tracker.config import TrackerConfig
from chess_tracker.geometry.grid_solver import solve_grid
from chess_tracker.geometry.projector import SquareProjector
from tests.boards import FRAME_HEIGHT, FRAME_WIDTH, corner_candidates, homography


@pytest.fixture()
def config() -> TrackerConfig:
    return TrackerConfig()


@pytest.fixture()
def true_h() -> np.ndarray:
    return homography()


@pytest.fixture()
def mapping(true_h, config):
    return solve_grid(corner_candidates(true_h), config, (FRAME_WIDTH, FRAME_HEIGHT))


@pytest.fixture()
def projector(mapping) -> SquareProjector:
    return SquareProjector(mapping)
