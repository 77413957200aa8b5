"""Tests for piece class names and square ids."""
from __future__ import annotations

import pytest

from chess_tracker.models.classes import (
    CLASS_NAMES,
    SQUARE_NAMES,
    SQUARES_FEN_ORDER,
    class_color,
    class_type,
    normalize_class,
    parse_square,
    square_name,
)


@pytest.mark.parametrize("label,expected", [
    ("white_king", "white_king"),
    ("k", "black_king"),
    ("wn", "white_knight"),
    ("Black-Queen", "black_queen"),
    ("white bishop", "white_bishop"),
])
def test_normalize_class(label, expected):
    assert normalize_class(label) == expected


def test_normalize_rejects_unknown():
    with pytest.raises(ValueError):
        normalize_class("board")


def test_class_parts():
    assert len(CLASS_NAMES) == 12
    assert class_color("black_rook") == "black"
    assert class_type("black_rook") == "rook"


def test_square_ids():
    assert SQUARE_NAMES[0] == "a1" and SQUARE_NAMES[-1] == "h8"
    assert SQUARES_FEN_ORDER[0] == "a8" and SQUARES_FEN_ORDER[-1] == "h1"
    assert sorted(SQUARE_NAMES) == sorted(SQUARES_FEN_ORDER)
    assert parse_square("e4") == (4, 4)
    assert square_name(4, 4) == "e4"
