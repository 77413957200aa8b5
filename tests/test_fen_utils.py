"""Tests for notation synthesis and board sanity checks."""
from __future__ import annotations

import pytest

from chess_tracker.config import TrackerConfig
from chess_tracker.errors import INVALID_BOARD_STATE
from chess_tracker.inference.fen_utils import (
    NotationFields,
    SquareOccupant,
    check_occupancy,
    decode_placement,
    derive_castling,
    occupants_to_placement,
    synthesize_notation,
)
from chess_tracker.models.classes import SQUARES_FEN_ORDER
from chess_tracker.tracking.evidence import BoardState
from tests.boards import START_PLACEMENT


def _occupants(placement: str):
    return [
        SquareOccupant(index=i, piece=piece, confidence=1.0 if piece else 0.0)
        for i, piece in enumerate(decode_placement(placement))
    ]


def _state(placement: str, score: float = 0.9) -> BoardState:
    state = BoardState()
    for square, piece in zip(SQUARES_FEN_ORDER, decode_placement(placement)):
        if piece:
            state[square].scores[piece] = score
    return state


@pytest.mark.parametrize("placement", [
    START_PLACEMENT,
    "8/8/8/8/8/8/8/8",
    "r3k2r/pp1n1ppp/2p5/3Pp3/8/2N5/PPP2PPP/R3K2R",
    "4k3/8/8/8/8/8/8/4K3",
])
def test_placement_round_trip(placement):
    assert occupants_to_placement(_occupants(placement)) == placement


def test_occupant_coordinates():
    occ = _occupants(START_PLACEMENT)
    assert occ[0].square == "a8" and occ[0].rank == 8 and occ[0].file == 0
    assert occ[63].square == "h1" and occ[63].rank == 1 and occ[63].file == 7
    assert occ[60].piece == "white_king"


def test_start_position_notation():
    result = synthesize_notation(_state(START_PLACEMENT))
    assert result.placement == START_PLACEMENT
    assert result.fen == f"{START_PLACEMENT} w KQkq - 0 1"
    assert result.warnings == []
    assert result.is_valid


def test_supplied_fields_are_used():
    fields = NotationFields(side_to_move="b", castling="Kq", en_passant="e3",
                            halfmove_clock=0, fullmove_number=12)
    result = synthesize_notation(_state(START_PLACEMENT), fields=fields)
    assert result.fen == f"{START_PLACEMENT} b Kq e3 0 12"


def test_castling_follows_home_squares():
    assert derive_castling(_occupants("r3k3/8/8/8/8/8/8/4K2R")) == "Kq"
    assert derive_castling(_occupants("4k3/8/8/8/8/8/8/3K3R")) == "-"


def test_confidence_floor_hides_weak_squares():
    state = _state(START_PLACEMENT)
    state["e2"].scores["white_pawn"] = 0.2
    result = synthesize_notation(state, TrackerConfig(min_occupant_confidence=0.4))
    assert result.placement == "rnbqkbnr/pppppppp/8/8/8/8/PPPP1PPP/RNBQKBNR"


def test_missing_king_is_invalid():
    result = synthesize_notation(_state("rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQ1BNR"))
    assert not result.is_valid
    assert result.placement == "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQ1BNR"
    kinds = {w.kind for w in result.warnings}
    assert kinds == {INVALID_BOARD_STATE}
    assert any("White king count = 0" in w.message for w in result.warnings)


def test_pawn_on_back_rank():
    warnings = check_occupancy(_occupants("4k2P/8/8/8/8/8/8/4K3"))
    assert [w.squares for w in warnings if "rank 1 or 8" in w.message] == [["h8"]]


def test_too_many_pawns():
    warnings = check_occupancy(_occupants("4k3/8/8/8/8/PPPPPPPP/PPPPPPPP/4K3"))
    messages = " ".join(w.message for w in warnings)
    assert "pawn count = 16" in messages
    assert "White has 17 pieces" in messages


def test_extra_queen_is_suspicious_not_invalid():
    placement = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPP1/RNBQKBNQ"
    warnings = check_occupancy(_occupants(placement))
    assert [w.severity for w in warnings] == ["suspicious"]
    result = synthesize_notation(_state(placement))
    assert result.placement == placement
    assert [w.kind for w in result.warnings] == [INVALID_BOARD_STATE]
    assert result.is_valid
    assert result.to_dict()["is_valid"]


def test_promotions_need_missing_pawns():
    warnings = check_occupancy(_occupants("4k3/8/8/8/8/8/PPPPPPPP/QQQ1K3"))
    assert any("promoted" in w.message and w.severity == "error" for w in warnings)


def test_decode_accepts_full_fen():
    squares = decode_placement(f"{START_PLACEMENT} w KQkq - 0 1")
    assert len(squares) == 64
    assert squares[4] == "black_king"


@pytest.mark.parametrize("bad", ["", "8/8/8", "9/8/8/8/8/8/8/8", "8/8/8/8/8/8/8/7X"])
def test_decode_rejects_malformed(bad):
    with pytest.raises(ValueError):
        decode_placement(bad)


def test_placement_needs_64_occupants():
    with pytest.raises(ValueError):
        occupants_to_placement(_occupants(START_PLACEMENT)[:10])
