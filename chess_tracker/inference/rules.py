"""
Chess Rules Collaborator
========================

Thin adapter over ``python-chess``.  The tracking core never enforces
legality itself; once a notation string exists it can be handed here to
be validated / normalised, to apply a proposed move, or to recover the
move that turned one position into the next.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import chess

log = logging.getLogger(__name__)


@dataclass
class RulesVerdict:
    accepted: bool
    fen: Optional[str]                          # normalised FEN when accepted
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"accepted": self.accepted, "fen": self.fen, "reasons": list(self.reasons)}


def _status_reasons(status: chess.Status) -> List[str]:
    """Names of every flag set in a ``chess.Status`` bitmask."""
    return [
        flag.name.lower()
        for flag in chess.Status
        if flag and flag is not chess.Status.VALID and status & flag
    ]


def check_notation(fen: str) -> RulesVerdict:
    """Validate a full FEN; return the normalised string when legal."""
    try:
        board = chess.Board(fen)
    except ValueError as exc:
        return RulesVerdict(accepted=False, fen=None, reasons=[f"unparsable: {exc}"])

    status = board.status()
    if status != chess.STATUS_VALID:
        return RulesVerdict(accepted=False, fen=board.fen(), reasons=_status_reasons(status))
    return RulesVerdict(accepted=True, fen=board.fen())


def apply_move(fen: str, uci: str) -> RulesVerdict:
    """Play *uci* on *fen*; rejected when unparsable or illegal."""
    try:
        board = chess.Board(fen)
        move = chess.Move.from_uci(uci)
    except ValueError as exc:
        return RulesVerdict(accepted=False, fen=None, reasons=[str(exc)])

    if move not in board.legal_moves:
        return RulesVerdict(accepted=False, fen=board.fen(), reasons=[f"illegal move {uci}"])
    board.push(move)
    return RulesVerdict(accepted=True, fen=board.fen())


def infer_move(previous_fen: str, placement: str) -> Optional[str]:
    """Find the single legal move taking *previous_fen* to *placement*.

    Returns the move in UCI notation, or None when no legal move – or
    more than one – produces the observed placement.
    """
    try:
        board = chess.Board(previous_fen)
    except ValueError:
        return None
    target = placement.split()[0]

    matches: List[str] = []
    for move in board.legal_moves:
        board.push(move)
        if board.board_fen() == target:
            matches.append(move.uci())
        board.pop()

    if len(matches) != 1:
        if matches:
            log.debug("Ambiguous move candidates %s", matches)
        return None
    return matches[0]
