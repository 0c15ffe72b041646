"""
Knockout skeleton builder (pure).

Builds the match rows of a single-elimination bracket from an ordered list of
entrants. Round 1 only gets real-vs-real matches; a team drawn against a bye
is carried straight into round 2 as a fixed team. Every later match points at
its feeders by stable (round, bracket_pos) coordinates with outcome "W", so
the rows can be inserted without knowing any database ids.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from app.models.match import OUTCOME_WINNER


def next_pow2(n: int) -> int:
    if n <= 1:
        return 1
    p = 1
    while p < n:
        p <<= 1
    return p


def seed_order(n: int) -> List[int]:
    """Standard seeded bracket order for a power-of-two size (16 -> 1, 16, 8, 9, ...)."""
    if n == 1:
        return [1]
    out: List[int] = []
    for s in seed_order(n // 2):
        out.append(s)
        out.append(n + 1 - s)
    return out


@dataclass
class KnockoutMatchRow:
    round: int
    bracket_pos: int
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None
    home_source_round: Optional[int] = None
    home_source_bracket_pos: Optional[int] = None
    away_source_round: Optional[int] = None
    away_source_bracket_pos: Optional[int] = None
    home_source_outcome: str = OUTCOME_WINNER
    away_source_outcome: str = OUTCOME_WINNER


@dataclass(frozen=True)
class _Feeder:
    round: int
    bracket_pos: int


# A bracket line is a fixed team id, the winner of an earlier match, or empty
_Line = Union[int, _Feeder, None]


def _build(lines: List[_Line]) -> List[KnockoutMatchRow]:
    rows: List[KnockoutMatchRow] = []

    # Round 1: real-vs-real only, byes carry the team forward
    carried: List[_Line] = []
    for pos in range(1, len(lines) // 2 + 1):
        a, b = lines[2 * pos - 2], lines[2 * pos - 1]
        if a is not None and b is not None:
            rows.append(KnockoutMatchRow(round=1, bracket_pos=pos, team_a_id=a, team_b_id=b))
            carried.append(_Feeder(1, pos))
        else:
            carried.append(a if a is not None else b)

    round_no = 2
    while len(carried) >= 2:
        nxt: List[_Line] = []
        for pos in range(1, len(carried) // 2 + 1):
            left, right = carried[2 * pos - 2], carried[2 * pos - 1]
            row = KnockoutMatchRow(round=round_no, bracket_pos=pos)
            if isinstance(left, _Feeder):
                row.home_source_round, row.home_source_bracket_pos = left.round, left.bracket_pos
            elif left is not None:
                row.team_a_id = left
            if isinstance(right, _Feeder):
                row.away_source_round, row.away_source_bracket_pos = right.round, right.bracket_pos
            elif right is not None:
                row.team_b_id = right
            rows.append(row)
            nxt.append(_Feeder(round_no, pos))
        carried = nxt
        round_no += 1

    return rows


def build_seeded_skeleton(entrants: Sequence[Optional[int]]) -> List[KnockoutMatchRow]:
    """
    Seeded bracket for any N.

    Args:
        entrants: team ids in seed order (index 0 = seed 1); None marks an
                  unfilled seed and is treated as a bye

    Returns:
        Rows for every round, ordered by round then bracket_pos
    """
    n = len(entrants)
    if n == 0:
        return []
    size = next_pow2(n)
    lines: List[_Line] = []
    for seed in seed_order(size):
        lines.append(entrants[seed - 1] if seed <= n else None)
    return _build(lines)


def build_paired_skeleton(slot_teams: Sequence[Optional[int]]) -> List[KnockoutMatchRow]:
    """Slots (1, 2), (3, 4), ... meet in round 1; the line is padded with byes to a power of two."""
    if not slot_teams:
        return []
    size = next_pow2(len(slot_teams))
    lines: List[_Line] = list(slot_teams) + [None] * (size - len(slot_teams))
    return _build(lines)
