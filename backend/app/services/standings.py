"""
Standings Calculator

Pure function over finished match facts -> ranked per-group tables.

Rows are rebuilt from scratch on every call. Rank is positional (1, 2, 3, ...)
after sorting; equal records never share a rank, so downstream slicing can rely
on row order alone.

Default order:
    points desc -> goal difference desc -> goals for desc -> team id asc
"""

from __future__ import annotations

import functools
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, field_validator

FINISHED = "finished"
LEAGUE_GROUP_KEY = 0

TIEBREAK_POINTS = "points"
TIEBREAK_GOAL_DIFF = "goal_diff"
TIEBREAK_GOALS_FOR = "goals_for"
TIEBREAK_H2H_POINTS = "h2h_points"
TIEBREAK_H2H_GOAL_DIFF = "h2h_goal_diff"
# accepted for stored configs; match facts carry no cards, so it never separates two rows
TIEBREAK_FAIR_PLAY = "fair_play"

DEFAULT_TIEBREAKERS: Tuple[str, ...] = (TIEBREAK_POINTS, TIEBREAK_GOAL_DIFF, TIEBREAK_GOALS_FOR)
KNOWN_TIEBREAKERS = frozenset(
    [
        TIEBREAK_POINTS,
        TIEBREAK_GOAL_DIFF,
        TIEBREAK_GOALS_FOR,
        TIEBREAK_H2H_POINTS,
        TIEBREAK_H2H_GOAL_DIFF,
        TIEBREAK_FAIR_PLAY,
    ]
)


@dataclass(frozen=True)
class PointsScheme:
    win: int = 3
    draw: int = 1
    loss: int = 0


DEFAULT_POINTS = PointsScheme()


@dataclass
class StandingsRow:
    team_id: int
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0
    rank: int = 0

    @property
    def goal_diff(self) -> int:
        return self.goals_for - self.goals_against

    def to_dict(self) -> Dict[str, int]:
        return {
            "team_id": self.team_id,
            "played": self.played,
            "won": self.won,
            "drawn": self.drawn,
            "lost": self.lost,
            "goals_for": self.goals_for,
            "goals_against": self.goals_against,
            "goal_diff": self.goal_diff,
            "points": self.points,
            "rank": self.rank,
        }


class StandingsConfig(BaseModel):
    """Per-stage standings options read from stage.config."""

    tiebreakers: List[str] = Field(default_factory=lambda: list(DEFAULT_TIEBREAKERS))
    points_win: int = 3
    points_draw: int = 1
    points_loss: int = 0

    @field_validator("tiebreakers")
    @classmethod
    def validate_tiebreakers(cls, v: List[str]) -> List[str]:
        unknown = [t for t in v if t not in KNOWN_TIEBREAKERS]
        if unknown:
            raise ValueError(f"Unknown tiebreakers: {', '.join(unknown)}")
        return v or list(DEFAULT_TIEBREAKERS)

    @property
    def points(self) -> PointsScheme:
        return PointsScheme(win=self.points_win, draw=self.points_draw, loss=self.points_loss)

    @classmethod
    def from_stage_config(cls, config: Optional[Mapping[str, Any]]) -> "StandingsConfig":
        config = config or {}
        points = config.get("points") or {}
        return cls(
            tiebreakers=list(config.get("tiebreakers") or DEFAULT_TIEBREAKERS),
            points_win=points.get("win", 3),
            points_draw=points.get("draw", 1),
            points_loss=points.get("loss", 0),
        )


def _is_scorable(match: Any) -> bool:
    """Finished and both sides known. Anything else cannot move a table."""
    if (getattr(match, "status", None) or "") != FINISHED:
        return False
    return getattr(match, "team_a_id", None) is not None and getattr(match, "team_b_id", None) is not None


def _scores(match: Any) -> Tuple[int, int]:
    a = getattr(match, "team_a_score", None)
    b = getattr(match, "team_b_score", None)
    return (a or 0, b or 0)


class HeadToHead:
    """Pairwise points/goal difference between teams from the same match set."""

    def __init__(self, matches: Iterable[Any], points: PointsScheme = DEFAULT_POINTS):
        # (x, y) -> [x_points, x_goal_diff] for matches between x and y
        self._pairs: Dict[Tuple[int, int], List[int]] = defaultdict(lambda: [0, 0])
        for m in matches:
            if not _is_scorable(m):
                continue
            a, b = m.team_a_id, m.team_b_id
            sa, sb = _scores(m)
            pa, pb = _award(sa, sb, points)
            self._pairs[(a, b)][0] += pa
            self._pairs[(a, b)][1] += sa - sb
            self._pairs[(b, a)][0] += pb
            self._pairs[(b, a)][1] += sb - sa

    def get(self, x: int, y: int) -> Tuple[int, int, int, int]:
        """Return (x_points, y_points, x_goal_diff, y_goal_diff) for the ordered pair."""
        xp, xgd = self._pairs.get((x, y), (0, 0))
        yp, ygd = self._pairs.get((y, x), (0, 0))
        return xp, yp, xgd, ygd


def _award(score_a: int, score_b: int, points: PointsScheme) -> Tuple[int, int]:
    if score_a > score_b:
        return points.win, points.loss
    if score_b > score_a:
        return points.loss, points.win
    return points.draw, points.draw


def match_points(match: Any, points: PointsScheme = DEFAULT_POINTS) -> Optional[Tuple[int, int]]:
    """Points awarded to (team_a, team_b) by one match, or None if it does not count."""
    if not _is_scorable(match):
        return None
    return _award(*_scores(match), points)


def _comparator(tiebreakers: Sequence[str], h2h: Optional[HeadToHead]):
    def cmp(a: StandingsRow, b: StandingsRow) -> int:
        for tb in tiebreakers:
            if tb == TIEBREAK_POINTS and a.points != b.points:
                return b.points - a.points
            if tb == TIEBREAK_GOAL_DIFF and a.goal_diff != b.goal_diff:
                return b.goal_diff - a.goal_diff
            if tb == TIEBREAK_GOALS_FOR and a.goals_for != b.goals_for:
                return b.goals_for - a.goals_for
            if tb == TIEBREAK_H2H_POINTS and h2h is not None:
                ap, bp, _, _ = h2h.get(a.team_id, b.team_id)
                if ap != bp:
                    return bp - ap
            if tb == TIEBREAK_H2H_GOAL_DIFF and h2h is not None:
                _, _, agd, bgd = h2h.get(a.team_id, b.team_id)
                if agd != bgd:
                    return bgd - agd
        # Total order: identifier ascending
        if a.team_id < b.team_id:
            return -1
        if a.team_id > b.team_id:
            return 1
        return 0

    return cmp


def rank_rows(
    rows: Iterable[StandingsRow],
    tiebreakers: Sequence[str] = DEFAULT_TIEBREAKERS,
    h2h: Optional[HeadToHead] = None,
) -> List[StandingsRow]:
    """Sort rows and assign positional ranks. Input rows are not mutated."""
    unknown = [t for t in tiebreakers if t not in KNOWN_TIEBREAKERS]
    if unknown:
        raise ValueError(f"Unknown tiebreakers: {', '.join(unknown)}")
    ordered = sorted(rows, key=functools.cmp_to_key(_comparator(tiebreakers, h2h)))
    return [replace(row, rank=i + 1) for i, row in enumerate(ordered)]


def compute_standings(
    matches: Iterable[Any],
    points: PointsScheme = DEFAULT_POINTS,
    tiebreakers: Sequence[str] = DEFAULT_TIEBREAKERS,
    include_team_ids: Iterable[int] = (),
) -> List[StandingsRow]:
    """
    Build one ranked table from a group's matches.

    Only finished matches with both team ids count; others are skipped.
    A null score on a finished match counts as 0.

    Args:
        matches: match-like objects (team_a_id, team_b_id, team_a_score,
                 team_b_score, status)
        points: win/draw/loss points
        tiebreakers: order of comparisons before the team id fallback
        include_team_ids: teams that get a row even without a finished match

    Returns:
        Ranked StandingsRow list (rank 1 first)
    """
    matches = list(matches)
    stats: Dict[int, StandingsRow] = {}
    for tid in include_team_ids:
        stats.setdefault(tid, StandingsRow(team_id=tid))

    for m in matches:
        if not _is_scorable(m):
            continue
        a = stats.setdefault(m.team_a_id, StandingsRow(team_id=m.team_a_id))
        b = stats.setdefault(m.team_b_id, StandingsRow(team_id=m.team_b_id))
        sa, sb = _scores(m)

        a.played += 1
        b.played += 1
        a.goals_for += sa
        a.goals_against += sb
        b.goals_for += sb
        b.goals_against += sa

        pa, pb = _award(sa, sb, points)
        a.points += pa
        b.points += pb
        if sa > sb:
            a.won += 1
            b.lost += 1
        elif sb > sa:
            b.won += 1
            a.lost += 1
        else:
            a.drawn += 1
            b.drawn += 1

    needs_h2h = any(t in (TIEBREAK_H2H_POINTS, TIEBREAK_H2H_GOAL_DIFF) for t in tiebreakers)
    h2h = HeadToHead(matches, points) if needs_h2h else None
    return rank_rows(stats.values(), tiebreakers, h2h)


def group_key(match: Any) -> int:
    gid = getattr(match, "group_id", None)
    return LEAGUE_GROUP_KEY if gid is None else gid


def compute_group_standings(
    matches: Iterable[Any],
    points: PointsScheme = DEFAULT_POINTS,
    tiebreakers: Sequence[str] = DEFAULT_TIEBREAKERS,
    teams_by_group: Optional[Mapping[int, Iterable[int]]] = None,
) -> Dict[int, List[StandingsRow]]:
    """Bucket matches by group id (None -> 0) and rank each bucket independently."""
    buckets: Dict[int, List[Any]] = defaultdict(list)
    for m in matches:
        buckets[group_key(m)].append(m)

    teams_by_group = teams_by_group or {}
    keys = sorted(set(buckets) | set(teams_by_group))
    return {
        gid: compute_standings(
            buckets.get(gid, []),
            points=points,
            tiebreakers=tiebreakers,
            include_team_ids=teams_by_group.get(gid, ()),
        )
        for gid in keys
    }


def baseline_standings(team_ids: Iterable[int], seed_by_team: Optional[Mapping[int, Optional[int]]] = None) -> List[StandingsRow]:
    """
    Zeroed table for a stage nobody has played in yet.

    Order: seed ascending (missing seeds last), then team id.
    """
    seed_by_team = seed_by_team or {}

    def sort_key(tid: int):
        seed = seed_by_team.get(tid)
        return (seed is None, seed if seed is not None else 0, tid)

    unique = sorted(set(team_ids), key=sort_key)
    return [StandingsRow(team_id=tid, rank=i + 1) for i, tid in enumerate(unique)]
