"""
Advancement Selector: ranked tables + rule config -> ordered slot assignments.

League source: the top N rows of the single table fill slots 1..N.
Groups source: the top K rows of every group. With K = 2 and an even number of
groups, paired groups are crossed so that group winners do not meet in the
first knockout round:

    A1-B2:  A1, B2, B1, A2   (default)
    A1-B1:  A1, B1, A2, B2

Slots come in consecutive pairs, so slots (1, 2) and (3, 4) are the first
round pairings when fed to the paired skeleton builder.

Any other shape falls back to tier order (all rank-1 teams, then all rank-2
teams, ...).

Missing rows (short or partially played groups) leave their slot unfilled;
that is not an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, field_validator, model_validator

from app.services.standings import StandingsRow

logger = logging.getLogger(__name__)

CROSSING_A1_B2 = "A1-B2"
CROSSING_A1_B1 = "A1-B1"
CROSSING_STYLES = (CROSSING_A1_B2, CROSSING_A1_B1)

DEFAULT_ADVANCERS_TOTAL = 8
DEFAULT_ADVANCERS_PER_GROUP = 2

# stage.config accepts both spellings; camelCase is folded into snake_case
_CONFIG_ALIASES = {
    "fromStageId": "from_stage_id",
    "advancersTotal": "advancers_total",
    "standaloneBracketSize": "standalone_bracket_size",
    "advancersPerGroup": "advancers_per_group",
}

# first present, non-empty key wins
_CROSSING_KEYS = ("crossing_style", "crossingStyle", "semis_cross", "semisCross")


def _check_crossing_style(value: str) -> str:
    if value not in CROSSING_STYLES:
        raise ValueError(f"crossing_style must be one of {', '.join(CROSSING_STYLES)}")
    return value


@dataclass(frozen=True)
class SlotAssignment:
    """One advancer placed into a target slot (1-based)."""

    slot: int
    team_id: int
    source_group: int  # 0-based group index in the source stage; 0 for a league
    source_rank: int


class LeagueAdvancementRule(BaseModel):
    advancers_total: int = Field(default=DEFAULT_ADVANCERS_TOTAL, ge=2)


class GroupAdvancementRule(BaseModel):
    advancers_per_group: int = Field(default=DEFAULT_ADVANCERS_PER_GROUP, ge=1)
    crossing_style: str = CROSSING_A1_B2

    @field_validator("crossing_style")
    @classmethod
    def validate_crossing_style(cls, v: str) -> str:
        return _check_crossing_style(v)


class KnockoutIntakeConfig(BaseModel):
    """Knockout stage config: where advancers come from and how many."""

    from_stage_id: Optional[int] = None
    advancers_total: int = Field(default=DEFAULT_ADVANCERS_TOTAL, ge=2)
    advancers_per_group: int = Field(default=DEFAULT_ADVANCERS_PER_GROUP, ge=1)
    crossing_style: str = CROSSING_A1_B2

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        out: Dict[str, Any] = {}
        for key, value in data.items():
            if key in _CROSSING_KEYS:
                continue
            out[_CONFIG_ALIASES.get(key, key)] = value
        out["crossing_style"] = next((data[k] for k in _CROSSING_KEYS if data.get(k)), None)
        if out.get("advancers_total") is None:
            fallback = out.get("standalone_bracket_size")
            if fallback is not None:
                out["advancers_total"] = fallback
            else:
                out.pop("advancers_total", None)
        if out.get("advancers_per_group") is None:
            out.pop("advancers_per_group", None)
        if not out.get("crossing_style"):
            out.pop("crossing_style", None)
        return out

    @field_validator("crossing_style")
    @classmethod
    def validate_crossing_style(cls, v: str) -> str:
        return _check_crossing_style(v)

    def league_rule(self) -> LeagueAdvancementRule:
        return LeagueAdvancementRule(advancers_total=self.advancers_total)

    def group_rule(self) -> GroupAdvancementRule:
        return GroupAdvancementRule(
            advancers_per_group=self.advancers_per_group,
            crossing_style=self.crossing_style,
        )


def _ranked(rows: Sequence[StandingsRow]) -> List[StandingsRow]:
    return sorted(rows, key=lambda r: (r.rank, r.team_id))


def select_league_advancers(
    table: Sequence[StandingsRow],
    rule: LeagueAdvancementRule = LeagueAdvancementRule(),
) -> List[SlotAssignment]:
    """Top ``advancers_total`` rows of a single table, slot = rank order."""
    top = _ranked(table)[: rule.advancers_total]
    assignments = [
        SlotAssignment(slot=i + 1, team_id=row.team_id, source_group=0, source_rank=i + 1)
        for i, row in enumerate(top)
    ]
    if len(assignments) < rule.advancers_total:
        logger.debug("League table short: %d of %d advancers", len(assignments), rule.advancers_total)
    return assignments


def uses_crossing(group_count: int, rule: GroupAdvancementRule) -> bool:
    """Crossing applies to K = 2 with groups that pair up evenly."""
    return rule.advancers_per_group == 2 and group_count >= 2 and group_count % 2 == 0


def _pick(tables: List[List[StandingsRow]], group: int, rank: int) -> Optional[StandingsRow]:
    rows = tables[group]
    return rows[rank - 1] if len(rows) >= rank else None


def select_group_advancers(
    tables: Sequence[Sequence[StandingsRow]],
    rule: GroupAdvancementRule = GroupAdvancementRule(),
) -> List[SlotAssignment]:
    """
    Top K of every group, in crossing or tier order.

    Args:
        tables: one ranked table per group, in group ordering (A, B, C, ...)
        rule: advancers per group and crossing style

    Returns:
        Assignments ordered by slot; slots whose team is missing are omitted.
    """
    ranked = [_ranked(t) for t in tables]
    group_count = len(ranked)
    k = rule.advancers_per_group
    out: List[SlotAssignment] = []

    if uses_crossing(group_count, rule):
        if rule.crossing_style == CROSSING_A1_B1:
            pattern = ((0, 1), (1, 1), (0, 2), (1, 2))
        else:
            pattern = ((0, 1), (1, 2), (1, 1), (0, 2))
        for pair in range(group_count // 2):
            for offset, (side, rank) in enumerate(pattern):
                g = 2 * pair + side
                row = _pick(ranked, g, rank)
                if row is None:
                    continue
                out.append(SlotAssignment(slot=4 * pair + offset + 1, team_id=row.team_id, source_group=g, source_rank=rank))
    else:
        for rank in range(1, k + 1):
            for g in range(group_count):
                row = _pick(ranked, g, rank)
                if row is None:
                    continue
                out.append(
                    SlotAssignment(slot=(rank - 1) * group_count + g + 1, team_id=row.team_id, source_group=g, source_rank=rank)
                )

    out.sort(key=lambda a: a.slot)
    return out


def slot_capacity(group_count: int, rule: GroupAdvancementRule) -> int:
    return group_count * rule.advancers_per_group


def slots_to_entrants(assignments: Sequence[SlotAssignment], capacity: int) -> List[Optional[int]]:
    """Dense slot list (index 0 = slot 1) with None where a slot is unfilled."""
    size = max([capacity] + [a.slot for a in assignments])
    entrants: List[Optional[int]] = [None] * size
    for a in assignments:
        entrants[a.slot - 1] = a.team_id
    return entrants
