"""
Knockout propagation: when a knockout match finishes, carry its winner (or
loser) into the child matches that reference it.

A child references a parent either by explicit id (``*_source_match_id``) or by
stable coordinate (``*_source_round`` + ``*_source_bracket_pos``). Only the
team slot fields of children in the same stage are written, and only when the
slot is still empty.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlmodel import Session, or_, select

from app.models.match import MATCH_FINISHED, OUTCOME_LOSER, Match
from app.models.stage import STAGE_KIND_KNOCKOUT, Stage

logger = logging.getLogger(__name__)


def winner_of(match: Any) -> Optional[int]:
    """Explicit winner if recorded, else the higher score of a finished match. Draws have none."""
    if getattr(match, "winner_team_id", None) is not None:
        return match.winner_team_id
    if (getattr(match, "status", None) or "") != MATCH_FINISHED:
        return None
    a, b = match.team_a_score, match.team_b_score
    if a is None or b is None or a == b:
        return None
    return match.team_a_id if a > b else match.team_b_id


def loser_of(match: Any) -> Optional[int]:
    winner = winner_of(match)
    if winner is None:
        return None
    if winner == match.team_a_id:
        return match.team_b_id
    if winner == match.team_b_id:
        return match.team_a_id
    return None


def _feeds(child: Match, side: str, parent: Match) -> bool:
    if getattr(child, f"{side}_source_match_id") == parent.id:
        return True
    src_round = getattr(child, f"{side}_source_round")
    src_pos = getattr(child, f"{side}_source_bracket_pos")
    return (
        src_round is not None
        and src_pos is not None
        and src_round == parent.round
        and src_pos == parent.bracket_pos
    )


def apply_knockout_propagation(session: Session, match_id: int, commit: bool = True) -> int:
    """
    Fill child match slots from a finished knockout match.

    Returns:
        Number of team slots filled (0 when the match is not a finished
        knockout match with a decided winner)

    Guarantees:
        - Idempotent: an occupied slot is never overwritten
        - Missing source outcome is treated as "W"
        - Only matches in the same stage are touched
    """
    match = session.get(Match, match_id)
    if not match or match.stage_id is None:
        return 0
    if (match.status or "") != MATCH_FINISHED:
        return 0
    stage = session.get(Stage, match.stage_id)
    if not stage or stage.kind != STAGE_KIND_KNOCKOUT:
        return 0

    winner = winner_of(match)
    if winner is None:
        return 0
    loser = loser_of(match)

    conditions = [Match.home_source_match_id == match.id, Match.away_source_match_id == match.id]
    if match.round is not None and match.bracket_pos is not None:
        conditions.append((Match.home_source_round == match.round) & (Match.home_source_bracket_pos == match.bracket_pos))
        conditions.append((Match.away_source_round == match.round) & (Match.away_source_bracket_pos == match.bracket_pos))

    children = session.exec(
        select(Match)
        .where(Match.stage_id == match.stage_id, Match.id != match.id, or_(*conditions))
        .order_by(Match.id)
    ).all()

    filled = 0
    for child in children:
        touched = False
        if _feeds(child, "home", match) and child.team_a_id is None:
            team = loser if child.home_source_outcome == OUTCOME_LOSER else winner
            if team is not None:
                child.team_a_id = team
                touched = True
                filled += 1
        if _feeds(child, "away", match) and child.team_b_id is None:
            team = loser if child.away_source_outcome == OUTCOME_LOSER else winner
            if team is not None:
                child.team_b_id = team
                touched = True
                filled += 1
        if touched:
            session.add(child)

    if filled:
        logger.info("Match %s: propagated into %d child slot(s)", match.id, filled)
        if commit:
            session.commit()
    return filled


def _unknown_team_count(session: Session, stage_id: int) -> int:
    matches: List[Match] = session.exec(select(Match).where(Match.stage_id == stage_id)).all()
    return sum(1 for m in matches if m.team_a_id is None or m.team_b_id is None)


def resolve_all_dependencies(session: Session, stage_id: int) -> Dict[str, int]:
    """
    Bulk propagation for every finished match of a knockout stage.

    Returns:
        Dict with:
        - matches_processed: finished matches visited
        - teams_advanced: child slots filled
        - unknown_before: matches with a missing team before
        - unknown_after: matches with a missing team after

    Guarantees:
        - Idempotent (safe to call multiple times)
        - Deterministic ordering (round, bracket_pos, id) so earlier rounds
          fill before their children are visited
    """
    unknown_before = _unknown_team_count(session, stage_id)

    finished = session.exec(
        select(Match)
        .where(Match.stage_id == stage_id, Match.status == MATCH_FINISHED)
        .order_by(Match.round, Match.bracket_pos, Match.id)
    ).all()

    matches_processed = 0
    teams_advanced = 0
    for match in finished:
        teams_advanced += apply_knockout_propagation(session, match.id)
        matches_processed += 1

    session.expire_all()
    unknown_after = _unknown_team_count(session, stage_id)

    return {
        "matches_processed": matches_processed,
        "teams_advanced": teams_advanced,
        "unknown_before": unknown_before,
        "unknown_after": unknown_after,
    }
