"""
Stage standings store: persisted tables for league and groups stages.

Tables are always rebuilt from finished matches and replace the stored rows
group by group. Knockout stages have no table; calls on them are no-ops.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.models.match import MATCH_FINISHED, Match
from app.models.stage import STAGE_KIND_GROUPS, STAGE_KIND_KNOCKOUT, Stage
from app.models.stage_group import StageGroup
from app.models.stage_standing import StageStanding
from app.models.tournament import Tournament
from app.models.tournament_team import TournamentTeam
from app.services.errors import InvalidStageConfigError, StageNotFoundError
from app.services.knockout_propagation import apply_knockout_propagation
from app.services.standings import (
    LEAGUE_GROUP_KEY,
    StandingsConfig,
    StandingsRow,
    baseline_standings,
    compute_group_standings,
)

logger = logging.getLogger(__name__)

TOURNAMENT_COMPLETED = "completed"


def get_stage(session: Session, stage_id: int) -> Stage:
    stage = session.get(Stage, stage_id)
    if not stage:
        raise StageNotFoundError(stage_id)
    return stage


def stage_group_ids(session: Session, stage_id: int) -> List[int]:
    """Group ids of a stage in display order (ordering, then id)."""
    groups = session.exec(
        select(StageGroup).where(StageGroup.stage_id == stage_id).order_by(StageGroup.ordering, StageGroup.id)
    ).all()
    return [g.id for g in groups]


def declared_participants(session: Session, stage: Stage) -> Tuple[Dict[int, List[int]], Dict[int, Optional[int]]]:
    """
    Teams declared for a stage, bucketed like standings (group id, 0 for a league).

    A league stage without stage-scoped rows falls back to the tournament-wide
    participants (stage_id is null).

    Returns:
        (teams_by_group, seed_by_team)
    """
    rows = session.exec(select(TournamentTeam).where(TournamentTeam.stage_id == stage.id)).all()
    if not rows and stage.kind != STAGE_KIND_GROUPS:
        rows = session.exec(
            select(TournamentTeam).where(
                TournamentTeam.tournament_id == stage.tournament_id,
                TournamentTeam.stage_id.is_(None),
            )
        ).all()

    teams_by_group: Dict[int, List[int]] = defaultdict(list)
    seed_by_team: Dict[int, Optional[int]] = {}
    for row in sorted(rows, key=lambda r: r.id or 0):
        if stage.kind == STAGE_KIND_GROUPS:
            if row.group_id is None:
                continue
            gid = row.group_id
        else:
            gid = LEAGUE_GROUP_KEY
        if row.team_id not in teams_by_group[gid]:
            teams_by_group[gid].append(row.team_id)
        seed_by_team[row.team_id] = row.seed
    return dict(teams_by_group), seed_by_team


def standings_config(stage: Stage) -> StandingsConfig:
    try:
        return StandingsConfig.from_stage_config(stage.config)
    except ValidationError as e:
        raise InvalidStageConfigError(f"Stage {stage.id} standings config is invalid: {e}") from e


def _to_storage(stage_id: int, group_id: int, row: StandingsRow) -> StageStanding:
    return StageStanding(
        stage_id=stage_id,
        group_id=group_id,
        team_id=row.team_id,
        played=row.played,
        won=row.won,
        drawn=row.drawn,
        lost=row.lost,
        gf=row.goals_for,
        ga=row.goals_against,
        gd=row.goal_diff,
        points=row.points,
        rank=row.rank,
    )


def _from_storage(row: StageStanding) -> StandingsRow:
    return StandingsRow(
        team_id=row.team_id,
        played=row.played,
        won=row.won,
        drawn=row.drawn,
        lost=row.lost,
        goals_for=row.gf,
        goals_against=row.ga,
        points=row.points,
        rank=row.rank,
    )


def _replace_tables(session: Session, stage_id: int, tables: Dict[int, List[StandingsRow]]) -> None:
    for gid, rows in tables.items():
        existing = session.exec(
            select(StageStanding).where(StageStanding.stage_id == stage_id, StageStanding.group_id == gid)
        ).all()
        for old in existing:
            session.delete(old)
        session.flush()
        for row in rows:
            session.add(_to_storage(stage_id, gid, row))


def recompute_stage_standings(session: Session, stage_id: int, commit: bool = True) -> Dict[int, List[StandingsRow]]:
    """
    Recompute and replace the stored tables of a league or groups stage.

    Args:
        session: Database session
        stage_id: Stage to recompute
        commit: commit when done (False lets a caller fold this into its own transaction)

    Returns:
        Tables keyed by group id (0 for a league); empty for knockout stages

    Raises:
        StageNotFoundError: Stage does not exist
        InvalidStageConfigError: Stage config has unknown tiebreakers or bad points
    """
    stage = get_stage(session, stage_id)
    if stage.kind == STAGE_KIND_KNOCKOUT:
        return {}

    config = standings_config(stage)
    teams_by_group, _ = declared_participants(session, stage)
    matches = session.exec(
        select(Match).where(Match.stage_id == stage_id, Match.status == MATCH_FINISHED).order_by(Match.id)
    ).all()

    tables = compute_group_standings(
        matches,
        points=config.points,
        tiebreakers=config.tiebreakers,
        teams_by_group=teams_by_group,
    )

    try:
        _replace_tables(session, stage_id, tables)
        if commit:
            session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to store standings for stage %s", stage_id)
        raise

    logger.info("Stage %s: standings recomputed for %d group(s)", stage_id, len(tables))
    return tables


def write_baseline_standings(session: Session, stage_id: int, commit: bool = True) -> bool:
    """Replace the stage's tables with zero rows ranked by seed, then team id."""
    stage = get_stage(session, stage_id)
    teams_by_group, seed_by_team = declared_participants(session, stage)
    tables = {
        gid: baseline_standings(team_ids, seed_by_team)
        for gid, team_ids in teams_by_group.items()
        if team_ids
    }
    if not tables:
        return False

    try:
        _replace_tables(session, stage_id, tables)
        if commit:
            session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to store baseline standings for stage %s", stage_id)
        raise

    logger.info("Stage %s: baseline standings written for %d group(s)", stage_id, len(tables))
    return True


def load_stage_tables(session: Session, stage_id: int) -> Dict[int, List[StandingsRow]]:
    """Stored tables keyed by group id, each ordered by rank."""
    rows = session.exec(
        select(StageStanding)
        .where(StageStanding.stage_id == stage_id)
        .order_by(StageStanding.group_id, StageStanding.rank, StageStanding.team_id)
    ).all()
    tables: Dict[int, List[StandingsRow]] = defaultdict(list)
    for row in rows:
        tables[row.group_id].append(_from_storage(row))
    return dict(tables)


def maybe_complete_tournament(session: Session, tournament_id: int, commit: bool = True) -> bool:
    """Mark the tournament completed once every one of its matches is finished."""
    tournament = session.get(Tournament, tournament_id)
    if not tournament or tournament.status == TOURNAMENT_COMPLETED:
        return False
    open_match = session.exec(
        select(Match.id).where(Match.tournament_id == tournament_id, Match.status != MATCH_FINISHED).limit(1)
    ).first()
    if open_match is not None:
        return False
    has_any = session.exec(select(Match.id).where(Match.tournament_id == tournament_id).limit(1)).first()
    if has_any is None:
        return False
    tournament.status = TOURNAMENT_COMPLETED
    session.add(tournament)
    if commit:
        session.commit()
    logger.info("Tournament %s completed", tournament_id)
    return True


def progress_after_match(session: Session, match_id: int) -> Dict[str, int]:
    """
    Everything that follows a match being finished.

    - knockout: winner/loser carried into child matches
    - league/groups: stage standings recomputed
    - tournament marked completed when no unfinished match remains

    Returns:
        Dict with advanced_count, standings_updated (0/1), tournament_completed (0/1)
    """
    match = session.get(Match, match_id)
    result = {"advanced_count": 0, "standings_updated": 0, "tournament_completed": 0}
    if not match or (match.status or "") != MATCH_FINISHED:
        return result

    stage = session.get(Stage, match.stage_id) if match.stage_id is not None else None
    if stage is not None:
        if stage.kind == STAGE_KIND_KNOCKOUT:
            result["advanced_count"] = apply_knockout_propagation(session, match.id)
        else:
            recompute_stage_standings(session, stage.id)
            result["standings_updated"] = 1

    if match.tournament_id is not None and maybe_complete_tournament(session, match.tournament_id):
        result["tournament_completed"] = 1
    return result
