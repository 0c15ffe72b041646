"""
Reseed Orchestrator: source standings -> advancers -> knockout slots + matches.

Flow for a knockout stage whose config names a source stage:
    1. validate target, config and source kind (nothing written on failure)
    2. rebuild source standings: recomputed from finished matches, or
       baseline rows ranked by seed when nothing has been played
    3. select advancers (league or groups rule)
    4. overwrite the "auto" slot rows, keep "manual" ones
    5. rebuild the stage's knockout matches from the slot line
    6. bump stage.slots_version with a conditional UPDATE

A stage with any finished knockout match is locked: the call succeeds without
touching slots or matches. A stage that already has slot rows or knockout
matches is skipped unless ``reseed`` (or ``force``) is set. ``recompute``
rebuilds the source standings even when the call ends up locked or skipped.

A team pinned to a manual slot is never placed a second time; the auto slot it
would have taken stays empty. Fewer than two placed teams produce no bracket.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.models.match import MATCH_FINISHED, Match
from app.models.stage import STAGE_KIND_GROUPS, STAGE_KIND_KNOCKOUT, STAGE_KIND_LEAGUE, Stage
from app.models.stage_slot import SLOT_SOURCE_AUTO, SLOT_SOURCE_MANUAL, StageSlot
from app.services.advancement import (
    KnockoutIntakeConfig,
    SlotAssignment,
    select_group_advancers,
    select_league_advancers,
    slot_capacity,
    slots_to_entrants,
    uses_crossing,
)
from app.services.errors import (
    InvalidStageConfigError,
    ReseedConflictError,
    StageNotFoundError,
    UnsupportedSourceKindError,
)
from app.services.knockout_builder import KnockoutMatchRow, build_paired_skeleton, build_seeded_skeleton
from app.services.stage_standings_service import (
    get_stage,
    load_stage_tables,
    recompute_stage_standings,
    stage_group_ids,
    write_baseline_standings,
)
from app.services.standings import LEAGUE_GROUP_KEY, StandingsRow

logger = logging.getLogger(__name__)

RESEED_SEEDED = "seeded"
RESEED_SKIPPED = "skipped"
RESEED_LOCKED = "locked"

BRACKET_GROUP = 0


@dataclass
class ReseedResult:
    stage_id: int
    status: str  # "seeded" | "skipped" | "locked"
    source_stage_id: int
    source_kind: str
    slots_version: int
    assignments: List[SlotAssignment] = field(default_factory=list)
    slots: List[StageSlot] = field(default_factory=list)
    matches_created: int = 0
    message: str = ""


def load_intake_config(stage: Stage) -> KnockoutIntakeConfig:
    try:
        config = KnockoutIntakeConfig.model_validate(stage.config or {})
    except ValidationError as e:
        raise InvalidStageConfigError(f"Stage {stage.id} knockout config is invalid: {e}") from e
    if config.from_stage_id is None:
        raise InvalidStageConfigError(f"Stage {stage.id} has no from_stage_id configured")
    return config


def _stage_slots(session: Session, stage_id: int) -> List[StageSlot]:
    return session.exec(
        select(StageSlot)
        .where(StageSlot.stage_id == stage_id, StageSlot.group_id == BRACKET_GROUP)
        .order_by(StageSlot.slot_id)
    ).all()


def _has_finished_match(session: Session, stage_id: int) -> bool:
    finished = session.exec(
        select(Match.id).where(Match.stage_id == stage_id, Match.status == MATCH_FINISHED).limit(1)
    ).first()
    return finished is not None


def _has_matches(session: Session, stage_id: int) -> bool:
    return session.exec(select(Match.id).where(Match.stage_id == stage_id).limit(1)).first() is not None


def _refresh_source_standings(session: Session, source: Stage) -> None:
    if _has_finished_match(session, source.id):
        recompute_stage_standings(session, source.id, commit=False)
    else:
        # nothing played yet: declared participants ranked by seed
        write_baseline_standings(session, source.id, commit=False)


def _select(session: Session, source: Stage, config: KnockoutIntakeConfig):
    """Returns (assignments, capacity, paired) for the source stage's stored tables."""
    tables: Dict[int, List[StandingsRow]] = load_stage_tables(session, source.id)

    if source.kind == STAGE_KIND_LEAGUE:
        rule = config.league_rule()
        table = tables.get(LEAGUE_GROUP_KEY)
        if table is None:
            # league rows stored under a group id still form one table
            table = [row for gid in sorted(tables) for row in tables[gid]]
        return select_league_advancers(table, rule), rule.advancers_total, False

    rule = config.group_rule()
    group_ids = stage_group_ids(session, source.id) or sorted(tables)
    ordered = [tables.get(gid, []) for gid in group_ids]
    assignments = select_group_advancers(ordered, rule)
    return assignments, slot_capacity(len(ordered), rule), uses_crossing(len(ordered), rule)


def _write_slots(
    session: Session, stage: Stage, assignments: List[SlotAssignment], existing: List[StageSlot]
) -> Tuple[List[SlotAssignment], Dict[int, int]]:
    """
    Replace auto slot rows around the manual ones.

    Returns:
        (assignments written as auto rows, slot_id -> team_id of kept manual rows)
    """
    manual: Dict[int, int] = {}
    for slot in existing:
        if slot.source == SLOT_SOURCE_MANUAL:
            if slot.team_id is not None:
                manual[slot.slot_id] = slot.team_id
            continue
        session.delete(slot)
    session.flush()

    manual_slots = {s.slot_id for s in existing if s.source == SLOT_SOURCE_MANUAL}
    pinned = set(manual.values())
    written: List[SlotAssignment] = []
    for a in assignments:
        if a.slot in manual_slots or a.team_id in pinned:
            continue
        written.append(a)
        session.add(
            StageSlot(
                stage_id=stage.id,
                group_id=BRACKET_GROUP,
                slot_id=a.slot,
                team_id=a.team_id,
                source=SLOT_SOURCE_AUTO,
            )
        )
    return written, manual


def _rebuild_matches(session: Session, stage: Stage, rows: List[KnockoutMatchRow]) -> int:
    # later rounds first so no remaining row points at a deleted one
    old = session.exec(
        select(Match).where(Match.stage_id == stage.id).order_by(Match.round.desc(), Match.bracket_pos.desc())
    ).all()
    for m in old:
        session.delete(m)
        session.flush()

    for row in rows:
        session.add(
            Match(
                tournament_id=stage.tournament_id,
                stage_id=stage.id,
                round=row.round,
                bracket_pos=row.bracket_pos,
                team_a_id=row.team_a_id,
                team_b_id=row.team_b_id,
                home_source_round=row.home_source_round,
                home_source_bracket_pos=row.home_source_bracket_pos,
                home_source_outcome=row.home_source_outcome,
                away_source_round=row.away_source_round,
                away_source_bracket_pos=row.away_source_bracket_pos,
                away_source_outcome=row.away_source_outcome,
            )
        )
    return len(rows)


def reseed_knockout_stage(
    session: Session,
    stage_id: int,
    reseed: bool = False,
    force: bool = False,
    recompute: bool = False,
    expected_version: Optional[int] = None,
) -> ReseedResult:
    """
    Seed (or reseed) a knockout stage from its configured source stage.

    Args:
        session: Database session
        stage_id: Target knockout stage
        reseed: overwrite auto slots and matches that are already populated
        force: implies reseed and recompute
        recompute: rebuild source standings even when the call is locked or skipped
        expected_version: stage.slots_version the caller last saw

    Returns:
        ReseedResult with status seeded, skipped or locked

    Raises:
        StageNotFoundError: target or source stage missing
        InvalidStageConfigError: target is not knockout, or its config is unusable
        UnsupportedSourceKindError: source is neither league nor groups
        ReseedConflictError: slots_version moved (nothing is written)
    """
    if force:
        reseed = True
        recompute = True

    stage = get_stage(session, stage_id)
    if stage.kind != STAGE_KIND_KNOCKOUT:
        raise InvalidStageConfigError(f"Stage {stage_id} is '{stage.kind}', expected '{STAGE_KIND_KNOCKOUT}'")
    config = load_intake_config(stage)

    source = session.get(Stage, config.from_stage_id)
    if not source:
        raise StageNotFoundError(config.from_stage_id, role="Source stage")
    if source.kind not in (STAGE_KIND_LEAGUE, STAGE_KIND_GROUPS):
        raise UnsupportedSourceKindError(source.id, source.kind)

    seen_version = stage.slots_version
    if expected_version is not None and expected_version != seen_version:
        raise ReseedConflictError(stage.id, expected_version, seen_version)

    result = ReseedResult(
        stage_id=stage.id,
        status=RESEED_SEEDED,
        source_stage_id=source.id,
        source_kind=source.kind,
        slots_version=seen_version,
    )

    if recompute:
        try:
            _refresh_source_standings(session, source)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Standings refresh for stage %s failed", source.id)
            raise

    if _has_finished_match(session, stage.id):
        logger.warning("Stage %s: knockout already under way, reseed ignored", stage.id)
        result.status = RESEED_LOCKED
        result.slots = _stage_slots(session, stage.id)
        result.message = "Knockout has finished matches; slots are locked"
        return result

    existing = _stage_slots(session, stage.id)
    if (existing or _has_matches(session, stage.id)) and not reseed:
        logger.warning("Stage %s: slots or matches already populated, skipping (reseed=false)", stage.id)
        result.status = RESEED_SKIPPED
        result.slots = existing
        result.message = "Slots already populated; pass reseed=true to overwrite"
        return result

    try:
        if not recompute:
            _refresh_source_standings(session, source)
        assignments, capacity, paired = _select(session, source, config)

        assignments, manual = _write_slots(session, stage, assignments, existing)
        entrants = slots_to_entrants(assignments, capacity)
        for slot_id, team_id in manual.items():
            if slot_id <= len(entrants):
                entrants[slot_id - 1] = team_id

        placed = sum(1 for team_id in entrants if team_id is not None)
        if placed < 2:
            logger.warning("Stage %s: only %d team(s) placed, no bracket built", stage.id, placed)
            result.message = "Fewer than two teams placed; no knockout matches built"
            rows: List[KnockoutMatchRow] = []
        else:
            rows = build_paired_skeleton(entrants) if paired else build_seeded_skeleton(entrants)
        result.matches_created = _rebuild_matches(session, stage, rows)

        bumped = session.connection().execute(
            update(Stage)
            .where(Stage.id == stage.id, Stage.slots_version == seen_version)
            .values(slots_version=seen_version + 1, updated_at=datetime.utcnow())
        )
        if bumped.rowcount != 1:
            session.rollback()
            actual = session.get(Stage, stage.id)
            raise ReseedConflictError(stage.id, seen_version, actual.slots_version if actual else -1)

        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Reseed of stage %s failed", stage_id)
        raise

    result.assignments = assignments
    result.slots_version = seen_version + 1
    result.slots = _stage_slots(session, stage.id)
    logger.info(
        "Stage %s: seeded %d advancer(s) from %s stage %s, %d match(es), slots_version=%d",
        stage.id,
        len(assignments),
        source.kind,
        source.id,
        result.matches_created,
        result.slots_version,
    )
    return result
