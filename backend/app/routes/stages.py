"""
Stage progression routes: standings, reseed, bracket graph and layout.
"""
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from app.database import get_session
from app.models.match import Match
from app.services.bracket_graph import ResolvedBracket, resolve_bracket
from app.services.bracket_layout import (
    DEFAULT_CURVATURE,
    DEFAULT_MIN_CARD_HEIGHT,
    DEFAULT_MIN_ROW_GAP,
    LayoutParams,
    LayoutScheduler,
    NodeGeometry,
)
from app.services.errors import ProgressionError
from app.services.knockout_propagation import resolve_all_dependencies
from app.services.reseed_orchestrator import ReseedResult, reseed_knockout_stage
from app.services.stage_standings_service import load_stage_tables, recompute_stage_standings
from app.services.standings import StandingsRow
from app.utils.stage_guards import http_error_for, require_knockout_stage, require_table_stage

router = APIRouter()


# ============================================================================
# Standings
# ============================================================================


class StandingsRowOut(BaseModel):
    team_id: int
    played: int
    won: int
    drawn: int
    lost: int
    goals_for: int
    goals_against: int
    goal_diff: int
    points: int
    rank: int


class GroupTableOut(BaseModel):
    group_id: int
    rows: List[StandingsRowOut]


class StageStandingsResponse(BaseModel):
    stage_id: int
    kind: str
    groups: List[GroupTableOut]


def _tables_response(stage_id: int, kind: str, tables: Dict[int, List[StandingsRow]]) -> StageStandingsResponse:
    return StageStandingsResponse(
        stage_id=stage_id,
        kind=kind,
        groups=[
            GroupTableOut(group_id=gid, rows=[StandingsRowOut(**row.to_dict()) for row in tables[gid]])
            for gid in sorted(tables)
        ],
    )


@router.get("/stages/{stage_id}/standings", response_model=StageStandingsResponse)
def get_stage_standings(stage_id: int, session: Session = Depends(get_session)) -> StageStandingsResponse:
    """Stored standings of a league or groups stage, one table per group."""
    stage = require_table_stage(session, stage_id)
    return _tables_response(stage.id, stage.kind, load_stage_tables(session, stage.id))


@router.post("/stages/{stage_id}/recalculate-standings", response_model=StageStandingsResponse)
def recalculate_stage_standings(stage_id: int, session: Session = Depends(get_session)) -> StageStandingsResponse:
    """Rebuild the stage's tables from finished matches and replace the stored rows."""
    stage = require_table_stage(session, stage_id)
    try:
        tables = recompute_stage_standings(session, stage.id)
    except ProgressionError as e:
        raise http_error_for(e)
    return _tables_response(stage.id, stage.kind, tables)


# ============================================================================
# Reseed
# ============================================================================


class SlotAssignmentOut(BaseModel):
    slot: int
    team_id: int
    source_group: int
    source_rank: int


class StageSlotOut(BaseModel):
    slot_id: int
    team_id: Optional[int] = None
    source: str

    class Config:
        from_attributes = True


class ReseedResponse(BaseModel):
    stage_id: int
    status: str
    source_stage_id: int
    source_kind: str
    slots_version: int
    matches_created: int
    assignments: List[SlotAssignmentOut]
    slots: List[StageSlotOut]
    message: str = ""


def _reseed_response(result: ReseedResult) -> ReseedResponse:
    return ReseedResponse(
        stage_id=result.stage_id,
        status=result.status,
        source_stage_id=result.source_stage_id,
        source_kind=result.source_kind,
        slots_version=result.slots_version,
        matches_created=result.matches_created,
        assignments=[
            SlotAssignmentOut(slot=a.slot, team_id=a.team_id, source_group=a.source_group, source_rank=a.source_rank)
            for a in result.assignments
        ],
        slots=[StageSlotOut.model_validate(s) for s in result.slots],
        message=result.message,
    )


@router.post("/stages/{stage_id}/reseed", response_model=ReseedResponse)
def reseed_stage(
    stage_id: int,
    reseed: bool = Query(False),
    force: bool = Query(False),
    recompute: bool = Query(False),
    expected_version: Optional[int] = Query(None),
    session: Session = Depends(get_session),
) -> ReseedResponse:
    """
    Seed a knockout stage from its configured source stage.

    Query flags:
    - reseed: overwrite auto slots that are already populated
    - recompute: rebuild source standings even if the stage is locked or skipped
    - force: reseed + recompute
    - expected_version: slots_version last seen by the caller; 409 if it moved

    Errors:
    - 404: stage or source stage not found
    - 400: not a knockout stage, bad config, or unsupported source kind
    - 409: RESEED_CONFLICT (re-read the stage and retry)
    """
    try:
        result = reseed_knockout_stage(
            session,
            stage_id,
            reseed=reseed,
            force=force,
            recompute=recompute,
            expected_version=expected_version,
        )
    except ProgressionError as e:
        raise http_error_for(e)
    return _reseed_response(result)


# ============================================================================
# Bracket
# ============================================================================


class BracketNodeOut(BaseModel):
    key: str
    round: int
    bracket_pos: Optional[int] = None
    is_stub: bool
    match_id: Optional[int] = None
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None
    team_a_score: Optional[int] = None
    team_b_score: Optional[int] = None
    status: str = "scheduled"
    winner_team_id: Optional[int] = None


class BracketRoundOut(BaseModel):
    round: int
    nodes: List[BracketNodeOut]


class BracketEdgeOut(BaseModel):
    source: str
    target: str


class BracketResponse(BaseModel):
    stage_id: int
    rounds: List[BracketRoundOut]
    edges: List[BracketEdgeOut]


def _stage_bracket(session: Session, stage_id: int) -> ResolvedBracket:
    matches = session.exec(select(Match).where(Match.stage_id == stage_id).order_by(Match.id)).all()
    return resolve_bracket(matches)


def _bracket_response(stage_id: int, bracket: ResolvedBracket) -> BracketResponse:
    rounds = []
    for rnd in bracket.rounds:
        nodes = []
        for node in rnd.nodes:
            m = node.match
            nodes.append(
                BracketNodeOut(
                    key=node.key,
                    round=node.round,
                    bracket_pos=node.bracket_pos,
                    is_stub=node.is_stub,
                    match_id=node.match_id,
                    team_a_id=m.team_a_id if m else None,
                    team_b_id=m.team_b_id if m else None,
                    team_a_score=m.team_a_score if m else None,
                    team_b_score=m.team_b_score if m else None,
                    status=m.status if m else "scheduled",
                    winner_team_id=m.winner_team_id if m else None,
                )
            )
        rounds.append(BracketRoundOut(round=rnd.round, nodes=nodes))
    edges = [BracketEdgeOut(source=s, target=t) for s, t in bracket.edge_keys()]
    return BracketResponse(stage_id=stage_id, rounds=rounds, edges=edges)


@router.get("/stages/{stage_id}/bracket", response_model=BracketResponse)
def get_stage_bracket(stage_id: int, session: Session = Depends(get_session)) -> BracketResponse:
    """Resolved knockout bracket: rounds with bye stubs and parent -> child edges."""
    stage = require_knockout_stage(session, stage_id)
    return _bracket_response(stage.id, _stage_bracket(session, stage.id))


class NodeGeometryIn(BaseModel):
    center: float
    height: float = Field(ge=0)
    left: float = 0.0
    right: float = 0.0


class LayoutRequest(BaseModel):
    nodes: Dict[str, NodeGeometryIn] = Field(default_factory=dict)  # keyed by "<round>:<bracket_pos>"
    min_card_height: float = Field(default=DEFAULT_MIN_CARD_HEIGHT, ge=0)
    min_row_gap: float = Field(default=DEFAULT_MIN_ROW_GAP, ge=0)
    curvature: float = Field(default=DEFAULT_CURVATURE, ge=0, le=1)


class ConnectorOut(BaseModel):
    source: str
    target: str
    d: str
    points: List[List[float]]  # start, control1, control2, end


class LayoutResponse(BaseModel):
    stage_id: int
    deltas: Dict[str, float]
    centers: Dict[str, float]
    paths: List[ConnectorOut]


@router.post("/stages/{stage_id}/bracket/layout", response_model=LayoutResponse)
def layout_stage_bracket(
    stage_id: int,
    payload: LayoutRequest,
    session: Session = Depends(get_session),
) -> LayoutResponse:
    """Vertical offsets and connector curves for measured bracket cards."""
    stage = require_knockout_stage(session, stage_id)
    bracket = _stage_bracket(session, stage.id)
    geometry = {
        key: NodeGeometry(center=g.center, height=g.height, left=g.left, right=g.right)
        for key, g in payload.nodes.items()
    }
    params = LayoutParams(
        min_card_height=payload.min_card_height,
        min_row_gap=payload.min_row_gap,
        curvature=payload.curvature,
    )

    scheduler = LayoutScheduler()
    scheduler.request(bracket, geometry, params)
    result = scheduler.flush()

    return LayoutResponse(
        stage_id=stage.id,
        deltas=result.deltas,
        centers=result.centers,
        paths=[
            ConnectorOut(
                source=p.source_key,
                target=p.target_key,
                d=p.d,
                points=[[pt.x, pt.y] for pt in (p.start, p.control1, p.control2, p.end)],
            )
            for p in result.paths
        ],
    )


# ============================================================================
# Bulk Dependency Resolution
# ============================================================================


class ResolveDependenciesResponse(BaseModel):
    """Response for bulk dependency resolution"""

    matches_processed: int
    teams_advanced: int
    unknown_before: int
    unknown_after: int


@router.post("/stages/{stage_id}/resolve-dependencies", response_model=ResolveDependenciesResponse)
def resolve_dependencies(stage_id: int, session: Session = Depends(get_session)) -> ResolveDependenciesResponse:
    """
    Carry winners (and losers) of every finished knockout match into the
    matches that reference them. Useful after importing results in bulk or
    recovering from an interrupted update.

    Guarantees:
    - Idempotent (occupied slots are never overwritten)
    - Earlier rounds are processed before later ones
    """
    stage = require_knockout_stage(session, stage_id)
    return ResolveDependenciesResponse(**resolve_all_dependencies(session, stage.id))
