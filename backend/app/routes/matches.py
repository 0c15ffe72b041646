"""
Match results: record scores/status. When a match finishes, knockout children
are filled, the stage table is recomputed and the tournament may complete.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from app.database import get_session
from app.models.match import MATCH_FINISHED, MATCH_POSTPONED, MATCH_SCHEDULED, Match
from app.models.stage import STAGE_KIND_KNOCKOUT, Stage
from app.services.errors import ProgressionError
from app.services.knockout_propagation import winner_of
from app.services.stage_standings_service import progress_after_match
from app.utils.stage_guards import get_match_or_404, http_error_for

router = APIRouter()

MATCH_STATUSES = (MATCH_SCHEDULED, MATCH_FINISHED, MATCH_POSTPONED)


class MatchUpdate(BaseModel):
    status: Optional[str] = None
    team_a_score: Optional[int] = Field(default=None, ge=0)
    team_b_score: Optional[int] = Field(default=None, ge=0)
    winner_team_id: Optional[int] = None


class MatchState(BaseModel):
    id: int
    tournament_id: int
    stage_id: int
    group_id: Optional[int] = None
    round: Optional[int] = None
    bracket_pos: Optional[int] = None
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None
    team_a_score: Optional[int] = None
    team_b_score: Optional[int] = None
    status: str
    winner_team_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MatchUpdateResponse(BaseModel):
    match: MatchState
    advanced_count: int = 0
    standings_updated: bool = False
    tournament_completed: bool = False


def _validate_status_transition(current: str, new: str) -> None:
    if new not in MATCH_STATUSES:
        raise HTTPException(status_code=422, detail=f"Invalid status: {new}")
    if current == MATCH_FINISHED and new != MATCH_FINISHED:
        raise HTTPException(status_code=422, detail="finished is terminal; cannot revert")


@router.patch("/matches/{match_id}", response_model=MatchUpdateResponse)
def update_match(
    match_id: int,
    payload: MatchUpdate,
    session: Session = Depends(get_session),
) -> MatchUpdateResponse:
    """Record a result. Setting status to finished runs progression for the match's stage."""
    match = get_match_or_404(session, match_id)
    current = match.status or MATCH_SCHEDULED

    if payload.status is not None:
        _validate_status_transition(current, payload.status)
        match.status = payload.status
    if payload.team_a_score is not None:
        match.team_a_score = payload.team_a_score
    if payload.team_b_score is not None:
        match.team_b_score = payload.team_b_score
    if payload.winner_team_id is not None:
        if payload.winner_team_id not in (match.team_a_id, match.team_b_id):
            raise HTTPException(status_code=422, detail="winner_team_id must be one of the match's teams")
        match.winner_team_id = payload.winner_team_id

    if match.status == MATCH_FINISHED:
        if match.team_a_id is None or match.team_b_id is None:
            raise HTTPException(status_code=422, detail="Both teams must be set before a match can finish")
        stage = session.get(Stage, match.stage_id)
        if stage and stage.kind == STAGE_KIND_KNOCKOUT and winner_of(match) is None:
            raise HTTPException(
                status_code=422,
                detail="winner_team_id required when a knockout match finishes level",
            )
        if match.winner_team_id is None:
            match.winner_team_id = winner_of(match)

    session.add(match)
    session.commit()
    session.refresh(match)

    progress = {"advanced_count": 0, "standings_updated": 0, "tournament_completed": 0}
    if match.status == MATCH_FINISHED:
        try:
            progress = progress_after_match(session, match.id)
        except ProgressionError as e:
            raise http_error_for(e)
        session.refresh(match)

    return MatchUpdateResponse(
        match=MatchState.model_validate(match),
        advanced_count=progress["advanced_count"],
        standings_updated=bool(progress["standings_updated"]),
        tournament_completed=bool(progress["tournament_completed"]),
    )
