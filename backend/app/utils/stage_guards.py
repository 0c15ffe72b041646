"""
Stage Guards and Utilities

Reusable lookups for stage routes:
- Stage existence
- Stage kind checks (knockout vs league/groups)
- Domain error -> HTTP status mapping
"""

from fastapi import HTTPException
from sqlmodel import Session

from app.models.match import Match
from app.models.stage import STAGE_KIND_KNOCKOUT, Stage
from app.services.errors import (
    ProgressionError,
    ReseedConflictError,
    StageNotFoundError,
)


def get_stage_or_404(session: Session, stage_id: int) -> Stage:
    """
    Get a stage or raise 404.

    Args:
        session: Database session
        stage_id: Stage ID

    Returns:
        Stage

    Raises:
        HTTPException 404: Stage not found
    """
    stage = session.get(Stage, stage_id)
    if not stage:
        raise HTTPException(status_code=404, detail="Stage not found")
    return stage


def require_knockout_stage(session: Session, stage_id: int) -> Stage:
    """
    Require that a stage is a knockout stage, otherwise raise 400.

    Raises:
        HTTPException 404: Stage not found
        HTTPException 400: Stage is league or groups
    """
    stage = get_stage_or_404(session, stage_id)
    if stage.kind != STAGE_KIND_KNOCKOUT:
        raise HTTPException(
            status_code=400,
            detail=f"STAGE_NOT_KNOCKOUT: Stage {stage_id} has kind '{stage.kind}'. Only knockout stages have a bracket.",
        )
    return stage


def require_table_stage(session: Session, stage_id: int) -> Stage:
    """
    Require a league or groups stage (one that has standings), otherwise raise 400.
    """
    stage = get_stage_or_404(session, stage_id)
    if stage.kind == STAGE_KIND_KNOCKOUT:
        raise HTTPException(
            status_code=400,
            detail=f"STAGE_HAS_NO_STANDINGS: Stage {stage_id} is a knockout stage.",
        )
    return stage


def get_match_or_404(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    return match


def http_error_for(exc: ProgressionError) -> HTTPException:
    """Map a progression error onto the HTTP status routes return for it."""
    if isinstance(exc, StageNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ReseedConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
