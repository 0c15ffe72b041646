from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.stage import Stage
    from app.models.tournament import Tournament

MATCH_SCHEDULED = "scheduled"
MATCH_FINISHED = "finished"
MATCH_POSTPONED = "postponed"

OUTCOME_WINNER = "W"
OUTCOME_LOSER = "L"


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    group_id: Optional[int] = Field(default=None, foreign_key="stagegroup.id")  # groups stages only
    matchday: Optional[int] = Field(default=None)

    # Knockout placement: round 1 = earliest, bracket_pos dense and 1-based within the round
    round: Optional[int] = Field(default=None)
    bracket_pos: Optional[int] = Field(default=None)

    # Team slots (nullable until seeded or advanced into)
    team_a_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team_b_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team_a_score: Optional[int] = Field(default=None)
    team_b_score: Optional[int] = Field(default=None)

    status: str = Field(default=MATCH_SCHEDULED)  # "scheduled" | "finished" | "postponed"
    winner_team_id: Optional[int] = Field(default=None, foreign_key="team.id")

    # Explicit upstream pointers (manual overrides)
    home_source_match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    home_source_outcome: Optional[str] = Field(default=None)  # "W" | "L"
    away_source_match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    away_source_outcome: Optional[str] = Field(default=None)

    # Stable upstream pointers by coordinate (auto-generated brackets)
    home_source_round: Optional[int] = Field(default=None)
    home_source_bracket_pos: Optional[int] = Field(default=None)
    away_source_round: Optional[int] = Field(default=None)
    away_source_bracket_pos: Optional[int] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
    stage: "Stage" = Relationship(back_populates="matches")
