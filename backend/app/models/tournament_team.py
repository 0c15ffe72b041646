from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class TournamentTeam(SQLModel, table=True):
    """Participation of a team in a tournament.

    Groups stages declare members with stage_id + group_id; league stages use the
    tournament-wide rows where stage_id is null.
    """

    __table_args__ = (
        SAUniqueConstraint("tournament_id", "team_id", "stage_id", name="uq_tournament_team_stage"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    team_id: int = Field(foreign_key="team.id")
    stage_id: Optional[int] = Field(default=None, foreign_key="stage.id")
    group_id: Optional[int] = Field(default=None, foreign_key="stagegroup.id")
    seed: Optional[int] = Field(default=None)  # 1-based, 1 = top seed
