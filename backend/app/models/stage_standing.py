from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class StageStanding(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("stage_id", "group_id", "team_id", name="uq_stage_group_team"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    group_id: int = Field(default=0)  # StageGroup id; 0 for a league table
    team_id: int = Field(foreign_key="team.id")
    played: int = Field(default=0)
    won: int = Field(default=0)
    drawn: int = Field(default=0)
    lost: int = Field(default=0)
    gf: int = Field(default=0)
    ga: int = Field(default=0)
    gd: int = Field(default=0)
    points: int = Field(default=0)
    rank: int
