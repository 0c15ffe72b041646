from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.match import Match
    from app.models.stage_group import StageGroup
    from app.models.tournament import Tournament

STAGE_KIND_LEAGUE = "league"
STAGE_KIND_GROUPS = "groups"
STAGE_KIND_KNOCKOUT = "knockout"


class Stage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    kind: str  # "league" | "groups" | "knockout"
    ordering: int = Field(default=0)

    # Knockout: from_stage_id, advancers_total, advancers_per_group, semis_cross
    # League/groups: tiebreakers, points
    config: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    # Bumped on every slot write; reseed callers compare it to detect concurrent writers
    slots_version: int = Field(default=0)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="stages")
    groups: List["StageGroup"] = Relationship(back_populates="stage")
    matches: List["Match"] = Relationship(back_populates="stage")
