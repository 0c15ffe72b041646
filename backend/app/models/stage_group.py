from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.stage import Stage


class StageGroup(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    name: str  # "A", "B", ...
    ordering: int = Field(default=0)

    stage: "Stage" = Relationship(back_populates="groups")
