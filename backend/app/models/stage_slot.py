from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel

SLOT_SOURCE_AUTO = "auto"
SLOT_SOURCE_MANUAL = "manual"


class StageSlot(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("stage_id", "group_id", "slot_id", name="uq_stage_slot"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    group_id: int = Field(default=0)  # target group index (0-based); 0 for a single bracket
    slot_id: int  # 1-based
    team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    source: str = Field(default=SLOT_SOURCE_AUTO)  # "auto" | "manual"
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
