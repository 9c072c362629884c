from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from planner.models.tournament import Tournament


class Match(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "match_id", name="uq_match_tournament_match_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id")

    # Stable schedule id ("a-3", "semi1", "r16-4"); survives edits
    match_id: str
    match_number: int
    group: Optional[str] = None
    phase: str = Field(default="groupStage")  # groupStage | roundOf16 | quarterfinal | semifinal | final
    final_type: Optional[str] = None
    label: Optional[str] = None

    # Team id or placeholder ("group-a-1st", "semi1-winner")
    team_a: str
    team_b: str

    field: int = Field(default=1)
    slot: int = Field(default=0)
    start_time: datetime
    duration_minutes: int
    depends_on: Optional[List[str]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    referee: Optional[int] = None
    score_a: Optional[int] = None
    score_b: Optional[int] = None
    match_status: str = Field(default="scheduled")  # scheduled | running | finished | skipped
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
