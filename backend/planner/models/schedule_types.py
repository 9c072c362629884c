"""
Schedule engine output models.

ScheduledMatch.id is stable: group-stage ids are derived from group and
pairing order, playoff ids are the bracket ids (semi1, qf3, r16-4, ...).
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from planner.models.tournament_config import TeamEntry

PhaseName = Literal["groupStage", "roundOf16", "quarterfinal", "semifinal", "final"]
FinalType = Literal["final", "thirdPlace", "fifthSixth", "seventhEighth"]
MatchStatus = Literal["scheduled", "running", "finished", "skipped"]

FINAL_TYPES: Tuple[str, ...] = ("final", "thirdPlace", "fifthSixth", "seventhEighth")

PHASE_ORDER: Tuple[PhaseName, ...] = ("groupStage", "roundOf16", "quarterfinal", "semifinal", "final")

PHASE_LABELS: Dict[str, Dict[str, str]] = {
    "de": {
        "groupStage": "Gruppenphase",
        "roundOf16": "Achtelfinale",
        "quarterfinal": "Viertelfinale",
        "semifinal": "Halbfinale",
        "final": "Finalspiele",
    },
    "en": {
        "groupStage": "Group Stage",
        "roundOf16": "Round of 16",
        "quarterfinal": "Quarterfinals",
        "semifinal": "Semifinals",
        "final": "Finals",
    },
}


class PlayoffMatch(BaseModel):
    """Serialized playoff match: placeholders and dependencies as string ids."""

    id: str
    label: str
    home: str
    away: str
    rank: Optional[Union[int, Tuple[int, int]]] = None
    depends_on: List[str] = Field(default_factory=list)


class ScheduledMatch(BaseModel):
    id: str
    match_number: int
    time: str
    field: int
    slot: int
    home_team: str
    away_team: str
    original_team_a: str
    original_team_b: str
    group: Optional[str] = None
    phase: PhaseName = "groupStage"
    final_type: Optional[FinalType] = None
    label: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: int
    depends_on: List[str] = Field(default_factory=list)
    referee: Optional[int] = None
    score_a: Optional[int] = None
    score_b: Optional[int] = None
    match_status: Optional[MatchStatus] = None

    @property
    def is_final(self) -> bool:
        return self.phase != "groupStage"

    @property
    def has_result(self) -> bool:
        return self.score_a is not None and self.score_b is not None


class SchedulePhase(BaseModel):
    name: PhaseName
    label: str
    matches: List[ScheduledMatch]
    start_time: datetime
    end_time: datetime


class Standing(BaseModel):
    team: TeamEntry
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    points: int = 0


class ScheduleNotice(BaseModel):
    """Non-fatal note about substituted input or relaxed constraints"""

    kind: Literal["degraded_input", "constraint_relaxed"]
    code: str
    message: str


class GeneratedSchedule(BaseModel):
    tournament: Dict[str, Any]
    all_matches: List[ScheduledMatch]
    phases: List[SchedulePhase]
    start_time: datetime
    end_time: datetime
    total_duration: int
    number_of_fields: int
    teams: List[TeamEntry]
    initial_standings: List[Standing]
    referee_config: Dict[str, Any]
    notices: List[ScheduleNotice] = Field(default_factory=list)
