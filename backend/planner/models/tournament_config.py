"""
Tournament configuration consumed by the schedule engine.

These are plain pydantic models (no table). The engine never reads global
state: every generator call receives one TournamentConfig value.
"""

import logging
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


class FinalsPreset(str, Enum):
    NONE = "none"
    FINAL_ONLY = "final-only"
    TOP_4 = "top-4"
    TOP_8 = "top-8"
    TOP_16 = "top-16"
    ALL_PLACES = "all-places"


FinalsRefereeMode = Literal["none", "neutralTeams", "nonParticipatingTeams"]
GroupSystem = Literal["roundRobin", "groupsAndFinals"]
Locale = Literal["de", "en"]


class TeamEntry(BaseModel):
    id: str
    name: str
    group: Optional[str] = None


class GroupDisplay(BaseModel):
    """Custom display name for a group letter (e.g. A -> 'Löwen')"""

    id: str
    custom_name: Optional[str] = None
    short_code: Optional[str] = None


class PointSystem(BaseModel):
    win: int = 3
    draw: int = 1
    loss: int = 0


class FinalsConfig(BaseModel):
    preset: FinalsPreset = FinalsPreset.NONE
    parallel_semifinals: bool = True
    parallel_quarterfinals: bool = True
    parallel_round_of_16: bool = True
    tiebreaker: Literal["none", "penalties"] = "none"

    # Raw preset name when an unknown value was replaced by "none"
    unknown_preset: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def degrade_unknown_preset(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        raw = data.get("preset")
        if raw is None or isinstance(raw, FinalsPreset):
            return data
        known = {p.value for p in FinalsPreset}
        if raw not in known:
            logger.warning("Unknown finals preset %r, falling back to 'none'", raw)
            data = {**data, "preset": FinalsPreset.NONE.value, "unknown_preset": str(raw)}
        return data


# ============================================================================
# Referee policy: one variant per mode
# ============================================================================


class NoRefereeConfig(BaseModel):
    mode: Literal["none"] = "none"
    finals_referee_mode: FinalsRefereeMode = "none"


class OrganizerRefereeConfig(BaseModel):
    mode: Literal["organizer"] = "organizer"
    number_of_referees: int = 2
    max_consecutive_matches: int = 1
    referee_names: Dict[int, str] = Field(default_factory=dict)
    manual_assignments: Dict[str, int] = Field(default_factory=dict)
    finals_referee_mode: FinalsRefereeMode = "none"


class TeamRefereeConfig(BaseModel):
    mode: Literal["teams"] = "teams"
    manual_assignments: Dict[str, int] = Field(default_factory=dict)
    finals_referee_mode: FinalsRefereeMode = "none"


RefereeConfig = Annotated[
    Union[NoRefereeConfig, OrganizerRefereeConfig, TeamRefereeConfig],
    Field(discriminator="mode"),
]

REFEREE_MODES = ("none", "organizer", "teams")


class PersistedMatch(BaseModel):
    """
    A match already stored by the caller (hybrid mode).

    team_a / team_b hold a team id or a placeholder string.
    """

    id: str
    team_a: str
    team_b: str
    field: int = 1
    slot: Optional[int] = None
    round: Optional[int] = None
    group: Optional[str] = None
    phase: Optional[str] = None
    is_final: bool = False
    final_type: Optional[str] = None
    label: Optional[str] = None
    match_number: Optional[int] = None
    scheduled_time: Optional[str] = None
    referee: Optional[int] = None
    score_a: Optional[int] = None
    score_b: Optional[int] = None
    match_status: Optional[Literal["scheduled", "running", "finished", "skipped"]] = None
    depends_on: List[str] = Field(default_factory=list)


class TournamentConfig(BaseModel):
    id: str = "tournament"
    title: str = ""
    teams: List[TeamEntry] = Field(default_factory=list)
    number_of_groups: int = 2
    number_of_fields: int = 1
    group_system: GroupSystem = "roundRobin"

    group_phase_game_duration: int = 10
    group_phase_break_duration: int = 0
    game_periods: int = 1
    halftime_break: int = 0
    final_round_game_duration: Optional[int] = None
    final_round_break_duration: Optional[int] = None
    break_between_phases: int = 0
    min_rest_slots: int = 1

    finals_config: FinalsConfig = Field(default_factory=FinalsConfig)
    referee_config: RefereeConfig = Field(default_factory=NoRefereeConfig)

    start_date: Optional[str] = None
    start_time: Optional[str] = None
    location: Optional[str] = None
    groups: List[GroupDisplay] = Field(default_factory=list)
    point_system: PointSystem = Field(default_factory=PointSystem)
    locale: Locale = "de"

    matches: List[PersistedMatch] = Field(default_factory=list)

    @field_validator("referee_config", mode="before")
    @classmethod
    def degrade_unknown_referee_mode(cls, v):
        if isinstance(v, dict) and v.get("mode") not in REFEREE_MODES:
            logger.warning("Unknown referee mode %r, falling back to 'none'", v.get("mode"))
            return {"mode": "none"}
        return v
