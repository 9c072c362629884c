"""
Conflict Report Models

Pydantic models shared by:
- conflict_detector service
- Route handlers (schedule.py, tournaments.py)

All conflict computation is in planner.services.conflict_detector.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ConflictType = Literal[
    "team_double_booking",
    "referee_double_booking",
    "field_overlap",
    "break_violation",
    "dependency_violation",
]
ConflictSeverity = Literal["error", "warning"]


class ScheduleConflict(BaseModel):
    """A detected conflict between two matches"""

    id: str
    type: ConflictType
    severity: ConflictSeverity
    match_ids: List[str]
    message: str
    suggestion: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)


class ConflictDetectionConfig(BaseModel):
    """
    Detection options.

    match_duration_minutes overrides each match's own end time when set.
    """

    min_break_minutes: int = 0
    match_duration_minutes: Optional[int] = None
    check_referee_conflicts: bool = True
    check_field_conflicts: bool = True
    check_dependencies: bool = True


class MatchChange(BaseModel):
    """A proposed single-attribute edit of one match"""

    match_id: str
    field: Literal["field", "referee", "start_time", "slot"]
    new_value: Any


class ConflictReport(BaseModel):
    """Conflict list plus counts, as returned by the API"""

    conflicts: List[ScheduleConflict]
    error_count: int
    warning_count: int
    has_blocking_conflicts: bool
    by_type: Dict[str, int]
