"""
Stateless schedule endpoints: generation, conflict checks and bracket preview.
Nothing here touches the database.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from planner.models.schedule_types import GeneratedSchedule, PlayoffMatch, ScheduledMatch
from planner.models.tournament_config import FinalsConfig, TeamEntry, TournamentConfig
from planner.services.conflict_detector import build_conflict_report, detect_all_conflicts, validate_match_change
from planner.services.playoff_bracket import effective_preset, generate_playoff_matches
from planner.services.schedule_generator import ConfigurationError, generate_full_schedule
from planner.utils.conflict_report import ConflictDetectionConfig, ConflictReport, MatchChange, ScheduleConflict

logger = logging.getLogger(__name__)

router = APIRouter()


class ConflictCheckRequest(BaseModel):
    matches: List[ScheduledMatch]
    teams: List[TeamEntry] = Field(default_factory=list)
    config: ConflictDetectionConfig = Field(default_factory=ConflictDetectionConfig)


class MatchChangeRequest(ConflictCheckRequest):
    change: MatchChange


class PlayoffPreviewResponse(BaseModel):
    preset: str
    effective_preset: str
    number_of_groups: int
    expected_match_count: int
    matches: List[PlayoffMatch]


@router.post("/schedule/generate", response_model=GeneratedSchedule)
def generate_schedule(config: TournamentConfig):
    """Generate a full schedule from a tournament configuration"""
    try:
        return generate_full_schedule(config)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/schedule/conflicts", response_model=ConflictReport)
def check_conflicts(request: ConflictCheckRequest):
    """Detect conflicts in a (possibly hand-edited) match list"""
    conflicts = detect_all_conflicts(request.matches, request.teams, request.config)
    return build_conflict_report(conflicts)


@router.post("/schedule/conflicts/validate-change", response_model=List[ScheduleConflict])
def check_match_change(request: MatchChangeRequest):
    """Conflicts the proposed change would cause for the changed match"""
    if not any(m.id == request.change.match_id for m in request.matches):
        raise HTTPException(status_code=404, detail=f"Match {request.change.match_id} not found")
    return validate_match_change(request.matches, request.teams, request.change, request.config)


@router.get("/playoffs/preview", response_model=PlayoffPreviewResponse)
def preview_playoffs(
    preset: str = Query(..., description="Finals preset (none, final-only, top-4, top-8, top-16, all-places)"),
    groups: int = Query(2, ge=0),
    locale: Optional[str] = Query("de"),
):
    """Bracket for a preset and group count, without scheduling"""
    finals_config = FinalsConfig(preset=preset)
    matches = generate_playoff_matches(groups, finals_config, locale=locale or "de")
    return PlayoffPreviewResponse(
        preset=preset,
        effective_preset=effective_preset(finals_config.preset, groups).value,
        number_of_groups=groups,
        expected_match_count=len(matches),
        matches=matches,
    )
