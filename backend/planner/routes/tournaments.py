import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, model_validator
from sqlmodel import Session, select

from planner.database import get_session
from planner.models.match import Match
from planner.models.schedule_types import GeneratedSchedule, ScheduledMatch
from planner.models.tournament import Tournament
from planner.models.tournament_config import PersistedMatch, TournamentConfig
from planner.services.conflict_detector import (
    build_conflict_report,
    detect_all_conflicts,
    get_conflicts_for_match,
)
from planner.services.placeholder_resolver import placeholder_display_name, resolve_playoff_pairings
from planner.services.schedule_generator import ConfigurationError, generate_full_schedule
from planner.utils.conflict_report import ConflictDetectionConfig, ConflictReport, ScheduleConflict
from planner.utils.schedule_time import format_time

logger = logging.getLogger(__name__)

router = APIRouter()


class TournamentResponse(BaseModel):
    id: int
    title: str
    location: Optional[str]
    config: Dict[str, Any]
    created_at: datetime
    updated_at: datetime


class MatchResponse(BaseModel):
    match_id: str
    match_number: int
    group: Optional[str]
    phase: str
    final_type: Optional[str]
    label: Optional[str]
    team_a: str
    team_b: str
    home_team: str
    away_team: str
    field: int
    slot: int
    time: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    depends_on: List[str]
    referee: Optional[int]
    score_a: Optional[int]
    score_b: Optional[int]
    match_status: str


class MatchUpdate(BaseModel):
    """Identity-preserving edit: match_id, teams and phase never change"""

    score_a: Optional[int] = None
    score_b: Optional[int] = None
    referee: Optional[int] = None
    field: Optional[int] = None
    start_time: Optional[datetime] = None
    match_status: Optional[Literal["scheduled", "running", "finished", "skipped"]] = None

    @model_validator(mode="after")
    def validate_scores(self):
        for score in (self.score_a, self.score_b):
            if score is not None and score < 0:
                raise ValueError("scores must be >= 0")
        if self.field is not None and self.field < 1:
            raise ValueError("field must be >= 1")
        return self


class MatchUpdateResponse(BaseModel):
    match: MatchResponse
    conflicts: List[ScheduleConflict]


class PlayoffResolveResponse(BaseModel):
    was_resolved: bool
    updated_match_ids: List[str]
    message: str
    matches: List[ScheduledMatch]


# ============================================================================
# Helpers
# ============================================================================


def _get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


def _load_config(tournament: Tournament) -> TournamentConfig:
    return TournamentConfig.model_validate({**tournament.config_json, "id": str(tournament.id)})


def _load_matches(session: Session, tournament_id: int) -> List[Match]:
    return session.exec(
        select(Match).where(Match.tournament_id == tournament_id).order_by(Match.slot, Match.field, Match.match_number)
    ).all()


def _to_scheduled(row: Match, config: TournamentConfig) -> ScheduledMatch:
    def name(ref: str) -> str:
        return placeholder_display_name(ref, config.teams, config.groups, config.locale)

    return ScheduledMatch(
        id=row.match_id,
        match_number=row.match_number,
        time=format_time(row.start_time),
        field=row.field,
        slot=row.slot,
        home_team=name(row.team_a),
        away_team=name(row.team_b),
        original_team_a=row.team_a,
        original_team_b=row.team_b,
        group=row.group,
        phase=row.phase,
        final_type=row.final_type,
        label=row.label,
        start_time=row.start_time,
        end_time=row.start_time + timedelta(minutes=row.duration_minutes),
        duration=row.duration_minutes,
        depends_on=list(row.depends_on or []),
        referee=row.referee,
        score_a=row.score_a,
        score_b=row.score_b,
        match_status=row.match_status,
    )


def _to_persisted(row: Match) -> PersistedMatch:
    return PersistedMatch(
        id=row.match_id,
        team_a=row.team_a,
        team_b=row.team_b,
        field=row.field,
        slot=row.slot,
        group=row.group,
        phase=row.phase,
        is_final=row.phase != "groupStage",
        final_type=row.final_type,
        label=row.label,
        match_number=row.match_number,
        scheduled_time=row.start_time.isoformat(),
        referee=row.referee,
        score_a=row.score_a,
        score_b=row.score_b,
        match_status=row.match_status,
        depends_on=list(row.depends_on or []),
    )


def _match_response(scheduled: ScheduledMatch, status: str) -> MatchResponse:
    return MatchResponse(
        match_id=scheduled.id,
        match_number=scheduled.match_number,
        group=scheduled.group,
        phase=scheduled.phase,
        final_type=scheduled.final_type,
        label=scheduled.label,
        team_a=scheduled.original_team_a,
        team_b=scheduled.original_team_b,
        home_team=scheduled.home_team,
        away_team=scheduled.away_team,
        field=scheduled.field,
        slot=scheduled.slot,
        time=scheduled.time,
        start_time=scheduled.start_time,
        end_time=scheduled.end_time,
        duration_minutes=scheduled.duration,
        depends_on=scheduled.depends_on,
        referee=scheduled.referee,
        score_a=scheduled.score_a,
        score_b=scheduled.score_b,
        match_status=status,
    )


def _detection_config(config: TournamentConfig, min_break_minutes: Optional[int] = None) -> ConflictDetectionConfig:
    return ConflictDetectionConfig(
        min_break_minutes=(
            min_break_minutes if min_break_minutes is not None else max(0, config.group_phase_break_duration)
        ),
        check_referee_conflicts=config.referee_config.mode != "none",
    )


def _tournament_response(tournament: Tournament) -> TournamentResponse:
    return TournamentResponse(
        id=tournament.id,
        title=tournament.title,
        location=tournament.location,
        config=tournament.config_json,
        created_at=tournament.created_at,
        updated_at=tournament.updated_at,
    )


# ============================================================================
# Tournaments
# ============================================================================


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(config: TournamentConfig, session: Session = Depends(get_session)):
    """Store a tournament configuration (persisted matches are managed separately)"""
    tournament = Tournament(
        title=config.title or "Tournament",
        location=config.location,
        config_json=config.model_dump(mode="json", exclude={"matches", "id"}),
    )
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return _tournament_response(tournament)


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    return _tournament_response(_get_tournament_or_404(session, tournament_id))


@router.post("/tournaments/{tournament_id}/schedule", response_model=GeneratedSchedule)
def generate_tournament_schedule(
    tournament_id: int,
    regenerate: bool = Query(False, description="Discard persisted matches and build from scratch"),
    session: Session = Depends(get_session),
):
    """
    Generate and persist the schedule.

    With persisted matches (and regenerate=false) the engine runs in hybrid
    mode: existing matches keep id, time and result; missing playoffs are added.
    """
    tournament = _get_tournament_or_404(session, tournament_id)
    config = _load_config(tournament)
    existing = _load_matches(session, tournament_id)

    if regenerate:
        for row in existing:
            session.delete(row)
        session.flush()
        existing = []
    else:
        config = config.model_copy(update={"matches": [_to_persisted(row) for row in existing]})

    try:
        schedule = generate_full_schedule(config)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    rows_by_id = {row.match_id: row for row in existing}
    for scheduled in schedule.all_matches:
        row = rows_by_id.get(scheduled.id)
        if row is None:
            row = Match(
                tournament_id=tournament_id,
                match_id=scheduled.id,
                match_number=scheduled.match_number,
                team_a=scheduled.original_team_a,
                team_b=scheduled.original_team_b,
                start_time=scheduled.start_time,
                duration_minutes=scheduled.duration,
            )
        row.match_number = scheduled.match_number
        row.group = scheduled.group
        row.phase = scheduled.phase
        row.final_type = scheduled.final_type
        row.label = scheduled.label
        row.field = scheduled.field
        row.slot = scheduled.slot
        row.start_time = scheduled.start_time
        row.duration_minutes = scheduled.duration
        row.depends_on = list(scheduled.depends_on)
        row.referee = scheduled.referee
        session.add(row)

    session.commit()
    logger.info(
        "Persisted %d matches for tournament %s (%d new)",
        len(schedule.all_matches),
        tournament_id,
        len(schedule.all_matches) - len(rows_by_id),
    )
    return schedule


# ============================================================================
# Matches
# ============================================================================


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse])
def list_matches(tournament_id: int, session: Session = Depends(get_session)):
    tournament = _get_tournament_or_404(session, tournament_id)
    config = _load_config(tournament)
    return [_match_response(_to_scheduled(row, config), row.match_status) for row in _load_matches(session, tournament_id)]


@router.patch("/tournaments/{tournament_id}/matches/{match_id}", response_model=MatchUpdateResponse)
def update_match(
    tournament_id: int,
    match_id: str,
    update: MatchUpdate,
    session: Session = Depends(get_session),
):
    """Edit score, referee, field, time or status; returns conflicts of the edited match"""
    tournament = _get_tournament_or_404(session, tournament_id)
    row = session.exec(
        select(Match).where(Match.tournament_id == tournament_id, Match.match_id == match_id)
    ).first()
    if not row:
        raise HTTPException(status_code=404, detail="Match not found")

    for key, value in update.model_dump(exclude_unset=True).items():
        setattr(row, key, value)
    if update.start_time is not None:
        row.start_time = update.start_time.replace(tzinfo=None)
    session.add(row)
    session.commit()
    session.refresh(row)

    config = _load_config(tournament)
    matches = [_to_scheduled(m, config) for m in _load_matches(session, tournament_id)]
    conflicts = get_conflicts_for_match(
        detect_all_conflicts(matches, config.teams, _detection_config(config)), match_id
    )
    return MatchUpdateResponse(match=_match_response(_to_scheduled(row, config), row.match_status), conflicts=conflicts)


@router.get("/tournaments/{tournament_id}/conflicts", response_model=ConflictReport)
def get_tournament_conflicts(
    tournament_id: int,
    min_break_minutes: Optional[int] = Query(None, ge=0),
    session: Session = Depends(get_session),
):
    tournament = _get_tournament_or_404(session, tournament_id)
    config = _load_config(tournament)
    matches = [_to_scheduled(row, config) for row in _load_matches(session, tournament_id)]
    return build_conflict_report(
        detect_all_conflicts(matches, config.teams, _detection_config(config, min_break_minutes))
    )


@router.post("/tournaments/{tournament_id}/playoffs/resolve", response_model=PlayoffResolveResponse)
def resolve_playoffs(tournament_id: int, session: Session = Depends(get_session)):
    """Resolve playoff placeholders from the current results"""
    tournament = _get_tournament_or_404(session, tournament_id)
    config = _load_config(tournament)
    matches = [_to_scheduled(row, config) for row in _load_matches(session, tournament_id)]
    result = resolve_playoff_pairings(matches, config.teams, config.point_system, config.groups, config.locale)
    return PlayoffResolveResponse(
        was_resolved=result.was_resolved,
        updated_match_ids=result.updated_match_ids,
        message=result.message,
        matches=result.matches,
    )
