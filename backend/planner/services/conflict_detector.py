"""
Schedule conflict detection.

Runs against any match list, including hand-edited ones. Two matches
conflict on a resource (team, referee, field) when their [start, end)
intervals overlap: start1 < end2 and start2 < end1. Back-to-back matches
do not overlap.

Checks:
- team_double_booking     (error)
- referee_double_booking  (error, optional)
- field_overlap           (error, optional)
- break_violation         (warning) gap between a team's consecutive
                          matches is below min_break_minutes (back-to-back is 0)
- dependency_violation    (error, optional) a playoff match starts before
                          a match it depends on has ended

Finished and skipped matches are ignored. Conflicts are reported, never
raised.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from planner.models.schedule_types import ScheduledMatch
from planner.models.tournament_config import TeamEntry
from planner.services.placeholder_resolver import is_placeholder
from planner.utils.conflict_report import (
    ConflictDetectionConfig,
    ConflictReport,
    ConflictType,
    MatchChange,
    ScheduleConflict,
)
from planner.utils.schedule_time import format_time, minutes_between

logger = logging.getLogger(__name__)

INACTIVE_STATUSES = ("finished", "skipped")


# ============================================================================
# Helpers
# ============================================================================


def _intervals_overlap(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """Half-open intervals: touching at an endpoint is not an overlap."""
    return start1 < end2 and start2 < end1


def _interval(match: ScheduledMatch, config: ConflictDetectionConfig) -> Tuple[datetime, datetime]:
    if config.match_duration_minutes is not None:
        return match.start_time, match.start_time + timedelta(minutes=config.match_duration_minutes)
    return match.start_time, match.end_time


def _conflict_id(conflict_type: ConflictType, *parts: str) -> str:
    return f"{conflict_type}-{'-'.join(sorted(parts))}"


def _active(matches: Sequence[ScheduledMatch]) -> List[ScheduledMatch]:
    return [m for m in matches if m.match_status not in INACTIVE_STATUSES]


def _team_refs(match: ScheduledMatch) -> List[str]:
    """Concrete team ids of a match; unresolved placeholders are skipped."""
    refs = []
    for ref in (match.original_team_a, match.original_team_b):
        if ref and not is_placeholder(ref) and ref not in refs:
            refs.append(ref)
    return refs


def _team_name(team_id: str, teams: Dict[str, TeamEntry]) -> str:
    team = teams.get(team_id)
    return team.name if team else team_id


# ============================================================================
# Individual checks
# ============================================================================


def detect_team_conflicts(
    matches: Sequence[ScheduledMatch], teams: Sequence[TeamEntry], config: ConflictDetectionConfig
) -> List[ScheduleConflict]:
    conflicts: List[ScheduleConflict] = []
    team_map = {t.id: t for t in teams}
    active = _active(matches)

    for i, first in enumerate(active):
        start1, end1 = _interval(first, config)
        for second in active[i + 1:]:
            start2, end2 = _interval(second, config)
            if not _intervals_overlap(start1, end1, start2, end2):
                continue
            for team_id in _team_refs(first):
                if team_id not in _team_refs(second):
                    continue
                name = _team_name(team_id, team_map)
                conflicts.append(
                    ScheduleConflict(
                        id=_conflict_id("team_double_booking", first.id, second.id, team_id),
                        type="team_double_booking",
                        severity="error",
                        match_ids=[first.id, second.id],
                        message=f'Team "{name}" is scheduled for two matches at the same time',
                        suggestion="Move one of the matches to another time slot",
                        context={"team_id": team_id, "team_name": name},
                    )
                )
    return conflicts


def detect_referee_conflicts(
    matches: Sequence[ScheduledMatch], config: ConflictDetectionConfig
) -> List[ScheduleConflict]:
    conflicts: List[ScheduleConflict] = []
    with_referee = [m for m in _active(matches) if m.referee is not None]

    for i, first in enumerate(with_referee):
        start1, end1 = _interval(first, config)
        for second in with_referee[i + 1:]:
            if first.referee != second.referee:
                continue
            start2, end2 = _interval(second, config)
            if not _intervals_overlap(start1, end1, start2, end2):
                continue
            conflicts.append(
                ScheduleConflict(
                    id=_conflict_id("referee_double_booking", first.id, second.id),
                    type="referee_double_booking",
                    severity="error",
                    match_ids=[first.id, second.id],
                    message=f"Referee {first.referee} is assigned to two matches at the same time",
                    suggestion="Change the referee of one of the matches",
                    context={"referee": first.referee},
                )
            )
    return conflicts


def detect_field_overlaps(
    matches: Sequence[ScheduledMatch], config: ConflictDetectionConfig
) -> List[ScheduleConflict]:
    conflicts: List[ScheduleConflict] = []
    by_field: Dict[int, List[ScheduledMatch]] = defaultdict(list)
    for match in _active(matches):
        by_field[match.field].append(match)

    for field_number in sorted(by_field):
        field_matches = by_field[field_number]
        for i, first in enumerate(field_matches):
            start1, end1 = _interval(first, config)
            for second in field_matches[i + 1:]:
                start2, end2 = _interval(second, config)
                if not _intervals_overlap(start1, end1, start2, end2):
                    continue
                conflicts.append(
                    ScheduleConflict(
                        id=_conflict_id("field_overlap", first.id, second.id),
                        type="field_overlap",
                        severity="error",
                        match_ids=[first.id, second.id],
                        message=f"Field {field_number} has two overlapping matches",
                        suggestion="Move one of the matches to another field or time slot",
                        context={"field": field_number},
                    )
                )
    return conflicts


def detect_break_violations(
    matches: Sequence[ScheduledMatch], teams: Sequence[TeamEntry], config: ConflictDetectionConfig
) -> List[ScheduleConflict]:
    conflicts: List[ScheduleConflict] = []
    if config.min_break_minutes <= 0:
        return conflicts

    team_map = {t.id: t for t in teams}
    by_team: Dict[str, List[ScheduledMatch]] = defaultdict(list)
    for match in _active(matches):
        for team_id in _team_refs(match):
            by_team[team_id].append(match)

    for team_id, team_matches in by_team.items():
        ordered = sorted(team_matches, key=lambda m: m.start_time)
        for first, second in zip(ordered, ordered[1:]):
            _, end1 = _interval(first, config)
            start2, _ = _interval(second, config)
            if start2 < end1:
                # Overlap is reported as a double booking
                continue
            gap = minutes_between(end1, start2)
            if gap >= config.min_break_minutes:
                continue
            name = _team_name(team_id, team_map)
            conflicts.append(
                ScheduleConflict(
                    id=_conflict_id("break_violation", first.id, second.id, team_id),
                    type="break_violation",
                    severity="warning",
                    match_ids=[first.id, second.id],
                    message=(
                        f'Team "{name}" has only {round(gap)} min break '
                        f"(at least {config.min_break_minutes} required)"
                    ),
                    suggestion="Leave more time between the matches",
                    context={
                        "team_id": team_id,
                        "team_name": name,
                        "required_break_minutes": config.min_break_minutes,
                        "actual_break_minutes": round(gap),
                    },
                )
            )
    return conflicts


def detect_dependency_violations(
    matches: Sequence[ScheduledMatch], config: ConflictDetectionConfig
) -> List[ScheduleConflict]:
    conflicts: List[ScheduleConflict] = []
    by_id = {m.id: m for m in matches}

    for match in _active(matches):
        start, _ = _interval(match, config)
        for dep_id in match.depends_on:
            dependency = by_id.get(dep_id)
            if dependency is None or dependency.match_status == "skipped":
                continue
            _, dep_end = _interval(dependency, config)
            if start >= dep_end:
                continue
            conflicts.append(
                ScheduleConflict(
                    id=_conflict_id("dependency_violation", match.id, dep_id),
                    type="dependency_violation",
                    severity="error",
                    match_ids=[dep_id, match.id],
                    message=f"Match {match.id} starts before {dep_id} has ended",
                    suggestion=f"Schedule {match.id} after {dep_id}",
                    context={"depends_on": dep_id},
                )
            )
    return conflicts


# ============================================================================
# Entry points
# ============================================================================


def detect_all_conflicts(
    matches: Sequence[ScheduledMatch],
    teams: Sequence[TeamEntry],
    config: Optional[ConflictDetectionConfig] = None,
) -> List[ScheduleConflict]:
    config = config or ConflictDetectionConfig()
    conflicts = detect_team_conflicts(matches, teams, config)
    if config.check_referee_conflicts:
        conflicts.extend(detect_referee_conflicts(matches, config))
    if config.check_field_conflicts:
        conflicts.extend(detect_field_overlaps(matches, config))
    conflicts.extend(detect_break_violations(matches, teams, config))
    if config.check_dependencies:
        conflicts.extend(detect_dependency_violations(matches, config))

    if conflicts:
        logger.info(
            "Detected %d conflict(s) in %d matches (%d blocking)",
            len(conflicts),
            len(matches),
            sum(1 for c in conflicts if c.severity == "error"),
        )
    return conflicts


def apply_match_change(match: ScheduledMatch, change: MatchChange) -> ScheduledMatch:
    """Copy of the match with the change applied; moving start keeps the duration."""
    if change.field == "start_time":
        new_start = change.new_value
        if isinstance(new_start, str):
            new_start = datetime.fromisoformat(new_start)
        return match.model_copy(
            update={
                "start_time": new_start,
                "end_time": new_start + timedelta(minutes=match.duration),
                "time": format_time(new_start),
            }
        )
    return match.model_copy(update={change.field: change.new_value})


def validate_match_change(
    matches: Sequence[ScheduledMatch],
    teams: Sequence[TeamEntry],
    change: MatchChange,
    config: Optional[ConflictDetectionConfig] = None,
) -> List[ScheduleConflict]:
    """Conflicts involving the changed match if the change were applied."""
    updated = [apply_match_change(m, change) if m.id == change.match_id else m for m in matches]
    return get_conflicts_for_match(detect_all_conflicts(updated, teams, config), change.match_id)


def get_conflicts_for_match(conflicts: Sequence[ScheduleConflict], match_id: str) -> List[ScheduleConflict]:
    return [c for c in conflicts if match_id in c.match_ids]


def has_blocking_conflicts(conflicts: Sequence[ScheduleConflict]) -> bool:
    return any(c.severity == "error" for c in conflicts)


def group_conflicts_by_type(conflicts: Sequence[ScheduleConflict]) -> Dict[str, List[ScheduleConflict]]:
    grouped: Dict[str, List[ScheduleConflict]] = {}
    for conflict in conflicts:
        grouped.setdefault(conflict.type, []).append(conflict)
    return grouped


def build_conflict_report(conflicts: Sequence[ScheduleConflict]) -> ConflictReport:
    grouped = group_conflicts_by_type(conflicts)
    return ConflictReport(
        conflicts=list(conflicts),
        error_count=sum(1 for c in conflicts if c.severity == "error"),
        warning_count=sum(1 for c in conflicts if c.severity == "warning"),
        has_blocking_conflicts=has_blocking_conflicts(conflicts),
        by_type={k: len(v) for k, v in grouped.items()},
    )
